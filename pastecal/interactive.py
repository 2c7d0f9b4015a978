from __future__ import annotations

import subprocess
import sys

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from pastecal.config import AppConfig
from pastecal.errors import MalformedExclusion, ScheduleError
from pastecal.exclusions import parse_exclusion_line
from pastecal.model import ExclusionRange
from pastecal.parse import parse_schedule
from pastecal.pipeline import submit


console = Console()

END_OF_PASTE = "END"


@dataclass
class FormState:
    """
    Everything the user entered so far. Nothing is cached between runs:
    each "Generate" parses the text again.
    """

    text: str = ""
    exclusions: list[ExclusionRange] = field(default_factory=list)
    output_folder: Optional[Path] = None

    @property
    def can_generate(self) -> bool:
        return bool(self.text.strip()) and self.output_folder is not None


def _println(msg: str = "") -> None:
    console.print(msg)


def _prompt(msg: str) -> str:
    return console.input(msg)


def run_interactive(config: Optional[AppConfig] = None, state: Optional[FormState] = None) -> FormState:
    """
    Interactive menu loop: paste schedule, add excluded dates, pick folder, generate.
    """
    cfg = config or AppConfig()
    form = state or FormState()

    while True:
        _print_header(form)

        choice = _prompt(
            "\n[1] Paste schedule data\n"
            "[2] Add excluded date\n"
            "[3] Add excluded range\n"
            "[4] Remove an exclusion\n"
            "[5] Select output folder\n"
            "[6] Preview classes\n"
            "[7] Generate .ics\n"
            "[0] Exit\n"
            "Select: "
        ).strip()

        if choice == "0":
            _println("Bye.")
            return form

        if choice == "1":
            _flow_paste(form)
        elif choice == "2":
            _flow_add_exclusion(form, single=True)
        elif choice == "3":
            _flow_add_exclusion(form, single=False)
        elif choice == "4":
            _flow_remove_exclusion(form)
        elif choice == "5":
            _flow_output_folder(form)
        elif choice == "6":
            _flow_preview(form, cfg)
        elif choice == "7":
            _flow_generate(form, cfg)
        else:
            _println("Invalid choice.")


def _print_header(form: FormState) -> None:
    lines = len([x for x in form.text.splitlines() if x.strip()])
    folder = str(form.output_folder) if form.output_folder else "(not selected)"
    _println("\n=== pastecal (interactive) ===")
    _println(f"Schedule data: {lines} line(s) | Exclusions: {len(form.exclusions)} | Output: {escape(folder)}")


def _format_range(r: ExclusionRange) -> str:
    if r.from_date == r.to_date:
        return r.from_date.isoformat()
    return f"{r.from_date.isoformat()} - {r.to_date.isoformat()}"


def _flow_paste(form: FormState) -> None:
    _println(f"Paste the copied schedule, then type {END_OF_PASTE} on its own line:")
    collected: list[str] = []
    while True:
        try:
            line = _prompt("")
        except EOFError:
            break
        if line.strip() == END_OF_PASTE:
            break
        collected.append(line)
    form.text = "\n".join(collected)
    _println(f"Read {len([x for x in collected if x.strip()])} non-empty line(s).")


def _flow_add_exclusion(form: FormState, single: bool) -> None:
    if single:
        raw = _prompt("Date (YYYY-MM-DD) (blank = back): ").strip()
        if not raw:
            return
        line = f"{raw} - {raw}"
    else:
        start = _prompt("From (YYYY-MM-DD) (blank = back): ").strip()
        if not start:
            return
        end = _prompt("To (YYYY-MM-DD): ").strip()
        line = f"{start} - {end}"

    try:
        excl = parse_exclusion_line(line)
    except MalformedExclusion as exc:
        _println(f"[red]{escape(exc.describe())}[/]")
        return

    form.exclusions.append(excl)
    form.exclusions.sort(key=lambda r: (r.from_date, r.to_date))
    _println(f"Added: {_format_range(excl)}")


def _flow_remove_exclusion(form: FormState) -> None:
    if not form.exclusions:
        _println("No exclusions.")
        return

    table = Table(title="Exclusions", box=box.SIMPLE)
    table.add_column("#", justify="right")
    table.add_column("Dates")
    for i, r in enumerate(form.exclusions, start=1):
        table.add_row(str(i), _format_range(r))
    console.print(table)

    pick = _prompt("Enter number to remove (or blank to cancel): ").strip()
    if not pick:
        return
    if not pick.isdigit():
        _println("Not a number.")
        return

    idx = int(pick)
    if not (1 <= idx <= len(form.exclusions)):
        _println("Out of range.")
        return

    removed = form.exclusions.pop(idx - 1)
    _println(f"Removed: {_format_range(removed)}")


def _flow_output_folder(form: FormState) -> None:
    default = Path.home() / "Downloads"
    raw = _prompt(f"Output folder (blank = {escape(str(default))}): ").strip()
    form.output_folder = Path(raw).expanduser() if raw else default
    _println(f"Output folder: {escape(str(form.output_folder))}")


def _flow_preview(form: FormState, cfg: AppConfig) -> None:
    if not form.text.strip():
        _println("Paste the schedule data first.")
        return

    try:
        sessions = parse_schedule(form.text, cfg.parser)
    except ScheduleError as exc:
        _println(f"[red]{escape(exc.describe())}[/]")
        return

    table = Table(title="Classes found", box=box.SIMPLE)
    table.add_column("Course")
    table.add_column("Type")
    table.add_column("Day")
    table.add_column("Time")
    for s in sessions:
        table.add_row(
            f"[bold cyan]{escape(s.course_code)}[/] {escape(s.title)}",
            f"[green]{escape(s.schedule_type or s.session_type.value)}[/]",
            s.day.short,
            f"{s.start_time:%H:%M}-{s.end_time:%H:%M}",
        )
    console.print(table)


def _flow_generate(form: FormState, cfg: AppConfig) -> None:
    if not form.can_generate:
        _println("Paste the schedule data and select an output folder first.")
        return

    assert form.output_folder is not None
    with console.status("Generating calendars..."):
        outcome = submit(form.text, form.exclusions, form.output_folder, cfg)

    if not outcome.ok:
        assert outcome.error is not None
        _println(f"[bold red]Error:[/] {escape(outcome.error.describe())}")
        return

    for name, counts in outcome.summary().items():
        per_type = ", ".join(f"{kind}: {n}" for kind, n in counts.items())
        _println(f"[bold cyan]{escape(name)}[/] -> {escape(per_type)}")
    _println(f"\nWrote {len(outcome.files)} .ics file(s) to: {escape(str(form.output_folder.resolve()))}")

    _println(
        "\nNext steps:\n"
        "- Google Calendar (desktop): Settings → Import & export → Import → choose the .ics file\n"
        "- Outlook / Apple Calendar: open the .ics file\n"
    )

    open_now = _prompt("Open folder now? (y/N): ").strip().lower()
    if open_now == "y":
        _open_folder(form.output_folder)


def _open_folder(folder: Path) -> None:
    if sys.platform.startswith("win"):
        cmd = ["explorer.exe", str(folder)]
    else:
        cmd = ["open" if sys.platform == "darwin" else "xdg-open", str(folder)]
    try:
        subprocess.run(cmd, check=False)
    except OSError as exc:
        _println(f"Could not open the folder: {escape(str(exc))}")
