"""
CLI (Command Line Interface).

This module provides the terminal commands, e.g.:

    pastecal generate schedule.txt -o calendars/ -x exclusions.txt
    pastecal generate - -o calendars/ --exclude "2024-10-21 - 2024-10-25"
    pastecal check schedule.txt
    pastecal init-config pastecal.json
    pastecal interactive

Note:
- The interactive form lives in pastecal/interactive.py
- All console output goes through rich; the core modules never print
"""

from __future__ import annotations

import argparse
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from pastecal import __version__
from pastecal.config import GROUPINGS, AppConfig, load_config, save_config
from pastecal.errors import ScheduleError
from pastecal.model import CourseSession
from pastecal.parse import parse_schedule
from pastecal.pipeline import Outcome, submit


console = Console()
err_console = Console(stderr=True)


def _read_text(source: str) -> str:
    """
    Read a text file, or stdin for '-'.
    """
    if source == "-":
        return sys.stdin.read()
    return Path(source).read_text(encoding="utf-8")


def print_error(err: ScheduleError) -> None:
    """
    Render a core error so the user can find the offending line.
    """
    err_console.print(f"[bold red]Error:[/] {escape(err.describe())}")
    if err.kind == "malformed_record":
        err_console.print(
            "Hint: make sure every course's detail rows are expanded on the schedule page before copying."
        )


def print_read_error(exc: Exception) -> None:
    """
    Input file could not be opened or is not UTF-8 text.
    """
    err_console.print(f"[bold red]Error:[/] {escape(str(exc))}")
    if isinstance(exc, UnicodeDecodeError):
        err_console.print("Hint: save the copied schedule as UTF-8 text and try again.")


def print_sessions(sessions: list[CourseSession]) -> None:
    table = Table(title="Classes found", box=box.SIMPLE)
    table.add_column("Course", style="bold cyan")
    table.add_column("Type", style="green")
    table.add_column("Day")
    table.add_column("Time")
    table.add_column("Dates")
    table.add_column("Location", style="magenta")
    for s in sessions:
        table.add_row(
            escape(f"{s.course_code} {s.title}"),
            escape(s.schedule_type or s.session_type.value),
            s.day.short,
            f"{s.start_time:%H:%M}-{s.end_time:%H:%M}",
            f"{s.term_start.isoformat()} - {s.term_end.isoformat()}",
            escape(s.location),
        )
    console.print(table)


def print_outcome(outcome: Outcome) -> None:
    """
    Per course: how many weekly sessions of each type, then the files written.
    """
    for name, counts in outcome.summary().items():
        per_type = ", ".join(f"{kind}: {n}" for kind, n in counts.items())
        console.print(f"[bold cyan]{escape(name)}[/] -> {escape(per_type)}")

    for path in outcome.files:
        console.print(f"Wrote calendar: {escape(str(path))}")
    console.print(f"Wrote {len(outcome.files)} .ics file(s).")


def _config_from_args(args: argparse.Namespace) -> AppConfig:
    """
    Load the config file and apply command line overrides.
    """
    cfg = load_config(args.config)
    overrides = {}
    if getattr(args, "group", None):
        overrides["grouping"] = args.group
    if getattr(args, "timezone", None):
        overrides["timezone"] = args.timezone
    if getattr(args, "calendar_name", None) is not None:
        overrides["calendar_name"] = args.calendar_name
    if getattr(args, "prefix", None):
        overrides["file_prefix"] = args.prefix
    if overrides:
        cfg = replace(cfg, calendar=replace(cfg.calendar, **overrides))
    return cfg


def _cmd_generate(args: argparse.Namespace) -> int:
    """
    Parse the pasted schedule and write .ics files.
    """
    try:
        cfg = _config_from_args(args)
        text = _read_text(args.schedule)
        exclusion_lines: list[str] = []
        if args.exclusions:
            exclusion_lines.extend(_read_text(args.exclusions).splitlines())
        exclusion_lines.extend(args.exclude or [])
    except ScheduleError as exc:
        print_error(exc)
        return 1
    except (OSError, UnicodeDecodeError) as exc:
        print_read_error(exc)
        return 1

    outcome = submit(text, exclusion_lines, args.out, cfg)
    if not outcome.ok:
        assert outcome.error is not None
        print_error(outcome.error)
        return 1

    print_outcome(outcome)
    return 0


def _cmd_check(args: argparse.Namespace) -> int:
    """
    Parse only and list what was found. Useful to debug a paste.
    """
    try:
        cfg = load_config(args.config)
        sessions = parse_schedule(_read_text(args.schedule), cfg.parser)
    except ScheduleError as exc:
        print_error(exc)
        return 1
    except (OSError, UnicodeDecodeError) as exc:
        print_read_error(exc)
        return 1

    print_sessions(sessions)
    console.print(f"{len(sessions)} weekly session(s).")
    return 0


def _cmd_init_config(args: argparse.Namespace) -> int:
    """
    Write the default configuration so it can be edited.
    """
    out = Path(args.path)
    if out.exists() and not args.force:
        err_console.print(f"{escape(str(out))} already exists (use --force to overwrite).")
        return 1
    save_config(AppConfig(), out)
    console.print(f"Default configuration written to: {escape(str(out))}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    """
    Build the argparse CLI parser with sub-commands.
    """
    parser = argparse.ArgumentParser(
        prog="pastecal",
        description="Turn a copied class schedule page into .ics calendar files",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", type=Path, default=None, help="JSON configuration file")
    sub = parser.add_subparsers(dest="command", required=True)

    p_gen = sub.add_parser("generate", help="Write .ics files from a pasted schedule")
    p_gen.add_argument("schedule", type=str, help="Text file with the pasted schedule ('-' = stdin)")
    p_gen.add_argument("-o", "--out", type=Path, required=True, help="Destination folder")
    p_gen.add_argument("-x", "--exclusions", type=str, help="File with one 'YYYY-MM-DD - YYYY-MM-DD' per line")
    p_gen.add_argument(
        "-e", "--exclude", action="append", metavar="RANGE", help="Exclusion range, may be repeated"
    )
    p_gen.add_argument("--group", choices=GROUPINGS, help="One file per course, per type, or one combined file")
    p_gen.add_argument("--timezone", type=str, help="IANA timezone of the institution")
    p_gen.add_argument("--calendar-name", type=str, help="Calendar name shown by calendar apps")
    p_gen.add_argument("--prefix", type=str, help="File name of the combined calendar")

    p_check = sub.add_parser("check", help="Only parse and list the classes found")
    p_check.add_argument("schedule", type=str, help="Text file with the pasted schedule ('-' = stdin)")

    p_init = sub.add_parser("init-config", help="Write the default configuration file")
    p_init.add_argument("path", type=str, help="Where to write the JSON file")
    p_init.add_argument("--force", action="store_true", help="Overwrite an existing file")

    sub.add_parser("interactive", help="Interactive form mode")

    return parser


def main(argv: Optional[list[str]] = None) -> None:
    """
    CLI entry point. Parses args, dispatches to command handlers,
    and exits via SystemExit with a return code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "generate":
        raise SystemExit(_cmd_generate(args))
    if args.command == "check":
        raise SystemExit(_cmd_check(args))
    if args.command == "init-config":
        raise SystemExit(_cmd_init_config(args))

    if args.command == "interactive":
        from pastecal.interactive import run_interactive

        try:
            cfg = load_config(args.config)
        except ScheduleError as exc:
            print_error(exc)
            raise SystemExit(1)
        run_interactive(cfg)
        raise SystemExit(0)

    raise SystemExit(2)
