"""
Pipeline: pasted text + exclusions -> .ics files.

    tokenize -> parse -> expand -> serialize -> write

submit() is the narrow entry point for front ends (CLI, interactive mode):
it never raises for bad input, it returns an Outcome holding either the
written files or the structured error. Every call is an independent run.
"""

from __future__ import annotations

from collections import OrderedDict, defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Sequence, Union

from pastecal.config import AppConfig
from pastecal.errors import OutputError, ScheduleError
from pastecal.exclusions import parse_exclusions
from pastecal.expand import expand_sessions
from pastecal.export_ics import assign_uids, safe_filename, serialize_calendar
from pastecal.model import CalendarEvent, CalendarFile, CourseSession, ExclusionRange
from pastecal.parse import parse_schedule


ExclusionInput = Union[str, Iterable[str], Sequence[ExclusionRange], None]


@dataclass
class Outcome:
    """
    Result of one submit() call.
    """

    files: list[Path] = field(default_factory=list)
    sessions: list[CourseSession] = field(default_factory=list)
    events: list[CalendarEvent] = field(default_factory=list)
    error: Optional[ScheduleError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def summary(self) -> dict[str, dict[str, int]]:
        """
        Course title -> {schedule type: number of weekly sessions}.
        """
        counts: dict[str, dict[str, int]] = defaultdict(dict)
        for s in self.sessions:
            label = s.schedule_type or s.session_type.value
            name = f"{s.course_code} {s.title}".strip()
            counts[name][label] = counts[name].get(label, 0) + 1
        return dict(sorted(counts.items()))


def _exclusion_ranges(exclusions: ExclusionInput) -> list[ExclusionRange]:
    if exclusions is None:
        return []
    if isinstance(exclusions, str):
        return parse_exclusions(exclusions)
    items = list(exclusions)
    if all(isinstance(x, ExclusionRange) for x in items):
        return items
    return parse_exclusions([str(x) for x in items])


def group_key(event: CalendarEvent, grouping: str, prefix: str) -> str:
    """
    Name of the output group event belongs to.
    """
    if grouping == "course":
        key = event.course_code
    elif grouping == "type":
        key = event.schedule_type
    else:
        key = prefix
    return key or prefix


def group_events(
    events: Iterable[CalendarEvent], uids: Iterable[str], grouping: str, prefix: str
) -> "OrderedDict[str, list[tuple[CalendarEvent, str]]]":
    """
    Split (event, uid) pairs into output groups, in order of first appearance.
    """
    groups: "OrderedDict[str, list[tuple[CalendarEvent, str]]]" = OrderedDict()
    for ev, uid in zip(events, uids):
        groups.setdefault(group_key(ev, grouping, prefix), []).append((ev, uid))
    return groups


def unique_filenames(names: Iterable[str]) -> list[str]:
    """
    Sanitized '<name>.ics' file names, made unique case-insensitively.
    """
    used: set[str] = set()
    out: list[str] = []
    for name in names:
        base = safe_filename(name)
        candidate = base
        n = 2
        while candidate.lower() in used:
            candidate = f"{base}-{n}"
            n += 1
        used.add(candidate.lower())
        out.append(f"{candidate}.ics")
    return out


def build_calendars(
    text: str,
    exclusions: ExclusionInput = None,
    config: Optional[AppConfig] = None,
) -> tuple[list[CourseSession], list[CalendarFile]]:
    """
    Run the pure part of the pipeline. Raises ScheduleError subclasses.
    """
    cfg = config or AppConfig()

    sessions = parse_schedule(text, cfg.parser)
    ranges = _exclusion_ranges(exclusions)
    events = expand_sessions(sessions, ranges)

    # UIDs are assigned over the whole run, so a seed repeated in two files
    # still gets two different UIDs
    uids = assign_uids(events, cfg.calendar.uid_domain)
    groups = group_events(events, uids, cfg.calendar.grouping, cfg.calendar.file_prefix)
    names = unique_filenames(groups.keys())

    files: list[CalendarFile] = []
    for filename, (key, pairs) in zip(names, groups.items()):
        cal_name = cfg.calendar.calendar_name
        if cfg.calendar.grouping != "combined":
            cal_name = f"{cal_name} - {key}" if cal_name else key
        group = [ev for ev, _ in pairs]
        content = serialize_calendar(group, cfg.calendar, cal_name, [uid for _, uid in pairs])
        files.append(CalendarFile(name=filename, content=content, events=tuple(group)))

    return sessions, files


def write_calendars(files: Iterable[CalendarFile], destination: str | Path) -> list[Path]:
    """
    Write calendar files into destination (created if missing).
    """
    out_dir = Path(destination)
    written: list[Path] = []
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
        for f in files:
            path = out_dir / f.name
            path.write_bytes(f.content)
            written.append(path)
    except OSError as exc:
        raise OutputError(f"Cannot write calendar files to {out_dir}: {exc.strerror or exc}")
    return written


def generate(
    text: str,
    exclusions: ExclusionInput,
    destination: str | Path,
    config: Optional[AppConfig] = None,
) -> Outcome:
    """
    Full pipeline. Raises ScheduleError subclasses.
    """
    sessions, files = build_calendars(text, exclusions, config)
    written = write_calendars(files, destination)
    events = [ev for f in files for ev in f.events]
    return Outcome(files=written, sessions=sessions, events=events)


def submit(
    text: str,
    exclusions: ExclusionInput,
    destination: str | Path,
    config: Optional[AppConfig] = None,
) -> Outcome:
    """
    Like generate(), but reports failures in the returned Outcome.
    """
    try:
        return generate(text, exclusions, destination, config)
    except ScheduleError as exc:
        return Outcome(error=exc)
