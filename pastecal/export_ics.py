"""
iCalendar (.ics) export.

We convert recurring class events into a calendar file that can be imported into:
- Google Calendar
- Outlook
- Apple Calendar

Output is deterministic: the same events and config always give the same
bytes (stable UIDs, stable DTSTAMP, fixed property order).
"""

from __future__ import annotations

import hashlib
import re
from collections import Counter
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Optional, Sequence
from zoneinfo import ZoneInfo

from pastecal.config import CalendarConfig
from pastecal.model import CalendarEvent


# RFC 5545 3.1: lines longer than 75 octets are folded
FOLD_OCTETS = 75

# Hand-maintained VTIMEZONE definitions. Other zones are generated from the
# tz database for the years the calendar covers.
VTIMEZONES: dict[str, list[str]] = {
    "America/Toronto": [
        "BEGIN:VTIMEZONE",
        "TZID:America/Toronto",
        "X-LIC-LOCATION:America/Toronto",
        "BEGIN:DAYLIGHT",
        "TZNAME:EDT",
        "TZOFFSETFROM:-0500",
        "TZOFFSETTO:-0400",
        "DTSTART:19700308T020000",
        "RRULE:FREQ=YEARLY;BYMONTH=3;BYDAY=2SU",
        "END:DAYLIGHT",
        "BEGIN:STANDARD",
        "TZNAME:EST",
        "TZOFFSETFROM:-0400",
        "TZOFFSETTO:-0500",
        "DTSTART:19701101T020000",
        "RRULE:FREQ=YEARLY;BYMONTH=11;BYDAY=1SU",
        "END:STANDARD",
        "END:VTIMEZONE",
    ],
}


def _ics_escape(text: str) -> str:
    """
    Escape text for ICS TEXT values (RFC 5545 3.3.11).
    """
    return (
        text.replace("\\", "\\\\").replace("\r\n", "\\n").replace("\n", "\\n").replace(";", "\\;").replace(",", "\\,")
    )


def _format_offset(offset: timedelta) -> str:
    """
    UTC offset as '+HHMM' (or '+HHMMSS' when seconds are involved).
    """
    seconds = int(offset.total_seconds())
    sign = "-" if seconds < 0 else "+"
    hours, rest = divmod(abs(seconds), 3600)
    minutes, secs = divmod(rest, 60)
    out = f"{sign}{hours:02d}{minutes:02d}"
    if secs:
        out += f"{secs:02d}"
    return out


def zone_transitions(tz: ZoneInfo, first_year: int, last_year: int) -> list[datetime]:
    """
    UTC instants (whole minutes) at which tz changes its offset, from
    January 1st of first_year up to the end of last_year.
    """
    out: list[datetime] = []
    day = datetime(first_year, 1, 1, tzinfo=timezone.utc)
    end = datetime(last_year + 1, 1, 1, tzinfo=timezone.utc)
    while day < end:
        nxt = day + timedelta(days=1)
        before = day.astimezone(tz).utcoffset()
        if before != nxt.astimezone(tz).utcoffset():
            lo, hi = 0, 24 * 60
            while hi - lo > 1:
                mid = (lo + hi) // 2
                if (day + timedelta(minutes=mid)).astimezone(tz).utcoffset() == before:
                    lo = mid
                else:
                    hi = mid
            out.append(day + timedelta(minutes=hi))
        day = nxt
    return out


def _observance(instant: datetime, tz: ZoneInfo, offset_from: timedelta, dtstart: str) -> list[str]:
    local = instant.astimezone(tz)
    kind = "DAYLIGHT" if local.dst() else "STANDARD"
    return [
        f"BEGIN:{kind}",
        f"TZNAME:{local.tzname()}",
        f"TZOFFSETFROM:{_format_offset(offset_from)}",
        f"TZOFFSETTO:{_format_offset(local.utcoffset())}",
        f"DTSTART:{dtstart}",
        f"END:{kind}",
    ]


def vtimezone_lines(tzid: str, first_year: int, last_year: int) -> list[str]:
    """
    VTIMEZONE for tzid covering first_year..last_year.

    The bundled definition is used when there is one. Otherwise the block
    lists the offset in effect on January 1st of first_year (as an
    observance starting 1970-01-01) and every transition after it.
    """
    if tzid in VTIMEZONES:
        return list(VTIMEZONES[tzid])

    tz = ZoneInfo(tzid)
    begin = datetime(first_year, 1, 1, tzinfo=timezone.utc)
    initial = begin.astimezone(tz).utcoffset()

    lines = ["BEGIN:VTIMEZONE", f"TZID:{tzid}", f"X-LIC-LOCATION:{tzid}"]
    lines.extend(_observance(begin, tz, initial, "19700101T000000"))
    for instant in zone_transitions(tz, first_year, last_year):
        offset_from = (instant - timedelta(minutes=1)).astimezone(tz).utcoffset()
        # observance onset is written in the local time that was in effect before it
        onset = (instant + offset_from).replace(tzinfo=None)
        lines.extend(_observance(instant, tz, offset_from, _dt_local(onset)))
    lines.append("END:VTIMEZONE")
    return lines


def fold_line(line: str) -> str:
    """
    Fold one content line at 75 octets.

    Continuation lines start with a single space, which counts towards
    their 75 octets. Multi-byte UTF-8 characters are never split.
    """
    if len(line.encode("utf-8")) <= FOLD_OCTETS:
        return line

    parts: list[str] = []
    current = ""
    size = 0
    budget = FOLD_OCTETS
    for ch in line:
        n = len(ch.encode("utf-8"))
        if size + n > budget:
            parts.append(current)
            current, size, budget = "", 0, FOLD_OCTETS - 1
        current += ch
        size += n
    parts.append(current)
    return "\r\n ".join(parts)


def _dt_local(dt: datetime) -> str:
    """
    Local datetime as 'YYYYMMDDTHHMMSS' (used with a TZID parameter).
    """
    return dt.strftime("%Y%m%dT%H%M%S")


def _until_utc(day: date, tz: ZoneInfo) -> str:
    """
    End of day in the institution's zone, expressed in UTC.

    RFC 5545 requires UNTIL in UTC when DTSTART carries a TZID.
    """
    local_end = datetime.combine(day, time(23, 59, 59), tzinfo=tz)
    return local_end.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def default_dtstamp(events: Sequence[CalendarEvent]) -> datetime:
    """
    Stable DTSTAMP: midnight UTC of the earliest event start.
    """
    if not events:
        return datetime(1970, 1, 1, tzinfo=timezone.utc)
    first = min(ev.start.date() for ev in events)
    return datetime.combine(first, time(0, 0), tzinfo=timezone.utc)


def _format_dtstamp(stamp: datetime) -> str:
    if stamp.tzinfo is not None:
        stamp = stamp.astimezone(timezone.utc)
    return stamp.strftime("%Y%m%dT%H%M%SZ")


def make_uid(seed: str, ordinal: int, domain: str) -> str:
    """
    Deterministic UID from the event seed (course code, day, start time).

    ordinal separates events that share a seed, e.g. duplicated sections.
    """
    digest = hashlib.sha1(seed.encode("utf-8")).hexdigest()
    suffix = f"-{ordinal}" if ordinal > 1 else ""
    return f"{digest}{suffix}@{domain}"


def event_lines(event: CalendarEvent, uid: str, dtstamp: str, config: CalendarConfig) -> list[str]:
    """
    Unfolded content lines for one VEVENT.
    """
    tzid = config.timezone
    tz = ZoneInfo(tzid)

    lines: list[str] = []
    lines.append("BEGIN:VEVENT")
    lines.append(f"UID:{uid}")
    lines.append(f"DTSTAMP:{dtstamp}")
    lines.append(f"DTSTART;TZID={tzid}:{_dt_local(event.start)}")
    lines.append(f"DTEND;TZID={tzid}:{_dt_local(event.end)}")

    if event.until is not None:
        lines.append(f"RRULE:FREQ=WEEKLY;UNTIL={_until_utc(event.until, tz)}")

        exdates = list(event.exception_dates)
        if not event.occurrences:
            # the anchor lies after the term end; hide the DTSTART instance
            exdates = [event.start.date()]
        if exdates:
            start_time = event.start.time()
            values = ",".join(_dt_local(datetime.combine(d, start_time)) for d in exdates)
            lines.append(f"EXDATE;TZID={tzid}:{values}")

    lines.append(f"SUMMARY:{_ics_escape(event.summary)}")
    if event.location:
        lines.append(f"LOCATION:{_ics_escape(event.location)}")
    if event.description:
        lines.append(f"DESCRIPTION:{_ics_escape(event.description)}")
    lines.append("END:VEVENT")
    return lines


def assign_uids(events: Iterable[CalendarEvent], domain: str) -> list[str]:
    """
    One UID per event, in order. Events sharing a seed get ordinals 1, 2, ...
    """
    seen: Counter[str] = Counter()
    out: list[str] = []
    for ev in events:
        seen[ev.uid_seed] += 1
        out.append(make_uid(ev.uid_seed, seen[ev.uid_seed], domain))
    return out


def _covered_years(events: Sequence[CalendarEvent], fallback: int) -> tuple[int, int]:
    if not events:
        return fallback, fallback
    first = min(ev.start.year for ev in events)
    last = max((ev.until or ev.start.date()).year for ev in events)
    return first, last


def serialize_calendar(
    events: Iterable[CalendarEvent],
    config: Optional[CalendarConfig] = None,
    calendar_name: Optional[str] = None,
    uids: Optional[Sequence[str]] = None,
) -> bytes:
    """
    Render events as one VCALENDAR (UTF-8, CRLF, folded).

    uids, when given, holds one UID per event. Pass them when a run is split
    into several files so that duplicate seeds stay unique across the files.
    """
    cfg = config or CalendarConfig()
    evs = list(events)
    if uids is None:
        uids = assign_uids(evs, cfg.uid_domain)
    elif len(uids) != len(evs):
        raise ValueError(f"got {len(uids)} UIDs for {len(evs)} events")

    stamp_dt = cfg.dtstamp or default_dtstamp(evs)
    stamp = _format_dtstamp(stamp_dt)
    name = calendar_name if calendar_name is not None else cfg.calendar_name

    lines: list[str] = []
    lines.append("BEGIN:VCALENDAR")
    lines.append("VERSION:2.0")
    lines.append(f"PRODID:{cfg.prodid}")
    lines.append("CALSCALE:GREGORIAN")
    lines.append("METHOD:PUBLISH")
    if name:
        lines.append(f"X-WR-CALNAME:{_ics_escape(name)}")
    lines.append(f"X-WR-TIMEZONE:{cfg.timezone}")
    lines.extend(vtimezone_lines(cfg.timezone, *_covered_years(evs, stamp_dt.year)))

    for ev, uid in zip(evs, uids):
        lines.extend(event_lines(ev, uid, stamp, cfg))

    lines.append("END:VCALENDAR")

    # ICS standard uses CRLF
    return ("\r\n".join(fold_line(line) for line in lines) + "\r\n").encode("utf-8")


_UNSAFE_CHARS = re.compile(r'[/\\<>:"\'|?*\s\x00-\x1f]+')
_RESERVED_NAMES = {"CON", "PRN", "AUX", "NUL"} | {f"COM{i}" for i in range(1, 10)} | {f"LPT{i}" for i in range(1, 10)}


def safe_filename(name: str, default: str = "calendar") -> str:
    """
    Make name usable as a file name on Windows, macOS and Linux.
    """
    cleaned = _UNSAFE_CHARS.sub("_", name.strip()).strip("._")
    if not cleaned:
        cleaned = default
    if cleaned.upper() in _RESERVED_NAMES:
        cleaned = f"{cleaned}_"
    return cleaned[:100]
