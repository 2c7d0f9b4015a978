"""
Recurrence expansion.

Every CourseSession becomes ONE weekly recurring CalendarEvent between the
term start and term end. Occurrences that fall on excluded days stay part of
the series and are listed as exception dates, so calendar apps show them as
skipped instead of splitting the series into fragments.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Iterable, Sequence

from pastecal.model import CalendarEvent, CourseSession, ExclusionRange, Weekday


def anchor_date(term_start: date, day: Weekday) -> date:
    """
    First date on or after term_start that falls on day.
    """
    days_ahead = (int(day) - term_start.weekday()) % 7
    return term_start + timedelta(days=days_ahead)


def weekly_dates(anchor: date, until: date) -> list[date]:
    """
    anchor, anchor + 7, ... up to and including until. Empty if anchor > until.
    """
    out: list[date] = []
    current = anchor
    while current <= until:
        out.append(current)
        current += timedelta(days=7)
    return out


def excluded_dates(
    occurrences: Sequence[date], exclusions: Iterable[ExclusionRange], term_start: date, term_end: date
) -> list[date]:
    """
    Occurrences covered by any exclusion clipped to the term span.
    """
    clipped = [r for r in (ex.clip(term_start, term_end) for ex in exclusions) if r is not None]
    return [d for d in occurrences if any(r.contains(d) for r in clipped)]


def _summary(session: CourseSession) -> str:
    summary = f"{session.course_code} {session.title}".strip()
    if session.schedule_type:
        summary = f"{summary} ({session.schedule_type})"
    return summary


def _description(session: CourseSession) -> str:
    parts = []
    if session.campus:
        parts.append(f"Campus: {session.campus}")
    parts.append(f"Code: {session.course_code}")
    if session.crn:
        parts.append(f"CRN: {session.crn}")
    if session.instructor:
        parts.append(f"Instructor: {session.instructor}")
    return "\n".join(parts)


def expand_session(session: CourseSession, exclusions: Iterable[ExclusionRange] = ()) -> CalendarEvent:
    """
    Build the recurring event for one session.

    The anchor (first matching weekday) is never moved, even when it is
    excluded; it simply becomes an exception date.
    """
    anchor = anchor_date(session.term_start, session.day)
    occurrences = weekly_dates(anchor, session.term_end)
    skipped = excluded_dates(occurrences, exclusions, session.term_start, session.term_end)

    return CalendarEvent(
        uid_seed=f"{session.course_code}|{session.day.name}|{session.start_time:%H%M}",
        summary=_summary(session),
        location=session.location,
        description=_description(session),
        start=datetime.combine(anchor, session.start_time),
        end=datetime.combine(anchor, session.end_time),
        until=session.term_end,
        occurrences=tuple(occurrences),
        exception_dates=tuple(skipped),
        course_code=session.course_code,
        schedule_type=session.schedule_type or session.session_type.value,
    )


def expand_sessions(
    sessions: Iterable[CourseSession], exclusions: Iterable[ExclusionRange] = ()
) -> list[CalendarEvent]:
    """
    Expand all sessions, keeping their order.
    """
    ranges = list(exclusions)
    return [expand_session(s, ranges) for s in sessions]
