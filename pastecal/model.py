"""
Central data model definitions used across the project.

This module defines the canonical structure of the objects passed between
the pipeline stages so that:
- parser, expander and serializer share the same field names
- invariants are checked once, when an object is created
- nothing is mutated after creation (all dataclasses are frozen)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum, IntEnum
from typing import Optional, Tuple


class Weekday(IntEnum):
    """
    Day of the week, numbered like date.weekday() (Monday == 0).
    """

    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @classmethod
    def parse(cls, name: str) -> "Weekday":
        """
        Accepts full English names and three-letter abbreviations ("Tue").
        Raises ValueError for anything else.
        """
        key = name.strip().upper()
        for day in cls:
            if key == day.name or (len(key) == 3 and day.name.startswith(key)):
                return day
        raise ValueError(f"Unknown weekday: {name!r}")

    @property
    def short(self) -> str:
        return self.name[:3].title()


class SessionType(Enum):
    LECTURE = "Lecture"
    LAB = "Lab"
    TUTORIAL = "Tutorial"
    SEMINAR = "Seminar"
    OTHER = "Other"

    @classmethod
    def from_label(cls, label: str) -> "SessionType":
        """
        Map the page's "Schedule Type" label to a session type.
        """
        key = label.strip().lower()
        if key.startswith("lec"):
            return cls.LECTURE
        if key.startswith("lab"):
            return cls.LAB
        if key.startswith("tut"):
            return cls.TUTORIAL
        if key.startswith("sem"):
            return cls.SEMINAR
        return cls.OTHER


@dataclass(frozen=True)
class CourseSession:
    """
    One weekly meeting of a course, bounded by its term dates.

    Each CourseSession corresponds to exactly one meeting block of the pasted
    "Class Schedule" page.
    """

    course_code: str
    title: str
    session_type: SessionType
    day: Weekday
    start_time: time
    end_time: time
    location: str
    term_start: date
    term_end: date
    schedule_type: str = ""
    campus: str = ""
    building: str = ""
    room: str = ""
    crn: str = ""
    instructor: str = ""
    line_no: int = 0

    def __post_init__(self) -> None:
        if self.start_time >= self.end_time:
            raise ValueError(f"start_time {self.start_time} is not before end_time {self.end_time}")
        if self.term_start > self.term_end:
            raise ValueError(f"term_start {self.term_start} is after term_end {self.term_end}")


@dataclass(frozen=True)
class ExclusionRange:
    """
    Inclusive date interval during which no class takes place (e.g. reading week).
    """

    from_date: date
    to_date: date

    def __post_init__(self) -> None:
        if self.from_date > self.to_date:
            raise ValueError(f"from_date {self.from_date} is after to_date {self.to_date}")

    def contains(self, day: date) -> bool:
        return self.from_date <= day <= self.to_date

    def clip(self, start: date, end: date) -> Optional["ExclusionRange"]:
        """
        Intersect with [start, end]. Returns None when they do not overlap.
        """
        lo = max(self.from_date, start)
        hi = min(self.to_date, end)
        if lo > hi:
            return None
        return ExclusionRange(lo, hi)


@dataclass(frozen=True)
class CalendarEvent:
    """
    One recurring calendar series produced from one CourseSession.

    start/end are naive local datetimes of the anchor occurrence; the
    timezone is applied by the serializer. until is None for an event
    without a recurrence rule.
    """

    uid_seed: str
    summary: str
    location: str
    description: str
    start: datetime
    end: datetime
    until: Optional[date]
    occurrences: Tuple[date, ...] = ()
    exception_dates: Tuple[date, ...] = ()
    course_code: str = ""
    schedule_type: str = ""

    def visible_dates(self) -> list[date]:
        excluded = set(self.exception_dates)
        return [d for d in self.occurrences if d not in excluded]


@dataclass(frozen=True)
class CalendarFile:
    """
    Serialized output for one logical grouping of events.
    """

    name: str
    content: bytes
    events: Tuple[CalendarEvent, ...] = field(default_factory=tuple)
