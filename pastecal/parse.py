"""
Parsing (pasted schedule text -> CourseSession records).

The input is the text a student gets by selecting the whole "Class Schedule"
page in a browser and copying it. For every registered course the page shows:

    Programming Workshop I | Computer Science 1060U Section 001 | ...
    Registered
    Associated Term: Fall 2024 | CRN: 40123 | Schedule Type: Lecture | ...
    09/03/2024 -- 12/03/2024 Tuesday
    S
    M
    ...
    10:00 AM - 11:30 AM Type: Class Location: North Oshawa Building: Science Building Room: UA 1350
    Jane Doe (Primary)
    CRN: 40123

The parser walks these lines with a small state machine. The state is the
field it expects next; any line that fits no marker allowed in that state
stops the parse with MalformedRecord naming the line. In practice this
happens when the detail rows were not expanded before copying.

Important rules:
- 1 meeting block = 1 CourseSession
- duplicate records are kept (cross-listed sections may look identical)
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import Iterable, Iterator, Optional, Union

from pastecal.config import ParserConfig
from pastecal.errors import EmptyInput, MalformedRecord
from pastecal.lines import Line, ScheduleLines, as_lines
from pastecal.model import CourseSession, SessionType, Weekday


# ---------------------------------------------------------------------------
# Expected fields (parser states)
# ---------------------------------------------------------------------------


class Expect(Enum):
    """
    What the parser expects next. The value is used in error messages.
    """

    PRELUDE = "the 'Class Schedule for ...' heading"
    HEADER = "a course line like 'Course Title | Subject 1234U Section 001'"
    MESSAGE = "the line containing '| Schedule Type: ... |'"
    MEETING = "a date range line like '09/03/2024 -- 12/03/2024 Tuesday', the instructor or 'CRN: 12345'"
    WEEKDAY = "a weekday line like 'Tuesday' or 'None'"
    TIME = "a time line like '10:00 AM - 11:30 AM Type: Class Location: ... Building: ... Room: ...'"
    CRN = "a line like 'CRN: 12345'"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_CLOCK_12H = re.compile(r"^(?P<h>\d{1,2}):(?P<m>\d{2})\s*(?P<ampm>[AaPp])\.?[Mm]\.?$")
_CLOCK_24H = re.compile(r"^(?P<h>\d{2}):(?P<m>\d{2})$")


def parse_clock(token: str) -> time:
    """
    Parse a wall-clock time as it appears on the page.

    Accepts "10:00 AM" / "1:30 pm" (12-hour) and "09:00" / "14:30" (24-hour).
    A one-digit hour without AM/PM ("9:00") is ambiguous and rejected.
    Raises ValueError.
    """
    raw = token.strip()

    m = _CLOCK_12H.match(raw)
    if m:
        hour = int(m.group("h"))
        minute = int(m.group("m"))
        if not (1 <= hour <= 12 and 0 <= minute <= 59):
            raise ValueError(f"Invalid 12-hour time: {token!r}")
        hour = hour % 12
        if m.group("ampm").lower() == "p":
            hour += 12
        return time(hour, minute)

    m = _CLOCK_24H.match(raw)
    if m:
        hour = int(m.group("h"))
        minute = int(m.group("m"))
        if not (0 <= hour <= 23 and 0 <= minute <= 59):
            raise ValueError(f"Invalid 24-hour time: {token!r}")
        return time(hour, minute)

    if re.match(r"^\d:\d{2}$", raw):
        raise ValueError(f"Ambiguous time without AM/PM: {token!r}")
    raise ValueError(f"Invalid time format: {token!r}")


def parse_page_date(token: str, date_format: str) -> date:
    """
    Parse a date token in the page's format. Raises ValueError.
    """
    return datetime.strptime(token.strip(), date_format).date()


@dataclass
class _Meeting:
    line: Line
    term_start: date
    term_end: date
    day: Optional[Weekday] = None
    unscheduled: bool = False
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    campus: str = ""
    building: str = ""
    room: str = ""


@dataclass
class _Draft:
    """
    A course record while it is being read.
    """

    header: Line
    title: str
    subject: str
    code_number: str
    schedule_type: str = ""
    meetings: list[_Meeting] = field(default_factory=list)
    instructor: str = ""


class _Patterns:
    def __init__(self, config: ParserConfig) -> None:
        p = config.patterns
        self.prelude_end = re.compile(p["prelude_end"])
        self.course_summary = re.compile(p["course_summary"])
        self.course_header = re.compile(p["course_header"])
        self.status = re.compile(p["status"], re.IGNORECASE)
        self.message = re.compile(p["message"])
        self.date_range = re.compile(p["date_range"])
        self.weekday = re.compile(p["weekday"], re.IGNORECASE)
        self.day_abbreviation = re.compile(p["day_abbreviation"])
        self.time = re.compile(p["time"])
        self.crn = re.compile(p["crn"])


# ---------------------------------------------------------------------------
# State machine (CORE LOGIC)
# ---------------------------------------------------------------------------


class ScheduleParser:
    """
    Turns tokenized lines into CourseSession records.

    A parser instance keeps no state between parse() calls; every call starts
    from scratch.
    """

    def __init__(self, config: Optional[ParserConfig] = None) -> None:
        self.config = config or ParserConfig()
        self.patterns = _Patterns(self.config)

    def parse(self, source: Union[str, Iterable[str], ScheduleLines]) -> list[CourseSession]:
        lines = as_lines(source)
        sessions = list(self.iter_sessions(lines))
        if not sessions:
            raise EmptyInput("No classes found in the pasted schedule")
        return sessions

    def iter_sessions(self, lines: ScheduleLines) -> Iterator[CourseSession]:
        pat = self.patterns

        # Look ahead once: when the page heading is present, everything above
        # it is prelude (the summary table, navigation, ...).
        has_prelude = any(pat.prelude_end.search(line.text) for line in lines)
        state = Expect.PRELUDE if has_prelude else Expect.HEADER

        crn_subjects: dict[str, str] = {}
        draft: Optional[_Draft] = None
        meeting: Optional[_Meeting] = None
        records_done = 0
        previous: Optional[Line] = None

        for line in lines:
            text = line.text

            if state is Expect.PRELUDE:
                m = pat.course_summary.search(text)
                if m:
                    crn_subjects[m.group("crn")] = m.group("subject")
                if pat.prelude_end.search(text):
                    state = Expect.HEADER

            elif state is Expect.HEADER:
                m = pat.course_header.search(text)
                if m:
                    draft = _Draft(
                        header=line,
                        title=m.group("name").strip(),
                        subject=m.group("subject").strip(),
                        code_number=m.group("code").strip(),
                    )
                    state = Expect.MESSAGE
                elif records_done and previous is not None and line.number > previous.number + 1:
                    # blank line after the last course: rest of the page
                    break
                else:
                    raise MalformedRecord(f"Expected {state.value}", line=text, position=line.number)

            elif state is Expect.MESSAGE:
                assert draft is not None
                m = pat.message.search(text)
                if m:
                    draft.schedule_type = m.group("class_type").strip()
                    state = Expect.MEETING
                elif pat.status.search(text) and previous is draft.header:
                    # registration status between header and message line
                    pass
                else:
                    raise MalformedRecord(f"Expected {state.value}", line=text, position=line.number)

            elif state is Expect.MEETING:
                assert draft is not None
                m = pat.date_range.search(text)
                crn_m = None if m else pat.crn.search(text)
                if m:
                    meeting = self._start_meeting(line, m)
                    draft.meetings.append(meeting)
                    weekday = m.group("weekday")
                    if weekday:
                        self._set_weekday(meeting, weekday, line)
                        state = Expect.TIME
                    else:
                        state = Expect.WEEKDAY
                elif crn_m:
                    yield from self._finish(draft, crn_m.group("crn"), crn_subjects)
                    records_done += 1
                    draft = None
                    state = Expect.HEADER
                elif pat.course_header.search(text) or pat.message.search(text) or pat.time.search(text):
                    # another record's marker can never be the instructor
                    raise MalformedRecord(f"Expected {state.value}", line=text, position=line.number)
                else:
                    draft.instructor = text
                    state = Expect.CRN

            elif state is Expect.WEEKDAY:
                assert meeting is not None
                m = pat.weekday.search(text)
                if not m:
                    raise MalformedRecord(f"Expected {state.value}", line=text, position=line.number)
                self._set_weekday(meeting, m.group("weekday"), line)
                state = Expect.TIME

            elif state is Expect.TIME:
                assert meeting is not None
                if pat.day_abbreviation.search(text):
                    pass
                else:
                    m = pat.time.search(text)
                    if not m:
                        raise MalformedRecord(f"Expected {state.value}", line=text, position=line.number)
                    self._set_time(meeting, m, line)
                    state = Expect.MEETING

            elif state is Expect.CRN:
                assert draft is not None
                m = pat.crn.search(text)
                if not m:
                    raise MalformedRecord(f"Expected {state.value}", line=text, position=line.number)
                yield from self._finish(draft, m.group("crn"), crn_subjects)
                records_done += 1
                draft = None
                state = Expect.HEADER

            previous = line

        if state not in (Expect.HEADER, Expect.PRELUDE) and previous is not None:
            raise MalformedRecord(
                f"The schedule ended in the middle of a course, expected {state.value}",
                line=previous.text,
                position=previous.number,
            )

    # -----------------------------------------------------------------------
    # Field handlers
    # -----------------------------------------------------------------------

    def _start_meeting(self, line: Line, m: re.Match) -> _Meeting:
        fmt = self.config.date_format
        try:
            term_start = parse_page_date(m.group("start"), fmt)
            term_end = parse_page_date(m.group("end"), fmt)
        except ValueError:
            raise MalformedRecord(f"Dates do not match the format {fmt}", line=line.text, position=line.number)
        if term_start > term_end:
            raise MalformedRecord("The date range ends before it starts", line=line.text, position=line.number)
        return _Meeting(line=line, term_start=term_start, term_end=term_end)

    @staticmethod
    def _set_weekday(meeting: _Meeting, name: str, line: Line) -> None:
        if name.strip().lower() == "none":
            meeting.unscheduled = True
            return
        try:
            meeting.day = Weekday.parse(name)
        except ValueError:
            raise MalformedRecord(f"Unknown weekday {name!r}", line=line.text, position=line.number)

    @staticmethod
    def _set_time(meeting: _Meeting, m: re.Match, line: Line) -> None:
        meeting.campus = m.group("location").strip()
        meeting.building = m.group("building").strip()
        meeting.room = m.group("room").strip()

        start_s, end_s = m.group("start"), m.group("end")
        if not (start_s and end_s):
            if meeting.unscheduled:
                return
            raise MalformedRecord("Missing start and end time", line=line.text, position=line.number)

        try:
            meeting.start_time = parse_clock(start_s)
            meeting.end_time = parse_clock(end_s)
        except ValueError as exc:
            raise MalformedRecord(str(exc), line=line.text, position=line.number)
        if meeting.start_time >= meeting.end_time:
            raise MalformedRecord("The class ends before it starts", line=line.text, position=line.number)

    def _course_code(self, draft: _Draft, crn: str, crn_subjects: dict[str, str]) -> str:
        short = self.config.subjects.get(draft.subject) or crn_subjects.get(crn)
        if not short:
            raise MalformedRecord(
                f"Unknown subject {draft.subject!r}, add its short code to the 'subjects' config",
                line=draft.header.text,
                position=draft.header.number,
            )
        return f"{short} {draft.code_number}"

    def _finish(self, draft: _Draft, crn: str, crn_subjects: dict[str, str]) -> Iterator[CourseSession]:
        code = self._course_code(draft, crn, crn_subjects)
        session_type = SessionType.from_label(draft.schedule_type)

        for meeting in draft.meetings:
            if meeting.unscheduled:
                continue
            assert meeting.day is not None
            assert meeting.start_time is not None and meeting.end_time is not None
            yield CourseSession(
                course_code=code,
                title=draft.title,
                session_type=session_type,
                day=meeting.day,
                start_time=meeting.start_time,
                end_time=meeting.end_time,
                location=f"{meeting.building} - {meeting.room}",
                term_start=meeting.term_start,
                term_end=meeting.term_end,
                schedule_type=draft.schedule_type,
                campus=meeting.campus,
                building=meeting.building,
                room=meeting.room,
                crn=crn,
                instructor=draft.instructor,
                line_no=draft.header.number,
            )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_schedule(
    source: Union[str, Iterable[str], ScheduleLines],
    config: Optional[ParserConfig] = None,
) -> list[CourseSession]:
    """
    Parse pasted schedule text into CourseSession records (page order).

    Raises MalformedRecord at the first line that does not fit the layout,
    EmptyInput if the text contains no scheduled classes.
    """
    return ScheduleParser(config).parse(source)
