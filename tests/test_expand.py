"""
Unit tests for recurrence expansion.

Expansion contract:
- one recurring event per session, anchored on the first matching weekday
- occurrences = floor((term_end - anchor) / 7) + 1 (or none)
- excluded occurrences become exception dates, the anchor is never moved
"""

import unittest
from datetime import date, datetime, time, timedelta

from pastecal.expand import anchor_date, expand_session, expand_sessions, weekly_dates
from pastecal.model import CourseSession, ExclusionRange, SessionType, Weekday


def make_session(
    day: Weekday = Weekday.TUESDAY,
    term_start: date = date(2024, 9, 3),
    term_end: date = date(2024, 12, 3),
) -> CourseSession:
    return CourseSession(
        course_code="CSCI 1060U",
        title="Programming Workshop I",
        session_type=SessionType.LECTURE,
        day=day,
        start_time=time(10, 0),
        end_time=time(11, 30),
        location="Science Building - UA 1350",
        term_start=term_start,
        term_end=term_end,
        schedule_type="Lecture",
        campus="North Oshawa",
        crn="40123",
    )


class TestAnchor(unittest.TestCase):
    def test_same_day(self) -> None:
        self.assertEqual(anchor_date(date(2024, 9, 3), Weekday.TUESDAY), date(2024, 9, 3))

    def test_later_in_week(self) -> None:
        self.assertEqual(anchor_date(date(2024, 9, 3), Weekday.FRIDAY), date(2024, 9, 6))

    def test_wraps_to_next_week(self) -> None:
        self.assertEqual(anchor_date(date(2024, 9, 3), Weekday.MONDAY), date(2024, 9, 9))

    def test_weekly_dates_empty_when_anchor_after_end(self) -> None:
        self.assertEqual(weekly_dates(date(2024, 9, 9), date(2024, 9, 8)), [])


class TestExpandSession(unittest.TestCase):
    def test_reading_week_example(self) -> None:
        ev = expand_session(make_session(), [ExclusionRange(date(2024, 10, 21), date(2024, 10, 25))])
        self.assertEqual(len(ev.occurrences), 14)
        self.assertEqual(ev.exception_dates, (date(2024, 10, 22),))
        self.assertEqual(len(ev.visible_dates()), 13)
        self.assertEqual(ev.start, datetime(2024, 9, 3, 10, 0))
        self.assertEqual(ev.end, datetime(2024, 9, 3, 11, 30))
        self.assertEqual(ev.until, date(2024, 12, 3))

    def test_occurrence_count_formula(self) -> None:
        term_start = date(2024, 9, 1)
        for length in range(0, 60, 5):
            for day in Weekday:
                term_end = term_start + timedelta(days=length)
                with self.subTest(length=length, day=day):
                    ev = expand_session(make_session(day, term_start, term_end))
                    anchor = anchor_date(term_start, day)
                    expected = (term_end - anchor).days // 7 + 1 if anchor <= term_end else 0
                    self.assertEqual(len(ev.occurrences), expected)
                    self.assertEqual(ev.exception_dates, ())

    def test_exclusion_covering_everything(self) -> None:
        ev = expand_session(make_session(), [ExclusionRange(date(2024, 1, 1), date(2024, 12, 31))])
        self.assertEqual(ev.exception_dates, ev.occurrences)
        self.assertEqual(ev.visible_dates(), [])

    def test_excluded_anchor_is_not_shifted(self) -> None:
        ev = expand_session(make_session(), [ExclusionRange(date(2024, 9, 3), date(2024, 9, 3))])
        self.assertEqual(ev.start.date(), date(2024, 9, 3))
        self.assertEqual(ev.exception_dates, (date(2024, 9, 3),))
        self.assertEqual(len(ev.visible_dates()), 13)

    def test_exclusion_outside_term_ignored(self) -> None:
        ev = expand_session(make_session(), [ExclusionRange(date(2025, 1, 1), date(2025, 1, 10))])
        self.assertEqual(ev.exception_dates, ())

    def test_exclusion_on_other_weekday_ignored(self) -> None:
        ev = expand_session(make_session(), [ExclusionRange(date(2024, 10, 14), date(2024, 10, 14))])
        self.assertEqual(ev.exception_dates, ())

    def test_zero_length_term_without_matching_day(self) -> None:
        ev = expand_session(make_session(Weekday.MONDAY, date(2024, 9, 3), date(2024, 9, 3)))
        self.assertEqual(ev.occurrences, ())
        self.assertEqual(ev.visible_dates(), [])

    def test_event_content(self) -> None:
        ev = expand_session(make_session())
        self.assertEqual(ev.summary, "CSCI 1060U Programming Workshop I (Lecture)")
        self.assertEqual(ev.location, "Science Building - UA 1350")
        self.assertIn("Campus: North Oshawa", ev.description)
        self.assertIn("CRN: 40123", ev.description)
        self.assertEqual(ev.uid_seed, "CSCI 1060U|TUESDAY|1000")

    def test_expand_sessions_keeps_order(self) -> None:
        sessions = [make_session(Weekday.THURSDAY), make_session(Weekday.MONDAY)]
        events = expand_sessions(sessions, [])
        self.assertEqual([e.start.date() for e in events], [date(2024, 9, 5), date(2024, 9, 9)])


if __name__ == "__main__":
    unittest.main()
