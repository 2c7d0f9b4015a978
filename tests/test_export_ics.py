"""
Unit tests for the iCalendar serializer.

Checks the wire format (CRLF, folding, escaping, UNTIL in UTC, EXDATE),
deterministic output, and that the files read back with independent
parsers (icalendar, python-dateutil) to the same occurrences.
"""

import re
import unittest
from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

from dateutil.rrule import rrulestr
from icalendar import Calendar

from pastecal.config import CalendarConfig
from pastecal.expand import expand_session
from pastecal.export_ics import (
    fold_line,
    make_uid,
    safe_filename,
    serialize_calendar,
    vtimezone_lines,
    zone_transitions,
)
from pastecal.model import CourseSession, ExclusionRange, SessionType, Weekday


def make_session(day: Weekday = Weekday.TUESDAY, term_end: date = date(2024, 12, 3), title: str = "Programming Workshop I") -> CourseSession:
    return CourseSession(
        course_code="CSCI 1060U",
        title=title,
        session_type=SessionType.LECTURE,
        day=day,
        start_time=time(10, 0),
        end_time=time(11, 30),
        location="Science Building - UA 1350",
        term_start=date(2024, 9, 3),
        term_end=term_end,
        schedule_type="Lecture",
    )


READING_WEEK = [ExclusionRange(date(2024, 10, 21), date(2024, 10, 25))]


def occurrence_sets(content: bytes) -> list[set[date]]:
    """
    Re-read DTSTART/RRULE/EXDATE of every VEVENT with dateutil.
    """
    text = content.decode("utf-8").replace("\r\n ", "")
    out = []
    for block in text.split("BEGIN:VEVENT")[1:]:
        body = block.split("END:VEVENT")[0]
        wanted = [line for line in body.split("\r\n") if line.startswith(("DTSTART", "RRULE", "EXDATE"))]
        rules = rrulestr("\n".join(wanted), forceset=True)
        out.append({dt.date() for dt in rules})
    return out


class TestFolding(unittest.TestCase):
    def test_short_line_untouched(self) -> None:
        self.assertEqual(fold_line("SUMMARY:short"), "SUMMARY:short")

    def test_long_ascii_line(self) -> None:
        line = "DESCRIPTION:" + "x" * 200
        folded = fold_line(line)
        parts = folded.split("\r\n")
        self.assertEqual(len(parts[0].encode("utf-8")), 75)
        for part in parts[1:]:
            self.assertTrue(part.startswith(" "))
            self.assertLessEqual(len(part.encode("utf-8")), 75)
        self.assertEqual(folded.replace("\r\n ", ""), line)

    def test_multibyte_characters_not_split(self) -> None:
        line = "SUMMARY:" + "é" * 80
        folded = fold_line(line)
        for part in folded.split("\r\n"):
            self.assertLessEqual(len(part.encode("utf-8")), 75)
            part.encode("utf-8").decode("utf-8")
        self.assertEqual(folded.replace("\r\n ", ""), line)


class TestSerialize(unittest.TestCase):
    def test_wire_format(self) -> None:
        ev = expand_session(make_session(), READING_WEEK)
        content = serialize_calendar([ev])
        text = content.decode("utf-8")

        self.assertTrue(text.startswith("BEGIN:VCALENDAR\r\nVERSION:2.0\r\n"))
        self.assertTrue(text.endswith("END:VCALENDAR\r\n"))
        self.assertNotIn("\n", text.replace("\r\n", ""))
        self.assertIn("BEGIN:VTIMEZONE\r\nTZID:America/Toronto\r\n", text)
        self.assertIn("DTSTART;TZID=America/Toronto:20240903T100000\r\n", text)
        self.assertIn("DTEND;TZID=America/Toronto:20240903T113000\r\n", text)
        # 2024-12-03 23:59:59 EST == 2024-12-04 04:59:59 UTC
        self.assertIn("RRULE:FREQ=WEEKLY;UNTIL=20241204T045959Z\r\n", text)
        self.assertIn("EXDATE;TZID=America/Toronto:20241022T100000\r\n", text)
        self.assertIn("SUMMARY:CSCI 1060U Programming Workshop I (Lecture)\r\n", text)
        for line in text.split("\r\n"):
            self.assertLessEqual(len(line.encode("utf-8")), 75)

    def test_no_exdate_without_exclusions(self) -> None:
        text = serialize_calendar([expand_session(make_session())]).decode("utf-8")
        self.assertNotIn("EXDATE", text)

    def test_text_escaping(self) -> None:
        ev = expand_session(make_session(title="Law, Ethics; and \\ Society"))
        text = serialize_calendar([ev]).decode("utf-8").replace("\r\n ", "")
        self.assertIn(r"SUMMARY:CSCI 1060U Law\, Ethics\; and \\ Society (Lecture)", text)

    def test_round_trip_occurrences(self) -> None:
        events = [
            expand_session(make_session(Weekday.TUESDAY), READING_WEEK),
            expand_session(make_session(Weekday.FRIDAY), READING_WEEK),
            expand_session(make_session(Weekday.MONDAY), [ExclusionRange(date(2024, 9, 1), date(2024, 9, 30))]),
        ]
        parsed = occurrence_sets(serialize_calendar(events))
        self.assertEqual(parsed, [set(ev.visible_dates()) for ev in events])
        self.assertEqual(len(parsed[0]), 13)

    def test_zero_occurrence_event_serializes_empty(self) -> None:
        ev = expand_session(
            CourseSession(
                course_code="CSCI 1060U",
                title="Programming Workshop I",
                session_type=SessionType.LECTURE,
                day=Weekday.MONDAY,
                start_time=time(10, 0),
                end_time=time(11, 30),
                location="",
                term_start=date(2024, 9, 3),
                term_end=date(2024, 9, 3),
            )
        )
        content = serialize_calendar([ev])
        self.assertEqual(occurrence_sets(content), [set()])

    def test_fully_excluded_event_has_no_visible_occurrence(self) -> None:
        ev = expand_session(make_session(), [ExclusionRange(date(2024, 9, 1), date(2024, 12, 31))])
        self.assertEqual(occurrence_sets(serialize_calendar([ev])), [set()])

    def test_readable_by_icalendar(self) -> None:
        events = [expand_session(make_session(), READING_WEEK), expand_session(make_session(Weekday.THURSDAY))]
        cal = Calendar.from_ical(serialize_calendar(events))
        vevents = cal.walk("VEVENT")
        self.assertEqual(len(vevents), 2)

        first = vevents[0]
        self.assertEqual(str(first.get("summary")), "CSCI 1060U Programming Workshop I (Lecture)")
        self.assertEqual(first.decoded("dtstart").replace(tzinfo=None), datetime(2024, 9, 3, 10, 0))
        self.assertEqual(first.get("rrule")["FREQ"], ["WEEKLY"])
        self.assertNotEqual(str(vevents[0].get("uid")), str(vevents[1].get("uid")))

    def test_deterministic(self) -> None:
        events = [expand_session(make_session(), READING_WEEK)]
        self.assertEqual(serialize_calendar(events), serialize_calendar(list(events)))

    def test_duplicate_sessions_get_distinct_stable_uids(self) -> None:
        ev = expand_session(make_session())
        text = serialize_calendar([ev, ev]).decode("utf-8")
        uids = [line for line in text.split("\r\n") if line.startswith("UID:")]
        self.assertEqual(len(set(uids)), 2)
        self.assertEqual(uids[0], f"UID:{make_uid(ev.uid_seed, 1, 'pastecal')}")
        self.assertEqual(uids[1], f"UID:{make_uid(ev.uid_seed, 2, 'pastecal')}")
    def test_configured_timezone_and_dtstamp(self) -> None:
        cfg = CalendarConfig(timezone="Europe/Warsaw", dtstamp=datetime(2024, 8, 1, 12, 0))
        text = serialize_calendar([expand_session(make_session())], cfg).decode("utf-8")
        self.assertIn("DTSTART;TZID=Europe/Warsaw:20240903T100000", text)
        self.assertIn("DTSTAMP:20240801T120000Z", text)
        # 2024-12-03 23:59:59 CET == 22:59:59 UTC
        self.assertIn("UNTIL=20241203T225959Z", text)

    def test_generated_vtimezone(self) -> None:
        cfg = CalendarConfig(timezone="Europe/Warsaw")
        text = serialize_calendar([expand_session(make_session())], cfg).decode("utf-8")
        self.assertEqual(text.count("BEGIN:VTIMEZONE\r\nTZID:Europe/Warsaw\r\n"), 1)
        # 2024 transitions: 03-31 02:00 CET -> CEST, 10-27 03:00 CEST -> CET
        self.assertIn(
            "BEGIN:DAYLIGHT\r\nTZNAME:CEST\r\nTZOFFSETFROM:+0100\r\nTZOFFSETTO:+0200\r\nDTSTART:20240331T020000\r\n",
            text,
        )
        self.assertIn(
            "BEGIN:STANDARD\r\nTZNAME:CET\r\nTZOFFSETFROM:+0200\r\nTZOFFSETTO:+0100\r\nDTSTART:20241027T030000\r\n",
            text,
        )
        self.assertEqual(occurrence_sets(text.encode("utf-8")), [set(expand_session(make_session()).visible_dates())])

    def test_every_tzid_has_a_vtimezone(self) -> None:
        for zone in ("America/Toronto", "Europe/Warsaw", "Asia/Tokyo", "Australia/Sydney", "UTC"):
            with self.subTest(zone=zone):
                text = serialize_calendar(
                    [expand_session(make_session(), READING_WEEK)], CalendarConfig(timezone=zone)
                ).decode("utf-8")
                referenced = set(re.findall(r";TZID=([^:;]+)[:;]", text))
                defined = set(re.findall(r"\r\nTZID:([^\r]+)\r\n", text))
                self.assertEqual(referenced, {zone})
                self.assertEqual(defined, {zone})
                cal = Calendar.from_ical(text)
                self.assertEqual(len(cal.walk("VTIMEZONE")), 1)

    def test_zone_without_transitions(self) -> None:
        self.assertEqual(zone_transitions(ZoneInfo("Asia/Tokyo"), 2024, 2025), [])
        lines = vtimezone_lines("Asia/Tokyo", 2024, 2024)
        self.assertEqual(
            lines,
            [
                "BEGIN:VTIMEZONE",
                "TZID:Asia/Tokyo",
                "X-LIC-LOCATION:Asia/Tokyo",
                "BEGIN:STANDARD",
                "TZNAME:JST",
                "TZOFFSETFROM:+0900",
                "TZOFFSETTO:+0900",
                "DTSTART:19700101T000000",
                "END:STANDARD",
                "END:VTIMEZONE",
            ],
        )

    def test_southern_hemisphere_transitions(self) -> None:
        found = zone_transitions(ZoneInfo("Australia/Sydney"), 2024, 2024)
        # 2024-04-07 03:00 AEDT and 2024-10-06 02:00 AEST, in UTC
        self.assertEqual(
            found,
            [datetime(2024, 4, 6, 16, 0, tzinfo=timezone.utc), datetime(2024, 10, 5, 16, 0, tzinfo=timezone.utc)],
        )


class TestFiles(unittest.TestCase):
    def test_safe_filename(self) -> None:
        self.assertEqual(safe_filename("CSCI 1060U"), "CSCI_1060U")
        self.assertEqual(safe_filename('a/b\\c:d*e?"f<g>|'), "a_b_c_d_e_f_g")
        self.assertEqual(safe_filename("..."), "calendar")
        self.assertEqual(safe_filename("CON"), "CON_")

    def test_uids_supplied_by_caller(self) -> None:
        ev = expand_session(make_session())
        text = serialize_calendar([ev], uids=["fixed@example"]).decode("utf-8")
        self.assertIn("UID:fixed@example\r\n", text)
        with self.assertRaises(ValueError):
            serialize_calendar([ev], uids=[])


if __name__ == "__main__":
    unittest.main()
