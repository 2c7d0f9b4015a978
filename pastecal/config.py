"""
Configuration.

Everything that used to be a hidden global (timezone, layout patterns,
subject codes, output grouping) is an explicit value here and is passed
into the parser and serializer.

A config file is optional. It is a JSON document with two sections:

    {
      "parser":   {"date_format": "%m/%d/%Y", "subjects": {"Biology": "BIOL"}},
      "calendar": {"timezone": "America/Toronto", "grouping": "course"}
    }

Unknown keys are rejected so typos do not silently fall back to defaults.
"""

from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass, field, fields, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pastecal.errors import ConfigError


GROUPINGS = ("combined", "course", "type")

DEFAULT_TIMEZONE = "America/Toronto"

# Long subject names as shown on the class schedule page -> short code
DEFAULT_SUBJECTS: dict[str, str] = {
    "Academic Learning and Success": "ALSU",
    "Biology": "BIOL",
    "Business": "BUSI",
    "Chemistry": "CHEM",
    "Communications": "COMM",
    "Computer Science": "CSCI",
    "Criminology and Justice": "CRMN",
    "Curriculum Studies": "CURS",
    "Economics": "ECON",
    "Education": "EDUC",
    "Educational Studies and Digital Technology": "AEDT",
    "Electrical Engineering": "ELEE",
    "Energy Systems and Nuclear Science": "ESNS",
    "Engineering": "ENGR",
    "Environmental Science": "ENVS",
    "Forensic Science": "FSCI",
    "Health Science": "HLSC",
    "Indigenous Studies": "INDG",
    "Information Technology": "INFR",
    "Integrated Mathematics and Computer Science": "IMCS",
    "Kinesiology": "KINE",
    "Legal Studies": "LGLS",
    "Liberal Studies": "LBAT",
    "Manufacturing Engineering": "MANE",
    "Mathematics": "MATH",
    "Mechanical Engineering": "MECE",
    "Mechatronics Engineering": "METE",
    "Medical Laboratory Science": "MLSC",
    "Neuroscience": "NSCI",
    "Nuclear": "NUCL",
    "Nursing": "NURS",
    "Physics": "PHY",
    "Political Science": "POSC",
    "Psychology": "PSYC",
    "Radiation Science": "RADI",
    "Science": "SCIE",
    "Science Co-op": "SCCO",
    "Science Co-op Work Term": "SCCO",
    "Social Science": "SSCI",
    "Sociology": "SOCI",
    "Software Engineering": "SOFE",
    "Statistics": "STAT",
    "Sustainable Energy Systems": "ENSY",
}

TIME_TOKEN = r"\d{1,2}:\d{2}(?:\s*[AaPp]\.?[Mm]\.?)?"

DEFAULT_PATTERNS: dict[str, str] = {
    "prelude_end": r"^Class Schedule for ",
    "course_summary": r"^.+?\t(?P<subject>[A-Z]{3,4}) \d{4}U, .+?\t(?P<crn>\d{5})",
    "course_header": r"^(?P<name>.+?) \| (?P<subject>.+?) (?P<code>\d{4}U)\b",
    "status": r"^\**\s*(?:Web\s+)?(?:Registered|Enrolled|Waitlisted)\b",
    "message": r"\| Schedule Type: (?P<class_type>.+?)(?: \||$)",
    "date_range": r"^(?P<start>[\d/.-]+) -- (?P<end>[\d/.-]+)(?:\s+(?P<weekday>[A-Za-z]+))?$",
    "weekday": r"^(?P<weekday>[A-Za-z]+day|Mon|Tue|Wed|Thu|Fri|Sat|Sun|None)$",
    "day_abbreviation": r"^(?:[SMTWRF]|Su|Mo|Tu|We|Th|Fr|Sa)$",
    "time": (
        r"^(?:(?P<start>" + TIME_TOKEN + r")\s*-\s*(?P<end>" + TIME_TOKEN + r")\s+)?"
        r"Type: (?P<kind>.*?)\s*Location: (?P<location>.*?)\s*Building: (?P<building>.*?)\s*Room: (?P<room>.*)$"
    ),
    "crn": r"^CRN: (?P<crn>\d{5})$",
}


@dataclass(frozen=True)
class ParserConfig:
    """
    Layout markers of the pasted page. Each pattern is a regular expression
    using named groups; see DEFAULT_PATTERNS for the group names each marker
    must provide.
    """

    patterns: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_PATTERNS))
    date_format: str = "%m/%d/%Y"
    subjects: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_SUBJECTS))


@dataclass(frozen=True)
class CalendarConfig:
    """
    Output settings for the serializer and the file layout.

    dtstamp is written into every VEVENT. When None, a stable value derived
    from the input is used so identical input gives identical files.
    """

    timezone: str = DEFAULT_TIMEZONE
    grouping: str = "combined"
    prodid: str = "-//pastecal//Schedule Export//EN"
    calendar_name: str = "Class Schedule"
    file_prefix: str = "schedule"
    uid_domain: str = "pastecal"
    dtstamp: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.grouping not in GROUPINGS:
            raise ConfigError(f"grouping must be one of {', '.join(GROUPINGS)}", line=self.grouping)
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise ConfigError("unknown timezone", line=self.timezone)


@dataclass(frozen=True)
class AppConfig:
    parser: ParserConfig = field(default_factory=ParserConfig)
    calendar: CalendarConfig = field(default_factory=CalendarConfig)


def _check_keys(section: str, data: Any, allowed: set[str]) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise ConfigError(f"section '{section}' must be a JSON object")
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ConfigError(f"unknown key(s) in '{section}': {', '.join(unknown)}")
    return data


def config_from_dict(data: dict[str, Any]) -> AppConfig:
    """
    Build an AppConfig from plain JSON data, filling gaps with defaults.

    Partial "patterns" and "subjects" objects extend the defaults instead of
    replacing them.
    """
    data = _check_keys("config", data, {"parser", "calendar"})

    parser_data = _check_keys("parser", data.get("parser", {}), {f.name for f in fields(ParserConfig)})
    parser_cfg = ParserConfig()
    if "patterns" in parser_data:
        patterns = _check_keys("parser.patterns", parser_data["patterns"], set(DEFAULT_PATTERNS))
        for name, pattern in patterns.items():
            try:
                re.compile(pattern)
            except (re.error, TypeError) as exc:
                raise ConfigError(f"pattern '{name}' is not a valid regular expression: {exc}", line=str(pattern))
        parser_cfg = replace(parser_cfg, patterns={**DEFAULT_PATTERNS, **patterns})
    if "subjects" in parser_data:
        subjects = parser_data["subjects"]
        if not isinstance(subjects, dict):
            raise ConfigError("section 'parser.subjects' must be a JSON object")
        parser_cfg = replace(parser_cfg, subjects={**DEFAULT_SUBJECTS, **subjects})
    if "date_format" in parser_data:
        parser_cfg = replace(parser_cfg, date_format=str(parser_data["date_format"]))

    calendar_data = dict(
        _check_keys("calendar", data.get("calendar", {}), {f.name for f in fields(CalendarConfig)})
    )
    if calendar_data.get("dtstamp"):
        try:
            calendar_data["dtstamp"] = datetime.fromisoformat(str(calendar_data["dtstamp"]))
        except ValueError:
            raise ConfigError("calendar.dtstamp is not an ISO timestamp", line=str(calendar_data["dtstamp"]))
    calendar_cfg = CalendarConfig(**calendar_data)

    return AppConfig(parser=parser_cfg, calendar=calendar_cfg)


def load_config(path: str | Path | None = None) -> AppConfig:
    """
    Load configuration from a JSON file.

    Returns the defaults if no path is given or the file does not exist yet.
    A file that exists but cannot be read raises ConfigError.
    """
    if path is None:
        return AppConfig()

    config_path = Path(path)
    if not config_path.exists():
        return AppConfig()

    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ConfigError(f"cannot read config file {config_path}: {exc}")

    return config_from_dict(data)


def save_config(config: AppConfig, path: str | Path) -> None:
    """
    Save configuration as JSON. Creates parent directories if needed.
    """
    config_path = Path(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)

    payload = asdict(config)
    stamp = payload["calendar"].get("dtstamp")
    if stamp is not None:
        payload["calendar"]["dtstamp"] = stamp.isoformat()

    config_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
