"""
Exclusion ranges (days without classes, e.g. reading week or holidays).

One range per line, written as two ISO dates:

    2024-10-21 - 2024-10-25
    2024-11-11 - 2024-11-11

A single day is a range that starts and ends on the same date. Every line is
checked before anything is reported, so the user sees all mistakes at once.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional, Union

from pastecal.errors import ExclusionBatchError, MalformedExclusion
from pastecal.lines import ScheduleLines, as_lines
from pastecal.model import ExclusionRange


_RANGE_RE = re.compile(r"^(?P<start>\d{4}-\d{2}-\d{2})\s*-\s*(?P<end>\d{4}-\d{2}-\d{2})$")


@dataclass(frozen=True)
class ExclusionResult:
    """
    Outcome for one exclusion line: either range or error is set.
    """

    position: int
    line: str
    range: Optional[ExclusionRange] = None
    error: Optional[MalformedExclusion] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def parse_exclusion_line(line: str, position: Optional[int] = None) -> ExclusionRange:
    """
    Parse 'YYYY-MM-DD - YYYY-MM-DD'. Raises MalformedExclusion.
    """
    text = line.strip()
    m = _RANGE_RE.match(text)
    if not m:
        raise MalformedExclusion("Expected 'YYYY-MM-DD - YYYY-MM-DD'", line=text, position=position)

    try:
        start = date.fromisoformat(m.group("start"))
        end = date.fromisoformat(m.group("end"))
    except ValueError:
        raise MalformedExclusion("Not a valid calendar date", line=text, position=position)

    if start > end:
        raise MalformedExclusion("The range ends before it starts", line=text, position=position)

    return ExclusionRange(start, end)


def check_exclusions(source: Union[str, Iterable[str], ScheduleLines]) -> list[ExclusionResult]:
    """
    Parse every non-empty line and report a result per line.
    """
    results: list[ExclusionResult] = []
    for line in as_lines(source):
        try:
            parsed = parse_exclusion_line(line.text, line.number)
        except MalformedExclusion as exc:
            results.append(ExclusionResult(position=line.number, line=line.text, error=exc))
        else:
            results.append(ExclusionResult(position=line.number, line=line.text, range=parsed))
    return results


def parse_exclusions(source: Union[str, Iterable[str], ScheduleLines]) -> list[ExclusionRange]:
    """
    Parse all exclusion lines.

    Raises ExclusionBatchError listing every bad line if any line failed.
    """
    results = check_exclusions(source)
    errors = [r.error for r in results if r.error is not None]
    if errors:
        raise ExclusionBatchError(errors)
    return [r.range for r in results if r.range is not None]
