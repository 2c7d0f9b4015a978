"""
Error taxonomy.

Every failure the core can report carries enough context (kind, offending
line, 1-based position) for a non-technical user to find and fix the
copy-paste mistake. Presentation is left to the caller: describe() gives a
plain sentence, to_dict() a structured payload.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence


class ScheduleError(Exception):
    """
    Base class for all errors raised by the pastecal core.
    """

    kind = "error"

    def __init__(self, detail: str, line: Optional[str] = None, position: Optional[int] = None) -> None:
        self.detail = detail
        self.line = line
        self.position = position
        super().__init__(self.describe())

    def describe(self) -> str:
        if self.position is not None and self.line is not None:
            return f"Line {self.position}: {self.detail}: {self.line!r}"
        if self.line is not None:
            return f"{self.detail}: {self.line!r}"
        return self.detail

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "detail": self.detail,
            "line": self.line,
            "position": self.position,
        }


class MalformedRecord(ScheduleError):
    """
    The schedule text does not follow the expected page layout.

    Usually caused by not expanding the detail rows before copying.
    """

    kind = "malformed_record"


class MalformedExclusion(ScheduleError):
    """
    An exclusion line is not two valid dates in order.
    """

    kind = "malformed_exclusion"


class ExclusionBatchError(ScheduleError):
    """
    Raised after ALL exclusion lines were checked and at least one failed.
    """

    kind = "malformed_exclusions"

    def __init__(self, errors: Sequence[MalformedExclusion]) -> None:
        self.errors = list(errors)
        count = len(self.errors)
        super().__init__(f"{count} exclusion line{'s' if count != 1 else ''} could not be read")

    def describe(self) -> str:
        lines = [self.detail]
        for err in self.errors:
            lines.append(f"  {err.describe()}")
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["errors"] = [err.to_dict() for err in self.errors]
        return data


class EmptyInput(ScheduleError):
    """
    Parsing succeeded but found no course sessions.
    """

    kind = "empty_input"


class ConfigError(ScheduleError):
    """
    A configuration file exists but cannot be used.
    """

    kind = "config_error"


class OutputError(ScheduleError):
    """
    Calendar files could not be written to the destination folder.
    """

    kind = "output_error"
