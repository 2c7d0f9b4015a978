"""
Line tokenizer.

Text copied out of a browser is messy: CRLF or bare CR endings, no-break
spaces, indentation and runs of blank lines depending on the browser.
ScheduleLines turns such a paste into trimmed, non-empty lines while
remembering where each line was in the original text.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, Union


@dataclass(frozen=True)
class Line:
    """
    One logical input line. number is 1-based and counts blank lines too,
    so it matches what the user sees in their editor.
    """

    number: int
    text: str


class ScheduleLines:
    """
    Lazy, restartable sequence of Line objects.

    Every iteration starts from the beginning of the text, so the parser can
    look ahead (e.g. to find the prelude marker) and then walk the lines again.
    """

    def __init__(self, text: Union[str, Iterable[str]]) -> None:
        if isinstance(text, str):
            self._text = text
        else:
            self._text = "\n".join(text)

    def __iter__(self) -> Iterator[Line]:
        # splitlines() handles \r\n, \r and \n alike
        for number, raw in enumerate(self._text.splitlines(), start=1):
            cleaned = raw.replace("\u00a0", " ").strip()
            if cleaned:
                yield Line(number, cleaned)

    def __bool__(self) -> bool:
        return any(True for _ in self)


def as_lines(source: Union[str, Iterable[str], ScheduleLines]) -> ScheduleLines:
    if isinstance(source, ScheduleLines):
        return source
    return ScheduleLines(source)
