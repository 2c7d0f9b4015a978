"""
pastecal: turn a copied class schedule page into iCalendar files.
"""

from pathlib import Path

__version__ = (Path(__file__).resolve().parent / "VERSION").read_text(encoding="utf-8").strip()
