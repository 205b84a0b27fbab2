"""Month arithmetic and the academic-year window shown by the planner.

Months travel as ``"YYYY-MM"`` strings and are compared through their integer
form ``year * 12 + (month - 1)``. Anything that does not look like a month maps
to ``INVALID_MONTH`` and is kept out of every range computation.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from typing import List, Optional

INVALID_MONTH = -1

MONTH_PATTERN = re.compile(r"[0-9]{4}-[0-9]{2}")

MONTH_ABBREVIATIONS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)

# September, zero-based.
COURSE_FIRST_MONTH_INDEX = 8
COURSE_LENGTH = 12


def parse_month(value: Optional[str]) -> int:
    """Return the integer form of a ``YYYY-MM`` string, or ``INVALID_MONTH``.

    Month numbers outside 01-12 are not validated and roll over arithmetically
    (``"2024-00"`` is December 2023). The one string that lands on the sentinel
    itself, ``"0000-00"``, is therefore invalid.
    """
    if not isinstance(value, str) or not MONTH_PATTERN.fullmatch(value):
        return INVALID_MONTH
    year, month = value.split("-")
    return int(year) * 12 + (int(month) - 1)


def format_month(year: int, month_index0: int) -> str:
    """Format a year and a zero-based month index as ``YYYY-MM``."""
    return f"{year:04d}-{month_index0 + 1:02d}"


def month_from_number(number: int) -> str:
    """Inverse of :func:`parse_month` for valid month numbers."""
    if number < 0:
        raise ValueError(f"Not a valid month number: {number}")
    year, index = divmod(number, 12)
    return format_month(year, index)


def is_valid_month(value: Optional[str]) -> bool:
    return parse_month(value) != INVALID_MONTH


def month_label(value: str) -> str:
    """Short column header, e.g. ``"2023-09"`` -> ``"SEP/23"``."""
    number = parse_month(value)
    if number == INVALID_MONTH:
        return value
    year, index = divmod(number, 12)
    return f"{MONTH_ABBREVIATIONS[index].upper()}/{year % 100:02d}"


def current_course_start_year(today: Optional[date] = None) -> int:
    """Start year of the course that contains ``today``."""
    today = today or date.today()
    if today.month - 1 >= COURSE_FIRST_MONTH_INDEX:
        return today.year
    return today.year - 1


@dataclass(frozen=True, slots=True)
class CourseWindow:
    """Twelve consecutive months, September of ``start_year`` to August of the next."""

    start_year: int

    @classmethod
    def current(cls, today: Optional[date] = None) -> "CourseWindow":
        return cls(current_course_start_year(today))

    @classmethod
    def containing(cls, month: str) -> Optional["CourseWindow"]:
        """The course whose columns include ``month``; ``None`` for invalid months."""
        number = parse_month(month)
        if number == INVALID_MONTH:
            return None
        year, index = divmod(number, 12)
        return cls(year if index >= COURSE_FIRST_MONTH_INDEX else year - 1)

    @property
    def view_start(self) -> int:
        return self.start_year * 12 + COURSE_FIRST_MONTH_INDEX

    @property
    def view_end(self) -> int:
        return self.view_start + COURSE_LENGTH - 1

    @property
    def months(self) -> List[str]:
        return [month_from_number(self.view_start + offset) for offset in range(COURSE_LENGTH)]

    @property
    def labels(self) -> List[str]:
        return [month_label(month) for month in self.months]

    @property
    def title(self) -> str:
        """Course title such as ``"23/24"``."""
        return f"{self.start_year % 100:02d}/{(self.start_year + 1) % 100:02d}"

    def shift(self, offset: int) -> "CourseWindow":
        """Page by whole courses; ``offset`` counts years, not months."""
        return CourseWindow(self.start_year + offset)

    def contains(self, month: str) -> bool:
        number = parse_month(month)
        if number == INVALID_MONTH:
            return False
        return self.view_start <= number <= self.view_end

    def overlaps(self, start: int, end: int) -> bool:
        if start == INVALID_MONTH or end == INVALID_MONTH:
            return False
        return start <= self.view_end and end >= self.view_start

    def index_of(self, month: str) -> Optional[int]:
        """Column index of ``month`` inside the window, ``None`` when outside."""
        if not self.contains(month):
            return None
        return parse_month(month) - self.view_start

    def is_past(self, month: str, today: Optional[date] = None) -> bool:
        """True for months strictly before the month containing ``today``."""
        today = today or date.today()
        number = parse_month(month)
        if number == INVALID_MONTH:
            return False
        return number < today.year * 12 + (today.month - 1)
