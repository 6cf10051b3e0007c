"""Month arithmetic over the circular 1-12 month space"""

import calendar
from dataclasses import dataclass
from datetime import date
from typing import Iterator, Optional, Tuple

from cuotas_gateway.domain.exceptions import ValidationError

MONTH_NAMES = {
    name.upper(): number
    for number, name in enumerate(calendar.month_name)
    if name
}
MONTH_ABBREVIATIONS = {
    name.upper(): number
    for number, name in enumerate(calendar.month_abbr)
    if name
}


def normalize_month(value) -> int:
    """
    Normalize a month from its wire representation to 1-12.

    Accepts integers, numeric strings and English month names
    ("JULY", "July", "jul"). Month names are a presentation concern and
    never reach business logic.
    """
    if isinstance(value, bool):
        raise ValidationError(f"Invalid month: {value!r}")

    if isinstance(value, int):
        month = value
    elif isinstance(value, str):
        text = value.strip().upper()
        if text.isdigit():
            month = int(text)
        elif text in MONTH_NAMES:
            month = MONTH_NAMES[text]
        elif text in MONTH_ABBREVIATIONS:
            month = MONTH_ABBREVIATIONS[text]
        else:
            raise ValidationError(f"Invalid month: {value!r}")
    else:
        raise ValidationError(f"Invalid month: {value!r}")

    if not 1 <= month <= 12:
        raise ValidationError(f"Month must be between 1 and 12, got {month}")
    return month


def clamp_day(year: int, month: int, day: int) -> date:
    """Build a date, clamping day to the last valid day of the month (31 -> 30 in April)"""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last_day))


def add_months(year_month: Tuple[int, int], months: int) -> Tuple[int, int]:
    """Shift a (year, month) pair by a number of months"""
    year, month = year_month
    index = year * 12 + (month - 1) + months
    return index // 12, index % 12 + 1


@dataclass(frozen=True)
class MonthRange:
    """
    Enabled month window of a plan, possibly wrapping into the next calendar year.

    MonthRange(4, 1) is April through January: 10 months, January in year+1.
    MonthRange(3, 3) is a single-month range, not a full year.
    """

    start: int
    end: int

    def __post_init__(self):
        for label, month in (("start", self.start), ("end", self.end)):
            if isinstance(month, bool) or not isinstance(month, int) or not 1 <= month <= 12:
                raise ValidationError(f"Month range {label} must be between 1 and 12, got {month!r}")

    @property
    def wraps(self) -> bool:
        return self.end < self.start

    def span(self) -> int:
        if self.end >= self.start:
            return self.end - self.start + 1
        return (12 - self.start + 1) + self.end

    def enumerate(self) -> "MonthSequence":
        """Months in chronological order as (month, year_offset) pairs"""
        return MonthSequence(self)

    def position(self, month: int) -> Optional[int]:
        """0-based index of month within the range, None when outside it"""
        offset = (month - self.start) % 12
        if offset >= self.span():
            return None
        return offset

    def contains(self, month: int) -> bool:
        return self.position(month) is not None

    def year_month(self, month: int, fiscal_year: int) -> Tuple[int, int]:
        """Absolute (year, month) of a month inside the range anchored at fiscal_year"""
        position = self.position(month)
        if position is None:
            raise ValidationError(f"Month {month} is outside range {self.start}-{self.end}")
        return add_months((fiscal_year, self.start), position)


class MonthSequence:
    """Lazy, restartable iterable over the months of a MonthRange"""

    def __init__(self, month_range: MonthRange):
        self._range = month_range

    def __iter__(self) -> Iterator[Tuple[int, int]]:
        start = self._range.start
        for offset in range(self._range.span()):
            month = (start - 1 + offset) % 12 + 1
            yield month, 0 if month >= start else 1

    def __len__(self) -> int:
        return self._range.span()
