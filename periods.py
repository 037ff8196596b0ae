import calendar
from dataclasses import dataclass
from datetime import date
from typing import Optional

from errors import InvalidArgumentError


MONTH_LABELS = [calendar.month_abbr[m] for m in range(1, 13)]


def validate_month(year: int, month: int) -> None:
    if not 1 <= month <= 12:
        raise InvalidArgumentError(f"Month must be between 1 and 12, got {month}")
    if not 1 <= year <= 9999:
        raise InvalidArgumentError(f"Year out of range: {year}")


def month_start(year: int, month: int) -> date:
    validate_month(year, month)
    return date(year, month, 1)


def month_end(year: int, month: int) -> date:
    validate_month(year, month)
    return date(year, month, calendar.monthrange(year, month)[1])


def month_diff(start: date, end: date) -> int:
    """Whole calendar months from ``start``'s month to ``end``'s month."""
    return (end.year - start.year) * 12 + end.month - start.month


def add_months(d: date, count: int) -> date:
    """First day of the month ``count`` months after ``d``'s month."""
    total = d.year * 12 + d.month - 1 + count
    return date(total // 12, total % 12 + 1, 1)


@dataclass(frozen=True)
class MonthPeriod:
    year: int
    month: int

    def __post_init__(self) -> None:
        validate_month(self.year, self.month)

    @property
    def start(self) -> date:
        return month_start(self.year, self.month)

    @property
    def end(self) -> date:
        return month_end(self.year, self.month)

    @property
    def label(self) -> str:
        return f"{calendar.month_name[self.month]} {self.year}"

    @classmethod
    def containing(cls, d: date) -> "MonthPeriod":
        return cls(d.year, d.month)


def resolve_month(
    year: Optional[int],
    month: Optional[int],
    *,
    today: Optional[date] = None,
) -> MonthPeriod:
    today = today or date.today()
    if year is None and month is None:
        return MonthPeriod.containing(today)
    if year is None or month is None:
        raise InvalidArgumentError("Year and month must be given together")
    return MonthPeriod(year, month)
