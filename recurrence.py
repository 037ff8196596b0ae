from datetime import date, datetime, timedelta
from typing import Optional, Protocol
from zoneinfo import ZoneInfo

from config import get_settings
from models import Cadence
from periods import add_months, month_diff, month_end, month_start


class Schedulable(Protocol):
    cadence: Optional[Cadence]
    start_date: Optional[date]
    end_date: Optional[date]


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def _weekly_on_or_after(start: date, target: date) -> date:
    if target <= start:
        return start
    jumps, remainder = divmod((target - start).days, 7)
    if remainder:
        jumps += 1
    return start + timedelta(weeks=jumps)


def _weekly_has_occurrence(
    start: date, end: Optional[date], first_day: date, last_day: date
) -> bool:
    probe = _weekly_on_or_after(start, first_day)
    if probe > last_day:
        return False
    if end and probe > end:
        return False
    return True


def _month_offset_match(start: date, first_day: date, interval: int) -> bool:
    diff = month_diff(start, first_day)
    return diff >= 0 and diff % interval == 0


def is_due_in_month(template: Schedulable, year: int, month: int) -> bool:
    first_day = month_start(year, month)
    last_day = month_end(year, month)

    start = template.start_date
    cadence = template.cadence
    if start is None or cadence is None:
        return False
    if last_day < start:
        return False
    if template.end_date and first_day > template.end_date:
        return False

    if cadence.is_weekly:
        return _weekly_has_occurrence(start, template.end_date, first_day, last_day)
    return _month_offset_match(start, first_day, cadence.interval_months)


def count_occurrences_until(template: Schedulable, as_of: date) -> int:
    """Scheduled occurrences from the start through ``as_of``, inclusive.

    The occurrence in the start week (weekly) or start month (month
    cadences) is number 1. An end date caps the count.
    """
    start = template.start_date
    cadence = template.cadence
    if start is None or cadence is None:
        return 0
    if as_of < start:
        return 0

    effective_end = as_of
    if template.end_date and template.end_date < as_of:
        effective_end = template.end_date
    if effective_end < start:
        return 0

    if cadence.is_weekly:
        return (effective_end - start).days // cadence.interval_days + 1
    return month_diff(start, effective_end) // cadence.interval_months + 1


def total_scheduled_installments(template: Schedulable) -> Optional[int]:
    if template.end_date is None:
        return None
    if template.start_date is None or template.cadence is None:
        return None
    return count_occurrences_until(template, template.end_date)


def first_occurrence_on_or_after(template: Schedulable, on: date) -> Optional[date]:
    """Date of the first scheduled occurrence at or after ``on``.

    Month cadences are month-granular, so the first day of the first due
    month is returned. Ignores the end date.
    """
    start = template.start_date
    cadence = template.cadence
    if start is None or cadence is None:
        return None
    if cadence.is_weekly:
        return _weekly_on_or_after(start, on)

    interval = cadence.interval_months
    diff = max(month_diff(start, on), 0)
    steps, remainder = divmod(diff, interval)
    if remainder:
        steps += 1
    return add_months(start, steps * interval)
