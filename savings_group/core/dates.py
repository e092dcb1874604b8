"""Calendar helpers for contribution periods and installment schedules."""
import calendar
import re
from datetime import datetime, time, timezone
from typing import Optional, Tuple

MONTH_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def is_late(now: datetime, due_date: datetime) -> bool:
    """An obligation is late once the clock has passed its due date."""
    return now > due_date


def parse_month(month: str) -> Optional[Tuple[int, int]]:
    """Parse a "YYYY-MM" period key into (year, month), or None if malformed."""
    if not month or not MONTH_PATTERN.match(month):
        return None
    year_text, month_text = month.split("-")
    return int(year_text), int(month_text)


def next_month(month: str) -> Optional[str]:
    parsed = parse_month(month)
    if not parsed:
        return None
    year, month_number = parsed
    if month_number == 12:
        return f"{year + 1:04d}-01"
    return f"{year:04d}-{month_number + 1:02d}"


def end_of_month(month: str) -> datetime:
    """Last day of the period at midnight; the legacy manual-entry due date."""
    parsed = parse_month(month)
    if not parsed:
        raise ValueError(f"Invalid month: {month}")
    year, month_number = parsed
    last_day = calendar.monthrange(year, month_number)[1]
    return datetime(year, month_number, last_day)


def add_months(value: datetime, months: int) -> datetime:
    """Shift by whole months, clamping the day to the target month's length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month_number = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month_number)[1])
    return value.replace(year=year, month=month_number, day=day)


def start_of_day(value: datetime) -> datetime:
    return datetime.combine(value.date(), time.min)


def year_bounds(year: int) -> Tuple[datetime, datetime]:
    """Half-open [start, end) range covering one calendar year."""
    return datetime(year, 1, 1), datetime(year + 1, 1, 1)
