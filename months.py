import re
from datetime import date
from typing import Optional

MONTH_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def is_valid_month(value: Optional[str]) -> bool:
    return bool(value) and MONTH_PATTERN.match(value) is not None


def validate_month(value: str) -> str:
    if not is_valid_month(value):
        raise ValueError("Invalid month format. Use YYYY-MM")
    return value


def parse_month(value: str) -> tuple[int, int]:
    validate_month(value)
    year_str, month_str = value.split("-", 1)
    return int(year_str), int(month_str)


def format_month(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def month_of(day: date) -> str:
    return format_month(day.year, day.month)


def shift_month(value: str, count: int) -> str:
    """Move a ``YYYY-MM`` key by ``count`` months (negative goes back)."""
    year, month = parse_month(value)
    index = year * 12 + (month - 1) + count
    return format_month(index // 12, index % 12 + 1)


def month_bounds(value: str) -> tuple[date, date]:
    year, month = parse_month(value)
    first = date(year, month, 1)
    if month == 12:
        next_month = first.replace(year=year + 1, month=1)
    else:
        next_month = first.replace(month=month + 1)
    return first, next_month - date.resolution


def months_in_year(year: int) -> list[str]:
    return [format_month(year, month) for month in range(1, 13)]


def months_between(start: str, end: str) -> list[str]:
    validate_month(start)
    validate_month(end)
    if start > end:
        raise ValueError("Start month must not be after end month")
    months = []
    current = start
    while current <= end:
        months.append(current)
        current = shift_month(current, 1)
    return months
