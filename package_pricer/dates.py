"""Date helpers shared by the adapters.

Two wire formats cross the boundary: ``DD/MM/YYYY`` (European flight API,
hotel API, display) and ``YYYY-MM-DD`` (SERP API, storage keys).  Inside the
engine dates are always ``datetime.date``.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Iterator, List, Optional

UK_DATE_FMT = "%d/%m/%Y"
UK_DATETIME_FMT = "%d/%m/%Y %H:%M"
ISO_DATETIME_FMT = "%Y-%m-%d %H:%M"


def parse_uk_date(value: str) -> date:
    return datetime.strptime(value.strip(), UK_DATE_FMT).date()


def format_uk_date(value: date) -> str:
    return value.strftime(UK_DATE_FMT)


def parse_uk_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse ``DD/MM/YYYY HH:mm``; a bare date is read as midnight."""
    if not value or not value.strip():
        return None
    value = value.strip()
    if " " not in value:
        return datetime.strptime(value, UK_DATE_FMT)
    return datetime.strptime(value, UK_DATETIME_FMT)


def split_iso_timestamp(value: Optional[str]) -> tuple[Optional[date], str]:
    """Split SERP ``YYYY-MM-DD HH:mm`` into ``(date, "HH:mm")``."""
    if not value or not value.strip():
        return None, ""
    day, _, clock = value.strip().partition(" ")
    return date.fromisoformat(day), clock


def add_days(value: date, days: int) -> date:
    return value + timedelta(days=days)


def iter_dates(start: date, end: date) -> Iterator[date]:
    """Yield every day from *start* to *end* inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def date_range(start: date, end: date) -> List[date]:
    return list(iter_dates(start, end))


__all__ = [
    "parse_uk_date",
    "format_uk_date",
    "parse_uk_datetime",
    "split_iso_timestamp",
    "add_days",
    "iter_dates",
    "date_range",
]
