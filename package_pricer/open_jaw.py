"""
open_jaw – anchoring an open-jaw itinerary to the traveller's arrival night.

A flight landing before 06:00 belongs to the previous evening: the land
itinerary starts on that earlier date and the return leg is searched
``nights`` days after it.  Both flight sources go through these helpers.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Optional, Union

EARLY_ARRIVAL_CUTOFF = time(6, 0)


def _as_time(value: Union[str, time, None]) -> Optional[time]:
    if value is None:
        return None
    if isinstance(value, time):
        return value
    value = value.strip()
    if not value:
        return None
    hours, _, minutes = value.partition(":")
    return time(int(hours), int(minutes or 0))


def effective_arrival_date(
    arrival_date: date, arrival_time: Union[str, time, None] = None
) -> date:
    """Return the date the traveller experiences as the arrival night.

    Arrival strictly before 06:00 counts as the previous calendar day.
    Without a known arrival time the raw date is kept.
    """
    clock = _as_time(arrival_time)
    if clock is not None and clock < EARLY_ARRIVAL_CUTOFF:
        return arrival_date - timedelta(days=1)
    return arrival_date


def effective_arrival_from_timestamp(arrival: datetime) -> date:
    return effective_arrival_date(arrival.date(), arrival.time())


def return_search_date(
    arrival_date: date, arrival_time: Union[str, time, None], nights: int
) -> date:
    """Return-leg search date: effective arrival + *nights*."""
    return effective_arrival_date(arrival_date, arrival_time) + timedelta(
        days=nights
    )


__all__ = [
    "EARLY_ARRIVAL_CUTOFF",
    "effective_arrival_date",
    "effective_arrival_from_timestamp",
    "return_search_date",
]
