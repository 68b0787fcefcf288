"""
pricing – flight + hotel cost to a consumer-facing package price.

    subtotal     = flight pp + Σ hotel pp
    after_markup = subtotal × (1 + markup / 100)
    final        = smart_round(after_markup)

Intermediates stay unrounded ``Decimal``; everything is rounded to pence only
in the returned result.
"""

from __future__ import annotations

from datetime import date
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Union

from .dates import format_uk_date
from .models import CombinedPriceResult, ResolvedHotelStay

Number = Union[Decimal, int, float, str]

CENT = Decimal("0.01")
PRICE_ENDINGS = (49, 69, 99)


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value: Number) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def smart_round(price: Number) -> Decimal:
    """Round to the nearest psychological price point (…49, …69, …99).

    Candidates are the three endings in the current hundred, …49 of the next
    hundred and …99 of the previous one.  The closest wins, the larger on a
    tie.
    """
    price = to_decimal(price)
    hundreds = int((price / 100).to_integral_value(rounding=ROUND_FLOOR))

    candidates = [hundreds * 100 + ending for ending in PRICE_ENDINGS]
    candidates.append((hundreds + 1) * 100 + 49)
    if hundreds > 0:
        candidates.append((hundreds - 1) * 100 + 99)

    closest = candidates[0]
    min_diff = abs(price - closest)
    for candidate in candidates[1:]:
        diff = abs(price - candidate)
        if diff < min_diff or (diff == min_diff and candidate > closest):
            closest = candidate
            min_diff = diff
    return Decimal(closest)


def combine_prices(
    flight_price: Number,
    hotel_stays: Iterable[ResolvedHotelStay],
    markup_percent: Number,
    travel_date: date,
    *,
    currency: str = "GBP",
    flight_details: Any = None,
) -> CombinedPriceResult:
    """Combine one flight price with a resolved hotel itinerary."""
    stays = tuple(hotel_stays)
    flight = to_decimal(flight_price)
    markup = to_decimal(markup_percent)

    hotel_cost = sum((stay.price_per_person for stay in stays), Decimal("0"))
    subtotal = flight + hotel_cost
    markup_amount = subtotal * markup / 100
    after_markup = subtotal + markup_amount
    final_price = smart_round(after_markup)

    return CombinedPriceResult(
        date=format_uk_date(travel_date),
        iso_date=travel_date.isoformat(),
        flight_price_per_person=round_money(flight),
        hotel_cost_per_person=round_money(hotel_cost),
        subtotal=round_money(subtotal),
        markup_percent=markup,
        markup_amount=round_money(markup_amount),
        after_markup=round_money(after_markup),
        final_price=round_money(final_price),
        currency=currency,
        flight_details=flight_details,
        hotel_stays=stays,
    )


__all__ = ["smart_round", "round_money", "combine_prices", "to_decimal"]
