"""
normalizer – reduce raw offers of any source to the cheapest per key.

Only a strictly lower price replaces the kept offer, so on an exact tie the
first offer seen wins.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Callable, Dict, Hashable, Iterable, Tuple, TypeVar, Union

from .models import (
    FlightOffer,
    InternalFlightOffer,
    NormalizedFlightPrice,
    OneWayFlight,
    OpenJawFlightOffer,
    SerpFlightOffer,
)

T = TypeVar("T")
K = TypeVar("K", bound=Hashable)

AnyFlightOffer = Union[FlightOffer, SerpFlightOffer, OneWayFlight, OpenJawFlightOffer]
PriceKey = Tuple[date, str]


def cheapest_by_key(
    items: Iterable[T],
    key: Callable[[T], K],
    price: Callable[[T], Decimal],
) -> Dict[K, T]:
    """Keep, for every key, the first item with the minimal price."""
    result: Dict[K, T] = {}
    for item in items:
        k = key(item)
        existing = result.get(k)
        if existing is None or price(item) < price(existing):
            result[k] = item
    return result


def offer_key_and_price(offer: AnyFlightOffer) -> Tuple[PriceKey, Decimal]:
    """Return ``((date, departure airport), price per person)`` for any shape."""
    if isinstance(offer, FlightOffer):
        return (offer.depart_date, offer.depart_airport), offer.net_price_pp
    if isinstance(offer, SerpFlightOffer):
        return (offer.departure_date, offer.departure_airport), offer.price_per_person
    if isinstance(offer, OneWayFlight):
        return (offer.depart_date, offer.depart_airport), offer.price
    if isinstance(offer, OpenJawFlightOffer):
        return (
            (offer.outbound_date, offer.uk_departure_airport),
            offer.price_per_person,
        )
    raise TypeError(f"Unsupported offer type: {type(offer).__name__}")


def _normalize(cheapest: Dict[PriceKey, AnyFlightOffer]) -> Dict[PriceKey, NormalizedFlightPrice]:
    result: Dict[PriceKey, NormalizedFlightPrice] = {}
    for (day, airport), offer in cheapest.items():
        _, price = offer_key_and_price(offer)
        result[(day, airport)] = NormalizedFlightPrice(
            date=day,
            departure_airport=airport,
            price_per_person=price,
            source_offer=offer,
        )
    return result


def cheapest_by_date_and_airport(
    offers: Iterable[AnyFlightOffer],
) -> Dict[PriceKey, NormalizedFlightPrice]:
    """Cheapest round-trip (or one-way) offer per (date, departure airport)."""
    cheapest = cheapest_by_key(
        offers,
        key=lambda o: offer_key_and_price(o)[0],
        price=lambda o: offer_key_and_price(o)[1],
    )
    return _normalize(cheapest)


def cheapest_open_jaw_by_date_and_airport(
    offers: Iterable[OpenJawFlightOffer], prefer_same_airline: bool = True
) -> Dict[PriceKey, NormalizedFlightPrice]:
    """Cheapest open-jaw itinerary per (outbound date, UK airport).

    With *prefer_same_airline* any itinerary flown by one airline beats a
    mixed-airline one, whatever their prices; inside each group the cheaper
    wins and an exact tie keeps the first seen.
    """

    def rank(offer: OpenJawFlightOffer) -> Tuple[int, Decimal]:
        if prefer_same_airline:
            return (0 if offer.same_airline else 1, offer.price_per_person)
        return (0, offer.price_per_person)

    cheapest: Dict[PriceKey, OpenJawFlightOffer] = {}
    for offer in offers:
        k = (offer.outbound_date, offer.uk_departure_airport)
        existing = cheapest.get(k)
        if existing is None or rank(offer) < rank(existing):
            cheapest[k] = offer
    return _normalize(cheapest)


def prices_for_date(
    normalized: Dict[PriceKey, NormalizedFlightPrice], travel_date: date
) -> Dict[str, NormalizedFlightPrice]:
    """Slice the (date, airport) map down to one date, keyed by airport."""
    return {
        airport: price
        for (day, airport), price in normalized.items()
        if day == travel_date
    }


def cheapest_internal_by_date(
    offers: Iterable[InternalFlightOffer],
) -> Dict[date, InternalFlightOffer]:
    return cheapest_by_key(
        offers, key=lambda o: o.date, price=lambda o: o.price_per_person
    )


__all__ = [
    "cheapest_by_key",
    "offer_key_and_price",
    "cheapest_by_date_and_airport",
    "cheapest_open_jaw_by_date_and_airport",
    "prices_for_date",
    "cheapest_internal_by_date",
]
