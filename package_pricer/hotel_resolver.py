"""
hotel_resolver – one hotel per leg of a multi-city land itinerary.

Legs are contiguous: each check-in is the previous check-in plus the previous
leg's nights.  A leg either names an exact hotel (no substitute accepted) or
asks for the cheapest hotel matching its star rating and board basis.
"""

from __future__ import annotations

import logging
import time
from datetime import date
from typing import Callable, Iterable, List, Optional, Protocol, Sequence, Tuple

from .config import CityConfig
from .dates import add_days, format_uk_date
from .errors import HotelNotAvailableError, NoHotelFoundError
from .models import HotelOffer, ResolvedHotelStay, RoomType

logger = logging.getLogger(__name__)

ADULTS_PER_ROOM = {"twin": 2, "single": 1}


class HotelSearch(Protocol):
    def search_hotels(
        self,
        destination: str,
        check_in: date,
        check_out: date,
        adults: int,
        *,
        star_rating: Optional[int] = None,
        board_basis: Optional[str] = None,
        hotel_codes: Optional[Sequence[str]] = None,
    ) -> List[HotelOffer]:
        ...

    def get_cheapest_hotel(self, offers: Iterable[HotelOffer]) -> Optional[HotelOffer]:
        ...


def leg_windows(
    cities: Sequence[CityConfig], start_date: date
) -> List[Tuple[CityConfig, date, date]]:
    """Return ``(city, check_in, check_out)`` for every leg."""
    windows = []
    nights_so_far = 0
    for city in cities:
        check_in = add_days(start_date, nights_so_far)
        check_out = add_days(check_in, city.nights)
        windows.append((city, check_in, check_out))
        nights_so_far += city.nights
    return windows


def _matches(offer: HotelOffer, city: CityConfig) -> bool:
    if city.star_rating and offer.star_rating != city.star_rating:
        return False
    if city.board_basis and offer.board_basis.upper() != city.board_basis.upper():
        return False
    if city.hotel_codes and offer.hotel_code not in city.hotel_codes:
        return False
    return True


class HotelItineraryResolver:
    def __init__(
        self,
        hotel_api: HotelSearch,
        *,
        leg_pause_s: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.hotel_api = hotel_api
        self.leg_pause_s = leg_pause_s
        self._sleep = sleep

    def resolve(
        self, cities: Sequence[CityConfig], start_date: date, room_type: RoomType
    ) -> List[ResolvedHotelStay]:
        """Resolve every leg; the first unresolvable leg fails the itinerary."""
        stays: List[ResolvedHotelStay] = []
        for i, (city, check_in, check_out) in enumerate(leg_windows(cities, start_date)):
            if i and self.leg_pause_s:
                self._sleep(self.leg_pause_s)

            offer = self._resolve_leg(city, check_in, check_out, room_type)
            price_per_person = (
                offer.total_price / 2 if room_type == "twin" else offer.total_price
            )
            stays.append(
                ResolvedHotelStay(
                    city_name=city.city_name,
                    hotel_code=offer.hotel_code,
                    hotel_name=offer.hotel_name,
                    star_rating=offer.star_rating,
                    board_basis=offer.board_basis,
                    check_in=check_in,
                    check_out=check_out,
                    nights=city.nights,
                    room_type=offer.room_type,
                    price_per_room=offer.total_price,
                    price_per_person=price_per_person,
                )
            )
            logger.info(
                "%s %s-%s (%s): %s £%s",
                city.city_name,
                check_in,
                check_out,
                room_type,
                offer.hotel_name or offer.hotel_code,
                offer.total_price,
            )
        return stays

    def _resolve_leg(
        self, city: CityConfig, check_in: date, check_out: date, room_type: RoomType
    ) -> HotelOffer:
        adults = ADULTS_PER_ROOM[room_type]

        if city.is_specific:
            offers = self.hotel_api.search_hotels(
                city.destination,
                check_in,
                check_out,
                adults,
                board_basis=city.board_basis or None,
                hotel_codes=[city.hotel_code],
            )
            exact = [o for o in offers if o.hotel_code == city.hotel_code]
            cheapest = self.hotel_api.get_cheapest_hotel(exact)
            if cheapest is None:
                raise HotelNotAvailableError(
                    city.city_name,
                    f"Hotel {city.hotel_code} not available in {city.city_name} "
                    f"for {format_uk_date(check_in)} - {format_uk_date(check_out)} "
                    f"({room_type})",
                )
            return cheapest

        offers = self.hotel_api.search_hotels(
            city.destination,
            check_in,
            check_out,
            adults,
            star_rating=city.star_rating,
            board_basis=city.board_basis or None,
            hotel_codes=city.hotel_codes or None,
        )
        cheapest = self.hotel_api.get_cheapest_hotel(
            [o for o in offers if _matches(o, city)]
        )
        if cheapest is None:
            raise NoHotelFoundError(
                city.city_name, f"No hotels found for {city.city_name}"
            )
        return cheapest


__all__ = ["HotelSearch", "HotelItineraryResolver", "leg_windows", "ADULTS_PER_ROOM"]
