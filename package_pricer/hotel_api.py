from __future__ import annotations

import json
import logging
from datetime import date
from typing import Iterable, Optional, Sequence

import requests

from .config import Settings
from .dates import format_uk_date, parse_uk_date
from .errors import HotelApiError
from .european_fetcher import parse_price, raise_for_xml_error
from .models import HotelOffer
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


class HotelApiClient:
    """Hotel availability and pricing from the European hotel API."""

    def __init__(
        self,
        base_url: str = "http://87.102.127.86:8119/hotels/search.dll",
        agent_id: str = "122",
        *,
        timeout_s: float = 30.0,
        currency: str = "GBP",
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self.base_url = base_url
        self.agent_id = agent_id
        self.timeout_s = timeout_s
        self.currency = currency
        self.rate_limiter = rate_limiter or RateLimiter(0)

    @classmethod
    def from_settings(
        cls, settings: Settings, rate_limiter: RateLimiter | None = None
    ) -> "HotelApiClient":
        return cls(
            settings.hotel_api_base_url,
            settings.flight_api_agent_id,
            timeout_s=settings.search_timeout_s,
            currency=settings.currency,
            rate_limiter=rate_limiter,
        )

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
    ) -> list[HotelOffer]:
        """Return hotel offers for one city and stay window."""
        params = {
            "agtid": self.agent_id,
            "destination": destination,
            "checkin": format_uk_date(check_in),
            "checkout": format_uk_date(check_out),
            "adults": str(adults),
            "output": "JSON",
        }
        if star_rating:
            params["stars"] = str(star_rating)
        if board_basis:
            params["board"] = board_basis
        if hotel_codes:
            params["hotels"] = "|".join(hotel_codes)

        logger.info(
            "Searching hotels: %s, %s - %s (%s adults)",
            destination,
            params["checkin"],
            params["checkout"],
            adults,
        )
        self.rate_limiter.wait(self.base_url)
        try:
            resp = requests.get(
                self.base_url,
                params=params,
                timeout=self.timeout_s,
                headers={"Accept": "application/json"},
            )
        except requests.Timeout as exc:
            raise HotelApiError(
                f"Hotel API timed out after {self.timeout_s:.0f}s"
            ) from exc
        except requests.RequestException as exc:
            raise HotelApiError(f"Hotel API request failed: {exc}") from exc

        if resp.status_code != 200:
            raise HotelApiError(f"HTTP {resp.status_code} – {resp.text[:120]}")

        raw_text = resp.text
        raise_for_xml_error(raw_text, "Hotel API", HotelApiError)
        try:
            data = json.loads(raw_text)
        except ValueError as exc:
            raise HotelApiError("Malformed JSON from hotel API") from exc

        offers = [
            self._to_offer(item, check_in, check_out)
            for item in data.get("Hotels") or []
        ]
        offers = [off for off in offers if off]
        logger.info("Found %d hotels", len(offers))
        return offers

    def get_cheapest_hotel(self, offers: Iterable[HotelOffer]) -> HotelOffer | None:
        return get_cheapest_hotel(offers)

    def _to_offer(
        self, item: dict, check_in: date, check_out: date
    ) -> HotelOffer | None:
        price = parse_price(item.get("totalPrice"))
        if price is None or not item.get("hotelCode"):
            return None

        def _date(key: str, default: date) -> date:
            raw = item.get(key)
            try:
                return parse_uk_date(raw) if raw else default
            except ValueError:
                return default

        hotel_in = _date("checkIn", check_in)
        hotel_out = _date("checkOut", check_out)
        return HotelOffer(
            hotel_code=str(item["hotelCode"]),
            hotel_name=item.get("hotelName", ""),
            star_rating=int(item.get("starRating") or 0),
            city=item.get("city", ""),
            board_basis=item.get("boardBasis", ""),
            room_type=item.get("roomType", ""),
            check_in=hotel_in,
            check_out=hotel_out,
            nights=int(item.get("nights") or (hotel_out - hotel_in).days),
            total_price=price,
            currency=item.get("currency") or self.currency,
            availability=int(item.get("availability") or 0),
            ref_num=str(item.get("refNum", "")),
        )


def get_cheapest_hotel(offers: Iterable[HotelOffer]) -> HotelOffer | None:
    """Cheapest offer by total price; first seen wins a tie."""
    cheapest: HotelOffer | None = None
    for offer in offers:
        if cheapest is None or offer.total_price < cheapest.total_price:
            cheapest = offer
    return cheapest


__all__ = ["HotelApiClient", "get_cheapest_hotel"]
