from __future__ import annotations

import json
import logging
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Sequence

import requests

from .config import Settings
from .dates import add_days, format_uk_date, parse_uk_datetime
from .errors import (
    FlightApiError,
    FlightApiTimeout,
    PricerError,
    UpstreamAccessError,
)
from .models import FlightOffer, OneWayFlight, OpenJawFlightOffer
from .normalizer import cheapest_by_key
from .open_jaw import effective_arrival_from_timestamp, return_search_date
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

IP_NOT_WHITELISTED = "IP Address Does Not Match"
_XML_ERROR_RE = re.compile(r"<Error>(.*?)</Error>", re.IGNORECASE | re.DOTALL)


def parse_price(raw: Any) -> Optional[Decimal]:
    """Parse a string-encoded upstream price (``"95.99"``)."""
    if raw is None or raw == "":
        return None
    try:
        price = Decimal(str(raw).strip())
    except InvalidOperation:
        return None
    return price if price.is_finite() else None


def raise_for_xml_error(
    raw_text: str,
    api_name: str = "Flight API",
    error_cls: type[PricerError] = FlightApiError,
) -> None:
    """The upstream answers errors as XML, even with HTTP 200."""
    stripped = raw_text.lstrip()
    if not (stripped.startswith("<?xml") or _XML_ERROR_RE.search(raw_text)):
        return

    match = _XML_ERROR_RE.search(raw_text)
    message = match.group(1).strip() if match else f"Unknown error from {api_name}"
    logger.error("%s error: %s", api_name, message)
    if IP_NOT_WHITELISTED in message:
        raise UpstreamAccessError(
            f"{api_name} access denied: server IP not whitelisted. "
            "Ask the API provider to add this server's IP address."
        )
    raise error_cls(f"{api_name} error: {message}")


class EuropeanFlightClient:
    """
    Client of the European GDS-style flight API.

    One request covers a whole date window and a pipe-joined set of UK
    airports; round trips and one-way flights use separate endpoints.
    """

    def __init__(
        self,
        base_url: str = "http://87.102.127.86:8119/search/searchoffers.dll",
        oneway_url: str = "http://87.102.127.86:8119/owflights/owflights.dll",
        agent_id: str = "122",
        *,
        search_timeout_s: float = 30.0,
        bulk_timeout_s: float = 60.0,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self.base_url = base_url
        self.oneway_url = oneway_url
        self.agent_id = agent_id
        self.search_timeout_s = search_timeout_s
        self.bulk_timeout_s = bulk_timeout_s
        self.rate_limiter = rate_limiter or RateLimiter(0)

    @classmethod
    def from_settings(
        cls, settings: Settings, rate_limiter: RateLimiter | None = None
    ) -> "EuropeanFlightClient":
        return cls(
            settings.flight_api_base_url,
            settings.flight_api_oneway_url,
            settings.flight_api_agent_id,
            search_timeout_s=settings.search_timeout_s,
            bulk_timeout_s=settings.bulk_timeout_s,
            rate_limiter=rate_limiter,
        )

    # ──────────────────────────────────────────────────────────

    def _get_json(self, url: str, params: dict, timeout: float) -> dict:
        self.rate_limiter.wait(url)
        try:
            resp = requests.get(
                url,
                params=params,
                timeout=timeout,
                headers={"Accept": "application/json"},
            )
        except requests.Timeout as exc:
            raise FlightApiTimeout(
                f"Flight API timed out after {timeout:.0f}s"
            ) from exc
        except requests.RequestException as exc:
            raise FlightApiError(f"Flight API request failed: {exc}") from exc

        if resp.status_code != 200:
            raise FlightApiError(f"HTTP {resp.status_code} – {resp.text[:120]}")

        raw_text = resp.text
        raise_for_xml_error(raw_text)
        try:
            return json.loads(raw_text)
        except ValueError as exc:
            raise FlightApiError(
                f"Malformed JSON from flight API: {raw_text[:120]}"
            ) from exc

    def search_flights(
        self,
        depart_airports: Sequence[str],
        arrive_airport: str,
        nights: int,
        start_date: date,
        end_date: date,
    ) -> list[FlightOffer]:
        """Return all round-trip offers for the date window."""
        params = {
            "agtid": self.agent_id,
            "page": "FLTDATE",
            "platform": "WEB",
            "depart": "|".join(depart_airports),
            "arrive": arrive_airport,
            "Startdate": format_uk_date(start_date),
            "EndDate": format_uk_date(end_date),
            "duration": str(nights),
            "output": "JSON",
        }
        logger.info(
            "Searching flights %s ➔ %s %s-%s (%s nights)",
            params["depart"],
            arrive_airport,
            params["Startdate"],
            params["EndDate"],
            nights,
        )
        data = self._get_json(self.base_url, params, self.search_timeout_s)
        if data.get("error"):
            logger.error("Flight API error: %s", data["error"])
            return []

        offers = [self._to_offer(item) for item in data.get("Offers") or []]
        offers = [off for off in offers if off]
        logger.info("Found %d flight offers", len(offers))
        return offers

    def search_one_way_flights(
        self,
        depart_airports: Sequence[str],
        arrive_airports: Sequence[str],
        start_date: date,
        end_date: date,
    ) -> list[OneWayFlight]:
        """Return one-way flights between two airport sets."""
        params = {
            "agtid": self.agent_id,
            "depart": "|".join(depart_airports),
            "Arrive": "|".join(arrive_airports),
            "startdate": format_uk_date(start_date),
            "enddate": format_uk_date(end_date),
        }
        logger.info(
            "Searching one-way flights %s ➔ %s %s-%s",
            params["depart"],
            params["Arrive"],
            params["startdate"],
            params["enddate"],
        )
        data = self._get_json(self.oneway_url, params, self.bulk_timeout_s)
        if data.get("error"):
            logger.error("One-way flight API error: %s", data["error"])
            return []

        flights = [self._to_one_way(item) for item in data.get("Flights") or []]
        flights = [f for f in flights if f]
        logger.info("Found %d one-way flights", len(flights))
        return flights

    def search_open_jaw(
        self,
        uk_airports: Sequence[str],
        arrive_airport: str,
        return_airport: str,
        travel_date: date,
        nights: int,
    ) -> list[OpenJawFlightOffer]:
        """Pair an outbound and a return one-way search by UK airport."""
        return_date = add_days(travel_date, nights)

        outbound = self.search_one_way_flights(
            uk_airports, [arrive_airport], travel_date, travel_date
        )
        returns = self.search_one_way_flights(
            [return_airport], uk_airports, return_date, return_date
        )

        out_by_airport = cheapest_by_key(
            outbound, key=lambda f: f.depart_airport, price=lambda f: f.price
        )
        ret_by_airport = cheapest_by_key(
            returns, key=lambda f: f.arrive_airport, price=lambda f: f.price
        )

        itineraries: list[OpenJawFlightOffer] = []
        for airport in uk_airports:
            out = out_by_airport.get(airport)
            ret = ret_by_airport.get(airport)
            if out is None or ret is None:
                continue
            itineraries.append(
                self._pair(out, ret, travel_date, return_date, nights)
            )
        return itineraries

    # ──────────────────────────────────────────────────────────

    def _pair(
        self,
        out: OneWayFlight,
        ret: OneWayFlight,
        travel_date: date,
        return_date: date,
        nights: int,
    ) -> OpenJawFlightOffer:
        arrival = out.arrive_at or out.depart_at
        effective = effective_arrival_from_timestamp(arrival)
        derived_return = return_search_date(arrival.date(), arrival.time(), nights)
        if derived_return != return_date:
            logger.warning(
                "%s: outbound %s lands %s, return searched %s but itinerary "
                "implies %s",
                out.depart_airport,
                out.flight_number,
                arrival.strftime("%d/%m/%Y %H:%M"),
                return_date,
                derived_return,
            )
        return OpenJawFlightOffer(
            uk_departure_airport=out.depart_airport,
            outbound_arrival_airport=out.arrive_airport,
            return_departure_airport=ret.depart_airport,
            uk_return_airport=ret.arrive_airport,
            outbound_date=travel_date,
            outbound_departure_time=out.depart_at.strftime("%H:%M"),
            outbound_arrival_date=arrival.date(),
            outbound_arrival_time=arrival.strftime("%H:%M"),
            effective_arrival_date=effective,
            return_date=derived_return,
            price_per_person=out.price + ret.price,
            outbound_airline=out.supplier,
            return_airline=ret.supplier,
            same_airline=out.supplier.lower() == ret.supplier.lower(),
            total_duration_min=None,
            outbound_stops=0,
            return_stops=0,
        )

    def _to_offer(self, item: dict) -> FlightOffer | None:
        """Map a JSON record onto a FlightOffer; incomplete rows are skipped."""
        price = parse_price(item.get("fltnetpricepp"))
        if price is None or not item.get("depapt"):
            return None
        try:
            outbound_depart = parse_uk_datetime(item.get("outdep"))
        except ValueError:
            return None
        if outbound_depart is None:
            return None

        def _ts(key: str) -> Optional[datetime]:
            try:
                return parse_uk_datetime(item.get(key))
            except ValueError:
                return None

        return FlightOffer(
            ref_num=str(item.get("Refnum", "")),
            supplier=item.get("fltsuppname", ""),
            depart_airport=item["depapt"],
            depart_airport_name=item.get("depname", ""),
            arrive_airport=item.get("arrapt", ""),
            arrive_airport_name=item.get("arrname", ""),
            outbound_depart=outbound_depart,
            outbound_arrive=_ts("outarr"),
            inbound_depart=_ts("indep"),
            inbound_arrive=_ts("inarr"),
            outbound_airline=item.get("outairlinename", ""),
            inbound_airline=item.get("inairlinename", ""),
            nights=int(item.get("nights") or 0),
            net_price_pp=price,
            sell_price_pp=parse_price(item.get("fltSellpricepp")),
        )

    def _to_one_way(self, item: dict) -> OneWayFlight | None:
        price = parse_price(item.get("Fltprice"))
        if price is None or not item.get("Depapt"):
            return None
        try:
            depart_at = parse_uk_datetime(item.get("Depart"))
            arrive_at = parse_uk_datetime(item.get("Arrive"))
        except ValueError:
            return None
        if depart_at is None:
            return None

        return OneWayFlight(
            supplier=item.get("Fltsupplier", ""),
            depart_airport=item["Depapt"],
            arrive_airport=item.get("Arrapt", ""),
            flight_number=item.get("Fltnum", ""),
            depart_at=depart_at,
            arrive_at=arrive_at,
            price=price,
        )


__all__ = [
    "EuropeanFlightClient",
    "IP_NOT_WHITELISTED",
    "parse_price",
    "raise_for_xml_error",
]
