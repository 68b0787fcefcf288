from __future__ import annotations

import json
import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from typing import Any, Callable, List, Optional, Sequence, Tuple, TypeVar

import requests

from .config import Settings
from .dates import add_days, date_range, split_iso_timestamp
from .errors import FlightApiError, FlightApiTimeout, UpstreamAccessError
from .european_fetcher import parse_price
from .models import InternalFlightOffer, OpenJawFlightOffer, SerpFlightOffer
from .open_jaw import effective_arrival_date, return_search_date
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

# Google Flights "type" parameter
ROUND_TRIP = "1"
ONE_WAY = "2"
MULTI_CITY = "3"


class SerpFlightClient:
    """
    Client of the SerpApi Google Flights engine.

    Only one outbound date fits in a request, so a search fans out into one
    call per date (per date and UK airport for open-jaw) executed in batches
    of bounded concurrency with a pause between batches.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://serpapi.com/search",
        *,
        timeout_s: float = 30.0,
        concurrency: int = 10,
        openjaw_concurrency: int = 5,
        batch_delay_s: float = 0.5,
        openjaw_batch_delay_s: float = 1.0,
        max_dates: int = 50,
        max_range_dates: int = 30,
        currency: str = "GBP",
        rate_limiter: RateLimiter | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not api_key:
            raise UpstreamAccessError(
                "SERPAPI_KEY not configured. Add your SerpApi key to the environment."
            )
        self.api_key = api_key
        self.base_url = base_url
        self.timeout_s = timeout_s
        self.concurrency = concurrency
        self.openjaw_concurrency = openjaw_concurrency
        self.batch_delay_s = batch_delay_s
        self.openjaw_batch_delay_s = openjaw_batch_delay_s
        self.max_dates = max_dates
        self.max_range_dates = max_range_dates
        self.currency = currency
        self.rate_limiter = rate_limiter or RateLimiter(0)
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls, settings: Settings, rate_limiter: RateLimiter | None = None
    ) -> "SerpFlightClient":
        return cls(
            settings.serpapi_key,
            settings.serpapi_base_url,
            timeout_s=settings.search_timeout_s,
            concurrency=settings.serp_concurrency,
            openjaw_concurrency=settings.serp_openjaw_concurrency,
            batch_delay_s=settings.serp_batch_delay_s,
            openjaw_batch_delay_s=settings.serp_openjaw_batch_delay_s,
            max_dates=settings.serp_max_dates,
            max_range_dates=settings.serp_max_range_dates,
            currency=settings.currency,
            rate_limiter=rate_limiter,
        )

    # ──────────────────────────────────────────────────────────
    # Public searches
    # ──────────────────────────────────────────────────────────

    def search_flights(
        self,
        depart_airports: Sequence[str],
        arrive_airport: str,
        nights: int,
        *,
        dates: Optional[Sequence[date]] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[SerpFlightOffer]:
        """Round-trip offers, one call per outbound date."""
        to_search = self._dates_to_search(dates, start_date, end_date)
        if not to_search:
            logger.info("No dates to search")
            return []

        departure_ids = ",".join(depart_airports)
        offers = self._run_batches(
            to_search,
            lambda d: self._fetch_round_trip(departure_ids, arrive_airport, d, nights),
            self.concurrency,
            self.batch_delay_s,
        )
        logger.info("Found %d SERP flight offers", len(offers))
        return offers

    def search_open_jaw_flights(
        self,
        uk_airports: Sequence[str],
        arrive_airport: str,
        depart_airport: str,
        nights: int,
        *,
        dates: Optional[Sequence[date]] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[OpenJawFlightOffer]:
        """Open-jaw itineraries, one multi-city call per date and UK airport."""
        to_search = self._dates_to_search(dates, start_date, end_date)
        if not to_search:
            logger.info("No dates to search")
            return []

        logger.info(
            "Open-jaw route: %s ➔ %s, %s ➔ %s over %d dates",
            ",".join(uk_airports),
            arrive_airport,
            depart_airport,
            ",".join(uk_airports),
            len(to_search),
        )
        calls: List[Tuple[date, str]] = [
            (d, uk) for d in to_search for uk in uk_airports
        ]
        offers = self._run_batches(
            calls,
            lambda call: self._fetch_open_jaw(
                call[1], arrive_airport, depart_airport, call[0], nights
            ),
            self.openjaw_concurrency,
            self.openjaw_batch_delay_s,
        )
        same = sum(1 for o in offers if o.same_airline)
        logger.info(
            "Found %d open-jaw offers (%d same airline)", len(offers), same
        )
        return offers

    def search_internal_flights(
        self, from_airport: str, to_airport: str, dates: Sequence[date]
    ) -> list[InternalFlightOffer]:
        """One-way domestic flights inside the destination country."""
        if not dates:
            logger.info("No dates to search")
            return []
        offers = self._run_batches(
            list(dates),
            lambda d: self._fetch_internal(from_airport, to_airport, d),
            self.concurrency,
            self.batch_delay_s,
        )
        logger.info(
            "Found %d internal flights %s ➔ %s", len(offers), from_airport, to_airport
        )
        return offers

    # ──────────────────────────────────────────────────────────
    # Batching
    # ──────────────────────────────────────────────────────────

    def _dates_to_search(
        self,
        dates: Optional[Sequence[date]],
        start_date: Optional[date],
        end_date: Optional[date],
    ) -> list[date]:
        if dates is not None:
            return list(dates)[: self.max_dates]
        if start_date is None or end_date is None:
            raise ValueError("Either dates or start_date/end_date are required")
        return date_range(start_date, end_date)[: self.max_range_dates]

    def _run_batches(
        self,
        items: Sequence[T],
        fetch: Callable[[T], List[R]],
        concurrency: int,
        delay_s: float,
    ) -> list[R]:
        """Run *fetch* over *items*, *concurrency* at a time.

        Results keep the input order.  A failed call is re-raised once its
        batch has finished.
        """
        results: list[R] = []
        total = math.ceil(len(items) / concurrency)
        for start in range(0, len(items), concurrency):
            batch = items[start : start + concurrency]
            logger.info(
                "Fetching batch %d/%d (%d calls)",
                start // concurrency + 1,
                total,
                len(batch),
            )
            with ThreadPoolExecutor(max_workers=len(batch)) as executor:
                futures = [executor.submit(fetch, item) for item in batch]
            for future in futures:
                results.extend(future.result())

            if start + concurrency < len(items):
                self._sleep(delay_s)
        return results

    # ──────────────────────────────────────────────────────────
    # Single calls
    # ──────────────────────────────────────────────────────────

    def _base_params(self, flight_type: str) -> dict:
        return {
            "engine": "google_flights",
            "api_key": self.api_key,
            "type": flight_type,
            "currency": self.currency,
            "gl": "uk",
            "hl": "en",
            "adults": "1",
            "stops": "1",  # direct or one connection
            "travel_class": "1",  # economy
            "sort_by": "2",  # price
        }

    def _get_json(self, params: dict) -> dict:
        self.rate_limiter.wait(self.base_url)
        try:
            resp = requests.get(
                self.base_url,
                params=params,
                timeout=self.timeout_s,
                headers={"Accept": "application/json"},
            )
        except requests.Timeout as exc:
            raise FlightApiTimeout(
                f"SERP API timed out after {self.timeout_s:.0f}s"
            ) from exc
        except requests.RequestException as exc:
            raise FlightApiError(f"SERP API request failed: {exc}") from exc

        if resp.status_code in (401, 403):
            raise UpstreamAccessError(
                f"SERP API access denied: HTTP {resp.status_code}"
            )
        if resp.status_code != 200:
            raise FlightApiError(f"HTTP {resp.status_code} – {resp.text[:120]}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise FlightApiError("Malformed JSON from SERP API") from exc

        if data.get("error"):
            # Google Flights reports "no results" through the error field
            logger.warning("SERP API error: %s", data["error"])
            return {}
        return data

    @staticmethod
    def _results(data: dict) -> list[dict]:
        return list(data.get("best_flights") or []) + list(
            data.get("other_flights") or []
        )

    @staticmethod
    def _airport(leg: dict, side: str) -> Tuple[str, str, str]:
        info = leg.get(side) or {}
        return info.get("id", ""), info.get("name", ""), info.get("time") or ""

    def _fetch_round_trip(
        self, departure_ids: str, arrive_airport: str, outbound_date: date, nights: int
    ) -> list[SerpFlightOffer]:
        return_date = add_days(outbound_date, nights)
        params = self._base_params(ROUND_TRIP)
        params.update(
            {
                "departure_id": departure_ids,
                "arrival_id": arrive_airport,
                "outbound_date": outbound_date.isoformat(),
                "return_date": return_date.isoformat(),
                "bags": "1",
            }
        )
        logger.info("SERP flights %s ➔ %s", outbound_date, return_date)
        data = self._get_json(params)

        offers: list[SerpFlightOffer] = []
        for flight in self._results(data):
            legs = flight.get("flights") or []
            price = parse_price(flight.get("price"))
            if not legs or price is None:
                continue

            dep_id, dep_name, dep_time = self._airport(legs[0], "departure_airport")
            arr_id, arr_name, arr_time = self._airport(legs[-1], "arrival_airport")
            arrival_day, arrival_clock = split_iso_timestamp(arr_time)
            _, departure_clock = split_iso_timestamp(dep_time)

            offers.append(
                SerpFlightOffer(
                    departure_airport=dep_id,
                    departure_airport_name=dep_name,
                    arrival_airport=arr_id,
                    arrival_airport_name=arr_name,
                    departure_date=outbound_date,
                    departure_time=departure_clock,
                    arrival_date=arrival_day or outbound_date,
                    arrival_time=arrival_clock,
                    return_date=return_date,
                    price_per_person=price,
                    airline=legs[0].get("airline", ""),
                    duration_min=flight.get("total_duration"),
                    stops=len(legs) - 1,
                    booking_token=flight.get("booking_token"),
                )
            )
        return offers

    def _fetch_open_jaw(
        self,
        uk_airport: str,
        arrive_airport: str,
        depart_airport: str,
        outbound_date: date,
        nights: int,
    ) -> list[OpenJawFlightOffer]:
        # The return date is not known before the arrival time is; search
        # outbound + nights and derive the real one per itinerary.
        estimated_return = add_days(outbound_date, nights)
        multi_city = [
            {
                "departure_id": uk_airport,
                "arrival_id": arrive_airport,
                "date": outbound_date.isoformat(),
            },
            {
                "departure_id": depart_airport,
                "arrival_id": uk_airport,
                "date": estimated_return.isoformat(),
            },
        ]
        params = self._base_params(MULTI_CITY)
        params.update({"multi_city_json": json.dumps(multi_city), "bags": "1"})
        logger.info(
            "SERP open-jaw %s ➔ %s, %s ➔ %s on %s",
            uk_airport,
            arrive_airport,
            depart_airport,
            uk_airport,
            outbound_date,
        )
        data = self._get_json(params)

        offers: list[OpenJawFlightOffer] = []
        for flight in self._results(data):
            offer = self._to_open_jaw(
                flight, arrive_airport, outbound_date, nights
            )
            if offer:
                offers.append(offer)
        return offers

    def _to_open_jaw(
        self, flight: dict, arrive_airport: str, outbound_date: date, nights: int
    ) -> OpenJawFlightOffer | None:
        legs: list[dict[str, Any]] = flight.get("flights") or []
        price = parse_price(flight.get("price"))
        if len(legs) < 2 or price is None:
            return None

        # outbound ends at the first leg landing at the arrival airport
        split = next(
            (
                i
                for i, leg in enumerate(legs)
                if self._airport(leg, "arrival_airport")[0] == arrive_airport
            ),
            None,
        )
        if split is None or split == len(legs) - 1:
            return None
        outbound, inbound = legs[: split + 1], legs[split + 1 :]

        uk_dep, _, dep_time = self._airport(outbound[0], "departure_airport")
        out_arr, _, out_arr_time = self._airport(outbound[-1], "arrival_airport")
        ret_dep = self._airport(inbound[0], "departure_airport")[0]
        uk_ret = self._airport(inbound[-1], "arrival_airport")[0]

        arrival_day, arrival_clock = split_iso_timestamp(out_arr_time)
        arrival_day = arrival_day or outbound_date
        effective = effective_arrival_date(arrival_day, arrival_clock)

        outbound_airline = outbound[0].get("airline") or ""
        return_airline = inbound[0].get("airline") or ""

        return OpenJawFlightOffer(
            uk_departure_airport=uk_dep,
            outbound_arrival_airport=out_arr,
            return_departure_airport=ret_dep,
            uk_return_airport=uk_ret,
            outbound_date=outbound_date,
            outbound_departure_time=split_iso_timestamp(dep_time)[1],
            outbound_arrival_date=arrival_day,
            outbound_arrival_time=arrival_clock,
            effective_arrival_date=effective,
            return_date=return_search_date(arrival_day, arrival_clock, nights),
            price_per_person=price,
            outbound_airline=outbound_airline,
            return_airline=return_airline,
            same_airline=outbound_airline.lower() == return_airline.lower(),
            total_duration_min=flight.get("total_duration"),
            outbound_stops=len(outbound) - 1,
            return_stops=len(inbound) - 1,
        )

    def _fetch_internal(
        self, from_airport: str, to_airport: str, day: date
    ) -> list[InternalFlightOffer]:
        params = self._base_params(ONE_WAY)
        params.update(
            {
                "departure_id": from_airport,
                "arrival_id": to_airport,
                "outbound_date": day.isoformat(),
            }
        )
        logger.info("SERP internal %s ➔ %s on %s", from_airport, to_airport, day)
        data = self._get_json(params)

        offers: list[InternalFlightOffer] = []
        for flight in self._results(data):
            legs = flight.get("flights") or []
            price = parse_price(flight.get("price"))
            if not legs or price is None:
                continue
            dep_id, _, dep_time = self._airport(legs[0], "departure_airport")
            arr_id, _, arr_time = self._airport(legs[-1], "arrival_airport")
            offers.append(
                InternalFlightOffer(
                    from_airport=dep_id,
                    to_airport=arr_id,
                    date=day,
                    departure_time=split_iso_timestamp(dep_time)[1],
                    arrival_time=split_iso_timestamp(arr_time)[1],
                    price_per_person=price,
                    airline=legs[0].get("airline", ""),
                    duration_min=flight.get("total_duration"),
                    stops=len(legs) - 1,
                )
            )
        return offers


__all__ = ["SerpFlightClient", "ROUND_TRIP", "ONE_WAY", "MULTI_CITY"]
