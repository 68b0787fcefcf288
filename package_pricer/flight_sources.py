from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import date
from typing import Dict

from .config import FlightHotelConfig, Settings
from .european_fetcher import EuropeanFlightClient
from .models import NormalizedFlightPrice
from .normalizer import (
    cheapest_by_date_and_airport,
    cheapest_open_jaw_by_date_and_airport,
    prices_for_date,
)
from .rate_limiter import RateLimiter
from .serp_fetcher import SerpFlightClient

logger = logging.getLogger(__name__)


class FlightSource(ABC):
    """Cheapest flight per UK airport for one travel date."""

    name: str = ""

    def __init__(self, prefer_same_airline: bool = True) -> None:
        self.prefer_same_airline = prefer_same_airline

    def fetch_prices(
        self, travel_date: date, config: FlightHotelConfig
    ) -> Dict[str, NormalizedFlightPrice]:
        if config.flight_type == "openjaw":
            prices = self._fetch_open_jaw(travel_date, config)
        else:
            prices = self._fetch_round_trip(travel_date, config)
        logger.info(
            "[%s] %s: flights from %d airport(s)", self.name, travel_date, len(prices)
        )
        return prices

    @abstractmethod
    def _fetch_round_trip(
        self, travel_date: date, config: FlightHotelConfig
    ) -> Dict[str, NormalizedFlightPrice]:
        ...

    @abstractmethod
    def _fetch_open_jaw(
        self, travel_date: date, config: FlightHotelConfig
    ) -> Dict[str, NormalizedFlightPrice]:
        ...


class EuropeanFlightSource(FlightSource):
    name = "european"

    def __init__(
        self, client: EuropeanFlightClient, prefer_same_airline: bool = True
    ) -> None:
        super().__init__(prefer_same_airline)
        self.client = client

    def _fetch_round_trip(self, travel_date, config):
        offers = self.client.search_flights(
            config.uk_airports,
            config.arrival_airport,
            config.total_nights,
            travel_date,
            travel_date,
        )
        return prices_for_date(cheapest_by_date_and_airport(offers), travel_date)

    def _fetch_open_jaw(self, travel_date, config):
        offers = self.client.search_open_jaw(
            config.uk_airports,
            config.arrival_airport,
            config.return_airport,
            travel_date,
            config.total_nights,
        )
        cheapest = cheapest_open_jaw_by_date_and_airport(
            offers, self.prefer_same_airline
        )
        return prices_for_date(cheapest, travel_date)


class SerpFlightSource(FlightSource):
    name = "serp"

    def __init__(
        self, client: SerpFlightClient, prefer_same_airline: bool = True
    ) -> None:
        super().__init__(prefer_same_airline)
        self.client = client

    def _fetch_round_trip(self, travel_date, config):
        offers = self.client.search_flights(
            config.uk_airports,
            config.arrival_airport,
            config.total_nights,
            dates=[travel_date],
        )
        return prices_for_date(cheapest_by_date_and_airport(offers), travel_date)

    def _fetch_open_jaw(self, travel_date, config):
        offers = self.client.search_open_jaw_flights(
            config.uk_airports,
            config.arrival_airport,
            config.return_airport,
            config.total_nights,
            dates=[travel_date],
        )
        cheapest = cheapest_open_jaw_by_date_and_airport(
            offers, self.prefer_same_airline
        )
        return prices_for_date(cheapest, travel_date)


def get_flight_source(
    name: str, settings: Settings, rate_limiter: RateLimiter | None = None
) -> FlightSource:
    """Build the flight source selected by a package's ``flight_api_source``."""
    if name == "european":
        return EuropeanFlightSource(
            EuropeanFlightClient.from_settings(settings, rate_limiter)
        )
    if name == "serp":
        return SerpFlightSource(SerpFlightClient.from_settings(settings, rate_limiter))
    raise ValueError(f"Unknown flight API source: {name!r}")


__all__ = [
    "FlightSource",
    "EuropeanFlightSource",
    "SerpFlightSource",
    "get_flight_source",
]
