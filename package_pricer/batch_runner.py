"""
batch_runner – price every date of a package's search window.

Per date, in ascending order:

    fetch flights ➔ twin hotels ➔ persist twin ➔ single hotels ➔ persist single

A date without flights yields no records and no error.  A hotel that cannot
be resolved aborts one room-type pass, any other failure aborts the date; both
end up in ``RunResult.errors`` and the run moves on.  Only an access error
(e.g. a non-whitelisted IP) stops the whole run.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Protocol

from .config import FlightHotelConfig, Settings, get_settings
from .dates import iter_dates
from .db import SqliteStorage
from .errors import HotelResolutionError, UpstreamAccessError
from .flight_sources import FlightSource, get_flight_source
from .hotel_api import HotelApiClient
from .hotel_resolver import HotelItineraryResolver
from .models import (
    ROOM_TYPES,
    FlightHotelPriceRecord,
    FlightOffer,
    NormalizedFlightPrice,
    OpenJawFlightOffer,
    RoomType,
    RunResult,
    SerpFlightOffer,
)
from .pricing import combine_prices
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


class PriceStorage(Protocol):
    def insert_flight_hotel_price(self, record: FlightHotelPriceRecord) -> Any:
        ...


def airline_name(offer: Any) -> Optional[str]:
    """Best-effort airline label of a flight offer of any source."""
    if isinstance(offer, FlightOffer):
        return offer.outbound_airline or offer.supplier or None
    if isinstance(offer, SerpFlightOffer):
        return offer.airline or None
    if isinstance(offer, OpenJawFlightOffer):
        if offer.same_airline:
            return offer.outbound_airline or None
        return f"{offer.outbound_airline} / {offer.return_airline}"
    return None


def calculate_flight_hotel_prices(
    config: FlightHotelConfig,
    *,
    flight_source: FlightSource,
    hotel_resolver: HotelItineraryResolver,
    storage: PriceStorage,
    date_pause_s: float = 2.0,
    sleep: Callable[[float], None] = time.sleep,
    cancel: Optional[threading.Event] = None,
) -> RunResult:
    """Price every date of *config* and persist one record per cell."""
    logger.info(
        "Pricing package %s: %s ➔ %s, %s - %s (%s, %s)",
        config.package_id,
        ",".join(config.uk_airports),
        config.arrival_airport,
        config.search_start_date,
        config.search_end_date,
        config.flight_type,
        flight_source.name,
    )
    errors: List[str] = []
    prices_calculated = 0

    def saved(n: int) -> None:
        nonlocal prices_calculated
        prices_calculated += n

    for travel_date in iter_dates(config.search_start_date, config.search_end_date):
        if cancel is not None and cancel.is_set():
            logger.warning("Run cancelled before %s", travel_date)
            break

        try:
            _price_date(
                travel_date, config, flight_source, hotel_resolver, storage,
                errors, saved,
            )
        except UpstreamAccessError:
            logger.error("Upstream access denied, aborting run")
            raise
        except Exception as exc:
            logger.warning("%s: failed: %s", travel_date, exc)
            errors.append(f"{travel_date.isoformat()}: {exc}")

        if date_pause_s:
            sleep(date_pause_s)

    logger.info(
        "Package %s: %d prices calculated, %d errors",
        config.package_id,
        prices_calculated,
        len(errors),
    )
    return RunResult(
        success=not errors, prices_calculated=prices_calculated, errors=errors
    )


def _price_date(
    travel_date: date,
    config: FlightHotelConfig,
    flight_source: FlightSource,
    hotel_resolver: HotelItineraryResolver,
    storage: PriceStorage,
    errors: List[str],
    on_saved: Callable[[int], None],
) -> None:
    flights = flight_source.fetch_prices(travel_date, config)
    if not flights:
        logger.info("%s: no flights found, skipping", travel_date)
        return

    for room_type in ROOM_TYPES:
        try:
            # legs start on the outbound date, not the open-jaw effective arrival
            stays = hotel_resolver.resolve(config.cities, travel_date, room_type)
        except HotelResolutionError as exc:
            logger.warning("%s (%s): %s", travel_date, room_type, exc)
            errors.append(f"{travel_date.isoformat()} ({room_type}): {exc}")
            continue
        _persist(travel_date, room_type, flights, stays, config, storage, on_saved)


def _persist(
    travel_date: date,
    room_type: RoomType,
    flights: Dict[str, NormalizedFlightPrice],
    stays,
    config: FlightHotelConfig,
    storage: PriceStorage,
    on_saved: Callable[[int], None],
) -> None:
    for airport, flight in flights.items():
        price = combine_prices(
            flight.price_per_person,
            stays,
            config.markup,
            travel_date,
            flight_details=flight.source_offer,
        )
        storage.insert_flight_hotel_price(
            FlightHotelPriceRecord(
                package_id=config.package_id,
                travel_date=travel_date,
                uk_airport=airport,
                room_type=room_type,
                price=price,
                hotels=price.hotel_stays,
                airline_name=airline_name(flight.source_offer),
            )
        )
        on_saved(1)
        logger.info(
            "%s %s (%s): £%s", travel_date, airport, room_type, price.final_price
        )


def run_package(
    config: FlightHotelConfig,
    settings: Optional[Settings] = None,
    *,
    db_path: Optional[str] = None,
    cancel: Optional[threading.Event] = None,
) -> RunResult:
    """Wire the upstream clients and SQLite storage, then price *config*."""
    settings = settings or get_settings()
    rate_limiter = RateLimiter(settings.min_request_interval_s)
    hotel_api = HotelApiClient.from_settings(settings, rate_limiter)
    return calculate_flight_hotel_prices(
        config,
        flight_source=get_flight_source(
            config.flight_api_source, settings, rate_limiter
        ),
        hotel_resolver=HotelItineraryResolver(
            hotel_api, leg_pause_s=settings.hotel_leg_pause_s
        ),
        storage=SqliteStorage(db_path or settings.db_path),
        date_pause_s=settings.date_pause_s,
        cancel=cancel,
    )


__all__ = [
    "calculate_flight_hotel_prices",
    "run_package",
    "airline_name",
    "PriceStorage",
]
