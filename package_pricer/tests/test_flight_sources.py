from datetime import date, datetime
from decimal import Decimal
from unittest.mock import Mock

import pytest

from package_pricer.config import FlightHotelConfig, Settings
from package_pricer.errors import UpstreamAccessError
from package_pricer.flight_sources import (
    EuropeanFlightSource,
    SerpFlightSource,
    get_flight_source,
)
from package_pricer.models import OneWayFlight, OpenJawFlightOffer


def make_config(**extra):
    data = dict(
        package_id=1,
        arrival_airport="DEL",
        departure_airport="BOM",
        uk_airports=["LGW", "MAN"],
        search_start_date=date(2025, 6, 1),
        search_end_date=date(2025, 6, 1),
        cities=[{"city_name": "Delhi", "nights": 4}, {"city_name": "Mumbai", "nights": 6}],
    )
    data.update(extra)
    return FlightHotelConfig(**data)


def open_jaw(airport, price, same_airline):
    return OpenJawFlightOffer(
        uk_departure_airport=airport,
        outbound_arrival_airport="DEL",
        return_departure_airport="BOM",
        uk_return_airport=airport,
        outbound_date=date(2025, 6, 1),
        outbound_departure_time="10:00",
        outbound_arrival_date=date(2025, 6, 2),
        outbound_arrival_time="01:00",
        effective_arrival_date=date(2025, 6, 1),
        return_date=date(2025, 6, 11),
        price_per_person=Decimal(price),
        outbound_airline="BA",
        return_airline="BA" if same_airline else "AI",
        same_airline=same_airline,
        total_duration_min=None,
        outbound_stops=0,
        return_stops=0,
    )


def test_european_round_trip_uses_total_nights():
    client = Mock()
    client.search_flights.return_value = []
    source = EuropeanFlightSource(client)
    assert source.fetch_prices(date(2025, 6, 1), make_config(flight_type="roundtrip")) == {}
    client.search_flights.assert_called_once_with(
        ["LGW", "MAN"], "DEL", 10, date(2025, 6, 1), date(2025, 6, 1)
    )


def test_european_open_jaw_returns_from_departure_airport():
    client = Mock()
    client.search_open_jaw.return_value = [
        open_jaw("LGW", "500", same_airline=False),
        open_jaw("LGW", "540", same_airline=True),
    ]
    source = EuropeanFlightSource(client)
    prices = source.fetch_prices(date(2025, 6, 1), make_config(flight_type="openjaw"))

    client.search_open_jaw.assert_called_once_with(
        ["LGW", "MAN"], "DEL", "BOM", date(2025, 6, 1), 10
    )
    assert prices["LGW"].price_per_person == Decimal("540")


def test_serp_open_jaw_searches_single_date():
    client = Mock()
    client.search_open_jaw_flights.return_value = [open_jaw("MAN", "610", True)]
    source = SerpFlightSource(client)
    prices = source.fetch_prices(date(2025, 6, 1), make_config(flight_type="openjaw"))

    assert client.search_open_jaw_flights.call_args.kwargs["dates"] == [date(2025, 6, 1)]
    assert list(prices) == ["MAN"]


def test_one_way_flights_reduce_by_departure_airport():
    client = Mock()
    client.search_flights.return_value = [
        OneWayFlight("BA", "LGW", "DEL", "BA1", datetime(2025, 6, 1, 9), None, Decimal("300")),
        OneWayFlight("VS", "LGW", "DEL", "VS2", datetime(2025, 6, 1, 11), None, Decimal("280")),
    ]
    prices = EuropeanFlightSource(client).fetch_prices(
        date(2025, 6, 1), make_config(flight_type="roundtrip")
    )
    assert prices["LGW"].price_per_person == Decimal("280")


def test_get_flight_source():
    settings = Settings(SERPAPI_KEY="key")
    assert isinstance(get_flight_source("european", settings), EuropeanFlightSource)
    assert isinstance(get_flight_source("serp", settings), SerpFlightSource)
    with pytest.raises(ValueError):
        get_flight_source("amadeus", settings)


def test_serp_source_without_key_is_access_error():
    with pytest.raises(UpstreamAccessError):
        get_flight_source("serp", Settings(SERPAPI_KEY=""))
