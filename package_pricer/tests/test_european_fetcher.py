import json
from datetime import date, datetime
from decimal import Decimal
from unittest.mock import Mock, patch

import pytest
import requests

from package_pricer.errors import FlightApiError, FlightApiTimeout, UpstreamAccessError
from package_pricer.european_fetcher import EuropeanFlightClient, parse_price


def make_response(payload, status_code=200):
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return Mock(status_code=status_code, text=text)


def make_offer(depapt, price, **extra):
    row = {
        "Refnum": f"R-{depapt}-{price}",
        "fltsuppname": "Jet2",
        "depapt": depapt,
        "depname": depapt,
        "arrapt": "ATH",
        "arrname": "Athens",
        "outdep": "01/06/2025 07:30",
        "outarr": "01/06/2025 13:40",
        "indep": "08/06/2025 14:30",
        "inarr": "08/06/2025 16:50",
        "outairlinename": "Jet2.com",
        "inairlinename": "Jet2.com",
        "nights": "7",
        "fltnetpricepp": price,
        "fltSellpricepp": "",
    }
    row.update(extra)
    return row


def make_one_way(depapt, arrapt, depart, arrive, price, supplier="BA"):
    return {
        "Fltsupplier": supplier,
        "Depapt": depapt,
        "Arrapt": arrapt,
        "Fltnum": f"{supplier}100",
        "Depart": depart,
        "Arrive": arrive,
        "Fltprice": price,
    }


def test_parse_price():
    assert parse_price("95.99") == Decimal("95.99")
    assert parse_price(120) == Decimal("120")
    assert parse_price("") is None
    assert parse_price("n/a") is None
    assert parse_price(None) is None


@patch("requests.get")
def test_search_flights_parses_offers(mock_get):
    mock_get.return_value = make_response(
        {
            "Offers": [
                make_offer("LGW", "200.00"),
                make_offer("LGW", "180.00"),
                make_offer("MAN", "220.00"),
                make_offer("", "99.00"),
                make_offer("STN", "not-a-price"),
            ]
        }
    )
    client = EuropeanFlightClient("http://flights.test/search", agent_id="122")
    offers = client.search_flights(
        ["LGW", "MAN"], "ATH", 7, date(2025, 6, 1), date(2025, 6, 1)
    )

    assert [o.net_price_pp for o in offers] == [
        Decimal("200.00"),
        Decimal("180.00"),
        Decimal("220.00"),
    ]
    first = offers[0]
    assert first.outbound_depart == datetime(2025, 6, 1, 7, 30)
    assert first.depart_date == date(2025, 6, 1)
    assert first.outbound_airline == "Jet2.com"
    assert first.sell_price_pp is None

    params = mock_get.call_args.kwargs["params"]
    assert params["depart"] == "LGW|MAN"
    assert params["arrive"] == "ATH"
    assert params["Startdate"] == "01/06/2025"
    assert params["EndDate"] == "01/06/2025"
    assert params["duration"] == "7"
    assert params["page"] == "FLTDATE"
    assert params["output"] == "JSON"
    assert mock_get.call_args.kwargs["timeout"] == 30.0


@patch("requests.get")
def test_error_field_yields_no_offers(mock_get):
    mock_get.return_value = make_response({"error": "No flights"})
    client = EuropeanFlightClient("http://flights.test/search")
    assert client.search_flights(["LGW"], "ATH", 7, date(2025, 6, 1), date(2025, 6, 1)) == []


@patch("requests.get")
def test_xml_error_body_raises(mock_get):
    mock_get.return_value = make_response(
        '<?xml version="1.0"?><Response><Error>Invalid destination</Error></Response>'
    )
    client = EuropeanFlightClient("http://flights.test/search")
    with pytest.raises(FlightApiError, match="Invalid destination"):
        client.search_flights(["LGW"], "XXX", 7, date(2025, 6, 1), date(2025, 6, 1))


@patch("requests.get")
def test_ip_not_whitelisted_is_access_error(mock_get):
    mock_get.return_value = make_response(
        "<Error>IP Address Does Not Match 10.0.0.1</Error>"
    )
    client = EuropeanFlightClient("http://flights.test/search")
    with pytest.raises(UpstreamAccessError, match="whitelisted"):
        client.search_flights(["LGW"], "ATH", 7, date(2025, 6, 1), date(2025, 6, 1))


@patch("requests.get")
def test_timeout_raises_timeout_error(mock_get):
    mock_get.side_effect = requests.Timeout("slow")
    client = EuropeanFlightClient("http://flights.test/search")
    with pytest.raises(FlightApiTimeout):
        client.search_flights(["LGW"], "ATH", 7, date(2025, 6, 1), date(2025, 6, 1))


@patch("requests.get")
def test_http_and_json_errors(mock_get):
    client = EuropeanFlightClient("http://flights.test/search")

    mock_get.return_value = make_response("Server exploded", status_code=500)
    with pytest.raises(FlightApiError, match="HTTP 500"):
        client.search_flights(["LGW"], "ATH", 7, date(2025, 6, 1), date(2025, 6, 1))

    mock_get.return_value = make_response("{not json")
    with pytest.raises(FlightApiError, match="Malformed JSON"):
        client.search_flights(["LGW"], "ATH", 7, date(2025, 6, 1), date(2025, 6, 1))


@patch("requests.get")
def test_one_way_uses_bulk_timeout(mock_get):
    mock_get.return_value = make_response(
        {
            "Flights": [
                make_one_way("LGW", "DEL", "01/06/2025 10:00", "02/06/2025 01:30", "310.00"),
                make_one_way("MAN", "DEL", "01/06/2025 11:00", "", "290.00"),
            ]
        }
    )
    client = EuropeanFlightClient(
        "http://flights.test/search", "http://flights.test/oneway", bulk_timeout_s=60
    )
    flights = client.search_one_way_flights(
        ["LGW", "MAN"], ["DEL"], date(2025, 6, 1), date(2025, 6, 1)
    )
    assert len(flights) == 2
    assert flights[0].arrive_at == datetime(2025, 6, 2, 1, 30)
    assert flights[1].arrive_at is None
    assert mock_get.call_args.args[0] == "http://flights.test/oneway"
    assert mock_get.call_args.kwargs["params"]["Arrive"] == "DEL"
    assert mock_get.call_args.kwargs["timeout"] == 60


@patch("requests.get")
def test_open_jaw_pairs_by_uk_airport(mock_get):
    outbound = make_response(
        {
            "Flights": [
                make_one_way("LGW", "DEL", "01/06/2025 10:00", "02/06/2025 01:30", "320.00"),
                make_one_way("LGW", "DEL", "01/06/2025 12:00", "02/06/2025 03:30", "300.00"),
                make_one_way("MAN", "DEL", "01/06/2025 11:00", "02/06/2025 02:00", "290.00"),
            ]
        }
    )
    returns = make_response(
        {
            "Flights": [
                make_one_way(
                    "BOM", "LGW", "11/06/2025 03:00", "11/06/2025 08:30", "280.00", "AI"
                ),
            ]
        }
    )
    mock_get.side_effect = [outbound, returns]

    client = EuropeanFlightClient("http://flights.test/search", "http://flights.test/oneway")
    itineraries = client.search_open_jaw(
        ["LGW", "MAN"], "DEL", "BOM", date(2025, 6, 1), 10
    )

    # MAN has no return flight, so it cannot be paired
    assert len(itineraries) == 1
    pair = itineraries[0]
    assert pair.uk_departure_airport == "LGW"
    assert pair.uk_return_airport == "LGW"
    assert pair.return_departure_airport == "BOM"
    assert pair.price_per_person == Decimal("580.00")
    assert pair.outbound_arrival_time == "03:30"
    assert pair.effective_arrival_date == date(2025, 6, 1)
    assert pair.return_date == date(2025, 6, 11)
    assert pair.same_airline is False

    return_params = mock_get.call_args_list[1].kwargs["params"]
    assert return_params["depart"] == "BOM"
    assert return_params["Arrive"] == "LGW|MAN"
    assert return_params["startdate"] == "11/06/2025"
