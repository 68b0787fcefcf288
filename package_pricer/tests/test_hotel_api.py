import json
from datetime import date
from decimal import Decimal
from unittest.mock import Mock, patch

import pytest

from package_pricer.errors import HotelApiError, UpstreamAccessError
from package_pricer.hotel_api import HotelApiClient, get_cheapest_hotel


def make_response(payload, status_code=200):
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return Mock(status_code=status_code, text=text)


def hotel_row(code, price, **extra):
    row = {
        "hotelCode": code,
        "hotelName": f"Hotel {code}",
        "starRating": "4",
        "city": "Athens",
        "boardBasis": "BB",
        "roomType": "Twin",
        "checkIn": "01/06/2025",
        "checkOut": "08/06/2025",
        "nights": "7",
        "totalPrice": price,
        "currency": "GBP",
        "availability": "3",
        "refNum": f"REF-{code}",
    }
    row.update(extra)
    return row


@patch("requests.get")
def test_search_hotels_params_and_parsing(mock_get):
    mock_get.return_value = make_response(
        {"Hotels": [hotel_row("ATH1", "840.00"), hotel_row("ATH2", "")]}
    )
    client = HotelApiClient("http://hotels.test/search", "122")
    offers = client.search_hotels(
        "ATH",
        date(2025, 6, 1),
        date(2025, 6, 8),
        2,
        star_rating=4,
        board_basis="BB",
        hotel_codes=["ATH1", "ATH2"],
    )

    assert len(offers) == 1
    offer = offers[0]
    assert offer.hotel_code == "ATH1"
    assert offer.star_rating == 4
    assert offer.total_price == Decimal("840.00")
    assert offer.check_in == date(2025, 6, 1)
    assert offer.nights == 7

    params = mock_get.call_args.kwargs["params"]
    assert params["checkin"] == "01/06/2025"
    assert params["checkout"] == "08/06/2025"
    assert params["adults"] == "2"
    assert params["stars"] == "4"
    assert params["board"] == "BB"
    assert params["hotels"] == "ATH1|ATH2"


@patch("requests.get")
def test_optional_filters_are_omitted(mock_get):
    mock_get.return_value = make_response({"Hotels": []})
    client = HotelApiClient("http://hotels.test/search")
    assert client.search_hotels("ATH", date(2025, 6, 1), date(2025, 6, 8), 1) == []
    params = mock_get.call_args.kwargs["params"]
    assert "stars" not in params
    assert "board" not in params
    assert "hotels" not in params


@patch("requests.get")
def test_xml_errors(mock_get):
    client = HotelApiClient("http://hotels.test/search")

    mock_get.return_value = make_response("<Error>No availability</Error>")
    with pytest.raises(HotelApiError, match="No availability"):
        client.search_hotels("ATH", date(2025, 6, 1), date(2025, 6, 8), 2)

    mock_get.return_value = make_response(
        "<?xml version='1.0'?><Error>IP Address Does Not Match</Error>"
    )
    with pytest.raises(UpstreamAccessError):
        client.search_hotels("ATH", date(2025, 6, 1), date(2025, 6, 8), 2)


@patch("requests.get")
def test_http_error(mock_get):
    mock_get.return_value = make_response("Bad gateway", status_code=502)
    client = HotelApiClient("http://hotels.test/search")
    with pytest.raises(HotelApiError, match="HTTP 502"):
        client.search_hotels("ATH", date(2025, 6, 1), date(2025, 6, 8), 2)


def test_get_cheapest_hotel_first_wins_tie():
    client = HotelApiClient("http://hotels.test/search")
    with patch("requests.get") as mock_get:
        mock_get.return_value = make_response(
            {
                "Hotels": [
                    hotel_row("A", "500"),
                    hotel_row("B", "450"),
                    hotel_row("C", "450"),
                ]
            }
        )
        offers = client.search_hotels("ATH", date(2025, 6, 1), date(2025, 6, 8), 2)
    assert client.get_cheapest_hotel(offers).hotel_code == "B"
    assert get_cheapest_hotel([]) is None
