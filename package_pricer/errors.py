from __future__ import annotations


class PricerError(RuntimeError):
    """Base class for pricing engine errors."""


class UpstreamAccessError(PricerError):
    """Upstream refuses every request (IP not whitelisted, missing key)."""


class FlightApiError(PricerError):
    """Error talking to a flight price API."""


class FlightApiTimeout(FlightApiError):
    """Flight API did not answer within the request timeout."""


class HotelApiError(PricerError):
    """Error talking to the hotel search API."""


class HotelResolutionError(PricerError):
    """A leg of the itinerary could not be matched to a hotel."""

    def __init__(self, city_name: str, message: str) -> None:
        super().__init__(message)
        self.city_name = city_name


class HotelNotAvailableError(HotelResolutionError):
    """The exact hotel required by a leg was not offered for its dates."""


class NoHotelFoundError(HotelResolutionError):
    """No hotel matched the star rating / board basis criteria."""


__all__ = [
    "PricerError",
    "UpstreamAccessError",
    "FlightApiError",
    "FlightApiTimeout",
    "HotelApiError",
    "HotelResolutionError",
    "HotelNotAvailableError",
    "NoHotelFoundError",
]
