"""Data models used throughout the project."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, List, Literal, Optional, Tuple

RoomType = Literal["twin", "single"]
ROOM_TYPES: Tuple[RoomType, ...] = ("twin", "single")


@dataclass(frozen=True, slots=True)
class FlightOffer:
    """Round-trip offer from the European flight API."""

    ref_num: str
    supplier: str
    depart_airport: str
    depart_airport_name: str
    arrive_airport: str
    arrive_airport_name: str
    outbound_depart: datetime
    outbound_arrive: Optional[datetime]
    inbound_depart: Optional[datetime]
    inbound_arrive: Optional[datetime]
    outbound_airline: str
    inbound_airline: str
    nights: int
    net_price_pp: Decimal
    sell_price_pp: Optional[Decimal] = None

    @property
    def depart_date(self) -> date:
        return self.outbound_depart.date()


@dataclass(frozen=True, slots=True)
class OneWayFlight:
    supplier: str
    depart_airport: str
    arrive_airport: str
    flight_number: str
    depart_at: datetime
    arrive_at: Optional[datetime]
    price: Decimal

    @property
    def depart_date(self) -> date:
        return self.depart_at.date()


@dataclass(frozen=True, slots=True)
class SerpFlightOffer:
    """Round-trip offer from the Google Flights style API."""

    departure_airport: str
    departure_airport_name: str
    arrival_airport: str
    arrival_airport_name: str
    departure_date: date
    departure_time: str
    arrival_date: date
    arrival_time: str
    return_date: date
    price_per_person: Decimal
    airline: str
    duration_min: Optional[int]
    stops: int
    booking_token: Optional[str] = None


@dataclass(frozen=True, slots=True)
class OpenJawFlightOffer:
    uk_departure_airport: str
    outbound_arrival_airport: str
    return_departure_airport: str
    uk_return_airport: str
    outbound_date: date
    outbound_departure_time: str
    outbound_arrival_date: date
    outbound_arrival_time: str
    effective_arrival_date: date
    return_date: date
    price_per_person: Decimal
    outbound_airline: str
    return_airline: str
    same_airline: bool
    total_duration_min: Optional[int]
    outbound_stops: int
    return_stops: int


@dataclass(frozen=True, slots=True)
class InternalFlightOffer:
    """One-way domestic flight inside the destination country."""

    from_airport: str
    to_airport: str
    date: date
    departure_time: str
    arrival_time: str
    price_per_person: Decimal
    airline: str
    duration_min: Optional[int]
    stops: int


@dataclass(frozen=True, slots=True)
class NormalizedFlightPrice:
    date: date
    departure_airport: str
    price_per_person: Decimal
    source_offer: Any = None


@dataclass(frozen=True, slots=True)
class HotelOffer:
    hotel_code: str
    hotel_name: str
    star_rating: int
    city: str
    board_basis: str
    room_type: str
    check_in: date
    check_out: date
    nights: int
    total_price: Decimal
    currency: str = "GBP"
    availability: int = 0
    ref_num: str = ""


@dataclass(frozen=True, slots=True)
class ResolvedHotelStay:
    city_name: str
    hotel_code: str
    hotel_name: str
    star_rating: int
    board_basis: str
    check_in: date
    check_out: date
    nights: int
    room_type: str
    price_per_room: Decimal
    price_per_person: Decimal

    def to_dict(self) -> dict:
        data = asdict(self)
        data["check_in"] = self.check_in.isoformat()
        data["check_out"] = self.check_out.isoformat()
        data["price_per_room"] = str(self.price_per_room)
        data["price_per_person"] = str(self.price_per_person)
        return data


@dataclass(frozen=True, slots=True)
class CombinedPriceResult:
    date: str  # DD/MM/YYYY
    iso_date: str  # YYYY-MM-DD
    flight_price_per_person: Decimal
    hotel_cost_per_person: Decimal
    subtotal: Decimal
    markup_percent: Decimal
    markup_amount: Decimal
    after_markup: Decimal
    final_price: Decimal
    currency: str = "GBP"
    flight_details: Any = None
    hotel_stays: Tuple[ResolvedHotelStay, ...] = ()


@dataclass(frozen=True, slots=True)
class FlightHotelPriceRecord:
    """One cell of the persisted price matrix."""

    package_id: int
    travel_date: date
    uk_airport: str
    room_type: RoomType
    price: CombinedPriceResult
    hotels: Tuple[ResolvedHotelStay, ...]
    airline_name: Optional[str] = None


@dataclass(slots=True)
class RunResult:
    success: bool
    prices_calculated: int
    errors: List[str] = field(default_factory=list)


__all__ = [
    "RoomType",
    "ROOM_TYPES",
    "FlightOffer",
    "OneWayFlight",
    "SerpFlightOffer",
    "OpenJawFlightOffer",
    "InternalFlightOffer",
    "NormalizedFlightPrice",
    "HotelOffer",
    "ResolvedHotelStay",
    "CombinedPriceResult",
    "FlightHotelPriceRecord",
    "RunResult",
]
