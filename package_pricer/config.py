from __future__ import annotations

import json
import pathlib
from datetime import date, datetime
from functools import lru_cache
from typing import List, Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()

DEFAULT_UK_AIRPORTS = ["LGW", "STN", "LTN", "LHR", "MAN", "BHX"]


def _split_codes(v):
    if isinstance(v, str):
        v = v.strip()
        if v.startswith("["):
            return json.loads(v)
        return [a.strip() for a in v.replace("|", ",").split(",") if a.strip()]
    return v


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(populate_by_name=True)

    flight_api_base_url: str = Field(
        "http://87.102.127.86:8119/search/searchoffers.dll",
        alias="FLIGHT_API_BASE_URL",
    )
    flight_api_oneway_url: str = Field(
        "http://87.102.127.86:8119/owflights/owflights.dll",
        alias="FLIGHT_API_ONEWAY_URL",
    )
    flight_api_agent_id: str = Field("122", alias="FLIGHT_API_AGENT_ID")
    hotel_api_base_url: str = Field(
        "http://87.102.127.86:8119/hotels/search.dll", alias="HOTEL_API_BASE_URL"
    )
    serpapi_key: str = Field("", alias="SERPAPI_KEY")
    serpapi_base_url: str = Field(
        "https://serpapi.com/search", alias="SERPAPI_BASE_URL"
    )
    db_path: str = Field("pricer.db", alias="PRICER_DB")

    search_timeout_s: float = Field(30.0, alias="SEARCH_TIMEOUT_S")
    bulk_timeout_s: float = Field(60.0, alias="BULK_TIMEOUT_S")
    min_request_interval_s: float = Field(0.5, alias="MIN_REQUEST_INTERVAL_S")

    serp_concurrency: int = Field(10, alias="SERP_CONCURRENCY")
    serp_openjaw_concurrency: int = Field(5, alias="SERP_OPENJAW_CONCURRENCY")
    serp_batch_delay_s: float = Field(0.5, alias="SERP_BATCH_DELAY_S")
    serp_openjaw_batch_delay_s: float = Field(
        1.0, alias="SERP_OPENJAW_BATCH_DELAY_S"
    )
    serp_max_dates: int = Field(50, alias="SERP_MAX_DATES")
    serp_max_range_dates: int = Field(30, alias="SERP_MAX_RANGE_DATES")

    hotel_leg_pause_s: float = Field(1.0, alias="HOTEL_LEG_PAUSE_S")
    date_pause_s: float = Field(2.0, alias="DATE_PAUSE_S")

    currency: str = Field("GBP", alias="CURRENCY")
    uk_airports: List[str] = Field(
        default_factory=lambda: list(DEFAULT_UK_AIRPORTS), alias="UK_AIRPORTS"
    )

    @field_validator(
        "serp_concurrency",
        "serp_openjaw_concurrency",
        "serp_max_dates",
        "serp_max_range_dates",
    )
    @classmethod
    def _positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("value must be greater than 0")
        return v

    @field_validator(
        "search_timeout_s",
        "bulk_timeout_s",
        "min_request_interval_s",
        "serp_batch_delay_s",
        "serp_openjaw_batch_delay_s",
        "hotel_leg_pause_s",
        "date_pause_s",
    )
    @classmethod
    def _non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("value must not be negative")
        return v

    @field_validator("uk_airports", mode="before")
    @classmethod
    def _split_airports(cls, v):
        return _split_codes(v)

    @field_validator("uk_airports")
    @classmethod
    def _uk_codes(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("UK_AIRPORTS must not be empty")
        return [_airport_code(a) for a in v]


@lru_cache()
def get_settings() -> Settings:
    """Return application settings loaded from the environment."""
    return Settings()  # type: ignore[call-arg]


# ────────────────────────────────────────────────────────────────
# Package configuration (one JSON document per flight+hotel package)
# ────────────────────────────────────────────────────────────────


def _parse_config_date(v):
    if isinstance(v, str) and "/" in v:
        return datetime.strptime(v, "%d/%m/%Y").date()
    return v


def _airport_code(v: str) -> str:
    code = v.strip().upper()
    if len(code) != 3 or not code.isalpha():
        raise ValueError(f"invalid airport code: {v!r}")
    return code


class CityConfig(BaseModel):
    """One leg of the land itinerary."""

    city_name: str
    city_code: Optional[str] = None
    nights: int = Field(..., ge=1)
    star_rating: Optional[int] = Field(None, ge=1, le=5)
    board_basis: str = ""
    hotel_codes: List[str] = Field(default_factory=list)
    hotel_code: Optional[str] = None

    @model_validator(mode="after")
    def _one_mode(self) -> "CityConfig":
        if self.hotel_code and self.hotel_codes:
            raise ValueError(
                f"{self.city_name}: use either hotel_code or hotel_codes, not both"
            )
        return self

    @property
    def destination(self) -> str:
        return self.city_code or self.city_name

    @property
    def is_specific(self) -> bool:
        return bool(self.hotel_code)


class FlightHotelConfig(BaseModel):
    """Flight + hotel package definition."""

    package_id: int
    arrival_airport: str
    departure_airport: Optional[str] = None
    # defaults to the UK_AIRPORTS setting
    uk_airports: List[str] = Field(
        default_factory=lambda: list(get_settings().uk_airports)
    )
    flight_type: Literal["roundtrip", "openjaw"] = "roundtrip"
    flight_api_source: Literal["european", "serp"] = "european"
    search_start_date: date
    search_end_date: date
    markup: float = Field(15.0, ge=0, le=100)
    cities: List[CityConfig]
    auto_refresh_enabled: bool = False

    @field_validator("arrival_airport")
    @classmethod
    def _arrival_code(cls, v: str) -> str:
        return _airport_code(v)

    @field_validator("departure_airport")
    @classmethod
    def _departure_code(cls, v: Optional[str]) -> Optional[str]:
        return _airport_code(v) if v else None

    @field_validator("uk_airports", mode="before")
    @classmethod
    def _split_airports(cls, v):
        return _split_codes(v)

    @field_validator("uk_airports")
    @classmethod
    def _uk_codes(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("at least one UK airport is required")
        return [_airport_code(a) for a in v]

    @field_validator("search_start_date", "search_end_date", mode="before")
    @classmethod
    def _dates(cls, v):
        return _parse_config_date(v)

    @field_validator("cities")
    @classmethod
    def _cities_non_empty(cls, v: List[CityConfig]) -> List[CityConfig]:
        if not v:
            raise ValueError("at least one city is required")
        return v

    @model_validator(mode="after")
    def _date_order(self) -> "FlightHotelConfig":
        if self.search_end_date < self.search_start_date:
            raise ValueError("search_end_date is before search_start_date")
        return self

    @property
    def total_nights(self) -> int:
        return sum(city.nights for city in self.cities)

    @property
    def return_airport(self) -> str:
        """Airport the return leg departs from (open-jaw) or the arrival one."""
        return self.departure_airport or self.arrival_airport

    @classmethod
    def from_json(cls, path: str | pathlib.Path) -> "FlightHotelConfig":
        with open(path, "r", encoding="utf-8") as fh:
            return cls.model_validate(json.load(fh))


__all__ = [
    "Settings",
    "get_settings",
    "CityConfig",
    "FlightHotelConfig",
    "DEFAULT_UK_AIRPORTS",
]
