import sqlite3
from datetime import date
from decimal import Decimal

from package_pricer.db import (
    SqliteStorage,
    get_flight_hotel_prices,
    init_db,
    insert_flight_hotel_price,
    migrate,
)
from package_pricer.models import FlightHotelPriceRecord, ResolvedHotelStay
from package_pricer.pricing import combine_prices


def make_record(final_flight="180", room_type="twin", airport="LGW", day=date(2025, 6, 1)):
    stay = ResolvedHotelStay(
        city_name="Athens",
        hotel_code="ATH1",
        hotel_name="Athens Plaza",
        star_rating=4,
        board_basis="BB",
        check_in=day,
        check_out=date(2025, 6, 8),
        nights=7,
        room_type="Double",
        price_per_room=Decimal("600"),
        price_per_person=Decimal("300"),
    )
    price = combine_prices(final_flight, [stay], 20, day)
    return FlightHotelPriceRecord(
        package_id=1,
        travel_date=day,
        uk_airport=airport,
        room_type=room_type,
        price=price,
        hotels=price.hotel_stays,
        airline_name="Aegean Airlines",
    )


def count_rows(db_file):
    conn = sqlite3.connect(db_file)
    count = conn.execute("SELECT COUNT(*) FROM flight_hotel_prices").fetchone()[0]
    conn.close()
    return count


def test_insert_upserts_same_cell(tmp_path):
    db_file = str(tmp_path / "test.db")
    init_db(db_file)

    first_id = insert_flight_hotel_price(make_record("180"), db_path=db_file)
    second_id = insert_flight_hotel_price(make_record("220"), db_path=db_file)

    assert first_id == second_id
    assert count_rows(db_file) == 1
    rows = get_flight_hotel_prices(1, db_path=db_file)
    assert rows[0]["final_price"] == "649.00"
    assert rows[0]["hotels"][0]["check_in"] == "2025-06-01"


def test_distinct_cells_are_kept(tmp_path):
    db_file = str(tmp_path / "test.db")
    migrate(db_file)
    insert_flight_hotel_price(make_record(room_type="twin"), db_path=db_file)
    insert_flight_hotel_price(make_record(room_type="single"), db_path=db_file)
    insert_flight_hotel_price(make_record(airport="MAN"), db_path=db_file)

    assert count_rows(db_file) == 3
    singles = get_flight_hotel_prices(1, db_path=db_file, room_type="single")
    assert [r["uk_airport"] for r in singles] == ["LGW"]
    assert get_flight_hotel_prices(2, db_path=db_file) == []


def test_migrate_is_repeatable(tmp_path):
    db_file = str(tmp_path / "test.db")
    migrate(db_file)
    migrate(db_file)
    conn = sqlite3.connect(db_file)
    versions = conn.execute("SELECT version FROM schema_version").fetchall()
    conn.close()
    assert versions == [(1,)]


def test_sqlite_storage_creates_schema(tmp_path):
    db_file = str(tmp_path / "new.db")
    storage = SqliteStorage(db_file)
    storage.insert_flight_hotel_price(make_record())
    assert count_rows(db_file) == 1
