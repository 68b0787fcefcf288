from __future__ import annotations

import json
import logging
import os
import pathlib
import sqlite3
from datetime import datetime, timezone
from typing import List, Optional

from .models import FlightHotelPriceRecord

# Default paths – the database relative to the working directory, the schema
# shipped next to this module
PACKAGE_DIR = pathlib.Path(__file__).resolve().parent
DB_FILE = os.getenv("PRICER_DB", "pricer.db")
SCHEMA_FILE = str(PACKAGE_DIR / "schema.sql")
SCHEMA_VERSION = 1

logger = logging.getLogger(__name__)


def migrate(db_path: str = DB_FILE, schema_path: str = SCHEMA_FILE) -> None:
    """Run pending migrations on the database."""
    logger.info("Running migrations for %s", db_path)
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            "CREATE TABLE IF NOT EXISTS schema_version "
            "(version INTEGER NOT NULL)"
        )
        cur = conn.execute("SELECT version FROM schema_version")
        row = cur.fetchone()
        current = row[0] if row else 0
        if current < SCHEMA_VERSION:
            logger.info("Applying schema version %s", SCHEMA_VERSION)
            with open(schema_path, "r", encoding="utf-8") as fh:
                conn.executescript(fh.read())
            if row:
                conn.execute(
                    "UPDATE schema_version SET version=?", (SCHEMA_VERSION,)
                )
            else:
                conn.execute(
                    "INSERT INTO schema_version(version) VALUES (?)",
                    (SCHEMA_VERSION,),
                )
            conn.commit()


def init_db(db_path: str = DB_FILE, schema_path: str = SCHEMA_FILE) -> None:
    """Initialize SQLite database using *schema_path*."""
    logger.info("Initializing database at %s", db_path)
    with sqlite3.connect(db_path) as conn:
        with open(schema_path, "r", encoding="utf-8") as fh:
            conn.executescript(fh.read())
        conn.execute(
            "CREATE TABLE IF NOT EXISTS schema_version "
            "(version INTEGER NOT NULL)"
        )
        conn.execute("DELETE FROM schema_version")
        conn.execute(
            "INSERT INTO schema_version(version) VALUES (?)",
            (SCHEMA_VERSION,),
        )


def insert_flight_hotel_price(
    record: FlightHotelPriceRecord, db_path: str = DB_FILE
) -> int:
    """Upsert one matrix cell and return its row id.

    A cell is identified by ``(package_id, travel_date, uk_airport,
    room_type)``; pricing the same cell again overwrites it.
    """
    price = record.price
    logger.info(
        "Saving package %s %s %s (%s): £%s",
        record.package_id,
        record.travel_date,
        record.uk_airport,
        record.room_type,
        price.final_price,
    )
    hotels_json = json.dumps([stay.to_dict() for stay in record.hotels])
    fetched_at = datetime.now(timezone.utc).isoformat()

    with sqlite3.connect(db_path) as conn:
        cur = conn.execute(
            """
            INSERT INTO flight_hotel_prices (
                package_id,
                travel_date,
                uk_airport,
                room_type,
                flight_price,
                hotel_price,
                subtotal,
                markup_percent,
                markup_amount,
                after_markup,
                final_price,
                currency,
                airline_name,
                hotels,
                fetched_at
            ) VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?,?)
            ON CONFLICT(package_id, travel_date, uk_airport, room_type)
            DO UPDATE SET
                flight_price=excluded.flight_price,
                hotel_price=excluded.hotel_price,
                subtotal=excluded.subtotal,
                markup_percent=excluded.markup_percent,
                markup_amount=excluded.markup_amount,
                after_markup=excluded.after_markup,
                final_price=excluded.final_price,
                currency=excluded.currency,
                airline_name=excluded.airline_name,
                hotels=excluded.hotels,
                fetched_at=excluded.fetched_at
            RETURNING id
            """,
            (
                record.package_id,
                record.travel_date.isoformat(),
                record.uk_airport,
                record.room_type,
                str(price.flight_price_per_person),
                str(price.hotel_cost_per_person),
                str(price.subtotal),
                str(price.markup_percent),
                str(price.markup_amount),
                str(price.after_markup),
                str(price.final_price),
                price.currency,
                record.airline_name,
                hotels_json,
                fetched_at,
            ),
        )
        row = cur.fetchone()
        conn.commit()
        return int(row[0])


def get_flight_hotel_prices(
    package_id: int, db_path: str = DB_FILE, room_type: Optional[str] = None
) -> List[dict]:
    """Return the stored matrix cells of *package_id* ordered by date."""
    logger.info("Loading prices for package %s", package_id)
    query = """
        SELECT package_id, travel_date, uk_airport, room_type,
               flight_price, hotel_price, subtotal, markup_percent,
               markup_amount, after_markup, final_price, currency,
               airline_name, hotels, fetched_at
          FROM flight_hotel_prices
         WHERE package_id = ?
    """
    params: list = [package_id]
    if room_type:
        query += " AND room_type = ?"
        params.append(room_type)
    query += " ORDER BY travel_date, uk_airport, room_type"

    with sqlite3.connect(db_path) as conn:
        conn.row_factory = sqlite3.Row
        rows = conn.execute(query, params).fetchall()

    result = []
    for row in rows:
        item = dict(row)
        item["hotels"] = json.loads(item["hotels"] or "[]")
        result.append(item)
    return result


class SqliteStorage:
    """Price sink for the batch runner backed by :func:`insert_flight_hotel_price`."""

    def __init__(self, db_path: str = DB_FILE) -> None:
        self.db_path = db_path
        migrate(db_path=db_path)

    def insert_flight_hotel_price(self, record: FlightHotelPriceRecord) -> int:
        return insert_flight_hotel_price(record, db_path=self.db_path)


__all__ = [
    "init_db",
    "migrate",
    "insert_flight_hotel_price",
    "get_flight_hotel_prices",
    "SqliteStorage",
    "DB_FILE",
]
