from __future__ import annotations

import logging
import sqlite3
import tempfile
from typing import Optional, Union

import pandas as pd

from .db import DB_FILE

logger = logging.getLogger(__name__)

MATRIX_COLUMNS = ["travel_date", "uk_airport", "room_type", "final_price"]


def load_prices(package_id: int, db_path: str = DB_FILE) -> pd.DataFrame:
    """Return the stored price cells of *package_id* as a DataFrame."""
    conn = sqlite3.connect(db_path)
    try:
        df = pd.read_sql_query(
            """
            SELECT travel_date, uk_airport, room_type, final_price,
                   airline_name, fetched_at
              FROM flight_hotel_prices
             WHERE package_id = ?
             ORDER BY travel_date, uk_airport, room_type
            """,
            conn,
            params=(package_id,),
            parse_dates=["travel_date"],
        )
    finally:
        conn.close()
    df["final_price"] = pd.to_numeric(df["final_price"])
    return df


def load_price_matrix(
    package_id: int, db_path: str = DB_FILE, *, output: Optional[str] = None
) -> Union[pd.DataFrame, str]:
    """Pivot a package's prices to ``travel_date × (uk_airport, room_type)``.

    Parameters
    ----------
    package_id:
        Package whose prices are loaded.
    db_path:
        Path to the SQLite database.
    output:
        ``None`` / ``"df"`` – return the pivoted ``pandas.DataFrame``.
        ``"csv"``           – write it to a temporary CSV and return its path.
    """
    df = load_prices(package_id, db_path)
    logger.info("Loaded %d price cells for package %s", len(df), package_id)

    if df.empty:
        matrix = pd.DataFrame(
            columns=pd.MultiIndex.from_tuples([], names=["uk_airport", "room_type"])
        )
        matrix.index.name = "travel_date"
    else:
        matrix = df.pivot_table(
            index="travel_date",
            columns=["uk_airport", "room_type"],
            values="final_price",
            aggfunc="min",
        ).sort_index()

    if output == "csv":
        tmp = tempfile.NamedTemporaryFile(delete=False, suffix=".csv")
        tmp.close()
        matrix.to_csv(tmp.name)
        return tmp.name
    return matrix


def cheapest_per_date(package_id: int, db_path: str = DB_FILE) -> pd.DataFrame:
    """Cheapest airport per travel date and room type."""
    df = load_prices(package_id, db_path)
    if df.empty:
        return pd.DataFrame(columns=MATRIX_COLUMNS)
    idx = df.groupby(["travel_date", "room_type"])["final_price"].idxmin()
    return df.loc[idx, MATRIX_COLUMNS].reset_index(drop=True)


__all__ = ["load_prices", "load_price_matrix", "cheapest_per_date"]
