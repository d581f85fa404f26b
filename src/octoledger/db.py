"""Database connection and schema management."""

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

DEFAULT_DB_PATH = Path.home() / ".local" / "share" / "octoledger" / "octoledger.db"

SCHEMA = """
-- Cached account documents (JSON as returned by the API)
CREATE TABLE IF NOT EXISTS accounts (
    number TEXT PRIMARY KEY,
    json TEXT NOT NULL,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);

-- Half-hourly consumption per meter
CREATE TABLE IF NOT EXISTS consumption (
    account TEXT NOT NULL,
    mpan TEXT NOT NULL,
    meter_serial TEXT NOT NULL,
    interval_start TEXT NOT NULL,
    interval_end TEXT NOT NULL,
    consumption_kwh REAL NOT NULL,
    PRIMARY KEY (account, mpan, meter_serial, interval_start)
);

-- Unit rates per tariff code
CREATE TABLE IF NOT EXISTS tariff_rates (
    tariff_code TEXT NOT NULL,
    valid_from TEXT NOT NULL,
    valid_to TEXT,
    unit_price_inc_vat REAL NOT NULL,
    PRIMARY KEY (tariff_code, valid_from)
);

CREATE INDEX IF NOT EXISTS idx_consumption_end ON consumption(account, mpan, meter_serial, interval_end);
"""


def to_db_time(dt: datetime) -> str:
    """Format a datetime as UTC ISO-8601 so text order matches time order.

    Naive datetimes are taken to be UTC.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def from_db_time(value: str) -> datetime:
    return datetime.fromisoformat(value)


def get_db_path() -> Path:
    """Get the database path, creating parent directories if needed."""
    db_path = Path(DEFAULT_DB_PATH)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return db_path


@contextmanager
def get_connection(db_path: Path | None = None) -> Iterator[sqlite3.Connection]:
    """Get a database connection with row factory enabled."""
    path = db_path or get_db_path()
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


def init_db(db_path: Path | None = None) -> None:
    """Initialize the database schema."""
    with get_connection(db_path) as conn:
        conn.executescript(SCHEMA)
        conn.commit()


def get_stats(db_path: Path | None = None) -> dict:
    """Get database statistics."""
    with get_connection(db_path) as conn:
        stats = {}

        row = conn.execute("SELECT COUNT(*) as count FROM accounts").fetchone()
        stats["accounts"] = {"count": row["count"]}

        # Consumption by meter
        rows = conn.execute(
            """SELECT account, mpan, meter_serial, COUNT(*) as count,
                      MIN(interval_start) as earliest, MAX(interval_end) as latest
               FROM consumption
               GROUP BY account, mpan, meter_serial
               ORDER BY account, mpan, meter_serial"""
        ).fetchall()
        stats["consumption"] = [
            {
                "series": f"{row['account']}/{row['mpan']}/{row['meter_serial']}",
                "count": row["count"],
                "earliest": row["earliest"],
                "latest": row["latest"],
            }
            for row in rows
        ]

        # Tariff rates by code
        rows = conn.execute(
            """SELECT tariff_code, COUNT(*) as count,
                      MIN(valid_from) as earliest, MAX(valid_from) as latest
               FROM tariff_rates
               GROUP BY tariff_code
               ORDER BY tariff_code"""
        ).fetchall()
        stats["tariff_rates"] = [
            {
                "tariff_code": row["tariff_code"],
                "count": row["count"],
                "earliest": row["earliest"],
                "latest": row["latest"],
            }
            for row in rows
        ]

        return stats
