"""Local cache of consumption and tariff intervals.

Rows are keyed by (series, start). Upserts replace rows with the same key,
so writing an overlapping batch twice leaves the table unchanged.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable

from .db import from_db_time, get_connection, to_db_time
from .models import Account, ConsumptionInterval, MeterSeries, TariffRateInterval, parse_account

logger = logging.getLogger(__name__)


class IntervalStore:
    """SQLite-backed interval store.

    Every write is a single transaction: if anything raises before the
    commit (including the optional checkpoint), the batch is rolled back.
    """

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path

    def upsert_consumption(
        self,
        series: MeterSeries,
        intervals: Iterable[ConsumptionInterval],
        checkpoint: Callable[[], None] | None = None,
    ) -> int:
        """Insert or replace consumption rows for one meter. Returns rows written."""
        rows = [
            (
                series.account,
                series.mpan,
                series.serial,
                to_db_time(i.start),
                to_db_time(i.end),
                i.consumption,
            )
            for i in intervals
        ]
        with get_connection(self.db_path) as conn:
            with conn:
                conn.executemany(
                    """INSERT OR REPLACE INTO consumption
                       (account, mpan, meter_serial, interval_start, interval_end, consumption_kwh)
                       VALUES (?, ?, ?, ?, ?, ?)""",
                    rows,
                )
                if checkpoint is not None:
                    checkpoint()
        logger.debug("Stored %d consumption rows for %s", len(rows), series)
        return len(rows)

    def upsert_tariff_rates(
        self,
        tariff_code: str,
        rates: Iterable[TariffRateInterval],
        checkpoint: Callable[[], None] | None = None,
    ) -> int:
        """Insert or replace unit rates for one tariff code. Returns rows written."""
        rows = [
            (
                tariff_code,
                to_db_time(r.valid_from),
                to_db_time(r.valid_to) if r.valid_to else None,
                r.unit_price_inc_vat,
            )
            for r in rates
        ]
        with get_connection(self.db_path) as conn:
            with conn:
                conn.executemany(
                    """INSERT OR REPLACE INTO tariff_rates
                       (tariff_code, valid_from, valid_to, unit_price_inc_vat)
                       VALUES (?, ?, ?, ?)""",
                    rows,
                )
                if checkpoint is not None:
                    checkpoint()
        logger.debug("Stored %d tariff rates for %s", len(rows), tariff_code)
        return len(rows)

    def query_consumption(
        self, series: MeterSeries, start: datetime, end: datetime
    ) -> list[ConsumptionInterval]:
        """Get stored consumption overlapping [start, end), ordered by start."""
        with get_connection(self.db_path) as conn:
            rows = conn.execute(
                """SELECT interval_start, interval_end, consumption_kwh
                   FROM consumption
                   WHERE account = ? AND mpan = ? AND meter_serial = ?
                     AND interval_start < ? AND interval_end > ?
                   ORDER BY interval_start""",
                (series.account, series.mpan, series.serial, to_db_time(end), to_db_time(start)),
            ).fetchall()

        return [
            ConsumptionInterval(
                start=from_db_time(row["interval_start"]),
                end=from_db_time(row["interval_end"]),
                consumption=row["consumption_kwh"],
            )
            for row in rows
        ]

    def query_tariff_rates(
        self, tariff_code: str, start: datetime, end: datetime
    ) -> list[TariffRateInterval]:
        """Get stored rates overlapping [start, end), ordered by valid_from."""
        with get_connection(self.db_path) as conn:
            rows = conn.execute(
                """SELECT valid_from, valid_to, unit_price_inc_vat
                   FROM tariff_rates
                   WHERE tariff_code = ?
                     AND valid_from < ? AND (valid_to IS NULL OR valid_to > ?)
                   ORDER BY valid_from""",
                (tariff_code, to_db_time(end), to_db_time(start)),
            ).fetchall()

        return [
            TariffRateInterval(
                valid_from=from_db_time(row["valid_from"]),
                valid_to=from_db_time(row["valid_to"]) if row["valid_to"] else None,
                unit_price_inc_vat=row["unit_price_inc_vat"],
            )
            for row in rows
        ]

    def latest_consumption_end(self, series: MeterSeries) -> datetime | None:
        """Get the end of the most recent stored interval for a meter."""
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                """SELECT MAX(interval_end) as latest FROM consumption
                   WHERE account = ? AND mpan = ? AND meter_serial = ?""",
                (series.account, series.mpan, series.serial),
            ).fetchone()
            if row and row["latest"]:
                return from_db_time(row["latest"])
            return None

    def save_account(self, account: Account) -> None:
        with get_connection(self.db_path) as conn:
            with conn:
                conn.execute(
                    "INSERT OR REPLACE INTO accounts (number, json) VALUES (?, ?)",
                    (account.number, json.dumps(account.raw)),
                )

    def load_account(self, number: str) -> Account | None:
        """Get the cached account document, or None if never synced."""
        with get_connection(self.db_path) as conn:
            row = conn.execute("SELECT json FROM accounts WHERE number = ?", (number,)).fetchone()
        if not row:
            return None
        return parse_account(json.loads(row["json"]))
