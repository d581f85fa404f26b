"""Incremental sync of remote meter data into the local store.

For each meter the watermark is the end of the newest stored interval. Only
data after it is fetched. Upserts are idempotent on (meter, interval start)
so re-fetching a partially settled tail is harmless and the sync can be run
repeatedly from cron.
"""

import logging
import sqlite3
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone

from .collectors.octopus import OctopusClient
from .config import OctopusConfig
from .errors import OctopusAPIError, SyncCancelled, SyncError
from .models import Account, MeterSeries, Property
from .store import IntervalStore

logger = logging.getLogger(__name__)


class Deadline:
    """Cancellation signal checked before every fetch and every commit.

    Fires when `timeout` seconds have passed since creation or when `event`
    is set, whichever comes first.
    """

    def __init__(self, timeout: float | None = None, event: threading.Event | None = None):
        self.expires_at = time.monotonic() + timeout if timeout is not None else None
        self.event = event

    def expired(self) -> bool:
        if self.event is not None and self.event.is_set():
            return True
        return self.expires_at is not None and time.monotonic() >= self.expires_at

    def check(self) -> None:
        if self.expired():
            raise SyncCancelled("Sync cancelled or deadline exceeded")


@dataclass
class MeterSyncResult:
    series: MeterSeries
    since: datetime | None = None
    fetched: int = 0
    stored: int = 0
    error: SyncError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class SyncReport:
    account: str
    meters: list[MeterSyncResult] = field(default_factory=list)

    @property
    def failed(self) -> list[MeterSyncResult]:
        return [m for m in self.meters if not m.ok]

    @property
    def stored(self) -> int:
        return sum(m.stored for m in self.meters)


class SyncEngine:
    """Pulls account, consumption and tariff data into an IntervalStore."""

    def __init__(self, config: OctopusConfig, client: OctopusClient, store: IntervalStore):
        self.config = config
        self.client = client
        self.store = store

    def sync(self, deadline: Deadline | None = None, now: datetime | None = None) -> SyncReport:
        """Sync consumption for every meter on the account.

        Failing to fetch the account is fatal. A failure on one meter is
        logged and recorded in the report; the other meters still sync.
        """
        deadline = deadline or Deadline()
        now = now or datetime.now(timezone.utc)

        logger.info("Syncing %s", self.config.account)
        deadline.check()
        try:
            account = self.client.account()
        except OctopusAPIError as e:
            raise SyncError(f"Failed to fetch account {self.config.account}: {e}") from e
        self.store.save_account(account)

        report = SyncReport(account=account.number)
        for prop, series in account.meter_series():
            result = MeterSyncResult(series=series)
            report.meters.append(result)
            try:
                self._sync_meter(prop, series, result, deadline, now)
            except SyncCancelled:
                raise
            except Exception as e:
                result.error = SyncError(f"Failed to sync meter {series}: {e}")
                logger.warning("%s", result.error)

        logger.info(
            "Synced %d meters (%d failed), %d intervals stored",
            len(report.meters),
            len(report.failed),
            report.stored,
        )
        return report

    def _sync_meter(
        self,
        prop: Property,
        series: MeterSeries,
        result: MeterSyncResult,
        deadline: Deadline,
        now: datetime,
    ) -> None:
        since = self.store.latest_consumption_end(series) or prop.moved_in_at
        until = min(now, prop.moved_out_at) if prop.moved_out_at else now
        result.since = since
        if since >= until:
            logger.info("Meter %s is up to date", series)
            return

        logger.info("Syncing consumption for %s since %s", series, since.isoformat())
        intervals = self.client.fetch_consumption(
            series.mpan, series.serial, since, until, checkpoint=deadline.check
        )
        result.fetched = len(intervals)
        logger.info("Got %d records for %s", len(intervals), series)

        deadline.check()
        result.stored = self.store.upsert_consumption(series, intervals, checkpoint=deadline.check)

    def sync_tariff(
        self,
        product_code: str,
        tariff_code: str,
        start: datetime,
        end: datetime,
        deadline: Deadline | None = None,
    ) -> int:
        """Fetch and store unit rates for a tariff over [start, end). Returns rows stored."""
        deadline = deadline or Deadline()
        logger.info("Syncing tariff %s (%s) from %s to %s", tariff_code, product_code, start, end)
        deadline.check()
        try:
            rates = self.client.fetch_tariff_rates(
                product_code, tariff_code, start, end, checkpoint=deadline.check
            )
        except OctopusAPIError as e:
            raise SyncError(f"Failed to fetch tariff rates for {tariff_code}: {e}") from e

        deadline.check()
        try:
            return self.store.upsert_tariff_rates(tariff_code, rates, checkpoint=deadline.check)
        except sqlite3.Error as e:
            raise SyncError(f"Failed to store tariff rates for {tariff_code}: {e}") from e

    def cached_account(self) -> Account | None:
        return self.store.load_account(self.config.account)
