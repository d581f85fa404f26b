"""Octopus Energy REST API client.

Fetches account details, half-hourly consumption, tariff unit rates and
products. List endpoints are paginated; the client follows `next` links so
callers always get the complete, ascending result.

Authentication uses the account's API key as the HTTP basic auth username
with an empty password.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable

import httpx

from ..config import OctopusConfig
from ..errors import OctopusAPIError
from ..models import (
    Account,
    ConsumptionInterval,
    Product,
    TariffRateInterval,
    parse_account,
    parse_product,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

PAGE_SIZE = 2000
STANDARD_UNIT_RATES = "standard-unit-rates"


def format_period(dt: datetime) -> str:
    """Format a datetime for period_from/period_to (RFC 3339, UTC)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_tariff_code(code: str) -> tuple[str, str, str, str]:
    """Split a tariff code into (fuel, registers, product, region).

    e.g. 'E-1R-AGILE-24-04-03-J' -> ('E', '1R', 'AGILE-24-04-03', 'J')
    """
    bits = code.split("-")
    if len(bits) < 4:
        raise ValueError(f"Invalid tariff code {code!r}, expected <fuel>-<registers>-<product>-<region>")
    return bits[0], bits[1], "-".join(bits[2:-1]), bits[-1]


def build_tariff_code(fuel: str, registers: str, product: str, region: str) -> str:
    return f"{fuel}-{registers}-{product}-{region}"


def find_product_for_tariff(products: list[Product], tariff_code: str) -> Product | None:
    """Find the product a tariff code belongs to."""
    for product in products:
        if product.code in tariff_code:
            return product
    return None


class OctopusClient:
    """Thin wrapper over the Octopus REST API."""

    def __init__(self, config: OctopusConfig, transport: httpx.BaseTransport | None = None, timeout: float = 30.0):
        self.config = config
        self._client = httpx.Client(
            base_url=config.endpoint,
            auth=(config.api_key, ""),
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "OctopusClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _get(self, path: str, params: dict[str, Any] | None = None) -> dict:
        try:
            response = self._client.get(path, params=params)
        except httpx.HTTPError as e:
            raise OctopusAPIError(f"Network error connecting to Octopus API: {e}") from e

        if response.status_code != 200:
            raise OctopusAPIError(
                f"HTTP error from Octopus API for {path}: {response.status_code} - {response.reason_phrase}"
            )
        try:
            return response.json()
        except ValueError as e:
            raise OctopusAPIError(f"Invalid JSON from Octopus API for {path}: {e}") from e

    def _get_all(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        checkpoint: Callable[[], None] | None = None,
    ) -> list[dict]:
        """Follow `next` links and return every result."""
        results: list[dict] = []
        next_url: str | None = path
        while next_url:
            if checkpoint is not None:
                checkpoint()
            page = self._get(next_url, params)
            results.extend(page.get("results", []))
            next_url = page.get("next")
            # The next link already carries the query string
            params = None
        return results

    def account(self) -> Account:
        """Fetch the configured account with its properties and meters."""
        data = self._get(f"v1/accounts/{self.config.account}/")
        return parse_account(data)

    def fetch_consumption(
        self,
        mpan: str,
        serial: str,
        start: datetime,
        end: datetime,
        checkpoint: Callable[[], None] | None = None,
    ) -> list[ConsumptionInterval]:
        """Fetch half-hourly consumption for a meter over [start, end)."""
        results = self._get_all(
            f"v1/electricity-meter-points/{mpan}/meters/{serial}/consumption/",
            {
                "page_size": PAGE_SIZE,
                "period_from": format_period(start),
                "period_to": format_period(end),
                "order_by": "period",
            },
            checkpoint,
        )
        intervals = [
            ConsumptionInterval(
                start=parse_timestamp(r["interval_start"]),
                end=parse_timestamp(r["interval_end"]),
                consumption=float(r["consumption"]),
            )
            for r in results
        ]
        intervals.sort(key=lambda i: i.start)
        logger.debug("Fetched %d consumption intervals for %s/%s", len(intervals), mpan, serial)
        return intervals

    def fetch_tariff_rates(
        self,
        product_code: str,
        tariff_code: str,
        start: datetime,
        end: datetime,
        rate_type: str = STANDARD_UNIT_RATES,
        checkpoint: Callable[[], None] | None = None,
    ) -> list[TariffRateInterval]:
        """Fetch electricity unit rates for a tariff over [start, end).

        The API lists rates newest first; they are returned oldest first.
        """
        results = self._get_all(
            f"v1/products/{product_code}/electricity-tariffs/{tariff_code}/{rate_type}/",
            {
                "page_size": PAGE_SIZE,
                "period_from": format_period(start),
                "period_to": format_period(end),
            },
            checkpoint,
        )
        rates = [
            TariffRateInterval(
                valid_from=parse_timestamp(r["valid_from"]),
                valid_to=parse_timestamp(r.get("valid_to")),
                unit_price_inc_vat=float(r["value_inc_vat"]),
            )
            for r in results
        ]
        rates.sort(key=lambda r: r.valid_from)
        logger.debug("Fetched %d tariff rates for %s", len(rates), tariff_code)
        return rates

    def products(self, available_at: datetime | None = None) -> list[Product]:
        """List products, optionally those available at a given time."""
        params = {"available_at": format_period(available_at)} if available_at else None
        return [parse_product(p) for p in self._get_all("v1/products/", params)]
