"""Render cost ledgers as CSV and rich tables."""

import csv
from pathlib import Path
from typing import Protocol, TextIO

from rich.table import Table

from ..models import Cost, CostSummary

LEDGER_HEADERS = ["Start", "End", "Consumption", "Rate", "Cost"]


class IntervalStats(Protocol):
    """Extra per-interval columns, one row per ledger interval."""

    def headers(self) -> list[str]: ...

    def rows(self) -> list[list]: ...


def ledger_rows(cost: Cost, *stats: IntervalStats) -> tuple[list[str], list[list]]:
    """Build the header and rows for a ledger plus any extra statistics.

    Raises ValueError if a statistics source doesn't have one row per
    ledger interval.
    """
    headers = list(LEDGER_HEADERS)
    extra = []
    for s in stats:
        s_rows = s.rows()
        if len(s_rows) != len(cost.intervals):
            raise ValueError(
                f"Got {len(cost.intervals)} cost intervals, but {type(s).__name__} has {len(s_rows)} intervals"
            )
        headers.extend(s.headers())
        extra.append(s_rows)

    rows = []
    for i, ic in enumerate(cost.intervals):
        row = [ic.start.isoformat(), ic.end.isoformat(), ic.consumption, ic.rate, ic.cost]
        for s_rows in extra:
            row.extend(s_rows[i])
        rows.append(row)
    return headers, rows


def write_csv(out: TextIO, cost: Cost, *stats: IntervalStats) -> int:
    """Write the ledger as CSV. Returns the number of data rows."""
    headers, rows = ledger_rows(cost, *stats)
    writer = csv.writer(out)
    writer.writerow(headers)
    writer.writerows(rows)
    return len(rows)


def save_csv(path: Path, cost: Cost, *stats: IntervalStats) -> int:
    with open(path, "w", newline="") as f:
        return write_csv(f, cost, *stats)


def summary_table(summary: CostSummary, title: str = "Cost Summary") -> Table:
    """Build a rich table of the energy, standing and total cost."""
    table = Table(title=title)
    table.add_column("Item", style="cyan")
    table.add_column("Amount", justify="right")
    table.add_column("Detail")

    table.add_row(
        "Energy",
        f"£{summary.energy_cost / 100:.2f}",
        f"{summary.total_consumption:.2f} kWh (inc. VAT)",
    )
    table.add_row(
        "Standing",
        f"£{summary.standing_cost / 100:.2f}",
        f"{summary.days:.0f} days (inc. VAT)",
    )
    table.add_row(
        "Total",
        f"£{summary.total_cost_gbp:.2f}",
        f"£{summary.cost_per_day / 100:.2f}/day, effective £{summary.effective_rate / 100:.3f}/kWh",
    )
    return table
