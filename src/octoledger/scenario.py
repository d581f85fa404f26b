"""Cost a stretch of cached consumption, optionally through a battery model."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from .accounting import TariffCursor, summarise, total_cost
from .loadshift import LoadShiftResult, LoadShiftSimulator
from .models import Cost, CostSummary, MeterSeries
from .reconstruct import reconstruct_consumption, reconstruct_tariff
from .store import IntervalStore

logger = logging.getLogger(__name__)


@dataclass
class ScenarioResult:
    cost: Cost
    summary: CostSummary
    load_shift: LoadShiftResult | None = None


def run_scenario(
    store: IntervalStore,
    series: MeterSeries,
    tariff_code: str,
    start: datetime,
    end: datetime,
    standing_charge: float,
    simulator: LoadShiftSimulator | None = None,
    width: timedelta = timedelta(minutes=30),
) -> ScenarioResult:
    """Price consumption for a meter over [start, end) on a tariff.

    Everything is re-read from the store on each call. Reconstruction and
    accounting errors propagate; no partial result is returned.
    """
    consumption = reconstruct_consumption(store.query_consumption(series, start, end), width)
    rates = reconstruct_tariff(store.query_tariff_rates(tariff_code, start, end))
    logger.info(
        "Modelling %s on %s: %d intervals, %d rates",
        series,
        tariff_code,
        len(consumption),
        len(rates),
    )

    load_shift = None
    if simulator is not None:
        load_shift = simulator.run(consumption)
        consumption = load_shift.intervals

    cost = total_cost(consumption, TariffCursor(rates))
    return ScenarioResult(cost=cost, summary=summarise(cost, standing_charge), load_shift=load_shift)
