"""Cost accounting: price consumption intervals against tariff rates."""

import logging
from datetime import datetime
from typing import Protocol, Sequence

from .errors import MisalignedIntervalsError, TariffCoverageError, TariffExhaustedError
from .models import ConsumptionInterval, Cost, CostSummary, IntervalCost, TariffRateInterval

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


class RateSource(Protocol):
    def rate_for(self, interval: ConsumptionInterval) -> float: ...


class FlatRate:
    """The same unit price for every interval."""

    def __init__(self, unit_price: float):
        self.unit_price = unit_price

    def rate_for(self, interval: ConsumptionInterval) -> float:
        return self.unit_price


class TariffCursor:
    """Merge cursor over an ascending, contiguous list of tariff rates.

    Consumption must be priced in time order. The cursor only ever moves
    forward: once an interval has moved past a rate, that rate is never
    looked at again. Each rate must fully contain every consumption interval
    priced with it.
    """

    def __init__(self, rates: Sequence[TariffRateInterval]):
        self.rates = rates
        self.position = 0
        self.visited: list[int] = []

    def _ends_before(self, rate: TariffRateInterval, at: datetime) -> bool:
        return rate.valid_to is not None and rate.valid_to <= at

    def rate_for(self, interval: ConsumptionInterval) -> float:
        """Get the unit price covering an interval, advancing past expired rates."""
        while self.position < len(self.rates) and self._ends_before(
            self.rates[self.position], interval.start
        ):
            self.position += 1

        if self.position >= len(self.rates):
            raise TariffExhaustedError(
                f"No more tariff entries, but need coverage of {interval.start} -> {interval.end}"
            )

        rate = self.rates[self.position]
        if rate.valid_from > interval.end:
            raise TariffCoverageError(
                f"Interval {interval.start} -> {interval.end} is before current rate "
                f"{rate.valid_from} -> {rate.valid_to}"
            )
        if not rate.covers(interval.start, interval.end):
            raise MisalignedIntervalsError(
                f"Interval {interval.start} -> {interval.end} is not within rate "
                f"{rate.valid_from} -> {rate.valid_to}"
            )

        self.visited.append(self.position)
        return rate.unit_price_inc_vat


def total_cost(
    consumption: Sequence[ConsumptionInterval],
    rates: RateSource | Sequence[TariffRateInterval],
) -> Cost:
    """Price every consumption interval and accumulate the totals.

    A plain sequence of rates is wrapped in a fresh TariffCursor. Any pricing
    error aborts the whole ledger.
    """
    source = rates if hasattr(rates, "rate_for") else TariffCursor(rates)

    cost = Cost()
    for interval in consumption:
        rate = source.rate_for(interval)
        pence = rate * interval.consumption
        cost.total_cost += pence
        cost.total_consumption += interval.consumption
        cost.intervals.append(IntervalCost(interval=interval, rate=rate, cost=pence))

    logger.debug(
        "Priced %d intervals: %.2fp for %.3f kWh",
        len(cost.intervals),
        cost.total_cost,
        cost.total_consumption,
    )
    return cost


def summarise(cost: Cost, standing_charge: float) -> CostSummary:
    """Add the daily standing charge (pence/day) to an energy ledger.

    Days are whole days between the first interval start and the last
    interval end.
    """
    if cost.intervals:
        span = cost.intervals[-1].end - cost.intervals[0].start
        days = float(int(span.total_seconds() // SECONDS_PER_DAY))
    else:
        days = 0.0

    standing = standing_charge * days
    total = cost.total_cost + standing
    return CostSummary(
        energy_cost=cost.total_cost,
        standing_cost=standing,
        total_cost=total,
        total_consumption=cost.total_consumption,
        days=days,
        cost_per_day=total / days if days else 0.0,
        effective_rate=total / cost.total_consumption if cost.total_consumption else 0.0,
    )
