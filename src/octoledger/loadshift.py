"""Battery load-shifting simulation.

Models a home battery that charges from the grid during a daily window and
discharges to cover household consumption outside it. The rewritten
consumption can then be priced like real consumption to compare costs.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from .models import BatteryTelemetry, ConsumptionInterval

logger = logging.getLogger(__name__)

TELEMETRY_HEADERS = ["BatteryCharge", "BatteryDelta", "BatteryFull"]


def parse_hour(value: str) -> float:
    """Parse an hour of day such as '23' or '4.5'."""
    hour = float(value)
    if hour < 0 or hour >= 24:
        raise ValueError(f"{hour} should be 0 <= N < 24")
    return hour


@dataclass(frozen=True)
class ChargeWindow:
    """A daily window [start_hour, end_hour) which may wrap past midnight."""

    start_hour: float
    end_hour: float

    @classmethod
    def parse(cls, value: str) -> "ChargeWindow":
        """Parse '<N>-<M>', e.g. '0-5' or '23-4'."""
        bits = value.split("-")
        if len(bits) != 2:
            raise ValueError(f"Invalid charge window {value!r}, must be <N>-<M>")
        return cls(parse_hour(bits[0]), parse_hour(bits[1]))

    def contains(self, t: datetime) -> bool:
        hour = t.hour + t.minute / 60.0
        if self.start_hour <= self.end_hour:
            return self.start_hour <= hour < self.end_hour
        # Overnight window (e.g., 23 to 4)
        return hour >= self.start_hour or hour < self.end_hour


@dataclass
class LoadShiftResult:
    """Shifted consumption plus per-interval battery telemetry."""

    intervals: list[ConsumptionInterval] = field(default_factory=list)
    telemetry: list[BatteryTelemetry] = field(default_factory=list)
    charged_kwh: float = 0.0
    discharged_kwh: float = 0.0
    full_intervals: int = 0

    def headers(self) -> list[str]:
        return TELEMETRY_HEADERS

    def rows(self) -> list[list]:
        return [[t.battery_charge, t.battery_delta, t.battery_full] for t in self.telemetry]


class LoadShiftSimulator:
    """A battery of fixed capacity and charge rate.

    Inside the charge window the battery charges at charge_rate (kWh per
    hour) until full, and the charging draw is added to the interval's
    consumption. Outside it, stored energy offsets consumption until the
    battery is empty. Discharge is not rate limited. A charge within
    rounding error of capacity snaps to capacity so the battery reads full.

    State is the current charge. Use a new instance for each independent
    scenario.
    """

    def __init__(self, capacity: float, charge_rate: float, window: ChargeWindow):
        if capacity < 0 or charge_rate < 0:
            raise ValueError("Battery capacity and charge rate must not be negative")
        self.capacity = capacity
        self.charge_rate = charge_rate
        self.window = window
        self.charge = 0.0

    def apply(self, interval: ConsumptionInterval) -> tuple[ConsumptionInterval, BatteryTelemetry]:
        """Simulate one interval, returning the rewritten interval and battery state."""
        if self.window.contains(interval.start):
            delta = min(self.charge_rate * interval.hours, self.capacity - self.charge)
        else:
            delta = -min(self.charge, interval.consumption)

        self.charge += delta
        if math.isclose(self.charge, self.capacity):
            self.charge = self.capacity
        shifted = interval.with_consumption(interval.consumption + delta)
        telemetry = BatteryTelemetry(
            battery_charge=self.charge,
            battery_delta=delta,
            battery_full=self.charge == self.capacity,
        )
        logger.debug(
            "%s charge %.2f kWh [%+.2f]%s",
            interval.start.isoformat(),
            self.charge,
            delta,
            " full" if telemetry.battery_full else "",
        )
        return shifted, telemetry

    def run(self, intervals: Iterable[ConsumptionInterval]) -> LoadShiftResult:
        """Apply the simulation to an ordered consumption sequence."""
        result = LoadShiftResult()
        for interval in intervals:
            shifted, telemetry = self.apply(interval)
            result.intervals.append(shifted)
            result.telemetry.append(telemetry)
            if telemetry.battery_delta > 0:
                result.charged_kwh += telemetry.battery_delta
            else:
                result.discharged_kwh -= telemetry.battery_delta
            if telemetry.battery_full:
                result.full_intervals += 1

        logger.info(
            "Load shift: charged %.2f kWh, discharged %.2f kWh, full for %d intervals",
            result.charged_kwh,
            result.discharged_kwh,
            result.full_intervals,
        )
        return result
