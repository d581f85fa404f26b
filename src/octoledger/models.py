"""Data models for consumption intervals, tariff rates and account data."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta


@dataclass(frozen=True, order=True)
class ConsumptionInterval:
    """Metered consumption over a half-open period [start, end)."""

    start: datetime
    end: datetime
    consumption: float  # kWh

    def __post_init__(self):
        if not self.start < self.end:
            raise ValueError(f"Interval start {self.start} must be before end {self.end}")

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def hours(self) -> float:
        return self.duration / timedelta(hours=1)

    def with_consumption(self, consumption: float) -> "ConsumptionInterval":
        """Return a copy of this interval carrying a different consumption."""
        return replace(self, consumption=consumption)


@dataclass(frozen=True, order=True)
class TariffRateInterval:
    """A unit price valid over [valid_from, valid_to).

    valid_to is None for an open-ended rate (the current price on a
    fixed tariff).
    """

    valid_from: datetime
    valid_to: datetime | None
    unit_price_inc_vat: float  # pence/kWh

    def __post_init__(self):
        if self.valid_to is not None and not self.valid_from < self.valid_to:
            raise ValueError(
                f"Rate valid_from {self.valid_from} must be before valid_to {self.valid_to}"
            )

    def covers(self, start: datetime, end: datetime) -> bool:
        """Check if [start, end) lies wholly inside this rate's validity."""
        if start < self.valid_from:
            return False
        return self.valid_to is None or end <= self.valid_to


@dataclass(frozen=True)
class MeterSeries:
    """Identity of one consumption stream."""

    account: str
    mpan: str
    serial: str

    def __str__(self) -> str:
        return f"{self.account}/{self.mpan}/{self.serial}"


@dataclass
class IntervalCost:
    """Cost of one consumption interval at the rate in force."""

    interval: ConsumptionInterval
    rate: float
    cost: float

    @property
    def start(self) -> datetime:
        return self.interval.start

    @property
    def end(self) -> datetime:
        return self.interval.end

    @property
    def consumption(self) -> float:
        return self.interval.consumption


@dataclass
class Cost:
    """Ledger for a run of consumption intervals."""

    total_cost: float = 0.0  # pence
    total_consumption: float = 0.0  # kWh
    intervals: list[IntervalCost] = field(default_factory=list)


@dataclass
class CostSummary:
    """Energy cost plus standing charge over the ledger period."""

    energy_cost: float
    standing_cost: float
    total_cost: float
    total_consumption: float
    days: float
    cost_per_day: float
    effective_rate: float

    @property
    def total_cost_gbp(self) -> float:
        """Total cost in GBP."""
        return self.total_cost / 100


@dataclass(frozen=True)
class BatteryTelemetry:
    """Battery state after one simulated interval."""

    battery_charge: float
    battery_delta: float
    battery_full: bool


@dataclass
class Meter:
    serial_number: str


@dataclass
class Agreement:
    """A tariff agreement on a meter point."""

    tariff_code: str
    valid_from: datetime
    valid_to: datetime | None = None

    def is_active(self, at: datetime) -> bool:
        if at < self.valid_from:
            return False
        return self.valid_to is None or at <= self.valid_to


@dataclass
class ElectricityMeterPoint:
    mpan: str
    meters: list[Meter] = field(default_factory=list)
    agreements: list[Agreement] = field(default_factory=list)

    def active_meters(self) -> list[Meter]:
        """Meters with a serial number; others cannot be queried."""
        return [m for m in self.meters if m.serial_number]

    def active_agreement(self, at: datetime) -> Agreement | None:
        for agreement in self.agreements:
            if agreement.is_active(at):
                return agreement
        return None


@dataclass
class Property:
    id: int
    moved_in_at: datetime
    moved_out_at: datetime | None = None
    postcode: str = ""
    electricity_meter_points: list[ElectricityMeterPoint] = field(default_factory=list)


@dataclass
class Account:
    number: str
    properties: list[Property] = field(default_factory=list)
    raw: dict = field(default_factory=dict, repr=False, compare=False)  # API document, cached as-is

    def meter_series(self) -> list[tuple[Property, MeterSeries]]:
        """List every syncable meter with the property it belongs to."""
        series = []
        for prop in self.properties:
            for point in prop.electricity_meter_points:
                if not point.mpan:
                    continue
                for meter in point.active_meters():
                    series.append((prop, MeterSeries(self.number, point.mpan, meter.serial_number)))
        return series


@dataclass
class Product:
    """An Octopus product (a family of regional tariffs)."""

    code: str
    display_name: str = ""
    full_name: str = ""
    description: str = ""
    is_variable: bool = False
    is_green: bool = False
    is_tracker: bool = False
    is_prepay: bool = False
    is_business: bool = False
    brand: str = ""
    available_from: datetime | None = None
    available_to: datetime | None = None


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an API timestamp (ISO-8601, possibly with a Z suffix)."""
    if not value:
        return None
    return datetime.fromisoformat(value)


def parse_account(data: dict) -> Account:
    """Build an Account from the API's account document."""
    properties = []
    for p in data.get("properties", []):
        points = []
        for em in p.get("electricity_meter_points", []):
            points.append(
                ElectricityMeterPoint(
                    mpan=em.get("mpan") or "",
                    meters=[Meter(serial_number=m.get("serial_number") or "") for m in em.get("meters", [])],
                    agreements=[
                        Agreement(
                            tariff_code=a["tariff_code"],
                            valid_from=parse_timestamp(a["valid_from"]),
                            valid_to=parse_timestamp(a.get("valid_to")),
                        )
                        for a in em.get("agreements", [])
                    ],
                )
            )
        properties.append(
            Property(
                id=p["id"],
                moved_in_at=parse_timestamp(p["moved_in_at"]),
                moved_out_at=parse_timestamp(p.get("moved_out_at")),
                postcode=p.get("postcode") or "",
                electricity_meter_points=points,
            )
        )
    return Account(number=data["number"], properties=properties, raw=data)


def parse_product(data: dict) -> Product:
    return Product(
        code=data["code"],
        display_name=data.get("display_name", ""),
        full_name=data.get("full_name", ""),
        description=data.get("description", ""),
        is_variable=data.get("is_variable", False),
        is_green=data.get("is_green", False),
        is_tracker=data.get("is_tracker", False),
        is_prepay=data.get("is_prepay", False),
        is_business=data.get("is_business", False),
        brand=data.get("brand", ""),
        available_from=parse_timestamp(data.get("available_from")),
        available_to=parse_timestamp(data.get("available_to")),
    )
