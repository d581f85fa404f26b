import csv
import io
from datetime import datetime, timedelta, timezone

import pytest

from octoledger.accounting import FlatRate, summarise, total_cost
from octoledger.db import init_db
from octoledger.errors import NoDataError, TariffGapError
from octoledger.loadshift import ChargeWindow, LoadShiftSimulator
from octoledger.models import ConsumptionInterval, MeterSeries, TariffRateInterval
from octoledger.reports.ledger import save_csv, summary_table, write_csv
from octoledger.scenario import run_scenario
from octoledger.store import IntervalStore

T0 = datetime(2024, 3, 1, tzinfo=timezone.utc)
SERIES = MeterSeries("A-TEST1234", "1000000000001", "M1")
TARIFF = "E-1R-AGILE-24-04-03-J"


def half_hours(count: int, kwh: float) -> list[ConsumptionInterval]:
    return [
        ConsumptionInterval(T0 + timedelta(minutes=30 * i), T0 + timedelta(minutes=30 * (i + 1)), kwh)
        for i in range(count)
    ]


def test_write_csv():
    """The ledger is written with a header and one row per interval."""
    cost = total_cost(half_hours(2, 0.5), FlatRate(20.0))
    out = io.StringIO()

    assert write_csv(out, cost) == 2

    rows = list(csv.reader(io.StringIO(out.getvalue())))
    assert rows[0] == ["Start", "End", "Consumption", "Rate", "Cost"]
    assert rows[1] == ["2024-03-01T00:00:00+00:00", "2024-03-01T00:30:00+00:00", "0.5", "20.0", "10.0"]


def test_write_csv_with_battery_columns(tmp_path):
    """Battery telemetry is appended as extra columns."""
    battery = LoadShiftSimulator(capacity=2, charge_rate=2, window=ChargeWindow(0, 0.5))
    shifted = battery.run(half_hours(3, 0.5))
    cost = total_cost(shifted.intervals, FlatRate(10.0))
    path = tmp_path / "ledger.csv"

    save_csv(path, cost, shifted)

    with open(path, newline="") as f:
        rows = list(csv.reader(f))
    assert rows[0][-3:] == ["BatteryCharge", "BatteryDelta", "BatteryFull"]
    assert rows[1][-3:] == ["1.0", "1.0", "False"]
    assert rows[2][-3:] == ["0.5", "-0.5", "False"]


def test_write_csv_rejects_mismatched_stats():
    """Extra columns must have one row per ledger interval."""
    battery = LoadShiftSimulator(capacity=2, charge_rate=2, window=ChargeWindow(0, 1))
    shifted = battery.run(half_hours(3, 0.5))
    cost = total_cost(half_hours(2, 0.5), FlatRate(10.0))

    with pytest.raises(ValueError, match="intervals"):
        write_csv(io.StringIO(), cost, shifted)


def test_summary_table():
    """The summary table shows energy, standing and total rows."""
    summary = summarise(total_cost(half_hours(48, 0.5), FlatRate(20.0)), standing_charge=50.0)

    table = summary_table(summary)

    assert table.row_count == 3


@pytest.fixture
def store(tmp_path):
    path = tmp_path / "test.db"
    init_db(path)
    return IntervalStore(path)


def test_run_scenario_with_and_without_battery(store):
    """Shifting usage into a cheap window lowers the cost."""
    store.upsert_consumption(SERIES, half_hours(48, 0.5))
    store.upsert_tariff_rates(
        TARIFF,
        [
            TariffRateInterval(T0, T0 + timedelta(hours=5), 7.0),
            TariffRateInterval(T0 + timedelta(hours=5), T0 + timedelta(hours=24), 30.0),
        ],
    )
    end = T0 + timedelta(days=1)

    baseline = run_scenario(store, SERIES, TARIFF, T0, end, standing_charge=50.0)
    battery = LoadShiftSimulator(capacity=5, charge_rate=1, window=ChargeWindow(0, 5))
    shifted = run_scenario(store, SERIES, TARIFF, T0, end, standing_charge=50.0, simulator=battery)

    assert baseline.load_shift is None
    assert baseline.cost.total_consumption == 24.0
    assert baseline.summary.days == 1
    assert shifted.load_shift.charged_kwh == 5
    assert shifted.cost.total_consumption == pytest.approx(24.0)
    assert shifted.summary.total_cost < baseline.summary.total_cost


def test_run_scenario_fills_missing_consumption(store):
    """Missing half-hours are priced as zero usage."""
    rows = half_hours(4, 1.0)
    store.upsert_consumption(SERIES, [rows[0], rows[3]])
    store.upsert_tariff_rates(TARIFF, [TariffRateInterval(T0, T0 + timedelta(hours=2), 10.0)])

    result = run_scenario(store, SERIES, TARIFF, T0, T0 + timedelta(hours=2), standing_charge=0.0)

    assert len(result.cost.intervals) == 4
    assert result.cost.total_cost == 20.0


def test_run_scenario_tariff_gap(store):
    """A gap in the stored rates aborts the scenario."""
    store.upsert_consumption(SERIES, half_hours(4, 1.0))
    store.upsert_tariff_rates(
        TARIFF,
        [
            TariffRateInterval(T0, T0 + timedelta(minutes=30), 10.0),
            TariffRateInterval(T0 + timedelta(minutes=60), T0 + timedelta(minutes=120), 10.0),
        ],
    )

    with pytest.raises(TariffGapError):
        run_scenario(store, SERIES, TARIFF, T0, T0 + timedelta(hours=2), standing_charge=0.0)


def test_run_scenario_no_data(store):
    """No stored usage in range is a NoDataError."""
    with pytest.raises(NoDataError):
        run_scenario(store, SERIES, TARIFF, T0, T0 + timedelta(hours=2), standing_charge=0.0)
