"""Command-line interface for syncing and modelling Octopus Energy costs."""

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import db
from .collectors.octopus import OctopusClient, build_tariff_code, find_product_for_tariff, parse_tariff_code
from .config import load_config
from .errors import (
    AccountingError,
    ConfigError,
    NoDataError,
    OctopusAPIError,
    ReconstructionError,
    SyncCancelled,
    SyncError,
)
from .loadshift import ChargeWindow, LoadShiftSimulator
from .models import Account, MeterSeries
from .reports.ledger import save_csv, summary_table
from .scenario import run_scenario
from .store import IntervalStore
from .sync import Deadline, SyncEngine

console = Console()


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def parse_date(value: str) -> datetime:
    """Parse YYYY-MM-DD as midnight UTC."""
    try:
        return datetime.strptime(value, "%Y-%m-%d").replace(tzinfo=timezone.utc)
    except ValueError:
        raise click.BadParameter(f"{value!r} is not a date (YYYY-MM-DD)")


def today() -> datetime:
    return datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)


def fail(ctx: click.Context, message: str) -> None:
    console.print(f"[red]{message}[/red]")
    ctx.exit(1)


def select_meter(account: Account, mpan: str | None, serial: str | None):
    """Pick the meter to model: the first one, or the one matching mpan/serial."""
    for prop, series in account.meter_series():
        if mpan and series.mpan != mpan:
            continue
        if serial and series.serial != serial:
            continue
        for point in prop.electricity_meter_points:
            if point.mpan == series.mpan:
                return series, point
    return None, None


@click.group()
@click.option("--db-path", type=click.Path(), help="Path to SQLite database")
@click.option("--config", "config_path", type=click.Path(exists=True), help="Path to YAML config")
@click.option("--endpoint", help="Base URL of the Octopus API")
@click.option("--account", help="Octopus account number, e.g. A-1234ABCD")
@click.option("--key", "api_key", help="Octopus API key")
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging")
@click.pass_context
def cli(ctx, db_path, config_path, endpoint, account, api_key, verbose):
    """Sync Octopus Energy usage and model tariff and battery costs."""
    setup_logging(verbose)
    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = load_config(
            Path(config_path) if config_path else None,
            endpoint=endpoint,
            account=account,
            api_key=api_key,
            db_path=Path(db_path) if db_path else None,
        )
    except ConfigError as e:
        fail(ctx, f"Error: {e}")


def make_engine(config) -> SyncEngine:
    config.require_credentials()
    db.init_db(config.db_path)
    return SyncEngine(config, OctopusClient(config), IntervalStore(config.db_path))


# Database commands
@cli.group("db")
def database():
    """Database management commands."""
    pass


@database.command("init")
@click.pass_context
def db_init(ctx):
    """Initialize the database schema."""
    db.init_db(ctx.obj["config"].db_path)
    console.print("[green]Database initialized successfully[/green]")


@database.command("stats")
@click.pass_context
def db_stats(ctx):
    """Show database statistics."""
    config = ctx.obj["config"]
    db.init_db(config.db_path)
    stats = db.get_stats(config.db_path)

    table = Table(title="Database Statistics")
    table.add_column("Category", style="cyan")
    table.add_column("Count", justify="right")
    table.add_column("Range")

    table.add_row("Accounts", str(stats["accounts"]["count"]), "")

    for meter in stats["consumption"]:
        table.add_row(
            f"Consumption {meter['series']}",
            str(meter["count"]),
            f"{meter['earliest'] or 'N/A'} → {meter['latest'] or 'N/A'}",
        )

    for tariff in stats["tariff_rates"]:
        table.add_row(
            f"Tariff {tariff['tariff_code']}",
            str(tariff["count"]),
            f"{tariff['earliest'] or 'N/A'} → {tariff['latest'] or 'N/A'}",
        )

    console.print(table)


@cli.command()
@click.option("--tariff", "product", help="Product code to sync unit rates for (see 'products')")
@click.option("--from", "from_date", help="Start date for tariff sync (YYYY-MM-DD)")
@click.option("--timeout", type=float, help="Give up after this many seconds")
@click.pass_context
def sync(ctx, product, from_date, timeout):
    """Download account details and consumption to the local database.

    Only consumption newer than what is already stored is fetched, so this
    is safe to run from cron. With --tariff, syncs that product's unit rates
    for your region instead.
    """
    config = ctx.obj["config"]
    deadline = Deadline(timeout=timeout)
    try:
        engine = make_engine(config)
        with engine.client:
            if product:
                account = engine.cached_account() or engine.client.account()
                tariff_code = tariff_code_for(account, product)
                check_product(engine.client, product, tariff_code)
                start = parse_date(from_date) if from_date else datetime(2000, 1, 1, tzinfo=timezone.utc)
                count = engine.sync_tariff(product, tariff_code, start, datetime.now(timezone.utc), deadline)
                console.print(f"[green]Stored {count} rates for {tariff_code}[/green]")
                return

            report = engine.sync(deadline)
    except ConfigError as e:
        fail(ctx, f"Error: {e}")
    except (SyncError, OctopusAPIError) as e:
        fail(ctx, f"Upstream unreachable: {e}")
    except SyncCancelled as e:
        fail(ctx, f"Sync stopped: {e}")

    table = Table(title=f"Sync {report.account}")
    table.add_column("Meter", style="cyan")
    table.add_column("Since")
    table.add_column("Fetched", justify="right")
    table.add_column("Status")
    for m in report.meters:
        status = "[green]OK[/green]" if m.ok else f"[red]{m.error}[/red]"
        since = m.since.isoformat() if m.since else "N/A"
        table.add_row(str(m.series), since, str(m.fetched), status)
    console.print(table)

    if report.failed:
        ctx.exit(1)


def tariff_code_for(account: Account, product: str, series: MeterSeries | None = None) -> str:
    """Build the tariff code for a product in the account's region.

    The fuel, register and region parts come from the agreement currently
    active on the meter point.
    """
    now = datetime.now(timezone.utc)
    for prop in account.properties:
        for point in prop.electricity_meter_points:
            if series and point.mpan != series.mpan:
                continue
            agreement = point.active_agreement(now)
            if agreement:
                fuel, registers, _, region = parse_tariff_code(agreement.tariff_code)
                return build_tariff_code(fuel, registers, product, region)
    raise ConfigError("No active electricity agreement found to take the tariff region from")



def check_product(client: OctopusClient, product: str, tariff_code: str) -> None:
    """Print the product name, or warn if it isn't currently on sale.

    Retired products still have rates, so this doesn't stop the command.
    """
    found = find_product_for_tariff(client.products(), tariff_code)
    if found is None:
        console.print(f"[yellow]{product} is not a current product[/yellow]")
    else:
        console.print(f"[cyan]{found.display_name} ({found.code})[/cyan]")

@cli.command()
@click.pass_context
def products(ctx):
    """List available products and tariffs."""
    config = ctx.obj["config"]
    try:
        with OctopusClient(config) as client:
            product_list = client.products()
    except OctopusAPIError as e:
        fail(ctx, f"Upstream unreachable: {e}")

    table = Table(title="Products")
    table.add_column("Code", style="cyan")
    table.add_column("Name")
    table.add_column("Description")
    for p in product_list:
        table.add_row(p.code, p.display_name, p.description)
    console.print(table)


@cli.command()
@click.option("--tariff", "product", required=True, help="Product code to model, e.g. AGILE-24-04-03")
@click.option("--from", "from_date", required=True, help="Date to start modelling from (YYYY-MM-DD)")
@click.option("--to", "to_date", help="Date to model to (YYYY-MM-DD), defaults to today")
@click.option("--mpan", help="Meter point to model (default: first on the account)")
@click.option("--serial", help="Meter serial to model")
@click.option("--battery-capacity", type=float, help="Battery capacity in kWh")
@click.option("--battery-rate", type=float, help="Battery charge rate in kWh per hour")
@click.option("--battery-charge", help="Charge window as <hour>-<hour>, e.g. '0-5' or '23-4'")
@click.option("--csv", "csv_path", type=click.Path(), help="Write the per-interval ledger to CSV")
@click.option("--offline", is_flag=True, help="Use cached tariff rates only")
@click.pass_context
def model(
    ctx,
    product,
    from_date,
    to_date,
    mpan,
    serial,
    battery_capacity,
    battery_rate,
    battery_charge,
    csv_path,
    offline,
):
    """Model costs on a tariff, optionally with a load-shifting battery."""
    config = ctx.obj["config"]
    battery_opts = (battery_capacity, battery_rate, battery_charge)
    if any(o is not None for o in battery_opts) and not all(o is not None for o in battery_opts):
        fail(ctx, "--battery-capacity, --battery-rate and --battery-charge must be given together")

    start = parse_date(from_date)
    end = parse_date(to_date) if to_date else today()
    if start >= end:
        fail(ctx, "--from must be before --to")

    try:
        window = ChargeWindow.parse(battery_charge) if battery_charge else None
    except ValueError as e:
        fail(ctx, f"Invalid battery charge window: {e}")

    db.init_db(config.db_path)
    store = IntervalStore(config.db_path)
    account = store.load_account(config.account)
    if account is None:
        fail(ctx, f"No cached account {config.account or '(none)'}; run 'octoledger sync' first")

    series, _ = select_meter(account, mpan, serial)
    if series is None:
        fail(ctx, "No matching electricity meter on the account")

    try:
        tariff_code = tariff_code_for(account, product, series)
        console.print(f"[cyan]Using tariff {tariff_code} for {series}[/cyan]")
        if not offline:
            engine = make_engine(config)
            with engine.client:
                check_product(engine.client, product, tariff_code)
                engine.sync_tariff(product, tariff_code, start, end)

        width = timedelta(minutes=config.interval_minutes)
        baseline = run_scenario(store, series, tariff_code, start, end, config.standing_charge, width=width)
        console.print(summary_table(baseline.summary, title=f"{tariff_code} {start.date()} → {end.date()}"))

        result = baseline
        if window is not None:
            simulator = LoadShiftSimulator(battery_capacity, battery_rate, window)
            result = run_scenario(
                store, series, tariff_code, start, end, config.standing_charge, simulator=simulator, width=width
            )
            console.print(summary_table(result.summary, title=f"With {battery_capacity:g} kWh battery"))
            saving = baseline.summary.total_cost - result.summary.total_cost
            console.print(f"[green]Battery saving: £{saving / 100:.2f}[/green]")
    except ConfigError as e:
        fail(ctx, f"Error: {e}")
    except NoDataError as e:
        fail(ctx, f"No data for this period: {e}")
    except (ReconstructionError, AccountingError) as e:
        fail(ctx, f"Data is inconsistent: {e}")
    except (SyncError, OctopusAPIError) as e:
        fail(ctx, f"Upstream unreachable: {e}")

    if csv_path:
        stats = [result.load_shift] if result.load_shift else []
        count = save_csv(Path(csv_path), result.cost, *stats)
        console.print(f"[green]Wrote {count} intervals to {csv_path}[/green]")


if __name__ == "__main__":
    cli()
