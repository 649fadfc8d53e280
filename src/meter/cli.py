"""Command-line interface for the home electricity meter tracker."""

import json
import logging
from dataclasses import replace
from datetime import date
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from . import db
from .analysis import summary
from .billing import cost_for, find_decreases, interval_history, preview_reading
from .formatting import format_currency, format_number
from .models import FixedLighting, PercentageLighting, SecondarySurcharge
from .readings import (
    ReadingError,
    add_reading,
    delete_reading,
    export_to_csv,
    get_previous_reading,
    import_from_csv,
    list_readings,
    parse_date,
    update_reading,
)
from .tariffs import (
    TariffConfigError,
    get_config_path,
    get_tariffs,
    load_tariffs_from_yaml,
    reset_tariffs,
    save_tariffs,
    tariffs_to_dict,
)

console = Console()
err_console = Console(stderr=True)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def parse_reference_date(value: str | None) -> date:
    """--date option value, or today."""
    if not value:
        return date.today()
    parsed = parse_date(value)
    return parsed if type(parsed) is date else parsed.date()


def fail(ctx: click.Context, message: str) -> None:
    console.print(f"[red]Error: {escape(message)}[/red]")
    ctx.exit(1)


@click.group()
@click.option("--db-path", type=click.Path(), help="Path to SQLite database (or set METER_DB_PATH)")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.pass_context
def cli(ctx, db_path, verbose):
    """Home electricity tracker - log meter readings and estimate the bill."""
    configure_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["db_path"] = Path(db_path) if db_path else None
    if ctx.invoked_subcommand != "database":
        # Every other command needs the schema; creating it is idempotent
        db.init_db(ctx.obj["db_path"])


# Database commands
@cli.group()
def database():
    """Database management commands."""
    pass


@database.command("init")
@click.pass_context
def db_init(ctx):
    """Initialize the database schema."""
    db.init_db(ctx.obj["db_path"])
    console.print("[green]Database initialized successfully[/green]")

    # Seed tariffs from config when none are stored yet
    config_path = get_config_path()
    if config_path.exists() and not db.get_stats(ctx.obj["db_path"])["tariffs"]["configured"]:
        try:
            save_tariffs(load_tariffs_from_yaml(config_path), ctx.obj["db_path"])
        except TariffConfigError as e:
            fail(ctx, f"{config_path}: {e}")
        console.print(f"[green]Loaded tariffs from {config_path}[/green]")


@database.command("stats")
@click.pass_context
def db_stats(ctx):
    """Show database statistics."""
    db.init_db(ctx.obj["db_path"])
    stats = db.get_stats(ctx.obj["db_path"])

    table = Table(title="Database Statistics")
    table.add_column("Category", style="cyan")
    table.add_column("Count", justify="right")
    table.add_column("Range")

    readings = stats["readings"]
    table.add_row(
        "Readings",
        str(readings["count"]),
        f"{readings['earliest'] or 'N/A'} → {readings['latest'] or 'N/A'}",
    )

    tariffs = stats["tariffs"]
    if tariffs["configured"]:
        table.add_row("Tariffs", f"v{tariffs['schema_version']}", f"updated {tariffs['updated_at']}")
    else:
        table.add_row("Tariffs", "default", "")

    console.print(table)


# Reading commands
@cli.group()
def reading():
    """Meter reading commands."""
    pass


@reading.command("add")
@click.argument("value", type=float)
@click.option("--date", "reading_date", help="Reading date (YYYY-MM-DD), defaults to today")
@click.option("--id", "reading_id", help="Reading id (generated when omitted)")
@click.pass_context
def reading_add(ctx, value, reading_date, reading_id):
    """Record a cumulative meter VALUE."""
    db_path = ctx.obj["db_path"]
    try:
        when = parse_date(reading_date) if reading_date else date.today()
        new = add_reading(when, value, reading_id=reading_id, db_path=db_path)
    except ReadingError as e:
        fail(ctx, str(e))

    console.print(f"[green]Saved reading {format_number(new.value)} on {new.date.isoformat()}[/green]")
    console.print(f"[dim]id: {new.id}[/dim]")

    # Compare against the reading just before this one by date, not the newest
    previous = get_previous_reading(new.id, db_path)
    preview = preview_reading(previous, new.value, get_tariffs(db_path))
    if preview is not None:
        consumption, costs = preview
        console.print(f"Previous reading: {format_number(previous.value)} on {previous.date.isoformat()}")
        console.print(f"Consumption: {format_number(consumption)} kWh")
        console.print(f"Partial cost: {format_currency(costs.total)}")

    for warning in find_decreases(list_readings(db_path)):
        if new.id in (warning.previous.id, warning.current.id):
            console.print(
                f"[yellow]Meter went down from {format_number(warning.previous.value)} "
                f"on {warning.previous.date.isoformat()} to {format_number(warning.current.value)} "
                f"on {warning.current.date.isoformat()}[/yellow]"
            )
            console.print("[yellow]That interval counts as 0 kWh[/yellow]")


@reading.command("list")
@click.pass_context
def reading_list(ctx):
    """List readings with consumption and cost since the previous one."""
    db_path = ctx.obj["db_path"]
    rows = interval_history(list_readings(db_path), get_tariffs(db_path))

    if not rows:
        console.print("[yellow]No readings found[/yellow]")
        return

    table = Table(title="Readings")
    table.add_column("Date", style="cyan")
    table.add_column("Reading", justify="right")
    table.add_column("kWh", justify="right")
    table.add_column("Cost", justify="right")
    table.add_column("ID", style="dim")

    for row in reversed(rows):
        table.add_row(
            row.reading.date.isoformat(),
            format_number(row.reading.value),
            "initial" if row.is_initial else format_number(row.consumption),
            "" if row.is_initial else format_currency(row.cost),
            row.reading.id,
        )

    console.print(table)


@reading.command("edit")
@click.argument("reading_id")
@click.option("--date", "reading_date", help="New date (YYYY-MM-DD)")
@click.option("--value", type=float, help="New meter value")
@click.pass_context
def reading_edit(ctx, reading_id, reading_date, value):
    """Change the date or value of a reading."""
    if reading_date is None and value is None:
        fail(ctx, "Nothing to change; pass --date and/or --value")
    try:
        updated = update_reading(
            reading_id,
            reading_date=parse_date(reading_date) if reading_date else None,
            value=value,
            db_path=ctx.obj["db_path"],
        )
    except ReadingError as e:
        fail(ctx, str(e))
    console.print(
        f"[green]Updated reading {updated.id}: {format_number(updated.value)} on {updated.date.isoformat()}[/green]"
    )


@reading.command("delete")
@click.argument("reading_id")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def reading_delete(ctx, reading_id, yes):
    """Delete a reading."""
    if not yes and not click.confirm(f"Delete reading {reading_id}?"):
        console.print("[yellow]Cancelled[/yellow]")
        return
    try:
        delete_reading(reading_id, ctx.obj["db_path"])
    except ReadingError as e:
        fail(ctx, str(e))
    console.print(f"[green]Deleted reading {reading_id}[/green]")


@reading.command("import")
@click.option("--csv", "csv_path", type=click.Path(exists=True), required=True, help="CSV with date,value[,id]")
@click.pass_context
def reading_import(ctx, csv_path):
    """Import readings from CSV."""
    try:
        result = import_from_csv(Path(csv_path), ctx.obj["db_path"])
    except ReadingError as e:
        fail(ctx, str(e))
    console.print(f"[green]Imported {result['imported']} readings[/green]")
    if result["skipped"]:
        console.print(f"[yellow]Skipped {result['skipped']} duplicates[/yellow]")


@reading.command("export")
@click.option("--csv", "csv_path", type=click.Path(), required=True, help="Output CSV path")
@click.pass_context
def reading_export(ctx, csv_path):
    """Export readings to CSV."""
    count = export_to_csv(Path(csv_path), ctx.obj["db_path"])
    console.print(f"[green]Exported {count} readings to {csv_path}[/green]")


# Tariff commands
@cli.group()
def tariff():
    """Tariff management commands."""
    pass


@tariff.command("show")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def tariff_show(ctx, as_json):
    """Show the tariff configuration in use."""
    tariffs = get_tariffs(ctx.obj["db_path"])

    if as_json:
        click.echo(json.dumps(tariffs_to_dict(tariffs), indent=2))
        return

    table = Table(title="Tariffs")
    table.add_column("Component", style="cyan")
    table.add_column("Rate", justify="right")
    table.add_column("Notes")

    table.add_row("TUSD", f"{tariffs.tusd.rate_per_unit:.5f}/kWh", f"before taxes {tariffs.tusd.rate_before_taxes:.5f}")
    table.add_row("TE", f"{tariffs.te.rate_per_unit:.5f}/kWh", f"before taxes {tariffs.te.rate_before_taxes:.5f}")

    flag = tariffs.flag_surcharge
    table.add_row(f"Flag: {flag.label}", f"{flag.rate_per_unit:.5f}/kWh", "")
    if flag.secondary is not None:
        table.add_row(
            f"Flag: {flag.secondary.label}",
            f"{flag.secondary.rate_per_unit:.5f}/kWh",
            "[green]active[/green]" if flag.secondary.active else "[dim]inactive[/dim]",
        )

    lighting = tariffs.public_lighting
    if isinstance(lighting, PercentageLighting):
        table.add_row("Public lighting", f"{format_number(lighting.amount)}%", "of TUSD + TE + flags")
    else:
        table.add_row("Public lighting", format_currency(lighting.amount), "flat monthly charge")

    console.print(table)


@tariff.command("set")
@click.option("--tusd", type=float, help="TUSD rate per kWh")
@click.option("--tusd-before-taxes", type=float, help="TUSD rate per kWh before taxes")
@click.option("--te", type=float, help="TE rate per kWh")
@click.option("--te-before-taxes", type=float, help="TE rate per kWh before taxes")
@click.option("--flag-label", help="Primary flag name")
@click.option("--flag-rate", type=float, help="Primary flag rate per kWh")
@click.option("--secondary/--no-secondary", default=None, help="Turn the secondary flag on or off")
@click.option("--secondary-label", help="Secondary flag name")
@click.option("--secondary-rate", type=float, help="Secondary flag rate per kWh")
@click.option("--lighting-mode", type=click.Choice(["fixed", "percentage"]), help="Public lighting charge type")
@click.option("--lighting-amount", type=float, help="Flat amount, or percentage of the subtotal")
@click.pass_context
def tariff_set(
    ctx,
    tusd,
    tusd_before_taxes,
    te,
    te_before_taxes,
    flag_label,
    flag_rate,
    secondary,
    secondary_label,
    secondary_rate,
    lighting_mode,
    lighting_amount,
):
    """Change individual tariff values and save the whole configuration."""
    db_path = ctx.obj["db_path"]
    current = get_tariffs(db_path)

    tusd_rate = replace(
        current.tusd,
        rate_per_unit=current.tusd.rate_per_unit if tusd is None else tusd,
        rate_before_taxes=current.tusd.rate_before_taxes if tusd_before_taxes is None else tusd_before_taxes,
    )
    te_rate = replace(
        current.te,
        rate_per_unit=current.te.rate_per_unit if te is None else te,
        rate_before_taxes=current.te.rate_before_taxes if te_before_taxes is None else te_before_taxes,
    )

    old_secondary = current.flag_surcharge.secondary or SecondarySurcharge(False, "", 0.0)
    new_secondary = SecondarySurcharge(
        active=old_secondary.active if secondary is None else secondary,
        label=old_secondary.label if secondary_label is None else secondary_label,
        rate_per_unit=old_secondary.rate_per_unit if secondary_rate is None else secondary_rate,
    )
    flag = replace(
        current.flag_surcharge,
        label=current.flag_surcharge.label if flag_label is None else flag_label,
        rate_per_unit=current.flag_surcharge.rate_per_unit if flag_rate is None else flag_rate,
        secondary=new_secondary,
    )

    mode = lighting_mode or current.public_lighting.mode
    amount = current.public_lighting.amount if lighting_amount is None else lighting_amount
    lighting = PercentageLighting(amount) if mode == "percentage" else FixedLighting(amount)

    updated = replace(current, tusd=tusd_rate, te=te_rate, flag_surcharge=flag, public_lighting=lighting)
    try:
        save_tariffs(updated, db_path)
    except TariffConfigError as e:
        fail(ctx, str(e))
    console.print("[green]Tariffs saved[/green]")


@tariff.command("load")
@click.option("--config", type=click.Path(exists=True), help="Path to tariffs.yaml")
@click.pass_context
def tariff_load(ctx, config):
    """Load tariffs from YAML config."""
    config_path = Path(config) if config else get_config_path()
    try:
        save_tariffs(load_tariffs_from_yaml(config_path), ctx.obj["db_path"])
    except (TariffConfigError, FileNotFoundError) as e:
        fail(ctx, str(e))
    console.print(f"[green]Loaded tariffs from {config_path}[/green]")


@tariff.command("reset")
@click.pass_context
def tariff_reset(ctx):
    """Discard saved tariffs and go back to the defaults."""
    reset_tariffs(ctx.obj["db_path"])
    console.print("[green]Tariffs reset to defaults[/green]")


# Billing commands
@cli.command()
@click.option("--date", "reference_date", help="Reference date (YYYY-MM-DD), defaults to today")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def dashboard(ctx, reference_date, as_json):
    """Consumption, partial cost and month projection."""
    try:
        ref = parse_reference_date(reference_date)
    except ReadingError as e:
        fail(ctx, str(e))

    data = summary.get_dashboard_summary(ref, ctx.obj["db_path"])

    if as_json:
        click.echo(json.dumps(data, indent=2))
    else:
        console.print(summary.format_dashboard_text(data), markup=False)


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def history(ctx, as_json):
    """Reading history with consumption between readings."""
    rows = summary.get_history(ctx.obj["db_path"])

    if as_json:
        click.echo(json.dumps(rows, indent=2))
    else:
        console.print(summary.format_history_text(rows), markup=False)


@cli.command()
@click.option("--date", "reference_date", help="Month to project (YYYY-MM-DD), defaults to today")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def project(ctx, reference_date, as_json):
    """Estimate this month's consumption and cost."""
    try:
        ref = parse_reference_date(reference_date)
    except ReadingError as e:
        fail(ctx, str(e))

    data = summary.get_projection(ref, ctx.obj["db_path"])

    if as_json:
        click.echo(json.dumps(data, indent=2))
        return

    if data is None:
        console.print("[yellow]Not enough data: need two readings on different days[/yellow]")
        return

    console.print(f"Daily average: {format_number(data['daily_average_kwh'])} kWh")
    console.print(f"Projected consumption: {format_number(data['projected_kwh'])} kWh")
    console.print(f"Projected cost: {format_currency(data['projected_cost'])}")


@cli.command()
@click.argument("kwh", type=float)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def cost(ctx, kwh, as_json):
    """Cost breakdown for KWH with the current tariffs."""
    if kwh < 0:
        fail(ctx, "Consumption cannot be negative")
    costs = cost_for(kwh, get_tariffs(ctx.obj["db_path"]))
    data = summary.breakdown_to_dict(costs)

    if as_json:
        click.echo(json.dumps(data, indent=2))
        return

    table = Table(title=f"Cost for {format_number(kwh)} kWh")
    table.add_column("Component", style="cyan")
    table.add_column("Cost", justify="right")
    table.add_row("TUSD", format_currency(data["tusd"]))
    table.add_row("TE", format_currency(data["te"]))
    table.add_row("Flag", format_currency(data["flag"]))
    table.add_row("Public lighting", format_currency(data["public_lighting"]))
    table.add_row("[bold]Total[/bold]", f"[bold]{format_currency(data['total'])}[/bold]")
    console.print(table)


if __name__ == "__main__":
    cli()
