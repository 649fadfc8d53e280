"""Dashboard and history summaries built from stored readings and tariffs."""

from datetime import date
from pathlib import Path

from ..billing import find_decreases, interval_history, period_stats, project_cycle
from ..formatting import format_currency, format_number, round_money
from ..models import CostBreakdown, ProjectionResult
from ..readings import list_readings
from ..tariffs import get_tariffs


def breakdown_to_dict(costs: CostBreakdown) -> dict:
    return {
        "tusd": round_money(costs.tusd_cost),
        "te": round_money(costs.te_cost),
        "flag": round_money(costs.flag_cost),
        "public_lighting": round_money(costs.lighting_cost),
        "total": round_money(costs.total),
    }


def projection_to_dict(projection: ProjectionResult | None) -> dict | None:
    if projection is None:
        return None
    return {
        "daily_average_kwh": round(projection.daily_average, 3),
        "projected_kwh": round(projection.projected_consumption, 2),
        "projected_cost": round_money(projection.projected_cost),
    }


def get_dashboard_summary(reference_date: date, db_path: Path | None = None) -> dict:
    """Totals, cost breakdown and month projection for every stored reading."""
    readings = list_readings(db_path)
    tariffs = get_tariffs(db_path)
    stats = period_stats(readings, tariffs, reference_date)

    if stats is None:
        return {
            "reference_date": reference_date.isoformat(),
            "readings_count": 0,
            "last_reading": None,
            "total_kwh": 0,
            "costs": None,
            "projection": None,
            "flag": tariffs.flag_surcharge.label,
            "warnings": [],
        }

    return {
        "reference_date": reference_date.isoformat(),
        "readings_count": stats.readings_count,
        "last_reading": {
            "id": stats.last_reading.id,
            "date": stats.last_reading.date.isoformat(),
            "value": stats.last_reading.value,
        },
        "total_kwh": round(stats.total_consumption, 2),
        "costs": breakdown_to_dict(stats.costs),
        "projection": projection_to_dict(stats.projection),
        "flag": tariffs.flag_surcharge.label,
        "warnings": [
            {
                "from": w.previous.date.isoformat(),
                "to": w.current.date.isoformat(),
                "difference": round(w.difference, 2),
            }
            for w in find_decreases(readings)
        ],
    }


def get_projection(reference_date: date, db_path: Path | None = None) -> dict | None:
    readings = list_readings(db_path)
    return projection_to_dict(project_cycle(readings, get_tariffs(db_path), reference_date))


def get_history(db_path: Path | None = None) -> list[dict]:
    """One row per reading, oldest first, with consumption and cost since the previous one."""
    readings = list_readings(db_path)
    tariffs = get_tariffs(db_path)
    return [
        {
            "id": row.reading.id,
            "date": row.reading.date.isoformat(),
            "value": row.reading.value,
            "consumption_kwh": round(row.consumption, 2),
            "cost": round_money(row.cost),
            "is_initial": row.is_initial,
        }
        for row in interval_history(readings, tariffs)
    ]


def format_dashboard_text(data: dict) -> str:
    """Format the dashboard summary as plain text."""
    if not data["readings_count"]:
        return "No readings yet. Add one with `meter reading add`."

    last = data["last_reading"]
    costs = data["costs"]
    lines = [
        f"# Energy summary ({data['reference_date']})",
        "",
        f"Last reading: {format_number(last['value'])} on {last['date']}",
        f"Consumption: {format_number(data['total_kwh'])} kWh across {data['readings_count']} readings",
        f"Partial cost: {format_currency(costs['total'])} (flag: {data['flag']})",
        f"  TUSD: {format_currency(costs['tusd'])}",
        f"  TE: {format_currency(costs['te'])}",
        f"  Flag: {format_currency(costs['flag'])}",
        f"  Public lighting: {format_currency(costs['public_lighting'])}",
        "",
    ]

    projection = data["projection"]
    if projection:
        lines.append(
            f"Month projection: {format_currency(projection['projected_cost'])} "
            f"(~{format_number(projection['projected_kwh'])} kWh, "
            f"{format_number(projection['daily_average_kwh'])} kWh/day)"
        )
    else:
        lines.append("Month projection: not enough data (add one more reading)")

    for warning in data["warnings"]:
        lines.append(
            f"Warning: meter went down by {format_number(-warning['difference'])} "
            f"between {warning['from']} and {warning['to']} (counted as 0 kWh)"
        )

    return "\n".join(lines)


def format_history_text(rows: list[dict]) -> str:
    """Format the reading history as plain text, newest first."""
    if not rows:
        return "No readings yet."

    lines = []
    for row in reversed(rows):
        if row["is_initial"]:
            detail = "initial reading"
        else:
            detail = f"+{format_number(row['consumption_kwh'])} kWh, {format_currency(row['cost'])}"
        lines.append(f"{row['date']}  {format_number(row['value'])}  ({detail})")
    return "\n".join(lines)
