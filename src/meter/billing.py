"""Billing calculations: consumption, cost breakdown and monthly projection.

Everything here is a pure function of its arguments. Reading lists may come
in any order; they are always sorted by date (stable, so readings sharing a
date keep their original order) before consecutive differences are taken.
"""

import calendar
from datetime import date, datetime
from typing import Iterable, Sequence

from .models import (
    ConsumptionWarning,
    CostBreakdown,
    FixedLighting,
    IntervalConsumption,
    PercentageLighting,
    PeriodStats,
    ProjectionResult,
    Reading,
    TariffConfig,
)

SECONDS_PER_DAY = 86400


def consumption_between(previous_value: float | None, current_value: float) -> float:
    """Energy used between two cumulative readings.

    Returns 0 without a previous reading. A decrease (meter reset or typo)
    is clamped to 0.
    """
    if previous_value is None:
        return 0.0
    return max(current_value - previous_value, 0.0)


def cost_for(consumption: float, tariffs: TariffConfig) -> CostBreakdown:
    """Apply a tariff configuration to a consumption quantity in kWh."""
    tusd_cost = consumption * tariffs.tusd.rate_per_unit
    te_cost = consumption * tariffs.te.rate_per_unit

    # Primary and active secondary flags both apply to the full quantity
    flag_cost = 0.0
    for surcharge in tariffs.flag_surcharge.active_surcharges():
        flag_cost += consumption * surcharge.rate_per_unit

    lighting = tariffs.public_lighting
    if isinstance(lighting, PercentageLighting):
        lighting_cost = (tusd_cost + te_cost + flag_cost) * (lighting.amount / 100)
    elif isinstance(lighting, FixedLighting):
        lighting_cost = lighting.amount
    else:
        raise TypeError(f"Unknown public lighting charge: {lighting!r}")

    return CostBreakdown(
        tusd_cost=tusd_cost,
        te_cost=te_cost,
        flag_cost=flag_cost,
        lighting_cost=lighting_cost,
        total=tusd_cost + te_cost + flag_cost + lighting_cost,
    )


def _as_datetime(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        # Mixed aware/naive values are compared as naive
        return value.replace(tzinfo=None)
    return datetime(value.year, value.month, value.day)


def sort_readings(readings: Iterable[Reading]) -> list[Reading]:
    """Return readings in ascending date order."""
    return sorted(readings, key=lambda r: _as_datetime(r.date))


def days_between(start: date | datetime, end: date | datetime) -> float:
    """Days from start to end, keeping fractions from time-of-day."""
    return (_as_datetime(end) - _as_datetime(start)).total_seconds() / SECONDS_PER_DAY


def days_in_month(reference_date: date) -> int:
    """Number of calendar days in the month containing reference_date."""
    return calendar.monthrange(reference_date.year, reference_date.month)[1]


def total_consumption(readings: Iterable[Reading]) -> float:
    """Sum of clamped differences across consecutive sorted readings."""
    sorted_readings = sort_readings(readings)
    total = 0.0
    for previous, current in zip(sorted_readings, sorted_readings[1:]):
        total += consumption_between(previous.value, current.value)
    return total


def project_cycle(
    readings: Sequence[Reading], tariffs: TariffConfig, reference_date: date
) -> ProjectionResult | None:
    """Extrapolate the average daily consumption to the whole month.

    Returns None when there are fewer than two readings or when the first
    and last readings are on the same instant.
    """
    if len(readings) < 2:
        return None

    sorted_readings = sort_readings(readings)
    total_consumed = total_consumption(sorted_readings)

    days_passed = days_between(sorted_readings[0].date, sorted_readings[-1].date)
    if days_passed <= 0:
        return None

    daily_average = total_consumed / days_passed
    projected_consumption = daily_average * days_in_month(reference_date)
    costs = cost_for(projected_consumption, tariffs)

    return ProjectionResult(
        daily_average=daily_average,
        projected_consumption=projected_consumption,
        projected_cost=costs.total,
    )


def interval_history(
    readings: Iterable[Reading], tariffs: TariffConfig
) -> list[IntervalConsumption]:
    """Per-reading consumption and cost, oldest first.

    The first reading has no baseline, so its consumption and cost are 0.
    """
    history = []
    previous = None
    for reading in sort_readings(readings):
        if previous is None:
            history.append(IntervalConsumption(reading, 0.0, 0.0, is_initial=True))
        else:
            consumption = consumption_between(previous.value, reading.value)
            cost = cost_for(consumption, tariffs).total
            history.append(IntervalConsumption(reading, consumption, cost, is_initial=False))
        previous = reading
    return history


def period_stats(
    readings: Sequence[Reading], tariffs: TariffConfig, reference_date: date
) -> PeriodStats | None:
    """Dashboard totals for the whole reading list, or None when empty."""
    if not readings:
        return None

    sorted_readings = sort_readings(readings)
    total = total_consumption(sorted_readings)

    return PeriodStats(
        last_reading=sorted_readings[-1],
        total_consumption=total,
        costs=cost_for(total, tariffs),
        readings_count=len(sorted_readings),
        projection=project_cycle(sorted_readings, tariffs, reference_date),
    )


def preview_reading(
    last_reading: Reading | None, value: float, tariffs: TariffConfig
) -> tuple[float, CostBreakdown] | None:
    """Consumption and cost a new reading adds on top of the reading before it."""
    if last_reading is None:
        return None
    consumption = consumption_between(last_reading.value, value)
    return consumption, cost_for(consumption, tariffs)


def find_decreases(readings: Iterable[Reading]) -> list[ConsumptionWarning]:
    """Consecutive readings where the meter value went down.

    These pairs count as zero consumption in every calculation; this only
    reports them so the caller can flag a reset or a mistyped value.
    """
    sorted_readings = sort_readings(readings)
    return [
        ConsumptionWarning(previous=previous, current=current)
        for previous, current in zip(sorted_readings, sorted_readings[1:])
        if current.value < previous.value
    ]
