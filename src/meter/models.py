"""Data models for meter readings, tariffs and billing results."""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import ClassVar


@dataclass(frozen=True)
class Reading:
    """A cumulative meter value taken on a given date."""

    id: str
    date: date | datetime
    value: float


@dataclass
class RateComponent:
    """A per-kWh tariff component (TUSD or TE)."""

    rate_per_unit: float
    rate_before_taxes: float = 0.0  # informational, never billed


@dataclass
class Surcharge:
    """A single flag surcharge applied per kWh."""

    label: str
    rate_per_unit: float


@dataclass
class SecondarySurcharge:
    """A second flag that can be switched on within the same billing window."""

    active: bool
    label: str
    rate_per_unit: float


@dataclass
class FlagSurcharge:
    """Primary flag surcharge plus an optional secondary one."""

    label: str
    rate_per_unit: float
    secondary: SecondarySurcharge | None = None

    def active_surcharges(self) -> list[Surcharge]:
        """Surcharges that apply, primary first."""
        surcharges = [Surcharge(self.label, self.rate_per_unit)]
        if self.secondary is not None and self.secondary.active:
            surcharges.append(Surcharge(self.secondary.label, self.secondary.rate_per_unit))
        return surcharges


@dataclass
class FixedLighting:
    """Public lighting billed as a flat amount."""

    amount: float
    mode: ClassVar[str] = "fixed"


@dataclass
class PercentageLighting:
    """Public lighting billed as a percentage of the energy subtotal."""

    amount: float
    mode: ClassVar[str] = "percentage"


PublicLighting = FixedLighting | PercentageLighting


@dataclass
class TariffConfig:
    """The full rate structure used for a calculation."""

    tusd: RateComponent
    te: RateComponent
    flag_surcharge: FlagSurcharge
    public_lighting: PublicLighting = field(default_factory=lambda: FixedLighting(0.0))


@dataclass(frozen=True)
class CostBreakdown:
    """Itemized cost for a consumption quantity."""

    tusd_cost: float
    te_cost: float
    flag_cost: float
    lighting_cost: float
    total: float


@dataclass(frozen=True)
class ProjectionResult:
    """Linear estimate of the full month from the readings so far."""

    daily_average: float
    projected_consumption: float
    projected_cost: float


@dataclass(frozen=True)
class IntervalConsumption:
    """Consumption and cost between a reading and the one before it."""

    reading: Reading
    consumption: float
    cost: float
    is_initial: bool


@dataclass(frozen=True)
class PeriodStats:
    """Totals across every stored reading."""

    last_reading: Reading
    total_consumption: float
    costs: CostBreakdown
    readings_count: int
    projection: ProjectionResult | None


@dataclass(frozen=True)
class ConsumptionWarning:
    """A pair of consecutive readings where the meter value went down."""

    previous: Reading
    current: Reading

    @property
    def difference(self) -> float:
        return self.current.value - self.previous.value
