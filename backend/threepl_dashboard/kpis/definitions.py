"""Static registry of the ten warehouse KPIs and their classification rules."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Literal, Mapping

from sqlalchemy import and_, case, func
from sqlalchemy.sql.expression import ColumnElement

from threepl_dashboard.core.errors import NotFoundError
from threepl_dashboard.kpis.expressions import as_float, hours_between, rate
from threepl_dashboard.models import FactInbound, FactInventory, FactOutbound

KpiStatus = Literal["good", "warning", "critical"]

HIGHER_WARNING_FACTOR = 0.9
LOWER_WARNING_FACTOR = 1.2


class Polarity(str, enum.Enum):
    HIGHER_IS_BETTER = "higher-is-better"
    LOWER_IS_BETTER = "lower-is-better"


@dataclass(frozen=True, eq=False)
class KpiDefinition:
    """Everything needed to compute, classify and present one KPI."""

    code: str
    label: str
    description: str
    unit: str
    target: float
    polarity: Polarity
    model: Any
    value: ColumnElement[Any]
    criteria: tuple[ColumnElement[bool], ...] = ()
    components: Mapping[str, ColumnElement[Any]] = field(default_factory=dict)
    decimals: int = 1
    fixed_bands: tuple[float, float] | None = None

    @property
    def bands(self) -> tuple[float, float]:
        """Return ``(good, warning)`` thresholds."""

        if self.fixed_bands is not None:
            return self.fixed_bands
        if self.polarity is Polarity.HIGHER_IS_BETTER:
            return self.target, round(self.target * HIGHER_WARNING_FACTOR, 6)
        return self.target, round(self.target * LOWER_WARNING_FACTOR, 6)

    @property
    def higher_is_better(self) -> bool:
        return self.polarity is Polarity.HIGHER_IS_BETTER


def classify(definition: KpiDefinition, value: float) -> KpiStatus:
    good, warning = definition.bands
    if definition.higher_is_better:
        if value >= good:
            return "good"
        if value >= warning:
            return "warning"
        return "critical"
    if value <= good:
        return "good"
    if value <= warning:
        return "warning"
    return "critical"


def round_value(definition: KpiDefinition, value: float) -> float:
    return float(round(value, definition.decimals))


def format_value(definition: KpiDefinition, value: float) -> str:
    if definition.unit == "%":
        return f"{value:.1f}%"
    if definition.unit == "days":
        return f"{value:.1f} d"
    if definition.unit == "hours":
        return f"{value:.1f} h"
    if definition.unit == "unid/h":
        return f"{round(value)} u/h"
    return f"{value} {definition.unit}"


_shipped = FactOutbound.shipped_date.is_not(None)
_on_time = FactOutbound.shipped_date <= FactOutbound.promised_date
_in_full = FactOutbound.picked_units >= FactOutbound.ordered_units
_worked_hours = func.sum(hours_between(FactOutbound.ready_at, FactOutbound.created_at))

_DEFINITIONS: tuple[KpiDefinition, ...] = (
    KpiDefinition(
        code="DOH",
        label="Days on Hand",
        description="Days of forward demand the available inventory can cover.",
        unit="days",
        target=15.0,
        polarity=Polarity.LOWER_IS_BETTER,
        model=FactInventory,
        value=func.avg(
            case(
                (
                    FactInventory.avg_daily_demand > 0,
                    as_float(FactInventory.stock_qty) / FactInventory.avg_daily_demand,
                ),
                else_=0.0,
            )
        ),
    ),
    KpiDefinition(
        code="DAMAGES",
        label="Damaged Receipts",
        description="Share of received units that arrived damaged.",
        unit="%",
        target=2.0,
        polarity=Polarity.LOWER_IS_BETTER,
        model=FactInbound,
        value=100.0
        * as_float(func.sum(func.coalesce(FactInbound.damaged_units, 0)))
        / func.nullif(func.sum(FactInbound.received_units), 0),
    ),
    KpiDefinition(
        code="IRA",
        label="Inventory Record Accuracy",
        description="Agreement between system-recorded and physically counted quantities.",
        unit="%",
        target=95.0,
        polarity=Polarity.HIGHER_IS_BETTER,
        model=FactInventory,
        value=func.avg(
            case(
                (
                    FactInventory.physical_qty > 0,
                    (
                        1.0
                        - as_float(func.abs(FactInventory.system_qty - FactInventory.physical_qty))
                        / as_float(FactInventory.physical_qty)
                    )
                    * 100.0,
                ),
                else_=0.0,
            )
        ),
    ),
    KpiDefinition(
        code="D2S",
        label="Dock to Stock",
        description="Hours from dock arrival until the goods are put away and pickable.",
        unit="hours",
        target=4.0,
        polarity=Polarity.LOWER_IS_BETTER,
        model=FactInbound,
        value=func.avg(hours_between(FactInbound.putaway_at, FactInbound.arrival_at)),
        criteria=(FactInbound.putaway_at.is_not(None),),
    ),
    KpiDefinition(
        code="OTD",
        label="On-Time Dispatch",
        description="Orders shipped on or before the promised date.",
        unit="%",
        target=90.0,
        polarity=Polarity.HIGHER_IS_BETTER,
        model=FactOutbound,
        value=rate(_on_time),
        criteria=(_shipped,),
    ),
    KpiDefinition(
        code="PICKING",
        label="Picking Accuracy",
        description="Order lines picked in exactly the requested quantity.",
        unit="%",
        target=98.0,
        polarity=Polarity.HIGHER_IS_BETTER,
        model=FactOutbound,
        value=rate(FactOutbound.picked_units == FactOutbound.ordered_units),
        criteria=(FactOutbound.ordered_units > 0,),
    ),
    KpiDefinition(
        code="LEADTIME",
        label="Internal Lead Time",
        description="Days from order release until shipment.",
        unit="days",
        target=2.0,
        polarity=Polarity.LOWER_IS_BETTER,
        model=FactOutbound,
        value=func.avg(hours_between(FactOutbound.shipped_date, FactOutbound.created_at) / 24.0),
        criteria=(_shipped,),
    ),
    KpiDefinition(
        code="READYOT",
        label="Ready on Time",
        description="Orders picked and packed before the operational cutoff.",
        unit="%",
        target=90.0,
        polarity=Polarity.HIGHER_IS_BETTER,
        model=FactOutbound,
        value=rate(FactOutbound.ready_at <= FactOutbound.cutoff_time),
        criteria=(FactOutbound.ready_at.is_not(None),),
    ),
    KpiDefinition(
        code="PRODUCTIVITY",
        label="Productivity",
        description="Units picked per worked hour.",
        unit="unid/h",
        target=160.0,
        polarity=Polarity.HIGHER_IS_BETTER,
        model=FactOutbound,
        value=case(
            (_worked_hours > 0, as_float(func.sum(FactOutbound.picked_units)) / _worked_hours),
            else_=None,
        ),
        criteria=(FactOutbound.ready_at.is_not(None), FactOutbound.created_at.is_not(None)),
        decimals=0,
    ),
    KpiDefinition(
        code="OTIF",
        label="On Time In Full",
        description="Orders delivered by the promised date and with the full ordered quantity.",
        unit="%",
        target=95.0,
        polarity=Polarity.HIGHER_IS_BETTER,
        model=FactOutbound,
        value=rate(and_(_on_time, _in_full)),
        criteria=(_shipped, FactOutbound.ordered_units > 0),
        components={"on_time_rate": rate(_on_time), "in_full_rate": rate(_in_full)},
        fixed_bands=(95.0, 90.0),
    ),
)

KPI_DEFINITIONS: dict[str, KpiDefinition] = {definition.code: definition for definition in _DEFINITIONS}
KPI_CODES: tuple[str, ...] = tuple(KPI_DEFINITIONS)


def get_definition(code: str) -> KpiDefinition:
    definition = KPI_DEFINITIONS.get(code.strip().upper())
    if definition is None:
        raise NotFoundError(f"Unknown KPI code: {code}")
    return definition


__all__ = [
    "KPI_CODES",
    "KPI_DEFINITIONS",
    "KpiDefinition",
    "KpiStatus",
    "Polarity",
    "classify",
    "format_value",
    "get_definition",
    "round_value",
]
