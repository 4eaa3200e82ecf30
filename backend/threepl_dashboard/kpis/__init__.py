"""KPI registry and SQL helpers."""

from .definitions import (
    KPI_CODES,
    KPI_DEFINITIONS,
    KpiDefinition,
    KpiStatus,
    Polarity,
    classify,
    format_value,
    get_definition,
    round_value,
)

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
