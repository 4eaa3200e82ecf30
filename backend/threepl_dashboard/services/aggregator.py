"""Compute the current value of every registered KPI for a scope."""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable

from sqlalchemy import select

from threepl_dashboard.core.telemetry import record_kpi_failure
from threepl_dashboard.db import Database
from threepl_dashboard.db.base import utcnow
from threepl_dashboard.kpis import KPI_DEFINITIONS, KpiDefinition, classify, round_value
from threepl_dashboard.schemas.kpis import KpiSnapshot
from threepl_dashboard.services.scope import QueryScope
from threepl_dashboard.services.trends import TrendService

logger = logging.getLogger(__name__)


class KpiAggregator:
    """Run one aggregate per KPI and shape the results into snapshots.

    Every KPI query runs in its own session so that one failing aggregate
    cannot poison the transaction of the others. A failure is logged with
    the KPI code and the KPI reports ``0`` for this request.
    """

    def __init__(self, database: Database, trends: TrendService):
        self._database = database
        self._trends = trends

    async def value(self, definition: KpiDefinition, scope: QueryScope) -> float:
        query = select(definition.value).where(*scope.conditions(definition.model), *definition.criteria)
        async with self._database.session() as session:
            result = await session.scalar(query)
        return float(result) if result is not None else 0.0

    async def snapshot(self, definition: KpiDefinition, scope: QueryScope) -> KpiSnapshot:
        try:
            raw = await self.value(definition, scope)
        except Exception:  # noqa: BLE001 - one KPI must not fail the batch
            logger.exception("Aggregate query failed for KPI %s", definition.code)
            record_kpi_failure(definition.code)
            raw = 0.0

        try:
            trend = await self._trends.sparkline(definition, scope)
        except Exception:  # noqa: BLE001
            logger.exception("Sparkline query failed for KPI %s", definition.code)
            trend = []

        value = round_value(definition, raw)
        return KpiSnapshot(
            code=definition.code,
            label=definition.label,
            value=value,
            target=definition.target,
            unit=definition.unit,
            status=classify(definition, value),
            delta=round_value(definition, value - definition.target),
            trend=trend,
            last_updated=utcnow(),
        )

    async def overview(
        self, scope: QueryScope, definitions: Iterable[KpiDefinition] | None = None
    ) -> list[KpiSnapshot]:
        selected = list(definitions) if definitions is not None else list(KPI_DEFINITIONS.values())
        return list(await asyncio.gather(*(self.snapshot(definition, scope) for definition in selected)))


__all__ = ["KpiAggregator"]
