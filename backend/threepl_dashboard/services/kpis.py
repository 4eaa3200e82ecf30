"""Facade combining current values, history and drill-down for the API layer."""

from __future__ import annotations

from typing import Any, Iterable

from sqlalchemy.exc import SQLAlchemyError

from threepl_dashboard.config import AppSettings
from threepl_dashboard.core.errors import UpstreamError
from threepl_dashboard.kpis import KpiDefinition, get_definition
from threepl_dashboard.schemas.kpis import KpiDetail, KpiSnapshot
from threepl_dashboard.services.aggregator import KpiAggregator
from threepl_dashboard.services.details import DetailService
from threepl_dashboard.services.scope import QueryScope
from threepl_dashboard.services.trends import TrendService


class KpiService:
    def __init__(
        self,
        aggregator: KpiAggregator,
        trends: TrendService,
        details: DetailService,
        settings: AppSettings,
    ):
        self._aggregator = aggregator
        self._trends = trends
        self._details = details
        self._settings = settings

    async def overview(
        self, scope: QueryScope, definitions: Iterable[KpiDefinition] | None = None
    ) -> list[KpiSnapshot]:
        return await self._aggregator.overview(scope, definitions)

    async def detail(self, code: str, scope: QueryScope) -> KpiDetail:
        definition = get_definition(code)
        try:
            trend = await self._trends.daily_series(definition, scope, days=self._settings.trend_window_days)
            distribution = await self._trends.distribution(definition, scope)
            rows = await self._details.records(definition, scope)
        except SQLAlchemyError as exc:
            raise UpstreamError(str(exc), kpi_code=definition.code) from exc
        return KpiDetail(code=definition.code, trend=trend, distribution=distribution, detail=rows)

    async def trend(self, code: str, scope: QueryScope) -> list[dict[str, Any]]:
        definition = get_definition(code)
        try:
            return await self._trends.daily_series(definition, scope, days=self._settings.trend_window_days)
        except SQLAlchemyError as exc:
            raise UpstreamError(str(exc), kpi_code=definition.code) from exc

    async def export_rows(self, code: str, scope: QueryScope) -> list[dict[str, Any]]:
        definition = get_definition(code)
        try:
            return await self._details.records(definition, scope)
        except SQLAlchemyError as exc:
            raise UpstreamError(str(exc), kpi_code=definition.code) from exc


__all__ = ["KpiService"]
