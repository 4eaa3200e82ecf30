"""KPI overview, drill-down and per-KPI export endpoints."""

from __future__ import annotations

from typing import Callable

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response

from threepl_dashboard.core.errors import ValidationError
from threepl_dashboard.kpis import get_definition
from threepl_dashboard.schemas import FilterParams, KpiDetail, KpiSnapshot
from threepl_dashboard.services.alerts import AlertService
from threepl_dashboard.services.auth import AuthGuard
from threepl_dashboard.services.kpis import KpiService
from threepl_dashboard.services.reports import rows_to_csv
from threepl_dashboard.services.scope import Principal, resolve_scope

EXPORT_FORMATS = ("csv", "json")


def get_kpis_router(
    kpis: KpiService,
    alerts: AlertService,
    guard: AuthGuard,
    filters_dependency: Callable[..., FilterParams],
) -> APIRouter:
    router = APIRouter(prefix="/kpis", tags=["kpis"])

    @router.get("/overview", response_model=list[KpiSnapshot])
    async def overview(
        background: BackgroundTasks,
        filters: FilterParams = Depends(filters_dependency),
        principal: Principal = Depends(guard.principal),
    ) -> list[KpiSnapshot]:
        scope = resolve_scope(principal, filters)
        snapshots = await kpis.overview(scope)
        # Runs after the response is sent; check_kpis logs and swallows its own failures.
        background.add_task(alerts.check_kpis, snapshots)
        return snapshots

    @router.get("/{code}/detail", response_model=KpiDetail)
    async def detail(
        code: str,
        filters: FilterParams = Depends(filters_dependency),
        principal: Principal = Depends(guard.principal),
    ) -> KpiDetail:
        scope = resolve_scope(principal, filters)
        return await kpis.detail(code, scope)

    @router.get("/{code}/export")
    async def export(
        code: str,
        export_format: str = Query(default="csv", alias="format"),
        filters: FilterParams = Depends(filters_dependency),
        principal: Principal = Depends(guard.principal),
    ) -> Response:
        definition = get_definition(code)
        if export_format not in EXPORT_FORMATS:
            raise ValidationError(f"Unsupported export format '{export_format}'; expected csv or json")
        scope = resolve_scope(principal, filters)
        rows = await kpis.export_rows(definition.code, scope)
        if export_format == "json":
            return JSONResponse(content=jsonable_encoder(rows))
        return Response(
            content=rows_to_csv(rows),
            media_type="text/csv; charset=utf-8",
            headers={"Content-Disposition": f'attachment; filename="{definition.code}_detail.csv"'},
        )

    return router
