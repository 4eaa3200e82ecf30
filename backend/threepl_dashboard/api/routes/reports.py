"""Sectioned CSV report download."""

from __future__ import annotations

from typing import Callable, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from threepl_dashboard.core.errors import ValidationError
from threepl_dashboard.schemas import FilterParams
from threepl_dashboard.services.auth import AuthGuard
from threepl_dashboard.services.reports import ReportService, format_report_csv, parse_kpi_codes
from threepl_dashboard.services.scope import Principal, resolve_scope

MEDIA_TYPES = {
    "csv": "text/csv; charset=utf-8",
    "excel": "application/vnd.ms-excel",
}


def get_reports_router(
    reports: ReportService, guard: AuthGuard, filters_dependency: Callable[..., FilterParams]
) -> APIRouter:
    router = APIRouter(prefix="/reports", tags=["reports"])

    @router.get("/export")
    async def export_report(
        report_format: str = Query(default="csv", alias="format"),
        kpis: Optional[str] = Query(default=None, description="Comma separated KPI codes; all when omitted"),
        include_details: bool = Query(default=True, alias="includeDetails"),
        include_trends: bool = Query(default=True, alias="includeTrends"),
        filters: FilterParams = Depends(filters_dependency),
        principal: Principal = Depends(guard.principal),
    ) -> Response:
        media_type = MEDIA_TYPES.get(report_format)
        if media_type is None:
            raise ValidationError(f"Unsupported report format '{report_format}'; expected csv or excel")
        definitions = parse_kpi_codes(kpis)
        scope = resolve_scope(principal, filters)
        report = await reports.build(
            scope,
            filters,
            definitions,
            include_details=include_details,
            include_trends=include_trends,
        )
        filename = f"3pl-report-{report.generated_at.date().isoformat()}.csv"
        return Response(
            content=format_report_csv(report),
            media_type=media_type,
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    return router
