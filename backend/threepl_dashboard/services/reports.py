"""CSV exports: single KPI detail tables and the sectioned dashboard report."""

from __future__ import annotations

import csv
import io
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional, Sequence

from threepl_dashboard.core.errors import DashboardError, NotFoundError, ValidationError
from threepl_dashboard.db.base import utcnow
from threepl_dashboard.kpis import KPI_DEFINITIONS, KpiDefinition, get_definition
from threepl_dashboard.schemas.filters import FilterParams
from threepl_dashboard.schemas.kpis import KpiSnapshot
from threepl_dashboard.services.kpis import KpiService
from threepl_dashboard.services.scope import QueryScope

logger = logging.getLogger(__name__)

SUMMARY_HEADER = ("KPI", "Current Value", "Target", "Status", "Unit", "Last Updated")
TREND_HEADER = ("Date", "Value", "Target")


def _cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (list, dict)):
        return json.dumps(value, default=str)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _writer(buffer: io.StringIO) -> Any:
    return csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")


def _write_table(writer: Any, rows: Sequence[dict[str, Any]]) -> None:
    header = list(rows[0].keys())
    writer.writerow(header)
    for row in rows:
        writer.writerow([_cell(row.get(column)) for column in header])


def rows_to_csv(rows: Sequence[dict[str, Any]]) -> str:
    """Render ``rows`` as CSV with a header taken from the first row's keys."""

    if not rows:
        return ""
    buffer = io.StringIO()
    _write_table(_writer(buffer), rows)
    return buffer.getvalue()


def parse_kpi_codes(raw: Optional[str]) -> list[KpiDefinition]:
    """Turn a comma separated ``kpis`` parameter into definitions; blank means all."""

    if raw is None or not raw.strip():
        return list(KPI_DEFINITIONS.values())
    definitions = []
    for code in (part.strip() for part in raw.split(",")):
        if not code:
            continue
        try:
            definitions.append(get_definition(code))
        except NotFoundError as exc:
            raise ValidationError(exc.message) from exc
    return definitions


@dataclass
class Report:
    generated_at: datetime
    date_range: str
    client: str
    provider: str
    summary: list[KpiSnapshot]
    details: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    trends: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    include_details: bool = True
    include_trends: bool = True


class ReportService:
    def __init__(self, kpis: KpiService):
        self._kpis = kpis

    async def build(
        self,
        scope: QueryScope,
        filters: FilterParams,
        definitions: Iterable[KpiDefinition],
        *,
        include_details: bool = True,
        include_trends: bool = True,
        now: datetime | None = None,
    ) -> Report:
        selected = list(definitions)
        summary = await self._kpis.overview(scope, selected)
        report = Report(
            generated_at=now or utcnow(),
            date_range=_describe_range(filters, scope),
            client=scope.client_id or "All clients",
            provider=scope.provider_id or "All providers",
            summary=summary,
            include_details=include_details,
            include_trends=include_trends,
        )
        for definition in selected:
            if include_details:
                try:
                    report.details[definition.code] = await self._kpis.export_rows(definition.code, scope)
                except DashboardError:
                    logger.exception("Skipping detail section for KPI %s", definition.code)
            if include_trends:
                try:
                    report.trends[definition.code] = await self._kpis.trend(definition.code, scope)
                except DashboardError:
                    logger.exception("Skipping trend section for KPI %s", definition.code)
        return report


def _describe_range(filters: FilterParams, scope: QueryScope) -> str:
    if filters.date_from and filters.date_to:
        return f"{filters.date_from} to {filters.date_to}"
    return f"{filters.date_range} ({scope.start.date().isoformat()} to {scope.end.date().isoformat()})"


def format_report_csv(report: Report) -> str:
    buffer = io.StringIO()
    writer = _writer(buffer)

    writer.writerow(["3PL Dashboard Report"])
    writer.writerow(["Generated", report.generated_at.isoformat()])
    writer.writerow(["Date Range", report.date_range])
    writer.writerow(["Client", report.client])
    writer.writerow(["Provider", report.provider])
    writer.writerow([])

    writer.writerow(["KPI Summary"])
    writer.writerow(SUMMARY_HEADER)
    for snapshot in report.summary:
        writer.writerow(
            [
                snapshot.label,
                snapshot.value,
                snapshot.target,
                snapshot.status,
                snapshot.unit,
                snapshot.last_updated.isoformat(),
            ]
        )

    if report.include_details:
        writer.writerow([])
        writer.writerow(["Detailed Data"])
        for code, rows in report.details.items():
            writer.writerow([])
            writer.writerow([f"{code} Details"])
            if rows:
                _write_table(writer, rows)
            else:
                writer.writerow(["No records"])

    if report.include_trends:
        writer.writerow([])
        writer.writerow(["Trend Data"])
        for code, points in report.trends.items():
            writer.writerow([])
            writer.writerow([f"{code} Trend"])
            writer.writerow(TREND_HEADER)
            for point in points:
                writer.writerow([point["date"], point["value"], point["target"]])

    return buffer.getvalue()


__all__ = [
    "Report",
    "ReportService",
    "format_report_csv",
    "parse_kpi_codes",
    "rows_to_csv",
]
