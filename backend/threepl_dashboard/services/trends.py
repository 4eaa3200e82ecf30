"""Day-bucketed KPI history and per-client breakdowns."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date
from typing import Any, Iterable, Optional

import pandas as pd
from sqlalchemy import func, select

from threepl_dashboard.config import AppSettings
from threepl_dashboard.db import Database
from threepl_dashboard.kpis import KpiDefinition, round_value
from threepl_dashboard.kpis.expressions import day_bucket
from threepl_dashboard.models import Client
from threepl_dashboard.services.scope import QueryScope

logger = logging.getLogger(__name__)


def fill_daily(values: dict[str, Optional[float]], first_day: date, last_day: date) -> pd.Series:
    """Index ``values`` (keyed ``YYYY-MM-DD``) by every day in the range, zero-filling gaps."""

    series = pd.Series(values, dtype="float64")
    series.index = pd.to_datetime(series.index)
    calendar = pd.date_range(first_day, last_day, freq="D")
    return series.reindex(calendar).fillna(0.0)


class TrendService:
    def __init__(self, database: Database, settings: AppSettings):
        self._database = database
        self._settings = settings

    async def daily_series(
        self, definition: KpiDefinition, scope: QueryScope, days: int | None = None
    ) -> list[dict[str, Any]]:
        """Daily aggregate points ``{date, value, target}``, oldest first.

        With ``days`` the series covers that many calendar days ending on the
        scope's end; otherwise it spans the scope's own window.
        """

        window = scope.trailing(days) if days else scope
        series = await self._series(definition, window)
        return [
            {"date": stamp.strftime("%Y-%m-%d"), "value": round_value(definition, value), "target": definition.target}
            for stamp, value in series.items()
        ]

    async def sparkline(self, definition: KpiDefinition, scope: QueryScope) -> list[float]:
        points = self._settings.sparkline_points
        window = scope.trailing(points)
        if window.start < scope.start:
            window = replace(window, start=scope.start)
        series = await self._series(definition, window)
        return [round_value(definition, value) for value in series.tail(points).tolist()]

    async def distribution(self, definition: KpiDefinition, scope: QueryScope) -> list[dict[str, Any]]:
        model = definition.model
        columns = [
            model.client_id.label("client_id"),
            definition.value.label("value"),
            func.count().label("orders"),
        ]
        columns.extend(expr.label(name) for name, expr in definition.components.items())
        query = (
            select(*columns)
            .where(*scope.conditions(model), *definition.criteria)
            .group_by(model.client_id)
        )
        clients_query = select(Client.id, Client.name).where(Client.active.is_(True))
        if scope.client_id is not None:
            clients_query = clients_query.where(Client.id == scope.client_id)

        async with self._database.session() as session:
            aggregates = (await session.execute(query)).mappings().all()
            clients = (await session.execute(clients_query.order_by(Client.name))).all()

        names = {client_id: name for client_id, name in clients}
        by_client = {row["client_id"]: row for row in aggregates}
        entries = []
        for client_id in _ordered_ids(names, by_client):
            row = by_client.get(client_id)
            entry: dict[str, Any] = {
                "category": names.get(client_id, client_id),
                "client_id": client_id,
                "value": round_value(definition, _number(row["value"]) if row else 0.0),
                "target": definition.target,
                "orders": int(row["orders"]) if row else 0,
            }
            if definition.components:
                for name in definition.components:
                    entry[name] = round_value(definition, _number(row[name]) if row else 0.0)
                entry["details"] = _component_details(entry)
            entries.append(entry)

        entries.sort(key=lambda item: (-item["value"], item["category"]))
        return entries

    async def _series(self, definition: KpiDefinition, window: QueryScope) -> pd.Series:
        model = definition.model
        bucket = day_bucket(model.created_at)
        query = (
            select(bucket.label("day"), definition.value.label("value"))
            .where(*window.conditions(model), *definition.criteria)
            .group_by(bucket)
            .order_by(bucket)
        )
        async with self._database.session() as session:
            rows = (await session.execute(query)).all()

        # PostgreSQL returns a date, SQLite a string.
        values = {str(day)[:10]: _number(value) for day, value in rows if day is not None}
        logger.debug("KPI %s has data on %d of the requested days", definition.code, len(values))
        return fill_daily(values, window.start.date(), window.end.date())


def _number(value: Any) -> float:
    return float(value) if value is not None else 0.0


def _ordered_ids(names: dict[str, str], aggregates: dict[str, Any]) -> Iterable[str]:
    yield from names
    for client_id in aggregates:
        if client_id not in names:
            yield client_id


def _component_details(entry: dict[str, Any]) -> str:
    parts = []
    if entry.get("on_time_rate") is not None:
        parts.append(f"On time: {entry['on_time_rate']:.1f}%")
    if entry.get("in_full_rate") is not None:
        parts.append(f"In full: {entry['in_full_rate']:.1f}%")
    return ", ".join(parts)


__all__ = ["TrendService", "fill_daily"]
