"""Drill-down rows: the fact records behind a KPI value.

Each builder selects with exactly the scope conditions and row criteria the
aggregate uses, newest first, capped at ``detail_row_limit`` rows, and
shapes the records into flat dictionaries for JSON and CSV output.
"""

from __future__ import annotations

import logging
import math
from collections import OrderedDict
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from threepl_dashboard.config import AppSettings
from threepl_dashboard.db import Database
from threepl_dashboard.kpis import KpiDefinition, classify, round_value
from threepl_dashboard.models import Client, DimTeam, FactInbound, FactOutbound, Provider
from threepl_dashboard.services.scope import QueryScope

logger = logging.getLogger(__name__)

Row = dict[str, Any]


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _day(value: Optional[datetime]) -> Optional[str]:
    return value.date().isoformat() if value is not None else None


def _hours(end: datetime, start: datetime) -> float:
    return (end - start).total_seconds() / 3600.0


def _flag(ok: bool) -> float:
    return 100.0 if ok else 0.0


class DetailService:
    def __init__(self, database: Database, settings: AppSettings):
        self._database = database
        self._limit = settings.detail_row_limit
        self._builders: dict[str, Callable[[AsyncSession, KpiDefinition, QueryScope], Awaitable[list[Row]]]] = {
            "DOH": self._days_on_hand,
            "DAMAGES": self._damages,
            "IRA": self._record_accuracy,
            "D2S": self._dock_to_stock,
            "OTD": self._on_time_dispatch,
            "PICKING": self._picking,
            "LEADTIME": self._lead_time,
            "READYOT": self._ready_on_time,
            "PRODUCTIVITY": self._productivity,
            "OTIF": self._otif,
        }

    async def records(self, definition: KpiDefinition, scope: QueryScope) -> list[Row]:
        builder = self._builders[definition.code]
        async with self._database.session() as session:
            rows = await builder(session, definition, scope)
        logger.debug("Loaded %d detail rows for KPI %s", len(rows), definition.code)
        return rows

    def _status(self, definition: KpiDefinition, value: float) -> str:
        return classify(definition, value)

    def _select(self, definition: KpiDefinition, scope: QueryScope, *extra: Any):
        model = definition.model
        return (
            select(model, Client.name, *extra)
            .outerjoin(Client, Client.id == model.client_id)
            .where(*scope.conditions(model), *definition.criteria)
            .order_by(model.created_at.desc(), model.id.desc())
            .limit(self._limit)
        )

    async def _days_on_hand(self, session: AsyncSession, definition: KpiDefinition, scope: QueryScope) -> list[Row]:
        rows = []
        for fact, client_name in (await session.execute(self._select(definition, scope))).all():
            demand = fact.avg_daily_demand or 0.0
            value = round_value(definition, fact.stock_qty / demand if demand > 0 else 0.0)
            rows.append(
                {
                    "id": f"INV-{fact.id}",
                    "sku": fact.sku,
                    "client": client_name or fact.client_id,
                    "quantity": fact.stock_qty,
                    "avg_daily_demand": demand,
                    "value": value,
                    "status": self._status(definition, value),
                    "date": _day(fact.created_at),
                }
            )
        return rows

    async def _damages(self, session: AsyncSession, definition: KpiDefinition, scope: QueryScope) -> list[Row]:
        query = self._select(definition, scope, Provider.name).outerjoin(
            Provider, Provider.id == FactInbound.provider_id
        )
        rows = []
        for fact, client_name, provider_name in (await session.execute(query)).all():
            damaged = fact.damaged_units or 0
            ratio = 100.0 * damaged / fact.received_units if fact.received_units else 0.0
            value = round_value(definition, ratio)
            rows.append(
                {
                    "id": f"RCV-{fact.id}",
                    "sku": fact.sku,
                    "client": client_name or fact.client_id,
                    "provider": provider_name or fact.provider_id,
                    "received": fact.received_units,
                    "damaged": damaged,
                    "value": value,
                    "status": self._status(definition, value),
                    "date": _day(fact.created_at),
                }
            )
        return rows

    async def _record_accuracy(self, session: AsyncSession, definition: KpiDefinition, scope: QueryScope) -> list[Row]:
        rows = []
        for fact, client_name in (await session.execute(self._select(definition, scope))).all():
            difference = fact.system_qty - fact.physical_qty
            accuracy = (1.0 - abs(difference) / fact.physical_qty) * 100.0 if fact.physical_qty > 0 else 0.0
            value = round_value(definition, accuracy)
            rows.append(
                {
                    "id": f"INV-{fact.id}",
                    "sku": fact.sku,
                    "client": client_name or fact.client_id,
                    "system_qty": fact.system_qty,
                    "physical_qty": fact.physical_qty,
                    "difference": difference,
                    "value": value,
                    "status": self._status(definition, value),
                    "date": _day(fact.created_at),
                }
            )
        return rows

    async def _dock_to_stock(self, session: AsyncSession, definition: KpiDefinition, scope: QueryScope) -> list[Row]:
        rows = []
        for fact, client_name in (await session.execute(self._select(definition, scope))).all():
            value = round_value(definition, _hours(fact.putaway_at, fact.arrival_at))
            rows.append(
                {
                    "id": f"RCV-{fact.id}",
                    "sku": fact.sku,
                    "client": client_name or fact.client_id,
                    "arrival_at": _iso(fact.arrival_at),
                    "putaway_at": _iso(fact.putaway_at),
                    "quantity": fact.received_units,
                    "value": value,
                    "status": self._status(definition, value),
                }
            )
        return rows

    async def _on_time_dispatch(self, session: AsyncSession, definition: KpiDefinition, scope: QueryScope) -> list[Row]:
        rows = []
        for fact, client_name in (await session.execute(self._select(definition, scope))).all():
            on_time = fact.shipped_date <= fact.promised_date
            delay = 0 if on_time else math.ceil((fact.shipped_date - fact.promised_date).total_seconds() / 86400)
            value = _flag(on_time)
            rows.append(
                {
                    "id": fact.order_id,
                    "client": client_name or fact.client_id,
                    "sku": fact.sku,
                    "promised_date": _iso(fact.promised_date),
                    "delivery_date": _iso(fact.shipped_date),
                    "quantity": fact.ordered_units,
                    "delay_days": delay,
                    "value": value,
                    "status": self._status(definition, value),
                }
            )
        return rows

    async def _picking(self, session: AsyncSession, definition: KpiDefinition, scope: QueryScope) -> list[Row]:
        rows = []
        for fact, client_name in (await session.execute(self._select(definition, scope))).all():
            difference = fact.picked_units - fact.ordered_units
            if difference == 0:
                reason = "Correct"
            elif difference < 0:
                reason = "Short pick"
            else:
                reason = "Over pick"
            value = _flag(difference == 0)
            rows.append(
                {
                    "id": fact.order_id,
                    "client": client_name or fact.client_id,
                    "sku": fact.sku,
                    "requested": fact.ordered_units,
                    "picked": fact.picked_units,
                    "difference": difference,
                    "reason": reason,
                    "value": value,
                    "status": self._status(definition, value),
                }
            )
        return rows

    async def _lead_time(self, session: AsyncSession, definition: KpiDefinition, scope: QueryScope) -> list[Row]:
        rows = []
        for fact, client_name in (await session.execute(self._select(definition, scope))).all():
            days = _hours(fact.shipped_date, fact.created_at) / 24.0
            value = round_value(definition, days)
            rows.append(
                {
                    "id": fact.order_id,
                    "client": client_name or fact.client_id,
                    "created_at": _iso(fact.created_at),
                    "shipped_date": _iso(fact.shipped_date),
                    "value": value,
                    # Shipped before release: bad source data.
                    "status": "invalid" if days < 0 else self._status(definition, value),
                }
            )
        return rows

    async def _ready_on_time(self, session: AsyncSession, definition: KpiDefinition, scope: QueryScope) -> list[Row]:
        rows = []
        for fact, client_name in (await session.execute(self._select(definition, scope))).all():
            late_minutes = max(0, math.ceil((fact.ready_at - fact.cutoff_time).total_seconds() / 60))
            value = _flag(fact.ready_at <= fact.cutoff_time)
            rows.append(
                {
                    "id": fact.order_id,
                    "client": client_name or fact.client_id,
                    "ready_at": _iso(fact.ready_at),
                    "cutoff_time": _iso(fact.cutoff_time),
                    "minutes_late": late_minutes,
                    "value": value,
                    "status": self._status(definition, value),
                }
            )
        return rows

    async def _productivity(self, session: AsyncSession, definition: KpiDefinition, scope: QueryScope) -> list[Row]:
        query = self._select(definition, scope, DimTeam.name).outerjoin(DimTeam, DimTeam.id == FactOutbound.team_id)
        rows = []
        for fact, client_name, team_name in (await session.execute(query)).all():
            hours = _hours(fact.ready_at, fact.created_at)
            rate = fact.picked_units / hours if hours > 0 else 0.0
            value = round_value(definition, rate)
            rows.append(
                {
                    "id": f"OUT-{fact.id}",
                    "order_id": team_name or fact.team_id or "Unassigned",
                    "client": client_name or fact.client_id,
                    "units": fact.picked_units,
                    "quantity": round(hours, 2),
                    "value": value,
                    "status": self._status(definition, value),
                }
            )
        return rows

    async def _otif(self, session: AsyncSession, definition: KpiDefinition, scope: QueryScope) -> list[Row]:
        conditions = (*scope.conditions(FactOutbound), *definition.criteria)
        latest = func.max(FactOutbound.created_at)
        recent_orders = (
            select(FactOutbound.order_id, latest.label("latest"))
            .where(*conditions)
            .group_by(FactOutbound.order_id)
            .order_by(latest.desc(), FactOutbound.order_id)
            .limit(self._limit)
        )
        order_ids = [order_id for order_id, _ in (await session.execute(recent_orders)).all()]
        if not order_ids:
            return []

        lines = (
            select(FactOutbound, Client.name)
            .outerjoin(Client, Client.id == FactOutbound.client_id)
            .where(*conditions, FactOutbound.order_id.in_(order_ids))
            .order_by(FactOutbound.id)
        )
        grouped: "OrderedDict[str, list[tuple[FactOutbound, Optional[str]]]]" = OrderedDict(
            (order_id, []) for order_id in order_ids
        )
        for fact, client_name in (await session.execute(lines)).all():
            grouped[fact.order_id].append((fact, client_name))

        return [self._otif_row(definition, order_id, items) for order_id, items in grouped.items() if items]

    def _otif_row(
        self, definition: KpiDefinition, order_id: str, items: list[tuple[FactOutbound, Optional[str]]]
    ) -> Row:
        facts = [fact for fact, _ in items]
        first, client_name = items[0]
        promised = min(fact.promised_date for fact in facts)
        delivered = max(fact.shipped_date for fact in facts)
        requested = sum(fact.ordered_units for fact in facts)
        picked = sum(fact.picked_units for fact in facts)
        on_time = all(fact.shipped_date <= fact.promised_date for fact in facts)
        in_full = all(fact.picked_units >= fact.ordered_units for fact in facts)
        value = _flag(on_time and in_full)

        sku_details = [
            {
                "sku": fact.sku,
                "requested": fact.ordered_units,
                "delivered": fact.picked_units,
                "difference": fact.picked_units - fact.ordered_units,
                "fulfilment": round(100.0 * fact.picked_units / fact.ordered_units, 1),
                "status": "complete" if fact.picked_units >= fact.ordered_units else "incomplete",
            }
            for fact in facts
        ]

        failure_analysis = None
        if not (on_time and in_full):
            reasons = []
            if not on_time:
                slip = max(fact.shipped_date - fact.promised_date for fact in facts)
                delay = math.ceil(slip.total_seconds() / 86400)
                reasons.append(f"late by {delay} day(s)")
            if not in_full:
                reasons.append(f"incomplete ({max(requested - picked, 0)} units missing)")
            failure_analysis = (
                f"Promised {_day(promised)} with {requested} units. "
                f"Delivered {_day(delivered)} with {picked} units. "
                f"OTIF failed: {' and '.join(reasons)}."
            )

        return {
            "id": order_id,
            "client": client_name or first.client_id,
            "promised_date": _day(promised),
            "delivery_date": _day(delivered),
            "quantity": requested,
            "picked_quantity": picked,
            "on_time": on_time,
            "in_full": in_full,
            "value": value,
            "status": self._status(definition, value),
            "sku_details": sku_details,
            "failure_analysis": failure_analysis,
        }


__all__ = ["DetailService"]
