"""Critical-KPI alerting with a rolling de-duplication window."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Iterable, Mapping, Optional

from sqlalchemy import select

from threepl_dashboard.config import AppSettings
from threepl_dashboard.core.errors import ValidationError
from threepl_dashboard.core.telemetry import record_alert_raised
from threepl_dashboard.db import Database
from threepl_dashboard.db.base import utcnow
from threepl_dashboard.kpis import KPI_DEFINITIONS, format_value, get_definition
from threepl_dashboard.models import Alert, KpiTarget
from threepl_dashboard.schemas.alerts import ThresholdConfig
from threepl_dashboard.schemas.kpis import KpiSnapshot
from threepl_dashboard.services.notifications import AlertNotifier

logger = logging.getLogger(__name__)

ALL_CLIENTS = "ALL"


class AlertService:
    def __init__(self, database: Database, notifier: AlertNotifier, settings: AppSettings):
        self._database = database
        self._notifier = notifier
        self._dedup_window = timedelta(minutes=settings.alert_dedup_minutes)

    async def check_kpis(self, snapshots: Iterable[KpiSnapshot], now: datetime | None = None) -> list[Alert]:
        """Raise one alert per critical KPI unless a recent open one exists.

        Never raises: a failure for one KPI is logged and the rest are still
        checked.
        """

        now = now or utcnow()
        created: list[Alert] = []
        for snapshot in snapshots:
            if snapshot.status != "critical":
                continue
            try:
                alert = await self._raise_alert(snapshot, now)
            except Exception:  # noqa: BLE001 - alerting must not fail the overview
                logger.exception("Alert check failed for KPI %s", snapshot.code)
                continue
            if alert is None:
                continue
            created.append(alert)
            record_alert_raised(alert.kpi_code)
            await self._notifier.send_alert(alert, snapshot)
        return created

    async def _raise_alert(self, snapshot: KpiSnapshot, now: datetime) -> Optional[Alert]:
        async with self._database.session() as session:
            recent = await session.execute(
                select(Alert.id)
                .where(
                    Alert.kpi_code == snapshot.code,
                    Alert.resolved.is_(False),
                    Alert.created_at >= now - self._dedup_window,
                )
                .limit(1)
            )
            if recent.scalar_one_or_none() is not None:
                logger.debug("Suppressing duplicate alert for %s", snapshot.code)
                return None

            definition = get_definition(snapshot.code)
            side = "below" if definition.higher_is_better else "above"
            alert = Alert(
                kpi_code=snapshot.code,
                client_id=ALL_CLIENTS,
                message=(
                    f"{snapshot.label} is {side} the critical threshold: "
                    f"{format_value(definition, snapshot.value)} (target {format_value(definition, snapshot.target)})"
                ),
                severity="high",
                value=str(snapshot.value),
                threshold=str(snapshot.target),
                resolved=False,
                created_at=now,
            )
            session.add(alert)
            await session.commit()
            await session.refresh(alert)

        logger.info("Created alert %s for KPI %s (value=%s)", alert.id, alert.kpi_code, alert.value)
        return alert

    async def list_alerts(self, client_id: Optional[str] = None) -> list[Alert]:
        query = select(Alert).where(Alert.resolved.is_(False))
        if client_id is not None:
            query = query.where(Alert.client_id == client_id)
        async with self._database.session() as session:
            result = await session.execute(query.order_by(Alert.created_at.desc(), Alert.id.desc()))
            return list(result.scalars().all())

    async def update_thresholds(self, thresholds: Mapping[str, ThresholdConfig]) -> list[str]:
        normalized: dict[str, ThresholdConfig] = {}
        for code, config in thresholds.items():
            key = code.strip().upper()
            if key not in KPI_DEFINITIONS:
                raise ValidationError(f"Unknown KPI code: {code}")
            normalized[key] = config

        async with self._database.session() as session:
            for code, config in normalized.items():
                # NULL client ids never collide on the unique constraint, so look up first.
                existing = await session.execute(
                    select(KpiTarget).where(KpiTarget.client_id.is_(None), KpiTarget.kpi_code == code)
                )
                target = existing.scalar_one_or_none()
                definition = KPI_DEFINITIONS[code]
                if target is None:
                    target = KpiTarget(
                        client_id=None,
                        kpi_code=code,
                        target_value=definition.target,
                        unit=definition.unit,
                    )
                    session.add(target)
                target.warning_value = config.warning
                target.critical_value = config.critical
                target.updated_at = utcnow()
            await session.commit()

        logger.info("Updated alert thresholds for %s", ", ".join(normalized) or "no KPIs")
        return list(normalized)

    async def list_thresholds(self) -> list[KpiTarget]:
        async with self._database.session() as session:
            result = await session.execute(
                select(KpiTarget).where(KpiTarget.client_id.is_(None)).order_by(KpiTarget.kpi_code)
            )
            return list(result.scalars().all())


__all__ = ["ALL_CLIENTS", "AlertService"]
