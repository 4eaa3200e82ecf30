"""Alert records and configured KPI thresholds."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Float, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from threepl_dashboard.db.base import Base, utcnow

ALERT_SEVERITIES = ("high", "medium", "low")


class Alert(Base):
    __tablename__ = "alerts"
    __table_args__ = (Index("ix_alerts_kpi_created", "kpi_code", "created_at"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    kpi_code: Mapped[str] = mapped_column(String(32))
    client_id: Mapped[str] = mapped_column(String(64), default="ALL")
    message: Mapped[str] = mapped_column(Text)
    severity: Mapped[str] = mapped_column(String(16), default="high")
    value: Mapped[str] = mapped_column(String(32))
    threshold: Mapped[str] = mapped_column(String(32))
    resolved: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class KpiTarget(Base):
    __tablename__ = "dim_kpi_targets"
    __table_args__ = (UniqueConstraint("client_id", "kpi_code", name="uq_kpi_target_client_code"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    client_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    kpi_code: Mapped[str] = mapped_column(String(32))
    target_value: Mapped[float] = mapped_column(Float)
    warning_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    critical_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    unit: Mapped[str] = mapped_column(String(16))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


__all__ = ["ALERT_SEVERITIES", "Alert", "KpiTarget"]
