"""Warehouse fact tables: inbound receipts, outbound order lines, inventory snapshots."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Float, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from threepl_dashboard.db.base import Base, utcnow


class FactInbound(Base):
    __tablename__ = "fact_inbound"
    __table_args__ = (Index("ix_fact_inbound_client_created", "client_id", "created_at"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    provider_id: Mapped[str] = mapped_column(String(64), index=True)
    client_id: Mapped[str] = mapped_column(String(64))
    sku: Mapped[str] = mapped_column(String(64))
    received_units: Mapped[int] = mapped_column(Integer)
    damaged_units: Mapped[int] = mapped_column(Integer, default=0)
    arrival_at: Mapped[datetime] = mapped_column(DateTime)
    putaway_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class FactOutbound(Base):
    __tablename__ = "fact_outbound"
    __table_args__ = (
        Index("ix_fact_outbound_client_created", "client_id", "created_at"),
        Index("ix_fact_outbound_order", "order_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    client_id: Mapped[str] = mapped_column(String(64))
    team_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    sku: Mapped[str] = mapped_column(String(64))
    order_id: Mapped[str] = mapped_column(String(64))
    promised_date: Mapped[datetime] = mapped_column(DateTime)
    shipped_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    picked_units: Mapped[int] = mapped_column(Integer)
    ordered_units: Mapped[int] = mapped_column(Integer)
    ready_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    cutoff_time: Mapped[datetime] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class FactInventory(Base):
    __tablename__ = "fact_inventory"
    __table_args__ = (Index("ix_fact_inventory_client_created", "client_id", "created_at"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    sku: Mapped[str] = mapped_column(String(64))
    client_id: Mapped[str] = mapped_column(String(64))
    system_qty: Mapped[int] = mapped_column(Integer)
    physical_qty: Mapped[int] = mapped_column(Integer)
    stock_qty: Mapped[int] = mapped_column(Integer)
    avg_daily_demand: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


__all__ = ["FactInbound", "FactOutbound", "FactInventory"]
