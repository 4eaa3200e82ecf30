"""Response payloads for KPI overview, drill-down and export."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

KpiStatusField = Literal["good", "warning", "critical"]


class KpiSnapshot(BaseModel):
    code: str
    label: str
    value: float
    target: float
    unit: str
    status: KpiStatusField
    delta: float
    trend: list[float] = Field(default_factory=list)
    last_updated: datetime


class TrendPoint(BaseModel):
    date: str = Field(..., description="Calendar day, YYYY-MM-DD")
    value: float
    target: float


class DistributionEntry(BaseModel):
    category: str
    client_id: str
    value: float
    target: float
    orders: int
    on_time_rate: Optional[float] = None
    in_full_rate: Optional[float] = None
    details: Optional[str] = None


class KpiDetail(BaseModel):
    code: str
    trend: list[TrendPoint]
    distribution: list[DistributionEntry]
    detail: list[dict[str, Any]]
