"""Alert payloads and threshold configuration."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class AlertOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    kpi_code: str
    client_id: str
    message: str
    severity: str
    value: str
    threshold: str
    resolved: bool
    created_at: datetime


class ThresholdConfig(BaseModel):
    warning: float
    critical: float


class ThresholdOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    kpi_code: str
    target_value: float
    warning_value: Optional[float] = None
    critical_value: Optional[float] = None
    unit: str
    updated_at: Optional[datetime] = None


class ThresholdUpdateResponse(BaseModel):
    message: str
    updated: list[str]
