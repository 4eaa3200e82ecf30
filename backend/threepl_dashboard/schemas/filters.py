"""Request filter parameters shared by KPI, export and report endpoints."""

from __future__ import annotations

from typing import Callable, Optional

from fastapi import Query
from pydantic import BaseModel, Field, field_validator

from threepl_dashboard.config.settings import DEFAULT_DATE_RANGE

_WILDCARDS = {"", "all"}


class FilterParams(BaseModel):
    date_range: str = Field(default=DEFAULT_DATE_RANGE, examples=["7d", "30d", "90d"])
    client_id: Optional[str] = None
    provider_id: Optional[str] = None
    date_from: Optional[str] = Field(default=None, description="ISO date or datetime, inclusive")
    date_to: Optional[str] = Field(default=None, description="ISO date or datetime, inclusive")

    @field_validator("client_id", "provider_id", "date_from", "date_to")
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return None if value.lower() in _WILDCARDS else value


def filter_params_dependency(default_date_range: str = DEFAULT_DATE_RANGE) -> Callable[..., FilterParams]:
    """Build the FastAPI dependency reading the dashboard filter bar's query string.

    ``default_date_range`` applies when the request carries no ``dateRange``.
    """

    def get_filter_params(
        date_range: str = Query(default=default_date_range, alias="dateRange"),
        client_id: Optional[str] = Query(default=None, alias="clientId"),
        provider_id: Optional[str] = Query(default=None, alias="providerId"),
        date_from: Optional[str] = Query(default=None, alias="from"),
        date_to: Optional[str] = Query(default=None, alias="to"),
    ) -> FilterParams:
        return FilterParams(
            date_range=date_range,
            client_id=client_id,
            provider_id=provider_id,
            date_from=date_from,
            date_to=date_to,
        )

    return get_filter_params


__all__ = ["FilterParams", "filter_params_dependency"]
