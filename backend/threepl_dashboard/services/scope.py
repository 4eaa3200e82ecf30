"""Resolve caller identity plus requested filters into the enforced query scope.

Every data-access path (aggregates, trends, distributions, detail rows,
reports) receives a :class:`QueryScope` built here and nowhere else, so the
tenant-isolation rule lives in a single function: a ``client`` caller is
always pinned to its own client id, whatever the request asked for.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, time, timedelta, timezone
from typing import Any, Optional

from sqlalchemy.sql.expression import ColumnElement

from threepl_dashboard.core.errors import AuthorizationError, ValidationError
from threepl_dashboard.db.base import utcnow
from threepl_dashboard.schemas.filters import FilterParams

DATE_RANGE_DAYS = {"7d": 7, "30d": 30, "90d": 90}


@dataclass(frozen=True)
class Principal:
    """Identity recovered from a verified bearer token."""

    user_id: int
    email: str
    role: str
    client_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


@dataclass(frozen=True)
class QueryScope:
    start: datetime
    end: datetime
    client_id: Optional[str] = None
    provider_id: Optional[str] = None

    def conditions(self, model: Any) -> list[ColumnElement[bool]]:
        clauses: list[ColumnElement[bool]] = [
            model.created_at >= self.start,
            model.created_at <= self.end,
        ]
        if self.client_id is not None:
            clauses.append(model.client_id == self.client_id)
        if self.provider_id is not None and hasattr(model, "provider_id"):
            clauses.append(model.provider_id == self.provider_id)
        return clauses

    def trailing(self, days: int) -> "QueryScope":
        """Same tenant/provider scope over the ``days`` calendar days ending on :attr:`end`."""

        first_day = self.end.date() - timedelta(days=days - 1)
        return replace(self, start=datetime.combine(first_day, time.min))


def _parse_instant(raw: str, *, end_of_day: bool) -> datetime:
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError as exc:
        raise ValidationError(f"Invalid date '{raw}'; expected ISO 8601") from exc
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    date_only = len(raw) == 10
    if date_only and end_of_day:
        return datetime.combine(parsed.date(), time.max)
    return parsed


def resolve_window(filters: FilterParams, now: datetime | None = None) -> tuple[datetime, datetime]:
    """Return the absolute ``(start, end)`` window for ``filters``."""

    if filters.date_from and filters.date_to:
        start = _parse_instant(filters.date_from, end_of_day=False)
        end = _parse_instant(filters.date_to, end_of_day=True)
        if start > end:
            raise ValidationError("'from' must not be after 'to'")
        return start, end

    days = DATE_RANGE_DAYS.get(filters.date_range)
    if days is None:
        raise ValidationError(
            f"Unsupported dateRange '{filters.date_range}'; expected one of {', '.join(DATE_RANGE_DAYS)}"
        )
    end = now or utcnow()
    return end - timedelta(days=days), end


def resolve_scope(principal: Principal, filters: FilterParams, now: datetime | None = None) -> QueryScope:
    start, end = resolve_window(filters, now)
    if principal.role == "client":
        if not principal.client_id:
            raise AuthorizationError()
        client_id: Optional[str] = principal.client_id
    else:
        client_id = filters.client_id
    return QueryScope(start=start, end=end, client_id=client_id, provider_id=filters.provider_id)


__all__ = [
    "DATE_RANGE_DAYS",
    "Principal",
    "QueryScope",
    "resolve_scope",
    "resolve_window",
]
