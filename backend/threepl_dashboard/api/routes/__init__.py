"""Router factories for the versioned API."""

from __future__ import annotations

from .alerts import get_alerts_router
from .auth import get_auth_router
from .kpis import get_kpis_router
from .master import get_master_router
from .reports import get_reports_router
from .users import get_users_router

__all__ = [
    "get_alerts_router",
    "get_auth_router",
    "get_kpis_router",
    "get_master_router",
    "get_reports_router",
    "get_users_router",
]
