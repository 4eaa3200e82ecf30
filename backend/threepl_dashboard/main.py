"""FastAPI application factory for the 3PL operations dashboard."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from threepl_dashboard.api.routes import (
    get_alerts_router,
    get_auth_router,
    get_kpis_router,
    get_master_router,
    get_reports_router,
    get_users_router,
)
from threepl_dashboard.config import AppSettings, get_settings
from threepl_dashboard.core.errors import register_error_handlers
from threepl_dashboard.core.logging import setup_logging
from threepl_dashboard.core.telemetry import setup_telemetry
from threepl_dashboard.db import Database
from threepl_dashboard.db.base import utcnow
from threepl_dashboard.schemas import filter_params_dependency
from threepl_dashboard.services.aggregator import KpiAggregator
from threepl_dashboard.services.alerts import AlertService
from threepl_dashboard.services.auth import AuthGuard, TokenService
from threepl_dashboard.services.details import DetailService
from threepl_dashboard.services.kpis import KpiService
from threepl_dashboard.services.notifications import AlertNotifier
from threepl_dashboard.services.reports import ReportService
from threepl_dashboard.services.trends import TrendService
from threepl_dashboard.services.users import UserService

logger = logging.getLogger(__name__)


def create_app(
    settings: AppSettings | None = None,
    database: Database | None = None,
    notifier: AlertNotifier | None = None,
) -> FastAPI:
    """Wire settings, storage and services into a FastAPI application."""

    settings = settings or get_settings()
    setup_logging(settings.log_level)
    logger.info("Starting %s with settings: %s", settings.app_name, settings.dict_for_logging())

    database = database or Database(settings.database_url)
    notifier = notifier or AlertNotifier(settings)

    tokens = TokenService(settings)
    guard = AuthGuard(tokens)
    users = UserService(database)
    trends = TrendService(database, settings)
    aggregator = KpiAggregator(database, trends)
    details = DetailService(database, settings)
    kpis = KpiService(aggregator, trends, details, settings)
    alerts = AlertService(database, notifier, settings)
    reports = ReportService(kpis)
    filters = filter_params_dependency(settings.default_date_range)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        await database.create_all()
        try:
            yield
        finally:
            await database.dispose()

    app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)
    setup_telemetry(app, settings, engine=database.engine)

    api_router = APIRouter(prefix=settings.api_prefix)
    api_router.include_router(get_auth_router(users, tokens, guard))
    api_router.include_router(get_users_router(users, guard))
    api_router.include_router(get_kpis_router(kpis, alerts, guard, filters))
    api_router.include_router(get_master_router(database, guard))
    api_router.include_router(get_alerts_router(alerts, guard))
    api_router.include_router(get_reports_router(reports, guard, filters))

    @api_router.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        """Return service readiness metadata."""

        return {"status": "ok", "timestamp": utcnow().isoformat()}

    app.include_router(api_router)
    app.state.database = database
    app.state.notifier = notifier
    return app


app = create_app()

__all__ = ["app", "create_app"]
