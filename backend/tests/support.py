"""Shared builders for the test suite."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any, AsyncIterator, Iterable

from httpx import ASGITransport, AsyncClient

from threepl_dashboard.config import AppSettings
from threepl_dashboard.db import Database
from threepl_dashboard.models import Client, FactInbound, FactInventory, FactOutbound, Provider, User
from threepl_dashboard.schemas.kpis import KpiSnapshot
from threepl_dashboard.services.auth import TokenService, hash_password
from threepl_dashboard.services.notifications import AlertNotifier
from threepl_dashboard.services.scope import QueryScope

BASE = datetime(2026, 3, 10, 8, 0)
MARCH = QueryScope(start=datetime(2026, 3, 1), end=datetime(2026, 3, 31, 23, 59, 59))


async def open_database(settings: AppSettings) -> Database:
    database = Database(settings.database_url)
    await database.create_all()
    return database


async def add_all(database: Database, objects: Iterable[Any]) -> None:
    async with database.session() as session:
        session.add_all(list(objects))
        await session.commit()


def inbound(**overrides: Any) -> FactInbound:
    values: dict[str, Any] = {
        "provider_id": "FASTFREIGHT",
        "client_id": "ACME",
        "sku": "ACME-SKU001",
        "received_units": 100,
        "damaged_units": 0,
        "arrival_at": BASE,
        "putaway_at": BASE + timedelta(hours=2),
        "created_at": BASE,
    }
    values.update(overrides)
    return FactInbound(**values)


def outbound(**overrides: Any) -> FactOutbound:
    values: dict[str, Any] = {
        "client_id": "ACME",
        "team_id": None,
        "sku": "ACME-SKU001",
        "order_id": "ORD-1",
        "promised_date": BASE + timedelta(days=2),
        "shipped_date": BASE + timedelta(days=1),
        "picked_units": 10,
        "ordered_units": 10,
        "ready_at": BASE + timedelta(hours=1),
        "cutoff_time": BASE + timedelta(hours=2),
        "created_at": BASE,
    }
    values.update(overrides)
    return FactOutbound(**values)


def inventory(**overrides: Any) -> FactInventory:
    values: dict[str, Any] = {
        "sku": "ACME-SKU001",
        "client_id": "ACME",
        "system_qty": 100,
        "physical_qty": 100,
        "stock_qty": 100,
        "avg_daily_demand": 10.0,
        "created_at": BASE,
    }
    values.update(overrides)
    return FactInventory(**values)


def master_data() -> list[Any]:
    return [
        Client(id="ACME", name="Acme Retail", active=True),
        Client(id="OTHERCO", name="Other Co", active=True),
        Client(id="DORMANT", name="Dormant Ltd", active=False),
        Provider(id="FASTFREIGHT", name="Fast Freight", active=True),
        Provider(id="BLUELINE", name="Blueline", active=True),
    ]


async def create_user(
    database: Database,
    *,
    username: str,
    email: str,
    role: str = "admin",
    client_id: str | None = None,
    password: str = "secret123",
) -> User:
    user = User(username=username, email=email, password=hash_password(password), role=role, client_id=client_id)
    async with database.session() as session:
        session.add(user)
        await session.commit()
        await session.refresh(user)
    return user


def bearer(settings: AppSettings, user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {TokenService(settings).issue(user)}"}


def snapshot(code: str = "DAMAGES", *, value: float = 5.0, target: float = 2.0, status: str = "critical") -> KpiSnapshot:
    return KpiSnapshot(
        code=code,
        label=code.title(),
        value=value,
        target=target,
        unit="%",
        status=status,
        delta=round(value - target, 1),
        trend=[],
        last_updated=BASE,
    )


class RecordingNotifier(AlertNotifier):
    """Captures alerts instead of talking to an SMTP server."""

    def __init__(self, settings: AppSettings):
        super().__init__(settings)
        self.sent: list[tuple[str, str]] = []

    async def send_alert(self, alert, snapshot) -> bool:
        self.sent.append((alert.kpi_code, snapshot.code))
        return True


@asynccontextmanager
async def api_client(app) -> AsyncIterator[AsyncClient]:
    async with app.router.lifespan_context(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
