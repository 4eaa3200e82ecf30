"""Client and provider master data for the dashboard filter bar."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select

from threepl_dashboard.db import Database
from threepl_dashboard.models import Client, Provider
from threepl_dashboard.schemas import ClientOut, ProviderOut
from threepl_dashboard.services.auth import AuthGuard
from threepl_dashboard.services.scope import Principal


def get_master_router(database: Database, guard: AuthGuard) -> APIRouter:
    router = APIRouter(tags=["master-data"])
    admin_only = guard.require_roles("admin")

    @router.get("/clients", response_model=list[ClientOut])
    async def list_clients(_: Principal = Depends(admin_only)) -> list[ClientOut]:
        async with database.session() as session:
            result = await session.execute(select(Client).where(Client.active.is_(True)).order_by(Client.name))
            return [ClientOut.model_validate(client) for client in result.scalars()]

    @router.get("/providers", response_model=list[ProviderOut])
    async def list_providers(_: Principal = Depends(admin_only)) -> list[ProviderOut]:
        async with database.session() as session:
            result = await session.execute(
                select(Provider).where(Provider.active.is_(True)).order_by(Provider.name)
            )
            return [ProviderOut.model_validate(provider) for provider in result.scalars()]

    return router
