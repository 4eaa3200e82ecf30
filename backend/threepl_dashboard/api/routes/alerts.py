"""Alert listing and threshold configuration."""

from __future__ import annotations

from fastapi import APIRouter, Body, Depends

from threepl_dashboard.core.errors import AuthorizationError
from threepl_dashboard.schemas import AlertOut, ThresholdConfig, ThresholdOut, ThresholdUpdateResponse
from threepl_dashboard.services.alerts import AlertService
from threepl_dashboard.services.auth import AuthGuard
from threepl_dashboard.services.scope import Principal


def get_alerts_router(alerts: AlertService, guard: AuthGuard) -> APIRouter:
    router = APIRouter(prefix="/alerts", tags=["alerts"])
    admin_only = guard.require_roles("admin")

    @router.get("", response_model=list[AlertOut])
    async def list_alerts(principal: Principal = Depends(guard.principal)) -> list[AlertOut]:
        client_id = None
        if not principal.is_admin:
            if not principal.client_id:
                raise AuthorizationError()
            client_id = principal.client_id
        return [AlertOut.model_validate(alert) for alert in await alerts.list_alerts(client_id)]

    @router.put("/config", response_model=ThresholdUpdateResponse)
    async def update_config(
        thresholds: dict[str, ThresholdConfig] = Body(...),
        _: Principal = Depends(admin_only),
    ) -> ThresholdUpdateResponse:
        updated = await alerts.update_thresholds(thresholds)
        return ThresholdUpdateResponse(message="Alert configuration updated", updated=updated)

    @router.get("/config", response_model=list[ThresholdOut])
    async def read_config(_: Principal = Depends(admin_only)) -> list[ThresholdOut]:
        return [ThresholdOut.model_validate(target) for target in await alerts.list_thresholds()]

    return router
