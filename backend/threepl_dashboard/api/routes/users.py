"""Administrative user management."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from threepl_dashboard.schemas import MessageResponse, UserOut, UserUpdateRequest
from threepl_dashboard.services.auth import AuthGuard
from threepl_dashboard.services.scope import Principal
from threepl_dashboard.services.users import UserService


def get_users_router(users: UserService, guard: AuthGuard) -> APIRouter:
    router = APIRouter(prefix="/users", tags=["users"])
    admin_only = guard.require_roles("admin")

    @router.get("", response_model=list[UserOut])
    async def list_users(_: Principal = Depends(admin_only)) -> list[UserOut]:
        return [UserOut.model_validate(user) for user in await users.list_users()]

    @router.put("/{user_id}", response_model=UserOut)
    async def update_user(
        user_id: int, payload: UserUpdateRequest, _: Principal = Depends(admin_only)
    ) -> UserOut:
        return UserOut.model_validate(await users.update(user_id, payload))

    @router.delete("/{user_id}", response_model=MessageResponse)
    async def delete_user(user_id: int, principal: Principal = Depends(admin_only)) -> MessageResponse:
        await users.delete(user_id, acting_user_id=principal.user_id)
        return MessageResponse(message="User deleted successfully")

    return router
