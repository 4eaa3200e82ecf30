"""Authentication routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from threepl_dashboard.schemas import AuthResponse, LoginRequest, RegisterRequest, UserOut
from threepl_dashboard.services.auth import AuthGuard, TokenService
from threepl_dashboard.services.scope import Principal
from threepl_dashboard.services.users import UserService


def get_auth_router(users: UserService, tokens: TokenService, guard: AuthGuard) -> APIRouter:
    router = APIRouter(prefix="/auth", tags=["auth"])

    @router.post("/login", response_model=AuthResponse)
    async def login(payload: LoginRequest) -> AuthResponse:
        user = await users.authenticate(payload.email, payload.password)
        return AuthResponse(user=UserOut.model_validate(user), token=tokens.issue(user))

    @router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
    async def register(payload: RegisterRequest) -> AuthResponse:
        user = await users.register(payload)
        return AuthResponse(user=UserOut.model_validate(user), token=tokens.issue(user))

    @router.get("/me", response_model=UserOut)
    async def me(principal: Principal = Depends(guard.principal)) -> UserOut:
        return UserOut.model_validate(await users.get(principal.user_id))

    return router
