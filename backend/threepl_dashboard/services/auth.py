"""Password hashing, signed bearer tokens and request guards."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from threepl_dashboard.config import AppSettings
from threepl_dashboard.core.errors import AuthenticationError, AuthorizationError
from threepl_dashboard.core.telemetry import annotate_enduser
from threepl_dashboard.models import User
from threepl_dashboard.services.scope import Principal

logger = logging.getLogger(__name__)

_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
_bearer = HTTPBearer(auto_error=False)


def hash_password(plain_password: str) -> str:
    return _pwd_context.hash(plain_password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    try:
        return _pwd_context.verify(plain_password, password_hash)
    except ValueError:
        # Malformed hash in storage.
        logger.warning("Stored password hash could not be parsed")
        return False


class TokenService:
    """Issue and verify HS256 tokens carrying the caller's role and tenant."""

    def __init__(self, settings: AppSettings):
        self._secret = settings.jwt_secret
        self._algorithm = settings.jwt_algorithm
        self._ttl = timedelta(minutes=settings.token_ttl_minutes)

    def issue(self, user: User, now: datetime | None = None) -> str:
        issued_at = now or datetime.now(timezone.utc)
        claims: dict[str, Any] = {
            "sub": str(user.id),
            "email": user.email,
            "role": user.role,
            "client_id": user.client_id,
            "exp": issued_at + self._ttl,
        }
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)

    def verify(self, token: str) -> Principal:
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except JWTError as exc:
            logger.debug("Rejected bearer token: %s", exc)
            raise AuthenticationError.invalid_token() from exc

        try:
            user_id = int(payload["sub"])
            email = str(payload["email"])
            role = str(payload["role"])
        except (KeyError, TypeError, ValueError) as exc:
            raise AuthenticationError.invalid_token() from exc
        if role not in ("admin", "client"):
            raise AuthenticationError.invalid_token()

        client_id = payload.get("client_id")
        return Principal(user_id=user_id, email=email, role=role, client_id=str(client_id) if client_id else None)


class AuthGuard:
    """FastAPI dependencies resolving and authorising the calling principal."""

    def __init__(self, tokens: TokenService):
        self._tokens = tokens

    async def principal(
        self, credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer)
    ) -> Principal:
        if credentials is None or not credentials.credentials:
            raise AuthenticationError.missing_token()
        principal = self._tokens.verify(credentials.credentials)
        annotate_enduser(principal.user_id, principal.role, principal.client_id)
        return principal

    def require_roles(self, *roles: str) -> Callable[..., Awaitable[Principal]]:
        allowed = frozenset(roles)

        async def dependency(principal: Principal = Depends(self.principal)) -> Principal:
            if principal.role not in allowed:
                raise AuthorizationError()
            return principal

        return dependency


__all__ = ["AuthGuard", "TokenService", "hash_password", "verify_password"]
