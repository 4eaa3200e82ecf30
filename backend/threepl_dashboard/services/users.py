"""User account management backed by the ``users`` table."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from threepl_dashboard.core.errors import AuthenticationError, NotFoundError, ValidationError
from threepl_dashboard.db import Database
from threepl_dashboard.models import User
from threepl_dashboard.schemas.auth import RegisterRequest, UserUpdateRequest
from threepl_dashboard.services.auth import hash_password, verify_password

logger = logging.getLogger(__name__)


def _normalize_email(email: str) -> str:
    return email.strip().lower()


class UserService:
    def __init__(self, database: Database):
        self._database = database

    async def authenticate(self, email: str, password: str) -> User:
        async with self._database.session() as session:
            result = await session.execute(select(User).where(User.email == _normalize_email(email)))
            user = result.scalar_one_or_none()
        if user is None or not verify_password(password, user.password):
            raise AuthenticationError("Invalid credentials")
        return user

    async def register(self, payload: RegisterRequest) -> User:
        email = _normalize_email(payload.email)
        username = payload.username.strip()
        client_id = payload.client_id.strip() if payload.client_id else None
        if payload.role == "client" and not client_id:
            raise ValidationError("client_id is required for client users")
        if payload.role == "admin":
            client_id = None

        async with self._database.session() as session:
            await self._ensure_unique(session, email=email, username=username)
            user = User(
                username=username,
                email=email,
                password=hash_password(payload.password),
                role=payload.role,
                client_id=client_id,
            )
            session.add(user)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ValidationError("User already exists") from exc
            await session.refresh(user)

        logger.info("Registered user id=%s role=%s client=%s", user.id, user.role, user.client_id)
        return user

    async def get(self, user_id: int) -> User:
        async with self._database.session() as session:
            user = await session.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def list_users(self) -> list[User]:
        async with self._database.session() as session:
            result = await session.execute(select(User).order_by(User.username))
            return list(result.scalars().all())

    async def update(self, user_id: int, payload: UserUpdateRequest) -> User:
        async with self._database.session() as session:
            user = await session.get(User, user_id)
            if user is None:
                raise NotFoundError("User not found")

            email = _normalize_email(payload.email) if payload.email is not None else None
            username = payload.username.strip() if payload.username is not None else None
            await self._ensure_unique(session, email=email, username=username, exclude_id=user.id)

            if username is not None:
                user.username = username
            if email is not None:
                user.email = email
            if payload.password:
                user.password = hash_password(payload.password)
            if payload.role is not None:
                user.role = payload.role
            if "client_id" in payload.model_fields_set:
                user.client_id = payload.client_id or None
            if user.role == "admin":
                user.client_id = None
            elif not user.client_id:
                raise ValidationError("client_id is required for client users")

            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ValidationError("User already exists") from exc
            await session.refresh(user)
        return user

    async def delete(self, user_id: int, *, acting_user_id: int) -> None:
        if user_id == acting_user_id:
            raise ValidationError("Cannot delete your own account")
        async with self._database.session() as session:
            user = await session.get(User, user_id)
            if user is None:
                raise NotFoundError("User not found")
            await session.delete(user)
            await session.commit()
        logger.info("Deleted user id=%s by user id=%s", user_id, acting_user_id)

    @staticmethod
    async def _ensure_unique(
        session: AsyncSession,
        *,
        email: Optional[str],
        username: Optional[str],
        exclude_id: Optional[int] = None,
    ) -> None:
        clauses = []
        if email is not None:
            clauses.append(User.email == email)
        if username is not None:
            clauses.append(User.username == username)
        if not clauses:
            return
        query = select(User).where(or_(*clauses))
        if exclude_id is not None:
            query = query.where(User.id != exclude_id)
        result = await session.execute(query.limit(1))
        if result.scalar_one_or_none() is not None:
            raise ValidationError("User already exists")


__all__ = ["UserService"]
