"""SQLAlchemy base metadata and declarative registry."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase


class Base(AsyncAttrs, DeclarativeBase):
    """Declarative base for SQLAlchemy models."""

    pass


def utcnow() -> datetime:
    """Naive UTC timestamp; every fact time column is stored this way."""

    return datetime.now(timezone.utc).replace(tzinfo=None)
