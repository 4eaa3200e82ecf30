"""Domain exceptions and their HTTP translation."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class DashboardError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, *, status_code: int | None = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code


class AuthenticationError(DashboardError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication required"

    @classmethod
    def missing_token(cls) -> "AuthenticationError":
        return cls("Access token required", status_code=status.HTTP_401_UNAUTHORIZED)

    @classmethod
    def invalid_token(cls) -> "AuthenticationError":
        return cls("Invalid or expired token", status_code=status.HTTP_403_FORBIDDEN)


class AuthorizationError(DashboardError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Insufficient permissions"


class ValidationError(DashboardError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class NotFoundError(DashboardError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class UpstreamError(DashboardError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Upstream data source failure"

    def __init__(self, message: str | None = None, *, kpi_code: str | None = None) -> None:
        super().__init__(message)
        self.kpi_code = kpi_code


async def _dashboard_error_handler(request: Request, exc: DashboardError) -> JSONResponse:
    if isinstance(exc, UpstreamError):
        logger.error("Upstream failure on %s (kpi=%s): %s", request.url.path, exc.kpi_code, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"detail": UpstreamError.default_message})
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors())},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DashboardError, _dashboard_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)


__all__ = [
    "AuthenticationError",
    "AuthorizationError",
    "DashboardError",
    "NotFoundError",
    "UpstreamError",
    "ValidationError",
    "register_error_handlers",
]
