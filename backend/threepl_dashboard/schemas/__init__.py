"""Pydantic schemas exposed by the API."""

from .alerts import AlertOut, ThresholdConfig, ThresholdOut, ThresholdUpdateResponse
from .auth import AuthResponse, LoginRequest, MessageResponse, RegisterRequest, UserOut, UserUpdateRequest
from .filters import FilterParams, filter_params_dependency
from .kpis import DistributionEntry, KpiDetail, KpiSnapshot, TrendPoint
from .master import ClientOut, ProviderOut

__all__ = [
    "AlertOut",
    "AuthResponse",
    "ClientOut",
    "DistributionEntry",
    "FilterParams",
    "KpiDetail",
    "KpiSnapshot",
    "LoginRequest",
    "MessageResponse",
    "ProviderOut",
    "RegisterRequest",
    "ThresholdConfig",
    "ThresholdOut",
    "ThresholdUpdateResponse",
    "TrendPoint",
    "UserOut",
    "UserUpdateRequest",
    "filter_params_dependency",
]
