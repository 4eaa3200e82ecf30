"""Database model exports."""

from .alerts import ALERT_SEVERITIES, Alert, KpiTarget
from .facts import FactInbound, FactInventory, FactOutbound
from .users import USER_ROLES, Client, DimSku, DimTeam, Provider, User

__all__ = [
    "ALERT_SEVERITIES",
    "USER_ROLES",
    "Alert",
    "KpiTarget",
    "FactInbound",
    "FactOutbound",
    "FactInventory",
    "User",
    "Client",
    "Provider",
    "DimSku",
    "DimTeam",
]
