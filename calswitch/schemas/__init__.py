"""
Schemas package - Pydantic models for API request/response validation.
"""

from calswitch.schemas.oauth import ConnectionStatus, CredentialsIn
from calswitch.schemas.switch import RefreshOut, SwitchOut, SwitchRuleIn, TickOut

__all__ = [
    "ConnectionStatus",
    "CredentialsIn",
    "RefreshOut",
    "SwitchOut",
    "SwitchRuleIn",
    "TickOut",
]
