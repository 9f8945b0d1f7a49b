"""
OAuth schemas - request/response formats for the /oauth endpoints.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

from calswitch.models import Connection, Provider


class CredentialsIn(BaseModel):
    """
    Client credentials from the provider's app registration.

    Example request body:
    {
        "client_id": "1234.apps.googleusercontent.com",
        "client_secret": "GOCSPX-...",
        "tenant": null
    }
    """
    client_id: str = Field(..., min_length=1)
    client_secret: str = Field(..., min_length=1)
    # tenant: Microsoft only ("common", "organizations", "consumers" or an id)
    tenant: Optional[str] = None


class ConnectionStatus(BaseModel):
    """
    Connection status shown to the user. Never contains tokens.

    Example response:
    {
        "provider": "google",
        "configured": true,
        "connected": true,
        "authorization_pending": false,
        "expires_at": "2025-01-15T10:59:00Z",
        "last_authorized_at": "2025-01-15T10:00:00Z",
        "scope": "https://www.googleapis.com/auth/calendar.readonly",
        "message": "Connected"
    }
    """
    provider: Provider
    configured: bool
    connected: bool
    authorization_pending: bool = False
    expires_at: Optional[datetime] = None
    last_authorized_at: Optional[datetime] = None
    scope: Optional[str] = None
    message: str = ""

    @classmethod
    def from_connection(cls, connection: Connection, message: Optional[str] = None) -> "ConnectionStatus":
        if message is None:
            if connection.is_connected:
                message = "Connected"
            elif connection.is_configured:
                message = "Not connected - authorize to continue"
            else:
                message = "Client credentials missing"

        expires_at = None
        if connection.expires_at_ms:
            expires_at = datetime.fromtimestamp(connection.expires_at_ms / 1000, tz=timezone.utc)

        return cls(
            provider=connection.provider,
            configured=connection.is_configured,
            connected=connection.is_connected,
            authorization_pending=connection.pkce_verifier is not None,
            expires_at=expires_at,
            last_authorized_at=connection.last_authorized_at,
            scope=connection.scope,
            message=message,
        )
