"""
Connection model - OAuth credentials and tokens for one calendar provider.

One Connection exists per provider. It carries the client credentials the
user registered at the provider, the tokens obtained through the
authorization-code flow, and the transient PKCE verifier / nonce while an
authorization attempt is in flight.

Lifecycle:
==========
1. Seeded with client credentials (settings or the credentials endpoint)
2. authorize() stores a PKCE verifier and nonce
3. handle_callback() stores access/refresh tokens and clears the verifier
4. access_token() refreshes and mutates the token fields
5. disconnect() clears tokens and PKCE fields (credentials are kept)
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Provider(str, Enum):
    """Supported calendar providers."""

    GOOGLE = "google"
    MICROSOFT = "microsoft"


class Connection(BaseModel):
    """
    OAuth connection state for a single provider.

    Invariant: expires_at_ms is recomputed on every token grant as
    now + expires_in - safety margin.
    """

    provider: Provider

    # Client credentials
    client_id: str = ""
    client_secret: str = ""
    tenant: Optional[str] = Field(None, description="Microsoft tenant (common, organizations, ...)")

    # Tokens
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at_ms: int = 0
    scope: Optional[str] = None

    # Authorization in flight only
    pkce_verifier: Optional[str] = None
    oauth_nonce: Optional[str] = None

    last_authorized_at: Optional[datetime] = None

    @property
    def is_configured(self) -> bool:
        """Client id and secret are present."""
        return bool(self.client_id and self.client_secret)

    @property
    def is_connected(self) -> bool:
        """A refresh token exists, so the connection can self-heal."""
        return bool(self.refresh_token)

    def cleared(self) -> "Connection":
        """Return a copy with all token and PKCE fields reset."""
        return self.model_copy(
            update={
                "access_token": None,
                "refresh_token": None,
                "expires_at_ms": 0,
                "scope": None,
                "pkce_verifier": None,
                "oauth_nonce": None,
                "last_authorized_at": None,
            }
        )
