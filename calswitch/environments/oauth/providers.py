"""
OAuth provider profiles - endpoint and parameter differences per provider.

Both providers speak standard OAuth 2.0 authorization code + PKCE; the
differences are limited to URLs, scopes and a few extra parameters, so they
are captured as data instead of separate client classes.

References:
- Google: https://developers.google.com/identity/protocols/oauth2/web-server
- Microsoft: https://learn.microsoft.com/entra/identity-platform/v2-oauth2-auth-code-flow
"""

from dataclasses import dataclass, field
from typing import Dict, Optional
from urllib.parse import quote

from calswitch.models import Provider


DEFAULT_TENANT = "common"


@dataclass(frozen=True)
class ProviderProfile:
    """Static OAuth configuration for one provider."""
    provider: Provider
    authorize_url: str
    token_url: str
    scope: str
    authorize_extras: Dict[str, str] = field(default_factory=dict)
    # Microsoft wants the scope repeated on every token request
    send_scope_to_token_endpoint: bool = False
    revoke_url: Optional[str] = None

    def authorize_endpoint(self, tenant: Optional[str] = None) -> str:
        return self.authorize_url.format(tenant=quote(_tenant(tenant), safe=""))

    def token_endpoint(self, tenant: Optional[str] = None) -> str:
        return self.token_url.format(tenant=quote(_tenant(tenant), safe=""))


def _tenant(tenant: Optional[str]) -> str:
    value = (tenant or "").strip()
    return value or DEFAULT_TENANT


GOOGLE_PROFILE = ProviderProfile(
    provider=Provider.GOOGLE,
    authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
    token_url="https://oauth2.googleapis.com/token",
    scope="https://www.googleapis.com/auth/calendar.readonly",
    authorize_extras={"access_type": "offline", "prompt": "consent"},
    revoke_url="https://oauth2.googleapis.com/revoke",
)

MICROSOFT_PROFILE = ProviderProfile(
    provider=Provider.MICROSOFT,
    authorize_url="https://login.microsoftonline.com/{tenant}/oauth2/v2.0/authorize",
    token_url="https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token",
    scope="offline_access Calendars.Read",
    authorize_extras={"response_mode": "query"},
    send_scope_to_token_endpoint=True,
)

PROFILES: Dict[Provider, ProviderProfile] = {
    Provider.GOOGLE: GOOGLE_PROFILE,
    Provider.MICROSOFT: MICROSOFT_PROFILE,
}
