"""
OAuth Module - authorization code + PKCE for Google and Microsoft.

Usage:
    from calswitch.environments.oauth import OAuthClient

    client = OAuthClient(token_store, redirect_uri=..., callback_base_url=...)
    url = client.authorize(Provider.MICROSOFT)
"""

from calswitch.environments.oauth.client import OAuthClient
from calswitch.environments.oauth.providers import PROFILES, ProviderProfile
from calswitch.environments.oauth.schemas import TokenResponse

__all__ = [
    "OAuthClient",
    "PROFILES",
    "ProviderProfile",
    "TokenResponse",
]
