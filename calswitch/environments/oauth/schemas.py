"""
OAuth token schemas - typed view of token endpoint responses.

Example response (both providers):
{
    "access_token": "ya29.a0AfB_byC...",
    "expires_in": 3599,
    "refresh_token": "1//0eXyz...",
    "scope": "https://www.googleapis.com/auth/calendar.readonly",
    "token_type": "Bearer"
}
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


DEFAULT_EXPIRES_IN = 3600


class TokenResponse(BaseModel):
    """
    Response from a provider token endpoint.

    Every field is optional so a structured OAuth error ({"error": ...})
    parses into the same model and can be told apart by `error`.
    """

    model_config = ConfigDict(extra="ignore")

    access_token: Optional[str] = None
    token_type: str = Field(default="Bearer")
    expires_in: Optional[int] = None
    refresh_token: Optional[str] = None
    scope: Optional[str] = None

    error: Optional[str] = None
    error_description: Optional[str] = None

    def lifetime_seconds(self) -> int:
        """expires_in with the provider-independent default."""
        return self.expires_in if self.expires_in else DEFAULT_EXPIRES_IN
