"""
Dependencies module - reusable FastAPI dependencies for route handlers.

Service objects (registry, scheduler, OAuth client, token store) live on
app.state and are created by calswitch.main.create_app; these helpers hand
them to route handlers. require_api_token guards every route except the
health check and the OAuth callback.
"""

import secrets
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from calswitch.core.config import Settings
from calswitch.environments.oauth import OAuthClient
from calswitch.services.scheduler import PollScheduler
from calswitch.services.switch_registry import SwitchRegistry
from calswitch.services.token_store import TokenStore


# ---------------------------------------------------------------------------
# SECURITY SCHEME
# ---------------------------------------------------------------------------
# HTTPBearer: Extracts tokens from the "Authorization: Bearer <token>" header.
# auto_error=False so a missing header can be allowed when API_TOKEN is unset.
security = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_registry(request: Request) -> SwitchRegistry:
    return request.app.state.registry


def get_scheduler(request: Request) -> PollScheduler:
    return request.app.state.scheduler


def get_oauth_client(request: Request) -> OAuthClient:
    return request.app.state.oauth_client


def get_token_store(request: Request) -> TokenStore:
    return request.app.state.token_store


def require_api_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    app_settings: Settings = Depends(get_settings),
) -> None:
    """
    Check the shared bearer token sent by the device/UI collaborator.

    Raises:
        401 Unauthorized: If API_TOKEN is set and the header is missing or wrong
    """
    expected = app_settings.API_TOKEN
    if not expected:
        return

    if credentials is None or not secrets.compare_digest(credentials.credentials, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API token",
            headers={"WWW-Authenticate": "Bearer"},
        )
