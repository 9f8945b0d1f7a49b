"""
OAuth Router - connect, inspect and disconnect calendar providers.

Endpoints:
==========
- GET    /oauth/{provider}/login        → Redirect to the provider consent screen
- GET    /oauth/{provider}/callback     → Exchange the code, store tokens
- PUT    /oauth/{provider}/credentials  → Set client id / secret / tenant
- GET    /oauth/{provider}/status       → Connection status
- DELETE /oauth/{provider}              → Revoke (best effort) and clear tokens

OAuth Flow:
===========
1. User opens /oauth/{provider}/login
2. Provider redirects to the fixed relay URI with code + state
3. The relay forwards to the callback URL carried in state
4. Callback exchanges the code (PKCE) and stores the tokens

The callback is not protected by the API token: the browser arrives there
through the relay and cannot carry it.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import RedirectResponse

from calswitch.deps import get_oauth_client, get_token_store, require_api_token
from calswitch.environments.base import (
    AuthError,
    ExchangeFailed,
    MissingCode,
    NotConfiguredError,
    ProviderError,
)
from calswitch.environments.oauth import OAuthClient
from calswitch.models import Provider
from calswitch.schemas.oauth import ConnectionStatus, CredentialsIn
from calswitch.services.token_store import TokenStore


logger = logging.getLogger("calswitch.routers.oauth")


# ---------------------------------------------------------------------------
# ROUTER SETUP
# ---------------------------------------------------------------------------
router = APIRouter(prefix="/oauth", tags=["oauth"])


def _auth_error_status(error: AuthError) -> int:
    if isinstance(error, NotConfiguredError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_400_BAD_REQUEST


def _auth_error_message(provider: Provider, error: AuthError) -> str:
    if isinstance(error, MissingCode):
        return "Authorization failed: no code was returned. Please try again."
    if isinstance(error, ProviderError):
        return f"{provider.value} rejected the authorization: {error}"
    if isinstance(error, ExchangeFailed):
        return f"Could not complete authorization with {provider.value}: {error}"
    return str(error)


# ---------------------------------------------------------------------------
# ENDPOINTS
# ---------------------------------------------------------------------------


@router.get("/{provider}/login", dependencies=[Depends(require_api_token)])
async def oauth_login(
    provider: Provider,
    oauth_client: OAuthClient = Depends(get_oauth_client),
):
    """
    Initiate the OAuth flow for a provider.

    Returns:
        RedirectResponse to the provider's consent screen
    """
    try:
        auth_url = oauth_client.authorize(provider)
    except NotConfiguredError as e:
        logger.error(f"{provider.value} OAuth not configured - missing client id")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{e}. Set the client credentials first.",
        )
    return RedirectResponse(url=auth_url)


@router.get("/{provider}/callback", response_model=ConnectionStatus)
async def oauth_callback(
    provider: Provider,
    code: Optional[str] = Query(None, description="Authorization code"),
    state: Optional[str] = Query(None, description="State forwarded by the relay"),
    error: Optional[str] = Query(None, description="Error from the provider"),
    error_description: Optional[str] = Query(None, description="Error details"),
    oauth_client: OAuthClient = Depends(get_oauth_client),
):
    """
    Handle the OAuth callback forwarded by the redirect relay.

    Returns:
        ConnectionStatus after the tokens are stored

    Raises:
        400: Provider error, missing code or failed exchange
    """
    if error:
        logger.warning(f"{provider.value} OAuth error: {error} - {error_description}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{provider.value} authorization failed: {error_description or error}",
        )

    try:
        connection = await oauth_client.handle_callback(provider, code, state)
    except AuthError as e:
        raise HTTPException(
            status_code=_auth_error_status(e),
            detail=_auth_error_message(provider, e),
        )

    logger.info(f"{provider.value} connected")
    return ConnectionStatus.from_connection(connection, message="Connected")


@router.put(
    "/{provider}/credentials",
    response_model=ConnectionStatus,
    dependencies=[Depends(require_api_token)],
)
def set_credentials(
    provider: Provider,
    body: CredentialsIn,
    token_store: TokenStore = Depends(get_token_store),
):
    """Store client credentials for a provider. Existing tokens are kept."""
    connection = token_store.set_credentials(
        provider,
        client_id=body.client_id,
        client_secret=body.client_secret,
        tenant=body.tenant,
    )
    return ConnectionStatus.from_connection(connection)


@router.get(
    "/{provider}/status",
    response_model=ConnectionStatus,
    dependencies=[Depends(require_api_token)],
)
def connection_status(
    provider: Provider,
    token_store: TokenStore = Depends(get_token_store),
):
    return ConnectionStatus.from_connection(token_store.get(provider))


@router.delete(
    "/{provider}",
    response_model=ConnectionStatus,
    dependencies=[Depends(require_api_token)],
)
async def disconnect(
    provider: Provider,
    oauth_client: OAuthClient = Depends(get_oauth_client),
):
    """
    Disconnect a provider.

    Revokes the token at the provider when supported and clears the stored
    tokens. Client credentials are kept so the user can re-authorize.
    """
    connection = await oauth_client.disconnect(provider)
    return ConnectionStatus.from_connection(connection, message="Disconnected")
