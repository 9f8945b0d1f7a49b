"""
OAuth Client - authorization code + PKCE flow for Google and Microsoft.

This client owns the whole token lifecycle of a provider Connection:

1. authorize()        → build the consent URL, remember verifier + nonce
2. handle_callback()  → exchange the code for tokens
3. access_token()     → hand out a bearer token, refreshing before expiry
4. revoke()           → best-effort token revocation at the provider
5. disconnect()       → revoke and clear the stored tokens

Redirects go through a fixed relay URI owned by the hosting platform. The
relay forwards code and state to the URL carried inside `state`, which is
why `state` holds this service's callback URL plus a nonce.

State mismatch policy:
======================
The relay does not always round-trip `state` faithfully, so a nonce
mismatch on callback is logged and the exchange proceeds anyway. The code
is still bound to our PKCE verifier, which the relay never sees. This
trade-off is recorded in DESIGN.md for security review.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple
from urllib.parse import parse_qs, unquote, urlencode, urlparse

import httpx
from pydantic import ValidationError

from calswitch.environments.base import (
    ExchangeFailed,
    MissingCode,
    NotConfiguredError,
    ProviderError,
    TokenUnavailable,
)
from calswitch.environments.oauth.pkce import challenge_for, generate_nonce, generate_verifier
from calswitch.environments.oauth.providers import PROFILES, ProviderProfile
from calswitch.environments.oauth.schemas import TokenResponse
from calswitch.models import Connection, Provider
from calswitch.services.token_store import TokenStore


logger = logging.getLogger("calswitch.oauth")


Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


class OAuthClient:
    """
    OAuth 2.0 client shared by both providers.

    Provider differences (endpoints, scopes, extra parameters) come from
    the ProviderProfile table; every method takes the Provider enum.

    Example Usage:
        client = OAuthClient(token_store, redirect_uri=RELAY, callback_base_url=BASE)

        url = client.authorize(Provider.GOOGLE)
        # user consents, relay calls /oauth/google/callback?code=...&state=...
        await client.handle_callback(Provider.GOOGLE, code, state)

        token = await client.access_token(Provider.GOOGLE)
    """

    def __init__(
        self,
        token_store: TokenStore,
        redirect_uri: str,
        callback_base_url: str,
        timeout: float = 15.0,
        refresh_leeway_seconds: int = 60,
        expiry_margin_seconds: int = 60,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Clock = _utcnow,
    ):
        """
        Initialize the OAuth client.

        Args:
            token_store: Where Connections are read from and written to
            redirect_uri: Fixed relay URI registered at the providers
            callback_base_url: Public base URL of this service
            timeout: Per-request timeout in seconds
            refresh_leeway_seconds: Refresh when expiry is closer than this
            expiry_margin_seconds: Subtracted from expires_in on every grant
            transport: Optional httpx transport (tests use MockTransport)
            clock: Source of "now"
        """
        self.token_store = token_store
        self.redirect_uri = redirect_uri
        self.callback_base_url = callback_base_url.rstrip("/")
        self.timeout = timeout
        self.refresh_leeway_ms = refresh_leeway_seconds * 1000
        self.expiry_margin_seconds = expiry_margin_seconds
        self._transport = transport
        self._clock = clock

    # -------------------------------------------------------------------------
    # AUTHORIZATION URL
    # -------------------------------------------------------------------------

    def callback_url(self, provider: Provider) -> str:
        return f"{self.callback_base_url}/oauth/{provider.value}/callback"

    def authorize(self, provider: Provider) -> str:
        """
        Generate the provider authorization URL and start a new attempt.

        A fresh PKCE verifier and nonce are stored on the Connection,
        replacing any attempt still in flight for this provider.

        Returns:
            Full authorization URL to redirect the user to

        Raises:
            NotConfiguredError: If no client id is configured
        """
        profile = PROFILES[provider]
        connection = self.token_store.get(provider)
        if not connection.client_id:
            raise NotConfiguredError(f"{provider.value} client id is not configured")

        verifier = generate_verifier()
        nonce = generate_nonce()
        self.token_store.save(
            connection.model_copy(update={"pkce_verifier": verifier, "oauth_nonce": nonce})
        )

        params = {
            "client_id": connection.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": profile.scope,
            "state": f"{self.callback_url(provider)}?{urlencode({'nonce': nonce})}",
            "code_challenge": challenge_for(verifier),
            "code_challenge_method": "S256",
        }
        params.update(profile.authorize_extras)

        logger.info(f"Starting {provider.value} authorization")
        return f"{profile.authorize_endpoint(connection.tenant)}?{urlencode(params)}"

    # -------------------------------------------------------------------------
    # CALLBACK / TOKEN EXCHANGE
    # -------------------------------------------------------------------------

    async def handle_callback(
        self,
        provider: Provider,
        code: Optional[str],
        state: Optional[str] = None,
    ) -> Connection:
        """
        Exchange the authorization code for tokens and store them.

        Args:
            provider: Provider the callback belongs to
            code: Authorization code from the redirect
            state: State parameter as received from the relay

        Returns:
            The updated Connection

        Raises:
            MissingCode: No code in the callback
            ExchangeFailed: Token endpoint answered non-200 (or was unreachable)
            ProviderError: Token endpoint returned a structured OAuth error
        """
        if not code or not code.strip():
            logger.warning(f"{provider.value} callback without authorization code")
            raise MissingCode()

        profile = PROFILES[provider]

        async with self.token_store.lock(provider):
            connection = self.token_store.get(provider)
            self._check_state(connection, state)

            form = {
                "grant_type": "authorization_code",
                "code": code.strip(),
                "client_id": connection.client_id,
                "client_secret": connection.client_secret,
                "redirect_uri": self.redirect_uri,
            }
            if connection.pkce_verifier:
                form["code_verifier"] = connection.pkce_verifier
            if profile.send_scope_to_token_endpoint:
                form["scope"] = profile.scope

            logger.info(f"Exchanging {provider.value} authorization code for tokens")
            try:
                status_code, token = await self._post_token(profile, connection, form)
            except httpx.RequestError as e:
                logger.error(f"Network error during {provider.value} token exchange: {e}")
                raise ExchangeFailed(0, str(e))

            if status_code != 200:
                detail = token.error_description or token.error or ""
                logger.error(f"{provider.value} token exchange failed: HTTP {status_code} {detail}")
                raise ExchangeFailed(status_code, detail)
            if token.error:
                logger.error(f"{provider.value} token endpoint error: {token.error}")
                raise ProviderError(token.error, token.error_description or "")
            if not token.access_token:
                raise ExchangeFailed(status_code, "response did not include an access_token")

            now = self._clock()
            updated = connection.model_copy(
                update={
                    "access_token": token.access_token,
                    "refresh_token": token.refresh_token or connection.refresh_token,
                    "expires_at_ms": self._expires_at_ms(now, token),
                    "scope": token.scope or connection.scope,
                    "pkce_verifier": None,
                    "oauth_nonce": None,
                    "last_authorized_at": now,
                }
            )
            self.token_store.save(updated)

        logger.info(
            f"Stored {provider.value} tokens",
            extra={
                "has_refresh_token": updated.refresh_token is not None,
                "expires_in": token.lifetime_seconds(),
            },
        )
        return updated

    def _check_state(self, connection: Connection, state: Optional[str]) -> None:
        """Log, but do not reject, a nonce mismatch (see module docstring)."""
        expected = connection.oauth_nonce
        received = _nonce_from_state(state)
        if expected and received == expected:
            return
        logger.warning(
            f"{connection.provider.value} callback state mismatch (non-fatal): "
            f"expected nonce {'present' if expected else 'absent'}, "
            f"received {'a different nonce' if received else 'no nonce'}"
        )

    # -------------------------------------------------------------------------
    # ACCESS TOKEN / REFRESH
    # -------------------------------------------------------------------------

    async def access_token(self, provider: Provider) -> str:
        """
        Return a bearer token, refreshing it shortly before expiry.

        When the refresh fails, the stale token is returned: callers treat it
        as best effort and handle a later 401 from the resource API.

        Raises:
            TokenUnavailable: No access token could be produced at all
        """
        profile = PROFILES[provider]

        async with self.token_store.lock(provider):
            connection = self.token_store.get(provider)
            now = self._clock()

            if connection.access_token and connection.expires_at_ms > _epoch_ms(now) + self.refresh_leeway_ms:
                return connection.access_token

            if not connection.refresh_token:
                if connection.access_token:
                    return connection.access_token
                raise TokenUnavailable(f"{provider.value} has no access token")

            form = {
                "grant_type": "refresh_token",
                "refresh_token": connection.refresh_token,
                "client_id": connection.client_id,
                "client_secret": connection.client_secret,
            }
            if profile.send_scope_to_token_endpoint:
                form["scope"] = profile.scope

            logger.info(f"Refreshing {provider.value} access token")
            try:
                status_code, token = await self._post_token(profile, connection, form)
            except httpx.RequestError as e:
                logger.warning(f"Network error refreshing {provider.value} token: {e}")
                return self._stale(connection)

            if status_code != 200 or not token.access_token:
                logger.warning(
                    f"{provider.value} refresh failed: HTTP {status_code} {token.error or ''}".rstrip()
                )
                return self._stale(connection)

            updated = connection.model_copy(
                update={
                    "access_token": token.access_token,
                    "refresh_token": token.refresh_token or connection.refresh_token,
                    "expires_at_ms": self._expires_at_ms(now, token),
                    "scope": token.scope or connection.scope,
                }
            )
            self.token_store.save(updated)

        logger.debug(f"Refreshed {provider.value} token")
        return updated.access_token

    def _stale(self, connection: Connection) -> str:
        if connection.access_token:
            return connection.access_token
        raise TokenUnavailable(f"{connection.provider.value} refresh failed and no token is cached")

    def _expires_at_ms(self, now: datetime, token: TokenResponse) -> int:
        lifetime = token.lifetime_seconds() - self.expiry_margin_seconds
        return _epoch_ms(now) + lifetime * 1000

    # -------------------------------------------------------------------------
    # REVOCATION / DISCONNECT
    # -------------------------------------------------------------------------

    async def revoke(self, provider: Provider) -> bool:
        """
        Best-effort revocation of the stored token at the provider.

        Microsoft has no token revocation endpoint for this flow, so this is
        a no-op there. Never raises.

        Returns:
            True if the provider confirmed the revocation
        """
        profile = PROFILES[provider]
        connection = self.token_store.get(provider)
        token = connection.refresh_token or connection.access_token
        if not profile.revoke_url or not token:
            return False

        try:
            async with self._http() as client:
                response = await client.post(profile.revoke_url, params={"token": token})
        except httpx.RequestError as e:
            logger.warning(f"Network error during {provider.value} token revocation: {e}")
            return False

        if response.status_code == 200:
            logger.info(f"Revoked {provider.value} token")
            return True
        logger.warning(f"{provider.value} token revocation returned status {response.status_code}")
        return False

    async def disconnect(self, provider: Provider) -> Connection:
        """Revoke (best effort) and clear all token and PKCE fields. Idempotent."""
        connection = self.token_store.get(provider)
        if not (connection.access_token or connection.refresh_token or connection.pkce_verifier):
            return connection

        await self.revoke(provider)
        async with self.token_store.lock(provider):
            cleared = self.token_store.save(self.token_store.get(provider).cleared())
        logger.info(f"Disconnected {provider.value}")
        return cleared

    # -------------------------------------------------------------------------
    # HTTP
    # -------------------------------------------------------------------------

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self.timeout)

    async def _post_token(
        self,
        profile: ProviderProfile,
        connection: Connection,
        form: dict,
    ) -> Tuple[int, TokenResponse]:
        """POST a form-encoded token request and parse the JSON body."""
        async with self._http() as client:
            response = await client.post(
                profile.token_endpoint(connection.tenant),
                data=form,
                headers={"Accept": "application/json"},
            )

        try:
            body = response.json() if response.content else {}
        except ValueError:
            body = {"error": "invalid_response", "error_description": response.text[:200]}
        if not isinstance(body, dict):
            body = {}
        try:
            token = TokenResponse.model_validate(body)
        except ValidationError as e:
            logger.warning(f"Unexpected token response shape from {profile.provider.value}: {e}")
            token = TokenResponse(error="invalid_response", error_description="malformed token response")
        return response.status_code, token


def _nonce_from_state(state: Optional[str]) -> Optional[str]:
    """Pull the nonce out of a raw or URL-encoded state value."""
    if not state:
        return None
    for candidate in (state, unquote(state)):
        values = parse_qs(urlparse(candidate).query).get("nonce")
        if values:
            return values[0]
    return None
