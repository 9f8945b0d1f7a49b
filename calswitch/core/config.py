"""
Configuration module - centralized settings for the calendar switch bridge.
Uses pydantic-settings to load values from environment variables and .env file.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Pydantic-settings automatically:
    1. Reads from environment variables (highest priority)
    2. Falls back to .env file values
    3. Uses default values if neither exists

    To override in production, set environment variables:
        export GOOGLE_CLIENT_ID=1234.apps.googleusercontent.com
        export CALLBACK_BASE_URL=https://bridge.example.com
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ---------------------------------------------------------------------------
    # APPLICATION SETTINGS
    # ---------------------------------------------------------------------------
    APP_NAME: str = "Calendar Switch Bridge"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # API_TOKEN: Shared bearer token expected from the device/UI collaborator.
    # Empty disables the check (local development only).
    API_TOKEN: str = ""

    # START_POLLER: Run the background poll loop inside the app lifespan.
    # Tests turn this off and drive ticks explicitly.
    START_POLLER: bool = True

    # ---------------------------------------------------------------------------
    # OAUTH CLIENT CREDENTIALS
    # ---------------------------------------------------------------------------
    # Google Cloud Console: OAuth client of type "Web application".
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""

    # Microsoft Entra app registration.
    # Tenant can be "common", "organizations", "consumers" or a tenant id.
    MICROSOFT_CLIENT_ID: str = ""
    MICROSOFT_CLIENT_SECRET: str = ""
    MICROSOFT_TENANT: str = "common"

    # OAUTH_REDIRECT_URI: The fixed relay endpoint registered at both providers.
    # The relay forwards code/state to the URL carried in the state parameter.
    OAUTH_REDIRECT_URI: str = "https://cloud.hubitat.com/oauth/stateredirect"

    # CALLBACK_BASE_URL: Public base URL of this service, embedded in the state
    # parameter so the relay can forward to /oauth/{provider}/callback.
    CALLBACK_BASE_URL: str = "http://localhost:8000"

    # ---------------------------------------------------------------------------
    # TOKEN LIFECYCLE
    # ---------------------------------------------------------------------------
    # Refresh when the cached token expires within this many seconds.
    TOKEN_REFRESH_LEEWAY_SECONDS: int = 60
    # Subtracted from expires_in on every grant.
    TOKEN_EXPIRY_MARGIN_SECONDS: int = 60

    # ---------------------------------------------------------------------------
    # POLLING
    # ---------------------------------------------------------------------------
    # IANA timezone used for all-day events and the Graph Prefer header.
    TIMEZONE: str = "UTC"

    # How often the scheduler ticks (clamped to 30..3600 seconds).
    POLL_INTERVAL_SECONDS: int = 60

    # Minimum time between provider fetches; ticks in between reuse the cache.
    FETCH_INTERVAL_MINUTES: int = 5

    FETCH_LOOKBACK_HOURS: int = 24
    FETCH_LOOKAHEAD_HOURS: int = 168

    # Per HTTP call timeout (token exchange, refresh, event fetch).
    HTTP_TIMEOUT_SECONDS: float = 15.0

    # Minimum gap between on-demand refresh requests from the UI.
    REQUEST_DEBOUNCE_SECONDS: float = 3.0

    # ---------------------------------------------------------------------------
    # STORAGE
    # ---------------------------------------------------------------------------
    # Flat JSON key-value file. Empty string keeps everything in memory.
    STATE_FILE: str = "data/calswitch_state.json"


# ---------------------------------------------------------------------------
# GLOBAL SETTINGS INSTANCE
# ---------------------------------------------------------------------------
# Usage: from calswitch.core.config import settings
settings = Settings()
