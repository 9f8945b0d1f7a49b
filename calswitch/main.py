"""
Main application entry point - FastAPI app instance and configuration.
This is where the ASGI application and its service objects are created.
Run with: uvicorn calswitch.main:app --reload
"""

from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Callable, Optional

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from calswitch import __version__
from calswitch.core.config import Settings, settings
from calswitch.core.logging import configure_logging
from calswitch.environments.google import GoogleCalendarAdapter
from calswitch.environments.microsoft import MicrosoftCalendarAdapter
from calswitch.environments.oauth import OAuthClient
from calswitch.models import Provider
from calswitch.routers import oauth, poll, switches
from calswitch.services.scheduler import PollScheduler
from calswitch.services.storage import KeyValueStore
from calswitch.services.switch_registry import SwitchRegistry
from calswitch.services.token_store import TokenStore


def create_app(
    app_settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> FastAPI:
    """
    Build the application and wire its services.

    Args:
        app_settings: Settings override (defaults to the global settings)
        transport: httpx transport for every outbound call (tests)
        clock: Source of "now" for the OAuth client and scheduler (tests)
    """
    app_settings = app_settings or settings
    logger = configure_logging(app_settings.LOG_LEVEL)
    clock_kwargs = {"clock": clock} if clock else {}

    # ---------------------------------------------------------------------------
    # SERVICES
    # ---------------------------------------------------------------------------
    store = KeyValueStore(app_settings.STATE_FILE or None)
    token_store = TokenStore(
        store,
        credentials={
            Provider.GOOGLE: {
                "client_id": app_settings.GOOGLE_CLIENT_ID,
                "client_secret": app_settings.GOOGLE_CLIENT_SECRET,
            },
            Provider.MICROSOFT: {
                "client_id": app_settings.MICROSOFT_CLIENT_ID,
                "client_secret": app_settings.MICROSOFT_CLIENT_SECRET,
                "tenant": app_settings.MICROSOFT_TENANT,
            },
        },
    )
    oauth_client = OAuthClient(
        token_store,
        redirect_uri=app_settings.OAUTH_REDIRECT_URI,
        callback_base_url=app_settings.CALLBACK_BASE_URL,
        timeout=app_settings.HTTP_TIMEOUT_SECONDS,
        refresh_leeway_seconds=app_settings.TOKEN_REFRESH_LEEWAY_SECONDS,
        expiry_margin_seconds=app_settings.TOKEN_EXPIRY_MARGIN_SECONDS,
        transport=transport,
        **clock_kwargs,
    )
    adapter_kwargs = {
        "timezone": app_settings.TIMEZONE,
        "timeout": app_settings.HTTP_TIMEOUT_SECONDS,
        "transport": transport,
    }
    registry = SwitchRegistry(store)
    scheduler = PollScheduler(
        registry,
        token_store,
        adapters={
            Provider.GOOGLE: GoogleCalendarAdapter(oauth_client, **adapter_kwargs),
            Provider.MICROSOFT: MicrosoftCalendarAdapter(oauth_client, **adapter_kwargs),
        },
        fetch_interval=timedelta(minutes=app_settings.FETCH_INTERVAL_MINUTES),
        poll_interval=timedelta(seconds=app_settings.POLL_INTERVAL_SECONDS),
        lookback=timedelta(hours=app_settings.FETCH_LOOKBACK_HOURS),
        lookahead=timedelta(hours=app_settings.FETCH_LOOKAHEAD_HOURS),
        request_debounce=timedelta(seconds=app_settings.REQUEST_DEBOUNCE_SECONDS),
        **clock_kwargs,
    )

    # ---------------------------------------------------------------------------
    # LIFESPAN
    # ---------------------------------------------------------------------------
    # The poller runs inside the event loop serving requests and is cancelled
    # on shutdown.
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"{app_settings.APP_NAME} {__version__} starting")
        if app_settings.START_POLLER:
            scheduler.start()
        yield
        await scheduler.stop()

    app = FastAPI(
        title=app_settings.APP_NAME,
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.state.settings = app_settings
    app.state.store = store
    app.state.token_store = token_store
    app.state.oauth_client = oauth_client
    app.state.registry = registry
    app.state.scheduler = scheduler

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ---------------------------------------------------------------------------
    # REGISTER ROUTERS
    # ---------------------------------------------------------------------------
    # oauth.router: /oauth/{provider}/... connect and disconnect providers
    # switches.router: /switches CRUD, state, refresh, apply
    # poll.router: /poll manual tick
    app.include_router(oauth.router)
    app.include_router(switches.router)
    app.include_router(poll.router)

    @app.get("/health", tags=["health"])
    def health_check():
        """
        Liveness check.

        Returns:
            {"status": "ok", "poller_running": bool}
        """
        return {"status": "ok", "poller_running": scheduler.running}

    return app


app = create_app()
