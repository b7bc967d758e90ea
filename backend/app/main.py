"""
Analytics Proxy - forwards page views, events and sessions to the
analytics API with the real visitor IP, and re-serves the tracking scripts.
"""

from contextlib import asynccontextmanager
from typing import List, Optional

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from app.config import Settings, settings, validate_proxy_settings
from app.logging_config import log_client_verification_failed, log_snippets, setup_logging
from app.routers import health, tracking
from app.services.analytics import AnalyticsClient, AnalyticsError, build_clients
from app.services.client_ip import ClientIPResolver
from app.services.scripts import ScriptCache


async def verify_clients(clients: List[AnalyticsClient]) -> None:
    """Fail startup if a client id/secret pair is rejected upstream"""
    for client in clients:
        if not client.client_id:
            continue
        try:
            await client.domain()
        except (AnalyticsError, httpx.HTTPError) as e:
            log_client_verification_failed(client.client_id, e)
            raise


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    active_settings: Settings = app.state.settings

    # Setup logging
    setup_logging(active_settings.LOG_LEVEL)

    # Startup
    try:
        await verify_clients(app.state.analytics_clients)
        log_snippets(tracking.embed_snippets(active_settings))

        yield
    finally:
        # Shutdown
        for client in app.state.analytics_clients:
            await client.close()
        await app.state.script_cache.close()


def create_app(active_settings: Optional[Settings] = None) -> FastAPI:
    """
    Application factory

    Raises ConfigurationError for invalid settings, unknown IP headers or
    malformed trusted subnets, so a bad configuration never serves traffic.
    """
    active_settings = active_settings or settings
    validate_proxy_settings(active_settings)

    app = FastAPI(
        title="Analytics Proxy",
        description="Reverse proxy for web analytics",
        version="1.0.0",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan
    )

    # Process-wide, read-only state
    app.state.settings = active_settings
    app.state.resolver = ClientIPResolver.from_settings(active_settings)
    app.state.analytics_clients = build_clients(active_settings)
    app.state.script_cache = ScriptCache(
        active_settings.SCRIPT_BASE_URL,
        ttl_seconds=active_settings.SCRIPT_TTL_SECONDS,
        timeout=active_settings.REQUEST_TIMEOUT_SECONDS,
    )

    # Scripts are compressed for browsers that accept it
    app.add_middleware(GZipMiddleware, minimum_size=500)

    # CORS - tracking scripts run on any site
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        max_age=86400,
    )

    # Register routers
    app.include_router(health.router, tags=["health"])
    app.include_router(tracking.build_router(active_settings), tags=["tracking"])

    return app


app = create_app()
