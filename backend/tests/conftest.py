"""
Pytest fixtures for analytics proxy tests
"""

import json
import pytest
from typing import AsyncGenerator, Callable, List

import httpx
from httpx import AsyncClient, ASGITransport
from fastapi import FastAPI

from app.config import ClientCredentials, Settings
from app.main import create_app
from app.services.analytics import AnalyticsClient


def make_settings(**overrides) -> Settings:
    values = {
        "BASE_URL": "https://analytics.test",
        "SCRIPT_BASE_URL": "https://scripts.test",
        "CLIENTS": [],
        "RETRY_DELAY_SECONDS": 0.0,
        "IP_HEADERS_RAW": "",
        "TRUSTED_SUBNETS_RAW": "",
    }
    values.update(overrides)
    return Settings(**values)


class UpstreamRecorder:
    """Stands in for the analytics API via httpx.MockTransport"""

    def __init__(self, status_code: int = 200):
        self.status_code = status_code
        self.requests: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/api/v1/token":
            return httpx.Response(200, json={"access_token": "fresh-token", "expires_at": None})
        if request.url.path == "/api/v1/domain":
            return httpx.Response(200, json=[{"id": "d1", "hostname": "example.com"}])
        return httpx.Response(self.status_code)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def bodies(self, path: str) -> List[dict]:
        return [json.loads(r.content) for r in self.requests if r.url.path == path]


@pytest.fixture
def upstream() -> UpstreamRecorder:
    return UpstreamRecorder()


@pytest.fixture
def make_app(upstream: UpstreamRecorder) -> Callable[..., FastAPI]:
    """Build an app whose analytics clients talk to the upstream recorder."""

    def _make_app(client_count: int = 1, **overrides) -> FastAPI:
        app = create_app(make_settings(**overrides))
        app.state.analytics_clients = [
            AnalyticsClient(
                "",
                f"access-token-{index}",
                base_url="https://analytics.test",
                retry_delay=0,
                transport=upstream.transport,
            )
            for index in range(client_count)
        ]
        return app

    return _make_app


def http_client(app: FastAPI, peer=("123.45.67.89", 1111)) -> AsyncClient:
    """Async HTTP client whose connection appears to come from peer."""
    return AsyncClient(
        transport=ASGITransport(app=app, client=peer),
        base_url="http://test",
    )


@pytest.fixture
async def client(make_app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing endpoints."""
    async with http_client(make_app()) as ac:
        yield ac


@pytest.fixture
def credentials() -> ClientCredentials:
    return ClientCredentials(id="client-id", secret="client-secret")


@pytest.fixture
def settings_factory() -> Callable[..., Settings]:
    return make_settings


@pytest.fixture
def client_for() -> Callable[..., AsyncClient]:
    return http_client
