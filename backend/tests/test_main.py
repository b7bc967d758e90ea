"""
Tests for application startup and shutdown
"""

import httpx
import pytest

from app.main import lifespan, verify_clients
from app.services.analytics import AnalyticsClient, AnalyticsError


def make_client(client_id: str, handler) -> AnalyticsClient:
    return AnalyticsClient(
        client_id,
        "secret",
        base_url="https://analytics.test",
        request_retries=2,
        retry_delay=0,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_verify_clients_rejects_unknown_credentials():
    client = make_client("client-id", lambda request: httpx.Response(401))

    with pytest.raises(AnalyticsError):
        await verify_clients([client])
    await client.close()


@pytest.mark.asyncio
async def test_verify_clients_skips_access_token_clients():
    requests = []
    client = make_client("", lambda request: requests.append(request) or httpx.Response(500))

    await verify_clients([client])

    assert requests == []
    await client.close()


@pytest.mark.asyncio
async def test_lifespan_verifies_and_closes_clients(make_app, upstream):
    app = make_app()
    app.state.analytics_clients = [
        make_client("client-id", upstream.handler),
    ]

    async with lifespan(app):
        assert [r.url.path for r in upstream.requests] == ["/api/v1/token", "/api/v1/domain"]

    assert app.state.analytics_clients[0]._http.is_closed
    assert app.state.script_cache._http.is_closed


@pytest.mark.asyncio
async def test_lifespan_closes_clients_when_verification_fails(make_app):
    app = make_app()
    app.state.analytics_clients = [
        make_client("client-id", lambda request: httpx.Response(401)),
    ]

    with pytest.raises(AnalyticsError):
        async with lifespan(app):
            pass

    assert app.state.analytics_clients[0]._http.is_closed
    assert app.state.script_cache._http.is_closed
