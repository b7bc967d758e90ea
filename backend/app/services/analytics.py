"""
Client for the upstream analytics API.

Clients with an id authenticate with id and secret and refresh their
access token whenever a request fails. Clients without an id use the
secret directly as a single access token.
"""

import asyncio
from datetime import datetime, timezone
from typing import Dict, List, Optional

import httpx
from pydantic import TypeAdapter, ValidationError

from app.config import Settings
from app.logging_config import log_client_added
from app.schemas.analytics import Domain, Event, PageView, TokenResponse

DEFAULT_BASE_URL = "https://api.pirsch.io"

AUTHENTICATION_ENDPOINT = "/api/v1/token"
HIT_ENDPOINT = "/api/v1/hit"
EVENT_ENDPOINT = "/api/v1/event"
SESSION_ENDPOINT = "/api/v1/session"
DOMAIN_ENDPOINT = "/api/v1/domain"

_domain_list = TypeAdapter(List[Domain])


class AnalyticsError(Exception):
    """Delivery to the analytics API failed"""


class AnalyticsAPIError(AnalyticsError):
    """The analytics API answered with a non-200 status"""

    def __init__(self, url: str, status_code: int, body: str = ""):
        self.url = url
        self.status_code = status_code
        self.body = body
        message = f"{url}: received status code {status_code} on request"
        if body:
            message = f"{message}: {body}"
        super().__init__(message)


class AnalyticsClient:
    def __init__(
        self,
        client_id: str,
        client_secret: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 5.0,
        request_retries: int = 5,
        retry_delay: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = client_id
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.request_retries = max(request_retries, 1)
        self.retry_delay = retry_delay
        self._client_secret = client_secret
        self._access_token = "" if client_id else client_secret
        self._expires_at: Optional[datetime] = None
        self._lock = asyncio.Lock()
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
        )

    def _token_expired(self) -> bool:
        return self._expires_at is not None and self._expires_at <= datetime.now(timezone.utc)

    async def refresh_token(self) -> None:
        async with self._lock:
            self._access_token = ""
            self._expires_at = None
            response = await self._http.post(
                AUTHENTICATION_ENDPOINT,
                json={"client_id": self.client_id, "client_secret": self._client_secret},
            )

            if response.status_code != 200:
                raise AnalyticsAPIError(
                    self.base_url + AUTHENTICATION_ENDPOINT,
                    response.status_code,
                    response.text,
                )

            try:
                token = TokenResponse.model_validate_json(response.content)
            except ValidationError as e:
                raise AnalyticsError(f"invalid token response: {e}") from e

            self._access_token = token.access_token
            expires_at = token.expires_at
            if expires_at is not None and expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=timezone.utc)
            self._expires_at = expires_at

    async def _wait_before_next_request(self, retries_left: int) -> None:
        attempt = self.request_retries - retries_left + 1
        if self.retry_delay > 0:
            await asyncio.sleep(self.retry_delay * attempt)

    async def _refresh_before_retry(self, retries_left: int, first: bool) -> None:
        # No back-off before the very first token request
        if not first:
            await self._wait_before_next_request(retries_left)

        try:
            await self.refresh_token()
        except (AnalyticsError, httpx.HTTPError) as e:
            attempt = self.request_retries - retries_left + 1
            raise AnalyticsError(
                f"error refreshing token (attempt {attempt}/{self.request_retries}): {e}"
            ) from e

    async def _request(self, method: str, path: str, payload: Optional[dict] = None) -> httpx.Response:
        retries_left = self.request_retries
        first = True

        while True:
            # Expiry is only checked before the first refresh of this request
            needs_token = not self._access_token or (first and self._token_expired())
            if self.client_id and retries_left > 0 and needs_token:
                await self._refresh_before_retry(retries_left, first)
                retries_left -= 1
                first = False
                continue

            response = await self._http.request(
                method,
                path,
                json=payload,
                headers={"Authorization": f"Bearer {self._access_token}"},
            )

            # Refresh the access token and retry
            if self.client_id and retries_left > 0 and response.status_code != 200:
                await self._refresh_before_retry(retries_left, first=False)
                retries_left -= 1
                first = False
                continue

            if response.status_code != 200:
                raise AnalyticsAPIError(self.base_url + path, response.status_code, response.text)

            return response

    async def page_view(self, hit: PageView) -> None:
        await self._request("POST", HIT_ENDPOINT, hit.model_dump())

    async def event(
        self,
        name: str,
        duration_seconds: int,
        meta: Optional[Dict[str, str]],
        hit: PageView,
        dnt: bool = False,
    ) -> None:
        if dnt:
            return

        event = Event(
            **hit.model_dump(),
            event_name=name,
            event_duration=duration_seconds,
            event_meta=meta or {},
        )
        await self._request("POST", EVENT_ENDPOINT, event.model_dump())

    async def session(self, hit: PageView, dnt: bool = False) -> None:
        """Keep the visitor's session alive"""
        if dnt:
            return
        await self._request("POST", SESSION_ENDPOINT, hit.model_dump())

    async def domain(self) -> Domain:
        response = await self._request("GET", DOMAIN_ENDPOINT)

        try:
            domains = _domain_list.validate_json(response.content)
        except ValidationError as e:
            raise AnalyticsError(f"invalid domain response: {e}") from e

        if len(domains) != 1:
            raise AnalyticsError("domain not found")
        return domains[0]

    async def close(self) -> None:
        await self._http.aclose()


def build_clients(
    active_settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> List[AnalyticsClient]:
    """One client per configured id/secret pair"""
    clients = []
    for credentials in active_settings.CLIENTS:
        log_client_added(credentials.id, active_settings.BASE_URL)
        clients.append(
            AnalyticsClient(
                credentials.id,
                credentials.secret,
                base_url=active_settings.BASE_URL,
                timeout=active_settings.REQUEST_TIMEOUT_SECONDS,
                request_retries=active_settings.REQUEST_RETRIES,
                retry_delay=active_settings.RETRY_DELAY_SECONDS,
                transport=transport,
            )
        )
    return clients
