"""
Tracking script cache
Scripts are downloaded from upstream and re-served until their TTL expires
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import httpx

from app.logging_config import log_script_download_failed, log_script_refreshed

# How long a stale script is served after a failed refresh before retrying
STALE_RETRY_SECONDS = 60


class ScriptUnavailableError(Exception):
    """A script could not be downloaded and nothing is cached for it"""


@dataclass
class CachedScript:
    content: bytes
    expires_at: float


class ScriptCache:
    """
    Per-file cache of upstream tracking scripts.

    Fresh entries are returned without waiting. Expired entries are
    downloaded again by exactly one request under the lock. If the
    download fails the stale copy is served, and kept for up to
    STALE_RETRY_SECONDS so requests queued on the lock don't retry it.
    """

    def __init__(
        self,
        base_url: str,
        ttl_seconds: int = 3600,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CachedScript] = {}
        self._lock = asyncio.Lock()
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
        )

    def _fresh(self, file: str) -> Optional[bytes]:
        entry = self._entries.get(file)
        if entry is not None and entry.expires_at > self._clock():
            return entry.content
        return None

    async def get(self, file: str) -> bytes:
        content = self._fresh(file)
        if content is not None:
            return content

        async with self._lock:
            # Another request may have refreshed it while we waited
            content = self._fresh(file)
            if content is not None:
                return content
            return await self._download(file)

    async def _download(self, file: str) -> bytes:
        try:
            response = await self._http.get(f"/{file}")
            response.raise_for_status()
        except httpx.HTTPError as e:
            log_script_download_failed(file, e)
            stale = self._entries.get(file)
            if stale is None:
                raise ScriptUnavailableError(file) from e
            stale.expires_at = self._clock() + min(self.ttl_seconds, STALE_RETRY_SECONDS)
            return stale.content

        self._entries[file] = CachedScript(
            content=response.content,
            expires_at=self._clock() + self.ttl_seconds,
        )
        log_script_refreshed(file, len(response.content))
        return response.content

    async def close(self) -> None:
        await self._http.aclose()
