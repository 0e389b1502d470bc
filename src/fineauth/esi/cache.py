"""TTL cache for ESI GET responses, keyed by URL.

Each entry carries its own expiry so a per-call TTL can override the
default. Concurrent misses for the same URL may both hit the network; the
last response stored wins.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx
from cachetools import TLRUCache
from structlog import get_logger

from fineauth.exceptions import UpstreamError


logger = get_logger(__name__)

DEFAULT_CACHE_MAXSIZE = 2048


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    expires_at: float


def _entry_expiry(_key: str, entry: CacheEntry, _now: float) -> float:
    return entry.expires_at


class ExternalCallCache:
    """Memoizes successful JSON GET responses until their expiry."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        default_ttl_seconds: float = 45,
        timer: Callable[[], float] = time.monotonic,
        maxsize: int = DEFAULT_CACHE_MAXSIZE,
    ):
        self._http_client = http_client
        self.default_ttl_seconds = default_ttl_seconds
        self._timer = timer
        self._entries: TLRUCache[str, CacheEntry] = TLRUCache(
            maxsize=maxsize, ttu=_entry_expiry, timer=timer
        )

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, url: str) -> Any | None:
        """Return a live cached value without fetching."""
        entry = self._entries.get(url)
        return entry.value if entry is not None else None

    async def fetch_cached(
        self,
        url: str,
        ttl_seconds: float | None = None,
        cache: bool = True,
    ) -> Any:
        """GET a JSON document, serving it from cache while it is fresh.

        Args:
            url: Absolute URL, used verbatim as the cache key
            ttl_seconds: Override of the default TTL for the stored entry
            cache: When False, neither read nor store the cache

        Raises:
            UpstreamError: Non-2xx response
            httpx.HTTPError: Transport failure
        """
        if cache:
            entry = self._entries.get(url)
            if entry is not None:
                logger.debug("esi_cache_hit", url=url)
                return entry.value

        response = await self._http_client.get(url)
        if not response.is_success:
            raise UpstreamError(
                f"ESI status error: {response.status_code}",
                upstream_status=response.status_code,
                response_text=response.text[:500],
            )

        value = response.json()
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        if cache and ttl > 0:
            self._entries[url] = CacheEntry(value=value, expires_at=self._timer() + ttl)
        return value

    def invalidate(self, url: str) -> None:
        self._entries.pop(url, None)

    def clear(self) -> None:
        self._entries.clear()
