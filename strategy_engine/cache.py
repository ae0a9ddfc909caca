from __future__ import annotations

import logging
import sqlite3
import time
from typing import Any, Callable, Mapping, Optional

from .constants import CACHE_TTL_SECONDS
from .models import CacheEntry
from .storage import Storage

logger = logging.getLogger("strategy_engine.cache")

Fetcher = Callable[[str, Mapping[str, Any]], Optional[Any]]


def request_key(endpoint: str, params: Mapping[str, Any]) -> str:
    """Deterministic cache key: endpoint plus params sorted by name.

    Credentials must not be part of ``params``.
    """
    parts = [f"{k}={params[k]}" for k in sorted(params)]
    return endpoint + ":" + "&".join(parts)


class ResponseCache:
    """Read-through cache in front of the market data provider.

    Successful responses are stored for ``ttl_seconds``; failures (``None``)
    are never stored, so the next caller retries the provider.
    """

    def __init__(
        self,
        storage: Storage,
        ttl_seconds: int = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.storage = storage
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    def get_or_fetch(self, endpoint: str, params: Mapping[str, Any], fetcher: Fetcher) -> Optional[Any]:
        key = request_key(endpoint, params)
        now_ts = int(self.clock())
        cached = self.storage.get_cache_entry(key, now_ts)
        if cached is not None:
            logger.debug("cache_hit key=%s expires_at=%d", key, cached.expires_at)
            return cached.payload

        logger.debug("cache_miss key=%s", key)
        payload = fetcher(endpoint, params)
        if payload is None:
            return None

        try:
            self.storage.upsert_cache_entry(
                CacheEntry(request_key=key, payload=payload, expires_at=now_ts + self.ttl_seconds)
            )
        except sqlite3.Error as exc:
            logger.warning("cache_write_failed key=%s error=%s", key, str(exc))
        return payload

    def purge_expired(self) -> int:
        removed = self.storage.purge_expired_cache(int(self.clock()))
        if removed:
            logger.info("cache_purged entries=%d", removed)
        return removed
