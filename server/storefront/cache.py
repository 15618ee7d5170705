"""
Cache for rendered (published) storefront themes.

Supports an in-memory fallback for tests/local runs and a Redis-backed
implementation for production. Publishing a theme invalidates the entry so
the next storefront request sees the new published state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Protocol
import json
import logging

import redis
from redis import exceptions as redis_exceptions

from storefront.errors import UpstreamError

logger = logging.getLogger(__name__)


class RenderCache(Protocol):
    """Minimal cache interface keyed by store id."""

    def get(self, store_id: str) -> Optional[dict]:
        ...

    def set(self, store_id: str, view: dict) -> None:
        ...

    def invalidate(self, store_id: str) -> None:
        ...


@dataclass
class InMemoryRenderCache:
    """Dict-backed cache for testing/dev."""

    entries: dict[str, dict] = field(default_factory=dict)

    def get(self, store_id: str) -> Optional[dict]:
        view = self.entries.get(store_id)
        return json.loads(json.dumps(view)) if view is not None else None

    def set(self, store_id: str, view: dict) -> None:
        self.entries[store_id] = json.loads(json.dumps(view))

    def invalidate(self, store_id: str) -> None:
        self.entries.pop(store_id, None)


@dataclass
class RedisRenderCache:
    """Redis-backed cache storing JSON documents with a TTL."""

    url: str
    key_prefix: str = "storefront:theme"
    ttl_seconds: int = 300

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url)

    def _key(self, store_id: str) -> str:
        return f"{self.key_prefix}:{store_id}"

    def _reconnect(self) -> None:
        # Connection resets can happen on managed Redis.
        self.client = redis.Redis.from_url(self.url)

    def get(self, store_id: str) -> Optional[dict]:
        try:
            raw = self.client.get(self._key(store_id))
        except redis_exceptions.ConnectionError:
            logger.warning("Redis unavailable, treating %s as a cache miss", store_id)
            self._reconnect()
            return None
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, store_id: str, view: dict) -> None:
        try:
            self.client.set(self._key(store_id), json.dumps(view), ex=self.ttl_seconds)
        except redis_exceptions.ConnectionError:
            logger.warning("Redis unavailable, not caching theme for %s", store_id)
            self._reconnect()

    def invalidate(self, store_id: str) -> None:
        try:
            self.client.delete(self._key(store_id))
        except redis_exceptions.ConnectionError as exc:
            # A stale entry would outlive the publish until its TTL.
            logger.error("Redis unavailable, could not invalidate theme for %s", store_id)
            self._reconnect()
            raise UpstreamError("Could not invalidate the storefront cache") from exc
