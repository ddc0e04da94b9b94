"""Redis look-aside cache for read-heavy class pages."""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Optional

import redis

logger = logging.getLogger(__name__)


def class_key(class_id: int) -> str:
    return f"classes:{class_id}"


def announcements_key(class_id: int) -> str:
    return f"announcement:{class_id}"


class LookAsideCache:
    """JSON values with a TTL. Writers invalidate keys; nothing updates in place.

    Redis outages are logged and behave like misses. A cache built without a
    client is disabled.
    """

    def __init__(self, redis_client: Optional[redis.Redis] = None, ttl_seconds: int = 600):
        self._client = redis_client
        self._ttl_seconds = ttl_seconds

    @classmethod
    def from_url(cls, redis_url: str, ttl_seconds: int = 600) -> "LookAsideCache":
        if not redis_url:
            logger.warning("Look-aside cache disabled: REDIS_URL not configured")
            return cls(None, ttl_seconds)
        return cls(redis.Redis.from_url(redis_url, decode_responses=True), ttl_seconds)

    @property
    def enabled(self) -> bool:
        return self._client is not None

    def get_json(self, key: str) -> Optional[Any]:
        if not self.enabled:
            return None
        try:
            data = self._client.get(key)
        except redis.RedisError as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return None
        if not data:
            return None
        return json.loads(data)

    def set_json(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        if not self.enabled:
            return
        try:
            self._client.set(key, json.dumps(value), ex=ttl_seconds or self._ttl_seconds)
        except redis.RedisError as e:
            logger.warning(f"Cache write failed for {key}: {e}")

    def invalidate(self, *keys: str) -> None:
        if not self.enabled or not keys:
            return
        try:
            self._client.delete(*keys)
        except redis.RedisError as e:
            logger.error(f"Cache invalidation failed for {', '.join(keys)}: {e}")

    def get_or_load(self, key: str, loader: Callable[[], Any]) -> Any:
        cached = self.get_json(key)
        if cached is not None:
            return cached
        value = loader()
        self.set_json(key, value)
        return value

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
