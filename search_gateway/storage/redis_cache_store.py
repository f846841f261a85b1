# search_gateway/storage/redis_cache_store.py

"""Redis-backed cache store for deployments with several gateway workers."""

import logging
from typing import Any

import redis

from search_gateway.config.settings import Settings
from search_gateway.models.errors import CacheUnavailable
from search_gateway.storage.cache_codec import decode_value, encode_value
from search_gateway.storage.cache_store import CacheStore

logger = logging.getLogger("search_gateway.cache.redis")


class RedisCacheStore(CacheStore):
    """Cache store on a shared Redis instance.

    Keys are namespaced as ``{namespace}:{key}``; expiry is delegated
    to Redis. Every Redis error is re-raised as
    :class:`CacheUnavailable` so the gateway can degrade to a miss.
    """

    def __init__(
        self,
        client: Any | None = None,
        url: str | None = None,
        namespace: str | None = None,
    ) -> None:
        self.namespace = namespace or Settings.REDIS_NAMESPACE
        self.client = client or redis.Redis.from_url(
            url or Settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )

    def _key(self, key: str) -> str:
        """Prefix key with namespace."""
        return f"{self.namespace}:{key}"

    def get(self, key: str) -> Any | None:
        try:
            raw = self.client.get(self._key(key))
        except redis.RedisError as exc:
            raise CacheUnavailable(f"GET {key} failed: {exc}") from exc
        if raw is None:
            return None
        try:
            return decode_value(raw)
        except (ValueError, KeyError, TypeError):
            logger.warning("Dropping undecodable cache entry %s", key)
            self.delete(key)
            return None

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        ttl_ms = int(ttl_seconds * 1000)
        if ttl_ms <= 0:
            return
        payload = encode_value(value)
        try:
            self.client.set(self._key(key), payload, px=ttl_ms)
        except redis.RedisError as exc:
            raise CacheUnavailable(f"SET {key} failed: {exc}") from exc

    def delete(self, key: str) -> bool:
        try:
            return bool(self.client.delete(self._key(key)))
        except redis.RedisError as exc:
            raise CacheUnavailable(f"DEL {key} failed: {exc}") from exc

    def clear(self) -> int:
        """Delete every key in this store's namespace."""
        keys = [self._key(k) for k in self.keys("*")]
        if not keys:
            return 0
        try:
            removed = int(self.client.delete(*keys))
        except redis.RedisError as exc:
            raise CacheUnavailable(f"clear failed: {exc}") from exc
        logger.info("Redis cache purged (%d keys removed)", removed)
        return removed

    def keys(self, pattern: str = "*") -> list[str]:
        prefix = f"{self.namespace}:"
        try:
            found = list(self.client.scan_iter(match=prefix + pattern))
        except redis.RedisError as exc:
            raise CacheUnavailable(f"SCAN failed: {exc}") from exc
        return [k[len(prefix):] for k in found]

    def ping(self) -> bool:
        """Check if Redis is reachable."""
        try:
            return bool(self.client.ping())
        except redis.RedisError:
            return False
