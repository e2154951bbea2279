import json
from typing import Any
import redis
from cachetools import TTLCache
from .config import settings

# In-process cache for local dev and single-worker deployments.
_local_cache = TTLCache(maxsize=4096, ttl=settings.CACHE_TTL_SECONDS)

class Cache:
    """
    Thin abstraction over Redis/in-memory so swapping is one flag away.
    Holds provider responses, never valuation results: comps go stale daily.
    """
    def __init__(self, use_redis: bool | None = None):
        self.backend = None
        if settings.USE_REDIS if use_redis is None else use_redis:
            self.backend = redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)

    def get(self, key: str) -> Any | None:
        if self.backend:
            return self.backend.get(key)
        return _local_cache.get(key)

    def set(self, key: str, value: str) -> None:
        if self.backend:
            self.backend.setex(key, settings.CACHE_TTL_SECONDS, value)
        else:
            _local_cache[key] = value

    def get_json(self, key: str) -> Any | None:
        raw = self.get(key)
        return json.loads(raw) if raw else None

    def set_json(self, key: str, value: Any) -> None:
        self.set(key, json.dumps(value, separators=(",", ":"), default=str))

    def clear_local(self) -> None:
        """Drop in-process entries. Redis keys expire on their own TTL."""
        _local_cache.clear()

cache = Cache()
