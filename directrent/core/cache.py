import json
from typing import Any
from cachetools import TTLCache
from .config import settings

# Process-wide store shared by every Cache instance; price estimates and
# rate-limit counters live side by side under different namespaces.
_local_cache = TTLCache(maxsize=4096, ttl=settings.CACHE_TTL_SECONDS)

try:
    import redis  # Optional dependency
except ImportError:
    redis = None

class Cache:
    """
    Namespaced string/JSON cache: redis when USE_REDIS is on and the client
    is installed, otherwise the in-process TTL cache.
    """
    def __init__(self, namespace: str = "directrent", ttl: int | None = None):
        self.namespace = namespace
        self.ttl = ttl or settings.CACHE_TTL_SECONDS
        self.backend = None
        if settings.USE_REDIS and redis is not None:
            self.backend = redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def get(self, key: str) -> str | None:
        if self.backend:
            return self.backend.get(self._key(key))
        return _local_cache.get(self._key(key))

    def set(self, key: str, value: str, ttl: int | None = None) -> None:
        if self.backend:
            self.backend.setex(self._key(key), ttl or self.ttl, value)
        else:
            _local_cache[self._key(key)] = value

    def get_json(self, key: str) -> Any | None:
        raw = self.get(key)
        return json.loads(raw) if raw else None

    def set_json(self, key: str, value: Any, ttl: int | None = None) -> None:
        self.set(key, json.dumps(value, separators=(",", ":"), default=str), ttl)

    def incr(self, key: str, ttl: int) -> int:
        """Counter that starts at 1 and expires `ttl` seconds after creation (redis)."""
        if self.backend:
            full = self._key(key)
            count = self.backend.incr(full)
            if count == 1:
                self.backend.expire(full, ttl)
            return int(count)
        full = self._key(key)
        count = int(_local_cache.get(full) or 0) + 1
        _local_cache[full] = str(count)
        return count

    def clear(self) -> None:
        """Drop this namespace's in-process entries (redis keys expire on their own)."""
        prefix = self._key("")
        for key in [k for k in list(_local_cache) if k.startswith(prefix)]:
            _local_cache.pop(key, None)

cache = Cache()
