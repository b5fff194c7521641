"""Key/value cache used for tenant-existence lookups and rate limiting.

Redis backs it in deployment; a process-local dictionary stands in when no
``REDIS_URL`` is configured (single-process dev runs and the test suite).
"""
import logging
import threading
import time
from typing import Protocol

import redis

from .config import Settings

logger = logging.getLogger(__name__)


class Cache(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str, ttl: int | None = None) -> None: ...

    def exists(self, key: str) -> bool: ...

    def delete(self, key: str) -> None: ...

    def incr(self, key: str, ttl: int) -> int: ...


class RedisCache:
    def __init__(self, url: str) -> None:
        self.client = redis.Redis.from_url(url, decode_responses=True)

    def get(self, key: str) -> str | None:
        return self.client.get(key)

    def set(self, key: str, value: str, ttl: int | None = None) -> None:
        self.client.set(key, value, ex=ttl)

    def exists(self, key: str) -> bool:
        return bool(self.client.exists(key))

    def delete(self, key: str) -> None:
        self.client.delete(key)

    def incr(self, key: str, ttl: int) -> int:
        count = int(self.client.incr(key))
        if count == 1:
            self.client.expire(key, ttl)
        return count


class MemoryCache:
    sweep_interval = 60.0

    def __init__(self) -> None:
        self._data: dict[str, tuple[str, float | None]] = {}
        self._lock = threading.Lock()
        self._next_sweep = time.monotonic() + self.sweep_interval

    def _sweep(self) -> None:
        now = time.monotonic()
        if now < self._next_sweep:
            return
        self._next_sweep = now + self.sweep_interval
        expired = [key for key, (_, expires_at) in self._data.items() if expires_at is not None and expires_at <= now]
        for key in expired:
            del self._data[key]

    def _live(self, key: str) -> tuple[str, float | None] | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        _, expires_at = entry
        if expires_at is not None and expires_at <= time.monotonic():
            del self._data[key]
            return None
        return entry

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._live(key)
            return entry[0] if entry else None

    def set(self, key: str, value: str, ttl: int | None = None) -> None:
        expires_at = time.monotonic() + ttl if ttl else None
        with self._lock:
            self._data[key] = (value, expires_at)

    def exists(self, key: str) -> bool:
        with self._lock:
            return self._live(key) is not None

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def incr(self, key: str, ttl: int) -> int:
        with self._lock:
            self._sweep()
            entry = self._live(key)
            if entry is None:
                count, expires_at = 1, time.monotonic() + ttl
            else:
                count, expires_at = int(entry[0]) + 1, entry[1]
            self._data[key] = (str(count), expires_at)
            return count

    def clear(self) -> None:
        with self._lock:
            self._data.clear()


def build_cache(settings: Settings) -> Cache:
    if settings.redis_url:
        logger.info("Using Redis cache")
        return RedisCache(settings.redis_url)
    logger.warning("REDIS_URL not set. Using in-process cache.")
    return MemoryCache()


def tenant_exists_key(institution_id) -> str:
    return f"institution:exists:{institution_id}"
