# Overview: Explicit per-app cache context with pluggable storage and per-namespace TTLs.

"""
Cache context for read-heavy endpoints.

The app factory builds exactly one CacheContext per app and stores it in
app.extensions; handlers fetch it through get_cache(). Storage sits behind
CacheBackend so an external key-value store can replace the in-memory map
without touching callers.

Keys are "<namespace>:<...>". The namespace picks the TTL from the
configured map, falling back to "default".
"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Protocol

from flask import current_app

EXTENSION_KEY = "retailops_cache"
DEFAULT_NAMESPACE = "default"


class CacheBackend(Protocol):
    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any, ttl_seconds: float) -> None: ...

    def delete(self, key: str) -> None: ...

    def delete_prefix(self, prefix: str) -> int: ...


class InMemoryCacheBackend:
    """Process-local dict store with monotonic-clock expiry."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        with self._lock:
            self._entries[key] = (self._clock() + ttl_seconds, value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for k in doomed:
                del self._entries[k]
            return len(doomed)

    def __len__(self) -> int:
        return len(self._entries)


class CacheContext:
    """TTL-aware facade over a CacheBackend."""

    def __init__(self, backend: CacheBackend, ttl_map: dict[str, float] | None = None):
        self.backend = backend
        self.ttl_map = dict(ttl_map or {})
        self.hits = 0
        self.misses = 0

    def ttl_for(self, key: str) -> float:
        namespace = key.split(":", 1)[0]
        if namespace in self.ttl_map:
            return self.ttl_map[namespace]
        return self.ttl_map.get(DEFAULT_NAMESPACE, 300)

    def get(self, key: str) -> Any | None:
        value = self.backend.get(key)
        if value is None:
            self.misses += 1
        else:
            self.hits += 1
        return value

    def set(self, key: str, value: Any) -> None:
        ttl = self.ttl_for(key)
        if ttl <= 0:
            return
        self.backend.set(key, value, ttl)

    def get_or_set(self, key: str, producer: Callable[[], Any]) -> Any:
        """Return the cached value for key, computing and storing it on a miss."""
        value = self.get(key)
        if value is not None:
            return value
        value = producer()
        if value is not None:
            self.set(key, value)
        return value

    def invalidate(self, key: str) -> None:
        self.backend.delete(key)

    def invalidate_prefix(self, prefix: str) -> int:
        return self.backend.delete_prefix(prefix)

    def stats(self) -> dict:
        return {"hits": self.hits, "misses": self.misses}


def init_cache(app, backend: CacheBackend | None = None) -> CacheContext:
    """Build the app's cache context from CACHE_TTL_SECONDS and register it."""
    context = CacheContext(
        backend if backend is not None else InMemoryCacheBackend(),
        app.config.get("CACHE_TTL_SECONDS", {}),
    )
    app.extensions[EXTENSION_KEY] = context
    return context


def get_cache() -> CacheContext:
    return current_app.extensions[EXTENSION_KEY]
