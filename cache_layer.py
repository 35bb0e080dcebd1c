from __future__ import annotations

import threading
from typing import Any, Callable

from cachetools import TTLCache


def org_cache_key(org_id: str) -> str:
    return f"org:{str(org_id or '').strip()}"


class BrandingCache:
    """
    Per-organization branding and subscription snapshot, read-mostly.

    Owned by the Flask app (``app.extensions["branding_cache"]``) and passed
    into the actions that need it. Mutations evict by key.
    """

    def __init__(self, *, ttl_seconds: int = 300, max_items: int = 5000, timer: Callable[[], float] | None = None):
        ttl = max(1, min(3600, int(ttl_seconds)))
        max_items = max(16, min(500_000, int(max_items)))
        if timer is not None:
            self._cache = TTLCache(maxsize=max_items, ttl=ttl, timer=timer)
        else:
            self._cache = TTLCache(maxsize=max_items, ttl=ttl)
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0

    def get(self, org_id: str) -> Any:
        key = org_cache_key(org_id)
        with self._lock:
            val = self._cache.get(key)
            if val is not None:
                self._hits += 1
            else:
                self._misses += 1
            return val

    def set(self, org_id: str, value: Any) -> None:
        with self._lock:
            self._cache[org_cache_key(org_id)] = value

    def get_or_set(self, org_id: str, factory: Callable[[], Any]) -> Any:
        """Returns the cached snapshot or computes and caches it. ``None`` results are not cached."""
        key = org_cache_key(org_id)
        with self._lock:
            val = self._cache.get(key)
            if val is not None:
                self._hits += 1
                return val
            self._misses += 1
        # Compute outside lock to avoid blocking other operations
        computed = factory()
        if computed is None:
            return None
        with self._lock:
            if key in self._cache:
                return self._cache[key]
            self._cache[key] = computed
        return computed

    def invalidate(self, org_id: str) -> bool:
        with self._lock:
            return self._cache.pop(org_cache_key(org_id), None) is not None

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self._hits = 0
            self._misses = 0

    def stats(self) -> dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            hit_rate = (self._hits / total * 100) if total > 0 else 0.0
            return {
                "size": len(self._cache),
                "maxsize": self._cache.maxsize,
                "ttl": self._cache.ttl,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(hit_rate, 2),
            }
