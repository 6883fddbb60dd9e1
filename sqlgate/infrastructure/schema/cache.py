"""
Schema Cache

Thread-safe TTL cache for introspection and relationship results.
"""

# Standard library imports
import json
import re
import threading
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

DEFAULT_TTL_SECONDS = 300.0


@dataclass
class _Entry:
    value: Any
    stored_at: float


class SchemaCache:
    """
    Key/value cache whose entries expire ``ttl_seconds`` after being set.

    Expired entries are evicted lazily on read, or eagerly by ``cleanup()``.
    """

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS) -> None:
        self._ttl = ttl_seconds
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._sets = 0

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def _expired(self, entry: _Entry, now: float) -> bool:
        return now - entry.stored_at > self._ttl

    def get(self, key: str) -> Any | None:
        """Return the cached value, or None when absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if self._expired(entry, time.monotonic()):
                del self._entries[key]
                self._evictions += 1
                self._misses += 1
                return None
            self._hits += 1
            return entry.value

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._entries[key] = _Entry(value=value, stored_at=time.monotonic())
            self._sets += 1

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def invalidate(self, key: str) -> bool:
        with self._lock:
            if self._entries.pop(key, None) is None:
                return False
            self._evictions += 1
            return True

    def invalidate_pattern(self, pattern: str | re.Pattern[str]) -> int:
        """
        Drop every key matching ``pattern`` (searched, not anchored).

        Returns:
            Number of entries removed
        """
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        with self._lock:
            doomed = [key for key in self._entries if regex.search(key)]
            for key in doomed:
                del self._entries[key]
            self._evictions += len(doomed)
            return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._evictions += len(self._entries)
            self._entries.clear()

    def cleanup(self) -> int:
        """Evict every expired entry and return how many were removed."""
        now = time.monotonic()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if self._expired(entry, now)]
            for key in expired:
                del self._entries[key]
            self._evictions += len(expired)
            return len(expired)

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            lookups = self._hits + self._misses
            return {
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "sets": self._sets,
                "size": len(self._entries),
                "hit_rate": round(self._hits / lookups * 100, 2) if lookups else 0.0,
                "ttl_seconds": self._ttl,
            }

    @staticmethod
    def generate_key(kind: str, table: str, params: Mapping[str, Any] | None = None) -> str:
        """
        Build a cache key such as ``"schema:books"`` or
        ``"relationships:books:{"depth":2}"``.
        """
        if not params:
            return f"{kind}:{table}"
        encoded = json.dumps(params, sort_keys=True, separators=(",", ":"), default=str)
        return f"{kind}:{table}:{encoded}"
