"""
Namespace-scoped TTL cache backed by ``cachetools``.
"""

import time
from typing import Any, Callable, Dict, Optional, Tuple

from cachetools import TLRUCache

from shared.logging import get_logger

DEFAULT_MAX_ENTRIES = 10_000


def _entry_expiry(key: str, entry: Tuple[Any, float], now: float) -> float:
    return now + entry[1]


class TTLCache:
    """Namespace-scoped key/value cache.

    Entries are checked for expiry when read; ``sweep`` removes stale entries
    in bulk and is optional. ``None`` cannot be stored, it means "absent".
    When full, expired entries go first, then the least recently used.
    """

    def __init__(self, namespace: str, default_ttl: float, clock: Callable[[], float] = time.monotonic,
                 max_entries: int = DEFAULT_MAX_ENTRIES):
        if default_ttl <= 0:
            raise ValueError("default_ttl must be positive")
        self.namespace = namespace
        self.default_ttl = default_ttl
        self.max_entries = max_entries
        # Values are stored as (value, ttl) so each entry carries its own lifetime
        self._store = TLRUCache(maxsize=max_entries, ttu=_entry_expiry, timer=clock)
        self.hits = 0
        self.misses = 0
        self.logger = get_logger(f"gate.cache.{namespace}")

    def _make_key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def get(self, key: str) -> Optional[Any]:
        """Get a live value, or None."""
        entry = self._store.get(self._make_key(key))
        if entry is None:
            # Lazy expiry
            self._store.expire()
            self.misses += 1
            return None

        self.hits += 1
        return entry[0]

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store a value for ``ttl`` seconds (namespace default when omitted)."""
        if value is None:
            raise ValueError("None cannot be cached")
        cache_ttl = self.default_ttl if ttl is None else ttl
        self._store[self._make_key(key)] = (value, cache_ttl)

    def delete(self, key: str) -> bool:
        return self._store.pop(self._make_key(key), None) is not None

    def delete_matching(self, predicate: Callable[[str], bool]) -> int:
        """Delete live entries whose un-prefixed key satisfies ``predicate``."""
        self._store.expire()
        prefix_len = len(self.namespace) + 1
        doomed = [k for k in list(self._store.keys()) if predicate(k[prefix_len:])]
        for full_key in doomed:
            del self._store[full_key]
        return len(doomed)

    def sweep(self) -> int:
        """Drop every expired entry. Returns how many were removed."""
        before = self._store.currsize
        self._store.expire()
        removed = before - self._store.currsize
        if removed:
            self.logger.debug("Swept expired entries", count=removed)
        return removed

    def clear(self) -> None:
        self._store.clear()

    def __len__(self) -> int:
        return self._store.currsize

    def stats(self) -> Dict[str, Any]:
        total = self.hits + self.misses
        return {
            "namespace": self.namespace,
            "size": self._store.currsize,
            "max_entries": self.max_entries,
            "default_ttl": self.default_ttl,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hits / total if total else 0.0,
        }
