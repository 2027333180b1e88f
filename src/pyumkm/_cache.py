"""Internal session-scoped TTL cache for catalog reads."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


_KEY_BOUNDARIES = ("/", "?")


def _is_under(key: str, prefix: str) -> bool:
    if key == prefix:
        return True
    if not prefix or not key.startswith(prefix):
        return False
    return prefix.endswith(_KEY_BOUNDARIES) or key[len(prefix)] in _KEY_BOUNDARIES


@dataclass(frozen=True)
class CacheEntry:
    """A stored value and the window in which it may be served."""

    key: str
    value: Any
    stored_at: float
    ttl: float

    def is_valid(self, now: float) -> bool:
        return now < self.stored_at + self.ttl


@dataclass(frozen=True)
class CacheStats:
    """Point-in-time view of the cache contents."""

    size: int
    keys: tuple[str, ...]


class TtlCache:
    """Expiring key/value store.

    Expired entries are indistinguishable from missing ones: ``get``
    returns ``None`` for both and drops the expired entry on the way.
    There is no size-based eviction and no background sweeper.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not entry.is_valid(self._clock()):
            del self._entries[key]
            return None
        return entry.value

    def set(self, key: str, value: Any, ttl: float) -> None:
        if ttl <= 0:
            self._entries.pop(key, None)
            return
        self._entries[key] = CacheEntry(key=key, value=value, stored_at=self._clock(), ttl=ttl)

    def invalidate(self, key_or_prefix: str) -> int:
        """Drop the exact key and every key nested under *key_or_prefix*.

        A key is nested when it continues the prefix at a ``/`` or ``?``
        boundary, so ``"products"`` drops ``"products?page=1"`` and
        ``"products/42"`` while ``"products/4"`` leaves ``"products/42"``.
        """
        doomed = [key for key in self._entries if _is_under(key, key_or_prefix)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def purge_expired(self) -> int:
        now = self._clock()
        doomed = [key for key, entry in self._entries.items() if not entry.is_valid(now)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> CacheStats:
        return CacheStats(size=len(self._entries), keys=tuple(self._entries))
