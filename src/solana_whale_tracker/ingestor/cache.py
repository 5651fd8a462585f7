"""Time-expiring store of transaction signatures that were already alerted."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

DEFAULT_EXPIRY_SECONDS = 3600.0

V = TypeVar("V")


@dataclass
class CacheEntry(Generic[V]):
    """A cached value and the clock reading at insertion."""

    value: V
    inserted_at: float


class DedupCache(Generic[V]):
    """In-memory dedup cache with lazy and periodic eviction.

    An entry whose age has reached ``expiry_seconds`` is treated as absent:
    ``get()`` deletes it on the spot, and ``sweep()`` removes every such entry
    in one pass so memory stays bounded even for keys nobody asks about.
    """

    def __init__(
        self,
        expiry_seconds: float = DEFAULT_EXPIRY_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the cache.

        Args:
            expiry_seconds: Age at which an entry stops being returned.
            clock: Monotonic time source, injectable for tests.
        """
        if expiry_seconds <= 0:
            raise ValueError("expiry_seconds must be positive")
        self._expiry = expiry_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry[V]] = {}

    @property
    def expiry_seconds(self) -> float:
        """Configured entry lifetime."""
        return self._expiry

    def _is_expired(self, entry: CacheEntry[V], now: float) -> bool:
        return now - entry.inserted_at >= self._expiry

    def set(self, key: str, value: V) -> None:
        """Insert or overwrite ``key``, stamped with the current time."""
        self._entries[key] = CacheEntry(value=value, inserted_at=self._clock())

    def _live_entry(self, key: str) -> CacheEntry[V] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._is_expired(entry, self._clock()):
            del self._entries[key]
            return None
        return entry

    def get(self, key: str) -> V | None:
        """Return the cached value, or None if absent or expired."""
        entry = self._live_entry(key)
        return None if entry is None else entry.value

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self._live_entry(key) is not None

    def sweep(self) -> int:
        """Delete every expired entry.

        Returns:
            Number of entries removed.
        """
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if self._is_expired(entry, now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Swept %d expired cache entries", len(expired))
        return len(expired)

    def size(self) -> int:
        """Number of entries currently held, expired or not."""
        return len(self._entries)

    def __len__(self) -> int:
        return self.size()
