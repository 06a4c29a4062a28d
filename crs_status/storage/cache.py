"""
In-memory usage cache.

Holds at most one snapshot together with the monotonic time it was fetched.
Nothing is persisted; a new process starts with an empty cache.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .models import UsageSnapshot

logger = logging.getLogger(__name__)

# Fixed freshness window for a cached snapshot
CACHE_TTL_SECONDS = 10.0


@dataclass(frozen=True)
class CacheEntry:
    """Cached snapshot and the monotonic time it was stored."""
    snapshot: UsageSnapshot
    fetched_at: float


class UsageCache:
    """Single-slot TTL cache owned by a usage client.
    
    Each client session owns its own cache, so tests and separate
    monitors never share state.
    """

    def __init__(
        self,
        ttl: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic
    ):
        """Initialize an empty cache.
        
        Args:
            ttl: Seconds a stored snapshot is considered fresh
            clock: Monotonic time source
        """
        if ttl < 0:
            raise ValueError("ttl must be >= 0")
        self.ttl = ttl
        self._clock = clock
        self._entry: Optional[CacheEntry] = None

    @property
    def snapshot(self) -> Optional[UsageSnapshot]:
        """Stored snapshot regardless of age, or None when empty."""
        if self._entry is None:
            return None
        return self._entry.snapshot

    def get_fresh(self) -> Optional[UsageSnapshot]:
        """Return the stored snapshot only while it is within the TTL."""
        if self._entry is None:
            return None
        age = self._clock() - self._entry.fetched_at
        if age < self.ttl:
            logger.debug("Cache hit (age %.2fs)", age)
            return self._entry.snapshot
        logger.debug("Cache expired (age %.2fs)", age)
        return None

    def store(self, snapshot: UsageSnapshot) -> None:
        """Replace the cache contents wholesale with a fresh snapshot."""
        self._entry = CacheEntry(snapshot=snapshot, fetched_at=self._clock())

    def clear(self) -> None:
        """Drop the stored snapshot, independent of its age."""
        self._entry = None
