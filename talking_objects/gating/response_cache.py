"""
Response Cache.

Bounded, time-expiring store from frame fingerprint to a previously
computed analysis result.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence, Any
from loguru import logger

from talking_objects.core.contracts import Frame, AnalysisResult
from talking_objects.hashing.signal_hasher import (
    DEFAULT_KEY_OFFSETS,
    DEFAULT_KEY_WINDOW,
    cache_key,
)


@dataclass
class CacheEntry:
    """A cached result and when it was inserted."""
    result: AnalysisResult
    inserted_at: float


class ResponseCache:
    """
    Insertion-ordered cache with size cap and lazy TTL expiry.

    Guarantees:
    - Never holds more than `max_size` entries
    - When full, the oldest-inserted entry is evicted (access order is
      not tracked)
    - Entries older than `ttl_seconds` are treated as absent on read and
      dropped then; there is no background sweep
    """

    def __init__(
        self,
        max_size: int = 20,
        ttl_seconds: float = 300.0,
        key_offsets: Sequence[int] = DEFAULT_KEY_OFFSETS,
        key_window: int = DEFAULT_KEY_WINDOW,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize response cache.

        Args:
            max_size: Maximum number of entries
            ttl_seconds: Entry lifetime
            key_offsets: Byte offsets sampled for the key
            key_window: Bytes sampled at each offset
            clock: Monotonic time source in seconds
        """
        if max_size < 1:
            raise ValueError("max_size must be at least 1")

        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self.key_offsets = tuple(key_offsets)
        self.key_window = key_window
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()

    def key_for(self, frame: Frame) -> str:
        return cache_key(frame.encoded, self.key_offsets, self.key_window)

    def get(self, frame: Frame) -> Optional[AnalysisResult]:
        """
        Look up a cached result for `frame`.

        Returns:
            The cached result, or None if absent or expired
        """
        key = self.key_for(frame)
        entry = self._entries.get(key)
        if entry is None:
            return None

        age = self._clock() - entry.inserted_at
        if age > self.ttl_seconds:
            del self._entries[key]
            logger.debug(f"Cache entry {key} expired after {age:.0f}s")
            return None

        return entry.result

    def put(self, frame: Frame, result: AnalysisResult):
        """Store `result` under `frame`'s key, evicting the oldest entry if full."""
        key = self.key_for(frame)

        if key in self._entries:
            # Re-insert moves the key to the newest position with a fresh timestamp
            del self._entries[key]
        elif len(self._entries) >= self.max_size:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Cache full, evicted {evicted}")

        self._entries[key] = CacheEntry(result=result, inserted_at=self._clock())

    def clear(self):
        self._entries.clear()

    def stats(self) -> Dict[str, Any]:
        return {
            "size": len(self._entries),
            "max_size": self.max_size,
            "ttl": self.ttl_seconds,
        }

    def __len__(self) -> int:
        return len(self._entries)
