"""Bounded, content-addressed cache for compression and decompression results.

Keys are fingerprints of the transform input: a 31-multiplier rolling
hash over a bounded prefix plus the total length. Fingerprints are not
unique for divergent content sharing a prefix, so callers store the
source alongside the result and compare it on a hit.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Any

from nsredis.core.constants import CACHE_EVICTION_FRACTION, FINGERPRINT_PREFIX_CHARS

logger = logging.getLogger(__name__)

_MASK32 = 0xFFFFFFFF


def fingerprint(data: str | bytes, prefix_chars: int = FINGERPRINT_PREFIX_CHARS) -> str:
    """Fixed-width (16 hex chars) fingerprint of data.

    First 8 digits: rolling hash of the first prefix_chars characters (or
    bytes). Last 8 digits: total length, so payloads of different sizes
    never share a fingerprint.
    """
    h = 0
    head = data[:prefix_chars]
    codes = head if isinstance(head, (bytes, bytearray)) else map(ord, head)
    for code in codes:
        h = (h * 31 + code) & _MASK32
    return f"{h:08x}{len(data) & _MASK32:08x}"


class TransformCache:
    """Insertion-ordered mapping from fingerprint to transform result.

    When the cache holds max_size entries, the oldest 20% (at least one)
    are evicted before the next insert. Overwriting an existing fingerprint
    keeps its position and never evicts.
    """

    def __init__(self, max_size: int = 1000, name: str = "transform") -> None:
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got: {max_size}")
        self.max_size = max_size
        self.name = name
        self._entries: OrderedDict[str, Any] = OrderedDict()

    @property
    def eviction_count(self) -> int:
        """Entries dropped per eviction round."""
        return max(1, int(self.max_size * CACHE_EVICTION_FRACTION))

    def get(self, key: str) -> Any | None:
        """Return the cached result or None on a miss."""
        return self._entries.get(key)

    def put(self, key: str, value: Any) -> None:
        """Store value under key, evicting the oldest entries when full."""
        if key in self._entries:
            self._entries[key] = value
            return
        if len(self._entries) >= self.max_size:
            self._evict(self.eviction_count)
        self._entries[key] = value

    def trim(self, target_size: int) -> int:
        """Evict oldest entries until at most target_size remain. Returns count evicted."""
        excess = len(self._entries) - max(0, target_size)
        if excess <= 0:
            return 0
        self._evict(excess)
        return excess

    def clear(self) -> None:
        self._entries.clear()

    def _evict(self, count: int) -> None:
        for _ in range(min(count, len(self._entries))):
            self._entries.popitem(last=False)
        logger.debug("%s cache evicted %s entries (size %s)", self.name, count, len(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
