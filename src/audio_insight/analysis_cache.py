"""In-memory recency cache for analysis results.

Entries expire after a TTL and the cache holds at most ``max_entries``
items; when full, the oldest-inserted entry is evicted. Every method is a
single synchronous step, so concurrent coroutines on one event loop can
never observe a half-applied mutation.

Keys are derived from a *prefix* of the normalized text (see
``build_cache_key``): two texts sharing their first ``prefix_length``
characters and identical options map to the same key.
"""

from __future__ import annotations

import hashlib
import json
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from audio_insight.models import AnalysisOptions

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_CACHE_VERSION = "v1"
ALL_KINDS_KEY = "all"


def build_cache_key(
    text: str,
    options: AnalysisOptions,
    kind: str,
    prefix_length: int = 100,
) -> str:
    """Build a deterministic cache key for an analysis request.

    Args:
        text: The transcript being analysed.
        options: Analysis options; serialized with sorted keys.
        kind: ``"all"`` or a single ``AnalysisKind`` value.
        prefix_length: Characters of the lower-cased, trimmed text that
            participate in the key.

    Returns:
        A hex SHA-256 digest string.
    """
    key_parts = {
        "version": _CACHE_VERSION,
        "text": text.strip().lower()[:prefix_length],
        "options": options.model_dump(mode="json"),
        "kind": str(kind),
    }
    serialized = json.dumps(key_parts, sort_keys=True, default=str)
    return hashlib.sha256(serialized.encode()).hexdigest()


@dataclass(slots=True)
class AnalysisCacheEntry:
    key: str
    value: Any
    created_at: float


class AnalysisCache:
    """TTL + capacity bounded cache, insertion-ordered.

    Attributes:
        ttl_seconds: Lifetime of an entry from its insertion.
        max_entries: Capacity; inserting beyond it evicts the oldest entry.
    """

    def __init__(
        self,
        ttl_seconds: float = 3600,
        max_entries: int = 50,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, AnalysisCacheEntry] = OrderedDict()

    @property
    def size(self) -> int:
        return len(self._entries)

    def _expired(self, entry: AnalysisCacheEntry) -> bool:
        return self._clock() - entry.created_at > self.ttl_seconds

    def get(self, key: str) -> Any | None:
        """Return the cached value, or ``None`` on a miss or expiry.

        An expired entry is removed as a side effect.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._expired(entry):
            del self._entries[key]
            logger.debug("analysis_cache_expired", key=key[:12])
            return None
        logger.debug("analysis_cache_hit", key=key[:12])
        return entry.value

    def put(self, key: str, value: Any) -> None:
        """Store ``value``, replacing any previous entry for ``key``.

        A replaced key moves to the newest position. When a new key would
        exceed capacity, exactly one entry (the oldest inserted) is evicted.
        """
        if key in self._entries:
            del self._entries[key]
        elif len(self._entries) >= self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("analysis_cache_evicted", key=evicted[:12])
        self._entries[key] = AnalysisCacheEntry(
            key=key, value=value, created_at=self._clock()
        )

    def has(self, key: str) -> bool:
        """True if a live (unexpired) entry exists for ``key``."""
        return self.get(key) is not None

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        count = len(self._entries)
        self._entries.clear()
        logger.info("analysis_cache_cleared", entries=count)
