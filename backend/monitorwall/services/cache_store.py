"""In-memory cache store for data source values.

Each source key maps to at most one CacheEntry holding the last successfully
fetched value and the time it was fetched. Freshness is judged per key against
a fixed window; keys without a configured window use DEFAULT_TTL_SECONDS.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60.0


class SourceKey(str, Enum):
    """Cache keys, one per data source plus the derived sentiment metric."""
    CRYPTO = "crypto"
    WEATHER = "weather"
    NEWS = "news"
    IMAGES = "images"
    SENTIMENT = "sentiment"


DEFAULT_FRESHNESS_WINDOWS: Dict[SourceKey, float] = {
    SourceKey.CRYPTO: 30.0,
    SourceKey.WEATHER: 300.0,
    SourceKey.NEWS: 600.0,
    SourceKey.IMAGES: 120.0,
    SourceKey.SENTIMENT: 10.0,
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CacheEntry:
    """A cached value and when it was fetched.

    Immutable: value and fetched_at change only by replacing the whole entry.
    """
    key: str
    value: Any
    fetched_at: datetime


class CacheStore:
    """Keyed mapping from source key to its last good value."""

    def __init__(
        self,
        freshness_windows: Optional[Mapping[str, float]] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize the store.

        Args:
            freshness_windows: Seconds a value stays fresh, per key.
            clock: Returns the current (timezone-aware) time.
        """
        windows = DEFAULT_FRESHNESS_WINDOWS if freshness_windows is None else freshness_windows
        self._windows: Dict[str, float] = {self._normalize(k): float(v) for k, v in windows.items()}
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    @staticmethod
    def _normalize(key) -> str:
        return key.value if isinstance(key, SourceKey) else str(key)

    def freshness_window(self, key) -> float:
        """Freshness window in seconds for a key."""
        return self._windows.get(self._normalize(key), DEFAULT_TTL_SECONDS)

    def get(self, key) -> Optional[CacheEntry]:
        return self._entries.get(self._normalize(key))

    def put(self, key, value: Any) -> CacheEntry:
        """Record a value with the current time, replacing any prior entry."""
        name = self._normalize(key)
        entry = CacheEntry(key=name, value=value, fetched_at=self._clock())
        self._entries[name] = entry
        return entry

    def age_seconds(self, key) -> Optional[float]:
        """Seconds since the entry for key was fetched, or None if absent."""
        entry = self.get(key)
        if entry is None:
            return None
        return (self._clock() - entry.fetched_at).total_seconds()

    def is_fresh(self, key) -> bool:
        age = self.age_seconds(key)
        if age is None:
            return False
        return age < self.freshness_window(key)

    def clear(self) -> None:
        """Drop every entry."""
        count = len(self._entries)
        self._entries.clear()
        logger.info(f"Cache cleared ({count} entries dropped)")

    def items(self) -> Iterator[Tuple[str, CacheEntry]]:
        return iter(list(self._entries.items()))

    def __contains__(self, key) -> bool:
        return self._normalize(key) in self._entries

    def __len__(self) -> int:
        return len(self._entries)
