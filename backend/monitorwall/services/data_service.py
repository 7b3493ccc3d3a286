"""Data service: cache-aware fetch orchestration for the monitor wall panels.

Provides one entry point per panel (crypto, weather, news, images,
sentiment). Every read goes through resolve(), which:
- Serves the cached value while it is inside its freshness window
- Otherwise calls the source adapter, caching the result on success
- Falls back to the last cached value (even if stale) when the call fails,
  or None when nothing has ever been cached

Concurrent resolutions of the same stale key share one in-flight fetch, and
outbound adapter calls are capped by a semaphore.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from functools import partial
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

from .cache_store import CacheStore, SourceKey, utc_now
from .config import DataServiceSettings
from .logging_service import ApiCallLog, ApiCallLogEntry
from .sentiment import SentimentResult, compute_sentiment
from .sources import (
    CryptoSnapshot,
    CryptoSource,
    ImageReference,
    ImageSource,
    NewsHeadlines,
    NewsSource,
    SourceAdapter,
    WeatherSnapshot,
    WeatherSource,
)

logger = logging.getLogger(__name__)

CacheValue = Union[CryptoSnapshot, WeatherSnapshot, NewsHeadlines, ImageReference, SentimentResult]
FetchFunction = Callable[[], Awaitable[Any]]


class ConfigurationError(Exception):
    """Raised for integration mistakes: unknown keys, disabled sources."""


class UnknownSourceError(ConfigurationError):
    """Raised when a key outside SourceKey is requested."""

    def __init__(self, key: Any):
        self.key = key
        super().__init__(f"Unknown source '{key}'. Valid sources: {[k.value for k in SourceKey]}")


class SourceDisabledError(ConfigurationError):
    """Raised when a disabled source is requested."""

    def __init__(self, key: SourceKey):
        self.key = key
        super().__init__(f"Source '{key.value}' is disabled")


@dataclass
class SourceStats:
    """Running counters for one key."""
    hits: int = 0
    misses: int = 0
    failures: int = 0
    last_attempt: Optional[datetime] = None
    last_success: Optional[datetime] = None
    last_error: Optional[str] = None

    @property
    def healthy(self) -> bool:
        return self.last_error is None

    @property
    def hit_rate(self) -> Optional[float]:
        total = self.hits + self.misses
        return self.hits / total if total else None


@dataclass
class CacheStatusEntry:
    """Diagnostic view of one cache entry."""
    key: str
    age_seconds: int
    expired: bool
    cache_ttl_seconds: float
    fetched_at: datetime
    data: Any


@dataclass
class SourceStatus:
    """Diagnostic view of one source."""
    key: str
    enabled: bool
    healthy: bool
    cached: bool
    cache_ttl_seconds: float
    hits: int
    misses: int
    failures: int
    hit_rate: Optional[float]
    last_attempt: Optional[datetime]
    last_success: Optional[datetime]
    last_error: Optional[str]


def build_adapters(settings: DataServiceSettings) -> Dict[SourceKey, SourceAdapter]:
    """Create the source adapters described by the settings."""
    timeout = settings.request_timeout_seconds
    return {
        SourceKey.CRYPTO: CryptoSource(
            endpoint=settings.source(SourceKey.CRYPTO).endpoint,
            request_timeout_seconds=timeout,
        ),
        SourceKey.WEATHER: WeatherSource(
            endpoint=settings.source(SourceKey.WEATHER).endpoint,
            latitude=settings.latitude,
            longitude=settings.longitude,
            request_timeout_seconds=timeout,
        ),
        SourceKey.NEWS: NewsSource(request_timeout_seconds=timeout),
        SourceKey.IMAGES: ImageSource(
            endpoint=settings.source(SourceKey.IMAGES).endpoint,
            themes=settings.image_themes,
            size=settings.image_size,
            request_timeout_seconds=timeout,
        ),
    }


class DataService:
    """Cache-aware access to every monitor wall data source.

    One instance is created by the application root and shared by all
    consumers; it holds the only CacheStore.
    """

    def __init__(
        self,
        settings: Optional[DataServiceSettings] = None,
        store: Optional[CacheStore] = None,
        adapters: Optional[Mapping[SourceKey, SourceAdapter]] = None,
        api_call_log: Optional[ApiCallLog] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.settings = settings or DataServiceSettings()
        self._clock = clock
        self._store = store if store is not None else CacheStore(self.settings.freshness_windows(), clock=clock)
        self._adapters: Dict[SourceKey, SourceAdapter] = dict(
            adapters if adapters is not None else build_adapters(self.settings)
        )
        self._api_call_log = api_call_log or ApiCallLog(enabled=self.settings.log_api_calls)
        self._request_slots = asyncio.Semaphore(self.settings.max_concurrent_requests)
        self._in_flight: Dict[SourceKey, "asyncio.Future[Any]"] = {}
        self._stats: Dict[SourceKey, SourceStats] = {key: SourceStats() for key in SourceKey}
        self._check_configuration()

    def _check_configuration(self) -> None:
        if self.is_enabled(SourceKey.SENTIMENT) and not self.is_enabled(SourceKey.CRYPTO):
            raise ConfigurationError("Sentiment is derived from crypto prices; enable crypto or disable sentiment")

        for key in SourceKey:
            if key is SourceKey.SENTIMENT or not self.is_enabled(key):
                continue
            if key not in self._adapters:
                raise ConfigurationError(f"No adapter registered for enabled source '{key.value}'")

    @property
    def store(self) -> CacheStore:
        return self._store

    def is_enabled(self, key: SourceKey) -> bool:
        return self.settings.source(key).enabled

    def enabled_keys(self) -> List[SourceKey]:
        return [key for key in SourceKey if self.is_enabled(key)]

    def _check_key(self, key: Union[SourceKey, str]) -> SourceKey:
        try:
            source_key = SourceKey(key)
        except ValueError:
            raise UnknownSourceError(key)
        if not self.is_enabled(source_key):
            raise SourceDisabledError(source_key)
        return source_key

    async def resolve(self, key: Union[SourceKey, str], fetch_fn: FetchFunction) -> Optional[Any]:
        """Return the fresh cached value for key, refreshing it through fetch_fn if needed.

        Fetch failures never propagate: the last cached value is returned
        (even if stale), or None when nothing has been cached yet.

        Raises:
            UnknownSourceError: key is not a known source.
            SourceDisabledError: the source is disabled in configuration.
        """
        source_key = self._check_key(key)
        stats = self._stats[source_key]

        if self._store.is_fresh(source_key):
            stats.hits += 1
            return self._store.get(source_key).value

        pending = self._in_flight.get(source_key)
        if pending is None:
            pending = asyncio.ensure_future(self._refresh(source_key, fetch_fn))
            self._in_flight[source_key] = pending
            pending.add_done_callback(lambda _: self._in_flight.pop(source_key, None))
        else:
            logger.debug(f"Joining in-flight fetch for {source_key.value}")

        # A cancelled caller must not cancel the fetch others are waiting on
        return await asyncio.shield(pending)

    async def _refresh(self, key: SourceKey, fetch_fn: FetchFunction) -> Optional[Any]:
        stats = self._stats[key]
        stats.misses += 1
        stats.last_attempt = self._clock()

        try:
            value = await fetch_fn()
        except Exception as e:
            stats.failures += 1
            stats.last_error = str(e) or type(e).__name__
            cached = self._store.get(key)
            if cached is not None:
                logger.warning(
                    f"Error fetching {key.value}: {stats.last_error}; "
                    f"serving cached value from {cached.fetched_at.isoformat()}"
                )
                return cached.value
            logger.warning(f"Error fetching {key.value}: {stats.last_error}; no cached value available")
            return None

        entry = self._store.put(key, value)
        stats.last_success = entry.fetched_at
        stats.last_error = None
        logger.debug(f"Cached fresh {key.value} value")
        return value

    async def _fetch_source(self, key: SourceKey, *args: Any) -> Any:
        """Call a source adapter within the outbound request cap."""
        adapter = self._adapters[key]
        error: Optional[Exception] = None
        async with self._request_slots:
            started = time.perf_counter()
            try:
                value = await adapter.fetch(*args)
            except Exception as e:
                error = e
            duration_ms = (time.perf_counter() - started) * 1000

        # Slot released before the log write
        await self._record_call(key, duration_ms, error)
        if error is not None:
            raise error
        return value

    async def _record_call(self, key: SourceKey, duration_ms: float, error: Optional[Exception] = None) -> None:
        if not self._api_call_log.enabled:
            return
        entry = ApiCallLogEntry(
            timestamp=self._clock(),
            source=key.value,
            outcome="success" if error is None else "failure",
            duration_ms=duration_ms,
            error=None if error is None else (str(error) or type(error).__name__),
        )
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._api_call_log.record, entry)

    async def get_crypto(self) -> Optional[CryptoSnapshot]:
        """Get BTC/ETH prices."""
        return await self.resolve(SourceKey.CRYPTO, partial(self._fetch_source, SourceKey.CRYPTO))

    async def get_weather(
        self,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> Optional[WeatherSnapshot]:
        """Get current weather; coordinates default to the configured location.

        The cache holds one weather value regardless of location.
        """
        return await self.resolve(
            SourceKey.WEATHER,
            partial(self._fetch_source, SourceKey.WEATHER, latitude, longitude),
        )

    async def get_news(self) -> Optional[NewsHeadlines]:
        """Get news headlines."""
        return await self.resolve(SourceKey.NEWS, partial(self._fetch_source, SourceKey.NEWS))

    async def get_image(self) -> Optional[ImageReference]:
        """Get a themed image reference."""
        return await self.resolve(SourceKey.IMAGES, partial(self._fetch_source, SourceKey.IMAGES))

    async def get_sentiment(self) -> Optional[SentimentResult]:
        """Get the market sentiment reading, cached under its own key."""
        return await self.resolve(SourceKey.SENTIMENT, self._calculate_sentiment)

    async def _calculate_sentiment(self) -> SentimentResult:
        crypto = await self.get_crypto()
        return compute_sentiment(crypto)

    async def get(self, key: Union[SourceKey, str]) -> Optional[CacheValue]:
        """Get the value for any key with default arguments."""
        source_key = self._check_key(key)
        getters = {
            SourceKey.CRYPTO: self.get_crypto,
            SourceKey.WEATHER: self.get_weather,
            SourceKey.NEWS: self.get_news,
            SourceKey.IMAGES: self.get_image,
            SourceKey.SENTIMENT: self.get_sentiment,
        }
        return await getters[source_key]()

    async def refresh_all(self) -> None:
        """Resolve every enabled key concurrently."""
        await asyncio.gather(*[self.get(key) for key in self.enabled_keys()])

    async def reset_cache(self) -> None:
        """Drop all cached values, then refetch every enabled key."""
        self._store.clear()
        await self.refresh_all()
        logger.info(f"Cache reset; {len(self._store)} of {len(self.enabled_keys())} sources repopulated")

    def clear_cache(self) -> None:
        self._store.clear()

    def get_cache_status(self) -> Dict[str, CacheStatusEntry]:
        """Per cached key: age, expiry and the cached value."""
        status = {}
        for key, entry in self._store.items():
            age = self._store.age_seconds(key)
            status[key] = CacheStatusEntry(
                key=key,
                age_seconds=int(age + 0.5),
                expired=not self._store.is_fresh(key),
                cache_ttl_seconds=self._store.freshness_window(key),
                fetched_at=entry.fetched_at,
                data=entry.value,
            )
        return status

    def get_source_statuses(self) -> List[SourceStatus]:
        """Per source: enabled flag, health and hit/miss/failure counters."""
        statuses = []
        for key in SourceKey:
            stats = self._stats[key]
            statuses.append(SourceStatus(
                key=key.value,
                enabled=self.is_enabled(key),
                healthy=stats.healthy,
                cached=key in self._store,
                cache_ttl_seconds=self._store.freshness_window(key),
                hits=stats.hits,
                misses=stats.misses,
                failures=stats.failures,
                hit_rate=stats.hit_rate,
                last_attempt=stats.last_attempt,
                last_success=stats.last_success,
                last_error=stats.last_error,
            ))
        return statuses
