# Data Services

from .cache_store import (
    CacheStore,
    CacheEntry,
    SourceKey,
)
from .sources import (
    SourceAdapter,
    CryptoSource,
    WeatherSource,
    NewsSource,
    ImageSource,
    CryptoSnapshot,
    CoinQuote,
    WeatherSnapshot,
    NewsHeadlines,
    ImageReference,
    SourceFetchError,
    MalformedPayloadError,
)
from .sentiment import (
    SentimentResult,
    compute_sentiment,
)
from .data_service import (
    DataService,
    ConfigurationError,
    UnknownSourceError,
    SourceDisabledError,
)
from .config import (
    ConfigService,
    ConfigValidationException,
    ConfigValidationError,
    DataServiceSettings,
    SourceSettings,
)
from .logging_service import (
    ApiCallLog,
    ApiCallLogEntry,
    configure_logging,
)

__all__ = [
    # Cache
    "CacheStore",
    "CacheEntry",
    "SourceKey",
    # Sources
    "SourceAdapter",
    "CryptoSource",
    "WeatherSource",
    "NewsSource",
    "ImageSource",
    "CryptoSnapshot",
    "CoinQuote",
    "WeatherSnapshot",
    "NewsHeadlines",
    "ImageReference",
    "SourceFetchError",
    "MalformedPayloadError",
    # Sentiment
    "SentimentResult",
    "compute_sentiment",
    # Data Service
    "DataService",
    "ConfigurationError",
    "UnknownSourceError",
    "SourceDisabledError",
    # Config
    "ConfigService",
    "ConfigValidationException",
    "ConfigValidationError",
    "DataServiceSettings",
    "SourceSettings",
    # Logging
    "ApiCallLog",
    "ApiCallLogEntry",
    "configure_logging",
]
