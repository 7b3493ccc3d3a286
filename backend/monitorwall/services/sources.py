"""Source adapters for the monitor wall data panels.

Each adapter knows how to call one external provider and normalize the raw
payload into a fixed snapshot shape:
- Crypto: BTC/ETH USD price and 24h change (CoinGecko)
- Weather: current conditions for a location (Open-Meteo)
- News: fixed headline list (no live provider)
- Images: themed image reference URL (Unsplash source)

Adapters never return a silent default for a broken payload; they raise
SourceFetchError (or MalformedPayloadError) so the caller can fall back to
the last cached value.
"""

import asyncio
import logging
import math
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import aiohttp

from .cache_store import SourceKey

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT_SECONDS = 5.0

COINGECKO_PRICE_URL = "https://api.coingecko.com/api/v3/simple/price"
OPEN_METEO_FORECAST_URL = "https://api.open-meteo.com/v1/forecast"
UNSPLASH_SOURCE_URL = "https://source.unsplash.com/"

DEFAULT_LATITUDE = 40.7128  # New York
DEFAULT_LONGITUDE = -74.0060

DEFAULT_IMAGE_THEMES = ("cyberpunk", "technology", "abstract", "city", "neon", "computer")
DEFAULT_IMAGE_SIZE = "512x384"

MOCK_HEADLINES = (
    "PROTOCOL 7: New network nodes detected in sector 4",
    "LAYER:07: Quantum encryption protocols updated",
    "WIRED: Global connectivity reaches 97.3%",
    "SYSTEM: Neural interface bandwidth increased",
    "ALERT: Anomalous data patterns in eastern grid",
)

WEATHER_CONDITIONS: Dict[int, str] = {
    0: "CLEAR",
    1: "MOSTLY CLEAR",
    2: "PARTLY CLOUDY",
    3: "OVERCAST",
    45: "FOGGY",
    48: "FOGGY",
    51: "LIGHT DRIZZLE",
    61: "LIGHT RAIN",
    63: "MODERATE RAIN",
    65: "HEAVY RAIN",
    71: "LIGHT SNOW",
    73: "MODERATE SNOW",
    75: "HEAVY SNOW",
    95: "THUNDERSTORM",
}
UNKNOWN_CONDITION = "UNKNOWN"


class SourceFetchError(Exception):
    """Raised when a provider call fails (network, status, timeout)."""

    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(f"{source}: {message}")


class MalformedPayloadError(SourceFetchError):
    """Raised when a provider response lacks the expected fields."""


@dataclass(frozen=True)
class CoinQuote:
    """Price record for one coin."""
    price: float
    change_24h: Optional[float] = None  # percent; absent is treated as 0 downstream


@dataclass(frozen=True)
class CryptoSnapshot:
    """BTC and ETH quotes."""
    btc: CoinQuote
    eth: CoinQuote


@dataclass(frozen=True)
class WeatherSnapshot:
    """Current weather at one location."""
    temperature: int
    windspeed: float
    humidity: float  # 0-100
    conditions: str


@dataclass(frozen=True)
class NewsHeadlines:
    """Headline list for the news panel."""
    headlines: List[str]


@dataclass(frozen=True)
class ImageReference:
    """Reference to a themed image; the bytes are never cached."""
    url: str
    theme: str


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves toward +infinity."""
    return int(math.floor(value + 0.5))


def weather_condition(code: Any) -> str:
    """Map an Open-Meteo weather code to a display label."""
    try:
        return WEATHER_CONDITIONS.get(int(code), UNKNOWN_CONDITION)
    except (TypeError, ValueError):
        return UNKNOWN_CONDITION


def _number(source: str, value: Any, field_name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedPayloadError(source, f"field '{field_name}' is not a number: {value!r}")
    try:
        number = float(value)
    except OverflowError:
        number = math.inf
    if not math.isfinite(number):
        raise MalformedPayloadError(source, f"field '{field_name}' is not finite: {value!r}")
    return number


def _section(source: str, payload: Any, field_name: str) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise MalformedPayloadError(source, f"expected object for '{field_name}', got {type(payload).__name__}")
    section = payload.get(field_name)
    if not isinstance(section, dict):
        raise MalformedPayloadError(source, f"missing object '{field_name}'")
    return section


def normalize_crypto(payload: Any) -> CryptoSnapshot:
    """Normalize a CoinGecko simple/price payload."""
    source = SourceKey.CRYPTO.value

    def quote(coin_id: str) -> CoinQuote:
        coin = _section(source, payload, coin_id)
        price = _number(source, coin.get("usd"), f"{coin_id}.usd")
        if price <= 0:
            raise MalformedPayloadError(source, f"non-positive price for {coin_id}: {price}")
        change = coin.get("usd_24h_change")
        if change is not None:
            change = _number(source, change, f"{coin_id}.usd_24h_change")
        return CoinQuote(price=price, change_24h=change)

    return CryptoSnapshot(btc=quote("bitcoin"), eth=quote("ethereum"))


def normalize_weather(payload: Any) -> WeatherSnapshot:
    """Normalize an Open-Meteo forecast payload."""
    source = SourceKey.WEATHER.value
    current = _section(source, payload, "current_weather")
    hourly = _section(source, payload, "hourly")

    humidity_series = hourly.get("relativehumidity_2m")
    if not isinstance(humidity_series, list) or not humidity_series:
        raise MalformedPayloadError(source, "missing hourly relativehumidity_2m samples")
    humidity = _number(source, humidity_series[0], "hourly.relativehumidity_2m[0]")
    if not 0 <= humidity <= 100:
        raise MalformedPayloadError(source, f"humidity out of range: {humidity}")

    return WeatherSnapshot(
        temperature=round_half_up(_number(source, current.get("temperature"), "current_weather.temperature")),
        windspeed=_number(source, current.get("windspeed"), "current_weather.windspeed"),
        humidity=humidity,
        conditions=weather_condition(current.get("weathercode")),
    )


class SourceAdapter(ABC):
    """Base class for a single data source."""

    def __init__(
        self,
        source_key: SourceKey,
        endpoint: Optional[str] = None,
        request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
    ):
        self.source_key = source_key
        self.endpoint = endpoint
        self.request_timeout_seconds = request_timeout_seconds

    @property
    def name(self) -> str:
        return self.source_key.value

    @abstractmethod
    async def fetch(self) -> Any:
        """Fetch and normalize a fresh value."""
        pass

    async def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET a JSON document, bounded by the request timeout."""
        timeout = aiohttp.ClientTimeout(total=self.request_timeout_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url, params=params) as resp:
                    if resp.status != 200:
                        raise SourceFetchError(self.name, f"{url} returned {resp.status}")
                    return await resp.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise SourceFetchError(self.name, f"request timed out after {self.request_timeout_seconds}s") from e
        except aiohttp.ClientError as e:
            raise SourceFetchError(self.name, f"request failed: {e}") from e
        except ValueError as e:
            raise MalformedPayloadError(self.name, f"invalid JSON: {e}") from e


class CryptoSource(SourceAdapter):
    """BTC/ETH prices from CoinGecko."""

    def __init__(self, endpoint: Optional[str] = None, **kwargs):
        super().__init__(SourceKey.CRYPTO, endpoint or COINGECKO_PRICE_URL, **kwargs)

    async def fetch(self) -> CryptoSnapshot:
        params = {
            "ids": "bitcoin,ethereum",
            "vs_currencies": "usd",
            "include_24hr_change": "true",
        }
        return normalize_crypto(await self._get_json(self.endpoint, params))


class WeatherSource(SourceAdapter):
    """Current weather from Open-Meteo."""

    def __init__(
        self,
        endpoint: Optional[str] = None,
        latitude: float = DEFAULT_LATITUDE,
        longitude: float = DEFAULT_LONGITUDE,
        **kwargs,
    ):
        super().__init__(SourceKey.WEATHER, endpoint or OPEN_METEO_FORECAST_URL, **kwargs)
        self.latitude = latitude
        self.longitude = longitude

    async def fetch(self, latitude: Optional[float] = None, longitude: Optional[float] = None) -> WeatherSnapshot:
        params = {
            "latitude": self.latitude if latitude is None else latitude,
            "longitude": self.longitude if longitude is None else longitude,
            "current_weather": "true",
            "hourly": "temperature_2m,relativehumidity_2m",
        }
        return normalize_weather(await self._get_json(self.endpoint, params))


class NewsSource(SourceAdapter):
    """Fixed headline list; there is no live news provider."""

    def __init__(self, headlines: Sequence[str] = MOCK_HEADLINES, **kwargs):
        super().__init__(SourceKey.NEWS, **kwargs)
        self.headlines = list(headlines)

    async def fetch(self) -> NewsHeadlines:
        return NewsHeadlines(headlines=list(self.headlines))


class ImageSource(SourceAdapter):
    """Random themed image reference."""

    def __init__(
        self,
        endpoint: Optional[str] = None,
        themes: Sequence[str] = DEFAULT_IMAGE_THEMES,
        size: str = DEFAULT_IMAGE_SIZE,
        rng: Optional[random.Random] = None,
        **kwargs,
    ):
        super().__init__(SourceKey.IMAGES, endpoint or UNSPLASH_SOURCE_URL, **kwargs)
        if not themes:
            raise ValueError("ImageSource needs at least one theme")
        self.themes = list(themes)
        self.size = size
        self._rng = rng or random.Random()

    async def fetch(self) -> ImageReference:
        theme = self._rng.choice(self.themes)
        base = self.endpoint if self.endpoint.endswith("/") else f"{self.endpoint}/"
        return ImageReference(url=f"{base}{self.size}/?{theme}", theme=theme)
