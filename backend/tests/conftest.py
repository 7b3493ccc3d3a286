"""Pytest configuration and fixtures."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional

import pytest
from httpx import AsyncClient, ASGITransport

from monitorwall.main import app
from monitorwall.routers.dependencies import get_data_service
from monitorwall.services.cache_store import SourceKey
from monitorwall.services.data_service import DataService
from monitorwall.services.logging_service import ApiCallLog
from monitorwall.services.sources import (
    CoinQuote,
    CryptoSnapshot,
    ImageReference,
    NewsHeadlines,
    SourceAdapter,
    SourceFetchError,
    WeatherSnapshot,
)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class StubSource(SourceAdapter):
    """Adapter returning canned values; Exception instances are raised."""

    def __init__(self, key: SourceKey, *results: Any):
        super().__init__(key)
        self.results: List[Any] = list(results)
        self.calls = 0
        self.call_args: List[tuple] = []
        self.gate: Optional[asyncio.Event] = None

    async def fetch(self, *args) -> Any:
        self.calls += 1
        self.call_args.append(args)
        if self.gate is not None:
            await self.gate.wait()
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result


def make_crypto(btc_change: Optional[float] = 10.0, eth_change: Optional[float] = 4.0,
                btc_price: float = 65000.0, eth_price: float = 3400.0) -> CryptoSnapshot:
    return CryptoSnapshot(
        btc=CoinQuote(price=btc_price, change_24h=btc_change),
        eth=CoinQuote(price=eth_price, change_24h=eth_change),
    )


WEATHER = WeatherSnapshot(temperature=21, windspeed=12.5, humidity=64.0, conditions="LIGHT RAIN")
NEWS = NewsHeadlines(headlines=["SYSTEM: Neural interface bandwidth increased"])
IMAGE = ImageReference(url="https://source.unsplash.com/512x384/?neon", theme="neon")


def fetch_error(key: SourceKey) -> SourceFetchError:
    return SourceFetchError(key.value, "returned 503")


@pytest.fixture
def clock():
    """Fake clock shared by the cache store and service."""
    return FakeClock()


@pytest.fixture
def stub_sources():
    """One stub adapter per network source, all succeeding."""
    return {
        SourceKey.CRYPTO: StubSource(SourceKey.CRYPTO, make_crypto()),
        SourceKey.WEATHER: StubSource(SourceKey.WEATHER, WEATHER),
        SourceKey.NEWS: StubSource(SourceKey.NEWS, NEWS),
        SourceKey.IMAGES: StubSource(SourceKey.IMAGES, IMAGE),
    }


@pytest.fixture
def data_service(stub_sources, clock):
    """Data service wired to stub adapters and the fake clock."""
    return DataService(
        adapters=stub_sources,
        api_call_log=ApiCallLog(enabled=False),
        clock=clock,
    )


@pytest.fixture
async def client(data_service):
    """Create test client bound to the stubbed data service."""
    app.dependency_overrides[get_data_service] = lambda: data_service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
