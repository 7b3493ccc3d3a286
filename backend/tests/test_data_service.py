"""Unit tests for the data service fetch orchestration."""

import asyncio
import math

import pytest
from unittest.mock import AsyncMock, patch

from monitorwall.services.cache_store import SourceKey
from monitorwall.services.config import DataServiceSettings, SourceSettings
from monitorwall.services.data_service import (
    ConfigurationError,
    DataService,
    SourceDisabledError,
    UnknownSourceError,
)
from monitorwall.services.logging_service import ApiCallLog
from monitorwall.services.sentiment import NEUTRAL_SENTIMENT
from monitorwall.services.sources import CryptoSource
from tests.conftest import IMAGE, NEWS, WEATHER, StubSource, fetch_error, make_crypto


def settings_with(**overrides) -> DataServiceSettings:
    base = DataServiceSettings()
    sources = dict(base.sources)
    for name, enabled in overrides.items():
        key = SourceKey(name)
        sources[key] = SourceSettings(
            enabled=enabled,
            cache_ttl_seconds=base.sources[key].cache_ttl_seconds,
            endpoint=base.sources[key].endpoint,
        )
    return DataServiceSettings(sources=sources)


class TestResolve:
    """resolve() freshness, fallback and error semantics."""

    @pytest.mark.asyncio
    async def test_fresh_after_successful_resolve(self, data_service):
        fetch = AsyncMock(return_value=NEWS)

        value = await data_service.resolve(SourceKey.NEWS, fetch)

        assert value == NEWS
        assert data_service.store.is_fresh(SourceKey.NEWS)

    @pytest.mark.asyncio
    async def test_second_call_within_window_served_from_cache(self, data_service, clock):
        fetch = AsyncMock(return_value=NEWS)

        await data_service.resolve(SourceKey.NEWS, fetch)
        clock.advance(599)
        value = await data_service.resolve(SourceKey.NEWS, fetch)

        assert value == NEWS
        assert fetch.await_count == 1

    @pytest.mark.asyncio
    async def test_refetch_after_window(self, data_service, clock):
        fetch = AsyncMock(side_effect=[make_crypto(btc_price=1.0), make_crypto(btc_price=2.0)])

        await data_service.resolve(SourceKey.CRYPTO, fetch)
        clock.advance(30)
        value = await data_service.resolve(SourceKey.CRYPTO, fetch)

        assert value.btc.price == 2.0
        assert fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_stale_fallback_on_failure(self, data_service, clock):
        good = make_crypto()
        await data_service.resolve(SourceKey.CRYPTO, AsyncMock(return_value=good))
        clock.advance(60)

        value = await data_service.resolve(SourceKey.CRYPTO, AsyncMock(side_effect=fetch_error(SourceKey.CRYPTO)))

        assert value is good
        # Failed fetches never update the stored timestamp
        assert data_service.store.is_fresh(SourceKey.CRYPTO) is False

    @pytest.mark.asyncio
    async def test_cold_failure_returns_none(self, data_service):
        value = await data_service.resolve(SourceKey.WEATHER, AsyncMock(side_effect=asyncio.TimeoutError()))

        assert value is None
        assert SourceKey.WEATHER not in data_service.store

    @pytest.mark.asyncio
    async def test_unexpected_adapter_error_is_contained(self, data_service):
        value = await data_service.resolve(SourceKey.IMAGES, AsyncMock(side_effect=KeyError("url")))
        assert value is None

    @pytest.mark.asyncio
    async def test_unknown_key_raises(self, data_service):
        with pytest.raises(UnknownSourceError):
            await data_service.resolve("stocks", AsyncMock())

    @pytest.mark.asyncio
    async def test_disabled_source_raises(self, stub_sources, clock):
        service = DataService(settings_with(news=False), adapters=stub_sources, clock=clock,
                              api_call_log=ApiCallLog(enabled=False))

        with pytest.raises(SourceDisabledError):
            await service.get_news()
        assert stub_sources[SourceKey.NEWS].calls == 0

    @pytest.mark.asyncio
    async def test_string_keys_accepted(self, data_service):
        value = await data_service.resolve("news", AsyncMock(return_value=NEWS))
        assert value == NEWS


class TestSingleFlight:
    """Concurrent stale resolutions share one fetch."""

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_fetch(self, data_service, stub_sources):
        source = stub_sources[SourceKey.WEATHER]
        source.gate = asyncio.Event()

        first = asyncio.ensure_future(data_service.get_weather())
        second = asyncio.ensure_future(data_service.get_weather())
        await asyncio.sleep(0)
        source.gate.set()

        results = await asyncio.gather(first, second)

        assert results == [WEATHER, WEATHER]
        assert source.calls == 1

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_cancel_fetch(self, data_service, stub_sources):
        source = stub_sources[SourceKey.NEWS]
        source.gate = asyncio.Event()

        caller = asyncio.ensure_future(data_service.get_news())
        await asyncio.sleep(0)
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller

        source.gate.set()
        for _ in range(5):
            await asyncio.sleep(0)

        assert data_service.store.get(SourceKey.NEWS).value == NEWS

    @pytest.mark.asyncio
    async def test_in_flight_entry_released(self, data_service):
        await data_service.get_news()
        await asyncio.sleep(0)
        assert data_service._in_flight == {}


class TestConcurrencyCap:
    """Outbound adapter calls respect max_concurrent_requests."""

    @pytest.mark.asyncio
    async def test_request_slots_bound_parallel_fetches(self, clock):
        active = 0
        peak = 0

        class SlowSource(StubSource):
            async def fetch(self, *args):
                nonlocal active, peak
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0.01)
                active -= 1
                return await super().fetch(*args)

        adapters = {
            SourceKey.CRYPTO: SlowSource(SourceKey.CRYPTO, make_crypto()),
            SourceKey.WEATHER: SlowSource(SourceKey.WEATHER, WEATHER),
            SourceKey.NEWS: SlowSource(SourceKey.NEWS, NEWS),
            SourceKey.IMAGES: SlowSource(SourceKey.IMAGES, IMAGE),
        }
        settings = DataServiceSettings(max_concurrent_requests=2)
        service = DataService(settings, adapters=adapters, clock=clock, api_call_log=ApiCallLog(enabled=False))

        await service.refresh_all()

        assert peak == 2
        assert all(adapter.calls == 1 for adapter in adapters.values())


class TestTypedGetters:
    """Per-source getters route to the right adapter."""

    @pytest.mark.asyncio
    async def test_getters_return_adapter_values(self, data_service):
        assert (await data_service.get_crypto()) == make_crypto()
        assert (await data_service.get_weather()) == WEATHER
        assert (await data_service.get_news()) == NEWS
        assert (await data_service.get_image()) == IMAGE

    @pytest.mark.asyncio
    async def test_weather_coordinates_passed_through(self, data_service, stub_sources):
        await data_service.get_weather(51.5, -0.12)
        assert stub_sources[SourceKey.WEATHER].call_args == [(51.5, -0.12)]

    @pytest.mark.asyncio
    async def test_weather_cache_is_not_location_scoped(self, data_service, stub_sources):
        await data_service.get_weather(51.5, -0.12)
        await data_service.get_weather(35.7, 139.7)
        assert stub_sources[SourceKey.WEATHER].calls == 1

    @pytest.mark.asyncio
    async def test_generic_get(self, data_service):
        assert (await data_service.get("images")) == IMAGE
        with pytest.raises(UnknownSourceError):
            await data_service.get("stocks")


class TestSentiment:
    """Sentiment goes through the cache under its own key."""

    @pytest.mark.asyncio
    async def test_sentiment_scenario(self, data_service):
        result = await data_service.get_sentiment()

        assert result.score == 65
        assert result.label == "VERY BULLISH"
        assert data_service.store.is_fresh(SourceKey.SENTIMENT)
        assert data_service.store.is_fresh(SourceKey.CRYPTO)

    @pytest.mark.asyncio
    async def test_sentiment_cached_for_its_window(self, data_service, stub_sources, clock):
        crypto = stub_sources[SourceKey.CRYPTO]
        crypto.results = [make_crypto(10, 4), make_crypto(-10, -4)]

        first = await data_service.get_sentiment()
        clock.advance(5)
        second = await data_service.get_sentiment()

        assert first is second
        assert crypto.calls == 1

    @pytest.mark.asyncio
    async def test_sentiment_neutral_without_crypto_data(self, data_service, stub_sources):
        stub_sources[SourceKey.CRYPTO].results = [fetch_error(SourceKey.CRYPTO)]

        result = await data_service.get_sentiment()

        assert result == NEUTRAL_SENTIMENT

    @pytest.mark.asyncio
    async def test_sentiment_uses_stale_crypto(self, data_service, stub_sources, clock):
        crypto = stub_sources[SourceKey.CRYPTO]
        crypto.results = [make_crypto(-10, -4), fetch_error(SourceKey.CRYPTO)]
        await data_service.get_crypto()
        clock.advance(31)

        result = await data_service.get_sentiment()

        assert result.score == -65
        assert result.label == "VERY BEARISH"

    @pytest.mark.asyncio
    async def test_non_finite_crypto_payload_keeps_stale_reading(self, stub_sources, clock):
        good = {"bitcoin": {"usd": 65000.0, "usd_24h_change": -10.0},
                "ethereum": {"usd": 3400.0, "usd_24h_change": -4.0}}
        bad = {"bitcoin": {"usd": 65000.0, "usd_24h_change": math.nan},
               "ethereum": {"usd": 3400.0, "usd_24h_change": -4.0}}
        crypto = CryptoSource()
        adapters = {**stub_sources, SourceKey.CRYPTO: crypto}
        service = DataService(adapters=adapters, clock=clock, api_call_log=ApiCallLog(enabled=False))

        with patch.object(crypto, "_get_json", AsyncMock(side_effect=[good, bad])):
            await service.get_crypto()
            clock.advance(31)
            result = await service.get_sentiment()

        assert result.score == -65
        assert result.label == "VERY BEARISH"
        assert service.get_source_statuses()[0].failures == 1

    def test_sentiment_requires_crypto(self, stub_sources, clock):
        with pytest.raises(ConfigurationError):
            DataService(settings_with(crypto=False), adapters=stub_sources, clock=clock)

    def test_enabled_source_requires_adapter(self, stub_sources, clock):
        del stub_sources[SourceKey.IMAGES]
        with pytest.raises(ConfigurationError):
            DataService(adapters=stub_sources, clock=clock)


class TestResetAndStatus:
    """Cache reset and diagnostics."""

    @pytest.mark.asyncio
    async def test_clear_makes_every_key_stale(self, data_service):
        await data_service.refresh_all()
        data_service.clear_cache()

        for key in SourceKey:
            assert data_service.store.is_fresh(key) is False

    @pytest.mark.asyncio
    async def test_reset_refetches_all_enabled_sources(self, data_service, stub_sources):
        await data_service.refresh_all()
        await data_service.reset_cache()

        for adapter in stub_sources.values():
            assert adapter.calls == 2
        for key in SourceKey:
            assert data_service.store.is_fresh(key)

    @pytest.mark.asyncio
    async def test_reset_skips_disabled_sources(self, stub_sources, clock):
        service = DataService(settings_with(images=False), adapters=stub_sources, clock=clock,
                              api_call_log=ApiCallLog(enabled=False))

        await service.reset_cache()
        await service.reset_cache()

        assert stub_sources[SourceKey.IMAGES].calls == 0
        assert SourceKey.IMAGES not in service.store

    @pytest.mark.asyncio
    async def test_cache_status(self, data_service, clock):
        await data_service.get_crypto()
        await data_service.get_news()
        clock.advance(45)

        status = data_service.get_cache_status()

        assert set(status) == {"crypto", "news"}
        assert status["crypto"].age_seconds == 45
        assert status["crypto"].expired is True
        assert status["news"].expired is False
        assert status["news"].data == NEWS
        assert status["news"].cache_ttl_seconds == 600

    @pytest.mark.asyncio
    async def test_source_statuses_track_hits_and_failures(self, data_service, stub_sources, clock):
        stub_sources[SourceKey.CRYPTO].results = [make_crypto(), fetch_error(SourceKey.CRYPTO)]

        await data_service.get_crypto()
        await data_service.get_crypto()
        clock.advance(30)
        await data_service.get_crypto()

        crypto = next(s for s in data_service.get_source_statuses() if s.key == "crypto")
        assert crypto.hits == 1
        assert crypto.misses == 2
        assert crypto.failures == 1
        assert crypto.hit_rate == pytest.approx(1 / 3)
        assert crypto.healthy is False
        assert "503" in crypto.last_error
        assert crypto.cached is True
