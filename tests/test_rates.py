"""Tests for exchange rate fetching and caching."""

from decimal import Decimal

import httpx
import pytest

from identity_hub.currency import ExchangeRateService
from identity_hub.models.currency import ExchangeRates
from identity_hub.services.rates import (
    FrankfurterRateProvider,
    RateProviderInterface,
    RateProviderUnavailableError,
)
from identity_hub.services.storage import InMemoryStore, RateCache

HOUR_MS = 60 * 60 * 1000


class FakeProvider(RateProviderInterface):
    """Records calls and returns a fixed table, or fails on demand."""

    def __init__(self, rates=None, fail=False):
        self.calls: list[tuple[str, list[str]]] = []
        self.rates = rates or {"USD": Decimal("1.25"), "EUR": Decimal("1.20")}
        self.fail = fail

    async def latest(self, base, targets):
        self.calls.append((base, list(targets)))
        if self.fail:
            raise RateProviderUnavailableError("provider down")
        return ExchangeRates(
            base=base,
            rates={t: self.rates[t] for t in targets if t in self.rates},
        )


class Clock:
    def __init__(self, now_ms: int = 1_700_000_000_000):
        self.now = now_ms

    def __call__(self) -> int:
        return self.now


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def cache():
    return RateCache(InMemoryStore())


class TestExchangeRateService:
    """Freshness, coverage and fallback rules."""

    @pytest.mark.asyncio
    async def test_no_foreign_targets_needs_no_rates(self, cache, clock):
        provider = FakeProvider()
        service = ExchangeRateService(provider, cache, clock=clock)
        assert await service.fetch_rates("GBP", ["GBP", "gbp"]) is None
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_fresh_cache_skips_provider(self, cache, clock):
        provider = FakeProvider()
        service = ExchangeRateService(provider, cache, ttl_hours=24, clock=clock)

        first = await service.fetch_rates("GBP", ["USD"])
        clock.now += 23 * HOUR_MS
        second = await service.fetch_rates("GBP", ["USD"])

        assert first.rates["USD"] == Decimal("1.25")
        assert second.rates == first.rates
        assert len(provider.calls) == 1

    @pytest.mark.asyncio
    async def test_stale_cache_refetches(self, cache, clock):
        provider = FakeProvider()
        service = ExchangeRateService(provider, cache, ttl_hours=24, clock=clock)

        await service.fetch_rates("GBP", ["USD"])
        clock.now += 25 * HOUR_MS
        await service.fetch_rates("GBP", ["USD"])

        assert len(provider.calls) == 2

    @pytest.mark.asyncio
    async def test_missing_target_refetches(self, cache, clock):
        provider = FakeProvider()
        service = ExchangeRateService(provider, cache, clock=clock)

        await service.fetch_rates("GBP", ["USD"])
        rates = await service.fetch_rates("GBP", ["USD", "EUR"])

        assert provider.calls[-1] == ("GBP", ["USD", "EUR"])
        assert rates.covers(["USD", "EUR"])

    @pytest.mark.asyncio
    async def test_other_base_refetches(self, cache, clock):
        provider = FakeProvider(rates={"GBP": Decimal("0.8"), "USD": Decimal("1.25")})
        service = ExchangeRateService(provider, cache, clock=clock)

        await service.fetch_rates("GBP", ["USD"])
        rates = await service.fetch_rates("USD", ["GBP"])

        assert rates.base == "USD"
        assert len(provider.calls) == 2

    @pytest.mark.asyncio
    async def test_provider_failure_falls_back_to_stale_cache(self, cache, clock):
        service = ExchangeRateService(FakeProvider(), cache, clock=clock)
        await service.fetch_rates("GBP", ["USD"])

        clock.now += 48 * HOUR_MS
        failing = ExchangeRateService(FakeProvider(fail=True), cache, clock=clock)
        rates = await failing.fetch_rates("GBP", ["USD"])

        assert rates is not None
        assert rates.rates["USD"] == Decimal("1.25")

    @pytest.mark.asyncio
    async def test_provider_failure_without_cache_returns_none(self, cache, clock):
        service = ExchangeRateService(FakeProvider(fail=True), cache, clock=clock)
        assert await service.fetch_rates("GBP", ["USD"]) is None

    @pytest.mark.asyncio
    async def test_force_refresh(self, cache, clock):
        provider = FakeProvider()
        service = ExchangeRateService(provider, cache, clock=clock)

        await service.fetch_rates("GBP", ["USD"])
        await service.fetch_rates("GBP", ["USD"], force_refresh=True)

        assert len(provider.calls) == 2

    @pytest.mark.asyncio
    async def test_clear_cache(self, cache, clock):
        provider = FakeProvider()
        service = ExchangeRateService(provider, cache, clock=clock)

        await service.fetch_rates("GBP", ["USD"])
        assert await service.clear_cache() is True
        assert await cache.load() is None


def _provider(handler) -> FrankfurterRateProvider:
    client = httpx.AsyncClient(
        base_url="https://rates.test",
        transport=httpx.MockTransport(handler),
    )
    return FrankfurterRateProvider(base_url="https://rates.test", client=client)


class TestFrankfurterRateProvider:
    """HTTP behaviour against a mocked transport."""

    @pytest.mark.asyncio
    async def test_latest_parses_response(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={
                "base": "GBP",
                "date": "2026-10-16",
                "rates": {"USD": 1.3, "EUR": 1.15},
            })

        async with _provider(handler) as provider:
            rates = await provider.latest("gbp", ["usd", "eur"])

        assert seen["path"] == "/latest"
        assert seen["params"] == {"from": "GBP", "to": "USD,EUR"}
        assert rates.base == "GBP"
        assert rates.rates["USD"] == Decimal("1.3")
        assert rates.date.isoformat() == "2026-10-16"

    @pytest.mark.asyncio
    async def test_http_error_is_unavailable(self):
        provider = _provider(lambda request: httpx.Response(503, json={"message": "down"}))
        with pytest.raises(RateProviderUnavailableError) as exc:
            await provider.latest("GBP", ["USD"])
        assert exc.value.status_code == 503
        await provider.close()

    @pytest.mark.asyncio
    async def test_network_error_is_unavailable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("no route", request=request)

        provider = _provider(handler)
        with pytest.raises(RateProviderUnavailableError):
            await provider.latest("GBP", ["USD"])
        await provider.close()

    @pytest.mark.asyncio
    async def test_malformed_body_is_unavailable(self):
        provider = _provider(lambda request: httpx.Response(200, json={"rates": "nope"}))
        with pytest.raises(RateProviderUnavailableError, match="Malformed"):
            await provider.latest("GBP", ["USD"])
        await provider.close()
