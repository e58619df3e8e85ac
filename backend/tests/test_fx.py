import asyncio
from datetime import datetime, timedelta
from decimal import Decimal

import httpx
import pytest

from subtally.config import Settings
from subtally.db import get_db
from subtally.schemas.enums import Currency
from subtally.services.fx import (
    FALLBACK_SOURCE,
    FRANKFURTER_SOURCE,
    FxRateProvider,
    convert_currency,
    fallback_rates,
    get_display_currency,
    load_fx_cache,
    save_fx_cache,
)

START = datetime(2024, 6, 1, 12, 0)


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeFxApi:
    """Counts requests and answers with a fixed KRW rate, or fails on demand."""

    def __init__(self, rate=1380.5):
        self.rate = rate
        self.calls = 0
        self.status = 200
        self.body = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        if self.status != 200:
            return httpx.Response(self.status)
        if self.body is not None:
            return httpx.Response(200, content=self.body)
        return httpx.Response(200, json={"amount": 1.0, "base": "USD", "rates": {"KRW": self.rate}})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def clock():
    return FakeClock(START)


@pytest.fixture
def api():
    return FakeFxApi()


@pytest.fixture
def provider(session_factory, api, clock):
    config = Settings(FX_API_URL="https://fx.test")
    return FxRateProvider(session_factory, config, transport=api.transport, clock=clock)


class TestConvert:
    def test_same_currency_is_identity(self, rates):
        amount = Decimal("12.34")
        assert convert_currency(amount, Currency.USD, Currency.USD, rates) is amount
        assert convert_currency(amount, Currency.KRW, Currency.KRW, rates) is amount

    def test_usd_to_krw(self, rates):
        assert convert_currency(Decimal("10"), Currency.USD, Currency.KRW, rates) == Decimal("13000")

    def test_round_trip(self, rates):
        there = convert_currency(Decimal("19.99"), Currency.USD, Currency.KRW, rates)
        back = convert_currency(there, Currency.KRW, Currency.USD, rates)
        assert float(back) == pytest.approx(19.99)

    def test_unknown_pair_passes_through(self, rates):
        assert convert_currency(Decimal("5"), "EUR", Currency.KRW, rates) == Decimal("5")

    def test_display_currency(self):
        assert get_display_currency("ko") == Currency.KRW
        assert get_display_currency("en") == Currency.USD


def test_fallback_rates():
    rates = fallback_rates(START, Settings(FX_FALLBACK_USD_KRW="1300"))
    assert rates.is_fallback
    assert rates.source == FALLBACK_SOURCE
    assert rates.usd_to_krw == Decimal("1300")
    assert rates.usd_to_krw * rates.krw_to_usd == pytest.approx(Decimal("1"))


async def test_cache_row_is_a_singleton(session_factory):
    async with get_db(session_factory) as db:
        assert await load_fx_cache(db) is None
        await save_fx_cache(db, Decimal("1300"), 1 / Decimal("1300"), START, "a")
        await save_fx_cache(db, Decimal("1400"), 1 / Decimal("1400"), START, "b")
    async with get_db(session_factory) as db:
        cache = await load_fx_cache(db)
    assert cache.source == "b"
    assert cache.usd_to_krw == Decimal("1400")


class TestProvider:
    async def test_fetches_and_caches(self, provider, api, session_factory):
        rates = await provider.get_rates()
        assert rates.usd_to_krw == Decimal("1380.5")
        assert rates.source == FRANKFURTER_SOURCE
        assert rates.last_updated == START
        assert not rates.is_stale and not rates.is_fallback
        assert api.calls == 1

        async with get_db(session_factory) as db:
            cache = await load_fx_cache(db)
        assert cache.usd_to_krw == Decimal("1380.5")

    async def test_fresh_cache_is_reused(self, provider, api, clock):
        await provider.get_rates()
        clock.advance(hours=11)
        rates = await provider.get_rates()
        assert api.calls == 1
        assert rates.last_updated == START
        assert not rates.is_stale

    async def test_old_cache_is_refreshed(self, provider, api, clock):
        await provider.get_rates()
        clock.advance(hours=13)
        api.rate = 1400
        rates = await provider.get_rates()
        assert api.calls == 2
        assert rates.usd_to_krw == Decimal("1400")
        assert rates.last_updated == clock.now

    async def test_stale_cache_when_fetch_fails(self, provider, api, clock):
        await provider.get_rates()
        clock.advance(hours=13)
        api.status = 500
        rates = await provider.get_rates()
        assert rates.is_stale
        assert not rates.is_fallback
        assert rates.usd_to_krw == Decimal("1380.5")
        assert rates.last_updated == START

    async def test_fallback_without_cache(self, provider, api):
        api.status = 503
        rates = await provider.get_rates()
        assert rates.is_fallback
        assert rates.usd_to_krw == Decimal("1300")
        assert rates.last_updated == START

    @pytest.mark.parametrize("body", [
        b"not json",
        b"[]",
        b'{"rates": {}}',
        b'{"rates": {"KRW": -1}}',
        b'{"rates": {"KRW": 0}}',
        b'{"rates": {"KRW": "1380.5"}}',
        b'{"rates": {"KRW": true}}',
        b'{"rates": {"KRW": 1e999}}',
    ])
    async def test_malformed_response_falls_back(self, provider, api, session_factory, body):
        api.body = body
        rates = await provider.get_rates()
        assert rates.is_fallback
        async with get_db(session_factory) as db:
            assert await load_fx_cache(db) is None

    async def test_unreadable_cache_row_is_replaced(self, provider, api, session_factory):
        async with get_db(session_factory) as db:
            await save_fx_cache(db, Decimal("Infinity"), Decimal("0"), START, FRANKFURTER_SOURCE)

        rates = await provider.get_rates()
        assert rates.usd_to_krw == Decimal("1380.5")
        assert api.calls == 1

        async with get_db(session_factory) as db:
            cache = await load_fx_cache(db)
        assert cache.usd_to_krw == Decimal("1380.5")

    async def test_unreadable_cache_row_without_api_falls_back(self, provider, api, session_factory):
        async with get_db(session_factory) as db:
            await save_fx_cache(db, Decimal("Infinity"), Decimal("0"), START, FRANKFURTER_SOURCE)
        api.status = 500
        rates = await provider.get_rates()
        assert rates.is_fallback

    async def test_network_error_falls_back(self, session_factory, clock):
        def fail(request):
            raise httpx.ConnectError("unreachable", request=request)

        provider = FxRateProvider(
            session_factory, Settings(), transport=httpx.MockTransport(fail), clock=clock
        )
        rates = await provider.get_rates()
        assert rates.is_fallback

    async def test_force_refresh_bypasses_cache(self, provider, api):
        await provider.get_rates()
        await provider.get_rates(force_refresh=True)
        assert api.calls == 2


class TestManualRefresh:
    async def test_cooldown(self, provider, api, clock):
        assert provider.can_manual_refresh()
        assert provider.manual_refresh_cooldown() == 0

        assert await provider.manual_refresh() is not None
        assert not provider.can_manual_refresh()
        assert await provider.manual_refresh() is None
        assert api.calls == 1

        clock.advance(seconds=10)
        assert provider.manual_refresh_cooldown() == 20

        clock.advance(seconds=21)
        assert provider.can_manual_refresh()
        assert await provider.manual_refresh() is not None
        assert api.calls == 2

    async def test_concurrent_requests_fetch_once(self, provider, api):
        results = await asyncio.gather(provider.manual_refresh(), provider.manual_refresh())
        assert sum(r is not None for r in results) == 1
        assert api.calls == 1
