"""
FX rates for USD/KRW.

Rates come from the Frankfurter API (free, no key). A single cached row in
``fx_rate_cache`` is reused for FX_MIN_REFRESH_HOURS; when a fetch fails the
cache is served as stale, and with no cache a hardcoded fallback rate is used.
Callers always get a complete FxRates snapshot.
"""

import logging
import math
from collections.abc import Callable
from datetime import datetime, timedelta
from decimal import Decimal

import httpx
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from subtally.config import Settings, settings as default_settings
from subtally.db import async_session, get_db
from subtally.models.fx_rate_cache import FX_CACHE_ID, FxRateCache
from subtally.schemas.enums import Currency, Language
from subtally.schemas.fx import FxRates

logger = logging.getLogger(__name__)

FRANKFURTER_SOURCE = "Frankfurter API"
FALLBACK_SOURCE = "Fallback"


def convert_currency(
    amount: Decimal, from_currency: Currency, to_currency: Currency, rates: FxRates
) -> Decimal:
    if from_currency == to_currency:
        return amount
    if from_currency == Currency.USD and to_currency == Currency.KRW:
        return amount * rates.usd_to_krw
    if from_currency == Currency.KRW and to_currency == Currency.USD:
        return amount * rates.krw_to_usd
    # Only two currencies are modeled; anything else passes through
    return amount


def get_display_currency(language: Language) -> Currency:
    return Currency.KRW if language == "ko" else Currency.USD


def fallback_rates(now: datetime | None = None, config: Settings = default_settings) -> FxRates:
    usd_to_krw = Decimal(config.FX_FALLBACK_USD_KRW)
    return FxRates(
        usd_to_krw=usd_to_krw,
        krw_to_usd=1 / usd_to_krw,
        last_updated=now or datetime.now(),
        source=FALLBACK_SOURCE,
        is_fallback=True,
    )


async def load_fx_cache(db: AsyncSession) -> FxRateCache | None:
    return await db.get(FxRateCache, FX_CACHE_ID)


async def save_fx_cache(
    db: AsyncSession,
    usd_to_krw: Decimal,
    krw_to_usd: Decimal,
    last_updated: datetime,
    source: str,
) -> FxRateCache:
    cache = await load_fx_cache(db)
    if cache is None:
        cache = FxRateCache(id=FX_CACHE_ID)
        db.add(cache)
    cache.usd_to_krw = usd_to_krw
    cache.krw_to_usd = krw_to_usd
    cache.last_updated = last_updated
    cache.source = source
    await db.flush()
    return cache


def _rates_from_cache(cache: FxRateCache, is_stale: bool = False) -> FxRates:
    return FxRates(
        usd_to_krw=cache.usd_to_krw,
        krw_to_usd=cache.krw_to_usd,
        last_updated=cache.last_updated,
        source=cache.source,
        is_stale=is_stale,
    )


class FxRateProvider:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = async_session,
        config: Settings = default_settings,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._session_factory = session_factory
        self._config = config
        self._transport = transport
        self._clock = clock
        self._last_manual_refresh: datetime | None = None

    @property
    def min_refresh_interval(self) -> timedelta:
        return timedelta(hours=self._config.FX_MIN_REFRESH_HOURS)

    @property
    def manual_cooldown(self) -> timedelta:
        return timedelta(seconds=self._config.FX_MANUAL_COOLDOWN_SECONDS)

    async def fetch_latest(self) -> tuple[Decimal, Decimal] | None:
        """Fetch USD->KRW from the API. Returns (usd_to_krw, krw_to_usd) or None."""
        url = f"{self._config.FX_API_URL.rstrip('/')}/latest"
        async with httpx.AsyncClient(
            transport=self._transport, timeout=self._config.FX_TIMEOUT_SECONDS
        ) as client:
            try:
                resp = await client.get(url, params={"from": "USD", "to": "KRW"})
            except httpx.HTTPError as e:
                logger.warning(f"FX fetch failed: {e!r}")
                return None

        if resp.status_code != 200:
            logger.error(f"FX API error: {resp.status_code}")
            return None
        try:
            data = resp.json()
        except ValueError:
            logger.error("FX API returned a non-JSON body")
            return None

        rates = data.get("rates") if isinstance(data, dict) else None
        rate = rates.get("KRW") if isinstance(rates, dict) else None
        if (
            not isinstance(rate, (int, float))
            or isinstance(rate, bool)
            or not math.isfinite(rate)
            or rate <= 0
        ):
            logger.error(f"KRW rate not found in FX response: {data}")
            return None

        usd_to_krw = Decimal(str(rate))
        return usd_to_krw, 1 / usd_to_krw

    async def get_rates(self, force_refresh: bool = False) -> FxRates:
        now = self._clock()
        async with get_db(self._session_factory) as db:
            cache = await load_fx_cache(db)
        cached = None
        if cache is not None:
            try:
                cached = _rates_from_cache(cache)
            except ValidationError as e:
                logger.error(f"Ignoring unreadable FX cache row: {e}")

        if cached and not force_refresh and now - cached.last_updated < self.min_refresh_interval:
            return cached

        fresh = await self.fetch_latest()
        if fresh:
            usd_to_krw, krw_to_usd = fresh
            # Validated before it is stored
            rates = FxRates(
                usd_to_krw=usd_to_krw,
                krw_to_usd=krw_to_usd,
                last_updated=now,
                source=FRANKFURTER_SOURCE,
            )
            async with get_db(self._session_factory) as db:
                await save_fx_cache(db, usd_to_krw, krw_to_usd, now, FRANKFURTER_SOURCE)
            logger.info(f"FX rates refreshed: 1 USD = {usd_to_krw} KRW")
            return rates

        if cached:
            logger.warning(f"Serving stale FX rates from {cached.last_updated.isoformat()}")
            return cached.model_copy(update={"is_stale": True})

        logger.warning("No FX rates available, using fallback rate")
        return fallback_rates(now, self._config)

    def can_manual_refresh(self) -> bool:
        if self._last_manual_refresh is None:
            return True
        return self._clock() - self._last_manual_refresh > self.manual_cooldown

    def manual_refresh_cooldown(self) -> int:
        """Seconds left before a manual refresh is allowed again."""
        if self._last_manual_refresh is None:
            return 0
        remaining = self.manual_cooldown - (self._clock() - self._last_manual_refresh)
        return max(0, math.ceil(remaining.total_seconds()))

    async def manual_refresh(self) -> FxRates | None:
        if not self.can_manual_refresh():
            logger.info(f"Manual FX refresh refused, {self.manual_refresh_cooldown()}s cooldown left")
            return None
        # Stamp before awaiting so concurrent callers see the cooldown
        self._last_manual_refresh = self._clock()
        return await self.get_rates(force_refresh=True)
