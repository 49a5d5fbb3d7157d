"""
Exchange Rate Service

Fetches rate tables through a provider and caches the latest one in the
keyed store.

FRESHNESS RULES:
- A cached table is served without a request when its base matches,
  it is younger than the TTL (24h by default) and it covers every
  requested target.
- Otherwise the provider is called once and the result replaces the
  cache entry.
- If the provider fails, the last cached table is returned even if it
  is stale or for another base. convert() copes with either.
- None is returned only when there is nothing cached and the provider
  failed, or when no conversion is needed at all.
"""

from collections.abc import Callable, Iterable
from typing import Optional

import structlog

from identity_hub.audit.logger import AuditLogger
from identity_hub.config import get_settings
from identity_hub.currency.normalizer import detect_foreign_currencies
from identity_hub.models.currency import CachedRates, ExchangeRates
from identity_hub.services.rates.provider import (
    RateProviderInterface,
    RateProviderUnavailableError,
)
from identity_hub.services.storage.interface import StorageError
from identity_hub.services.storage.repositories import RateCache, now_ms

logger = structlog.get_logger(__name__)

MS_PER_HOUR = 60 * 60 * 1000


class ExchangeRateService:
    """Cached access to exchange rates."""

    def __init__(
        self,
        provider: RateProviderInterface,
        cache: RateCache,
        audit_logger: Optional[AuditLogger] = None,
        ttl_hours: Optional[int] = None,
        clock: Callable[[], int] = now_ms,
    ):
        """
        Args:
            provider: Where fresh rates come from.
            cache: Persisted single-entry cache.
            audit_logger: Optional audit trail for fetches and failures.
            ttl_hours: Freshness window; defaults to configuration.
            clock: Returns the current epoch-ms time. Injected by tests.
        """
        self._provider = provider
        self._cache = cache
        self._audit = audit_logger or AuditLogger()
        self._ttl_ms = (ttl_hours or get_settings().exchange_rates.cache_ttl_hours) * MS_PER_HOUR
        self._clock = clock

    def is_fresh(self, cached: CachedRates) -> bool:
        return self._clock() - cached.timestamp < self._ttl_ms

    async def _load_cache(self) -> Optional[CachedRates]:
        try:
            return await self._cache.load()
        except StorageError as e:
            logger.warning("rate_cache_read_failed", error=str(e))
            return None

    async def fetch_rates(
        self,
        base: str,
        targets: Iterable[str],
        force_refresh: bool = False,
    ) -> Optional[ExchangeRates]:
        """
        Rates from `base` into each of `targets`.

        Args:
            base: Currency the rates are quoted from.
            targets: Currencies needed. The base itself is ignored.
            force_refresh: Skip the freshness check and call the provider.

        Returns:
            A rate table, or None if none is needed or none is available.
        """
        base = base.upper()
        wanted = detect_foreign_currencies(targets, base)
        if not wanted:
            return None

        cached = await self._load_cache()
        if (
            not force_refresh
            and cached is not None
            and cached.rates.base == base
            and self.is_fresh(cached)
            and cached.rates.covers(wanted)
        ):
            await self._audit.log_rates_fetched(base, wanted, from_cache=True)
            return cached.rates

        try:
            rates = await self._provider.latest(base, wanted)
        except RateProviderUnavailableError as e:
            await self._audit.log_rates_provider_failed(
                base,
                str(e),
                used_stale_cache=cached is not None,
            )
            return cached.rates if cached is not None else None

        try:
            await self._cache.store(CachedRates(rates=rates, timestamp=self._clock()))
        except StorageError as e:
            logger.warning("rate_cache_write_failed", error=str(e))

        await self._audit.log_rates_fetched(base, wanted, from_cache=False)
        return rates

    async def clear_cache(self) -> bool:
        return await self._cache.clear()
