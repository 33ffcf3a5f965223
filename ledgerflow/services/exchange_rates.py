"""Exchange rate service - owns one rate context per session and keeps it fresh"""

import asyncio
import logging
import time
from collections import OrderedDict
from typing import Dict, Iterable, Optional, Union

from ledgerflow.config import settings
from ledgerflow.domain.currency import ExchangeRateContext, convert_amount, resolve_rate
from ledgerflow.domain.exceptions import RateUnavailableError
from ledgerflow.domain.models import ConversionDirection, ConversionResult, MarketRates, RefreshOutcome
from ledgerflow.infrastructure.clients.rates import RateClient
from ledgerflow.infrastructure.database.repositories import RateStore
from ledgerflow.infrastructure.observability.logging import log_rate_refresh
from ledgerflow.infrastructure.observability.metrics import (
    conversion_counter,
    historical_lookup_counter,
    rate_refresh_counter,
)

logger = logging.getLogger(__name__)


class ExchangeRateService:
    """
    Loads market rates into an ExchangeRateContext and answers conversions from it.

    Fetches only touch the context once they have finished, so conversions
    resolved while a refresh is in flight keep using the rate they saw.
    A failed fetch never clears a previously loaded rate.
    """

    def __init__(
        self,
        client: RateClient,
        store: RateStore,
        context: Optional[ExchangeRateContext] = None,
        cache_seconds: Optional[float] = None,
        default_rate: Optional[float] = None,
    ):
        self.client = client
        self.store = store
        self.default_rate = default_rate if default_rate is not None else settings.default_exchange_rate
        self.context = context or ExchangeRateContext(
            market_rate=self.default_rate,
            last_updated=settings.default_rate_label,
        )
        self.cache_seconds = cache_seconds if cache_seconds is not None else settings.rate_cache_seconds
        self._cache_expiry = 0.0
        self._pending: Dict[str, "asyncio.Future[Optional[float]]"] = {}

    def clear_cache(self) -> None:
        self._cache_expiry = 0.0

    async def load(self) -> RefreshOutcome:
        """Load market rates, reusing the last fetch while it is fresh"""
        if self.context.has_market_rate and time.monotonic() < self._cache_expiry:
            return RefreshOutcome(
                success=True,
                rate=self.context.market_rate,
                last_updated=self.context.last_updated,
                source="cache",
            )
        return await self._fetch()

    async def refresh(self) -> RefreshOutcome:
        """Force a fetch from the rate source, bypassing the cache"""
        self.clear_cache()
        return await self._fetch()

    async def _fetch(self) -> RefreshOutcome:
        start_time = time.time()
        try:
            rates = await self.client.get_market_rates()
        except RateUnavailableError as e:
            outcome = await self._fallback(str(e))
        else:
            self._adopt(rates)
            await self._save(rates)
            outcome = RefreshOutcome(
                success=True,
                rate=rates.usd_to_ves_parallel,
                last_updated=rates.last_updated,
                source="api",
            )

        rate_refresh_counter.labels(outcome=outcome.source).inc()
        log_rate_refresh(
            success=outcome.error is None,
            rate=outcome.rate,
            source=outcome.source,
            duration_ms=(time.time() - start_time) * 1000,
            error=outcome.error,
        )
        return outcome

    async def _fallback(self, error: str) -> RefreshOutcome:
        # Stored rates only stand in when this session never loaded a live one
        if not self.context.has_market_rate:
            try:
                stored = await self.store.get_latest_market_rates()
            except RateUnavailableError as e:
                logger.warning(f"Stored rate fallback failed: {e}")
                stored = None

            if stored is not None:
                self._adopt(stored)
                return RefreshOutcome(
                    success=True,
                    rate=stored.usd_to_ves_parallel,
                    last_updated=stored.last_updated,
                    source="database",
                    error=error,
                )

        return RefreshOutcome(
            success=False,
            rate=self.context.market_rate,
            last_updated=self.context.last_updated,
            source="retained",
            error=error,
        )

    def _adopt(self, rates: MarketRates) -> None:
        self.context.apply_market_rates(rates)
        self._cache_expiry = time.monotonic() + self.cache_seconds

    async def _save(self, rates: MarketRates) -> None:
        try:
            await self.store.save_market_rates(rates)
        except RateUnavailableError as e:
            # The fetched rate is still usable without being stored
            logger.warning(f"Could not save exchange rates: {e}")

    def set_custom_rate(self, value: Optional[str]) -> None:
        """Store the custom rate as typed; it only takes effect in custom mode"""
        self.context.set_custom_rate(value)

    async def set_custom_rate_mode(self, enabled: bool) -> None:
        """Toggle custom mode; switching back to automatic reloads the market rate"""
        self.context.set_custom_rate_mode(enabled)
        if not enabled:
            await self.load()

    async def get_historical_rate(self, transaction_id: str, force: bool = False) -> Optional[float]:
        """
        Rate stored for a transaction, memoized for the life of the context.

        A lookup already running for the same id is shared rather than repeated.

        Raises:
            RateUnavailableError: the store could not be read (nothing is memoized)
        """
        if not force and transaction_id in self.context.historical_rates:
            return self.context.historical_rates[transaction_id]

        task = self._pending.get(transaction_id)
        if task is None:
            task = asyncio.ensure_future(self._lookup_historical_rate(transaction_id))
            self._pending[transaction_id] = task
            task.add_done_callback(lambda _: self._pending.pop(transaction_id, None))
        # One waiter giving up must not cancel the lookup for the others
        return await asyncio.shield(task)

    async def _lookup_historical_rate(self, transaction_id: str) -> Optional[float]:
        rate = await self.store.get_transaction_rate(transaction_id)
        self.context.remember_historical_rate(transaction_id, rate)
        historical_lookup_counter.labels(found=str(rate is not None).lower()).inc()
        return self.context.historical_rates[transaction_id]

    async def load_historical_rates(self, transaction_ids: Iterable[str]) -> Dict[str, Optional[float]]:
        """Resolve many transactions in parallel; ids whose lookup failed are left out"""
        ids = list(dict.fromkeys(transaction_ids))
        missing = [tid for tid in ids if tid not in self.context.historical_rates]

        results = await asyncio.gather(
            *(self.get_historical_rate(tid) for tid in missing),
            return_exceptions=True,
        )
        for tid, result in zip(missing, results):
            if isinstance(result, Exception):
                logger.error(f"Historical rate lookup failed for {tid}: {result}")

        return {tid: self.context.historical_rates[tid] for tid in ids if tid in self.context.historical_rates}

    async def convert(
        self,
        amount: float,
        direction: Union[ConversionDirection, str],
        transaction_id: Optional[str] = None,
        use_custom_rate: Optional[bool] = None,
    ) -> ConversionResult:
        """
        Convert using the best available rate.

        A transaction's historical rate is looked up first when not yet
        memoized; if that lookup fails the conversion falls through to the
        custom or market rate.
        """
        if transaction_id is not None and transaction_id not in self.context.historical_rates:
            try:
                await self.get_historical_rate(transaction_id)
            except RateUnavailableError as e:
                logger.warning(f"Historical rate unavailable for {transaction_id}: {e}")

        resolved = resolve_rate(self.context, transaction_id, use_custom_rate, self.default_rate)
        direction = ConversionDirection(direction)
        converted = convert_amount(amount, resolved.rate, direction)
        conversion_counter.labels(rate_source=resolved.source.value).inc()

        return ConversionResult(
            amount=amount,
            converted_amount=converted,
            direction=direction,
            rate=resolved.rate,
            rate_source=resolved.source,
        )


class RateServiceRegistry:
    """
    One ExchangeRateService per client session.

    Custom rate mode and memoized historical rates belong to a session, so
    each session id gets its own context over the shared client and store.
    The least recently used session is dropped once max_sessions is reached.
    """

    def __init__(
        self,
        client: RateClient,
        store: RateStore,
        max_sessions: Optional[int] = None,
        default_rate: Optional[float] = None,
    ):
        self.client = client
        self.store = store
        self.max_sessions = max_sessions if max_sessions is not None else settings.rate_max_sessions
        self.default_rate = default_rate
        self._services: "OrderedDict[str, ExchangeRateService]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._services)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._services

    def get(self, session_id: str) -> ExchangeRateService:
        service = self._services.get(session_id)
        if service is not None:
            self._services.move_to_end(session_id)
            return service

        service = ExchangeRateService(client=self.client, store=self.store, default_rate=self.default_rate)
        self._services[session_id] = service
        while len(self._services) > self.max_sessions:
            evicted, _ = self._services.popitem(last=False)
            logger.info(f"Dropped rate context for session {evicted}")
        return service
