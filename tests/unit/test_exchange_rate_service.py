"""Unit tests for ExchangeRateService caching, fallback and historical lookups"""

import asyncio
import pytest
from datetime import date
from unittest.mock import AsyncMock
from ledgerflow.domain.exceptions import RateUnavailableError
from ledgerflow.domain.models import ConversionDirection, MarketRates, RateSource
from ledgerflow.infrastructure.database.models import ExchangeRateRecord, TransactionRecord
from ledgerflow.infrastructure.database.repositories import RateStore
from ledgerflow.services.exchange_rates import ExchangeRateService, RateServiceRegistry


@pytest.fixture
def mock_store() -> AsyncMock:
    store = AsyncMock(spec=RateStore)
    store.get_latest_market_rates.return_value = None
    store.get_transaction_rate.return_value = None
    store.save_market_rates.return_value = True
    return store


@pytest.fixture
def mocked_service(rate_client: AsyncMock, mock_store: AsyncMock) -> ExchangeRateService:
    return ExchangeRateService(client=rate_client, store=mock_store, default_rate=36.5)


class TestMarketRateLoading:
    async def test_load_adopts_parallel_rate(self, rate_service: ExchangeRateService):
        outcome = await rate_service.load()

        assert outcome.success is True
        assert outcome.source == "api"
        assert outcome.rate == 40.5
        assert rate_service.context.market_rate == 40.5
        assert rate_service.context.bcv_rate == 36.0
        assert rate_service.context.is_stale is False

    async def test_load_reuses_cached_rates(self, rate_service: ExchangeRateService, rate_client: AsyncMock):
        await rate_service.load()
        outcome = await rate_service.load()

        assert outcome.source == "cache"
        assert outcome.rate == 40.5
        rate_client.get_market_rates.assert_awaited_once()

    async def test_expired_cache_fetches_again(self, rate_client: AsyncMock, mock_store: AsyncMock):
        service = ExchangeRateService(client=rate_client, store=mock_store, cache_seconds=0)

        await service.load()
        await service.load()

        assert rate_client.get_market_rates.await_count == 2

    async def test_refresh_bypasses_cache(self, rate_service: ExchangeRateService, rate_client: AsyncMock):
        await rate_service.load()
        outcome = await rate_service.refresh()

        assert outcome.source == "api"
        assert rate_client.get_market_rates.await_count == 2

    async def test_successful_fetch_is_stored(self, rate_service: ExchangeRateService, rate_store: RateStore):
        await rate_service.load()

        stored = await rate_store.get_latest_market_rates()

        assert stored.usd_to_ves_bcv == 36.0
        assert stored.usd_to_ves_parallel == 40.5

    async def test_failed_refresh_keeps_previous_rate(self, rate_service: ExchangeRateService, rate_client: AsyncMock):
        await rate_service.load()
        rate_client.get_market_rates.side_effect = RateUnavailableError("Rate API error: 503")

        outcome = await rate_service.refresh()

        assert outcome.success is False
        assert outcome.source == "retained"
        assert outcome.rate == 40.5
        assert "503" in outcome.error
        assert rate_service.context.market_rate == 40.5
        assert rate_service.context.has_market_rate is True

    async def test_failed_first_fetch_uses_stored_rates(
        self,
        rate_service: ExchangeRateService,
        rate_client: AsyncMock,
        rate_store: RateStore,
    ):
        await rate_store.save_market_rates(
            MarketRates(
                usd_to_ves_bcv=35.0,
                usd_to_ves_parallel=39.0,
                last_updated="2026-10-18T12:00:00+00:00",
                source_bcv="PyDolarVe API",
                source_parallel="PyDolarVe API",
            )
        )
        rate_client.get_market_rates.side_effect = RateUnavailableError("Rate API timeout after 10.0s")

        outcome = await rate_service.load()

        assert outcome.success is True
        assert outcome.source == "database"
        assert outcome.rate == 39.0
        assert outcome.error is not None
        assert rate_service.context.market_rate == 39.0

    async def test_failed_fetch_without_stored_rates_keeps_default(
        self,
        rate_service: ExchangeRateService,
        rate_client: AsyncMock,
    ):
        rate_client.get_market_rates.side_effect = RateUnavailableError("Rate API unreachable")

        outcome = await rate_service.load()
        result = await rate_service.convert(100, ConversionDirection.USD_TO_VES)

        assert outcome.success is False
        assert outcome.rate == 36.5
        assert rate_service.context.is_stale is True
        assert rate_service.context.last_updated == "Sin datos recientes"
        assert result.rate_source is RateSource.DEFAULT
        assert result.converted_amount == pytest.approx(3650)

    async def test_store_read_failure_during_fallback(
        self,
        mocked_service: ExchangeRateService,
        rate_client: AsyncMock,
        mock_store: AsyncMock,
    ):
        rate_client.get_market_rates.side_effect = RateUnavailableError("Rate API unreachable")
        mock_store.get_latest_market_rates.side_effect = RateUnavailableError("Rate store error")

        outcome = await mocked_service.load()

        assert outcome.source == "retained"
        assert outcome.success is False

    async def test_store_save_failure_does_not_fail_refresh(
        self,
        mocked_service: ExchangeRateService,
        mock_store: AsyncMock,
    ):
        mock_store.save_market_rates.side_effect = RateUnavailableError("Rate store error")

        outcome = await mocked_service.refresh()

        assert outcome.success is True
        assert outcome.source == "api"
        assert mocked_service.context.market_rate == 40.5

    async def test_conversion_during_refresh_uses_previous_rate(
        self,
        mocked_service: ExchangeRateService,
        rate_client: AsyncMock,
        market_rates: MarketRates,
    ):
        await mocked_service.load()
        release = asyncio.Event()
        newer = MarketRates(
            usd_to_ves_bcv=37.0,
            usd_to_ves_parallel=42.0,
            last_updated="2026-10-19T18:00:00+00:00",
            source_bcv=market_rates.source_bcv,
            source_parallel=market_rates.source_parallel,
        )

        async def slow_fetch():
            await release.wait()
            return newer

        rate_client.get_market_rates.side_effect = slow_fetch
        refresh = asyncio.create_task(mocked_service.refresh())
        await asyncio.sleep(0)

        during = await mocked_service.convert(1, ConversionDirection.USD_TO_VES)
        release.set()
        await refresh
        after = await mocked_service.convert(1, ConversionDirection.USD_TO_VES)

        assert during.rate == 40.5
        assert after.rate == 42.0


class TestCustomRate:
    async def test_custom_rate_used_in_custom_mode(self, mocked_service: ExchangeRateService):
        await mocked_service.load()
        await mocked_service.set_custom_rate_mode(True)
        mocked_service.set_custom_rate("45")

        result = await mocked_service.convert(100, "USD_TO_VES")

        assert result.rate == 45.0
        assert result.rate_source is RateSource.CUSTOM
        assert result.converted_amount == pytest.approx(4500)

    async def test_leaving_custom_mode_reloads_market_rate(
        self,
        rate_client: AsyncMock,
        mock_store: AsyncMock,
    ):
        service = ExchangeRateService(client=rate_client, store=mock_store, cache_seconds=0)
        await service.set_custom_rate_mode(True)
        service.set_custom_rate("45")

        await service.set_custom_rate_mode(False)
        result = await service.convert(100, ConversionDirection.USD_TO_VES)

        rate_client.get_market_rates.assert_awaited_once()
        assert result.rate_source is RateSource.MARKET
        assert result.rate == 40.5


class TestHistoricalRates:
    async def test_lookup_is_memoized(self, mocked_service: ExchangeRateService, mock_store: AsyncMock):
        mock_store.get_transaction_rate.return_value = 40.0

        first = await mocked_service.get_historical_rate("tx-1")
        second = await mocked_service.get_historical_rate("tx-1")

        assert first == second == 40.0
        mock_store.get_transaction_rate.assert_awaited_once_with("tx-1")

    async def test_force_repeats_lookup(self, mocked_service: ExchangeRateService, mock_store: AsyncMock):
        mock_store.get_transaction_rate.return_value = 40.0
        await mocked_service.get_historical_rate("tx-1")
        mock_store.get_transaction_rate.return_value = 41.0

        rate = await mocked_service.get_historical_rate("tx-1", force=True)

        assert rate == 41.0
        assert mock_store.get_transaction_rate.await_count == 2

    async def test_missing_rate_is_memoized_as_none(self, mocked_service: ExchangeRateService, mock_store: AsyncMock):
        assert await mocked_service.get_historical_rate("tx-9") is None
        assert await mocked_service.get_historical_rate("tx-9") is None

        assert "tx-9" in mocked_service.context.historical_rates
        mock_store.get_transaction_rate.assert_awaited_once()

    async def test_concurrent_lookups_share_one_query(self, mocked_service: ExchangeRateService, mock_store: AsyncMock):
        async def slow_lookup(transaction_id):
            await asyncio.sleep(0.01)
            return 40.0

        mock_store.get_transaction_rate.side_effect = slow_lookup

        rates = await asyncio.gather(*(mocked_service.get_historical_rate("tx-1") for _ in range(5)))

        assert rates == [40.0] * 5
        mock_store.get_transaction_rate.assert_awaited_once()

    async def test_cancelled_waiter_leaves_shared_lookup_running(
        self, mocked_service: ExchangeRateService, mock_store: AsyncMock
    ):
        released = asyncio.Event()

        async def gated_lookup(transaction_id):
            await released.wait()
            return 40.0

        mock_store.get_transaction_rate.side_effect = gated_lookup

        first = asyncio.create_task(mocked_service.get_historical_rate("tx-1"))
        second = asyncio.create_task(mocked_service.get_historical_rate("tx-1"))
        await asyncio.sleep(0)

        first.cancel()
        released.set()

        assert await second == 40.0
        with pytest.raises(asyncio.CancelledError):
            await first
        assert mocked_service.context.historical_rates["tx-1"] == 40.0
        mock_store.get_transaction_rate.assert_awaited_once()

    async def test_failed_lookup_is_not_memoized(self, mocked_service: ExchangeRateService, mock_store: AsyncMock):
        mock_store.get_transaction_rate.side_effect = RateUnavailableError("Rate store error")

        with pytest.raises(RateUnavailableError):
            await mocked_service.get_historical_rate("tx-1")

        assert "tx-1" not in mocked_service.context.historical_rates

        mock_store.get_transaction_rate.side_effect = None
        mock_store.get_transaction_rate.return_value = 40.0
        assert await mocked_service.get_historical_rate("tx-1") == 40.0

    async def test_load_historical_rates_skips_failures(
        self,
        mocked_service: ExchangeRateService,
        mock_store: AsyncMock,
    ):
        async def lookup(transaction_id):
            if transaction_id == "tx-3":
                raise RateUnavailableError("Rate store error")
            return {"tx-1": 40.0, "tx-2": None}[transaction_id]

        mock_store.get_transaction_rate.side_effect = lookup

        rates = await mocked_service.load_historical_rates(["tx-1", "tx-2", "tx-3", "tx-1"])

        assert rates == {"tx-1": 40.0, "tx-2": None}
        assert mock_store.get_transaction_rate.await_count == 3

    async def test_historical_rate_wins_in_conversion(self, mocked_service: ExchangeRateService, mock_store: AsyncMock):
        mock_store.get_transaction_rate.return_value = 40.0
        await mocked_service.load()
        await mocked_service.set_custom_rate_mode(True)
        mocked_service.set_custom_rate("45")

        historical = await mocked_service.convert(100, ConversionDirection.USD_TO_VES, transaction_id="tx-1")
        current = await mocked_service.convert(100, ConversionDirection.USD_TO_VES)

        assert historical.rate_source is RateSource.HISTORICAL
        assert historical.converted_amount == pytest.approx(4000)
        assert current.rate_source is RateSource.CUSTOM
        assert current.converted_amount == pytest.approx(4500)

    async def test_failed_historical_lookup_falls_through(
        self,
        mocked_service: ExchangeRateService,
        mock_store: AsyncMock,
    ):
        mock_store.get_transaction_rate.side_effect = RateUnavailableError("Rate store error")
        await mocked_service.load()

        result = await mocked_service.convert(4050, ConversionDirection.VES_TO_USD, transaction_id="tx-1")

        assert result.rate_source is RateSource.MARKET
        assert result.converted_amount == pytest.approx(100)

    async def test_historical_rate_from_database(
        self,
        rate_service: ExchangeRateService,
        db,
    ):
        rate = ExchangeRateRecord(from_currency="USD", to_currency="VES_PAR", rate=38.25, rate_date=date(2026, 9, 1))
        db.add(rate)
        db.flush()
        db.add(TransactionRecord(id="tx-db", type="sale", amount=100, currency="USD", exchange_rate_id=rate.id))
        db.commit()

        assert await rate_service.get_historical_rate("tx-db") == 38.25
        assert await rate_service.get_historical_rate("tx-none") is None



class TestRateServiceRegistry:
    @pytest.fixture
    def registry(self, rate_client: AsyncMock, mock_store: AsyncMock) -> RateServiceRegistry:
        return RateServiceRegistry(client=rate_client, store=mock_store, max_sessions=2, default_rate=36.5)

    def test_same_session_gets_same_service(self, registry: RateServiceRegistry):
        assert registry.get("a") is registry.get("a")
        assert len(registry) == 1

    async def test_sessions_have_separate_contexts(self, registry: RateServiceRegistry):
        first = registry.get("a")
        second = registry.get("b")

        first.set_custom_rate("45")
        await first.set_custom_rate_mode(True)
        await second.load()

        assert first.context is not second.context
        assert first.context.is_custom_rate is True
        assert second.context.is_custom_rate is False
        assert (await second.convert(1, ConversionDirection.USD_TO_VES)).rate == 40.5
        assert (await first.convert(1, ConversionDirection.USD_TO_VES)).rate == 45.0

    def test_least_recent_session_is_dropped(self, registry: RateServiceRegistry):
        first = registry.get("a")
        registry.get("b")
        registry.get("a")
        registry.get("c")

        assert "a" in registry
        assert "b" not in registry
        assert "c" in registry
        assert registry.get("a") is first

    def test_services_share_client_and_store(self, registry: RateServiceRegistry, rate_client, mock_store):
        service = registry.get("a")

        assert service.client is rate_client
        assert service.store is mock_store
        assert service.default_rate == 36.5
