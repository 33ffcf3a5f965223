"""Data access layer for exchange rates and cash movements"""

import asyncio
import logging
from datetime import date, datetime, time, timezone
from typing import Callable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ledgerflow.domain.exceptions import RateUnavailableError
from ledgerflow.domain.models import CashMovement, MarketRates
from ledgerflow.infrastructure.database.models import ExchangeRateRecord, TransactionRecord

logger = logging.getLogger(__name__)

USD = "USD"
VES_BCV = "VES_BCV"
VES_PARALLEL = "VES_PAR"


class ExchangeRateRepository:
    """Repository for stored exchange rates"""

    def __init__(self, db: Session):
        self.db = db

    def get_transaction_rate(self, transaction_id: str) -> Optional[float]:
        """Rate linked to a transaction when it was recorded, if any"""
        transaction = self.db.get(TransactionRecord, transaction_id)
        if transaction is None or transaction.exchange_rate is None:
            return None
        return transaction.exchange_rate.rate

    def get_latest_rate(self, from_currency: str, to_currency: str) -> Optional[ExchangeRateRecord]:
        return (
            self.db.query(ExchangeRateRecord)
            .filter(
                ExchangeRateRecord.from_currency == from_currency,
                ExchangeRateRecord.to_currency == to_currency,
            )
            .order_by(ExchangeRateRecord.rate_date.desc(), ExchangeRateRecord.id.desc())
            .first()
        )

    def has_rate_for_today(self, from_currency: str, to_currency: str) -> bool:
        return (
            self.db.query(ExchangeRateRecord.id)
            .filter(
                ExchangeRateRecord.from_currency == from_currency,
                ExchangeRateRecord.to_currency == to_currency,
                ExchangeRateRecord.rate_date == date.today(),
            )
            .first()
            is not None
        )

    def save_usd_to_ves_rates(
        self,
        bcv_rate: float,
        parallel_rate: float,
        source: Optional[str] = None,
    ) -> Tuple[ExchangeRateRecord, ExchangeRateRecord]:
        today = date.today()
        bcv = ExchangeRateRecord(from_currency=USD, to_currency=VES_BCV, rate=bcv_rate, rate_date=today, source=source)
        parallel = ExchangeRateRecord(
            from_currency=USD, to_currency=VES_PARALLEL, rate=parallel_rate, rate_date=today, source=source
        )
        self.db.add_all([bcv, parallel])
        self.db.flush()
        return bcv, parallel

    def get_latest_market_rates(self) -> Optional[MarketRates]:
        """Most recent stored BCV + parallel pair, or None if either is missing"""
        bcv = self.get_latest_rate(USD, VES_BCV)
        parallel = self.get_latest_rate(USD, VES_PARALLEL)
        if bcv is None or parallel is None:
            return None

        return MarketRates(
            usd_to_ves_bcv=bcv.rate,
            usd_to_ves_parallel=parallel.rate,
            last_updated=datetime.combine(bcv.rate_date, time.min, tzinfo=timezone.utc).isoformat(),
            source_bcv="Database (BCV)",
            source_parallel="Database (Parallel)",
        )


class TransactionRepository:
    """Repository for recorded transactions"""

    def __init__(self, db: Session):
        self.db = db

    def get_cash_movements(self, account_id: str) -> List[CashMovement]:
        """Transactions of an account that carry a denomination breakdown, oldest first"""
        records = (
            self.db.query(TransactionRecord)
            .filter(
                TransactionRecord.bank_account_id == account_id,
                TransactionRecord.denominations.isnot(None),
            )
            .order_by(TransactionRecord.date.asc())
            .all()
        )
        return [
            CashMovement(
                transaction_type=record.type,
                payment_method=record.payment_method,
                denominations=record.denominations,
                date=record.date,
            )
            for record in records
        ]


class RateStore:
    """
    Async facade over ExchangeRateRepository.

    Each call runs in a worker thread with its own session so that many
    historical lookups can run in parallel.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def _run(self, operation: Callable[[ExchangeRateRepository], object], commit: bool = False):
        db = self.session_factory()
        try:
            result = operation(ExchangeRateRepository(db))
            if commit:
                db.commit()
            return result
        except SQLAlchemyError as e:
            db.rollback()
            raise RateUnavailableError(f"Rate store error: {e}") from e
        finally:
            db.close()

    async def get_transaction_rate(self, transaction_id: str) -> Optional[float]:
        return await asyncio.to_thread(self._run, lambda repo: repo.get_transaction_rate(transaction_id))

    async def get_latest_market_rates(self) -> Optional[MarketRates]:
        return await asyncio.to_thread(self._run, lambda repo: repo.get_latest_market_rates())

    async def save_market_rates(self, rates: MarketRates) -> bool:
        """Persist today's rates once per day; returns whether anything was written"""

        def save(repo: ExchangeRateRepository) -> bool:
            if repo.has_rate_for_today(USD, VES_BCV) and repo.has_rate_for_today(USD, VES_PARALLEL):
                return False
            repo.save_usd_to_ves_rates(rates.usd_to_ves_bcv, rates.usd_to_ves_parallel, rates.source_parallel)
            return True

        saved = await asyncio.to_thread(self._run, save, True)
        if saved:
            logger.info("Exchange rates saved to database")
        return saved
