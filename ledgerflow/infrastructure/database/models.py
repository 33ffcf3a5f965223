"""SQLAlchemy ORM models for stored exchange rates and transactions"""

import uuid
from sqlalchemy import Column, String, Float, DateTime, Date, Integer, ForeignKey, Text, JSON
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class ExchangeRateRecord(Base):
    """Daily USD rate snapshot (to_currency is VES_BCV or VES_PAR)"""

    __tablename__ = "exchange_rates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    from_currency = Column(String(8), nullable=False)
    to_currency = Column(String(8), nullable=False, index=True)
    rate = Column(Float, nullable=False)
    rate_date = Column(Date, nullable=False, index=True)
    source = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    transactions = relationship("TransactionRecord", back_populates="exchange_rate")


class TransactionRecord(Base):
    """Recorded transaction, linked to the rate in effect when it was entered"""

    __tablename__ = "transactions"

    id = Column(Text, primary_key=True, default=lambda: str(uuid.uuid4()))
    bank_account_id = Column(Text, nullable=True, index=True)
    type = Column(Text, nullable=False)
    amount = Column(Float, nullable=False)
    currency = Column(String(8), nullable=False)
    payment_method = Column(Text, nullable=True)
    denominations = Column(JSON(none_as_null=True), nullable=True)  # {"100": 2, "50": 1}
    exchange_rate_id = Column(Integer, ForeignKey("exchange_rates.id", ondelete="SET NULL"), nullable=True)
    date = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    exchange_rate = relationship("ExchangeRateRecord", back_populates="transactions")
