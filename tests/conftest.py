"""Pytest fixtures for testing"""

import pytest
from typing import Generator
from unittest.mock import AsyncMock
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from ledgerflow.api.dependencies import get_rate_service
from ledgerflow.api.main import create_app
from ledgerflow.domain.models import MarketRates
from ledgerflow.infrastructure.clients.rates import RateClient
from ledgerflow.infrastructure.database.models import Base
from ledgerflow.infrastructure.database.repositories import RateStore
from ledgerflow.infrastructure.database.session import get_db
from ledgerflow.services.exchange_rates import ExchangeRateService


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def market_rates() -> MarketRates:
    """Rates as returned by the rate API"""
    return MarketRates(
        usd_to_ves_bcv=36.0,
        usd_to_ves_parallel=40.5,
        last_updated="2026-10-19T12:00:00+00:00",
        source_bcv="PyDolarVe API",
        source_parallel="PyDolarVe API",
    )


@pytest.fixture
def rate_client(market_rates: MarketRates) -> AsyncMock:
    """Rate API client that always answers with market_rates"""
    client = AsyncMock(spec=RateClient)
    client.get_market_rates.return_value = market_rates
    return client


@pytest.fixture
def rate_store(db: Session) -> RateStore:
    return RateStore(TestingSessionLocal)


@pytest.fixture
def rate_service(rate_client: AsyncMock, rate_store: RateStore) -> ExchangeRateService:
    return ExchangeRateService(client=rate_client, store=rate_store, default_rate=36.5)


@pytest.fixture
def client(db: Session, rate_service: ExchangeRateService) -> TestClient:
    """Create FastAPI test client with test database and a fresh rate service"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_rate_service] = lambda: rate_service
    return TestClient(app)
