"""Dependency injection for FastAPI endpoints"""

from functools import lru_cache

from fastapi import Depends, Request
from ledgerflow.infrastructure.clients.rates import RateClient
from ledgerflow.infrastructure.database.repositories import RateStore
from ledgerflow.infrastructure.database.session import SessionLocal
from ledgerflow.services.exchange_rates import ExchangeRateService, RateServiceRegistry

SESSION_HEADER = "X-Session-ID"
DEFAULT_SESSION = "default"


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


@lru_cache
def get_rate_registry() -> RateServiceRegistry:
    """Provide the process-wide registry of per-session rate services"""
    return RateServiceRegistry(client=RateClient(), store=RateStore(SessionLocal))


def get_rate_service(
    request: Request,
    registry: RateServiceRegistry = Depends(get_rate_registry),
) -> ExchangeRateService:
    """
    Rate service for the calling session.

    Clients that send no X-Session-ID header share the default session.
    """
    session_id = request.headers.get(SESSION_HEADER) or DEFAULT_SESSION
    return registry.get(session_id)
