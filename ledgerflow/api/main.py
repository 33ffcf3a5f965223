"""FastAPI application factory"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from ledgerflow.api.middleware import RequestIDMiddleware, MetricsMiddleware
from ledgerflow.api.v1 import cash, interest, rates, transfers
from ledgerflow.infrastructure.observability.logging import setup_logging
from ledgerflow.config import settings
from ledgerflow.domain.exceptions import DistributionError, TransferEntryNotFoundError

# Setup structured logging
setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="LedgerFlow",
        description="Loan pricing, currency conversion, cash and transfer reconciliation",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Distribution mutations that cannot apply to the submitted state
    @app.exception_handler(DistributionError)
    async def distribution_error_handler(request: Request, exc: DistributionError):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(TransferEntryNotFoundError)
    async def entry_not_found_handler(request: Request, exc: TransferEntryNotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(interest.router, prefix="/v1", tags=["interest"])
    app.include_router(rates.router, prefix="/v1", tags=["rates"])
    app.include_router(cash.router, prefix="/v1", tags=["cash"])
    app.include_router(transfers.router, prefix="/v1", tags=["transfers"])

    return app


app = create_app()
