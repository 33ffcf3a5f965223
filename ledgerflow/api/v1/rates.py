"""Exchange rate endpoints - current rate, refresh, custom rate and conversion"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Request

from ledgerflow.api.dependencies import get_rate_service, get_request_id
from ledgerflow.api.v1.schemas import (
    ConvertRequest,
    ConvertResponse,
    CustomRateRequest,
    HistoricalRateResponse,
    RatesResponse,
    RefreshResponse,
)
from ledgerflow.config import settings
from ledgerflow.domain.currency import conversion_direction, resolve_rate
from ledgerflow.domain.exceptions import InvalidArgumentError, InvalidRateError, RateUnavailableError
from ledgerflow.infrastructure.observability.logging import log_conversion
from ledgerflow.services.exchange_rates import ExchangeRateService

router = APIRouter()


def _rates_response(service: ExchangeRateService) -> RatesResponse:
    context = service.context
    effective = resolve_rate(context, default_rate=service.default_rate)
    return RatesResponse(
        market_rate=context.market_rate,
        bcv_rate=context.bcv_rate,
        last_updated=context.last_updated,
        is_stale=context.is_stale,
        is_custom_rate=context.is_custom_rate,
        custom_rate_value=context.custom_rate_value,
        effective_rate=effective.rate,
        effective_rate_source=effective.source,
    )


@router.get("/rates", response_model=RatesResponse)
async def get_rates(service: ExchangeRateService = Depends(get_rate_service)):
    """Current rate state; loads market rates if the cache is empty or expired"""
    await service.load()
    return _rates_response(service)


@router.post("/rates/refresh", response_model=RefreshResponse)
async def refresh_rates(service: ExchangeRateService = Depends(get_rate_service)):
    """
    Force a fetch from the rate source.

    A failed fetch still answers 200: the previous rate is kept and the
    error is reported in the body so the caller can flag the rate as stale.
    """
    outcome = await service.refresh()
    return RefreshResponse(
        success=outcome.success,
        rate=outcome.rate,
        last_updated=outcome.last_updated,
        source=outcome.source,
        error=outcome.error,
    )


@router.put("/rates/custom", response_model=RatesResponse)
async def set_custom_rate(
    request_body: CustomRateRequest,
    service: ExchangeRateService = Depends(get_rate_service),
):
    """Update the custom rate text and/or toggle custom mode"""
    if request_body.value is not None:
        service.set_custom_rate(request_body.value)
    if request_body.enabled is not None:
        await service.set_custom_rate_mode(request_body.enabled)
    return _rates_response(service)


@router.post("/rates/convert", response_model=ConvertResponse)
async def convert(
    request_body: ConvertRequest,
    request: Request,
    service: ExchangeRateService = Depends(get_rate_service),
):
    """Convert between USD and VES with historical > custom > market precedence"""
    request_id = get_request_id(request)
    direction = request_body.direction
    if direction is None:
        if not request_body.from_currency or not request_body.to_currency:
            raise HTTPException(status_code=400, detail="Provide direction or from_currency and to_currency")
        try:
            direction = conversion_direction(
                request_body.from_currency,
                request_body.to_currency,
                settings.conversion_currencies,
            )
        except InvalidArgumentError as e:
            raise HTTPException(status_code=400, detail=str(e))

    try:
        result = await service.convert(
            request_body.amount,
            direction,
            transaction_id=request_body.transaction_id,
            use_custom_rate=request_body.use_custom_rate,
        )
    except InvalidRateError as e:
        logging.error(f"Unusable exchange rate: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=422, detail=str(e))

    log_conversion(
        request_id,
        result.direction.value,
        result.rate,
        result.rate_source.value,
        request_body.transaction_id,
    )
    return ConvertResponse(
        amount=result.amount,
        converted_amount=result.converted_amount,
        direction=result.direction,
        rate=result.rate,
        rate_source=result.rate_source,
    )


@router.get("/rates/historical/{transaction_id}", response_model=HistoricalRateResponse)
async def get_historical_rate(
    transaction_id: str,
    force: bool = False,
    service: ExchangeRateService = Depends(get_rate_service),
):
    """Rate recorded with a transaction (null when none was stored)"""
    try:
        rate = await service.get_historical_rate(transaction_id, force=force)
    except RateUnavailableError as e:
        logging.error(f"Historical rate lookup failed: {e}")
        raise HTTPException(status_code=503, detail="Rate store unavailable")

    return HistoricalRateResponse(transaction_id=transaction_id, rate=rate)
