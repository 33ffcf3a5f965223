"""Loan pricing endpoints - amortization and minimum profitable rate"""

import logging
from dataclasses import asdict

from fastapi import APIRouter, HTTPException, Query

from ledgerflow.api.v1.schemas import (
    InterestRequest,
    InterestResponse,
    MinimumRateResponse,
    ScheduleRequest,
    ScheduleResponse,
    ScheduleRow,
)
from ledgerflow.config import settings
from ledgerflow.domain.amortization import (
    build_amortization_schedule,
    calculate_interest,
    calculate_minimum_interest_rate,
    format_percentage,
)
from ledgerflow.domain.exceptions import InvalidArgumentError
from ledgerflow.domain.models import LoanTerms
from ledgerflow.infrastructure.observability.metrics import minimum_rate_search_counter

router = APIRouter()


@router.post("/interest/calculate", response_model=InterestResponse)
def calculate(request_body: InterestRequest):
    """
    Price an installment loan.

    Returns monthly payment, totals, profitability and a warning when the
    loan earns less than the minimum profitability.
    """
    try:
        result = calculate_interest(
            request_body.principal,
            request_body.annual_rate_percent,
            request_body.installments,
            settings.minimum_profitability_percent,
        )
    except InvalidArgumentError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not result.is_minimum_profitable:
        logging.info(
            "Loan below minimum profitability",
            extra={"profitability_percentage": result.profitability_percentage},
        )

    return InterestResponse(**asdict(result))


@router.get("/interest/minimum-rate", response_model=MinimumRateResponse)
def minimum_rate(
    principal: float = Query(..., gt=0, description="Loan principal"),
    installments: int = Query(..., ge=1, description="Number of monthly installments"),
):
    """Smallest annual rate that reaches the minimum profitability"""
    try:
        rate = calculate_minimum_interest_rate(
            principal,
            installments,
            minimum_profitability=settings.minimum_profitability_percent,
            tolerance=settings.rate_search_tolerance,
            max_iterations=settings.rate_search_max_iterations,
        )
    except InvalidArgumentError as e:
        raise HTTPException(status_code=400, detail=str(e))

    minimum_rate_search_counter.inc()
    return MinimumRateResponse(
        principal=principal,
        installments=installments,
        minimum_rate=rate,
        formatted=format_percentage(rate),
    )


@router.post("/interest/schedule", response_model=ScheduleResponse)
def schedule(request_body: ScheduleRequest):
    """Month-by-month breakdown of interest and principal"""
    terms = LoanTerms(
        principal=request_body.principal,
        annual_rate_percent=request_body.annual_rate_percent,
        installment_count=request_body.installments,
    )
    try:
        rows = build_amortization_schedule(terms, start_date=request_body.start_date)
        result = calculate_interest(terms.principal, terms.annual_rate_percent, terms.installment_count)
    except InvalidArgumentError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return ScheduleResponse(
        monthly_payment=result.monthly_payment,
        total_amount=result.total_amount,
        rows=[ScheduleRow(**asdict(row)) for row in rows],
    )
