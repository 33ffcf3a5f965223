"""Amortization calculator - installment loan pricing and minimum profitable rate"""

import math
from datetime import date
from typing import List, Optional

from ledgerflow.domain.exceptions import InvalidArgumentError
from ledgerflow.domain.models import AmortizationResult, AmortizationRow, LoanTerms
from ledgerflow.utils.date_utils import add_months

MINIMUM_PROFITABILITY_PERCENT = 10.0
RATE_SEARCH_UPPER_BOUND = 100.0  # % annual
RATE_SEARCH_TOLERANCE = 0.01  # percentage points
RATE_SEARCH_MAX_ITERATIONS = 64


def _validate_terms(principal: float, annual_rate_percent: float, installments: int) -> None:
    if isinstance(installments, bool) or not isinstance(installments, int):
        raise InvalidArgumentError(f"installments must be an integer, got {installments!r}")
    if not math.isfinite(principal) or principal <= 0:
        raise InvalidArgumentError(f"principal must be positive, got {principal}")
    if not math.isfinite(annual_rate_percent) or annual_rate_percent < 0:
        raise InvalidArgumentError(f"annual rate must be non-negative, got {annual_rate_percent}")
    if installments <= 0:
        raise InvalidArgumentError(f"installments must be positive, got {installments}")


def _monthly_payment(principal: float, monthly_rate: float, installments: int) -> float:
    if monthly_rate == 0:
        return principal / installments
    growth = (1 + monthly_rate) ** installments
    return principal * (monthly_rate * growth) / (growth - 1)


def calculate_interest(
    principal: float,
    annual_rate_percent: float,
    installments: int,
    minimum_profitability: float = MINIMUM_PROFITABILITY_PERCENT,
) -> AmortizationResult:
    """
    Price a fixed-rate installment loan and check it against the minimum profitability.

    Requirements:
    - Standard fixed-payment amortization, monthly compounding
    - Zero rate degenerates to principal / installments
    - effective_annual_rate is a linear annualization of the per-cycle return,
      (total/principal - 1) * (12/installments) * 100, not a compounded APR
    - Nothing is rounded here; rounding belongs to presentation

    Raises:
        InvalidArgumentError: principal <= 0, rate < 0 or installments not a positive integer

    Example:
        calculate_interest(1000, 12, 12)
        → monthly_payment ≈ 88.85, total_amount ≈ 1066.19, profitability ≈ 6.62% (warning)
    """
    _validate_terms(principal, annual_rate_percent, installments)

    monthly_rate = annual_rate_percent / 100 / 12
    monthly_payment = _monthly_payment(principal, monthly_rate, installments)
    total_amount = principal if monthly_rate == 0 else monthly_payment * installments

    total_interest = total_amount - principal
    effective_annual_rate = (total_amount / principal - 1) * (12 / installments) * 100
    profitability_percentage = total_interest / principal * 100
    is_minimum_profitable = profitability_percentage >= minimum_profitability

    warning_message = None
    if not is_minimum_profitable:
        warning_message = (
            f"ALERTA: La rentabilidad es del {profitability_percentage:.2f}%, "
            f"menor al {minimum_profitability:g}% mínimo requerido. "
            "Se recomienda ajustar la tasa de interés."
        )

    return AmortizationResult(
        principal=principal,
        interest_rate=annual_rate_percent,
        installments=installments,
        total_amount=total_amount,
        total_interest=total_interest,
        monthly_payment=monthly_payment,
        effective_annual_rate=effective_annual_rate,
        profitability_percentage=profitability_percentage,
        is_minimum_profitable=is_minimum_profitable,
        warning_message=warning_message,
    )


def calculate_minimum_interest_rate(
    principal: float,
    installments: int,
    minimum_profitability: float = MINIMUM_PROFITABILITY_PERCENT,
    tolerance: float = RATE_SEARCH_TOLERANCE,
    max_iterations: int = RATE_SEARCH_MAX_ITERATIONS,
) -> float:
    """
    Smallest annual rate (%) whose total repayment reaches principal * (1 + minimum).

    Binary search over [0, 100] until the bracket is narrower than `tolerance`
    or `max_iterations` halvings have run. total_amount is non-decreasing in
    the rate, so the bracket always contains the answer. When even 100% falls
    short (e.g. a single installment) the result sits at the upper bound.

    Returns:
        Midpoint of the final bracket
    """
    target_total = principal * (1 + minimum_profitability / 100)

    low = 0.0
    high = RATE_SEARCH_UPPER_BOUND
    iterations = 0
    while high - low > tolerance and iterations < max_iterations:
        mid = (low + high) / 2
        calculation = calculate_interest(principal, mid, installments, minimum_profitability)

        if calculation.total_amount < target_total:
            low = mid
        else:
            high = mid
        iterations += 1

    return (low + high) / 2


def build_amortization_schedule(
    terms: LoanTerms,
    start_date: Optional[date] = None,
) -> List[AmortizationRow]:
    """
    Break a loan into monthly rows of interest and principal.

    Requirements:
    - One row per installment, due one month apart
    - Interest accrues on the remaining balance at annual_rate / 12
    - Last row absorbs floating drift so the balance closes at exactly 0

    Args:
        terms: Loan principal, annual rate and installment count
        start_date: First due date (default: one month from today)
    """
    result = calculate_interest(terms.principal, terms.annual_rate_percent, terms.installment_count)

    if start_date is None:
        start_date = add_months(date.today(), 1)

    monthly_rate = terms.annual_rate_percent / 100 / 12
    balance = terms.principal
    rows = []
    for i in range(terms.installment_count):
        interest = balance * monthly_rate
        if i == terms.installment_count - 1:
            principal_part = balance
            payment = balance + interest
        else:
            payment = result.monthly_payment
            principal_part = payment - interest
        balance = balance - principal_part

        rows.append(
            AmortizationRow(
                number=i + 1,
                due_date=add_months(start_date, i),
                payment=payment,
                interest=interest,
                principal=principal_part,
                remaining_balance=max(balance, 0.0),
            )
        )

    return rows


def format_percentage(value: float, decimals: int = 2) -> str:
    return f"{value:.{decimals}f}%"


def format_currency(value: float, currency: str = "USD") -> str:
    return f"{currency} {value:,.2f}"
