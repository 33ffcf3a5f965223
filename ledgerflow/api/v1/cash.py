"""Cash endpoints - denomination validation and account inventory"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ledgerflow.api.v1.schemas import (
    CashInventoryResponse,
    CashValidationRequest,
    CashValidationResponse,
    FieldValidationRequest,
    FieldValidationResponse,
    InventoryLine,
    StandardDenominationsResponse,
)
from ledgerflow.config import settings
from ledgerflow.domain.denominations import (
    format_validation_errors,
    standard_denominations,
    summarize_cash_inventory,
    validate_cash_denominations,
    validate_denomination_fields,
)
from ledgerflow.domain.models import Denomination
from ledgerflow.infrastructure.database.repositories import TransactionRepository
from ledgerflow.infrastructure.database.session import get_db
from ledgerflow.infrastructure.observability.metrics import record_cash_validation

router = APIRouter()


@router.post("/cash/validate", response_model=CashValidationResponse)
def validate_cash(request_body: CashValidationRequest):
    """
    Reconcile banknotes against the transaction amount.

    Always answers 200; problems come back in `errors` so every one of them
    can be shown at once.
    """
    denominations = [Denomination(id=d.id, value=d.value, count=d.count) for d in request_body.denominations]
    result = validate_cash_denominations(
        denominations,
        request_body.expected_amount,
        request_body.currency,
        request_body.payment_method,
        cash_currencies=settings.cash_currencies,
        tolerance=settings.amount_tolerance,
    )
    record_cash_validation(result.is_valid)

    return CashValidationResponse(
        is_valid=result.is_valid,
        errors=result.errors,
        calculated_amount=result.calculated_amount,
        expected_amount=result.expected_amount,
        summary=format_validation_errors(result.errors),
    )


@router.post("/cash/validate-fields", response_model=FieldValidationResponse)
def validate_fields(request_body: FieldValidationRequest):
    """Per-line checks used while the user is typing"""
    denominations = [Denomination(id=d.id, value=d.value, count=d.count) for d in request_body.denominations]
    return FieldValidationResponse(errors=validate_denomination_fields(denominations))


@router.get("/cash/denominations/{currency}", response_model=StandardDenominationsResponse)
def get_standard_denominations(currency: str):
    currency = currency.upper()
    return StandardDenominationsResponse(currency=currency, denominations=standard_denominations(currency))


@router.get("/cash/inventory/{account_id}", response_model=CashInventoryResponse)
def get_cash_inventory(
    account_id: str,
    currency: str = Query(..., min_length=3, description="Account currency"),
    db: Session = Depends(get_db),
):
    """Banknotes currently held in a cash account, rebuilt from its cash transactions"""
    movements = TransactionRepository(db).get_cash_movements(account_id)
    inventory = summarize_cash_inventory(movements, currency.upper())

    if inventory is None:
        raise HTTPException(status_code=404, detail="No cash movements for account")

    return CashInventoryResponse(
        account_id=account_id,
        currency=inventory.currency,
        denominations=[InventoryLine(value=d.value, count=d.count, total=d.total) for d in inventory.denominations],
        total_amount=inventory.total_amount,
        last_updated=inventory.last_updated,
    )
