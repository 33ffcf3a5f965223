"""Transfer distribution endpoints - balance check, even split, total sync and entry add/update/remove"""

from fastapi import APIRouter, HTTPException

from ledgerflow.api.v1.schemas import (
    TransferDistributionRequest,
    TransferDistributionResponse,
    TransferEntrySchema,
    TransferEntryUpdateRequest,
    TransferTotalRequest,
)
from ledgerflow.config import settings
from ledgerflow.domain.models import BankAccount, TransferEntry
from ledgerflow.domain.transfers import TransferDistribution

router = APIRouter()


def _distribution(request_body: TransferDistributionRequest) -> TransferDistribution:
    return TransferDistribution(
        total_amount=request_body.total_amount,
        currency=request_body.currency,
        accounts=[BankAccount(**account.model_dump()) for account in request_body.accounts],
        entries=[TransferEntry(**entry.model_dump()) for entry in request_body.entries],
        tolerance=settings.amount_tolerance,
    )


def _response(distribution: TransferDistribution) -> TransferDistributionResponse:
    status = distribution.status()
    return TransferDistributionResponse(
        entries=[
            TransferEntrySchema(
                id=entry.id,
                destination_account_id=entry.destination_account_id,
                amount=entry.amount,
                receipt_attachment=entry.receipt_attachment,
                notes=entry.notes,
            )
            for entry in distribution.entries
        ],
        current_sum=status.current_sum,
        difference=status.difference,
        is_valid=status.is_valid,
        message=status.message,
        has_duplicate_destinations=status.has_duplicate_destinations,
        can_add_entries=status.can_add_entries,
        missing_accounts_message=status.missing_accounts_message,
        compatible_account_ids=[account.id for account in distribution.compatible_accounts],
    )


@router.post("/transfers/status", response_model=TransferDistributionResponse)
def transfer_status(request_body: TransferDistributionRequest):
    """Running balance of a distribution; an empty entry list starts with one entry for the total"""
    return _response(_distribution(request_body))


@router.post("/transfers/auto-distribute", response_model=TransferDistributionResponse)
def auto_distribute(request_body: TransferDistributionRequest):
    """Split the total evenly across the given entries (rounding residual is not corrected)"""
    distribution = _distribution(request_body)
    distribution.auto_distribute()
    return _response(distribution)


@router.post("/transfers/add-entry", response_model=TransferDistributionResponse)
def add_entry(request_body: TransferDistributionRequest):
    """Append an entry holding the unallocated remainder (409 without a compatible account)"""
    distribution = _distribution(request_body)
    distribution.add_entry()
    return _response(distribution)


@router.post("/transfers/remove-entry/{entry_id}", response_model=TransferDistributionResponse)
def remove_entry(entry_id: str, request_body: TransferDistributionRequest):
    """Drop one entry; the last remaining entry cannot be removed"""
    distribution = _distribution(request_body)
    distribution.remove_entry(entry_id)
    return _response(distribution)


@router.post("/transfers/set-total", response_model=TransferDistributionResponse)
def set_total(request_body: TransferTotalRequest):
    """Change the parent amount; a lone entry follows it, several entries are left as they are"""
    distribution = _distribution(request_body)
    distribution.set_total_amount(request_body.new_total_amount)
    return _response(distribution)


@router.post("/transfers/update-entry/{entry_id}", response_model=TransferDistributionResponse)
def update_entry(entry_id: str, request_body: TransferEntryUpdateRequest):
    """Set one field of an entry; amounts that do not parse become 0"""
    distribution = _distribution(request_body)
    value = request_body.value
    if request_body.field != "amount" and value is not None:
        value = str(value)
    elif request_body.field == "destination_account_id":
        value = ""
    try:
        distribution.update_field(entry_id, request_body.field, value)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _response(distribution)
