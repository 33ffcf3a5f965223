"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import List, Optional, Union

from ledgerflow.domain.models import ConversionDirection, RateSource


class InterestRequest(BaseModel):
    """Request body for POST /v1/interest/calculate"""

    principal: float = Field(..., gt=0, description="Loan principal")
    annual_rate_percent: float = Field(..., ge=0, description="Annual interest rate in percent")
    installments: int = Field(..., ge=1, description="Number of monthly installments")


class InterestResponse(BaseModel):
    """Response for POST /v1/interest/calculate"""

    principal: float
    interest_rate: float
    installments: int
    total_amount: float
    total_interest: float
    monthly_payment: float
    effective_annual_rate: float
    profitability_percentage: float
    is_minimum_profitable: bool
    warning_message: Optional[str] = None


class MinimumRateResponse(BaseModel):
    """Response for GET /v1/interest/minimum-rate"""

    principal: float
    installments: int
    minimum_rate: float
    formatted: str


class ScheduleRequest(InterestRequest):
    """Request body for POST /v1/interest/schedule"""

    start_date: Optional[date] = None


class ScheduleRow(BaseModel):
    number: int
    due_date: date
    payment: float
    interest: float
    principal: float
    remaining_balance: float


class ScheduleResponse(BaseModel):
    monthly_payment: float
    total_amount: float
    rows: List[ScheduleRow]


class RatesResponse(BaseModel):
    """Response for GET /v1/rates"""

    market_rate: float
    bcv_rate: Optional[float] = None
    last_updated: str
    is_stale: bool
    is_custom_rate: bool
    custom_rate_value: Optional[str] = None
    effective_rate: float
    effective_rate_source: RateSource


class RefreshResponse(BaseModel):
    """Response for POST /v1/rates/refresh"""

    success: bool
    rate: float
    last_updated: str
    source: str
    error: Optional[str] = None


class CustomRateRequest(BaseModel):
    """Request body for PUT /v1/rates/custom"""

    value: Optional[str] = Field(None, description="Rate as typed by the user")
    enabled: Optional[bool] = None


class ConvertRequest(BaseModel):
    """Request body for POST /v1/rates/convert"""

    amount: float
    direction: Optional[ConversionDirection] = None
    from_currency: Optional[str] = Field(None, description="Used with to_currency when direction is omitted")
    to_currency: Optional[str] = None
    transaction_id: Optional[str] = None
    use_custom_rate: Optional[bool] = None


class ConvertResponse(BaseModel):
    amount: float
    converted_amount: float
    direction: ConversionDirection
    rate: float
    rate_source: RateSource


class HistoricalRateResponse(BaseModel):
    transaction_id: str
    rate: Optional[float] = None


class DenominationSchema(BaseModel):
    """Single banknote line (count is kept as a number so fractional input can be reported)"""

    id: str = ""
    value: float = 0
    count: float = 0


class CashValidationRequest(BaseModel):
    """Request body for POST /v1/cash/validate"""

    denominations: List[DenominationSchema]
    expected_amount: float
    currency: str
    payment_method: str


class CashValidationResponse(BaseModel):
    is_valid: bool
    errors: List[str]
    calculated_amount: float
    expected_amount: float
    summary: str = ""


class FieldValidationRequest(BaseModel):
    """Request body for POST /v1/cash/validate-fields"""

    denominations: List[DenominationSchema]


class FieldValidationResponse(BaseModel):
    errors: List[str]


class StandardDenominationsResponse(BaseModel):
    currency: str
    denominations: List[float]


class InventoryLine(BaseModel):
    value: float
    count: int
    total: float


class CashInventoryResponse(BaseModel):
    """Response for GET /v1/cash/inventory/{account_id}"""

    account_id: str
    currency: str
    denominations: List[InventoryLine]
    total_amount: float
    last_updated: Optional[datetime] = None


class BankAccountSchema(BaseModel):
    id: str
    currency: str
    bank: str = ""
    account_number: str = ""


class TransferEntrySchema(BaseModel):
    id: str
    destination_account_id: str = ""
    amount: float = 0
    receipt_attachment: Optional[str] = None
    notes: Optional[str] = None


class TransferDistributionRequest(BaseModel):
    """Request body for POST /v1/transfers/status and /v1/transfers/auto-distribute"""

    total_amount: float
    currency: str
    accounts: List[BankAccountSchema] = []
    entries: List[TransferEntrySchema] = []


class TransferTotalRequest(TransferDistributionRequest):
    """Request body for POST /v1/transfers/set-total"""

    new_total_amount: float


class TransferEntryUpdateRequest(TransferDistributionRequest):
    """Request body for POST /v1/transfers/update-entry/{entry_id}"""

    field: str = Field(..., description="destination_account_id, amount, receipt_attachment or notes")
    value: Optional[Union[str, float]] = None


class TransferDistributionResponse(BaseModel):
    entries: List[TransferEntrySchema]
    current_sum: float
    difference: float
    is_valid: bool
    message: str
    has_duplicate_destinations: bool
    can_add_entries: bool
    missing_accounts_message: Optional[str] = None
    compatible_account_ids: List[str]
