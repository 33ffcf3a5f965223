"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class LoanTerms:
    """Fixed-rate installment loan input"""

    principal: float
    annual_rate_percent: float
    installment_count: int


@dataclass(frozen=True)
class AmortizationResult:
    """Output of an amortization calculation, never rounded"""

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


@dataclass(frozen=True)
class AmortizationRow:
    """Single payment in an amortization schedule"""

    number: int
    due_date: date
    payment: float
    interest: float
    principal: float
    remaining_balance: float


class ConversionDirection(str, Enum):
    USD_TO_VES = "USD_TO_VES"
    VES_TO_USD = "VES_TO_USD"


class RateSource(str, Enum):
    """Where the rate used for a conversion came from"""

    HISTORICAL = "historical"
    CUSTOM = "custom"
    MARKET = "market"
    DEFAULT = "default"


@dataclass(frozen=True)
class ResolvedRate:
    rate: float
    source: RateSource


@dataclass(frozen=True)
class MarketRates:
    """USD -> VES rates as published by the rate source"""

    usd_to_ves_bcv: float
    usd_to_ves_parallel: float
    last_updated: str  # ISO timestamp
    source_bcv: str
    source_parallel: str


@dataclass
class Denomination:
    """Banknote face value and how many notes of it were used"""

    id: str
    value: float
    count: float


@dataclass
class CashValidationResult:
    is_valid: bool
    errors: List[str]
    calculated_amount: float
    expected_amount: float


@dataclass
class CashMovement:
    """Stored transaction that moved physical cash in or out of an account"""

    transaction_type: str
    payment_method: Optional[str]
    denominations: Dict[str, Any]
    date: datetime


@dataclass(frozen=True)
class DenominationInventory:
    value: float
    count: int
    total: float


@dataclass
class CashInventory:
    currency: str
    denominations: List[DenominationInventory]
    total_amount: float
    last_updated: Optional[datetime]


@dataclass(frozen=True)
class BankAccount:
    """Destination account as seen by the transfer form"""

    id: str
    currency: str
    bank: str = ""
    account_number: str = ""


@dataclass
class TransferEntry:
    """One slice of a payment routed to a destination account"""

    id: str
    destination_account_id: str = ""
    amount: float = 0.0
    receipt_attachment: Optional[Any] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class TransferStatus:
    """Running balance of a transfer distribution"""

    current_sum: float
    difference: float
    is_valid: bool
    message: str
    entry_count: int
    has_duplicate_destinations: bool = False
    can_add_entries: bool = True
    missing_accounts_message: Optional[str] = field(default=None)


@dataclass(frozen=True)
class ConversionResult:
    amount: float
    converted_amount: float
    direction: ConversionDirection
    rate: float
    rate_source: RateSource


@dataclass(frozen=True)
class RefreshOutcome:
    """Result of loading market rates; the previous rate is kept when nothing could be loaded"""

    success: bool
    rate: float
    last_updated: str
    source: str  # cache | api | database | retained
    error: Optional[str] = None
