"""Cash denomination reconciliation for cash-settled transactions"""

import math
from typing import Dict, Iterable, List, Optional, Sequence

from ledgerflow.domain.models import (
    CashInventory,
    CashMovement,
    CashValidationResult,
    Denomination,
    DenominationInventory,
)

CASH_CURRENCIES = ("USD", "EUR")
AMOUNT_TOLERANCE = 0.01

STANDARD_DENOMINATIONS: Dict[str, List[float]] = {
    "USD": [100, 50, 20, 10, 5, 1],
    "EUR": [500, 200, 100, 50, 20, 10, 5],
    "VES": [1000000, 500000, 200000, 100000, 50000, 20000, 10000, 5000, 2000, 1000],
}

# Transaction types that bring cash into the account
INCOMING_CASH_TYPES = ("sale", "payment", "cash", "ingreso")


def _is_finite(den: Denomination) -> bool:
    return math.isfinite(den.value) and math.isfinite(den.count)


def requires_denomination_validation(
    payment_method: str,
    currency: str,
    cash_currencies: Sequence[str] = CASH_CURRENCIES,
) -> bool:
    return payment_method == "cash" and currency in cash_currencies


def validate_cash_denominations(
    denominations: Sequence[Denomination],
    expected_amount: float,
    currency: str,
    payment_method: str,
    cash_currencies: Sequence[str] = CASH_CURRENCIES,
    tolerance: float = AMOUNT_TOLERANCE,
) -> CashValidationResult:
    """
    Check that the notes handed over add up to the transaction amount.

    Non-cash payments and currencies outside the cash allow-list pass
    trivially with calculated_amount = expected_amount. Otherwise every
    problem is collected so the user sees them all at once:
    - no active denomination (value > 0 and count > 0)
    - an entry with only one of value/count set
    - sum(value * count) off from expected_amount by more than tolerance
    - expected_amount <= 0
    """
    if not requires_denomination_validation(payment_method, currency, cash_currencies):
        return CashValidationResult(
            is_valid=True,
            errors=[],
            calculated_amount=expected_amount,
            expected_amount=expected_amount,
        )

    errors = []
    calculated_amount = sum(den.value * den.count for den in denominations)

    active = [den for den in denominations if den.value > 0 and den.count > 0]
    if not active:
        errors.append("Debes especificar al menos una denominación de billete cuando pagas en efectivo.")

    partial = [
        den for den in denominations
        if not _is_finite(den)
        or (den.value > 0 and den.count <= 0)
        or (den.value <= 0 and den.count > 0)
    ]
    if partial:
        errors.append("Todas las denominaciones deben tener un valor y cantidad mayor a cero.")

    # Written so that NaN amounts fail both checks
    if not abs(calculated_amount - expected_amount) <= tolerance:
        errors.append(
            "Las denominaciones no coinciden con el monto indicado. "
            f"Calculado: {currency} {calculated_amount:.2f}, "
            f"Esperado: {currency} {expected_amount:.2f}"
        )

    if not expected_amount > 0:
        errors.append("El monto de la transacción debe ser mayor a cero.")

    return CashValidationResult(
        is_valid=not errors,
        errors=errors,
        calculated_amount=calculated_amount,
        expected_amount=expected_amount,
    )


def validate_denomination_fields(denominations: Sequence[Denomination]) -> List[str]:
    """Per-entry checks for live field validation, numbered from 1"""
    errors = []

    for index, den in enumerate(denominations, start=1):
        if not _is_finite(den):
            errors.append(f"La denominación {index} tiene un valor o cantidad inválido.")
            continue

        if den.value > 0 and den.count <= 0:
            errors.append(f"La denominación {index} tiene valor pero no tiene cantidad.")

        if den.count > 0 and den.value <= 0:
            errors.append(f"La denominación {index} tiene cantidad pero no tiene valor.")

        if den.count > 0 and not float(den.count).is_integer():
            errors.append(f"La cantidad de la denominación {index} debe ser un número entero.")

        if den.value < 0:
            errors.append(f"El valor de la denominación {index} no puede ser negativo.")

        if den.count < 0:
            errors.append(f"La cantidad de la denominación {index} no puede ser negativa.")

    return errors


def format_validation_errors(errors: Sequence[str]) -> str:
    if not errors:
        return ""
    if len(errors) == 1:
        return errors[0]
    return "\n".join(f"{index}. {error}" for index, error in enumerate(errors, start=1))


def standard_denominations(currency: str) -> List[float]:
    """Banknote values offered for a currency, largest first"""
    return list(STANDARD_DENOMINATIONS.get(currency, STANDARD_DENOMINATIONS["USD"]))


def summarize_cash_inventory(movements: Iterable[CashMovement], currency: str) -> Optional[CashInventory]:
    """
    Rebuild the notes held in a cash account from its cash movements.

    Incoming movement types add their notes, everything else subtracts.
    Movements that are neither of type "cash" nor paid in cash are skipped,
    as are malformed denomination entries. Values whose net count is not
    positive are dropped from the result.

    Returns:
        None when there are no movements at all
    """
    movements = list(movements)
    if not movements:
        return None

    counts: Dict[float, int] = {}
    last_updated = None

    for movement in movements:
        if last_updated is None or movement.date > last_updated:
            last_updated = movement.date

        if movement.transaction_type != "cash" and movement.payment_method != "cash":
            continue
        if not isinstance(movement.denominations, dict):
            continue

        multiplier = 1 if movement.transaction_type in INCOMING_CASH_TYPES else -1

        for raw_value, raw_count in movement.denominations.items():
            try:
                value = float(raw_value)
                count = int(float(raw_count))
            except (TypeError, ValueError, OverflowError):
                continue
            if not math.isfinite(value) or value <= 0 or count <= 0:
                continue
            counts[value] = counts.get(value, 0) + count * multiplier

    inventory = [
        DenominationInventory(value=value, count=count, total=value * count)
        for value, count in counts.items()
        if count > 0
    ]
    inventory.sort(key=lambda d: d.value, reverse=True)

    return CashInventory(
        currency=currency,
        denominations=inventory,
        total_amount=sum(d.total for d in inventory),
        last_updated=last_updated,
    )
