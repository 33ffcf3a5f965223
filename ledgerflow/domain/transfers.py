"""Transfer distribution - split one payment across several destination accounts"""

import math
import re
import uuid
from typing import Any, List, Optional, Sequence

from ledgerflow.domain.exceptions import (
    LastTransferEntryError,
    NoCompatibleAccountsError,
    TransferEntryNotFoundError,
)
from ledgerflow.domain.models import BankAccount, TransferEntry, TransferStatus

AMOUNT_TOLERANCE = 0.01
EDITABLE_FIELDS = ("destination_account_id", "amount", "receipt_attachment", "notes")
# Leading decimal number, the part of the input a browser number parser reads
AMOUNT_PREFIX = re.compile(r"\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")


def _new_entry_id() -> str:
    return str(uuid.uuid4())


def _round_cents(value: float) -> float:
    # Half-up, as the form displays it
    return math.floor(value * 100 + 0.5) / 100


def parse_amount(value: Any) -> float:
    """
    Parse user input as an amount.

    Only the leading number counts, so "12,5" reads as 12 and "7.5 USD" as
    7.5. Input without a leading number, or one that overflows, becomes 0.
    """
    if value is None:
        return 0.0
    match = AMOUNT_PREFIX.match(str(value))
    if match is None:
        return 0.0
    amount = float(match.group(0))
    return amount if math.isfinite(amount) else 0.0


def filter_compatible_accounts(accounts: Sequence[BankAccount], currency: str) -> List[BankAccount]:
    return [account for account in accounts if account.currency == currency]


def missing_accounts_message(currency: str) -> str:
    return f"No hay cuentas bancarias en {currency}. Crea una cuenta primero."


class TransferDistribution:
    """
    Ordered transfer entries allocated against a fixed total.

    A new distribution starts with one entry holding the whole total. While
    only one entry exists its amount follows the total; once there are two
    or more, amounts belong to the user and are never adjusted implicitly.
    """

    def __init__(
        self,
        total_amount: float,
        currency: str,
        accounts: Sequence[BankAccount] = (),
        entries: Optional[Sequence[TransferEntry]] = None,
        tolerance: float = AMOUNT_TOLERANCE,
    ):
        self.total_amount = total_amount
        self.currency = currency
        self.tolerance = tolerance
        self.compatible_accounts = filter_compatible_accounts(accounts, currency)
        if entries:
            self._entries = list(entries)
        else:
            self._entries = [TransferEntry(id=_new_entry_id(), amount=total_amount)]

    @property
    def entries(self) -> List[TransferEntry]:
        return list(self._entries)

    @property
    def current_sum(self) -> float:
        return sum(entry.amount or 0 for entry in self._entries)

    @property
    def difference(self) -> float:
        return self.total_amount - self.current_sum

    @property
    def is_valid(self) -> bool:
        return abs(self.difference) < self.tolerance

    @property
    def can_add_entries(self) -> bool:
        return bool(self.compatible_accounts)

    @property
    def has_duplicate_destinations(self) -> bool:
        used = [entry.destination_account_id for entry in self._entries if entry.destination_account_id]
        return len(used) != len(set(used))

    def _find(self, entry_id: str) -> TransferEntry:
        for entry in self._entries:
            if entry.id == entry_id:
                return entry
        raise TransferEntryNotFoundError(f"Transfer entry {entry_id} not found")

    def add_entry(self) -> List[TransferEntry]:
        """
        Append an entry pre-filled with whatever is still unallocated.

        Raises:
            NoCompatibleAccountsError: no account in the distribution currency
        """
        if not self.can_add_entries:
            raise NoCompatibleAccountsError(missing_accounts_message(self.currency))

        self._entries.append(TransferEntry(id=_new_entry_id(), amount=max(0.0, self.difference)))
        return self.entries

    def remove_entry(self, entry_id: str) -> List[TransferEntry]:
        if len(self._entries) <= 1:
            raise LastTransferEntryError("A distribution needs at least one transfer entry")

        entry = self._find(entry_id)
        self._entries.remove(entry)
        return self.entries

    def update_field(self, entry_id: str, field: str, value: Any) -> List[TransferEntry]:
        if field not in EDITABLE_FIELDS:
            raise ValueError(f"Unknown transfer entry field {field!r}")

        entry = self._find(entry_id)
        setattr(entry, field, parse_amount(value) if field == "amount" else value)
        return self.entries

    def auto_distribute(self) -> List[TransferEntry]:
        """
        Give every entry total / count rounded to cents.

        The rounding residual (e.g. 0.01 for 100 / 3) is left in place and
        shows up through is_valid.
        """
        if not self._entries:
            return self.entries

        share = _round_cents(self.total_amount / len(self._entries))
        for entry in self._entries:
            entry.amount = share
        return self.entries

    def set_total_amount(self, total_amount: float) -> List[TransferEntry]:
        """Change the parent amount, keeping a lone entry in sync with it"""
        self.total_amount = total_amount
        if len(self._entries) == 1:
            self._entries[0].amount = total_amount
        return self.entries

    def available_accounts(self, entry_id: str) -> List[BankAccount]:
        """Compatible accounts not already chosen by another entry"""
        taken = {
            entry.destination_account_id
            for entry in self._entries
            if entry.id != entry_id and entry.destination_account_id
        }
        return [account for account in self.compatible_accounts if account.id not in taken]

    def status(self) -> TransferStatus:
        difference = self.difference
        is_valid = abs(difference) < self.tolerance

        if is_valid:
            message = f"Distribución correcta en {len(self._entries)} cuentas"
        else:
            suffix = "falta asignar" if difference > 0 else "excede el total"
            message = f"Diferencia: {self.currency} {abs(difference):.2f} ({suffix})"

        return TransferStatus(
            current_sum=self.current_sum,
            difference=difference,
            is_valid=is_valid,
            message=message,
            entry_count=len(self._entries),
            has_duplicate_destinations=self.has_duplicate_destinations,
            can_add_entries=self.can_add_entries,
            missing_accounts_message=None if self.can_add_entries else missing_accounts_message(self.currency),
        )
