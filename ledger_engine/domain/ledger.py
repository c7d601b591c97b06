"""
Payment ledger rules - pure functions over an append-only list of entries.

The outstanding balance of a financing is never stored on its own: it is the
balance_after of the latest non-cancelled entry, or the principal when the
ledger is empty.
"""

from decimal import Decimal
from typing import Any, Iterable, Optional

from ledger_engine.domain.exceptions import (
    InsufficientAmountError,
    InvalidAmountError,
    OverpaymentSplitError,
)
from ledger_engine.domain.models import LedgerEntryDraft, PaymentSplit, PaymentStatus, PaymentType
from ledger_engine.domain.money import ZERO, quantize_cents, to_decimal


def _status(entry: Any) -> str:
    status = getattr(entry, "status", PaymentStatus.PAID.value)
    return status.value if isinstance(status, PaymentStatus) else status


def fold_balance(principal: Decimal, entries: Iterable[Any]) -> Decimal:
    """
    Current outstanding balance from entries in chronological order.

    Cancelled entries are skipped; otherwise the last entry wins.
    """
    balance = principal
    for entry in entries:
        if _status(entry) == PaymentStatus.CANCELLED.value:
            continue
        balance = entry.balance_after
    return balance


def split_payment(amount: Decimal, accrued_interest: Optional[Decimal] = None) -> PaymentSplit:
    """Interest is settled first; whatever is left amortizes principal"""
    interest = ZERO
    if accrued_interest is not None and accrued_interest > 0:
        interest = min(accrued_interest, amount)
    return PaymentSplit(interest_amount=interest, principal_amount=amount - interest)


def classify_payment(
    amount: Decimal,
    due_amount: Decimal,
    balance_after: Decimal,
    installment_number: int,
    installment_count: int,
) -> PaymentType:
    """
    early_payoff: zeroes the balance ahead of the final scheduled installment
    partial:      less than what the installment asks for
    installment:  everything else
    """
    if balance_after == 0 and installment_number < installment_count:
        return PaymentType.EARLY_PAYOFF
    if amount < due_amount:
        return PaymentType.PARTIAL
    return PaymentType.INSTALLMENT


def compute_entry(
    *,
    balance_before: Decimal,
    amount: Any,
    installment_number: int,
    installment_count: int,
    installment_amount: Decimal,
    accrued_interest: Any = None,
    payment_type: Optional[PaymentType] = None,
) -> LedgerEntryDraft:
    """
    Validate a payment against the current balance and compute its ledger entry.

    Raises:
        InvalidAmountError: amount missing or not positive
        OverpaymentSplitError: principal portion would drive the balance below zero
        InsufficientAmountError: explicit early_payoff that does not zero the balance
    """
    payment_amount = to_decimal(amount)
    if payment_amount is not None:
        payment_amount = quantize_cents(payment_amount)
    if payment_amount is None or payment_amount <= 0:
        raise InvalidAmountError(f"Payment amount must be positive, got {amount!r}")

    interest = to_decimal(accrued_interest)
    if interest is not None:
        interest = quantize_cents(interest)
    split = split_payment(payment_amount, interest)

    balance_after = balance_before - split.principal_amount
    if balance_after < 0:
        raise OverpaymentSplitError(
            f"Principal portion {split.principal_amount} exceeds outstanding balance {balance_before}"
        )

    if payment_type is not None:
        payment_type = PaymentType(payment_type)
    if payment_type == PaymentType.EARLY_PAYOFF and balance_after != 0:
        raise InsufficientAmountError(
            f"Early payoff of {payment_amount} leaves {balance_after} outstanding"
        )

    if payment_type is None:
        due_amount = installment_amount + split.interest_amount
        payment_type = classify_payment(
            payment_amount, due_amount, balance_after, installment_number, installment_count
        )

    return LedgerEntryDraft(
        installment_number=installment_number,
        payment_amount=payment_amount,
        interest_amount=split.interest_amount,
        principal_amount=split.principal_amount,
        balance_before=balance_before,
        balance_after=balance_after,
        payment_type=payment_type,
    )


def accrued_interest_for(balance: Decimal, annual_rate: Any) -> Optional[Decimal]:
    """One month of interest on the outstanding balance, or None when the financing carries no rate"""
    rate = to_decimal(annual_rate)
    if not rate:
        return None
    return quantize_cents(balance * rate / Decimal(12))
