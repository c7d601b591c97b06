"""Unit tests for ledger folding and payment entry computation"""

import pytest
from decimal import Decimal
from types import SimpleNamespace

from ledger_engine.domain.exceptions import (
    InsufficientAmountError,
    InvalidAmountError,
    OverpaymentSplitError,
)
from ledger_engine.domain.ledger import (
    accrued_interest_for,
    classify_payment,
    compute_entry,
    fold_balance,
    split_payment,
)
from ledger_engine.domain.models import PaymentType


def _entry(balance_after, status="paid"):
    return SimpleNamespace(balance_after=Decimal(balance_after), status=status)


def test_fold_balance_empty_ledger_is_principal():
    assert fold_balance(Decimal("1000.00"), []) == Decimal("1000.00")


def test_fold_balance_last_entry_wins():
    entries = [_entry("666.67"), _entry("333.34")]
    assert fold_balance(Decimal("1000.00"), entries) == Decimal("333.34")


def test_fold_balance_skips_cancelled_entries():
    entries = [_entry("666.67"), _entry("333.34", status="cancelled")]
    assert fold_balance(Decimal("1000.00"), entries) == Decimal("666.67")


def test_split_payment_interest_first():
    split = split_payment(Decimal("100.00"), Decimal("30.00"))
    assert split.interest_amount == Decimal("30.00")
    assert split.principal_amount == Decimal("70.00")


def test_split_payment_interest_capped_by_amount():
    split = split_payment(Decimal("20.00"), Decimal("30.00"))
    assert split.interest_amount == Decimal("20.00")
    assert split.principal_amount == Decimal("0.00")


def test_split_payment_without_interest():
    split = split_payment(Decimal("100.00"))
    assert split.interest_amount == 0
    assert split.principal_amount == Decimal("100.00")


def test_compute_entry_regular_installment():
    """Test a full installment reduces the balance by its amount"""
    entry = compute_entry(
        balance_before=Decimal("1000.00"),
        amount="333.33",
        installment_number=1,
        installment_count=3,
        installment_amount=Decimal("333.33"),
    )

    assert entry.payment_type == PaymentType.INSTALLMENT
    assert entry.principal_amount == Decimal("333.33")
    assert entry.interest_amount == 0
    assert entry.balance_before == Decimal("1000.00")
    assert entry.balance_after == Decimal("666.67")
    assert not entry.closes_balance


def test_compute_entry_partial():
    entry = compute_entry(
        balance_before=Decimal("1000.00"),
        amount=Decimal("100.00"),
        installment_number=1,
        installment_count=3,
        installment_amount=Decimal("333.33"),
    )

    assert entry.payment_type == PaymentType.PARTIAL
    assert entry.balance_after == Decimal("900.00")


def test_compute_entry_early_payoff_detected():
    """Test zeroing the balance before the last installment"""
    entry = compute_entry(
        balance_before=Decimal("666.67"),
        amount=Decimal("666.67"),
        installment_number=2,
        installment_count=3,
        installment_amount=Decimal("333.33"),
    )

    assert entry.payment_type == PaymentType.EARLY_PAYOFF
    assert entry.closes_balance


def test_compute_entry_final_installment_is_not_early_payoff():
    entry = compute_entry(
        balance_before=Decimal("333.34"),
        amount=Decimal("333.34"),
        installment_number=3,
        installment_count=3,
        installment_amount=Decimal("333.34"),
    )

    assert entry.payment_type == PaymentType.INSTALLMENT
    assert entry.balance_after == 0


def test_compute_entry_with_accrued_interest():
    entry = compute_entry(
        balance_before=Decimal("1000.00"),
        amount=Decimal("343.33"),
        installment_number=1,
        installment_count=3,
        installment_amount=Decimal("333.33"),
        accrued_interest=Decimal("10.00"),
    )

    assert entry.interest_amount == Decimal("10.00")
    assert entry.principal_amount == Decimal("333.33")
    assert entry.balance_after == Decimal("666.67")
    assert entry.payment_type == PaymentType.INSTALLMENT


@pytest.mark.parametrize("amount", [0, -10, None, "abc", "0.004", "0.001"])
def test_compute_entry_rejects_non_positive_amount(amount):
    with pytest.raises(InvalidAmountError):
        compute_entry(
            balance_before=Decimal("1000.00"),
            amount=amount,
            installment_number=1,
            installment_count=3,
            installment_amount=Decimal("333.33"),
        )


def test_compute_entry_rejects_overpayment():
    """Test principal portion larger than the balance"""
    with pytest.raises(OverpaymentSplitError):
        compute_entry(
            balance_before=Decimal("100.00"),
            amount=Decimal("100.01"),
            installment_number=3,
            installment_count=3,
            installment_amount=Decimal("100.00"),
        )


def test_overpayment_is_an_insufficient_amount_error():
    assert issubclass(OverpaymentSplitError, InsufficientAmountError)


def test_compute_entry_explicit_early_payoff_must_zero_balance():
    with pytest.raises(InsufficientAmountError):
        compute_entry(
            balance_before=Decimal("666.67"),
            amount=Decimal("600.00"),
            installment_number=2,
            installment_count=3,
            installment_amount=Decimal("333.33"),
            payment_type=PaymentType.EARLY_PAYOFF,
        )


def test_classify_payment_partial():
    assert (
        classify_payment(Decimal("10"), Decimal("333.33"), Decimal("990"), 1, 3)
        == PaymentType.PARTIAL
    )


def test_accrued_interest_for():
    assert accrued_interest_for(Decimal("1200.00"), Decimal("0.12")) == Decimal("12.00")
    assert accrued_interest_for(Decimal("1200.00"), Decimal("0")) is None
    assert accrued_interest_for(Decimal("1200.00"), None) is None
