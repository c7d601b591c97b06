"""Unit tests for installment plan and amortization table generation"""

import pytest
from datetime import date
from decimal import Decimal

from ledger_engine.domain.exceptions import InvalidAmountError, InvalidDateError, InvalidTermError
from ledger_engine.domain.installments import (
    build_schedule,
    generate_amortization_table,
    generate_installments,
    generate_schedule,
    schedule_total,
)
from ledger_engine.domain.models import AmortizationMethod


def test_generate_installments_first_installment():
    """Test 1000 over 3 starting 2024-01-01"""
    installments = generate_installments(1000, 3, "2024-01-01")

    assert len(installments) == 3
    assert installments[0].as_dict() == {
        "number": 1,
        "amount": Decimal("333.33"),
        "due_date": "2024-01-01",
    }


def test_generate_schedule_rounding():
    """Test last installment absorbs remainder"""
    installments = generate_schedule(Decimal("1000.00"), 3, date(2024, 1, 1))

    assert [inst.amount for inst in installments] == [
        Decimal("333.33"),
        Decimal("333.33"),
        Decimal("333.34"),
    ]
    assert schedule_total(installments) == Decimal("1000.00")


def test_generate_schedule_rounds_unit_half_up():
    """Test 1000 over 6 rounds the unit up and the last installment takes the shortfall"""
    installments = generate_schedule(Decimal("1000"), 6, "2024-01-01")

    assert [inst.amount for inst in installments] == [Decimal("166.67")] * 5 + [Decimal("166.65")]
    assert schedule_total(installments) == Decimal("1000")


def test_generate_schedule_tiny_principal_keeps_last_installment_positive():
    """Test 0.09 over 6 falls back to rounding the unit down"""
    installments = generate_schedule(Decimal("0.09"), 6, "2024-01-01")

    assert [inst.amount for inst in installments] == [Decimal("0.01")] * 5 + [Decimal("0.04")]


def test_generate_schedule_equal_split():
    """Test plan with evenly divisible amount"""
    installments = generate_schedule(Decimal("400.00"), 4, date(2024, 1, 1))

    assert all(inst.amount == Decimal("100.00") for inst in installments)
    assert schedule_total(installments) == Decimal("400.00")


@pytest.mark.parametrize(
    "principal, count",
    [
        ("0.01", 1),
        ("0.05", 7),
        ("999.99", 12),
        ("12345.67", 24),
        ("100000.00", 360),
    ],
)
def test_generate_schedule_conserves_principal(principal, count):
    """Test sum of amounts equals principal for awkward splits"""
    installments = generate_schedule(Decimal(principal), count, date(2024, 1, 1))

    assert len(installments) == count
    assert schedule_total(installments) == Decimal(principal)
    assert all(inst.amount >= 0 for inst in installments)


def test_generate_schedule_dates():
    """Test due dates 30 days apart by default"""
    installments = generate_schedule(Decimal("900.00"), 3, date(2024, 1, 1))

    assert installments[0].due_date == date(2024, 1, 1)
    assert installments[1].due_date == date(2024, 1, 31)
    assert installments[2].due_date == date(2024, 3, 1)


def test_generate_schedule_custom_interval():
    installments = generate_schedule(Decimal("400.00"), 4, date(2024, 1, 1), interval_days=14)

    assert installments[3].due_date == date(2024, 2, 12)


@pytest.mark.parametrize(
    "principal, count, start",
    [
        (0, 3, "2024-01-01"),
        (-100, 3, "2024-01-01"),
        (None, 3, "2024-01-01"),
        (1000, 0, "2024-01-01"),
        (1000, "3", "2024-01-01"),
        (1000, 3, "not-a-date"),
        (1000, 3, None),
    ],
)
def test_generate_schedule_invalid_input_returns_empty(principal, count, start):
    """Test malformed input yields an empty plan instead of raising"""
    assert generate_schedule(principal, count, start) == []


def test_build_schedule_raises_specific_errors():
    with pytest.raises(InvalidAmountError):
        build_schedule(0, 3, "2024-01-01")
    with pytest.raises(InvalidTermError):
        build_schedule(1000, 0, "2024-01-01")
    with pytest.raises(InvalidDateError):
        build_schedule(1000, 3, "2024-13-01")


def test_amortization_table_sac():
    """Test constant amortization with declining interest"""
    table = generate_amortization_table(Decimal("12000"), Decimal("0.12"), 12, AmortizationMethod.SAC, date(2024, 1, 15))

    assert len(table.rows) == 12
    assert all(row.amortization == Decimal("1000.00") for row in table.rows)
    assert table.rows[0].interest == Decimal("120.00")
    assert table.rows[0].payment == Decimal("1120.00")
    assert table.rows[-1].interest == Decimal("10.00")
    assert table.rows[-1].remaining_balance == Decimal("0.00")
    assert table.rows[1].due_date == date(2024, 2, 15)
    assert table.summary.total_amortization == Decimal("12000.00")
    assert table.summary.total_interest == Decimal("780.00")


def test_amortization_table_price():
    """Test constant payment closing the balance at zero"""
    table = generate_amortization_table(Decimal("10000"), Decimal("0.12"), 12, "Price", date(2024, 1, 31))

    payments = {row.payment for row in table.rows[:-1]}
    assert payments == {Decimal("888.49")}
    assert abs(table.rows[-1].payment - Decimal("888.49")) <= Decimal("0.01")
    assert table.rows[-1].remaining_balance == Decimal("0.00")
    assert table.summary.total_amortization == Decimal("10000.00")
    # monthly series keeps the 31st where the month has one
    assert table.rows[1].due_date == date(2024, 2, 29)
    assert table.rows[2].due_date == date(2024, 3, 31)


def test_amortization_table_zero_rate_price():
    table = generate_amortization_table(Decimal("1200"), 0, 12, AmortizationMethod.PRICE, date(2024, 1, 1))

    assert all(row.interest == 0 for row in table.rows)
    assert all(row.payment == Decimal("100.00") for row in table.rows)


def test_amortization_table_rejects_negative_rate():
    with pytest.raises(InvalidAmountError):
        generate_amortization_table(Decimal("1200"), -0.1, 12, AmortizationMethod.SAC, date(2024, 1, 1))
