"""Unit tests for money and date helpers"""

from datetime import date
from decimal import Decimal
from types import SimpleNamespace

from ledger_engine.domain.money import (
    calculate_balance,
    calculate_due_date,
    calculate_interest,
    calculate_total_amount,
    format_currency,
    format_date,
    to_decimal,
)


def test_calculate_balance_income_minus_expense():
    """Test income adds and expense subtracts"""
    transactions = [
        {"type": "income", "amount": 1000},
        {"type": "expense", "amount": 500},
    ]
    assert calculate_balance(transactions) == 500


def test_calculate_balance_empty_and_null():
    """Test empty and missing sequences yield zero"""
    assert calculate_balance([]) == 0
    assert calculate_balance(None) == 0
    assert calculate_balance("not a list") == 0


def test_calculate_balance_accepts_objects_and_bad_amounts():
    """Test attribute access and unreadable amounts counting as zero"""
    transactions = [
        SimpleNamespace(type="income", amount=Decimal("250.50")),
        {"type": "expense", "amount": "abc"},
        {"type": "expense", "amount": "50.25"},
    ]
    assert calculate_balance(transactions) == Decimal("200.25")


def test_calculate_interest_monthly_pro_rata():
    """Test one month at 1% on 1000"""
    assert calculate_interest(1000, 0.01, 30) == 10
    assert calculate_interest(1000, Decimal("0.02"), 15) == Decimal("10.00")


def test_calculate_interest_null_arguments():
    """Test null or zero inputs return zero instead of raising"""
    assert calculate_interest(None, 0.01, 30) == 0
    assert calculate_interest(1000, None, 30) == 0
    assert calculate_interest(1000, 0.01, None) == 0
    assert calculate_interest(0, 0.01, 30) == 0


def test_calculate_total_amount():
    assert calculate_total_amount(1000, 10) == Decimal("1010")
    assert calculate_total_amount(1000) == Decimal("1000")
    assert calculate_total_amount(None, 10) == 0


def test_format_currency():
    """Test Brazilian real formatting"""
    assert format_currency(Decimal("1234.56")) == "R$ 1.234,56"
    assert format_currency(1000000) == "R$ 1.000.000,00"
    assert format_currency(None) == "R$ 0,00"
    assert format_currency("-10.5") == "-R$ 10,50"


def test_format_date():
    assert format_date(date(2024, 3, 5)) == "05/03/2024"
    assert format_date("2024-12-31") == "31/12/2024"
    assert format_date(None) == ""
    assert format_date("not-a-date") == ""


def test_calculate_due_date():
    assert calculate_due_date("2024-01-01", 30) == date(2024, 1, 31)
    assert calculate_due_date(date(2024, 2, 28), 1) == date(2024, 2, 29)
    assert calculate_due_date(None, 30) is None


def test_to_decimal_avoids_float_noise():
    """Test floats are converted through their repr"""
    assert to_decimal(0.1) == Decimal("0.1")
    assert to_decimal("12.30") == Decimal("12.30")
    assert to_decimal("nan") is None
    assert to_decimal(True) is None
