"""
Money and date helpers shared by every ledger component.

These are best-effort helpers used in preview contexts: malformed or missing
input yields a zero/empty sentinel instead of an exception.
"""

from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, Optional

from ledger_engine.utils.date_utils import add_days, parse_date

CENT = Decimal("0.01")
ZERO = Decimal("0")


def to_decimal(value: Any) -> Optional[Decimal]:
    """Exact Decimal from int/str/Decimal; floats go through str() to avoid binary noise"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    try:
        result = Decimal(str(value).strip()) if isinstance(value, (float, str)) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        return None
    return result if result.is_finite() else None


def quantize_cents(value: Decimal, rounding: str = ROUND_HALF_UP) -> Decimal:
    return value.quantize(CENT, rounding=rounding)


def format_currency(amount: Any) -> str:
    """
    Format an amount as Brazilian reais.

    Example:
        1234.56 -> "R$ 1.234,56"
        None    -> "R$ 0,00"
    """
    value = to_decimal(amount)
    if value is None:
        value = ZERO
    value = quantize_cents(value)
    sign = "-" if value < 0 else ""
    grouped = f"{abs(value):,.2f}"
    # swap US separators for pt-BR ones
    grouped = grouped.replace(",", "_").replace(".", ",").replace("_", ".")
    return f"{sign}R$ {grouped}"


def format_date(value: Any) -> str:
    """dd/mm/yyyy, or "" when the value is empty or not a date"""
    parsed = parse_date(value)
    if parsed is None:
        return ""
    return parsed.strftime("%d/%m/%Y")


def calculate_due_date(base: Any, offset_days: int) -> Optional[date]:
    """Base date shifted by offset_days; None when base is missing or invalid"""
    base_date = parse_date(base)
    if base_date is None:
        return None
    return add_days(base_date, int(offset_days or 0))


def calculate_interest(principal: Any, monthly_rate: Any, days: Any) -> Decimal:
    """
    Simple pro-rata interest on a monthly rate.

    interest = principal * monthly_rate * days / 30

    Any missing or zero input yields 0.
    """
    amount = to_decimal(principal)
    rate = to_decimal(monthly_rate)
    period = to_decimal(days)
    if not amount or not rate or not period:
        return ZERO
    return quantize_cents(amount * rate * period / Decimal(30))


def calculate_total_amount(principal: Any, interest: Any = None) -> Decimal:
    """principal + interest, or 0 when principal is missing"""
    amount = to_decimal(principal)
    if not amount:
        return ZERO
    return amount + (to_decimal(interest) or ZERO)


def _field(entry: Any, name: str) -> Any:
    if isinstance(entry, dict):
        return entry.get(name)
    return getattr(entry, name, None)


def calculate_balance(transactions: Optional[Iterable[Any]]) -> Decimal:
    """
    Reduce {type, amount} entries to sum(income) - sum(expense).

    Accepts dicts or objects; entries with unreadable amounts count as 0.
    Returns 0 for None or a non-sequence.
    """
    if transactions is None or isinstance(transactions, (str, bytes, dict)):
        return ZERO
    try:
        entries = list(transactions)
    except TypeError:
        return ZERO

    balance = ZERO
    for entry in entries:
        amount = to_decimal(_field(entry, "amount")) or ZERO
        if _field(entry, "type") == "income":
            balance += amount
        else:
            balance -= amount
    return balance
