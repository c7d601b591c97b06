"""Installment plan and amortization table generation for financings"""

import logging
from decimal import ROUND_DOWN, Decimal
from typing import Any, List

from ledger_engine.domain.exceptions import (
    InvalidAmountError,
    InvalidDateError,
    InvalidTermError,
    ValidationFailure,
)
from ledger_engine.domain.models import (
    AmortizationMethod,
    AmortizationRow,
    AmortizationSummary,
    AmortizationTable,
    Installment,
)
from ledger_engine.domain.money import ZERO, calculate_due_date, quantize_cents, to_decimal
from ledger_engine.utils.date_utils import add_months, parse_date

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_DAYS = 30


def _validate_terms(principal: Any, installment_count: Any, start_date: Any) -> tuple:
    amount = to_decimal(principal)
    if amount is None or amount <= 0:
        raise InvalidAmountError(f"Principal must be positive, got {principal!r}")

    if isinstance(installment_count, bool) or not isinstance(installment_count, int) or installment_count <= 0:
        raise InvalidTermError(f"Installment count must be a positive integer, got {installment_count!r}")

    start = parse_date(start_date)
    if start is None:
        raise InvalidDateError(f"Invalid start date: {start_date!r}")

    return amount, installment_count, start


def build_schedule(
    principal: Any,
    installment_count: int,
    start_date: Any,
    interval_days: int = DEFAULT_INTERVAL_DAYS,
) -> List[Installment]:
    """
    Split a financed principal into a fixed sequence of installments.

    Requirements:
    - Per-installment amount is principal / count rounded half-up to cents
    - Installment 1 carries the per-unit amount; the final installment
      absorbs the rounding remainder so the plan sums to the principal exactly
    - Installment k is due interval_days * (k - 1) after start_date

    Raises:
        InvalidAmountError, InvalidTermError, InvalidDateError

    Example:
        1000.00 / 3 -> [333.33, 333.33, 333.34]
        1000.00 / 6 -> [166.67, 166.67, 166.67, 166.67, 166.67, 166.65]
    """
    amount, count, start = _validate_terms(principal, installment_count, start_date)

    unit = quantize_cents(amount / count)
    if unit * (count - 1) >= amount:
        # tiny principals: rounding up would leave nothing for the last installment
        unit = quantize_cents(amount / count, rounding=ROUND_DOWN)
    last = amount - unit * (count - 1)

    installments = []
    for number in range(1, count + 1):
        installments.append(
            Installment(
                number=number,
                amount=last if number == count else unit,
                due_date=calculate_due_date(start, (number - 1) * interval_days),
            )
        )
    return installments


def generate_schedule(
    principal: Any,
    installment_count: Any,
    start_date: Any,
    interval_days: int = DEFAULT_INTERVAL_DAYS,
) -> List[Installment]:
    """Non-raising variant of build_schedule: invalid input yields an empty plan"""
    try:
        return build_schedule(principal, installment_count, start_date, interval_days)
    except ValidationFailure as e:
        logger.debug("Schedule not generated: %s", e)
        return []


generate_installments = generate_schedule


def monthly_rate(annual_rate: Decimal) -> Decimal:
    return annual_rate / Decimal(12)


def price_payment(principal: Decimal, annual_rate: Decimal, term_months: int) -> Decimal:
    """Constant annuity payment (French / Price system)"""
    rate = monthly_rate(annual_rate)
    if rate == 0:
        return principal / term_months
    factor = (1 + rate) ** term_months
    return principal * (rate * factor) / (factor - 1)


def generate_amortization_table(
    principal: Any,
    annual_rate: Any,
    term_months: int,
    method: AmortizationMethod | str,
    start_date: Any,
) -> AmortizationTable:
    """
    Full amortization table for SAC or Price financings.

    SAC: constant amortization, interest on the declining balance.
    Price: constant payment, amortization = payment - interest.
    The last row amortizes whatever balance is left so the table closes at zero.
    """
    amount, term, start = _validate_terms(principal, term_months, start_date)
    rate = to_decimal(annual_rate)
    if rate is None or rate < 0:
        raise InvalidAmountError(f"Interest rate must be non-negative, got {annual_rate!r}")
    method = AmortizationMethod(method)

    period_rate = monthly_rate(rate)
    annuity = price_payment(amount, rate, term) if method == AmortizationMethod.PRICE else None

    rows = []
    remaining = amount
    total_interest = ZERO
    total_amortization = ZERO

    for month in range(1, term + 1):
        interest = remaining * period_rate
        if method == AmortizationMethod.SAC:
            amortization = amount / term
        else:
            amortization = annuity - interest

        if month == term:
            amortization = remaining
        payment = amortization + interest

        remaining -= amortization
        total_interest += interest
        total_amortization += amortization

        rows.append(
            AmortizationRow(
                installment=month,
                due_date=add_months(start, month - 1, anchor_day=start.day),
                payment=quantize_cents(payment),
                amortization=quantize_cents(amortization),
                interest=quantize_cents(interest),
                remaining_balance=quantize_cents(max(ZERO, remaining)),
            )
        )

    return AmortizationTable(
        rows=rows,
        summary=AmortizationSummary(
            principal=quantize_cents(amount),
            total_payments=quantize_cents(total_amortization + total_interest),
            total_amortization=quantize_cents(total_amortization),
            total_interest=quantize_cents(total_interest),
        ),
    )


def schedule_total(installments: List[Installment]) -> Decimal:
    return sum((inst.amount for inst in installments), ZERO)
