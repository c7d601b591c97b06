"""Recurrence rules for fixed accounts: due-date advancement and instance lifecycle"""

from datetime import date
from typing import Dict, FrozenSet, Optional

from ledger_engine.domain.exceptions import InvalidDateError, OverdueConflictError, StatusTransitionError
from ledger_engine.domain.models import InstanceStatus, Periodicity, Rollover
from ledger_engine.utils.date_utils import add_days, add_months, days_until, parse_date

MONTHS_PER_PERIOD: Dict[Periodicity, int] = {
    Periodicity.MONTHLY: 1,
    Periodicity.QUARTERLY: 3,
    Periodicity.YEARLY: 12,
}

DAYS_PER_PERIOD: Dict[Periodicity, int] = {
    Periodicity.DAILY: 1,
    Periodicity.WEEKLY: 7,
}

# pending -> paid | overdue | cancelled; overdue -> paid (late payment)
ALLOWED_TRANSITIONS: Dict[InstanceStatus, FrozenSet[InstanceStatus]] = {
    InstanceStatus.PENDING: frozenset({InstanceStatus.PAID, InstanceStatus.OVERDUE, InstanceStatus.CANCELLED}),
    InstanceStatus.OVERDUE: frozenset({InstanceStatus.PAID}),
    InstanceStatus.PAID: frozenset(),
    InstanceStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset({InstanceStatus.PAID, InstanceStatus.CANCELLED})


def advance_due_date(current: date, periodicity: Periodicity | str, anchor_day: Optional[int] = None) -> date:
    """
    Next due date one period after current.

    Monthly-based periods keep anchor_day (the day-of-month the series started
    on), clamped to the last day of shorter months.
    """
    periodicity = Periodicity(periodicity)
    if periodicity in DAYS_PER_PERIOD:
        return add_days(current, DAYS_PER_PERIOD[periodicity])
    return add_months(current, MONTHS_PER_PERIOD[periodicity], anchor_day=anchor_day)


def plan_rollover(
    next_due_date: date,
    periodicity: Periodicity | str,
    start_date: Optional[date] = None,
) -> Rollover:
    """
    Advance a fixed account by one cycle.

    The new instance is dated one period after the current next_due_date,
    which then moves to that date; the new cycle starts unpaid.
    """
    current = parse_date(next_due_date)
    if current is None:
        raise InvalidDateError(f"Invalid next due date: {next_due_date!r}")
    anchor = start_date.day if start_date else None
    due = advance_due_date(current, periodicity, anchor_day=anchor)
    return Rollover(due_date=due, next_due_date=due, is_paid=False)


def transition(current: InstanceStatus | str, target: InstanceStatus | str) -> InstanceStatus:
    """Validate a lifecycle move and return the new status"""
    current = InstanceStatus(current)
    target = InstanceStatus(target)
    if target not in ALLOWED_TRANSITIONS[current]:
        if target == InstanceStatus.OVERDUE:
            raise OverdueConflictError(current.value, target.value)
        raise StatusTransitionError(current.value, target.value)
    return target


def mark_overdue(status: InstanceStatus | str, due_date: date, today: date) -> InstanceStatus:
    """pending -> overdue, only once the due date has passed"""
    if due_date >= today:
        raise OverdueConflictError(
            InstanceStatus(status).value,
            InstanceStatus.OVERDUE.value,
            f"Instance due {due_date.isoformat()} is not overdue on {today.isoformat()}",
        )
    return transition(status, InstanceStatus.OVERDUE)


def is_overdue(due_date: date, status: InstanceStatus | str, today: date) -> bool:
    return InstanceStatus(status) == InstanceStatus.PENDING and due_date < today


def is_due_soon(due_date: date, status: InstanceStatus | str, today: date, reminder_days: int = 3) -> bool:
    """Pending and within reminder_days of its due date (inclusive of today)"""
    if InstanceStatus(status) != InstanceStatus.PENDING:
        return False
    return 0 <= days_until(due_date, today) <= reminder_days
