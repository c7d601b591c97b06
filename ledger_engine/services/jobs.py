"""Scheduled maintenance jobs: fixed-account rollover, overdue sweep, reminders and cleanup"""

import logging
from dataclasses import asdict
from functools import partial
from datetime import date, datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from ledger_engine.config import Settings, settings as default_settings
from ledger_engine.domain.models import FixedAccountRef, InstallmentRef, JobReport
from ledger_engine.domain.money import format_currency, format_date
from ledger_engine.infrastructure.database.repositories import (
    FinancingRepository,
    FixedAccountRepository,
    NotificationRepository,
)
from ledger_engine.services.job_tracker import JobFn, JobTracker, RetryPolicy
from ledger_engine.services.notifications import NotificationProducer, classify_due
from ledger_engine.services.recurrence import RecurrenceInstantiator
from ledger_engine.services.scheduler import ScheduledJob
from ledger_engine.utils.date_utils import add_days, days_until, utcnow

logger = logging.getLogger(__name__)

Job = Callable[[Session, date], JobReport]

FIXED_ACCOUNT_TITLES = {
    "overdue": "Fixed account overdue",
    "due_today": "Fixed account due today",
    "due": "Fixed account due soon",
}

PAYMENT_TITLES = {
    "overdue": "Payment overdue",
    "due_today": "Payment due today",
    "due": "Payment due soon",
    "reminder": "Payment reminder",
}


def _due_phrase(days: int) -> str:
    if days < 0:
        return f"was due {abs(days)} day(s) ago"
    if days == 0:
        return "is due today"
    return f"is due in {days} day(s)"


def fixed_account_processing(db: Session, today: date) -> JobReport:
    report = RecurrenceInstantiator(db).process_due_accounts(today)
    return JobReport(metadata=asdict(report))


def fixed_account_overdue_sweep(db: Session, today: date) -> JobReport:
    swept = RecurrenceInstantiator(db).sweep_overdue(today)
    return JobReport(metadata={"marked_overdue": len(swept)})


def fixed_account_reminders(db: Session, today: date) -> JobReport:
    """Notify owners of fixed accounts that are due soon, due today or overdue"""
    producer = NotificationProducer(db)
    report = JobReport()
    checked = 0

    subjects = [
        (account, account.next_due_date) for account in RecurrenceInstantiator(db).find_due_soon(today)
    ]
    subjects += [
        (instance.fixed_account, instance.due_date)
        for instance in FixedAccountRepository(db).list_overdue_instances()
    ]

    for account, due_date in subjects:
        checked += 1
        days = days_until(due_date, today)
        classified = classify_due(days, soon_days=account.reminder_days)
        if classified is None:
            continue
        kind, priority = classified
        result = producer.emit(
            user_id=account.user_id,
            notification_type=f"fixed_account_{kind}",
            title=FIXED_ACCOUNT_TITLES[kind],
            message=(
                f'Fixed account "{account.description}" {_due_phrase(days)} '
                f"({format_date(due_date)}). Amount: {format_currency(account.amount)}"
            ),
            priority=priority,
            related=FixedAccountRef(fixed_account_id=account.id),
        )
        if result.created:
            report.notifications_created += 1
        else:
            report.notifications_updated += 1

    db.commit()
    report.metadata = {"accounts_checked": checked}
    return report


def payment_check(db: Session, today: date, reminder_days: Optional[int] = None) -> JobReport:
    """Notify owners of unpaid financing installments that are overdue or coming due"""
    reminder_days = default_settings.payment_reminder_days if reminder_days is None else reminder_days
    producer = NotificationProducer(db)
    report = JobReport()

    installments = FinancingRepository(db).list_unpaid_installments_due_by(add_days(today, reminder_days))
    for installment in installments:
        financing = installment.financing
        days = days_until(installment.due_date, today)
        classified = classify_due(days, reminder_days=reminder_days)
        if classified is None:
            continue
        kind, priority = classified
        label = financing.description or f"financing {financing.id}"
        result = producer.emit(
            user_id=financing.user_id,
            notification_type=f"payment_{kind}",
            title=PAYMENT_TITLES[kind],
            message=(
                f'Installment {installment.number} of "{label}" {_due_phrase(days)} '
                f"({format_date(installment.due_date)}). Amount: {format_currency(installment.amount)}"
            ),
            priority=priority,
            related=InstallmentRef(financing_id=financing.id, installment_number=installment.number),
        )
        if result.created:
            report.notifications_created += 1
        else:
            report.notifications_updated += 1

    db.commit()
    report.metadata = {"installments_checked": len(installments)}
    return report


def cleanup(db: Session, today: date, retention_days: Optional[int] = None) -> JobReport:
    """Delete read notifications older than the retention window"""
    retention_days = default_settings.notification_retention_days if retention_days is None else retention_days
    cutoff = datetime.combine(today - timedelta(days=retention_days), datetime.min.time())
    deleted = NotificationRepository(db).delete_read_before(cutoff)
    db.commit()
    logger.info("Read notifications deleted", extra={"count": deleted, "cutoff": cutoff.isoformat()})
    return JobReport(metadata={"notifications_deleted": deleted})


def bind(job: Job, session_factory: Callable[[], Session], today: Callable[[], date]) -> JobFn:
    """Turn a (session, today) job into the zero-argument callable the tracker runs"""

    def run() -> JobReport:
        with session_factory() as db:
            return job(db, today())

    return run


def build_default_jobs(
    tracker: JobTracker,
    session_factory: Callable[[], Session],
    config: Settings = default_settings,
    today: Callable[[], date] = lambda: utcnow().date(),
) -> List[ScheduledJob]:
    """The job catalogue run by the worker process"""
    retry = RetryPolicy.from_settings()
    run_cleanup = bind(partial(cleanup, retention_days=config.notification_retention_days), session_factory, today)

    def cleanup_and_reconcile() -> JobReport:
        report = run_cleanup()
        report.metadata["stale_executions"] = tracker.reconcile_stale_executions(config.stale_job_hours)
        return report

    return [
        ScheduledJob(
            "fixed_account_processing",
            config.fixed_account_processing_interval,
            bind(fixed_account_processing, session_factory, today),
            retry,
        ),
        ScheduledJob(
            "fixed_account_overdue_sweep",
            config.overdue_sweep_interval,
            bind(fixed_account_overdue_sweep, session_factory, today),
            retry,
        ),
        ScheduledJob(
            "fixed_account_reminders",
            config.fixed_account_reminder_interval,
            bind(fixed_account_reminders, session_factory, today),
            retry,
        ),
        ScheduledJob(
            "payment_check",
            config.payment_check_interval,
            bind(partial(payment_check, reminder_days=config.payment_reminder_days), session_factory, today),
            retry,
        ),
        ScheduledJob("cleanup", config.cleanup_interval, cleanup_and_reconcile, retry),
    ]
