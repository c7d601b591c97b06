"""Integration tests for the scheduled job catalogue"""

import pytest
from datetime import date, timedelta
from decimal import Decimal
from functools import partial
from sqlalchemy.orm import Session, sessionmaker

from ledger_engine.config import Settings
from ledger_engine.domain.models import GeneralRef, InstallmentRef, InstanceStatus
from ledger_engine.infrastructure.database.models import FixedAccountTransaction, JobExecution, Notification
from ledger_engine.infrastructure.database.repositories import related_entity
from ledger_engine.schemas import FinancingCreate, FixedAccountCreate
from ledger_engine.services.financing import FinancingService
from ledger_engine.services.job_tracker import JobTracker
from ledger_engine.services.jobs import (
    bind,
    build_default_jobs,
    cleanup,
    fixed_account_overdue_sweep,
    fixed_account_processing,
    fixed_account_reminders,
    payment_check,
)
from ledger_engine.services.notifications import NotificationPriority, NotificationProducer, classify_due
from ledger_engine.services.payment_ledger import PaymentLedger
from ledger_engine.services.recurrence import RecurrenceInstantiator
from ledger_engine.utils.date_utils import utcnow

pytestmark = pytest.mark.integration


def test_classify_due():
    assert classify_due(-1) == ("overdue", NotificationPriority.URGENT)
    assert classify_due(0) == ("due_today", NotificationPriority.HIGH)
    assert classify_due(3) == ("due", NotificationPriority.MEDIUM)
    assert classify_due(4) is None
    assert classify_due(5, reminder_days=5) == ("reminder", NotificationPriority.LOW)


def test_fixed_account_processing_job(db: Session, fixed_account_data: FixedAccountCreate):
    RecurrenceInstantiator(db).create_fixed_account(fixed_account_data)

    report = fixed_account_processing(db, date(2024, 3, 1))

    assert report.metadata == {"processed": 1, "created": 2, "updated": 1, "errors": 0}
    assert db.query(FixedAccountTransaction).count() == 3


def test_overdue_sweep_job(db: Session, fixed_account_data: FixedAccountCreate):
    RecurrenceInstantiator(db).create_fixed_account(fixed_account_data)

    report = fixed_account_overdue_sweep(db, date(2024, 2, 1))

    assert report.metadata == {"marked_overdue": 1}
    assert db.query(FixedAccountTransaction).one().status == InstanceStatus.OVERDUE.value


def test_fixed_account_reminders_due_soon_then_dedupe(db: Session, fixed_account_data: FixedAccountCreate):
    """Test a second run refreshes the notification instead of duplicating it"""
    RecurrenceInstantiator(db).create_fixed_account(
        fixed_account_data.model_copy(update={"start_date": date(2024, 3, 12)})
    )

    first = fixed_account_reminders(db, date(2024, 3, 10))
    second = fixed_account_reminders(db, date(2024, 3, 10))

    assert (first.notifications_created, first.notifications_updated) == (1, 0)
    assert (second.notifications_created, second.notifications_updated) == (0, 1)

    notification = db.query(Notification).one()
    assert notification.type == "fixed_account_due"
    assert notification.priority == NotificationPriority.MEDIUM.value
    assert notification.related_kind == "fixed_account"
    assert "R$ 1.500,00" in notification.message
    assert "12/03/2024" in notification.message


def test_fixed_account_reminders_overdue(db: Session, fixed_account_data: FixedAccountCreate):
    account, _ = RecurrenceInstantiator(db).create_fixed_account(fixed_account_data)
    fixed_account_overdue_sweep(db, date(2024, 2, 10))

    report = fixed_account_reminders(db, date(2024, 2, 10))

    assert report.notifications_created == 1
    notification = db.query(Notification).one()
    assert notification.type == "fixed_account_overdue"
    assert notification.priority == NotificationPriority.URGENT.value
    assert notification.related_key == str(account.id)


def test_fixed_account_reminders_skip_inactive_accounts(db: Session, fixed_account_data: FixedAccountCreate):
    account, _ = RecurrenceInstantiator(db).create_fixed_account(fixed_account_data)
    fixed_account_overdue_sweep(db, date(2024, 2, 10))
    account.is_active = False
    db.commit()

    report = fixed_account_reminders(db, date(2024, 2, 10))

    assert report.notifications_created == 0
    assert db.query(Notification).count() == 0


def test_payment_check_reminder_and_overdue(db: Session, financing_data: FinancingCreate):
    financing = FinancingService(db).create_financing(financing_data)

    reminder = payment_check(db, date(2023, 12, 27), reminder_days=5)
    assert reminder.notifications_created == 1
    assert db.query(Notification).one().type == "payment_reminder"

    overdue = payment_check(db, date(2024, 1, 2), reminder_days=5)
    assert overdue.notifications_created == 1

    notification = db.query(Notification).filter(Notification.type == "payment_overdue").one()
    assert notification.priority == NotificationPriority.URGENT.value
    assert notification.related_kind == "installment"
    assert notification.related_key == f"{financing.id}:1"
    assert related_entity(notification.related_kind, notification.related_key) == InstallmentRef(
        financing_id=financing.id, installment_number=1
    )


def test_payment_check_skips_paid_installments(db: Session, financing_data: FinancingCreate):
    financing = FinancingService(db).create_financing(financing_data)
    PaymentLedger(db).apply_payment(financing.id, 1, Decimal("333.33"), "2024-01-01")

    report = payment_check(db, date(2024, 1, 2), reminder_days=5)

    assert report.notifications_created == 0
    assert report.metadata == {"installments_checked": 0}


def test_cleanup_deletes_only_old_read_notifications(db: Session):
    producer = NotificationProducer(db, dedupe_hours=0)
    now = utcnow()
    old = now - timedelta(days=45)

    for index, (is_read, created_at) in enumerate([(True, old), (False, old), (True, now)]):
        result = producer.emit(
            user_id=f"user_{index}",
            notification_type="general",
            title="Notice",
            message="Hello",
            priority=NotificationPriority.LOW,
            related=GeneralRef(),
        )
        result.notification.is_read = is_read
        result.notification.created_at = created_at
    db.commit()

    report = cleanup(db, now.date(), retention_days=30)

    assert report.metadata == {"notifications_deleted": 1}
    assert db.query(Notification).count() == 2


def test_bound_job_runs_under_tracker(db: Session, session_factory: sessionmaker, financing_data: FinancingCreate):
    FinancingService(db).create_financing(financing_data)
    tracker = JobTracker(session_factory)

    job = bind(partial(payment_check, reminder_days=5), session_factory, lambda: date(2024, 1, 2))
    result = tracker.run_tracked("payment_check", job)

    assert result.succeeded
    assert result.notifications_created == 1
    assert db.query(JobExecution).one().notifications_created == 1


def test_build_default_jobs(session_factory: sessionmaker):
    config = Settings(cleanup_interval=60, stale_job_hours=2)
    tracker = JobTracker(session_factory)

    jobs = build_default_jobs(tracker, session_factory, config, today=lambda: date(2024, 1, 2))

    assert [job.name for job in jobs] == [
        "fixed_account_processing",
        "fixed_account_overdue_sweep",
        "fixed_account_reminders",
        "payment_check",
        "cleanup",
    ]
    cleanup_job = jobs[-1]
    assert cleanup_job.interval_seconds == 60

    result = tracker.run_tracked(cleanup_job.name, cleanup_job.fn)
    assert result.succeeded
    assert result.metadata["stale_executions"] == 0
    assert result.metadata["notifications_deleted"] == 0
