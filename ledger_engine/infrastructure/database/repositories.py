"""Data access layer for ledger entities"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, exists, func
from sqlalchemy.orm import Session

from ledger_engine.domain.models import (
    FinancingRef,
    FixedAccountRef,
    GeneralRef,
    Installment,
    InstallmentRef,
    JobStatus,
    LedgerEntryDraft,
    PaymentStatus,
    RelatedEntity,
)
from ledger_engine.infrastructure.database.models import (
    Financing,
    FinancingInstallment,
    FinancingPayment,
    FixedAccount,
    FixedAccountTransaction,
    JobExecution,
    Notification,
)


class FinancingRepository:
    """Repository for financings and their installment plans"""

    def __init__(self, db: Session):
        self.db = db

    def create_financing(
        self,
        user_id: str,
        principal: Decimal,
        start_date: date,
        installments: List[Installment],
        description: Optional[str] = None,
        interest_rate: Decimal = Decimal("0"),
    ) -> Financing:
        """Create financing with its installment plan"""
        db_financing = Financing(
            user_id=user_id,
            description=description,
            principal=principal,
            installment_count=len(installments),
            start_date=start_date,
            interest_rate=interest_rate,
            status="active",
        )
        self.db.add(db_financing)
        self.db.flush()

        for inst in installments:
            self.db.add(
                FinancingInstallment(
                    financing_id=db_financing.id,
                    number=inst.number,
                    amount=inst.amount,
                    due_date=inst.due_date,
                )
            )
        self.db.flush()
        return db_financing

    def get_financing(self, financing_id: uuid.UUID, user_id: Optional[str] = None) -> Optional[Financing]:
        query = self.db.query(Financing).filter(Financing.id == financing_id)
        if user_id is not None:
            query = query.filter(Financing.user_id == user_id)
        return query.first()

    def get_installment(self, financing_id: uuid.UUID, number: int) -> Optional[FinancingInstallment]:
        return (
            self.db.query(FinancingInstallment)
            .filter(FinancingInstallment.financing_id == financing_id, FinancingInstallment.number == number)
            .first()
        )

    def list_unpaid_installments_due_by(self, cutoff: date) -> List[FinancingInstallment]:
        """Installments of active financings, due on or before cutoff, with no active ledger entry"""
        settled = exists().where(
            FinancingPayment.financing_id == FinancingInstallment.financing_id,
            FinancingPayment.installment_number == FinancingInstallment.number,
            FinancingPayment.status != PaymentStatus.CANCELLED.value,
        )
        return (
            self.db.query(FinancingInstallment)
            .join(Financing, Financing.id == FinancingInstallment.financing_id)
            .filter(
                Financing.status == "active",
                FinancingInstallment.due_date <= cutoff,
                ~settled,
            )
            .order_by(FinancingInstallment.due_date.asc())
            .all()
        )


class PaymentRepository:
    """Repository for the append-only financing ledger"""

    def __init__(self, db: Session):
        self.db = db

    def list_entries(self, financing_id: uuid.UUID) -> List[FinancingPayment]:
        """Ledger entries in chronological (append) order"""
        return (
            self.db.query(FinancingPayment)
            .filter(FinancingPayment.financing_id == financing_id)
            .order_by(FinancingPayment.entry_seq.asc())
            .all()
        )

    def get_active_entry(self, financing_id: uuid.UUID, installment_number: int) -> Optional[FinancingPayment]:
        return (
            self.db.query(FinancingPayment)
            .filter(
                FinancingPayment.financing_id == financing_id,
                FinancingPayment.installment_number == installment_number,
                FinancingPayment.status != PaymentStatus.CANCELLED.value,
            )
            .first()
        )

    def append(
        self,
        financing: Financing,
        entry: LedgerEntryDraft,
        entry_seq: int,
        payment_date: date,
        payment_method: Optional[str],
    ) -> FinancingPayment:
        """Insert a ledger entry; uniqueness constraints reject concurrent duplicates"""
        db_payment = FinancingPayment(
            user_id=financing.user_id,
            financing_id=financing.id,
            entry_seq=entry_seq,
            installment_number=entry.installment_number,
            payment_amount=entry.payment_amount,
            principal_amount=entry.principal_amount,
            interest_amount=entry.interest_amount,
            balance_before=entry.balance_before,
            balance_after=entry.balance_after,
            payment_type=entry.payment_type.value,
            payment_method=payment_method,
            payment_date=payment_date,
            status=PaymentStatus.PAID.value,
        )
        self.db.add(db_payment)
        self.db.flush()
        return db_payment


class FixedAccountRepository:
    """Repository for fixed accounts and their dated instances"""

    def __init__(self, db: Session):
        self.db = db

    def create_account(self, **fields: Any) -> FixedAccount:
        db_account = FixedAccount(**fields)
        self.db.add(db_account)
        self.db.flush()
        return db_account

    def get_account(self, fixed_account_id: uuid.UUID) -> Optional[FixedAccount]:
        return self.db.query(FixedAccount).filter(FixedAccount.id == fixed_account_id).first()

    def list_due_accounts(self, today: date, user_id: Optional[str] = None) -> List[FixedAccount]:
        """Active accounts whose current cycle has come due"""
        query = self.db.query(FixedAccount).filter(
            FixedAccount.is_active.is_(True),
            FixedAccount.next_due_date <= today,
        )
        if user_id is not None:
            query = query.filter(FixedAccount.user_id == user_id)
        return query.order_by(FixedAccount.next_due_date.asc()).all()

    def list_unpaid_accounts_due_by(self, cutoff: date) -> List[FixedAccount]:
        return (
            self.db.query(FixedAccount)
            .filter(
                FixedAccount.is_active.is_(True),
                FixedAccount.is_paid.is_(False),
                FixedAccount.next_due_date <= cutoff,
            )
            .all()
        )

    def get_instance(self, instance_id: uuid.UUID) -> Optional[FixedAccountTransaction]:
        return self.db.query(FixedAccountTransaction).filter(FixedAccountTransaction.id == instance_id).first()

    def find_instance(self, fixed_account_id: uuid.UUID, due_date: date) -> Optional[FixedAccountTransaction]:
        return (
            self.db.query(FixedAccountTransaction)
            .filter(
                FixedAccountTransaction.fixed_account_id == fixed_account_id,
                FixedAccountTransaction.due_date == due_date,
            )
            .first()
        )

    def add_instance(self, account: FixedAccount, due_date: date) -> FixedAccountTransaction:
        db_instance = FixedAccountTransaction(
            fixed_account_id=account.id,
            user_id=account.user_id,
            due_date=due_date,
            amount=account.amount,
            status="pending",
        )
        self.db.add(db_instance)
        self.db.flush()
        return db_instance

    def list_overdue_instances(self) -> List[FixedAccountTransaction]:
        return (
            self.db.query(FixedAccountTransaction)
            .join(FixedAccountTransaction.fixed_account)
            .filter(FixedAccountTransaction.status == "overdue", FixedAccount.is_active.is_(True))
            .order_by(FixedAccountTransaction.due_date.asc())
            .all()
        )

    def list_pending_past_due(self, today: date) -> List[FixedAccountTransaction]:
        return (
            self.db.query(FixedAccountTransaction)
            .filter(
                FixedAccountTransaction.status == "pending",
                FixedAccountTransaction.due_date < today,
            )
            .all()
        )


class JobExecutionRepository:
    """Repository for job execution bookkeeping"""

    def __init__(self, db: Session):
        self.db = db

    def start(self, job_name: str, started_at: datetime) -> JobExecution:
        db_execution = JobExecution(job_name=job_name, status=JobStatus.RUNNING.value, started_at=started_at)
        self.db.add(db_execution)
        self.db.flush()
        return db_execution

    def get(self, execution_id: uuid.UUID) -> Optional[JobExecution]:
        return self.db.query(JobExecution).filter(JobExecution.id == execution_id).first()

    def recent(self, job_name: str, limit: int = 10) -> List[JobExecution]:
        return (
            self.db.query(JobExecution)
            .filter(JobExecution.job_name == job_name)
            .order_by(JobExecution.started_at.desc())
            .limit(limit)
            .all()
        )

    def latest_per_job(self) -> Dict[str, JobExecution]:
        latest = (
            self.db.query(JobExecution.job_name, func.max(JobExecution.started_at).label("started_at"))
            .group_by(JobExecution.job_name)
            .subquery()
        )
        rows = (
            self.db.query(JobExecution)
            .join(
                latest,
                and_(JobExecution.job_name == latest.c.job_name, JobExecution.started_at == latest.c.started_at),
            )
            .all()
        )
        return {row.job_name: row for row in rows}

    def count_by_status(self) -> Dict[str, int]:
        rows = self.db.query(JobExecution.status, func.count(JobExecution.id)).group_by(JobExecution.status).all()
        return {status: count for status, count in rows}

    def average_success_duration(self) -> float:
        value = (
            self.db.query(func.avg(JobExecution.duration_ms))
            .filter(JobExecution.status == JobStatus.SUCCESS.value)
            .scalar()
        )
        return float(value or 0)

    def list_running_started_before(self, cutoff: datetime) -> List[JobExecution]:
        return (
            self.db.query(JobExecution)
            .filter(JobExecution.status == JobStatus.RUNNING.value, JobExecution.started_at < cutoff)
            .all()
        )


def related_columns(related: RelatedEntity) -> tuple:
    """Flatten a related-entity variant into (kind, key) columns"""
    if isinstance(related, FinancingRef):
        return related.kind, str(related.financing_id)
    if isinstance(related, InstallmentRef):
        return related.kind, f"{related.financing_id}:{related.installment_number}"
    if isinstance(related, FixedAccountRef):
        return related.kind, str(related.fixed_account_id)
    if isinstance(related, GeneralRef):
        return related.kind, None
    raise TypeError(f"Unsupported related entity: {related!r}")


def related_entity(kind: str, key: Optional[str]) -> RelatedEntity:
    """Rebuild the related-entity variant stored on a notification row"""
    if kind == "financing":
        return FinancingRef(financing_id=uuid.UUID(key))
    if kind == "installment":
        financing_id, number = key.rsplit(":", 1)
        return InstallmentRef(financing_id=uuid.UUID(financing_id), installment_number=int(number))
    if kind == "fixed_account":
        return FixedAccountRef(fixed_account_id=uuid.UUID(key))
    if kind == "general":
        return GeneralRef()
    raise ValueError(f"Unknown related entity kind: {kind!r}")


class NotificationRepository:
    """Repository for notifications requested by jobs"""

    def __init__(self, db: Session):
        self.db = db

    def find_recent(
        self, user_id: str, notification_type: str, related: RelatedEntity, since: datetime
    ) -> Optional[Notification]:
        kind, key = related_columns(related)
        query = self.db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.type == notification_type,
            Notification.related_kind == kind,
            Notification.created_at >= since,
        )
        query = query.filter(Notification.related_key.is_(None) if key is None else Notification.related_key == key)
        return query.order_by(Notification.created_at.desc()).first()

    def create(
        self,
        user_id: str,
        notification_type: str,
        title: str,
        message: str,
        priority: str,
        related: RelatedEntity,
    ) -> Notification:
        kind, key = related_columns(related)
        db_notification = Notification(
            user_id=user_id,
            type=notification_type,
            title=title,
            message=message,
            priority=priority,
            related_kind=kind,
            related_key=key,
        )
        self.db.add(db_notification)
        self.db.flush()
        return db_notification

    def delete_read_before(self, cutoff: datetime) -> int:
        return (
            self.db.query(Notification)
            .filter(Notification.is_read.is_(True), Notification.created_at < cutoff)
            .delete(synchronize_session=False)
        )
