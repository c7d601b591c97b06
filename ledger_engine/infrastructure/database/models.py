"""SQLAlchemy ORM models for financings, fixed accounts and job bookkeeping"""

import uuid
from sqlalchemy import (
    Column,
    String,
    Boolean,
    Date,
    DateTime,
    Integer,
    ForeignKey,
    Index,
    Numeric,
    Text,
    JSON,
    UniqueConstraint,
    event,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base, relationship

from ledger_engine.domain.exceptions import ImmutableLedgerEntryError
from ledger_engine.utils.date_utils import utcnow

Base = declarative_base()

Money = Numeric(12, 2)


class Financing(Base):
    """Financed principal repaid through a fixed installment plan"""

    __tablename__ = "financing"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, index=True)
    description = Column(Text, nullable=True)
    principal = Column(Money, nullable=False)
    installment_count = Column(Integer, nullable=False)
    start_date = Column(Date, nullable=False)
    interest_rate = Column(Numeric(9, 6), nullable=False, default=0)  # annual, decimal
    status = Column(String(16), nullable=False, default="active", index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    installments = relationship(
        "FinancingInstallment",
        back_populates="financing",
        cascade="all, delete-orphan",
        order_by="FinancingInstallment.number",
    )
    payments = relationship(
        "FinancingPayment",
        back_populates="financing",
        order_by="FinancingPayment.entry_seq",
    )


class FinancingInstallment(Base):
    """Scheduled repayment unit of a financing"""

    __tablename__ = "financing_installment"
    __table_args__ = (UniqueConstraint("financing_id", "number", name="uq_financing_installment_number"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    financing_id = Column(UUID(as_uuid=True), ForeignKey("financing.id", ondelete="CASCADE"), nullable=False)
    number = Column(Integer, nullable=False)
    amount = Column(Money, nullable=False)
    due_date = Column(Date, nullable=False, index=True)

    financing = relationship("Financing", back_populates="installments")


class FinancingPayment(Base):
    """Append-only ledger entry recording one payment against an installment"""

    __tablename__ = "financing_payment"
    __table_args__ = (
        UniqueConstraint("financing_id", "entry_seq", name="uq_financing_payment_seq"),
        Index(
            "uq_financing_payment_installment",
            "financing_id",
            "installment_number",
            unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, index=True)
    financing_id = Column(UUID(as_uuid=True), ForeignKey("financing.id", ondelete="CASCADE"), nullable=False)
    entry_seq = Column(Integer, nullable=False)
    installment_number = Column(Integer, nullable=False)
    payment_amount = Column(Money, nullable=False)
    principal_amount = Column(Money, nullable=False)
    interest_amount = Column(Money, nullable=False, default=0)
    balance_before = Column(Money, nullable=False)
    balance_after = Column(Money, nullable=False)
    payment_type = Column(String(16), nullable=False)
    payment_method = Column(Text, nullable=True)
    payment_date = Column(Date, nullable=False)
    status = Column(String(16), nullable=False, default="paid")
    created_at = Column(DateTime, nullable=False, default=utcnow)

    financing = relationship("Financing", back_populates="payments")


@event.listens_for(FinancingPayment, "before_update")
def _reject_ledger_update(mapper, connection, target):
    raise ImmutableLedgerEntryError(f"Ledger entry {target.id} cannot be modified")


class FixedAccount(Base):
    """Recurring obligation (bill or income) with a periodicity"""

    __tablename__ = "fixed_account"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, index=True)
    description = Column(Text, nullable=False)
    amount = Column(Money, nullable=False)
    periodicity = Column(String(16), nullable=False, default="monthly")
    type = Column(String(16), nullable=False, default="expense")
    start_date = Column(Date, nullable=False)
    next_due_date = Column(Date, nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_paid = Column(Boolean, nullable=False, default=False)
    reminder_days = Column(Integer, nullable=False, default=3)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    instances = relationship(
        "FixedAccountTransaction",
        back_populates="fixed_account",
        cascade="all, delete-orphan",
        order_by="FixedAccountTransaction.due_date",
    )


class FixedAccountTransaction(Base):
    """One dated instance of a fixed account obligation"""

    __tablename__ = "fixed_account_transaction"
    __table_args__ = (UniqueConstraint("fixed_account_id", "due_date", name="uq_fixed_account_due_date"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    fixed_account_id = Column(
        UUID(as_uuid=True), ForeignKey("fixed_account.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(Text, nullable=False, index=True)
    due_date = Column(Date, nullable=False, index=True)
    amount = Column(Money, nullable=False)
    status = Column(String(16), nullable=False, default="pending", index=True)
    payment_date = Column(Date, nullable=True)
    payment_method = Column(Text, nullable=True)
    observations = Column(Text, nullable=True)
    transaction_id = Column(Text, nullable=True)  # realized ledger transaction, owned elsewhere
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    fixed_account = relationship("FixedAccount", back_populates="instances")


class JobExecution(Base):
    """One run of a scheduled job"""

    __tablename__ = "job_execution"
    __table_args__ = (Index("ix_job_execution_name_started", "job_name", "started_at"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    job_name = Column(String(50), nullable=False, index=True)
    status = Column(String(16), nullable=False, default="running", index=True)
    started_at = Column(DateTime, nullable=False, default=utcnow)
    finished_at = Column(DateTime, nullable=True)
    duration_ms = Column(Integer, nullable=True)
    notifications_created = Column(Integer, nullable=False, default=0)
    notifications_updated = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    error_stack = Column(Text, nullable=True)
    metadata_ = Column("metadata", JSON, nullable=True)


class Notification(Base):
    """Notification requested by a job; delivery happens elsewhere"""

    __tablename__ = "notification"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, index=True)
    type = Column(String(40), nullable=False)
    title = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    priority = Column(String(16), nullable=False, default="medium")
    related_kind = Column(String(20), nullable=False, default="general")
    related_key = Column(Text, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class AuditLog(Base):
    """Write-only record of administrative and ledger actions"""

    __tablename__ = "audit_log"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    actor = Column(Text, nullable=False)
    action = Column(String(50), nullable=False)
    resource_type = Column(String(40), nullable=False)
    resource_id = Column(Text, nullable=True)
    outcome = Column(String(16), nullable=False)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
