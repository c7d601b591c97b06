"""Recurrence instantiator: materializes dated instances of fixed accounts"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date
from typing import Any, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_engine.domain.exceptions import (
    FixedAccountNotFoundError,
    FixedAccountTransactionNotFoundError,
    InvalidDateError,
)
from ledger_engine.domain.models import InstanceStatus
from ledger_engine.domain.recurrence import is_due_soon, mark_overdue, plan_rollover, transition
from ledger_engine.infrastructure.database.models import FixedAccount, FixedAccountTransaction
from ledger_engine.infrastructure.database.repositories import FixedAccountRepository
from ledger_engine.infrastructure.observability.metrics import instance_created_counter, instance_overdue_counter
from ledger_engine.schemas import FixedAccountCreate
from ledger_engine.services.audit import AuditService
from ledger_engine.utils.date_utils import add_days, parse_date

logger = logging.getLogger(__name__)

MAX_REMINDER_DAYS = 60


@dataclass
class ProcessingReport:
    """Counts from one pass over the due fixed accounts"""

    processed: int = 0
    created: int = 0
    updated: int = 0
    errors: int = 0


class RecurrenceInstantiator:
    """Owns the lifecycle of fixed accounts and their FixedAccountTransaction rows"""

    def __init__(self, db: Session):
        self.db = db
        self.accounts = FixedAccountRepository(db)

    def create_fixed_account(self, data: FixedAccountCreate) -> Tuple[FixedAccount, FixedAccountTransaction]:
        """Create the obligation together with its first instance, due on start_date"""
        try:
            account = self.accounts.create_account(
                user_id=data.user_id,
                description=data.description,
                amount=data.amount,
                periodicity=data.periodicity.value,
                type=data.type.value,
                start_date=data.start_date,
                next_due_date=data.start_date,
                reminder_days=data.reminder_days,
                is_active=True,
                is_paid=False,
            )
            instance = self.accounts.add_instance(account, data.start_date)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        instance_created_counter.inc()
        logger.info(
            "Fixed account created",
            extra={
                "fixed_account_id": str(account.id),
                "user_id": data.user_id,
                "periodicity": data.periodicity.value,
                "first_due_date": data.start_date.isoformat(),
            },
        )
        return account, instance

    def materialize_next_due(self, fixed_account: FixedAccount) -> Optional[FixedAccountTransaction]:
        """
        Create the instance for the account's next cycle.

        The instance is dated one period after next_due_date; next_due_date then
        moves to that date and is_paid resets. Returns None (no-op) when the
        account is inactive or an instance for that date already exists,
        including when a concurrent writer created it first.
        """
        if not fixed_account.is_active:
            return None

        rollover = plan_rollover(fixed_account.next_due_date, fixed_account.periodicity, fixed_account.start_date)
        account_id = fixed_account.id

        if self.accounts.find_instance(account_id, rollover.due_date) is not None:
            logger.info(
                "Instance already materialized",
                extra={"fixed_account_id": str(account_id), "due_date": rollover.due_date.isoformat()},
            )
            return None

        try:
            instance = self.accounts.add_instance(fixed_account, rollover.due_date)
            fixed_account.next_due_date = rollover.next_due_date
            fixed_account.is_paid = rollover.is_paid
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.info(
                "Instance materialized concurrently",
                extra={"fixed_account_id": str(account_id), "due_date": rollover.due_date.isoformat()},
            )
            return None

        instance_created_counter.inc()
        logger.info(
            "Instance materialized",
            extra={
                "fixed_account_id": str(account_id),
                "due_date": rollover.due_date.isoformat(),
                "next_due_date": rollover.next_due_date.isoformat(),
            },
        )
        return instance

    def process_due_accounts(self, today: date, user_id: Optional[str] = None) -> ProcessingReport:
        """Bring every due account up to date, materializing as many cycles as were missed"""
        report = ProcessingReport()

        for account in self.accounts.list_due_accounts(today, user_id=user_id):
            account_id = account.id
            report.processed += 1
            try:
                created_any = False
                while account.next_due_date <= today:
                    if self.materialize_next_due(account) is None:
                        break
                    report.created += 1
                    created_any = True
                if created_any:
                    report.updated += 1
            except Exception as e:
                self.db.rollback()
                report.errors += 1
                logger.error(
                    f"Failed to process fixed account: {e}",
                    extra={"fixed_account_id": str(account_id)},
                    exc_info=True,
                )

        logger.info(
            "Due fixed accounts processed",
            extra={
                "processed": report.processed,
                "created": report.created,
                "updated": report.updated,
                "errors": report.errors,
            },
        )
        return report

    def sweep_overdue(self, today: date) -> List[FixedAccountTransaction]:
        """Move every pending instance whose due date has passed to overdue"""
        swept = []
        try:
            for instance in self.accounts.list_pending_past_due(today):
                instance.status = mark_overdue(instance.status, instance.due_date, today).value
                swept.append(instance)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if swept:
            instance_overdue_counter.inc(len(swept))
            logger.info("Instances marked overdue", extra={"count": len(swept), "as_of": today.isoformat()})
        return swept

    def pay_instance(
        self,
        instance_id: uuid.UUID,
        payment_date: Any,
        method: Optional[str] = None,
        transaction_id: Optional[str] = None,
        observations: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> FixedAccountTransaction:
        """Settle a pending or overdue instance; the current cycle also flags the account as paid"""
        paid_on = parse_date(payment_date)
        if paid_on is None:
            raise InvalidDateError(f"Invalid payment date: {payment_date!r}")

        instance = self._get_instance(instance_id)
        try:
            instance.status = transition(instance.status, InstanceStatus.PAID).value
            instance.payment_date = paid_on
            instance.payment_method = method
            instance.transaction_id = transaction_id
            if observations:
                instance.observations = observations

            account = instance.fixed_account
            if account is not None and instance.due_date == account.next_due_date:
                account.is_paid = True

            AuditService.record(
                self.db,
                action="pay_instance",
                resource_type="fixed_account_transaction",
                resource_id=instance.id,
                actor=actor or instance.user_id,
                details={"due_date": instance.due_date.isoformat(), "payment_date": paid_on.isoformat()},
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Instance paid",
            extra={"instance_id": str(instance.id), "fixed_account_id": str(instance.fixed_account_id)},
        )
        return instance

    def cancel_instance(self, instance_id: uuid.UUID, actor: str, reason: Optional[str] = None) -> FixedAccountTransaction:
        """Manual override: pending -> cancelled"""
        instance = self._get_instance(instance_id)
        try:
            instance.status = transition(instance.status, InstanceStatus.CANCELLED).value
            if reason:
                instance.observations = reason
            AuditService.record(
                self.db,
                action="cancel_instance",
                resource_type="fixed_account_transaction",
                resource_id=instance.id,
                actor=actor,
                details={"reason": reason} if reason else None,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.warning("Instance cancelled", extra={"instance_id": str(instance.id), "actor": actor})
        return instance

    def find_due_soon(self, today: date) -> List[FixedAccount]:
        """Unpaid active accounts whose current cycle is pending and within their reminder window"""
        cutoff = add_days(today, MAX_REMINDER_DAYS)
        due_soon = []
        for account in self.accounts.list_unpaid_accounts_due_by(cutoff):
            current = self.accounts.find_instance(account.id, account.next_due_date)
            status = current.status if current is not None else InstanceStatus.PENDING
            if is_due_soon(account.next_due_date, status, today, account.reminder_days):
                due_soon.append(account)
        return due_soon

    def get_fixed_account(self, fixed_account_id: uuid.UUID) -> FixedAccount:
        account = self.accounts.get_account(fixed_account_id)
        if account is None:
            raise FixedAccountNotFoundError(f"Fixed account {fixed_account_id} not found")
        return account

    def _get_instance(self, instance_id: uuid.UUID) -> FixedAccountTransaction:
        instance = self.accounts.get_instance(instance_id)
        if instance is None:
            raise FixedAccountTransactionNotFoundError(f"Fixed account instance {instance_id} not found")
        return instance
