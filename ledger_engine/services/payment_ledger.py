"""Payment ledger: appends payments to a financing and rolls its balance forward"""

import logging
import uuid
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_engine.domain.exceptions import (
    DomainException,
    DuplicateInstallmentError,
    FinancingNotFoundError,
    InstallmentNotFoundError,
    InvalidAmountError,
    InvalidDateError,
    LedgerConflictError,
)
from ledger_engine.domain.ledger import accrued_interest_for, compute_entry, fold_balance
from ledger_engine.domain.models import FinancingStatus, PaymentType
from ledger_engine.domain.money import quantize_cents, to_decimal
from ledger_engine.infrastructure.database.models import FinancingPayment
from ledger_engine.infrastructure.database.repositories import FinancingRepository, PaymentRepository
from ledger_engine.infrastructure.observability.metrics import record_payment, record_rejection
from ledger_engine.services.audit import AuditService
from ledger_engine.utils.date_utils import parse_date

logger = logging.getLogger(__name__)


class PaymentLedger:
    """Applies payments against installments; the only writer of FinancingPayment rows"""

    def __init__(self, db: Session):
        self.db = db
        self.financings = FinancingRepository(db)
        self.payments = PaymentRepository(db)

    def apply_payment(
        self,
        financing_id: uuid.UUID,
        installment_number: int,
        amount: Any,
        payment_date: Any,
        method: Optional[str] = None,
        *,
        accrued_interest: Any = None,
        payment_type: Optional[PaymentType] = None,
        user_id: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> FinancingPayment:
        """
        Append one payment to a financing's ledger.

        Flow:
        1. Validate amount and date
        2. Reject a second settlement of the same installment
        3. Fold the ledger into the current balance and compute the entry
        4. Persist the entry; close the financing when the balance reaches zero

        Nothing is written when any step fails.

        Raises:
            InvalidAmountError, InvalidDateError, FinancingNotFoundError,
            InstallmentNotFoundError, DuplicateInstallmentError,
            InsufficientAmountError, LedgerConflictError
        """
        try:
            payment = self._apply(
                financing_id,
                installment_number,
                amount,
                payment_date,
                method,
                accrued_interest=accrued_interest,
                payment_type=payment_type,
                user_id=user_id,
                actor=actor,
            )
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            error = self._translate_conflict(financing_id, installment_number)
            self._reject(error, financing_id, installment_number)
            raise error from e
        except DomainException as e:
            self.db.rollback()
            self._reject(e, financing_id, installment_number)
            raise

        record_payment(payment.payment_type, payment.balance_after == 0)
        logger.info(
            "Payment applied",
            extra={
                "financing_id": str(financing_id),
                "installment_number": installment_number,
                "payment_type": payment.payment_type,
                "balance_after": str(payment.balance_after),
            },
        )
        return payment

    def _apply(
        self,
        financing_id,
        installment_number,
        amount,
        payment_date,
        method,
        *,
        accrued_interest,
        payment_type,
        user_id,
        actor,
    ) -> FinancingPayment:
        value = to_decimal(amount)
        if value is not None:
            value = quantize_cents(value)
        if value is None or value <= 0:
            raise InvalidAmountError(f"Payment amount must be positive, got {amount!r}")
        paid_on = parse_date(payment_date)
        if paid_on is None:
            raise InvalidDateError(f"Invalid payment date: {payment_date!r}")

        financing = self.financings.get_financing(financing_id, user_id=user_id)
        if financing is None:
            raise FinancingNotFoundError(f"Financing {financing_id} not found")

        installment = self.financings.get_installment(financing.id, installment_number)
        if installment is None:
            raise InstallmentNotFoundError(
                f"Financing {financing_id} has no installment {installment_number}"
            )

        if self.payments.get_active_entry(financing.id, installment_number) is not None:
            raise DuplicateInstallmentError(financing_id, installment_number)

        entries = self.payments.list_entries(financing.id)
        balance_before = fold_balance(financing.principal, entries)
        if accrued_interest is None:
            accrued_interest = accrued_interest_for(balance_before, financing.interest_rate)

        entry = compute_entry(
            balance_before=balance_before,
            amount=value,
            installment_number=installment_number,
            installment_count=financing.installment_count,
            installment_amount=installment.amount,
            accrued_interest=accrued_interest,
            payment_type=payment_type,
        )

        next_seq = entries[-1].entry_seq + 1 if entries else 1
        payment = self.payments.append(financing, entry, next_seq, paid_on, method)

        if entry.closes_balance:
            financing.status = FinancingStatus.PAID.value
            self.db.flush()

        AuditService.record(
            self.db,
            action="apply_payment",
            resource_type="financing",
            resource_id=financing.id,
            actor=actor or financing.user_id,
            details={
                "installment_number": installment_number,
                "payment_amount": str(entry.payment_amount),
                "balance_after": str(entry.balance_after),
                "payment_type": entry.payment_type.value,
            },
        )
        return payment

    def _translate_conflict(self, financing_id: uuid.UUID, installment_number: int) -> DomainException:
        """A uniqueness constraint fired: either the installment or the balance chain was taken"""
        if self.payments.get_active_entry(financing_id, installment_number) is not None:
            return DuplicateInstallmentError(financing_id, installment_number)
        return LedgerConflictError(f"Concurrent payment on financing {financing_id}; retry with fresh balance")

    def _reject(self, error: Exception, financing_id: uuid.UUID, installment_number: int) -> None:
        record_rejection(error)
        logger.warning(
            f"Payment rejected: {error}",
            extra={
                "financing_id": str(financing_id),
                "installment_number": installment_number,
                "reason": type(error).__name__,
            },
        )
