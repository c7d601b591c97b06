"""Financing lifecycle: creation with an installment plan, summaries and manual overrides"""

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from ledger_engine.domain.exceptions import FinancingNotFoundError, StatusTransitionError
from ledger_engine.domain.installments import build_schedule
from ledger_engine.domain.ledger import fold_balance
from ledger_engine.domain.models import FinancingStatus, Installment, PaymentStatus
from ledger_engine.domain.money import ZERO, quantize_cents
from ledger_engine.infrastructure.database.models import Financing
from ledger_engine.infrastructure.database.repositories import FinancingRepository, PaymentRepository
from ledger_engine.schemas import FinancingCreate
from ledger_engine.services.audit import AuditService

logger = logging.getLogger(__name__)


@dataclass
class PaymentSummary:
    """Ledger totals for one financing"""

    total_paid: Decimal
    total_principal_paid: Decimal
    total_interest_paid: Decimal
    paid_installments: int
    remaining_installments: int
    outstanding_balance: Decimal
    percentage_paid: Decimal


class FinancingService:
    """Creates financings and reports on their ledgers"""

    def __init__(self, db: Session):
        self.db = db
        self.financings = FinancingRepository(db)
        self.payments = PaymentRepository(db)

    def create_financing(self, data: FinancingCreate) -> Financing:
        """Persist a financing together with the installment plan generated for it"""
        installments = build_schedule(
            data.principal, data.installment_count, data.start_date, interval_days=data.interval_days
        )
        try:
            financing = self.financings.create_financing(
                user_id=data.user_id,
                principal=data.principal,
                start_date=data.start_date,
                installments=installments,
                description=data.description,
                interest_rate=data.interest_rate,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Financing created",
            extra={
                "financing_id": str(financing.id),
                "user_id": data.user_id,
                "principal": str(data.principal),
                "installment_count": data.installment_count,
            },
        )
        return financing

    def get_financing(self, financing_id: uuid.UUID, user_id: Optional[str] = None) -> Financing:
        financing = self.financings.get_financing(financing_id, user_id=user_id)
        if financing is None:
            raise FinancingNotFoundError(f"Financing {financing_id} not found")
        return financing

    def get_schedule(self, financing_id: uuid.UUID) -> List[Installment]:
        financing = self.get_financing(financing_id)
        return [
            Installment(number=inst.number, amount=inst.amount, due_date=inst.due_date)
            for inst in financing.installments
        ]

    def get_outstanding_balance(self, financing_id: uuid.UUID) -> Decimal:
        financing = self.get_financing(financing_id)
        return fold_balance(financing.principal, self.payments.list_entries(financing.id))

    def get_payment_summary(self, financing_id: uuid.UUID) -> PaymentSummary:
        financing = self.get_financing(financing_id)
        entries = [
            entry
            for entry in self.payments.list_entries(financing.id)
            if entry.status != PaymentStatus.CANCELLED.value
        ]

        total_paid = sum((e.payment_amount for e in entries), ZERO)
        total_principal = sum((e.principal_amount for e in entries), ZERO)
        total_interest = sum((e.interest_amount for e in entries), ZERO)
        percentage = quantize_cents(total_principal / financing.principal * 100) if financing.principal else ZERO

        return PaymentSummary(
            total_paid=total_paid,
            total_principal_paid=total_principal,
            total_interest_paid=total_interest,
            paid_installments=len(entries),
            remaining_installments=max(0, financing.installment_count - len(entries)),
            outstanding_balance=fold_balance(financing.principal, entries),
            percentage_paid=percentage,
        )

    def mark_defaulted(self, financing_id: uuid.UUID, actor: str, reason: Optional[str] = None) -> Financing:
        """Manual override: an active financing is flagged as defaulted"""
        financing = self.get_financing(financing_id)
        if financing.status != FinancingStatus.ACTIVE.value:
            raise StatusTransitionError(financing.status, FinancingStatus.DEFAULTED.value)

        financing.status = FinancingStatus.DEFAULTED.value
        AuditService.record(
            self.db,
            action="mark_defaulted",
            resource_type="financing",
            resource_id=financing.id,
            actor=actor,
            details={"reason": reason} if reason else None,
        )
        self.db.commit()

        logger.warning(
            "Financing marked as defaulted",
            extra={"financing_id": str(financing_id), "actor": actor},
        )
        return financing
