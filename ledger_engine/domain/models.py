"""Domain models - pure Python dataclasses representing business entities"""

import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Union


class FinancingStatus(str, Enum):
    ACTIVE = "active"
    PAID = "paid"
    DEFAULTED = "defaulted"


class PaymentType(str, Enum):
    INSTALLMENT = "installment"
    PARTIAL = "partial"
    EARLY_PAYOFF = "early_payoff"


class PaymentStatus(str, Enum):
    PAID = "paid"
    PENDING = "pending"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class Periodicity(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class ObligationType(str, Enum):
    EXPENSE = "expense"
    INCOME = "income"


class InstanceStatus(str, Enum):
    """Lifecycle of one dated FixedAccountTransaction"""

    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class JobStatus(str, Enum):
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


class AmortizationMethod(str, Enum):
    SAC = "SAC"
    PRICE = "Price"


@dataclass
class Installment:
    """Single scheduled repayment unit, prior to any actual payment"""

    number: int
    amount: Decimal
    due_date: date

    def as_dict(self) -> Dict[str, Any]:
        return {"number": self.number, "amount": self.amount, "due_date": self.due_date.isoformat()}


@dataclass
class AmortizationRow:
    """One line of a SAC/Price amortization table"""

    installment: int
    due_date: date
    payment: Decimal
    amortization: Decimal
    interest: Decimal
    remaining_balance: Decimal


@dataclass
class AmortizationSummary:
    principal: Decimal
    total_payments: Decimal
    total_amortization: Decimal
    total_interest: Decimal


@dataclass
class AmortizationTable:
    rows: list
    summary: AmortizationSummary


@dataclass
class PaymentSplit:
    """Interest/principal allocation of one payment"""

    interest_amount: Decimal
    principal_amount: Decimal


@dataclass
class LedgerEntryDraft:
    """Computed ledger entry, ready to be appended to the store"""

    installment_number: int
    payment_amount: Decimal
    interest_amount: Decimal
    principal_amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    payment_type: PaymentType

    @property
    def closes_balance(self) -> bool:
        return self.balance_after == 0


@dataclass
class Rollover:
    """Result of advancing a fixed account by one cycle"""

    due_date: date
    next_due_date: date
    is_paid: bool = False


# Related entity of a notification: a closed set of typed references.


@dataclass(frozen=True)
class FinancingRef:
    financing_id: uuid.UUID
    kind: str = field(default="financing", init=False)


@dataclass(frozen=True)
class InstallmentRef:
    financing_id: uuid.UUID
    installment_number: int
    kind: str = field(default="installment", init=False)


@dataclass(frozen=True)
class FixedAccountRef:
    fixed_account_id: uuid.UUID
    kind: str = field(default="fixed_account", init=False)


@dataclass(frozen=True)
class GeneralRef:
    kind: str = field(default="general", init=False)


RelatedEntity = Union[FinancingRef, InstallmentRef, FixedAccountRef, GeneralRef]


@dataclass
class JobReport:
    """What a scheduled job returns to the tracker"""

    notifications_created: int = 0
    notifications_updated: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class JobResult:
    """Outcome of one tracked job run, as persisted"""

    execution_id: Optional[uuid.UUID]
    job_name: str
    status: JobStatus
    duration_ms: int
    notifications_created: int = 0
    notifications_updated: int = 0
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == JobStatus.SUCCESS
