"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


# Input validation


class ValidationFailure(DomainException):
    """Input rejected before any state was read or written"""

    pass


class InvalidAmountError(ValidationFailure):
    """Monetary amount is missing, malformed or not strictly positive"""

    pass


class InvalidTermError(ValidationFailure):
    """Installment count / term is not a positive integer"""

    pass


class InvalidDateError(ValidationFailure):
    """Date could not be parsed"""

    pass


# Payment ledger


class LedgerError(DomainException):
    """A payment could not be appended to the financing ledger"""

    pass


class DuplicateInstallmentError(LedgerError):
    """Installment already has a non-cancelled ledger entry"""

    def __init__(self, financing_id, installment_number: int):
        self.financing_id = financing_id
        self.installment_number = installment_number
        super().__init__(f"Installment {installment_number} of financing {financing_id} is already settled")


class InsufficientAmountError(LedgerError):
    """Payment amount does not satisfy the balance rules for its payment type"""

    pass


class OverpaymentSplitError(InsufficientAmountError):
    """Principal portion of the payment exceeds the outstanding balance"""

    pass


class LedgerConflictError(LedgerError):
    """Another writer appended to the same financing first; safe to retry"""

    pass


class ImmutableLedgerEntryError(LedgerError):
    """Ledger entries are append-only"""

    pass


# Lookups


class NotFoundError(DomainException):
    """Referenced record does not exist for this owner"""

    pass


class FinancingNotFoundError(NotFoundError):
    pass


class InstallmentNotFoundError(NotFoundError):
    pass


class FixedAccountNotFoundError(NotFoundError):
    pass


class FixedAccountTransactionNotFoundError(NotFoundError):
    pass


class JobExecutionNotFoundError(NotFoundError):
    pass


# Lifecycles


class StatusTransitionError(DomainException):
    """Requested status change is not allowed from the current status"""

    def __init__(self, current: str, target: str, message: str | None = None):
        self.current = current
        self.target = target
        super().__init__(message or f"Cannot move from '{current}' to '{target}'")


class OverdueConflictError(StatusTransitionError):
    """Instance cannot be marked overdue (not pending, or not yet due)"""

    pass


class JobAlreadyFinalizedError(DomainException):
    """Job execution was already finished or failed"""

    pass
