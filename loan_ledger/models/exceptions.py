"""Custom exceptions for ledger models, stores and services."""

from typing import Optional


class LedgerError(Exception):
    """Base class for every ledger failure."""


class ModelValidationError(LedgerError):
    """Raised when input data fails business validation.

    Attributes:
        constraint: Short machine-readable name of the violated rule.
    """

    def __init__(self, message: str, constraint: Optional[str] = None) -> None:
        super().__init__(message)
        self.constraint = constraint


class CashAmountError(ModelValidationError):
    """Raised when a cash amount is not a multiple of the cash unit."""

    def __init__(self, message: str, amount_minor: int) -> None:
        super().__init__(message, constraint="cash_multiple")
        self.amount_minor = amount_minor


class BelowMinimumAmountError(ModelValidationError):
    """Raised when a digital payment is under the configured minimum."""

    def __init__(self, message: str, minimum_minor: int) -> None:
        super().__init__(message, constraint="minimum_amount")
        self.minimum_minor = minimum_minor


class AmountExceedsMaximumError(ModelValidationError):
    """Raised when a payment is larger than the loan's payable balance."""

    def __init__(self, message: str, max_allowed_minor: int) -> None:
        super().__init__(message, constraint="maximum_amount")
        self.max_allowed_minor = max_allowed_minor


class AdvanceAmountMismatchError(ModelValidationError):
    """Raised when an advance payment does not match the quoted total."""

    def __init__(self, message: str, required_minor: int) -> None:
        super().__init__(message, constraint="advance_amount")
        self.required_minor = required_minor


class ModelNotFoundError(LedgerError):
    """Raised when a requested document does not exist."""


class VersionConflictError(LedgerError):
    """Raised when optimistic concurrency version checks fail."""


class TransientConflictError(LedgerError):
    """Raised when an operation keeps conflicting after all retries."""


class LedgerStateError(LedgerError):
    """Raised when an operation is not allowed in the current ledger state."""


class LoanAlreadyPaidError(LedgerStateError):
    """Raised when paying a loan that has no outstanding balance."""


class InstallmentOrderError(LedgerStateError):
    """Raised when an earlier installment still blocks the requested one."""

    def __init__(self, message: str, blocking_number: int) -> None:
        super().__init__(message)
        self.blocking_number = blocking_number


class InstallmentAlreadyPaidError(LedgerStateError):
    """Raised when targeting an installment that is already paid."""


class CashSessionStateError(LedgerStateError):
    """Raised when a cash session is missing, closed or owned by someone else."""


class CashSessionDiscrepancyError(LedgerStateError):
    """Raised when the counted cash does not match the computed balance."""

    def __init__(self, message: str, expected_minor: int, counted_minor: int) -> None:
        super().__init__(message)
        self.expected_minor = expected_minor
        self.counted_minor = counted_minor


class DuplicateLoanError(LedgerStateError):
    """Raised when a client already has a loan."""


class ReceiptAlreadyClassifiedError(LedgerStateError):
    """Raised when a payment receipt was already classified."""


class PaymentIntentStateError(LedgerStateError):
    """Raised when a payment intent is expired or otherwise unusable."""
