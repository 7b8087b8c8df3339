"""Public model package exports for the loan ledger."""

from .base import BaseDocumentModel, Money, PercentageBps
from .cash_sessions import CashMovementModel, CashSessionModel
from .enums import (
    LoanStatus,
    MovementType,
    PaymentIntentStatus,
    PaymentMethod,
    ReceiptStatus,
    ReceiptType,
)
from .exceptions import (
    AdvanceAmountMismatchError,
    AmountExceedsMaximumError,
    BelowMinimumAmountError,
    CashAmountError,
    CashSessionDiscrepancyError,
    CashSessionStateError,
    DuplicateLoanError,
    InstallmentAlreadyPaidError,
    InstallmentOrderError,
    LedgerError,
    LedgerStateError,
    LoanAlreadyPaidError,
    ModelNotFoundError,
    ModelValidationError,
    PaymentIntentStateError,
    ReceiptAlreadyClassifiedError,
    TransientConflictError,
    VersionConflictError,
)
from .installments import InstallmentModel
from .loans import LoanModel
from .payment_intents import PaymentIntentModel
from .payments import AllocationLine, PaymentModel
from .repositories import DocumentWrite, LedgerStore

__all__ = [
    "BaseDocumentModel",
    "Money",
    "PercentageBps",
    "LoanModel",
    "InstallmentModel",
    "PaymentModel",
    "AllocationLine",
    "CashSessionModel",
    "CashMovementModel",
    "PaymentIntentModel",
    "LoanStatus",
    "PaymentMethod",
    "MovementType",
    "ReceiptStatus",
    "ReceiptType",
    "PaymentIntentStatus",
    "LedgerError",
    "ModelValidationError",
    "CashAmountError",
    "BelowMinimumAmountError",
    "AmountExceedsMaximumError",
    "AdvanceAmountMismatchError",
    "ModelNotFoundError",
    "VersionConflictError",
    "TransientConflictError",
    "LedgerStateError",
    "LoanAlreadyPaidError",
    "InstallmentOrderError",
    "InstallmentAlreadyPaidError",
    "CashSessionStateError",
    "CashSessionDiscrepancyError",
    "DuplicateLoanError",
    "ReceiptAlreadyClassifiedError",
    "PaymentIntentStateError",
    "DocumentWrite",
    "LedgerStore",
]
