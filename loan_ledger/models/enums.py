"""Reusable enums for ledger domain models."""

from enum import Enum


class StringEnum(str, Enum):
    """Base enum class with string behavior for JSON serialization."""


class LoanStatus(StringEnum):
    """Loan lifecycle states."""

    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"


class PaymentMethod(StringEnum):
    """Ways a payment can be collected."""

    CASH = "CASH"
    DIGITAL_WALLET = "DIGITAL_WALLET"
    DEBIT_CARD = "DEBIT_CARD"
    CREDIT_CARD = "CREDIT_CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    GATEWAY = "GATEWAY"
    OTHER = "OTHER"


MINIMUM_AMOUNT_METHODS = frozenset({PaymentMethod.DIGITAL_WALLET, PaymentMethod.DEBIT_CARD})


class MovementType(StringEnum):
    """Cash movement categories inside a cash session."""

    INFLOW = "INFLOW"
    OUTFLOW = "OUTFLOW"
    CHANGE_GIVEN = "CHANGE_GIVEN"
    COLLECTION = "COLLECTION"


class ReceiptStatus(StringEnum):
    """Receipt classification lifecycle of a payment."""

    UNCLASSIFIED = "UNCLASSIFIED"
    CLASSIFIED = "CLASSIFIED"


class ReceiptType(StringEnum):
    """Fiscal document issued for a payment."""

    SALES_RECEIPT = "SALES_RECEIPT"
    INVOICE = "INVOICE"


class PaymentIntentStatus(StringEnum):
    """Gateway payment intent lifecycle states."""

    PENDING = "PENDING"
    CONSUMED = "CONSUMED"
    EXPIRED = "EXPIRED"
