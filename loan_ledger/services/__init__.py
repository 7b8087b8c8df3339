"""Service layer exports."""

from .cash_session_service import CashSessionService
from .ledger_facade import LedgerFacade, build_store
from .loan_service import LoanService
from .payment_intent_service import PaymentIntentService
from .payment_service import PaymentService
from .schedule_generator import ScheduleRow, generate_schedule

__all__ = [
    "CashSessionService",
    "LedgerFacade",
    "LoanService",
    "PaymentIntentService",
    "PaymentService",
    "ScheduleRow",
    "build_store",
    "generate_schedule",
]
