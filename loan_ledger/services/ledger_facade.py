"""Single entry point wiring settings, store and services together."""

from datetime import date, datetime
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..common.money import AmountLike
from ..core.config import AppSettings
from ..core.firebase_client_manager import FirebaseClientManager
from ..models.base import Money
from ..models.cash_sessions import CashMovementModel, CashSessionModel
from ..models.enums import MovementType, PaymentMethod, ReceiptType
from ..models.payment_intents import PaymentIntentModel
from ..models.payments import PaymentModel
from ..models.repositories import LedgerStore
from ..repositories.firestore_ledger_store import FirestoreLedgerStore
from ..repositories.memory_ledger_store import InMemoryLedgerStore
from .cash_session_service import CashSessionService
from .late_fees import InstallmentStatus
from .loan_service import LoanService
from .payment_intent_service import PaymentIntentService
from .payment_service import PaymentService
from .schedule_generator import ScheduleRow, generate_schedule


logger = logging.getLogger(__name__)


def build_store(settings: AppSettings) -> LedgerStore:
    """Create the store selected by `storage.backend`."""
    if settings.storage_backend == "firestore":
        manager = FirebaseClientManager(
            project_id=settings.firebase_project_id,
            credentials_path=settings.firebase_credentials_path,
        )
        return FirestoreLedgerStore(manager, collection_prefix=settings.collection_prefix)
    return InMemoryLedgerStore(collection_prefix=settings.collection_prefix)


class LedgerFacade:
    """Exposes every ledger operation through one object."""

    def __init__(
        self,
        settings: AppSettings,
        store: LedgerStore,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.loans = LoanService(settings, store, clock=clock)
        self.payments = PaymentService(settings, store, clock=clock)
        self.cash_sessions = CashSessionService(settings, store, clock=clock)
        self.intents = PaymentIntentService(settings, store, self.payments, clock=clock)

    @classmethod
    def build(
        cls,
        settings: AppSettings,
        store: Optional[LedgerStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> "LedgerFacade":
        facade = cls(settings, store or build_store(settings), clock=clock)
        logger.info(
            "Ledger ready backend=%s timezone=%s",
            settings.storage_backend if store is None else type(store).__name__,
            settings.timezone,
        )
        return facade

    def generate_schedule(
        self,
        principal: AmountLike,
        annual_rate: AmountLike,
        term_count: int,
        start_date: date,
    ) -> List[ScheduleRow]:
        return generate_schedule(principal, annual_rate, term_count, start_date, self.settings.tzinfo)

    def preview_loan(self, principal: AmountLike, annual_rate: AmountLike, term_count: int, start_date: date) -> Dict[str, Any]:
        return self.loans.preview_loan(principal, annual_rate, term_count, start_date)

    def create_loan(self, client_id: str, principal: AmountLike, annual_rate: AmountLike, term_count: int, start_date: date, created_by: str = "system") -> Dict[str, Any]:
        return self.loans.create_loan(client_id, principal, annual_rate, term_count, start_date, created_by=created_by)

    def get_installment_statuses(self, loan_id: str, as_of: Optional[datetime] = None) -> List[InstallmentStatus]:
        return self.loans.get_installment_statuses(loan_id, as_of=as_of)

    def get_statement(self, loan_id: str, as_of: Optional[datetime] = None) -> Dict[str, Any]:
        return self.loans.get_statement(loan_id, as_of=as_of)

    def allocate_payment(
        self,
        loan_id: str,
        amount: AmountLike,
        method: PaymentMethod,
        cash_session_id: str,
        cashier_id: str,
        installment_id: Optional[str] = None,
        external_ref: Optional[str] = None,
    ) -> PaymentModel:
        return self.payments.allocate_payment(
            loan_id,
            amount,
            method,
            cash_session_id,
            cashier_id,
            installment_id=installment_id,
            external_ref=external_ref,
        )

    def quote_advance_payment(
        self,
        loan_id: str,
        installment_ids: Sequence[str],
        cash_session_id: str,
        method: Optional[PaymentMethod] = None,
        cashier_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        return self.payments.quote_advance_payment(
            loan_id, installment_ids, cash_session_id, method=method, cashier_id=cashier_id
        )

    def allocate_advance_payment(
        self,
        loan_id: str,
        installment_ids: Sequence[str],
        amount: AmountLike,
        method: PaymentMethod,
        cash_session_id: str,
        cashier_id: str,
        external_ref: Optional[str] = None,
    ) -> PaymentModel:
        return self.payments.allocate_advance_payment(
            loan_id,
            installment_ids,
            amount,
            method,
            cash_session_id,
            cashier_id,
            external_ref=external_ref,
        )

    def classify_receipt(
        self,
        payment_id: str,
        receipt_type: ReceiptType,
        tax_id: Optional[str] = None,
        business_name: Optional[str] = None,
        business_address: Optional[str] = None,
    ) -> PaymentModel:
        return self.payments.classify_receipt(
            payment_id,
            receipt_type,
            tax_id=tax_id,
            business_name=business_name,
            business_address=business_address,
        )

    def get_payment(self, payment_id: str) -> PaymentModel:
        return self.payments.get_payment(payment_id)

    def list_payments(self, loan_id: str) -> List[PaymentModel]:
        return self.payments.list_payments(loan_id)

    def open_session(self, cashier_id: str, opening_balance: AmountLike, notes: Optional[str] = None) -> CashSessionModel:
        return self.cash_sessions.open_session(cashier_id, opening_balance, notes=notes)

    def close_session(self, session_id: str, counted_amount: AmountLike, cashier_id: Optional[str] = None, notes: Optional[str] = None) -> CashSessionModel:
        return self.cash_sessions.close_session(session_id, counted_amount, cashier_id=cashier_id, notes=notes)

    def record_movement(
        self,
        session_id: str,
        movement_type: MovementType,
        amount: AmountLike,
        description: str = "",
        payment_id: Optional[str] = None,
        cashier_id: Optional[str] = None,
    ) -> CashMovementModel:
        return self.cash_sessions.record_movement(
            session_id, movement_type, amount, description=description, payment_id=payment_id, cashier_id=cashier_id
        )

    def get_balance(self, session_id: str) -> Money:
        return self.cash_sessions.get_balance(session_id)

    def get_summary(self, session_id: str) -> Dict[str, Any]:
        return self.cash_sessions.get_summary(session_id)

    def register_payment_intent(
        self,
        order_id: str,
        loan_id: str,
        amount: AmountLike,
        cashier_id: str,
        cash_session_id: str,
        installment_ids: Optional[Sequence[str]] = None,
    ) -> PaymentIntentModel:
        return self.intents.register_intent(order_id, loan_id, amount, cashier_id, cash_session_id, installment_ids)

    def get_payment_intent(self, order_id: str) -> PaymentIntentModel:
        return self.intents.get_intent(order_id)

    def complete_payment_intent(self, order_id: str, confirmed_amount: Optional[AmountLike] = None) -> PaymentModel:
        return self.intents.complete_intent(order_id, confirmed_amount=confirmed_amount)

    def get_current_session(self, cashier_id: str) -> Optional[CashSessionModel]:
        return self.cash_sessions.get_current_session(cashier_id)

    def list_sessions(
        self,
        cashier_id: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        limit: int = 50,
    ) -> List[CashSessionModel]:
        return self.cash_sessions.list_sessions(cashier_id=cashier_id, start_date=start_date, end_date=end_date, limit=limit)

    def validate_change_available(self, session_id: str, change_amount: AmountLike) -> Dict[str, Any]:
        return self.cash_sessions.validate_change_available(session_id, change_amount)

    def get_daily_report(self, day: Optional[date] = None) -> Dict[str, Any]:
        return self.cash_sessions.get_daily_report(day)
