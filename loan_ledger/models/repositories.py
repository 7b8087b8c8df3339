"""Store interface for datastore-agnostic ledger access."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import TypeAdapter

from .base import BaseDocumentModel
from .cash_sessions import CashSessionModel
from .exceptions import ModelNotFoundError
from .installments import InstallmentModel
from .loans import LoanModel
from .payment_intents import PaymentIntentModel
from .payments import PaymentModel


logger = logging.getLogger(__name__)

FilterTuple = Tuple[str, str, Any]

LOANS = "loans"
INSTALLMENTS = "installments"
PAYMENTS = "payments"
CASH_SESSIONS = "cash_sessions"
PAYMENT_INTENTS = "payment_intents"
CLIENT_LOANS = "client_loans"
OPEN_SESSIONS = "open_sessions"
PAYMENT_REFERENCES = "payment_references"

COLLECTIONS = (
    LOANS,
    INSTALLMENTS,
    PAYMENTS,
    CASH_SESSIONS,
    PAYMENT_INTENTS,
    CLIENT_LOANS,
    OPEN_SESSIONS,
    PAYMENT_REFERENCES,
)

_DATETIME_ADAPTER = TypeAdapter(datetime)


def document_datetime(value: datetime) -> Any:
    """Serialize a datetime the same way `to_document` stores it, for range filters."""
    return _DATETIME_ADAPTER.dump_python(value, mode="json")


@dataclass(frozen=True)
class DocumentWrite:
    """One write inside an atomic commit.

    `payload=None` deletes the document. `create_only` fails when the document
    already exists. `expected_version` fails unless the stored document carries
    exactly that version.
    """

    collection: str
    document_id: str
    payload: Optional[Dict[str, Any]]
    expected_version: Optional[int] = None
    create_only: bool = False

    @classmethod
    def create(cls, collection: str, model: BaseDocumentModel) -> "DocumentWrite":
        return cls(collection, model.id, model.to_document(), create_only=True)

    @classmethod
    def update(cls, collection: str, model: BaseDocumentModel) -> "DocumentWrite":
        """Write `model`, which must be exactly one version ahead of what is stored."""
        return cls(collection, model.id, model.to_document(), expected_version=model.version - 1)

    @classmethod
    def index(cls, collection: str, key: str, target_id: str) -> "DocumentWrite":
        """Claim a unique key that points at `target_id`."""
        return cls(collection, key, {"id": key, "target_id": target_id, "version": 1}, create_only=True)

    @classmethod
    def delete(cls, collection: str, document_id: str, expected_version: Optional[int] = None) -> "DocumentWrite":
        return cls(collection, document_id, None, expected_version=expected_version)


class LedgerStore(ABC):
    """Unit-of-work contract: plain reads plus one atomic, version-checked commit."""

    @abstractmethod
    def get_document(self, collection: str, document_id: str) -> Optional[Dict[str, Any]]:
        """Return one document payload or None."""

    @abstractmethod
    def query_documents(
        self,
        collection: str,
        filters: Optional[Sequence[FilterTuple]] = None,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Return document payloads matching every `(field, op, value)` filter."""

    @abstractmethod
    def commit(self, writes: Sequence[DocumentWrite]) -> None:
        """Apply every write atomically.

        Raises:
            VersionConflictError: If any version or create-only check fails.
                Nothing is written in that case.
        """

    def _require(self, collection: str, document_id: str, label: str) -> Dict[str, Any]:
        payload = self.get_document(collection, document_id)
        if payload is None:
            raise ModelNotFoundError("{0} not found: {1}".format(label, document_id))
        return payload

    def _index_target(self, collection: str, key: str) -> Optional[str]:
        payload = self.get_document(collection, key)
        if payload is None:
            return None
        return payload.get("target_id")

    def get_loan(self, loan_id: str) -> LoanModel:
        """Fetch a loan by identifier.

        Raises:
            ModelNotFoundError: If loan does not exist.
        """
        return LoanModel.from_document(self._require(LOANS, loan_id, "Loan"), doc_id=loan_id)

    def find_loan_id_for_client(self, client_id: str) -> Optional[str]:
        return self._index_target(CLIENT_LOANS, client_id)

    def list_installments(self, loan_id: str) -> List[InstallmentModel]:
        """Return the loan's installments ordered by number."""
        payloads = self.query_documents(INSTALLMENTS, filters=[("loan_id", "==", loan_id)])
        installments = [InstallmentModel.from_document(item, doc_id=item.get("id")) for item in payloads]
        return sorted(installments, key=lambda item: item.installment_number)

    def get_payment(self, payment_id: str) -> PaymentModel:
        return PaymentModel.from_document(self._require(PAYMENTS, payment_id, "Payment"), doc_id=payment_id)

    def list_payments_for_loan(self, loan_id: str) -> List[PaymentModel]:
        """Return the loan's payments ordered by payment time."""
        payloads = self.query_documents(PAYMENTS, filters=[("loan_id", "==", loan_id)])
        payments = [PaymentModel.from_document(item, doc_id=item.get("id")) for item in payloads]
        return sorted(payments, key=lambda item: item.paid_at)

    def list_payments_for_session(self, session_id: str) -> List[PaymentModel]:
        payloads = self.query_documents(PAYMENTS, filters=[("cash_session_id", "==", session_id)])
        payments = [PaymentModel.from_document(item, doc_id=item.get("id")) for item in payloads]
        return sorted(payments, key=lambda item: item.paid_at)

    def list_payments_between(self, start: datetime, end: datetime) -> List[PaymentModel]:
        """Return payments with `start <= paid_at < end`."""
        payloads = self.query_documents(
            PAYMENTS,
            filters=[
                ("paid_at", ">=", document_datetime(start)),
                ("paid_at", "<", document_datetime(end)),
            ],
        )
        payments = [PaymentModel.from_document(item, doc_id=item.get("id")) for item in payloads]
        return sorted(
            [item for item in payments if start <= item.paid_at < end],
            key=lambda item: item.paid_at,
        )

    def find_payment_by_reference(self, external_ref: str) -> Optional[PaymentModel]:
        payment_id = self._index_target(PAYMENT_REFERENCES, external_ref)
        if payment_id is None:
            return None
        return self.get_payment(payment_id)

    def get_cash_session(self, session_id: str) -> CashSessionModel:
        """Fetch a cash session by identifier.

        Raises:
            ModelNotFoundError: If session does not exist.
        """
        payload = self._require(CASH_SESSIONS, session_id, "Cash session")
        return CashSessionModel.from_document(payload, doc_id=session_id)

    def find_open_session_id(self, cashier_id: str) -> Optional[str]:
        return self._index_target(OPEN_SESSIONS, cashier_id)

    def list_cash_sessions(self, cashier_id: Optional[str] = None) -> List[CashSessionModel]:
        """Return sessions, newest first, optionally for one cashier."""
        filters = [("cashier_id", "==", cashier_id)] if cashier_id else None
        payloads = self.query_documents(CASH_SESSIONS, filters=filters)
        sessions = [CashSessionModel.from_document(item, doc_id=item.get("id")) for item in payloads]
        return sorted(sessions, key=lambda item: item.opened_at, reverse=True)

    def get_payment_intent(self, intent_id: str) -> PaymentIntentModel:
        payload = self._require(PAYMENT_INTENTS, intent_id, "Payment intent")
        return PaymentIntentModel.from_document(payload, doc_id=intent_id)
