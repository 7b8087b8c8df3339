"""Firestore access for the loan ledger.

Loans, installments, payments, receipts and cash sessions live in one
Firestore database. Reads outside a transaction serve statements and reports;
every ledger write goes through `run_in_transaction` so a payment, its
installment updates and the loan version bump land together or not at all.
"""

import logging
import os
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

from google.cloud import firestore
from google.oauth2 import service_account


logger = logging.getLogger(__name__)

FilterTuple = Tuple[str, str, Any]
T = TypeVar("T")


class FirebaseClientManager:
    """Owns the Firestore client behind `FirestoreLedgerStore`.

    Exposes document references for transactional reads, single-document and
    filtered reads for ledger snapshots, and the transaction runner used to
    commit versioned ledger writes.
    """

    def __init__(self, project_id: Optional[str] = None, credentials_path: Optional[str] = None) -> None:
        """Connect to the Firestore database that holds the ledger.

        Args:
            project_id: Optional Google Cloud project id override.
            credentials_path: Optional path to Firebase service account json file.
        """
        try:
            if credentials_path:
                os.environ["GOOGLE_APPLICATION_CREDENTIALS"] = credentials_path
                credentials = service_account.Credentials.from_service_account_file(credentials_path)
                self._client = firestore.Client(project=project_id, credentials=credentials)
            else:
                self._client = firestore.Client(project=project_id) if project_id else firestore.Client()
            logger.info("FirebaseClientManager initialized for project_id=%s", project_id)
        except Exception:
            logger.exception("Failed to initialize Firebase Firestore client.")
            raise

    def document(self, collection_name: str, document_id: str) -> firestore.DocumentReference:
        """Return a reference to one document, for use inside a transaction."""
        return self._client.collection(collection_name).document(document_id)

    def get_document(self, collection_name: str, document_id: str) -> Optional[Dict[str, Any]]:
        """Get one Firestore document by id."""
        try:
            snapshot = self.document(collection_name, document_id).get()
            if not snapshot.exists:
                return None
            data = snapshot.to_dict() or {}
            data["id"] = snapshot.id
            return data
        except Exception:
            logger.exception(
                "Failed to get document collection=%s document_id=%s",
                collection_name,
                document_id,
            )
            raise

    def query_documents(
        self,
        collection_name: str,
        filters: Optional[Sequence[FilterTuple]] = None,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Run a filtered query and return document payloads.

        Args:
            collection_name: Target collection.
            filters: Sequence of tuples `(field, op, value)`.
            order_by: Optional field name for sorting.
            limit: Optional maximum result count.
        """
        try:
            query = self._client.collection(collection_name)
            for field_name, operator, value in filters or []:
                query = query.where(field_name, operator, value)
            if order_by:
                query = query.order_by(order_by)
            if limit is not None:
                query = query.limit(limit)

            documents: List[Dict[str, Any]] = []
            for snapshot in query.stream():
                payload = snapshot.to_dict() or {}
                payload["id"] = snapshot.id
                documents.append(payload)
            return documents
        except Exception:
            logger.exception("Failed query for collection=%s", collection_name)
            raise

    def run_in_transaction(self, callback: Callable[[firestore.Transaction], T]) -> T:
        """Run `callback(transaction)` in a Firestore transaction.

        Firestore retries the callback on contention and rolls back if it
        raises. Exceptions raised by the callback propagate unchanged.
        """
        transaction = self._client.transaction()
        return firestore.transactional(callback)(transaction)
