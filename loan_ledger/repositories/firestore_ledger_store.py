"""Firestore-backed ledger store using transactions for atomic commits."""

import logging
from typing import Any, Dict, List, Optional, Sequence

from ..core.firebase_client_manager import FirebaseClientManager
from ..models.exceptions import VersionConflictError
from ..models.repositories import COLLECTIONS, DocumentWrite, FilterTuple, LedgerStore
from .memory_ledger_store import check_write


logger = logging.getLogger(__name__)


class FirestoreLedgerStore(LedgerStore):
    """Persist ledger documents in Cloud Firestore."""

    def __init__(self, firebase_manager: FirebaseClientManager, collection_prefix: str = "") -> None:
        """Initialize store with a shared Firebase manager.

        Args:
            firebase_manager: Shared Firebase client manager instance.
            collection_prefix: Prefix applied to every collection name.
        """
        self._firebase_manager = firebase_manager
        self._collections = {alias: "{0}{1}".format(collection_prefix, alias) for alias in COLLECTIONS}
        logger.info("Initialized FirestoreLedgerStore prefix=%s", collection_prefix)

    def get_document(self, collection: str, document_id: str) -> Optional[Dict[str, Any]]:
        return self._firebase_manager.get_document(self._collections[collection], document_id)

    def query_documents(
        self,
        collection: str,
        filters: Optional[Sequence[FilterTuple]] = None,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        return self._firebase_manager.query_documents(
            collection_name=self._collections[collection],
            filters=filters,
            order_by=order_by,
            limit=limit,
        )

    def commit(self, writes: Sequence[DocumentWrite]) -> None:
        """Check every precondition and apply every write inside one transaction.

        Raises:
            VersionConflictError: If any check fails. The transaction is rolled back.
        """
        refs = [
            self._firebase_manager.document(self._collections[write.collection], write.document_id)
            for write in writes
        ]

        def _apply(transaction) -> None:
            # Firestore requires every read before the first write.
            for write, ref in zip(writes, refs):
                snapshot = ref.get(transaction=transaction)
                check_write(write, snapshot.to_dict() if snapshot.exists else None)
            for write, ref in zip(writes, refs):
                if write.payload is None:
                    transaction.delete(ref)
                elif write.create_only:
                    transaction.create(ref, write.payload)
                else:
                    transaction.set(ref, write.payload)

        try:
            self._firebase_manager.run_in_transaction(_apply)
        except VersionConflictError:
            logger.warning("Firestore commit rejected on version check writes=%s", len(writes))
            raise
        except Exception:
            logger.exception("Firestore commit failed writes=%s", len(writes))
            raise
