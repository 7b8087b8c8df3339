"""In-memory ledger store guarded by a process-wide lock."""

import copy
import logging
from threading import RLock
from typing import Any, Dict, List, Optional, Sequence

from ..models.exceptions import VersionConflictError
from ..models.repositories import COLLECTIONS, DocumentWrite, FilterTuple, LedgerStore


logger = logging.getLogger(__name__)


def _matches_filters(payload: Dict[str, Any], filters: Sequence[FilterTuple]) -> bool:
    """Evaluate Firestore-like filters against one payload."""
    for field_name, operator, expected_value in filters:
        actual_value = payload.get(field_name)
        if operator == "==":
            if actual_value != expected_value:
                return False
        elif operator == "!=":
            if actual_value == expected_value:
                return False
        elif operator == ">":
            if actual_value is None or actual_value <= expected_value:
                return False
        elif operator == ">=":
            if actual_value is None or actual_value < expected_value:
                return False
        elif operator == "<":
            if actual_value is None or actual_value >= expected_value:
                return False
        elif operator == "<=":
            if actual_value is None or actual_value > expected_value:
                return False
        elif operator == "in":
            if actual_value not in expected_value:
                return False
        else:
            raise ValueError("Unsupported filter operator: {0}".format(operator))
    return True


def check_write(write: DocumentWrite, current: Optional[Dict[str, Any]]) -> None:
    """Raise VersionConflictError when `write` may not be applied over `current`."""
    if write.create_only and current is not None:
        raise VersionConflictError(
            "Document already exists collection={0} id={1}".format(write.collection, write.document_id)
        )
    if write.expected_version is None:
        return
    stored_version = None if current is None else current.get("version")
    if stored_version != write.expected_version:
        raise VersionConflictError(
            "Version conflict collection={0} id={1} expected={2} stored={3}".format(
                write.collection,
                write.document_id,
                write.expected_version,
                stored_version,
            )
        )


class InMemoryLedgerStore(LedgerStore):
    """Keeps every collection in process memory. Used for tests and single-node setups."""

    def __init__(self, collection_prefix: str = "") -> None:
        self._lock = RLock()
        self._collections = {alias: "{0}{1}".format(collection_prefix, alias) for alias in COLLECTIONS}
        self._memory_store: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def _bucket(self, collection: str) -> Dict[str, Dict[str, Any]]:
        return self._memory_store.setdefault(self._collections[collection], {})

    def get_document(self, collection: str, document_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            payload = self._bucket(collection).get(document_id)
            if payload is None:
                return None
            result = copy.deepcopy(payload)
            result.setdefault("id", document_id)
            return result

    def query_documents(
        self,
        collection: str,
        filters: Optional[Sequence[FilterTuple]] = None,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        with self._lock:
            records: List[Dict[str, Any]] = []
            for document_id, payload in self._bucket(collection).items():
                row = copy.deepcopy(payload)
                row.setdefault("id", document_id)
                if _matches_filters(row, filters or []):
                    records.append(row)
        if order_by:
            records.sort(key=lambda item: item.get(order_by))
        if limit is not None:
            records = records[: int(limit)]
        return records

    def commit(self, writes: Sequence[DocumentWrite]) -> None:
        with self._lock:
            for write in writes:
                check_write(write, self._bucket(write.collection).get(write.document_id))
            for write in writes:
                bucket = self._bucket(write.collection)
                if write.payload is None:
                    bucket.pop(write.document_id, None)
                else:
                    bucket[write.document_id] = copy.deepcopy(write.payload)
        logger.debug("Committed %s writes", len(writes))
