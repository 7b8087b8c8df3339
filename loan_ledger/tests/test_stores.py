"""Unit tests for store commit semantics."""

import copy
from typing import Any, Dict, List, Optional
import unittest

from loan_ledger.models.exceptions import VersionConflictError
from loan_ledger.models.repositories import CLIENT_LOANS, LOANS, DocumentWrite
from loan_ledger.repositories.firestore_ledger_store import FirestoreLedgerStore
from loan_ledger.repositories.memory_ledger_store import InMemoryLedgerStore


def _doc(doc_id: str, version: int = 1, **fields) -> Dict[str, Any]:
    return dict(id=doc_id, version=version, **fields)


class InMemoryLedgerStoreTests(unittest.TestCase):
    """Validate version checks and atomicity of the memory store."""

    def setUp(self) -> None:
        self.store = InMemoryLedgerStore(collection_prefix="t_")
        self.store.commit([DocumentWrite(LOANS, "loan_1", _doc("loan_1", client_id="c1"), create_only=True)])

    def test_create_only_rejects_existing(self) -> None:
        with self.assertRaises(VersionConflictError):
            self.store.commit([DocumentWrite(LOANS, "loan_1", _doc("loan_1"), create_only=True)])

    def test_expected_version(self) -> None:
        """Updates apply only over the expected version."""
        self.store.commit([DocumentWrite(LOANS, "loan_1", _doc("loan_1", 2, client_id="c2"), expected_version=1)])
        self.assertEqual(self.store.get_document(LOANS, "loan_1")["client_id"], "c2")
        with self.assertRaises(VersionConflictError):
            self.store.commit([DocumentWrite(LOANS, "loan_1", _doc("loan_1", 2), expected_version=1)])

    def test_failed_commit_writes_nothing(self) -> None:
        """One failing check rejects every write in the batch."""
        writes = [
            DocumentWrite.index(CLIENT_LOANS, "c9", "loan_9"),
            DocumentWrite(LOANS, "loan_1", _doc("loan_1", 5), expected_version=4),
        ]
        with self.assertRaises(VersionConflictError):
            self.store.commit(writes)
        self.assertIsNone(self.store.find_loan_id_for_client("c9"))

    def test_delete_and_query(self) -> None:
        self.store.commit([DocumentWrite.index(CLIENT_LOANS, "c1", "loan_1")])
        self.assertEqual(self.store.find_loan_id_for_client("c1"), "loan_1")
        self.assertEqual(len(self.store.query_documents(LOANS, filters=[("client_id", "==", "c1")])), 1)
        self.assertEqual(self.store.query_documents(LOANS, filters=[("client_id", "==", "c2")]), [])
        self.store.commit([DocumentWrite.delete(CLIENT_LOANS, "c1", expected_version=1)])
        self.assertIsNone(self.store.find_loan_id_for_client("c1"))

    def test_returned_documents_are_copies(self) -> None:
        payload = self.store.get_document(LOANS, "loan_1")
        payload["client_id"] = "mutated"
        self.assertEqual(self.store.get_document(LOANS, "loan_1")["client_id"], "c1")


class _FakeSnapshot:
    def __init__(self, data: Optional[Dict[str, Any]]) -> None:
        self._data = data
        self.exists = data is not None

    def to_dict(self) -> Optional[Dict[str, Any]]:
        return copy.deepcopy(self._data)


class _FakeRef:
    def __init__(self, backing: Dict[str, Dict[str, Any]], key: str) -> None:
        self._backing = backing
        self.key = key

    def get(self, transaction=None) -> _FakeSnapshot:
        return _FakeSnapshot(self._backing.get(self.key))


class _FakeTransaction:
    def __init__(self) -> None:
        self.ops: List[tuple] = []

    def set(self, ref, payload) -> None:
        self.ops.append(("set", ref, payload))

    def create(self, ref, payload) -> None:
        self.ops.append(("create", ref, payload))

    def delete(self, ref) -> None:
        self.ops.append(("delete", ref, None))


class _FakeFirebaseManager:
    """Records transactional writes against a dict keyed by `collection/id`."""

    def __init__(self) -> None:
        self.backing: Dict[str, Dict[str, Any]] = {}

    def document(self, collection_name: str, document_id: str) -> _FakeRef:
        return _FakeRef(self.backing, "{0}/{1}".format(collection_name, document_id))

    def get_document(self, collection_name: str, document_id: str) -> Optional[Dict[str, Any]]:
        data = self.backing.get("{0}/{1}".format(collection_name, document_id))
        return copy.deepcopy(data) if data is not None else None

    def query_documents(self, collection_name, filters=None, order_by=None, limit=None):
        return [
            copy.deepcopy(data)
            for key, data in self.backing.items()
            if key.startswith(collection_name + "/")
        ]

    def run_in_transaction(self, callback):
        transaction = _FakeTransaction()
        result = callback(transaction)
        for op, ref, payload in transaction.ops:
            if op == "delete":
                self.backing.pop(ref.key, None)
            else:
                self.backing[ref.key] = copy.deepcopy(payload)
        return result


class FirestoreLedgerStoreTests(unittest.TestCase):
    """Validate transactional commits with a fake Firestore manager."""

    def setUp(self) -> None:
        self.manager = _FakeFirebaseManager()
        self.store = FirestoreLedgerStore(self.manager, collection_prefix="ledger_")

    def test_commit_uses_prefixed_collections(self) -> None:
        self.store.commit([DocumentWrite.index(CLIENT_LOANS, "c1", "loan_1")])
        self.assertIn("ledger_client_loans/c1", self.manager.backing)
        self.assertEqual(self.store.find_loan_id_for_client("c1"), "loan_1")

    def test_conflict_aborts_transaction(self) -> None:
        """A failed check raises before any write is applied."""
        self.store.commit([DocumentWrite(LOANS, "loan_1", _doc("loan_1"), create_only=True)])
        with self.assertRaises(VersionConflictError):
            self.store.commit(
                [
                    DocumentWrite.index(CLIENT_LOANS, "c2", "loan_2"),
                    DocumentWrite(LOANS, "loan_1", _doc("loan_1", 3), expected_version=2),
                ]
            )
        self.assertNotIn("ledger_client_loans/c2", self.manager.backing)
        self.assertEqual(self.manager.backing["ledger_loans/loan_1"]["version"], 1)

    def test_delete(self) -> None:
        self.store.commit([DocumentWrite.index(CLIENT_LOANS, "c1", "loan_1")])
        self.store.commit([DocumentWrite.delete(CLIENT_LOANS, "c1", expected_version=1)])
        self.assertIsNone(self.store.find_loan_id_for_client("c1"))


if __name__ == "__main__":
    unittest.main()
