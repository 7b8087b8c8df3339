"""Ledger store implementations."""

from .firestore_ledger_store import FirestoreLedgerStore
from .memory_ledger_store import InMemoryLedgerStore

__all__ = ["FirestoreLedgerStore", "InMemoryLedgerStore"]
