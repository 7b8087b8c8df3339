"""Shared fixtures for ledger tests."""

from datetime import date, datetime, timedelta, timezone
from typing import List

from loan_ledger.core.config import AppSettings
from loan_ledger.models.exceptions import VersionConflictError
from loan_ledger.repositories.memory_ledger_store import InMemoryLedgerStore
from loan_ledger.services.ledger_facade import LedgerFacade


START_DATE = date(2024, 1, 15)
CASHIER = "cashier_01"


class MutableClock:
    """Clock whose current time tests can move."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, **kwargs) -> None:
        self.now = datetime(tzinfo=timezone.utc, **kwargs)

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FlakyStore(InMemoryLedgerStore):
    """In-memory store whose next `failures` commits raise a version conflict."""

    def __init__(self, failures: int = 0) -> None:
        super().__init__()
        self.failures = failures
        self.commit_attempts = 0

    def commit(self, writes) -> None:
        self.commit_attempts += 1
        if self.failures > 0:
            self.failures -= 1
            raise VersionConflictError("simulated concurrent update")
        super().commit(writes)


class InterleavingStore(InMemoryLedgerStore):
    """In-memory store that runs `interleaved` once, between a caller's reads and its commit."""

    def __init__(self) -> None:
        super().__init__()
        self.interleaved = None

    def commit(self, writes) -> None:
        action, self.interleaved = self.interleaved, None
        if action is not None:
            action()
        super().commit(writes)


def make_clock() -> MutableClock:
    """10:00 in Lima on the loan start date."""
    return MutableClock(datetime(2024, 1, 15, 15, 0, tzinfo=timezone.utc))


def make_facade(clock: MutableClock, store=None, settings: AppSettings = None) -> LedgerFacade:
    return LedgerFacade.build(settings or AppSettings(), store=store or InMemoryLedgerStore(), clock=clock)


def create_standard_loan(facade: LedgerFacade, client_id: str = "client_01") -> dict:
    """1000.00 at 24% a year over 3 installments: 346.75, 346.75, 346.76."""
    return facade.create_loan(client_id, "1000.00", "0.24", 3, START_DATE, created_by=CASHIER)


def installment_ids(created: dict) -> List[str]:
    return [item.id for item in created["installments"]]
