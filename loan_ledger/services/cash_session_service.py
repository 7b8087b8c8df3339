"""Cashier shift ledger: opening float, cash movements and counted close."""

from datetime import date, datetime
import logging
from typing import Any, Callable, Dict, List, Optional

from ..common.dates import local_date, local_day_bounds
from ..common.ids import new_id
from ..common.money import AmountLike, format_minor, to_minor
from ..common.retry import retry_on_conflict
from ..core.config import AppSettings
from ..models.base import Money, utc_now
from ..models.cash_sessions import CashMovementModel, CashSessionModel
from ..models.enums import MovementType
from ..models.exceptions import (
    CashSessionDiscrepancyError,
    CashSessionStateError,
    LedgerError,
    ModelValidationError,
)
from ..models.payments import PaymentModel
from ..models.repositories import CASH_SESSIONS, OPEN_SESSIONS, DocumentWrite, LedgerStore


logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 50


def payments_by_method(payments: List[PaymentModel]) -> Dict[str, Dict[str, int]]:
    """Count and total payments per payment method."""
    summary: Dict[str, Dict[str, int]] = {}
    for payment in payments:
        bucket = summary.setdefault(payment.method.value, {"count": 0, "total_minor": 0})
        bucket["count"] += 1
        bucket["total_minor"] += payment.amount_minor
    return summary


def require_open_session(session: CashSessionModel, cashier_id: Optional[str] = None) -> None:
    """Raise unless `session` is open and, when given, owned by `cashier_id`."""
    if session.is_closed:
        raise CashSessionStateError("Cash session {0} is closed".format(session.id))
    if cashier_id is not None and session.cashier_id != cashier_id:
        raise CashSessionStateError(
            "Cash session {0} does not belong to cashier {1}".format(session.id, cashier_id)
        )


class CashSessionService:
    """Opens, moves and reconciles cashier sessions."""

    def __init__(
        self,
        settings: AppSettings,
        store: LedgerStore,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._settings = settings
        self._store = store
        self._clock = clock or utc_now

    def open_session(self, cashier_id: str, opening_balance: AmountLike, notes: Optional[str] = None) -> CashSessionModel:
        """Open a new session for a cashier.

        Raises:
            ModelValidationError: If the opening balance is negative or malformed.
            CashSessionStateError: If the cashier already has an open session.
        """
        try:
            opening_minor = to_minor(opening_balance, field_name="opening_balance")
            if opening_minor < 0:
                raise ModelValidationError("Opening balance cannot be negative", constraint="opening_balance")

            def _attempt() -> CashSessionModel:
                existing = self._store.find_open_session_id(cashier_id)
                if existing is not None:
                    raise CashSessionStateError(
                        "Cashier {0} already has an open cash session {1}".format(cashier_id, existing)
                    )
                now = self._clock()
                session = CashSessionModel(
                    id=new_id("cs"),
                    cashier_id=cashier_id,
                    opening_balance_minor=opening_minor,
                    opened_at=now,
                    created_at=now,
                    updated_at=now,
                    notes=notes,
                )
                self._store.commit(
                    [
                        DocumentWrite.create(CASH_SESSIONS, session),
                        DocumentWrite.index(OPEN_SESSIONS, cashier_id, session.id),
                    ]
                )
                return session

            session = retry_on_conflict(_attempt, self._settings.max_conflict_retries, "open_session")
            logger.info(
                "Opened cash session_id=%s cashier_id=%s opening_minor=%s",
                session.id,
                cashier_id,
                opening_minor,
            )
            return session
        except LedgerError as exc:
            logger.warning("Open session rejected cashier_id=%s: %s", cashier_id, exc)
            raise
        except Exception:
            logger.exception("Failed opening cash session cashier_id=%s", cashier_id)
            raise

    def record_movement(
        self,
        session_id: str,
        movement_type: MovementType,
        amount: AmountLike,
        description: str = "",
        payment_id: Optional[str] = None,
        cashier_id: Optional[str] = None,
    ) -> CashMovementModel:
        """Append a cash movement to an open session.

        Raises:
            ModelValidationError: If the amount is not positive or the type is unknown.
            CashSessionStateError: If the session is closed or owned by another cashier.
        """
        try:
            try:
                movement_type = MovementType(movement_type)
            except ValueError:
                raise ModelValidationError(
                    "Unknown movement type: {0}".format(movement_type),
                    constraint="movement_type",
                )
            amount_minor = to_minor(amount)
            if amount_minor <= 0:
                raise ModelValidationError("Movement amount must be greater than 0", constraint="amount")

            def _attempt() -> CashMovementModel:
                session = self._store.get_cash_session(session_id)
                require_open_session(session, cashier_id)
                movement = CashMovementModel(
                    movement_id=new_id("mov"),
                    movement_type=movement_type,
                    amount_minor=amount_minor,
                    description=description,
                    payment_id=payment_id,
                    recorded_at=self._clock(),
                )
                updated = session.bumped(movements=session.movements + [movement])
                self._store.commit([DocumentWrite.update(CASH_SESSIONS, updated)])
                return movement

            movement = retry_on_conflict(_attempt, self._settings.max_conflict_retries, "record_movement")
            logger.info(
                "Recorded movement session_id=%s type=%s amount_minor=%s",
                session_id,
                movement_type.value,
                amount_minor,
            )
            return movement
        except LedgerError as exc:
            logger.warning("Movement rejected session_id=%s: %s", session_id, exc)
            raise
        except Exception:
            logger.exception("Failed recording movement session_id=%s", session_id)
            raise

    def get_balance(self, session_id: str) -> Money:
        """Return opening + inflows + collections - outflows - change given, in minor units."""
        return self._store.get_cash_session(session_id).computed_balance_minor()

    def close_session(
        self,
        session_id: str,
        counted_amount: AmountLike,
        cashier_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> CashSessionModel:
        """Close a session after matching the counted cash against the computed balance.

        Raises:
            CashSessionDiscrepancyError: If the difference exceeds the close tolerance.
                The session stays open.
            CashSessionStateError: If the session is already closed.
        """
        try:
            counted_minor = to_minor(counted_amount, field_name="counted_amount")
            if counted_minor < 0:
                raise ModelValidationError("Counted amount cannot be negative", constraint="counted_amount")

            def _attempt() -> CashSessionModel:
                session = self._store.get_cash_session(session_id)
                require_open_session(session, cashier_id)
                expected_minor = session.computed_balance_minor()
                difference = counted_minor - expected_minor
                if abs(difference) > self._settings.close_tolerance_minor:
                    raise CashSessionDiscrepancyError(
                        "Counted cash does not match. Expected {0}, counted {1}".format(
                            format_minor(expected_minor),
                            format_minor(counted_minor),
                        ),
                        expected_minor=expected_minor,
                        counted_minor=counted_minor,
                    )
                now = self._clock()
                closed = session.bumped(
                    is_closed=True,
                    closed_at=now,
                    closing_balance_minor=expected_minor,
                    counted_balance_minor=counted_minor,
                    difference_minor=difference,
                    notes=notes if notes is not None else session.notes,
                )
                writes = [DocumentWrite.update(CASH_SESSIONS, closed)]
                if self._store.find_open_session_id(session.cashier_id) == session.id:
                    writes.append(DocumentWrite.delete(OPEN_SESSIONS, session.cashier_id, expected_version=1))
                self._store.commit(writes)
                return closed

            closed = retry_on_conflict(_attempt, self._settings.max_conflict_retries, "close_session")
            logger.info(
                "Closed cash session_id=%s expected_minor=%s counted_minor=%s",
                session_id,
                closed.closing_balance_minor,
                counted_minor,
            )
            return closed
        except LedgerError as exc:
            logger.warning("Close rejected session_id=%s: %s", session_id, exc)
            raise
        except Exception:
            logger.exception("Failed closing cash session session_id=%s", session_id)
            raise

    def get_current_session(self, cashier_id: str) -> Optional[CashSessionModel]:
        session_id = self._store.find_open_session_id(cashier_id)
        if session_id is None:
            return None
        return self._store.get_cash_session(session_id)

    def list_sessions(
        self,
        cashier_id: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> List[CashSessionModel]:
        """Return session history, newest first, filtered by opening day in the ledger timezone."""
        tz = self._settings.tzinfo
        sessions = self._store.list_cash_sessions(cashier_id)
        if start_date is not None:
            sessions = [item for item in sessions if local_date(item.opened_at, tz) >= start_date]
        if end_date is not None:
            sessions = [item for item in sessions if local_date(item.opened_at, tz) <= end_date]
        return sessions[: max(int(limit), 0)]

    def get_summary(self, session_id: str) -> Dict[str, Any]:
        """Aggregate a session's payments by method and its movements by type."""
        session = self._store.get_cash_session(session_id)
        payments = self._store.list_payments_for_session(session_id)
        return {
            "session": session,
            "payments": payments,
            "payments_by_method": payments_by_method(payments),
            "payment_count": len(payments),
            "collected_minor": sum(item.amount_minor for item in payments),
            "movement_totals": session.movement_totals(),
            "expected_balance_minor": session.computed_balance_minor(),
        }

    def validate_change_available(self, session_id: str, change_amount: AmountLike) -> Dict[str, Any]:
        """Check whether the drawer holds enough cash to hand back `change_amount`."""
        change_minor = to_minor(change_amount, field_name="change_amount")
        if change_minor < 0:
            raise ModelValidationError("Change amount cannot be negative", constraint="change_amount")
        session = self._store.get_cash_session(session_id)
        require_open_session(session)
        balance_minor = session.computed_balance_minor()
        return {
            "session_id": session_id,
            "available": balance_minor >= change_minor,
            "balance_minor": balance_minor,
            "requested_minor": change_minor,
        }

    def get_daily_report(self, day: Optional[date] = None) -> Dict[str, Any]:
        """Aggregate every payment taken on one local calendar day."""
        tz = self._settings.tzinfo
        report_day = day or local_date(self._clock(), tz)
        start, end = local_day_bounds(report_day, tz)
        payments = self._store.list_payments_between(start, end)
        sessions = [
            item
            for item in self._store.list_cash_sessions()
            if local_date(item.opened_at, tz) == report_day
        ]
        return {
            "date": report_day,
            "payment_count": len(payments),
            "collected_minor": sum(item.amount_minor for item in payments),
            "payments_by_method": payments_by_method(payments),
            "sessions_opened": len(sessions),
            "sessions_closed": len([item for item in sessions if item.is_closed]),
        }
