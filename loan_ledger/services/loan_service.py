"""Loan creation, schedule preview and read-only loan views."""

from datetime import date, datetime
import logging
from typing import Any, Callable, Dict, List, Optional

from ..common.dates import local_date
from ..common.ids import new_id
from ..common.money import AmountLike, from_minor, round_cash_minor, to_minor
from ..common.retry import retry_on_conflict
from ..core.config import AppSettings
from ..models.base import utc_now
from ..models.exceptions import DuplicateLoanError, LedgerError, ModelValidationError
from ..models.installments import InstallmentModel
from ..models.loans import LoanModel
from ..models.repositories import CLIENT_LOANS, INSTALLMENTS, LOANS, DocumentWrite, LedgerStore
from .late_fees import InstallmentStatus
from .loan_state import load_loan_snapshot
from .schedule_generator import ScheduleRow, generate_schedule_minor, parse_rate


logger = logging.getLogger(__name__)


def _schedule_totals(rows: List[ScheduleRow]) -> Dict[str, int]:
    return {
        "principal_minor": sum(row.principal_minor for row in rows),
        "interest_minor": sum(row.interest_minor for row in rows),
        "amount_minor": sum(row.installment_amount_minor for row in rows),
    }


class LoanService:
    """Creates loans with their schedules and exposes per-installment status."""

    def __init__(
        self,
        settings: AppSettings,
        store: LedgerStore,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._settings = settings
        self._store = store
        self._clock = clock or utc_now

    def _build_rows(self, principal: AmountLike, annual_rate: AmountLike, term_count: int, start_date: date):
        principal_minor = to_minor(principal, field_name="principal")
        rate = parse_rate(annual_rate)
        rows = generate_schedule_minor(principal_minor, rate, term_count, start_date, self._settings.tzinfo)
        return principal_minor, rate, rows

    def preview_loan(
        self,
        principal: AmountLike,
        annual_rate: AmountLike,
        term_count: int,
        start_date: date,
    ) -> Dict[str, Any]:
        """Generate a schedule without persisting anything."""
        try:
            principal_minor, rate, rows = self._build_rows(principal, annual_rate, term_count, start_date)
            return {
                "principal_minor": principal_minor,
                "annual_rate": rate,
                "term_count": term_count,
                "start_date": start_date,
                "schedule": rows,
                "totals": _schedule_totals(rows),
            }
        except LedgerError:
            raise
        except Exception:
            logger.exception("Failed previewing loan principal=%s terms=%s", principal, term_count)
            raise

    def create_loan(
        self,
        client_id: str,
        principal: AmountLike,
        annual_rate: AmountLike,
        term_count: int,
        start_date: date,
        created_by: str = "system",
    ) -> Dict[str, Any]:
        """Create a loan and its installments in one commit.

        Args:
            client_id: Borrower reference. A client can hold only one loan.
            principal: Loan principal in major units.
            annual_rate: Annual interest rate as a fraction.
            term_count: Number of installments.
            start_date: First day of the loan. Cannot be in the past.
            created_by: Cashier or operator creating the loan.

        Returns:
            Dict[str, Any]: `loan` and `installments` models.

        Raises:
            ModelValidationError: If the terms are invalid.
            DuplicateLoanError: If the client already has a loan.
        """
        try:
            principal_minor, rate, rows = self._build_rows(principal, annual_rate, term_count, start_date)
            today = local_date(self._clock(), self._settings.tzinfo)
            if start_date < today:
                raise ModelValidationError(
                    "Start date {0} cannot be in the past".format(start_date.isoformat()),
                    constraint="start_date",
                )

            def _attempt() -> Dict[str, Any]:
                existing = self._store.find_loan_id_for_client(client_id)
                if existing is not None:
                    raise DuplicateLoanError("Client {0} already has loan {1}".format(client_id, existing))

                loan = LoanModel(
                    id=new_id("loan"),
                    client_id=client_id,
                    principal_minor=principal_minor,
                    annual_rate=rate,
                    term_count=term_count,
                    start_date=start_date,
                    currency=self._settings.currency,
                    created_by=created_by,
                )
                installments = [
                    InstallmentModel(
                        id="{0}_{1:03d}".format(loan.id, row.installment_number),
                        loan_id=loan.id,
                        installment_number=row.installment_number,
                        due_at=row.due_at,
                        installment_amount_minor=row.installment_amount_minor,
                        principal_minor=row.principal_minor,
                        interest_minor=row.interest_minor,
                        remaining_balance_minor=row.remaining_balance_minor,
                    )
                    for row in rows
                ]
                InstallmentModel.validate_schedule(installments, principal_minor)

                writes = [DocumentWrite.create(LOANS, loan), DocumentWrite.index(CLIENT_LOANS, client_id, loan.id)]
                writes.extend(DocumentWrite.create(INSTALLMENTS, item) for item in installments)
                self._store.commit(writes)
                return {"loan": loan, "installments": installments}

            result = retry_on_conflict(_attempt, self._settings.max_conflict_retries, "create_loan")
            logger.info(
                "Created loan_id=%s client_id=%s principal_minor=%s terms=%s",
                result["loan"].id,
                client_id,
                principal_minor,
                term_count,
            )
            return result
        except LedgerError as exc:
            logger.warning("Loan creation rejected client_id=%s: %s", client_id, exc)
            raise
        except Exception:
            logger.exception("Failed creating loan client_id=%s", client_id)
            raise

    def get_loan(self, loan_id: str) -> LoanModel:
        return self._store.get_loan(loan_id)

    def get_installment_statuses(self, loan_id: str, as_of: Optional[datetime] = None) -> List[InstallmentStatus]:
        """Return fee and pending amounts for every installment of the loan."""
        snapshot = load_loan_snapshot(self._store, loan_id, as_of or self._clock(), self._settings)
        return snapshot.statuses

    def get_statement(self, loan_id: str, as_of: Optional[datetime] = None) -> Dict[str, Any]:
        """Summarize what was scheduled, what was paid and what is still owed.

        Raises:
            ModelNotFoundError: If the loan does not exist.
        """
        try:
            snapshot = load_loan_snapshot(self._store, loan_id, as_of or self._clock(), self._settings)
            payments = snapshot.payments
            pending_minor = snapshot.total_pending_minor()
            statement = {
                "loan": snapshot.loan,
                "as_of": snapshot.as_of,
                "scheduled": {
                    "principal_minor": sum(item.principal_minor for item in snapshot.installments),
                    "interest_minor": sum(item.interest_minor for item in snapshot.installments),
                    "amount_minor": sum(item.installment_amount_minor for item in snapshot.installments),
                },
                "paid": {
                    "amount_minor": sum(item.amount_minor for item in payments),
                    "principal_minor": sum(item.principal_paid_minor for item in payments),
                    "interest_minor": sum(item.interest_paid_minor for item in payments),
                    "late_fee_minor": sum(item.late_fee_paid_minor for item in payments),
                    "rounding_adjustment_minor": sum(item.rounding_adjustment_minor for item in payments),
                },
                "pending": {
                    "total_minor": pending_minor,
                    "cash_total_minor": round_cash_minor(pending_minor),
                    "late_fee_minor": sum(
                        item.late_fee_outstanding_minor for item in snapshot.unsettled()
                    ),
                    "installments_open": len(snapshot.unsettled()),
                },
                "installments": snapshot.statuses,
                "payments": payments,
            }
            logger.debug("Built statement loan_id=%s pending=%s", loan_id, from_minor(pending_minor))
            return statement
        except LedgerError:
            raise
        except Exception:
            logger.exception("Failed building statement loan_id=%s", loan_id)
            raise
