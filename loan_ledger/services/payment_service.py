"""Payment allocation for single, free-form and advance payments."""

from datetime import datetime, timedelta
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..common.ids import new_id
from ..common.money import AmountLike, format_minor, is_cash_settleable, round_cash_minor, to_minor
from ..common.retry import retry_on_conflict
from ..core.config import AppSettings
from ..models.base import Money, utc_now
from ..models.cash_sessions import CashMovementModel, CashSessionModel
from ..models.enums import MINIMUM_AMOUNT_METHODS, LoanStatus, MovementType, PaymentMethod, ReceiptStatus, ReceiptType
from ..models.exceptions import (
    AdvanceAmountMismatchError,
    AmountExceedsMaximumError,
    BelowMinimumAmountError,
    CashAmountError,
    CashSessionStateError,
    InstallmentAlreadyPaidError,
    InstallmentOrderError,
    LedgerError,
    LoanAlreadyPaidError,
    ModelNotFoundError,
    ModelValidationError,
    ReceiptAlreadyClassifiedError,
)
from ..models.payments import AllocationLine, PaymentModel
from ..models.repositories import (
    CASH_SESSIONS,
    INSTALLMENTS,
    LOANS,
    PAYMENT_REFERENCES,
    PAYMENTS,
    DocumentWrite,
    LedgerStore,
)
from .allocation import allocate_full_cover, allocate_waterfall, settle_within_tolerance
from .cash_session_service import require_open_session
from .late_fees import InstallmentStatus
from .loan_state import LoanSnapshot, build_statuses, load_loan_snapshot


logger = logging.getLogger(__name__)


def _parse_method(method: Any) -> PaymentMethod:
    try:
        return PaymentMethod(method)
    except ValueError:
        raise ModelValidationError("Unsupported payment method: {0}".format(method), constraint="method")


class PaymentService:
    """Validates payments and splits them across a loan's installments."""

    def __init__(
        self,
        settings: AppSettings,
        store: LedgerStore,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._settings = settings
        self._store = store
        self._clock = clock or utc_now

    def _validate_amount(self, amount_minor: Money, method: PaymentMethod, external_ref: Optional[str]) -> None:
        if amount_minor <= 0:
            raise ModelValidationError("Payment amount must be greater than 0", constraint="amount")
        if method == PaymentMethod.CASH and not is_cash_settleable(amount_minor):
            raise CashAmountError(
                "Cash payments must be multiples of 0.10, got {0}".format(format_minor(amount_minor)),
                amount_minor=amount_minor,
            )
        minimum = self._settings.min_digital_amount_minor
        if method in MINIMUM_AMOUNT_METHODS and amount_minor < minimum:
            raise BelowMinimumAmountError(
                "Minimum amount for {0} payments is {1}".format(method.value, format_minor(minimum)),
                minimum_minor=minimum,
            )
        if method == PaymentMethod.GATEWAY and not external_ref:
            raise ModelValidationError("Gateway payments require an external reference", constraint="external_ref")

    def _max_payable(self, pending_minor: Money, method: PaymentMethod) -> Money:
        if method == PaymentMethod.CASH:
            return round_cash_minor(pending_minor)
        return pending_minor

    def _write_off_minor(self, method: PaymentMethod) -> Money:
        return self._settings.rounding_tolerance_minor if method == PaymentMethod.CASH else 0

    def _load_session(self, session_id: str, cashier_id: Optional[str]) -> CashSessionModel:
        try:
            session = self._store.get_cash_session(session_id)
        except ModelNotFoundError:
            raise CashSessionStateError("Cash session not found: {0}".format(session_id))
        require_open_session(session, cashier_id)
        return session

    def _find_duplicate(
        self,
        snapshot: LoanSnapshot,
        installment_id: Optional[str],
        amount_minor: Money,
        method: PaymentMethod,
        now: datetime,
    ) -> Optional[PaymentModel]:
        """Most recent identical payment inside the duplicate window, if any."""
        window = timedelta(seconds=self._settings.duplicate_window_seconds)
        for payment in reversed(snapshot.payments):
            if (
                payment.installment_id == installment_id
                and payment.amount_minor == amount_minor
                and payment.method == method
                and not payment.is_advance
                and timedelta(0) <= now - payment.paid_at <= window
            ):
                return payment
        return None

    def _settle_payment(
        self,
        snapshot: LoanSnapshot,
        lines: List[AllocationLine],
        now: datetime,
        **fields: Any,
    ) -> PaymentModel:
        """Build the payment, writing off residues within tolerance left after it is applied."""
        draft = PaymentModel.from_lines(lines, **fields)
        after = build_statuses(snapshot.installments, snapshot.payments + [draft], now, self._settings)
        settled = settle_within_tolerance(draft.lines, after, self._settings.rounding_tolerance_minor)
        if settled == draft.lines:
            return draft
        logger.info(
            "Wrote off residue payment_id=%s adjustment_minor=%s",
            draft.id,
            sum(line.rounding_adjustment_minor for line in settled),
        )
        return PaymentModel.from_lines(settled, **fields)

    def _commit_payment(
        self,
        snapshot: LoanSnapshot,
        session: CashSessionModel,
        payment: PaymentModel,
        now: datetime,
    ) -> None:
        """Persist the payment with its installment, loan and session effects in one commit."""
        writes = [DocumentWrite.create(PAYMENTS, payment)]
        if payment.external_ref:
            writes.append(DocumentWrite.index(PAYMENT_REFERENCES, payment.external_ref, payment.id))

        after = build_statuses(snapshot.installments, snapshot.payments + [payment], now, self._settings)
        touched = {line.installment_id for line in payment.lines}
        installments = snapshot.by_id()
        all_paid = True
        for status in after:
            installment = installments[status.installment_id]
            paid_now = status.installment_id in touched and status.pending_total_minor == 0
            if paid_now and not installment.paid:
                writes.append(DocumentWrite.update(INSTALLMENTS, installment.bumped(paid=True, paid_at=now)))
            all_paid = all_paid and (installment.paid or paid_now)

        # The loan version is bumped on every payment so concurrent allocations conflict.
        loan_status = LoanStatus.CLOSED if all_paid else snapshot.loan.status
        writes.append(DocumentWrite.update(LOANS, snapshot.loan.bumped(status=loan_status)))

        movements = list(session.movements)
        if payment.method == PaymentMethod.CASH:
            movements.append(
                CashMovementModel(
                    movement_id=new_id("mov"),
                    movement_type=MovementType.COLLECTION,
                    amount_minor=payment.amount_minor,
                    description="Payment {0} for loan {1}".format(payment.id, payment.loan_id),
                    payment_id=payment.id,
                    recorded_at=now,
                )
            )
        updated_session = session.bumped(movements=movements, payment_ids=session.payment_ids + [payment.id])
        writes.append(DocumentWrite.update(CASH_SESSIONS, updated_session))

        self._store.commit(writes)
        if all_paid:
            logger.info("Loan fully paid loan_id=%s", snapshot.loan.id)

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
        """Collect a payment against one installment or, without a target, the whole loan.

        Args:
            loan_id: Loan being paid.
            amount: Collected amount in major units.
            method: Payment method.
            cash_session_id: Open session of the collecting cashier.
            cashier_id: Cashier collecting the payment.
            installment_id: Optional target installment. Earlier installments must be settled.
            external_ref: Optional idempotency key, required for gateway payments.

        Returns:
            PaymentModel: The new payment, or the existing one for a repeated request.

        Raises:
            ModelValidationError: If the amount or method is invalid.
            CashSessionStateError: If the session is missing, closed or not the cashier's.
            LoanAlreadyPaidError: If nothing is owed.
            InstallmentOrderError: If an earlier installment is still open.
            InstallmentAlreadyPaidError: If the target installment is settled.
            TransientConflictError: If concurrent updates kept winning.
        """
        try:
            method = _parse_method(method)
            amount_minor = to_minor(amount)
            self._validate_amount(amount_minor, method, external_ref)

            def _attempt() -> PaymentModel:
                if external_ref:
                    existing = self._store.find_payment_by_reference(external_ref)
                    if existing is not None:
                        logger.info("Replayed payment external_ref=%s payment_id=%s", external_ref, existing.id)
                        return existing

                now = self._clock()
                session = self._load_session(cash_session_id, cashier_id)
                snapshot = load_loan_snapshot(self._store, loan_id, now, self._settings)

                if not external_ref and method == PaymentMethod.CASH:
                    duplicate = self._find_duplicate(snapshot, installment_id, amount_minor, method, now)
                    if duplicate is not None:
                        logger.warning("Duplicate cash payment ignored loan_id=%s payment_id=%s", loan_id, duplicate.id)
                        return duplicate

                if snapshot.loan.is_closed or not snapshot.unsettled():
                    raise LoanAlreadyPaidError("Loan {0} is already paid".format(loan_id))

                if installment_id is not None:
                    target = snapshot.status(installment_id)
                    if target.settled:
                        raise InstallmentAlreadyPaidError(
                            "Installment #{0} is already paid".format(target.installment_number)
                        )
                    blocking = snapshot.first_unsettled_before(target.installment_number)
                    if blocking is not None:
                        raise InstallmentOrderError(
                            "Installment #{0} cannot be paid until installment #{1} is paid".format(
                                target.installment_number,
                                blocking.installment_number,
                            ),
                            blocking_number=blocking.installment_number,
                        )
                    candidates = snapshot.unsettled(target.installment_number)
                else:
                    candidates = snapshot.unsettled()

                max_minor = self._max_payable(snapshot.total_pending_minor(), method)
                if amount_minor > max_minor:
                    raise AmountExceedsMaximumError(
                        "Amount {0} exceeds the maximum payable {1}".format(
                            format_minor(amount_minor),
                            format_minor(max_minor),
                        ),
                        max_allowed_minor=max_minor,
                    )

                lines = allocate_waterfall(candidates, amount_minor, self._write_off_minor(method))
                payment = self._settle_payment(
                    snapshot,
                    lines,
                    now,
                    id=new_id("pay"),
                    loan_id=loan_id,
                    installment_id=installment_id,
                    amount_minor=amount_minor,
                    method=method,
                    external_ref=external_ref,
                    cash_session_id=session.id,
                    cashier_id=cashier_id,
                    paid_at=now,
                    created_at=now,
                    updated_at=now,
                )
                self._commit_payment(snapshot, session, payment, now)
                logger.info(
                    "Allocated payment_id=%s loan_id=%s amount_minor=%s method=%s lines=%s",
                    payment.id,
                    loan_id,
                    amount_minor,
                    method.value,
                    len(lines),
                )
                return payment

            return retry_on_conflict(_attempt, self._settings.max_conflict_retries, "allocate_payment")
        except LedgerError as exc:
            logger.warning("Payment rejected loan_id=%s: %s", loan_id, exc)
            raise
        except Exception:
            logger.exception("Failed allocating payment loan_id=%s", loan_id)
            raise

    def _advance_targets(self, snapshot: LoanSnapshot, installment_ids: Sequence[str]) -> List[InstallmentStatus]:
        """Validate the requested set and return it ordered by installment number."""
        if not installment_ids:
            raise ModelValidationError("At least one installment is required", constraint="installment_ids")
        if len(set(installment_ids)) != len(installment_ids):
            raise ModelValidationError("Installment ids must not repeat", constraint="installment_ids")

        targets = sorted(
            (snapshot.status(item) for item in installment_ids),
            key=lambda item: item.installment_number,
        )
        for status in targets:
            if status.settled:
                raise InstallmentAlreadyPaidError(
                    "Installment #{0} is already paid".format(status.installment_number)
                )

        targeted = {item.installment_number for item in targets}
        highest = targets[-1].installment_number
        for status in snapshot.statuses:
            if status.installment_number >= highest:
                break
            if status.installment_number not in targeted and not status.settled:
                raise InstallmentOrderError(
                    "Installment #{0} must be paid before paying ahead".format(status.installment_number),
                    blocking_number=status.installment_number,
                )
        return targets

    def _advance_quote(self, targets: List[InstallmentStatus], method: Optional[PaymentMethod]) -> Dict[str, Any]:
        total_minor = sum(item.pending_total_minor for item in targets)
        cash_total_minor = round_cash_minor(total_minor)
        return {
            "installments": [
                {
                    "installment_id": item.installment_id,
                    "installment_number": item.installment_number,
                    "pending_total_minor": item.pending_total_minor,
                    "late_fee_minor": item.late_fee_outstanding_minor,
                }
                for item in targets
            ],
            "total_minor": total_minor,
            "cash_total_minor": cash_total_minor,
            "required_minor": cash_total_minor if method == PaymentMethod.CASH else total_minor,
        }

    def quote_advance_payment(
        self,
        loan_id: str,
        installment_ids: Sequence[str],
        cash_session_id: str,
        method: Optional[PaymentMethod] = None,
        cashier_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Price an advance payment for a set of installments without writing anything."""
        try:
            parsed_method = _parse_method(method) if method is not None else None
            self._load_session(cash_session_id, cashier_id)
            snapshot = load_loan_snapshot(self._store, loan_id, self._clock(), self._settings)
            targets = self._advance_targets(snapshot, list(installment_ids))
            quote = self._advance_quote(targets, parsed_method)
            quote["loan_id"] = loan_id
            return quote
        except LedgerError as exc:
            logger.warning("Advance quote rejected loan_id=%s: %s", loan_id, exc)
            raise
        except Exception:
            logger.exception("Failed quoting advance payment loan_id=%s", loan_id)
            raise

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
        """Pay several installments in full with one consolidated payment.

        Raises:
            AdvanceAmountMismatchError: If the amount differs from the required total
                by more than the advance tolerance. The error carries the required amount.
        """
        try:
            method = _parse_method(method)
            amount_minor = to_minor(amount)
            self._validate_amount(amount_minor, method, external_ref)
            requested = list(installment_ids)

            def _attempt() -> PaymentModel:
                if external_ref:
                    existing = self._store.find_payment_by_reference(external_ref)
                    if existing is not None:
                        logger.info("Replayed advance payment external_ref=%s payment_id=%s", external_ref, existing.id)
                        return existing

                now = self._clock()
                session = self._load_session(cash_session_id, cashier_id)
                snapshot = load_loan_snapshot(self._store, loan_id, now, self._settings)
                if snapshot.loan.is_closed or not snapshot.unsettled():
                    raise LoanAlreadyPaidError("Loan {0} is already paid".format(loan_id))

                targets = self._advance_targets(snapshot, requested)
                required_minor = self._advance_quote(targets, method)["required_minor"]
                if abs(amount_minor - required_minor) > self._settings.advance_match_tolerance_minor:
                    raise AdvanceAmountMismatchError(
                        "Amount {0} does not match the required {1} for {2} installments".format(
                            format_minor(amount_minor),
                            format_minor(required_minor),
                            len(targets),
                        ),
                        required_minor=required_minor,
                    )

                lines = allocate_full_cover(targets, amount_minor)
                payment = self._settle_payment(
                    snapshot,
                    lines,
                    now,
                    id=new_id("pay"),
                    loan_id=loan_id,
                    amount_minor=amount_minor,
                    method=method,
                    external_ref=external_ref,
                    cash_session_id=session.id,
                    cashier_id=cashier_id,
                    paid_at=now,
                    created_at=now,
                    updated_at=now,
                    is_advance=True,
                )
                self._commit_payment(snapshot, session, payment, now)
                logger.info(
                    "Allocated advance payment_id=%s loan_id=%s installments=%s amount_minor=%s",
                    payment.id,
                    loan_id,
                    [item.installment_number for item in targets],
                    amount_minor,
                )
                return payment

            return retry_on_conflict(_attempt, self._settings.max_conflict_retries, "allocate_advance_payment")
        except LedgerError as exc:
            logger.warning("Advance payment rejected loan_id=%s: %s", loan_id, exc)
            raise
        except Exception:
            logger.exception("Failed allocating advance payment loan_id=%s", loan_id)
            raise

    def classify_receipt(
        self,
        payment_id: str,
        receipt_type: ReceiptType,
        tax_id: Optional[str] = None,
        business_name: Optional[str] = None,
        business_address: Optional[str] = None,
    ) -> PaymentModel:
        """Attach the fiscal receipt type to a settled payment. Allowed once.

        Raises:
            ModelValidationError: If an invoice is missing tax id, business name or address.
            ReceiptAlreadyClassifiedError: If the payment was already classified.
        """
        try:
            try:
                receipt_type = ReceiptType(receipt_type)
            except ValueError:
                raise ModelValidationError("Unknown receipt type: {0}".format(receipt_type), constraint="receipt_type")
            if receipt_type == ReceiptType.INVOICE and not (tax_id and business_name and business_address):
                raise ModelValidationError(
                    "Invoices require tax id, business name and business address",
                    constraint="invoice_details",
                )

            def _attempt() -> PaymentModel:
                payment = self._store.get_payment(payment_id)
                if payment.receipt_status == ReceiptStatus.CLASSIFIED:
                    raise ReceiptAlreadyClassifiedError(
                        "Receipt for payment {0} is already classified as {1}".format(
                            payment_id,
                            payment.receipt_type.value if payment.receipt_type else "unknown",
                        )
                    )
                invoice = receipt_type == ReceiptType.INVOICE
                updated = payment.bumped(
                    receipt_status=ReceiptStatus.CLASSIFIED,
                    receipt_type=receipt_type,
                    tax_id=tax_id if invoice else None,
                    business_name=business_name if invoice else None,
                    business_address=business_address if invoice else None,
                    classified_at=self._clock(),
                )
                self._store.commit([DocumentWrite.update(PAYMENTS, updated)])
                return updated

            payment = retry_on_conflict(_attempt, self._settings.max_conflict_retries, "classify_receipt")
            logger.info("Classified receipt payment_id=%s type=%s", payment_id, receipt_type.value)
            return payment
        except LedgerError as exc:
            logger.warning("Receipt classification rejected payment_id=%s: %s", payment_id, exc)
            raise
        except Exception:
            logger.exception("Failed classifying receipt payment_id=%s", payment_id)
            raise

    def get_payment(self, payment_id: str) -> PaymentModel:
        return self._store.get_payment(payment_id)

    def list_payments(self, loan_id: str) -> List[PaymentModel]:
        self._store.get_loan(loan_id)
        return self._store.list_payments_for_loan(loan_id)
