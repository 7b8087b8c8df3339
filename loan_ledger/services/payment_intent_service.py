"""Durable pending intents bridging gateway orders to ledger payments."""

from datetime import datetime, timedelta
import logging
from typing import Callable, Optional, Sequence

from ..common.money import AmountLike, format_minor, to_minor
from ..common.retry import retry_on_conflict
from ..core.config import AppSettings
from ..models.base import utc_now
from ..models.enums import PaymentIntentStatus, PaymentMethod
from ..models.exceptions import (
    LedgerError,
    ModelNotFoundError,
    ModelValidationError,
    PaymentIntentStateError,
)
from ..models.payment_intents import PaymentIntentModel
from ..models.payments import PaymentModel
from ..models.repositories import PAYMENT_INTENTS, DocumentWrite, LedgerStore
from .cash_session_service import require_open_session
from .payment_service import PaymentService


logger = logging.getLogger(__name__)


class PaymentIntentService:
    """Registers gateway orders and turns confirmed ones into payments exactly once."""

    def __init__(
        self,
        settings: AppSettings,
        store: LedgerStore,
        payment_service: PaymentService,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._settings = settings
        self._store = store
        self._payment_service = payment_service
        self._clock = clock or utc_now

    def register_intent(
        self,
        order_id: str,
        loan_id: str,
        amount: AmountLike,
        cashier_id: str,
        cash_session_id: str,
        installment_ids: Optional[Sequence[str]] = None,
    ) -> PaymentIntentModel:
        """Record what a gateway order is meant to pay before redirecting the customer.

        Registering the same order again with the same content returns the
        stored intent.

        Raises:
            ModelValidationError: If the amount is not positive or the order id is reused
                for different content.
            ModelNotFoundError: If the loan or an installment does not exist.
        """
        try:
            amount_minor = to_minor(amount)
            if amount_minor <= 0:
                raise ModelValidationError("Intent amount must be greater than 0", constraint="amount")
            requested = list(installment_ids or [])

            def _attempt() -> PaymentIntentModel:
                existing = self._store.get_document(PAYMENT_INTENTS, order_id)
                if existing is not None:
                    intent = PaymentIntentModel.from_document(existing, doc_id=order_id)
                    if (intent.loan_id, intent.installment_ids, intent.amount_minor) != (loan_id, requested, amount_minor):
                        raise ModelValidationError(
                            "Gateway order {0} is already registered for a different payment".format(order_id),
                            constraint="order_id",
                        )
                    return intent

                require_open_session(self._store.get_cash_session(cash_session_id), cashier_id)
                known = {item.id for item in self._store.list_installments(self._store.get_loan(loan_id).id)}
                for installment_id in requested:
                    if installment_id not in known:
                        raise ModelNotFoundError(
                            "Installment {0} does not belong to loan {1}".format(installment_id, loan_id)
                        )
                now = self._clock()
                intent = PaymentIntentModel(
                    id=order_id,
                    loan_id=loan_id,
                    installment_ids=requested,
                    amount_minor=amount_minor,
                    cashier_id=cashier_id,
                    cash_session_id=cash_session_id,
                    expires_at=now + timedelta(minutes=self._settings.payment_intent_ttl_minutes),
                    created_at=now,
                    updated_at=now,
                )
                self._store.commit([DocumentWrite.create(PAYMENT_INTENTS, intent)])
                logger.info("Registered payment intent order_id=%s loan_id=%s", order_id, loan_id)
                return intent

            return retry_on_conflict(_attempt, self._settings.max_conflict_retries, "register_intent")
        except LedgerError as exc:
            logger.warning("Payment intent rejected order_id=%s: %s", order_id, exc)
            raise
        except Exception:
            logger.exception("Failed registering payment intent order_id=%s", order_id)
            raise

    def get_intent(self, order_id: str) -> PaymentIntentModel:
        return self._store.get_payment_intent(order_id)

    def _expire(self, intent: PaymentIntentModel) -> None:
        self._store.commit(
            [DocumentWrite.update(PAYMENT_INTENTS, intent.bumped(status=PaymentIntentStatus.EXPIRED))]
        )
        logger.info("Expired payment intent order_id=%s", intent.id)

    def complete_intent(self, order_id: str, confirmed_amount: Optional[AmountLike] = None) -> PaymentModel:
        """Allocate the payment for a confirmed gateway order.

        The order id is used as the payment's external reference, so repeated
        confirmations return the same payment.

        Raises:
            ModelNotFoundError: If the order was never registered.
            PaymentIntentStateError: If the intent expired before confirmation.
            ModelValidationError: If the confirmed amount differs from the registered one.
        """
        try:
            intent = self._store.get_payment_intent(order_id)
            if intent.status == PaymentIntentStatus.CONSUMED and intent.payment_id:
                return self._store.get_payment(intent.payment_id)
            if confirmed_amount is not None:
                confirmed_minor = to_minor(confirmed_amount, field_name="confirmed_amount")
                if confirmed_minor != intent.amount_minor:
                    raise ModelValidationError(
                        "Confirmed amount {0} does not match registered amount {1}".format(
                            format_minor(confirmed_minor),
                            format_minor(intent.amount_minor),
                        ),
                        constraint="confirmed_amount",
                    )

            already_paid = self._store.find_payment_by_reference(order_id)
            if already_paid is None and intent.is_expired(self._clock()):
                if intent.status != PaymentIntentStatus.EXPIRED:
                    retry_on_conflict(
                        lambda: self._expire(self._store.get_payment_intent(order_id)),
                        self._settings.max_conflict_retries,
                        "expire_intent",
                    )
                raise PaymentIntentStateError("Payment intent {0} has expired".format(order_id))

            amount = format_minor(intent.amount_minor)
            if len(intent.installment_ids) > 1:
                payment = self._payment_service.allocate_advance_payment(
                    loan_id=intent.loan_id,
                    installment_ids=intent.installment_ids,
                    amount=amount,
                    method=PaymentMethod.GATEWAY,
                    cash_session_id=intent.cash_session_id,
                    cashier_id=intent.cashier_id,
                    external_ref=order_id,
                )
            else:
                payment = self._payment_service.allocate_payment(
                    loan_id=intent.loan_id,
                    amount=amount,
                    method=PaymentMethod.GATEWAY,
                    cash_session_id=intent.cash_session_id,
                    cashier_id=intent.cashier_id,
                    installment_id=intent.installment_ids[0] if intent.installment_ids else None,
                    external_ref=order_id,
                )

            def _consume() -> None:
                current = self._store.get_payment_intent(order_id)
                if current.status == PaymentIntentStatus.CONSUMED:
                    return
                consumed = current.bumped(status=PaymentIntentStatus.CONSUMED, payment_id=payment.id)
                self._store.commit([DocumentWrite.update(PAYMENT_INTENTS, consumed)])

            retry_on_conflict(_consume, self._settings.max_conflict_retries, "consume_intent")
            logger.info("Completed payment intent order_id=%s payment_id=%s", order_id, payment.id)
            return payment
        except LedgerError as exc:
            logger.warning("Payment intent completion rejected order_id=%s: %s", order_id, exc)
            raise
        except Exception:
            logger.exception("Failed completing payment intent order_id=%s", order_id)
            raise
