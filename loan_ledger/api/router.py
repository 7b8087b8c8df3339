"""HTTP routes exposing loans, payments, cash sessions and gateway intents."""

from datetime import date
from decimal import Decimal
import logging
from typing import Any, Dict, List, NoReturn, Optional

from fastapi import APIRouter, Header, HTTPException, Query, status
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from ..models.enums import MovementType, PaymentMethod, ReceiptType
from ..models.exceptions import (
    LedgerError,
    LedgerStateError,
    ModelNotFoundError,
    ModelValidationError,
    TransientConflictError,
)
from ..services.ledger_facade import LedgerFacade


logger = logging.getLogger(__name__)


class LoanTermsRequest(BaseModel):
    """Loan terms shared by preview and creation."""

    principal: Decimal = Field(..., gt=0)
    annual_rate: Decimal = Field(..., ge=0)
    term_count: int = Field(..., gt=0)
    start_date: date = Field(...)


class CreateLoanRequest(LoanTermsRequest):
    """Request payload for loan creation."""

    client_id: str = Field(..., min_length=1)


class PaymentRequest(BaseModel):
    """Request payload for a single or free-form payment."""

    loan_id: str = Field(..., min_length=3)
    amount: Decimal = Field(..., gt=0)
    method: PaymentMethod = Field(...)
    cash_session_id: str = Field(..., min_length=3)
    installment_id: Optional[str] = Field(default=None)
    external_ref: Optional[str] = Field(default=None)


class AdvanceQuoteRequest(BaseModel):
    """Request payload for pricing an advance payment."""

    loan_id: str = Field(..., min_length=3)
    installment_ids: List[str] = Field(..., min_length=1)
    cash_session_id: str = Field(..., min_length=3)
    method: Optional[PaymentMethod] = Field(default=None)


class AdvancePaymentRequest(BaseModel):
    """Request payload for paying several installments at once."""

    loan_id: str = Field(..., min_length=3)
    installment_ids: List[str] = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    method: PaymentMethod = Field(...)
    cash_session_id: str = Field(..., min_length=3)
    external_ref: Optional[str] = Field(default=None)


class ReceiptRequest(BaseModel):
    """Request payload for receipt classification."""

    receipt_type: ReceiptType = Field(...)
    tax_id: Optional[str] = Field(default=None)
    business_name: Optional[str] = Field(default=None)
    business_address: Optional[str] = Field(default=None)


class OpenSessionRequest(BaseModel):
    """Request payload for opening a cash session."""

    opening_balance: Decimal = Field(..., ge=0)
    notes: Optional[str] = Field(default=None)


class CloseSessionRequest(BaseModel):
    """Request payload for closing a cash session."""

    counted_amount: Decimal = Field(..., ge=0)
    notes: Optional[str] = Field(default=None)


class MovementRequest(BaseModel):
    """Request payload for a manual cash movement."""

    movement_type: MovementType = Field(...)
    amount: Decimal = Field(..., gt=0)
    description: str = Field(default="")


class PaymentIntentRequest(BaseModel):
    """Request payload for registering a gateway order."""

    order_id: str = Field(..., min_length=3)
    loan_id: str = Field(..., min_length=3)
    amount: Decimal = Field(..., gt=0)
    cash_session_id: str = Field(..., min_length=3)
    installment_ids: List[str] = Field(default_factory=list)


class CompleteIntentRequest(BaseModel):
    """Gateway confirmation payload."""

    confirmed_amount: Optional[Decimal] = Field(default=None, gt=0)


def _raise_http(exc: LedgerError) -> NoReturn:
    """Map a ledger error onto an HTTP error."""
    if isinstance(exc, ModelValidationError):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, ModelNotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, TransientConflictError):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif isinstance(exc, LedgerStateError):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail: Dict[str, Any] = {"error": type(exc).__name__, "message": str(exc)}
    for attribute in ("constraint", "blocking_number", "required_minor", "max_allowed_minor", "minimum_minor"):
        value = getattr(exc, attribute, None)
        if value is not None:
            detail[attribute] = value
    raise HTTPException(status_code=code, detail=detail)


def build_ledger_router(facade: LedgerFacade) -> APIRouter:
    """Build the ledger router around one facade instance."""
    router = APIRouter(tags=["ledger"])

    @router.get("/health", summary="Health check")
    def health() -> Dict[str, Any]:
        return {"status": "ok", "timezone": facade.settings.timezone}

    @router.post("/loans/preview", summary="Preview a loan schedule")
    def preview_loan(payload: LoanTermsRequest) -> Dict[str, Any]:
        try:
            return jsonable_encoder(
                facade.preview_loan(payload.principal, payload.annual_rate, payload.term_count, payload.start_date)
            )
        except LedgerError as exc:
            _raise_http(exc)

    @router.post("/loans", status_code=status.HTTP_201_CREATED, summary="Create a loan and its schedule")
    def create_loan(payload: CreateLoanRequest, x_cashier_id: str = Header(..., min_length=1)) -> Dict[str, Any]:
        try:
            return jsonable_encoder(
                facade.create_loan(
                    payload.client_id,
                    payload.principal,
                    payload.annual_rate,
                    payload.term_count,
                    payload.start_date,
                    created_by=x_cashier_id,
                )
            )
        except LedgerError as exc:
            _raise_http(exc)

    @router.get("/loans/{loan_id}/installments", summary="Installment statuses with late fees")
    def installment_statuses(loan_id: str) -> Dict[str, Any]:
        try:
            return jsonable_encoder({"loan_id": loan_id, "installments": facade.get_installment_statuses(loan_id)})
        except LedgerError as exc:
            _raise_http(exc)

    @router.get("/loans/{loan_id}/statement", summary="Loan statement")
    def loan_statement(loan_id: str) -> Dict[str, Any]:
        try:
            return jsonable_encoder(facade.get_statement(loan_id))
        except LedgerError as exc:
            _raise_http(exc)

    @router.post("/payments", status_code=status.HTTP_201_CREATED, summary="Collect a payment")
    def allocate_payment(payload: PaymentRequest, x_cashier_id: str = Header(..., min_length=1)) -> Dict[str, Any]:
        try:
            payment = facade.allocate_payment(
                payload.loan_id,
                payload.amount,
                payload.method,
                payload.cash_session_id,
                x_cashier_id,
                installment_id=payload.installment_id,
                external_ref=payload.external_ref,
            )
            return jsonable_encoder(payment)
        except LedgerError as exc:
            _raise_http(exc)

    @router.post("/payments/advance/quote", summary="Price an advance payment")
    def quote_advance(payload: AdvanceQuoteRequest, x_cashier_id: str = Header(..., min_length=1)) -> Dict[str, Any]:
        try:
            return jsonable_encoder(
                facade.quote_advance_payment(
                    payload.loan_id,
                    payload.installment_ids,
                    payload.cash_session_id,
                    method=payload.method,
                    cashier_id=x_cashier_id,
                )
            )
        except LedgerError as exc:
            _raise_http(exc)

    @router.post("/payments/advance", status_code=status.HTTP_201_CREATED, summary="Pay several installments")
    def allocate_advance(payload: AdvancePaymentRequest, x_cashier_id: str = Header(..., min_length=1)) -> Dict[str, Any]:
        try:
            payment = facade.allocate_advance_payment(
                payload.loan_id,
                payload.installment_ids,
                payload.amount,
                payload.method,
                payload.cash_session_id,
                x_cashier_id,
                external_ref=payload.external_ref,
            )
            return jsonable_encoder(payment)
        except LedgerError as exc:
            _raise_http(exc)

    @router.get("/payments/{payment_id}", summary="Get one payment")
    def get_payment(payment_id: str) -> Dict[str, Any]:
        try:
            return jsonable_encoder(facade.get_payment(payment_id))
        except LedgerError as exc:
            _raise_http(exc)

    @router.post("/payments/{payment_id}/receipt", summary="Classify the payment receipt")
    def classify_receipt(payment_id: str, payload: ReceiptRequest) -> Dict[str, Any]:
        try:
            payment = facade.classify_receipt(
                payment_id,
                payload.receipt_type,
                tax_id=payload.tax_id,
                business_name=payload.business_name,
                business_address=payload.business_address,
            )
            return jsonable_encoder(payment)
        except LedgerError as exc:
            _raise_http(exc)

    @router.post("/cash-sessions", status_code=status.HTTP_201_CREATED, summary="Open a cash session")
    def open_session(payload: OpenSessionRequest, x_cashier_id: str = Header(..., min_length=1)) -> Dict[str, Any]:
        try:
            return jsonable_encoder(facade.open_session(x_cashier_id, payload.opening_balance, notes=payload.notes))
        except LedgerError as exc:
            _raise_http(exc)

    @router.get("/cash-sessions/current", summary="Current open session of the cashier")
    def current_session(x_cashier_id: str = Header(..., min_length=1)) -> Dict[str, Any]:
        session = facade.get_current_session(x_cashier_id)
        if session is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No open cash session")
        return jsonable_encoder(session)

    @router.get("/cash-sessions", summary="Cash session history")
    def session_history(
        cashier_id: Optional[str] = Query(default=None),
        start_date: Optional[date] = Query(default=None),
        end_date: Optional[date] = Query(default=None),
        limit: int = Query(default=50, gt=0, le=500),
    ) -> Dict[str, Any]:
        sessions = facade.list_sessions(
            cashier_id=cashier_id, start_date=start_date, end_date=end_date, limit=limit
        )
        return jsonable_encoder({"sessions": sessions, "count": len(sessions)})

    @router.get("/cash-sessions/{session_id}/balance", summary="Computed session balance")
    def session_balance(session_id: str) -> Dict[str, Any]:
        try:
            return {"session_id": session_id, "balance_minor": facade.get_balance(session_id)}
        except LedgerError as exc:
            _raise_http(exc)

    @router.get("/cash-sessions/{session_id}/summary", summary="Session summary by payment method")
    def session_summary(session_id: str) -> Dict[str, Any]:
        try:
            return jsonable_encoder(facade.get_summary(session_id))
        except LedgerError as exc:
            _raise_http(exc)

    @router.get("/cash-sessions/{session_id}/change", summary="Check change availability")
    def change_available(session_id: str, amount: Decimal = Query(..., ge=0)) -> Dict[str, Any]:
        try:
            return facade.validate_change_available(session_id, amount)
        except LedgerError as exc:
            _raise_http(exc)

    @router.post("/cash-sessions/{session_id}/movements", status_code=status.HTTP_201_CREATED, summary="Record a cash movement")
    def record_movement(session_id: str, payload: MovementRequest, x_cashier_id: str = Header(..., min_length=1)) -> Dict[str, Any]:
        try:
            movement = facade.record_movement(
                session_id,
                payload.movement_type,
                payload.amount,
                description=payload.description,
                cashier_id=x_cashier_id,
            )
            return jsonable_encoder(movement)
        except LedgerError as exc:
            _raise_http(exc)

    @router.post("/cash-sessions/{session_id}/close", summary="Close a cash session")
    def close_session(session_id: str, payload: CloseSessionRequest, x_cashier_id: str = Header(..., min_length=1)) -> Dict[str, Any]:
        try:
            session = facade.close_session(session_id, payload.counted_amount, cashier_id=x_cashier_id, notes=payload.notes)
            return jsonable_encoder(session)
        except LedgerError as exc:
            _raise_http(exc)

    @router.get("/reports/daily", summary="Daily collection report")
    def daily_report(day: Optional[date] = Query(default=None)) -> Dict[str, Any]:
        return jsonable_encoder(facade.get_daily_report(day))

    @router.post("/payment-intents", status_code=status.HTTP_201_CREATED, summary="Register a gateway order")
    def register_intent(payload: PaymentIntentRequest, x_cashier_id: str = Header(..., min_length=1)) -> Dict[str, Any]:
        try:
            intent = facade.register_payment_intent(
                payload.order_id,
                payload.loan_id,
                payload.amount,
                x_cashier_id,
                payload.cash_session_id,
                installment_ids=payload.installment_ids,
            )
            return jsonable_encoder(intent)
        except LedgerError as exc:
            _raise_http(exc)

    @router.get("/payment-intents/{order_id}", summary="Get a gateway order intent")
    def get_intent(order_id: str) -> Dict[str, Any]:
        try:
            return jsonable_encoder(facade.get_payment_intent(order_id))
        except LedgerError as exc:
            _raise_http(exc)

    @router.post("/payment-intents/{order_id}/complete", summary="Confirm a gateway order")
    def complete_intent(order_id: str, payload: CompleteIntentRequest) -> Dict[str, Any]:
        try:
            return jsonable_encoder(facade.complete_payment_intent(order_id, confirmed_amount=payload.confirmed_amount))
        except LedgerError as exc:
            _raise_http(exc)

    return router
