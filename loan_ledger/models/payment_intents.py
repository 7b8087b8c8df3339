"""Pending gateway payment intent, keyed by the gateway's order id."""

from datetime import datetime
import logging
from typing import List, Optional

from pydantic import Field

from .base import BaseDocumentModel, Money
from .enums import PaymentIntentStatus


logger = logging.getLogger(__name__)


class PaymentIntentModel(BaseDocumentModel):
    """Links a gateway order to the loan and installments it is meant to pay."""

    loan_id: str = Field(..., min_length=3)
    installment_ids: List[str] = Field(default_factory=list)
    amount_minor: Money = Field(..., gt=0)
    cashier_id: str = Field(..., min_length=1)
    cash_session_id: str = Field(..., min_length=3)
    expires_at: datetime = Field(...)
    status: PaymentIntentStatus = Field(default=PaymentIntentStatus.PENDING)
    payment_id: Optional[str] = Field(default=None)

    def is_expired(self, now: datetime) -> bool:
        return self.status == PaymentIntentStatus.EXPIRED or now >= self.expires_at
