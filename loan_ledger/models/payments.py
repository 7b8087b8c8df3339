"""Payment model with per-installment allocation lines and receipt state."""

from datetime import datetime
import logging
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from .base import BaseDocumentModel, Money, utc_now
from .enums import PaymentMethod, ReceiptStatus, ReceiptType


logger = logging.getLogger(__name__)


class AllocationLine(BaseModel):
    """Share of a payment applied to one installment."""

    installment_id: str = Field(..., min_length=3)
    installment_number: int = Field(..., gt=0)
    principal_minor: Money = Field(default=0, ge=0)
    interest_minor: Money = Field(default=0, ge=0)
    late_fee_minor: Money = Field(default=0, ge=0)
    rounding_adjustment_minor: Money = Field(default=0)

    @property
    def applied_minor(self) -> Money:
        """Money applied to installment components, without the rounding adjustment."""
        return self.principal_minor + self.interest_minor + self.late_fee_minor

    @property
    def total_minor(self) -> Money:
        return self.applied_minor + self.rounding_adjustment_minor


class PaymentModel(BaseDocumentModel):
    """A collected payment and how it was split across a loan's installments."""

    loan_id: str = Field(..., min_length=3)
    installment_id: Optional[str] = Field(default=None)
    amount_minor: Money = Field(..., gt=0)
    method: PaymentMethod = Field(...)

    lines: List[AllocationLine] = Field(default_factory=list)
    principal_paid_minor: Money = Field(default=0, ge=0)
    interest_paid_minor: Money = Field(default=0, ge=0)
    late_fee_paid_minor: Money = Field(default=0, ge=0)
    rounding_adjustment_minor: Money = Field(default=0)

    external_ref: Optional[str] = Field(default=None, min_length=1)
    cash_session_id: str = Field(..., min_length=3)
    cashier_id: str = Field(..., min_length=1)
    paid_at: datetime = Field(default_factory=utc_now)
    is_advance: bool = Field(default=False)

    receipt_status: ReceiptStatus = Field(default=ReceiptStatus.UNCLASSIFIED)
    receipt_type: Optional[ReceiptType] = Field(default=None)
    tax_id: Optional[str] = Field(default=None)
    business_name: Optional[str] = Field(default=None)
    business_address: Optional[str] = Field(default=None)
    classified_at: Optional[datetime] = Field(default=None)

    @model_validator(mode="after")
    def _validate_balance(self) -> "PaymentModel":
        """Components must add up to the collected amount and match the lines."""
        totals = (
            sum(line.principal_minor for line in self.lines),
            sum(line.interest_minor for line in self.lines),
            sum(line.late_fee_minor for line in self.lines),
            sum(line.rounding_adjustment_minor for line in self.lines),
        )
        declared = (
            self.principal_paid_minor,
            self.interest_paid_minor,
            self.late_fee_paid_minor,
            self.rounding_adjustment_minor,
        )
        if self.lines and totals != declared:
            raise ValueError("Payment component totals must equal the sum of allocation lines")
        if sum(declared) != self.amount_minor:
            raise ValueError(
                "amount_minor must equal principal + interest + late fee + rounding adjustment"
            )
        if self.receipt_type == ReceiptType.INVOICE:
            if not (self.tax_id and self.business_name and self.business_address):
                raise ValueError("Invoice receipts require tax_id, business_name and business_address")
        return self

    @classmethod
    def from_lines(cls, lines: List[AllocationLine], **fields) -> "PaymentModel":
        """Build a payment whose component totals are summed from `lines`."""
        return cls(
            lines=lines,
            principal_paid_minor=sum(line.principal_minor for line in lines),
            interest_paid_minor=sum(line.interest_minor for line in lines),
            late_fee_paid_minor=sum(line.late_fee_minor for line in lines),
            rounding_adjustment_minor=sum(line.rounding_adjustment_minor for line in lines),
            **fields,
        )

    def lines_for(self, installment_id: str) -> List[AllocationLine]:
        return [line for line in self.lines if line.installment_id == installment_id]
