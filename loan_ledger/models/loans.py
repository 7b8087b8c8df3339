"""Loan domain model holding the contractual terms of a fixed-installment loan."""

from datetime import date
from decimal import Decimal
import logging

from pydantic import Field, field_validator

from .base import BaseDocumentModel, Money
from .enums import LoanStatus


logger = logging.getLogger(__name__)


class LoanModel(BaseDocumentModel):
    """Represents a loan and the terms its schedule was generated from."""

    client_id: str = Field(..., min_length=1)
    principal_minor: Money = Field(..., gt=0)
    annual_rate: Decimal = Field(..., ge=0)
    term_count: int = Field(..., gt=0)
    start_date: date = Field(...)
    currency: str = Field(default="PEN", min_length=3, max_length=3)
    status: LoanStatus = Field(default=LoanStatus.ACTIVE)
    created_by: str = Field(default="system", min_length=1)

    @field_validator("currency")
    @classmethod
    def _uppercase_currency(cls, value: str) -> str:
        """Force ISO-like uppercase currency formatting."""
        return value.upper()

    @property
    def is_closed(self) -> bool:
        return self.status == LoanStatus.CLOSED
