"""Installment model for one row of a loan's amortization schedule."""

from datetime import datetime
import logging
from typing import List, Optional

from pydantic import Field, model_validator

from .base import BaseDocumentModel, Money
from .exceptions import ModelValidationError


logger = logging.getLogger(__name__)


class InstallmentModel(BaseDocumentModel):
    """Represents an individual installment in a loan repayment schedule.

    Principal and interest components are fixed when the loan is created. Only
    `paid` (and `paid_at`) change afterwards, through payment allocation.
    """

    loan_id: str = Field(..., min_length=3)
    installment_number: int = Field(..., gt=0)
    due_at: datetime = Field(...)

    installment_amount_minor: Money = Field(..., gt=0)
    principal_minor: Money = Field(..., ge=0)
    interest_minor: Money = Field(..., ge=0)
    remaining_balance_minor: Money = Field(..., ge=0)

    paid: bool = Field(default=False)
    paid_at: Optional[datetime] = Field(default=None)

    @model_validator(mode="after")
    def _validate_components(self) -> "InstallmentModel":
        """Amount must equal principal plus interest."""
        if self.principal_minor + self.interest_minor != self.installment_amount_minor:
            raise ValueError("installment_amount_minor must equal principal_minor + interest_minor")
        return self

    @classmethod
    def validate_schedule(cls, installments: List["InstallmentModel"], expected_principal_minor: Money) -> None:
        """Validate numbering and principal total for an installment schedule.

        Args:
            installments: Installment list for one loan.
            expected_principal_minor: Loan principal the schedule must repay.

        Raises:
            ModelValidationError: If numbering or total constraints fail.
        """
        if not installments:
            raise ModelValidationError("Installment schedule cannot be empty", constraint="schedule")

        ordered = sorted(installments, key=lambda item: item.installment_number)
        for index, installment in enumerate(ordered, start=1):
            if installment.installment_number != index:
                raise ModelValidationError(
                    "Installment numbers must be continuous from 1",
                    constraint="schedule",
                )

        principal_total = sum(item.principal_minor for item in ordered)
        if principal_total != expected_principal_minor:
            logger.warning(
                "Schedule principal mismatch expected=%s actual=%s",
                expected_principal_minor,
                principal_total,
            )
            raise ModelValidationError("Installment principal sum does not match loan principal", constraint="schedule")
