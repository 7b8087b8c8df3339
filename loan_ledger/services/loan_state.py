"""Point-in-time snapshot of a loan, its installments and payment history."""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from ..core.config import AppSettings
from ..models.base import Money
from ..models.exceptions import ModelNotFoundError
from ..models.installments import InstallmentModel
from ..models.loans import LoanModel
from ..models.payments import PaymentModel
from ..models.repositories import LedgerStore
from .late_fees import InstallmentStatus, compute_installment_status


@dataclass
class LoanSnapshot:
    loan: LoanModel
    installments: List[InstallmentModel]
    payments: List[PaymentModel]
    statuses: List[InstallmentStatus]
    as_of: datetime

    def installment(self, installment_id: str) -> InstallmentModel:
        for item in self.installments:
            if item.id == installment_id:
                return item
        raise ModelNotFoundError(
            "Installment {0} does not belong to loan {1}".format(installment_id, self.loan.id)
        )

    def status(self, installment_id: str) -> InstallmentStatus:
        for item in self.statuses:
            if item.installment_id == installment_id:
                return item
        raise ModelNotFoundError(
            "Installment {0} does not belong to loan {1}".format(installment_id, self.loan.id)
        )

    def unsettled(self, from_number: int = 1) -> List[InstallmentStatus]:
        """Open installments numbered `from_number` or later, in order."""
        return [item for item in self.statuses if not item.settled and item.installment_number >= from_number]

    def first_unsettled_before(self, number: int) -> Optional[InstallmentStatus]:
        for item in self.statuses:
            if item.installment_number >= number:
                return None
            if not item.settled:
                return item
        return None

    def total_pending_minor(self) -> Money:
        return sum(item.pending_total_minor for item in self.unsettled())

    def by_id(self) -> Dict[str, InstallmentModel]:
        return {item.id: item for item in self.installments}


def build_statuses(
    installments: List[InstallmentModel],
    payments: List[PaymentModel],
    as_of: datetime,
    settings: AppSettings,
) -> List[InstallmentStatus]:
    return [
        compute_installment_status(
            installment,
            payments,
            as_of,
            settings.tzinfo,
            settings.late_fee_bps,
            settings.rounding_tolerance_minor,
        )
        for installment in installments
    ]


def load_loan_snapshot(store: LedgerStore, loan_id: str, as_of: datetime, settings: AppSettings) -> LoanSnapshot:
    """Read the loan and everything needed to price it at `as_of`.

    Raises:
        ModelNotFoundError: If the loan does not exist.
    """
    loan = store.get_loan(loan_id)
    installments = store.list_installments(loan_id)
    payments = store.list_payments_for_loan(loan_id)
    return LoanSnapshot(
        loan=loan,
        installments=installments,
        payments=payments,
        statuses=build_statuses(installments, payments, as_of, settings),
        as_of=as_of,
    )
