"""Per-installment late fee accrual and pending balance calculation."""

from datetime import datetime
import logging
from typing import Iterable
from zoneinfo import ZoneInfo

from pydantic import BaseModel

from ..common.dates import local_date
from ..common.money import bps_of_minor
from ..models.base import Money
from ..models.installments import InstallmentModel
from ..models.payments import PaymentModel


logger = logging.getLogger(__name__)


class InstallmentStatus(BaseModel):
    """Read-only view of one installment as of a point in time."""

    installment_id: str
    installment_number: int
    due_at: datetime
    installment_amount_minor: Money
    paid: bool

    principal_paid_minor: Money
    interest_paid_minor: Money
    remaining_principal_minor: Money
    remaining_interest_minor: Money
    remaining_installment_minor: Money

    has_late_fee: bool
    late_fee_minor: Money
    late_fee_paid_minor: Money
    late_fee_outstanding_minor: Money
    pending_total_minor: Money
    settled: bool


def late_fee_applies(installment: InstallmentModel, payments: Iterable[PaymentModel], as_of: datetime, tz: ZoneInfo) -> bool:
    """Return True when the fixed late fee is owed on `installment` at `as_of`.

    Due dates compare by local calendar day, so the due day itself is never
    late. Any payment line dated after the due day waives the fee.
    """
    if installment.paid:
        return False
    due_day = local_date(installment.due_at, tz)
    if local_date(as_of, tz) <= due_day:
        return False
    for payment in payments:
        if payment.lines_for(installment.id) and local_date(payment.paid_at, tz) > due_day:
            return False
    return True


def compute_installment_status(
    installment: InstallmentModel,
    payments: Iterable[PaymentModel],
    as_of: datetime,
    tz: ZoneInfo,
    late_fee_bps: int,
    tolerance_minor: Money = 0,
) -> InstallmentStatus:
    """Derive fee and pending amounts for one installment from its payment history.

    Args:
        installment: Installment to evaluate.
        payments: Payments of the same loan. Lines for other installments are ignored.
        as_of: Evaluation instant.
        tz: Ledger timezone used for calendar-day comparisons.
        late_fee_bps: Fixed late fee as basis points of the installment amount.
        tolerance_minor: Pending amount at or below which the installment counts as settled.

    Returns:
        InstallmentStatus: Computed view. Nothing is persisted.
    """
    payments = list(payments)
    principal_paid = 0
    interest_paid = 0
    fee_paid = 0
    for payment in payments:
        for line in payment.lines_for(installment.id):
            principal_paid += line.principal_minor
            interest_paid += line.interest_minor
            fee_paid += line.late_fee_minor

    remaining_principal = max(installment.principal_minor - principal_paid, 0)
    remaining_interest = max(installment.interest_minor - interest_paid, 0)
    remaining_installment = remaining_principal + remaining_interest

    accrued_fee = 0
    if late_fee_applies(installment, payments, as_of, tz):
        accrued_fee = bps_of_minor(installment.installment_amount_minor, late_fee_bps)
    # A fee collected before the waiver kicked in stays on record and is not charged twice.
    late_fee = max(accrued_fee, fee_paid)
    fee_outstanding = max(late_fee - fee_paid, 0)
    pending_total = remaining_installment + fee_outstanding

    return InstallmentStatus(
        installment_id=installment.id,
        installment_number=installment.installment_number,
        due_at=installment.due_at,
        installment_amount_minor=installment.installment_amount_minor,
        paid=installment.paid,
        principal_paid_minor=principal_paid,
        interest_paid_minor=interest_paid,
        remaining_principal_minor=remaining_principal,
        remaining_interest_minor=remaining_interest,
        remaining_installment_minor=remaining_installment,
        has_late_fee=late_fee > 0,
        late_fee_minor=late_fee,
        late_fee_paid_minor=fee_paid,
        late_fee_outstanding_minor=fee_outstanding,
        pending_total_minor=pending_total,
        settled=installment.paid or pending_total <= tolerance_minor,
    )
