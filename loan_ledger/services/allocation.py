"""Waterfall rules that split a payment across installments.

Each installment is paid interest first, then principal, then late fee. Money
left over moves on to the next installment in number order.
"""

import logging
from typing import List, Sequence, Tuple

from ..models.base import Money
from ..models.payments import AllocationLine
from .late_fees import InstallmentStatus


logger = logging.getLogger(__name__)


def _fill(status: InstallmentStatus, budget: Money) -> Tuple[AllocationLine, Money]:
    """Pay up to `budget` into one installment. Returns the line and the unused budget."""
    interest = min(budget, status.remaining_interest_minor)
    budget -= interest
    principal = min(budget, status.remaining_principal_minor)
    budget -= principal
    fee = min(budget, status.late_fee_outstanding_minor)
    budget -= fee
    line = AllocationLine(
        installment_id=status.installment_id,
        installment_number=status.installment_number,
        principal_minor=principal,
        interest_minor=interest,
        late_fee_minor=fee,
    )
    return line, budget


def _cover_residue(status: InstallmentStatus, line: AllocationLine) -> AllocationLine:
    """Extend `line` so it pays the installment in full, booking the gap as a negative adjustment."""
    residue = status.pending_total_minor - line.applied_minor
    if residue <= 0:
        return line
    return line.model_copy(
        update={
            "interest_minor": status.remaining_interest_minor,
            "principal_minor": status.remaining_principal_minor,
            "late_fee_minor": status.late_fee_outstanding_minor,
            "rounding_adjustment_minor": line.rounding_adjustment_minor - residue,
        }
    )


def allocate_waterfall(
    statuses: Sequence[InstallmentStatus],
    amount_minor: Money,
    write_off_minor: Money = 0,
) -> List[AllocationLine]:
    """Split `amount_minor` across `statuses` in the given order.

    Args:
        statuses: Unsettled installments, starting with the first one to pay.
        amount_minor: Money collected.
        write_off_minor: Largest residue on the last touched installment that is
            written off as a negative rounding adjustment, and largest leftover
            that is kept as a positive one. Zero for exact (non-cash) payments.

    Returns:
        List[AllocationLine]: Lines whose totals add up to `amount_minor` exactly.

    Raises:
        ValueError: If money is left over beyond `write_off_minor`.
    """
    lines: List[AllocationLine] = []
    touched: List[InstallmentStatus] = []
    budget = amount_minor
    for status in statuses:
        if budget <= 0:
            break
        line, budget = _fill(status, budget)
        lines.append(line)
        touched.append(status)

    if not lines:
        raise ValueError("No installment is open to receive the payment")

    if budget > 0:
        if budget > write_off_minor:
            raise ValueError("Payment exceeds the pending balance by {0} minor units".format(budget))
        lines[-1] = lines[-1].model_copy(update={"rounding_adjustment_minor": budget})
    else:
        residue = touched[-1].pending_total_minor - lines[-1].applied_minor
        if 0 < residue <= write_off_minor:
            lines[-1] = _cover_residue(touched[-1], lines[-1])
    return lines


def allocate_full_cover(statuses: Sequence[InstallmentStatus], amount_minor: Money) -> List[AllocationLine]:
    """Pay every installment in `statuses` in full and book the difference on the last line.

    Used for advance payments, where the amount has already been matched
    against the quoted total.
    """
    lines = [_fill(status, status.pending_total_minor)[0] for status in statuses]
    difference = amount_minor - sum(line.applied_minor for line in lines)
    lines[-1] = lines[-1].model_copy(update={"rounding_adjustment_minor": difference})
    return lines


def settle_within_tolerance(
    lines: Sequence[AllocationLine],
    statuses_after: Sequence[InstallmentStatus],
    tolerance_minor: Money,
) -> List[AllocationLine]:
    """Write off what a payment leaves owed, up to `tolerance_minor`, on the installments it touched.

    `statuses_after` must be computed with the payment applied, so a late-fee
    waiver triggered by the payment is already reflected. Each covered residue is
    booked as a negative rounding adjustment on the same line, which keeps the
    payment amount unchanged.
    """
    by_id = {status.installment_id: status for status in statuses_after}
    settled: List[AllocationLine] = []
    for line in lines:
        status = by_id[line.installment_id]
        residue = status.pending_total_minor
        if 0 < residue <= tolerance_minor:
            line = line.model_copy(
                update={
                    "interest_minor": line.interest_minor + status.remaining_interest_minor,
                    "principal_minor": line.principal_minor + status.remaining_principal_minor,
                    "late_fee_minor": line.late_fee_minor + status.late_fee_outstanding_minor,
                    "rounding_adjustment_minor": line.rounding_adjustment_minor - residue,
                }
            )
        settled.append(line)
    return settled
