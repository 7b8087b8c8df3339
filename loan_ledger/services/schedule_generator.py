"""Fixed-installment amortization schedule generation."""

from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
import logging
from typing import List
from zoneinfo import ZoneInfo

from pydantic import BaseModel

from ..common.dates import local_noon_utc
from ..common.money import AmountLike, round_half_up_minor, to_minor
from ..models.base import Money
from ..models.exceptions import ModelValidationError


logger = logging.getLogger(__name__)

DAYS_BETWEEN_INSTALLMENTS = 30
MONTHS_PER_YEAR = 12


class ScheduleRow(BaseModel):
    """One generated installment before it is persisted."""

    installment_number: int
    due_at: datetime
    installment_amount_minor: Money
    principal_minor: Money
    interest_minor: Money
    remaining_balance_minor: Money


def parse_rate(annual_rate: AmountLike) -> Decimal:
    try:
        rate = Decimal(str(annual_rate))
    except (InvalidOperation, ValueError):
        raise ModelValidationError("Interest rate is not a number: {0}".format(annual_rate), constraint="rate")
    if not rate.is_finite() or rate < 0:
        raise ModelValidationError("Interest rate must be greater than or equal to 0", constraint="rate")
    return rate


def fixed_installment(principal_minor: Money, period_rate: Decimal, term_count: int) -> Decimal:
    """Exact annuity payment in minor units, before rounding."""
    principal = Decimal(principal_minor)
    if period_rate == 0:
        return principal / term_count
    return principal * period_rate / (1 - (1 + period_rate) ** -term_count)


def generate_schedule_minor(
    principal_minor: Money,
    annual_rate: Decimal,
    term_count: int,
    start_date: date,
    tz: ZoneInfo,
) -> List[ScheduleRow]:
    """Build the schedule from minor-unit principal.

    Interest is charged on the exact running balance. Rounding residue is
    folded into the last row so principal components add up to the loan.
    """
    if principal_minor <= 0:
        raise ModelValidationError("Principal must be greater than 0", constraint="principal")
    if not isinstance(term_count, int) or isinstance(term_count, bool) or term_count <= 0:
        raise ModelValidationError("Term count must be a positive integer", constraint="term_count")

    period_rate = annual_rate / MONTHS_PER_YEAR
    exact_installment = fixed_installment(principal_minor, period_rate, term_count)
    installment_minor = round_half_up_minor(exact_installment)
    if installment_minor <= 0:
        raise ModelValidationError(
            "Principal is too small to spread over {0} installments".format(term_count),
            constraint="principal",
        )

    rows: List[ScheduleRow] = []
    balance = Decimal(principal_minor)
    principal_paid = 0
    for number in range(1, term_count + 1):
        exact_interest = balance * period_rate
        interest_minor = round_half_up_minor(exact_interest)
        principal_part = max(installment_minor - interest_minor, 0)
        balance -= exact_installment - exact_interest
        principal_paid += principal_part
        rows.append(
            ScheduleRow(
                installment_number=number,
                due_at=local_noon_utc(start_date + timedelta(days=DAYS_BETWEEN_INSTALLMENTS * number), tz),
                installment_amount_minor=interest_minor + principal_part,
                principal_minor=principal_part,
                interest_minor=interest_minor,
                remaining_balance_minor=max(principal_minor - principal_paid, 0),
            )
        )

    last = rows[-1]
    last_principal = principal_minor - sum(row.principal_minor for row in rows[:-1])
    if last_principal < 0:
        raise ModelValidationError("Schedule could not be reconciled to the principal", constraint="schedule")
    rows[-1] = last.model_copy(
        update={
            "principal_minor": last_principal,
            "installment_amount_minor": last_principal + last.interest_minor,
            "remaining_balance_minor": 0,
        }
    )
    return rows


def generate_schedule(
    principal: AmountLike,
    annual_rate: AmountLike,
    term_count: int,
    start_date: date,
    tz: ZoneInfo,
) -> List[ScheduleRow]:
    """Generate the amortization schedule for a loan.

    Args:
        principal: Loan principal in major units, at most two decimals.
        annual_rate: Annual interest rate as a fraction, for example `0.24`.
        term_count: Number of installments.
        start_date: Loan start date. The first installment is due 30 days later.
        tz: Timezone the due dates are anchored to (12:00 local).

    Returns:
        List[ScheduleRow]: Rows ordered by installment number.

    Raises:
        ModelValidationError: If principal, rate or term count is invalid.
    """
    principal_minor = to_minor(principal, field_name="principal")
    rate = parse_rate(annual_rate)
    rows = generate_schedule_minor(principal_minor, rate, term_count, start_date, tz)
    logger.debug(
        "Generated schedule principal_minor=%s rate=%s terms=%s",
        principal_minor,
        rate,
        term_count,
    )
    return rows
