"""Money conversion and the cash rounding policy.

Amounts travel as `Decimal` at the edges and as integer minor units (cents)
everywhere else.
"""

from decimal import ROUND_HALF_EVEN, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

from ..models.exceptions import ModelValidationError


AmountLike = Union[Decimal, int, str]

CENT = Decimal("0.01")
CASH_UNIT = Decimal("0.10")
CASH_UNIT_MINOR = 10
_ONE = Decimal(1)


def to_minor(amount: AmountLike, field_name: str = "amount") -> int:
    """Convert a major-unit amount into exact minor units.

    Raises:
        ModelValidationError: If the amount is not a number or has more than two decimals.
    """
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise ModelValidationError("{0} is not a valid amount: {1}".format(field_name, amount), constraint="amount")
    if not value.is_finite():
        raise ModelValidationError("{0} is not a valid amount: {1}".format(field_name, amount), constraint="amount")
    if value != value.quantize(CENT):
        raise ModelValidationError(
            "{0} cannot have more than two decimals: {1}".format(field_name, amount),
            constraint="precision",
        )
    return int(value * 100)


def from_minor(amount_minor: int) -> Decimal:
    """Convert minor units back into a two-decimal `Decimal`."""
    return (Decimal(amount_minor) / 100).quantize(CENT)


def round_cash_minor(amount_minor: int) -> int:
    """Round minor units to the nearest cash unit, ties to the even tenth."""
    tenths = (Decimal(amount_minor) / CASH_UNIT_MINOR).quantize(_ONE, rounding=ROUND_HALF_EVEN)
    return int(tenths) * CASH_UNIT_MINOR


def apply_cash_rounding(amount: AmountLike) -> Decimal:
    """Return the nearest cash-settleable amount (a multiple of 0.10).

    Ties on the hundredths digit go to the even tenths digit, so 0.25 becomes
    0.20 and 0.35 becomes 0.40. The function is idempotent.
    """
    value = Decimal(str(amount))
    units = (value / CASH_UNIT).quantize(_ONE, rounding=ROUND_HALF_EVEN)
    return (units * CASH_UNIT).quantize(CENT)


def is_cash_settleable(amount_minor: int) -> bool:
    return amount_minor % CASH_UNIT_MINOR == 0


def round_half_up_minor(value: Decimal) -> int:
    """Round a Decimal count of minor units to a whole cent, halves away from zero."""
    return int(value.quantize(_ONE, rounding=ROUND_HALF_UP))


def bps_of_minor(amount_minor: int, bps: int) -> int:
    """Return `bps` basis points of `amount_minor`, rounded half up to the cent."""
    return round_half_up_minor(Decimal(amount_minor) * bps / Decimal(10000))


def format_minor(amount_minor: int) -> str:
    """Human readable amount for error messages, for example `210.30`."""
    return "{0:.2f}".format(from_minor(amount_minor))
