"""Unit tests for late fee accrual and pending balances."""

from datetime import datetime, timezone
import unittest
from zoneinfo import ZoneInfo

from loan_ledger.models.enums import PaymentMethod
from loan_ledger.models.installments import InstallmentModel
from loan_ledger.models.payments import AllocationLine, PaymentModel
from loan_ledger.services.late_fees import compute_installment_status


LIMA = ZoneInfo("America/Lima")
# 2024-02-14 12:00 in Lima.
DUE_AT = datetime(2024, 2, 14, 17, 0, tzinfo=timezone.utc)


def _installment(paid: bool = False) -> InstallmentModel:
    return InstallmentModel(
        id="loan_x_001",
        loan_id="loan_x",
        installment_number=1,
        due_at=DUE_AT,
        installment_amount_minor=34675,
        principal_minor=32675,
        interest_minor=2000,
        remaining_balance_minor=67325,
        paid=paid,
    )


def _payment(paid_at: datetime, principal: int = 0, interest: int = 0, fee: int = 0) -> PaymentModel:
    line = AllocationLine(
        installment_id="loan_x_001",
        installment_number=1,
        principal_minor=principal,
        interest_minor=interest,
        late_fee_minor=fee,
    )
    return PaymentModel.from_lines(
        [line],
        id="pay_1",
        loan_id="loan_x",
        amount_minor=principal + interest + fee,
        method=PaymentMethod.DEBIT_CARD,
        cash_session_id="cs_1",
        cashier_id="cashier_01",
        paid_at=paid_at,
    )


class LateFeeTests(unittest.TestCase):
    """Validate the fixed one-time fee and its waiver."""

    def _status(self, as_of: datetime, payments=(), paid: bool = False):
        return compute_installment_status(_installment(paid), list(payments), as_of, LIMA, 100, 5)

    def test_no_fee_before_or_on_due_day(self) -> None:
        """The due day itself is not late, even late in the evening."""
        status = self._status(datetime(2024, 2, 15, 4, 0, tzinfo=timezone.utc))
        self.assertFalse(status.has_late_fee)
        self.assertEqual(status.pending_total_minor, 34675)

    def test_fee_applies_the_day_after_due(self) -> None:
        """One percent of the installment amount, rounded half up."""
        status = self._status(datetime(2024, 2, 15, 6, 0, tzinfo=timezone.utc))
        self.assertTrue(status.has_late_fee)
        self.assertEqual(status.late_fee_minor, 347)
        self.assertEqual(status.pending_total_minor, 34675 + 347)
        self.assertFalse(status.settled)

    def test_fee_is_not_compounded(self) -> None:
        """Months later the fee is the same fixed amount."""
        status = self._status(datetime(2024, 9, 1, tzinfo=timezone.utc))
        self.assertEqual(status.late_fee_minor, 347)

    def test_late_payment_waives_fee(self) -> None:
        """Any payment dated after the due day cancels the fee."""
        late = _payment(datetime(2024, 2, 20, 15, 0, tzinfo=timezone.utc), principal=8000, interest=2000)
        status = self._status(datetime(2024, 2, 21, tzinfo=timezone.utc), [late])
        self.assertFalse(status.has_late_fee)
        self.assertEqual(status.remaining_interest_minor, 0)
        self.assertEqual(status.remaining_principal_minor, 24675)
        self.assertEqual(status.pending_total_minor, 24675)

    def test_on_time_partial_payment_keeps_fee(self) -> None:
        """A payment on the due day does not waive a later fee."""
        on_time = _payment(datetime(2024, 2, 14, 20, 0, tzinfo=timezone.utc), principal=8000, interest=2000)
        status = self._status(datetime(2024, 3, 1, tzinfo=timezone.utc), [on_time])
        self.assertTrue(status.has_late_fee)
        self.assertEqual(status.pending_total_minor, 24675 + 347)

    def test_paid_fee_is_not_charged_again(self) -> None:
        """A fee collected with a late payment stays paid and is not re-accrued."""
        late = _payment(
            datetime(2024, 2, 20, 15, 0, tzinfo=timezone.utc),
            principal=32675,
            interest=2000,
            fee=347,
        )
        status = self._status(datetime(2024, 3, 1, tzinfo=timezone.utc), [late], paid=True)
        self.assertEqual(status.late_fee_minor, 347)
        self.assertEqual(status.late_fee_paid_minor, 347)
        self.assertEqual(status.late_fee_outstanding_minor, 0)
        self.assertEqual(status.pending_total_minor, 0)
        self.assertTrue(status.settled)

    def test_paid_installment_has_no_fee(self) -> None:
        """Installments flagged paid never accrue."""
        status = self._status(datetime(2024, 3, 1, tzinfo=timezone.utc), paid=True)
        self.assertFalse(status.has_late_fee)


if __name__ == "__main__":
    unittest.main()
