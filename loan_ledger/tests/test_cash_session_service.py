"""Unit tests for cashier session lifecycle and reporting."""

from datetime import date
import unittest

from loan_ledger.models.enums import MovementType, PaymentMethod
from loan_ledger.models.exceptions import (
    CashSessionDiscrepancyError,
    CashSessionStateError,
    ModelValidationError,
)
from loan_ledger.tests.helpers import CASHIER, create_standard_loan, installment_ids, make_clock, make_facade


class CashSessionServiceTests(unittest.TestCase):
    """Validate opening, movements, closing and reports."""

    def setUp(self) -> None:
        self.clock = make_clock()
        self.facade = make_facade(self.clock)
        self.service = self.facade.cash_sessions
        self.session = self.facade.open_session(CASHIER, "100.00", notes="morning shift")

    def _collect_first_installment(self) -> None:
        created = create_standard_loan(self.facade)
        self.facade.allocate_payment(
            created["loan"].id,
            "346.70",
            PaymentMethod.CASH,
            self.session.id,
            CASHIER,
            installment_id=installment_ids(created)[0],
        )

    def test_one_open_session_per_cashier(self) -> None:
        """A cashier cannot open a second session."""
        self.assertEqual(self.service.get_current_session(CASHIER).id, self.session.id)
        with self.assertRaises(CashSessionStateError):
            self.facade.open_session(CASHIER, "50.00")
        other = self.facade.open_session("cashier_02", "0")
        self.assertNotEqual(other.id, self.session.id)
        with self.assertRaises(ModelValidationError):
            self.facade.open_session("cashier_03", "-1.00")

    def test_movements_change_balance(self) -> None:
        """Inflows add, outflows and change given subtract."""
        self.facade.record_movement(self.session.id, MovementType.INFLOW, "50.00", description="float top-up")
        self.facade.record_movement(self.session.id, MovementType.OUTFLOW, "20.00", description="supplies")
        movement = self.facade.record_movement(self.session.id, "CHANGE_GIVEN", "5.00")
        self.assertEqual(movement.movement_type, MovementType.CHANGE_GIVEN)
        self.assertEqual(self.facade.get_balance(self.session.id), 10000 + 5000 - 2000 - 500)

    def test_invalid_movements(self) -> None:
        """Unknown types, zero amounts and foreign cashiers are rejected."""
        with self.assertRaises(ModelValidationError):
            self.facade.record_movement(self.session.id, "GIFT", "5.00")
        with self.assertRaises(ModelValidationError):
            self.facade.record_movement(self.session.id, MovementType.INFLOW, "0")
        with self.assertRaises(CashSessionStateError):
            self.facade.record_movement(self.session.id, MovementType.INFLOW, "5.00", cashier_id="cashier_02")

    def test_close_requires_matching_count(self) -> None:
        """Close fails outside the tolerance and leaves the session open."""
        self._collect_first_installment()
        self.assertEqual(self.facade.get_balance(self.session.id), 44670)

        with self.assertRaises(CashSessionDiscrepancyError) as ctx:
            self.facade.close_session(self.session.id, "446.68")
        self.assertEqual(ctx.exception.expected_minor, 44670)
        self.assertEqual(ctx.exception.counted_minor, 44668)
        self.assertFalse(self.facade.store.get_cash_session(self.session.id).is_closed)

        closed = self.facade.close_session(self.session.id, "446.69", cashier_id=CASHIER)
        self.assertTrue(closed.is_closed)
        self.assertEqual(closed.closing_balance_minor, 44670)
        self.assertEqual(closed.difference_minor, -1)
        self.assertEqual(closed.notes, "morning shift")
        self.assertIsNone(self.service.get_current_session(CASHIER))

        with self.assertRaises(CashSessionStateError):
            self.facade.close_session(self.session.id, "446.70")
        with self.assertRaises(CashSessionStateError):
            self.facade.record_movement(self.session.id, MovementType.INFLOW, "1.00")
        self.facade.open_session(CASHIER, "0")

    def test_summary_groups_by_method(self) -> None:
        """Summary aggregates payments and movements of the session."""
        self._collect_first_installment()
        summary = self.facade.get_summary(self.session.id)
        self.assertEqual(summary["payment_count"], 1)
        self.assertEqual(summary["payments_by_method"], {"CASH": {"count": 1, "total_minor": 34670}})
        self.assertEqual(summary["movement_totals"]["COLLECTION"], 34670)
        self.assertEqual(summary["expected_balance_minor"], 44670)

    def test_change_check(self) -> None:
        """Change is available only up to the drawer balance."""
        self.assertTrue(self.service.validate_change_available(self.session.id, "50.00")["available"])
        result = self.service.validate_change_available(self.session.id, "200.00")
        self.assertFalse(result["available"])
        self.assertEqual(result["balance_minor"], 10000)

    def test_history_and_daily_report(self) -> None:
        """History is newest first and the report covers one local day."""
        self._collect_first_installment()
        self.facade.close_session(self.session.id, "446.70")
        self.clock.advance(days=1)
        second = self.facade.open_session(CASHIER, "20.00")

        history = self.service.list_sessions(CASHIER)
        self.assertEqual([item.id for item in history], [second.id, self.session.id])
        self.assertEqual(len(self.service.list_sessions(CASHIER, start_date=date(2024, 1, 16))), 1)
        self.assertEqual(len(self.service.list_sessions(CASHIER, limit=1)), 1)

        report = self.service.get_daily_report(date(2024, 1, 15))
        self.assertEqual(report["payment_count"], 1)
        self.assertEqual(report["collected_minor"], 34670)
        self.assertEqual(report["sessions_opened"], 1)
        self.assertEqual(report["sessions_closed"], 1)

        today = self.service.get_daily_report()
        self.assertEqual(today["date"], date(2024, 1, 16))
        self.assertEqual(today["payment_count"], 0)
        self.assertEqual(today["sessions_opened"], 1)


if __name__ == "__main__":
    unittest.main()
