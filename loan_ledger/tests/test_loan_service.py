"""Unit tests for loan creation and loan views."""

from datetime import date, datetime, timezone
import unittest

from loan_ledger.models.enums import LoanStatus, PaymentMethod
from loan_ledger.models.exceptions import DuplicateLoanError, ModelNotFoundError, ModelValidationError
from loan_ledger.tests.helpers import CASHIER, START_DATE, create_standard_loan, make_clock, make_facade


class LoanServiceTests(unittest.TestCase):
    """Validate loan creation, uniqueness and statements."""

    def setUp(self) -> None:
        self.clock = make_clock()
        self.facade = make_facade(self.clock)

    def test_create_loan_persists_schedule(self) -> None:
        """Loan and installments are stored together."""
        created = create_standard_loan(self.facade)
        loan = created["loan"]
        self.assertEqual(loan.status, LoanStatus.ACTIVE)
        self.assertEqual(loan.currency, "PEN")
        self.assertEqual(loan.principal_minor, 100000)
        self.assertEqual(loan.created_by, CASHIER)

        stored = self.facade.store.list_installments(loan.id)
        self.assertEqual([item.id for item in stored], [loan.id + "_001", loan.id + "_002", loan.id + "_003"])
        self.assertEqual(stored[0].due_at, datetime(2024, 2, 14, 17, 0, tzinfo=timezone.utc))
        self.assertEqual([item.installment_amount_minor for item in stored], [34675, 34675, 34676])
        self.assertFalse(any(item.paid for item in stored))
        self.assertEqual(self.facade.store.find_loan_id_for_client("client_01"), loan.id)

    def test_one_loan_per_client(self) -> None:
        """A second loan for the same client is rejected."""
        create_standard_loan(self.facade)
        with self.assertRaises(DuplicateLoanError):
            create_standard_loan(self.facade)
        create_standard_loan(self.facade, client_id="client_02")

    def test_invalid_terms(self) -> None:
        """Bad principal, rate, term count and past start dates are rejected."""
        with self.assertRaises(ModelValidationError):
            self.facade.create_loan("client_01", "0", "0.24", 3, START_DATE)
        with self.assertRaises(ModelValidationError):
            self.facade.create_loan("client_01", "1000.001", "0.24", 3, START_DATE)
        with self.assertRaises(ModelValidationError):
            self.facade.create_loan("client_01", "1000.00", "-0.10", 3, START_DATE)
        with self.assertRaises(ModelValidationError):
            self.facade.create_loan("client_01", "1000.00", "0.24", 0, START_DATE)
        with self.assertRaises(ModelValidationError) as ctx:
            self.facade.create_loan("client_01", "1000.00", "0.24", 3, date(2024, 1, 14))
        self.assertEqual(ctx.exception.constraint, "start_date")
        self.assertIsNone(self.facade.store.find_loan_id_for_client("client_01"))

    def test_preview_does_not_persist(self) -> None:
        """Preview returns the schedule and totals only."""
        preview = self.facade.preview_loan("1000.00", "0.24", 3, START_DATE)
        self.assertEqual(len(preview["schedule"]), 3)
        self.assertEqual(preview["totals"]["principal_minor"], 100000)
        self.assertEqual(preview["totals"]["interest_minor"], 2000 + 1346 + 680)
        self.assertEqual(self.facade.store.query_documents("loans"), [])

    def test_statement(self) -> None:
        """Statement totals reflect payments and late fees."""
        created = create_standard_loan(self.facade)
        loan_id = created["loan"].id
        session = self.facade.open_session(CASHIER, "0")
        self.facade.allocate_payment(loan_id, "346.75", PaymentMethod.DEBIT_CARD, session.id, CASHIER)

        self.clock.set(year=2024, month=3, day=20, hour=15)
        statement = self.facade.get_statement(loan_id)
        self.assertEqual(statement["paid"]["amount_minor"], 34675)
        self.assertEqual(statement["paid"]["interest_minor"], 2000)
        self.assertEqual(statement["pending"]["installments_open"], 2)
        self.assertEqual(statement["pending"]["late_fee_minor"], 347)
        self.assertEqual(statement["pending"]["total_minor"], 34675 + 347 + 34676)
        self.assertEqual(statement["pending"]["cash_total_minor"], 69700)
        self.assertEqual(statement["scheduled"]["amount_minor"], 104026)

    def test_unknown_loan(self) -> None:
        """Views of a missing loan raise not found."""
        with self.assertRaises(ModelNotFoundError):
            self.facade.get_statement("loan_missing")
        with self.assertRaises(ModelNotFoundError):
            self.facade.get_installment_statuses("loan_missing")


if __name__ == "__main__":
    unittest.main()
