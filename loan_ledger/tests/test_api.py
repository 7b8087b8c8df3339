"""HTTP tests for the ledger router."""

import unittest

from fastapi.testclient import TestClient

from loan_ledger.core.config import AppSettings
from loan_ledger.main import create_app
from loan_ledger.tests.helpers import CASHIER, make_clock, make_facade


HEADERS = {"X-Cashier-Id": CASHIER}


class LedgerRouterTests(unittest.TestCase):
    """Validate request handling and error mapping."""

    def setUp(self) -> None:
        self.clock = make_clock()
        settings = AppSettings()
        self.facade = make_facade(self.clock, settings=settings)
        self.client = TestClient(create_app(settings=settings, facade=self.facade))

    def _create_loan(self) -> dict:
        response = self.client.post(
            "/loans",
            json={
                "client_id": "client_01",
                "principal": "1000.00",
                "annual_rate": "0.24",
                "term_count": 3,
                "start_date": "2024-01-15",
            },
            headers=HEADERS,
        )
        self.assertEqual(response.status_code, 201)
        return response.json()

    def _open_session(self) -> str:
        response = self.client.post("/cash-sessions", json={"opening_balance": "100.00"}, headers=HEADERS)
        self.assertEqual(response.status_code, 201)
        return response.json()["id"]

    def test_health(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["timezone"], "America/Lima")

    def test_payment_flow(self) -> None:
        """Create a loan, collect cash and read the statement."""
        created = self._create_loan()
        loan_id = created["loan"]["id"]
        session_id = self._open_session()

        response = self.client.post(
            "/payments",
            json={
                "loan_id": loan_id,
                "amount": "346.70",
                "method": "CASH",
                "cash_session_id": session_id,
                "installment_id": created["installments"][0]["id"],
            },
            headers=HEADERS,
        )
        self.assertEqual(response.status_code, 201)
        payment = response.json()
        self.assertEqual(payment["rounding_adjustment_minor"], -5)

        statement = self.client.get("/loans/{0}/statement".format(loan_id)).json()
        self.assertEqual(statement["pending"]["installments_open"], 2)
        balance = self.client.get("/cash-sessions/{0}/balance".format(session_id)).json()
        self.assertEqual(balance["balance_minor"], 44670)

        receipt = self.client.post(
            "/payments/{0}/receipt".format(payment["id"]),
            json={"receipt_type": "SALES_RECEIPT"},
        )
        self.assertEqual(receipt.status_code, 200)
        self.assertEqual(receipt.json()["receipt_status"], "CLASSIFIED")
        again = self.client.post(
            "/payments/{0}/receipt".format(payment["id"]),
            json={"receipt_type": "SALES_RECEIPT"},
        )
        self.assertEqual(again.status_code, 409)

    def test_error_mapping(self) -> None:
        """Ledger errors map onto 400, 404 and 409 responses."""
        created = self._create_loan()
        loan_id = created["loan"]["id"]
        session_id = self._open_session()

        bad_cash = self.client.post(
            "/payments",
            json={"loan_id": loan_id, "amount": "10.05", "method": "CASH", "cash_session_id": session_id},
            headers=HEADERS,
        )
        self.assertEqual(bad_cash.status_code, 400)
        self.assertEqual(bad_cash.json()["detail"]["error"], "CashAmountError")

        out_of_order = self.client.post(
            "/payments",
            json={
                "loan_id": loan_id,
                "amount": "346.70",
                "method": "CASH",
                "cash_session_id": session_id,
                "installment_id": created["installments"][1]["id"],
            },
            headers=HEADERS,
        )
        self.assertEqual(out_of_order.status_code, 409)
        self.assertEqual(out_of_order.json()["detail"]["blocking_number"], 1)

        self.assertEqual(self.client.get("/loans/loan_missing/statement").status_code, 404)
        self.assertEqual(self._create_loan_conflict().status_code, 409)

    def _create_loan_conflict(self):
        return self.client.post(
            "/loans",
            json={
                "client_id": "client_01",
                "principal": "500.00",
                "annual_rate": "0.24",
                "term_count": 2,
                "start_date": "2024-01-15",
            },
            headers=HEADERS,
        )

    def test_cashier_header_required(self) -> None:
        response = self.client.post("/cash-sessions", json={"opening_balance": "100.00"})
        self.assertEqual(response.status_code, 422)

    def test_session_close_discrepancy(self) -> None:
        """Closing with a wrong count is refused with the expected amount."""
        session_id = self._open_session()
        self.assertEqual(self.client.get("/cash-sessions/current", headers=HEADERS).json()["id"], session_id)
        response = self.client.post(
            "/cash-sessions/{0}/close".format(session_id),
            json={"counted_amount": "90.00"},
            headers=HEADERS,
        )
        self.assertEqual(response.status_code, 409)
        response = self.client.post(
            "/cash-sessions/{0}/close".format(session_id),
            json={"counted_amount": "100.00"},
            headers=HEADERS,
        )
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["is_closed"])
        self.assertEqual(self.client.get("/cash-sessions/current", headers=HEADERS).status_code, 404)

    def test_payment_intent_flow(self) -> None:
        """A gateway order is registered, completed and replayed."""
        created = self._create_loan()
        session_id = self._open_session()
        response = self.client.post(
            "/payment-intents",
            json={
                "order_id": "ord-100",
                "loan_id": created["loan"]["id"],
                "amount": "346.75",
                "cash_session_id": session_id,
                "installment_ids": [created["installments"][0]["id"]],
            },
            headers=HEADERS,
        )
        self.assertEqual(response.status_code, 201)
        first = self.client.post("/payment-intents/ord-100/complete", json={"confirmed_amount": "346.75"})
        second = self.client.post("/payment-intents/ord-100/complete", json={})
        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.json()["id"], second.json()["id"])
        self.assertEqual(self.client.get("/payment-intents/ord-100").json()["status"], "CONSUMED")


if __name__ == "__main__":
    unittest.main()
