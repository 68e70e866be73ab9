import unittest
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select

from fingraph.bank_transactions import (
    apply_bank_effect,
    create_bank_transaction,
    get_bank_transaction,
    list_bank_transactions,
    update_bank_transaction,
)
from fingraph.db import bank_summaries
from fingraph.errors import ErrorMessage, ForbiddenException, ValidationException
from fingraph.tests.support import bank_account, create_user, make_engine, stock_account


class ApplyBankEffectTests(unittest.TestCase):
    def test_withdrawal_reverse_restores_balance(self) -> None:
        totals = {
            "total_deposit_amount": Decimal("100"),
            "total_withdrawal_amount": Decimal("30"),
            "balance": Decimal("70"),
        }

        result = apply_bank_effect(totals, "WITHDRAWAL", Decimal("30"), reverse=True)

        self.assertEqual(result["total_withdrawal_amount"], Decimal("0"))
        self.assertEqual(result["balance"], Decimal("100"))
        self.assertEqual(result["total_deposit_amount"], Decimal("100"))


class BankTransactionServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = make_engine()
        self.owner = create_user(self.engine)
        self.other = create_user(self.engine, email="other@example.com")
        self.account = bank_account(self.engine, self.owner)

    def _summary(self):
        with self.engine.begin() as conn:
            return (
                conn.execute(select(bank_summaries).where(bank_summaries.c.account_id == self.account["id"]))
                .mappings()
                .one()
            )

    def _book(self, amount: str, type_: str, **extra):
        return create_bank_transaction(
            self.engine,
            self.owner,
            {"account_id": self.account["id"], "amount": amount, "type": type_, **extra},
        )

    def test_create_moves_totals(self) -> None:
        deposit = self._book("100", "DEPOSIT", name="Salary")
        self._book("30", "WITHDRAWAL")

        summary = self._summary()
        self.assertEqual(deposit["currency"], "KRW")
        self.assertEqual(summary["total_deposit_amount"], Decimal("100"))
        self.assertEqual(summary["total_withdrawal_amount"], Decimal("30"))
        self.assertEqual(summary["balance"], Decimal("70"))

    def test_update_reverses_then_applies(self) -> None:
        deposit = self._book("100", "DEPOSIT")
        withdrawal = self._book("30", "WITHDRAWAL")

        update_bank_transaction(self.engine, self.owner, {"id": deposit["id"], "amount": "150"})
        updated = update_bank_transaction(self.engine, self.owner, {"id": withdrawal["id"], "type": "DEPOSIT"})

        summary = self._summary()
        self.assertEqual(updated["type"], "DEPOSIT")
        self.assertEqual(summary["total_deposit_amount"], Decimal("180"))
        self.assertEqual(summary["total_withdrawal_amount"], Decimal("0"))
        self.assertEqual(summary["balance"], Decimal("180"))

    def test_delete_removes_effect(self) -> None:
        deposit = self._book("100", "DEPOSIT")

        deleted = update_bank_transaction(self.engine, self.owner, {"id": deposit["id"], "is_delete": True})

        self.assertTrue(deleted["is_delete"])
        self.assertEqual(self._summary()["balance"], Decimal("0"))
        with self.assertRaises(ForbiddenException) as ctx:
            update_bank_transaction(self.engine, self.owner, {"id": deposit["id"], "amount": "1"})
        self.assertEqual(ctx.exception.message, ErrorMessage.MSG_NOT_FOUND_BANK_TRANSACTION)

    def test_rejects_non_bank_account(self) -> None:
        brokerage = stock_account(self.engine, self.owner)

        with self.assertRaises(ValidationException) as ctx:
            create_bank_transaction(
                self.engine, self.owner, {"account_id": brokerage["id"], "amount": "1", "type": "DEPOSIT"}
            )
        self.assertEqual(ctx.exception.message, ErrorMessage.MSG_NOT_BANK_ACCOUNT)

    def test_other_users_cannot_touch_transactions(self) -> None:
        deposit = self._book("100", "DEPOSIT")

        with self.assertRaises(ForbiddenException):
            create_bank_transaction(
                self.engine, self.other, {"account_id": self.account["id"], "amount": "1", "type": "DEPOSIT"}
            )
        with self.assertRaises(ForbiddenException):
            get_bank_transaction(self.engine, self.other, deposit["id"])
        self.assertEqual(get_bank_transaction(self.engine, self.owner, deposit["id"])["id"], deposit["id"])

    def test_list_filters(self) -> None:
        self._book("10", "DEPOSIT", name="Salary May", transaction_date=datetime(2024, 5, 25))
        self._book("20", "DEPOSIT", name="Salary June", transaction_date=datetime(2024, 6, 25))
        self._book("5", "WITHDRAWAL", name="Coffee", transaction_date=datetime(2024, 6, 26))

        rows, info = list_bank_transactions(
            self.engine,
            self.owner,
            {"account_id": self.account["id"], "name": "salary", "from_date": datetime(2024, 6, 1)},
        )
        self.assertEqual([row["name"] for row in rows], ["Salary June"])
        self.assertEqual(info.total, 1)

        rows, _ = list_bank_transactions(
            self.engine,
            self.owner,
            {"account_id": self.account["id"], "type": "WITHDRAWAL"},
        )
        self.assertEqual([row["name"] for row in rows], ["Coffee"])


if __name__ == "__main__":
    unittest.main()
