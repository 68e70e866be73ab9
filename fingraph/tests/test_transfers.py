import unittest
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select

from fingraph.bank_transactions import create_bank_transaction
from fingraph.db import bank_summaries, stock_summaries, stock_transactions
from fingraph.enums import AccountType, TransactionType
from fingraph.errors import ErrorMessage, ForbiddenException, ValidationException
from fingraph.transfers import accounts_by_currency, transfer_balance
from fingraph.tests.support import bank_account, create_user, item_account, make_engine, stock_account


class TransferTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = make_engine()
        self.owner = create_user(self.engine)
        self.checking = bank_account(self.engine, self.owner, name="Checking", currency="USD")
        self.savings = bank_account(self.engine, self.owner, name="Savings", currency="USD")
        create_bank_transaction(
            self.engine, self.owner, {"account_id": self.checking["id"], "amount": "500", "type": "DEPOSIT"}
        )

    def _balance(self, account_id: int) -> Decimal:
        with self.engine.begin() as conn:
            return conn.execute(
                select(bank_summaries.c.balance).where(bank_summaries.c.account_id == account_id)
            ).scalar_one()

    def _transfer(self, caller=None, **values):
        data = {"from_account_id": self.checking["id"], "to_account_id": self.savings["id"], **values}
        return transfer_balance(self.engine, caller or self.owner, data)

    def test_moves_balance_between_banks(self) -> None:
        when = datetime(2024, 7, 1, 9, 30)

        result = self._transfer(amount="120", transaction_date=when)

        self.assertTrue(result.success)
        self.assertEqual(result.message, ErrorMessage.MSG_TRANSFER_COMPLETED)
        self.assertEqual(self._balance(self.checking["id"]), Decimal("380"))
        self.assertEqual(self._balance(self.savings["id"]), Decimal("120"))
        self.assertIs(result.from_transaction.type, TransactionType.WITHDRAWAL)
        self.assertIs(result.to_transaction.type, TransactionType.DEPOSIT)
        self.assertEqual(result.from_transaction.description, "Transfer to Savings")
        self.assertEqual(result.to_transaction.description, "Transfer from Checking")
        self.assertEqual(result.to_transaction.transaction_date, when)

    def test_description_names_both_legs(self) -> None:
        result = self._transfer(amount="10", description="  Rent  ")

        self.assertEqual(result.from_transaction.description, "Rent")
        self.assertEqual(result.to_transaction.description, "Rent")

    def test_bank_to_brokerage_funds_cash_row(self) -> None:
        brokerage = stock_account(self.engine, self.owner, currency="USD")

        result = self._transfer(amount="200", to_account_id=brokerage["id"])

        with self.engine.begin() as conn:
            cash = conn.execute(
                select(stock_summaries.c.amount).where(
                    stock_summaries.c.account_id == brokerage["id"], stock_summaries.c.type == "CASH"
                )
            ).scalar_one()
            leg = conn.execute(
                select(stock_transactions).where(stock_transactions.c.id == result.to_transaction.id)
            ).mappings().one()
        self.assertEqual(cash, Decimal("200"))
        self.assertEqual(leg["symbol"], "TRANSFER")
        self.assertEqual(leg["quantity"], Decimal("0"))

    def test_insufficient_balance_changes_nothing(self) -> None:
        with self.assertRaises(ValidationException) as ctx:
            self._transfer(amount="500.01")

        self.assertEqual(ctx.exception.message, ErrorMessage.MSG_INSUFFICIENT_BALANCE)
        self.assertEqual(self._balance(self.checking["id"]), Decimal("500"))

    def test_currency_must_match(self) -> None:
        won = bank_account(self.engine, self.owner, name="Won", currency="KRW")

        with self.assertRaises(ValidationException) as ctx:
            self._transfer(amount="1", to_account_id=won["id"])
        self.assertEqual(ctx.exception.message, ErrorMessage.MSG_CURRENCY_MISMATCH)

    def test_non_cash_accounts_are_rejected(self) -> None:
        stash = item_account(self.engine, self.owner, "ETC", "Stash", currency="USD")

        with self.assertRaises(ValidationException) as ctx:
            self._transfer(amount="1", to_account_id=stash["id"])
        self.assertEqual(ctx.exception.message, ErrorMessage.MSG_NOT_CASH_TYPE_SUMMARY)

    def test_missing_account(self) -> None:
        with self.assertRaises(ValidationException) as ctx:
            self._transfer(amount="1", to_account_id=999)
        self.assertEqual(ctx.exception.message, ErrorMessage.MSG_NOT_FOUND_ACCOUNT)

    def test_other_users_account_is_forbidden(self) -> None:
        stranger = create_user(self.engine, email="stranger@example.com")

        with self.assertRaises(ForbiddenException):
            self._transfer(caller=stranger, amount="1")


class AccountsByCurrencyTests(unittest.TestCase):
    def test_lists_cash_accounts_richest_first(self) -> None:
        engine = make_engine()
        owner = create_user(engine)
        small = bank_account(engine, owner, name="Small", currency="USD")
        large = bank_account(engine, owner, name="Large", currency="USD")
        bank_account(engine, owner, name="Won", currency="KRW")
        brokerage = stock_account(engine, owner, currency="USD")
        item_account(engine, owner, "ETC", "Stash", currency="USD")
        for account, amount in ((small, "5"), (large, "50")):
            create_bank_transaction(engine, owner, {"account_id": account["id"], "amount": amount, "type": "DEPOSIT"})

        result = accounts_by_currency(engine, owner, {"currency": "USD"})

        self.assertEqual([item.id for item in result], [large["id"], small["id"], brokerage["id"]])
        self.assertEqual(result[0].balance, Decimal("50"))
        self.assertIs(result[2].type, AccountType.STOCK)


if __name__ == "__main__":
    unittest.main()
