import threading
import unittest
from dataclasses import replace
from decimal import Decimal
from unittest.mock import patch

from graphql import GraphQLError
from sqlalchemy import insert

from fingraph import enums
from fingraph.context import GraphQLContext
from fingraph.db import stock_price_history
from fingraph.errors import ErrorMessage, ValidationException
from fingraph.exchange import LOCAL_SKIP_MESSAGE
from fingraph.schema import create_schema, should_mask_error
from fingraph.tests.support import PASSWORD, SETTINGS, make_engine, seed_rates

SIGN_UP = """
mutation SignUp($input: SignUpInput!) {
  signUp(input: $input) { accessToken refreshToken }
}
"""

CREATE_ACCOUNT = """
mutation CreateAccount($input: CreateAccountInput!) {
  createAccount(input: $input) {
    id
    type
    currency
    nickName
    bankSummary { name balance }
    stockSummary { type amount }
  }
}
"""

CREATE_STOCK_TRANSACTION = """
mutation Buy($input: CreateStockTransactionInput!) {
  createStockTransaction(input: $input) { id symbol quantity currency }
}
"""


class SchemaTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.engine = make_engine()
        self.schema = create_schema()

    async def execute(self, query: str, variables: dict | None = None, token: str | None = None, settings=SETTINGS):
        context = GraphQLContext(self.engine, settings, token)
        return await self.schema.execute(query, variable_values=variables, context_value=context)

    async def sign_up(self, email: str = "jane@example.com") -> str:
        result = await self.execute(SIGN_UP, {"input": {"email": email, "password": PASSWORD}})
        self.assertIsNone(result.errors)
        return result.data["signUp"]["accessToken"]

    async def test_sign_up_then_me(self) -> None:
        token = await self.sign_up()

        result = await self.execute("{ me { email role state currency } }", token=token)

        self.assertIsNone(result.errors)
        self.assertEqual(
            result.data["me"],
            {"email": "jane@example.com", "role": "USER", "state": "ACTIVE", "currency": "KRW"},
        )

    async def test_protected_fields_require_a_token(self) -> None:
        result = await self.execute("{ accounts { pageInfo { total } } }")

        [error] = result.errors
        self.assertEqual(error.message, ErrorMessage.MSG_UNAUTHORIZED)
        self.assertEqual(error.extensions["code"], "UNAUTHORIZED")

    async def test_invalid_token_is_reported(self) -> None:
        result = await self.execute("{ me { id } }", token="not-a-jwt")

        [error] = result.errors
        self.assertEqual(error.message, ErrorMessage.MSG_INVALID_TOKEN)
        self.assertEqual(error.extensions["code"], "UNAUTHORIZED")

    async def test_create_and_list_accounts(self) -> None:
        token = await self.sign_up()

        created = await self.execute(
            CREATE_ACCOUNT,
            {"input": {"type": "BANK", "currency": "USD", "bankSummary": {"name": "Checking"}}},
            token=token,
        )
        listed = await self.execute(
            """
            query Accounts($args: AccountsArgs) {
              accounts(args: $args) { pageInfo { total hasNextPage } edges { nickName type } }
            }
            """,
            {"args": {"type": "BANK", "sortBy": [{"field": "createdAt", "direction": False}]}},
            token=token,
        )

        self.assertIsNone(created.errors)
        account = created.data["createAccount"]
        self.assertEqual((account["type"], account["currency"], account["nickName"]), ("BANK", "USD", "Checking"))
        self.assertEqual(account["bankSummary"]["name"], "Checking")
        self.assertEqual(Decimal(account["bankSummary"]["balance"]), Decimal("0"))
        self.assertIsNone(account["stockSummary"])
        self.assertIsNone(listed.errors)
        self.assertEqual(listed.data["accounts"]["pageInfo"], {"total": 1, "hasNextPage": False})
        self.assertEqual(listed.data["accounts"]["edges"], [{"nickName": "Checking", "type": "BANK"}])

    async def test_update_account_input_has_no_type(self) -> None:
        result = await self.execute('{ __type(name: "UpdateAccountInput") { inputFields { name } } }')

        names = {field["name"] for field in result.data["__type"]["inputFields"]}
        self.assertIn("nickName", names)
        self.assertIn("isDelete", names)
        self.assertNotIn("type", names)

    async def test_service_errors_carry_extensions(self) -> None:
        token = await self.sign_up()
        created = await self.execute(
            CREATE_ACCOUNT,
            {"input": {"type": "STOCK", "currency": "USD", "stockSummary": {"name": "Broker"}}},
            token=token,
        )

        result = await self.execute(
            """
            mutation Deposit($input: CreateBankTransactionInput!) {
              createBankTransaction(input: $input) { id }
            }
            """,
            {"input": {"accountId": int(created.data["createAccount"]["id"]), "amount": "10", "type": "DEPOSIT"}},
            token=token,
        )

        [error] = result.errors
        self.assertEqual(error.message, ErrorMessage.MSG_NOT_BANK_ACCOUNT)
        self.assertEqual(error.extensions["code"], "VALIDATION_ERROR")
        self.assertEqual(error.extensions["status"], 400)

    async def test_holding_valuation_and_dashboard(self) -> None:
        token = await self.sign_up()
        seed_rates(self.engine, USD="1", KRW="1000")
        created = await self.execute(
            CREATE_ACCOUNT,
            {"input": {"type": "STOCK", "currency": "USD", "stockSummary": {"name": "Broker"}}},
            token=token,
        )
        account_id = int(created.data["createAccount"]["id"])
        bought = await self.execute(
            CREATE_STOCK_TRANSACTION,
            {"input": {"accountId": account_id, "symbol": "aapl", "quantity": "2", "amount": "300", "type": "DEPOSIT"}},
            token=token,
        )
        self.assertIsNone(bought.errors)
        self.assertEqual(bought.data["createStockTransaction"]["symbol"], "AAPL")
        with self.engine.begin() as conn:
            conn.execute(insert(stock_price_history).values(symbol="AAPL", currency="USD", base=Decimal("200")))

        summaries = await self.execute(
            """
            query Holdings($args: HoldingSummariesArgs!) {
              stockSummaries(args: $args) {
                edges { symbol pricePerShare currentAmount earned currentAmountInDefaultCurrency }
              }
            }
            """,
            {"args": {"accountId": account_id}},
            token=token,
        )
        account = await self.execute(
            f"{{ account(id: {account_id}) {{ stockSummary {{ totalHoldingValue totalAccountValue }} }} }}",
            token=token,
        )
        board = await self.execute(
            "{ dashboard { assetTotalAmount details { name unrealizedPnL unrealizedPnLPercentage } } }",
            token=token,
        )

        self.assertIsNone(summaries.errors)
        [holding] = summaries.data["stockSummaries"]["edges"]
        self.assertEqual(Decimal(holding["pricePerShare"]), Decimal("150"))
        self.assertEqual(Decimal(holding["currentAmount"]), Decimal("400"))
        self.assertEqual(Decimal(holding["earned"]), Decimal("100"))
        self.assertEqual(Decimal(holding["currentAmountInDefaultCurrency"]), Decimal("400000"))
        self.assertIsNone(account.errors)
        cash = account.data["account"]["stockSummary"]
        self.assertEqual(Decimal(cash["totalHoldingValue"]), Decimal("400"))
        self.assertEqual(Decimal(cash["totalAccountValue"]), Decimal("400"))
        self.assertIsNone(board.errors)
        self.assertEqual(Decimal(board.data["dashboard"]["assetTotalAmount"]), Decimal("400000"))
        details = {detail["name"]: detail for detail in board.data["dashboard"]["details"]}
        self.assertEqual(Decimal(details["AAPL"]["unrealizedPnL"]), Decimal("100"))

    async def test_refresh_fields_are_public(self) -> None:
        result = await self.execute("{ updateExchange }", settings=replace(SETTINGS, environment="local"))

        self.assertIsNone(result.errors)
        self.assertEqual(result.data["updateExchange"], LOCAL_SKIP_MESSAGE)

    async def test_refresh_runs_off_the_event_loop(self) -> None:
        threads = []

        def record(engine, settings):
            threads.append(threading.get_ident())
            return "stored"

        with patch("fingraph.exchange.update_exchange", side_effect=record):
            result = await self.execute("{ updateExchange }")

        self.assertIsNone(result.errors)
        self.assertEqual(result.data["updateExchange"], "stored")
        self.assertEqual(len(threads), 1)
        self.assertNotEqual(threads[0], threading.get_ident())

    async def test_rebalancing_target_round_trip(self) -> None:
        token = await self.sign_up()
        upsert = """
        mutation Target($input: RebalancingGoalInput!) {
          updateRebalancingTarget(input: $input) { id goalType referenceId targetRatio }
        }
        """

        first = await self.execute(upsert, {"input": {"goalType": "STOCK", "targetRatio": "40"}}, token=token)
        again = await self.execute(upsert, {"input": {"goalType": "STOCK", "targetRatio": "55.5"}}, token=token)
        listed = await self.execute("{ rebalancingGoals { id goalType targetRatio } }", token=token)

        self.assertIsNone(first.errors)
        self.assertIsNone(again.errors)
        goal = again.data["updateRebalancingTarget"]
        self.assertEqual(goal["id"], first.data["updateRebalancingTarget"]["id"])
        self.assertEqual(goal["referenceId"], "0")
        self.assertIsNone(listed.errors)
        [listed_goal] = listed.data["rebalancingGoals"]
        self.assertEqual((listed_goal["id"], listed_goal["goalType"]), (goal["id"], "STOCK"))
        self.assertEqual(Decimal(listed_goal["targetRatio"]), Decimal("55.5"))

    async def test_explicit_null_clears_optional_fields(self) -> None:
        token = await self.sign_up()
        created = await self.execute(
            CREATE_ACCOUNT,
            {"input": {"type": "BANK", "note": "salary", "bankSummary": {"name": "Checking"}}},
            token=token,
        )
        account_id = created.data["createAccount"]["id"]
        update_account = """
        mutation Update($input: UpdateAccountInput!) {
          updateAccount(input: $input) { nickName note currency }
        }
        """

        renamed = await self.execute(update_account, {"input": {"id": account_id, "nickName": "Main"}}, token=token)
        cleared = await self.execute(
            update_account, {"input": {"id": account_id, "note": None, "currency": None}}, token=token
        )

        self.assertIsNone(renamed.errors)
        self.assertEqual(renamed.data["updateAccount"], {"nickName": "Main", "note": "salary", "currency": "KRW"})
        self.assertIsNone(cleared.errors)
        self.assertEqual(cleared.data["updateAccount"], {"nickName": "Main", "note": None, "currency": "KRW"})


class SchemaDefinitionTests(unittest.TestCase):
    def test_every_enum_is_exposed(self) -> None:
        sdl = create_schema().as_str()
        enum_types = [
            value
            for value in vars(enums).values()
            if isinstance(value, type) and issubclass(value, enums.ValidatedEnum) and value is not enums.ValidatedEnum
        ]

        self.assertIn(enums.LocationType, enum_types)
        for enum_type in enum_types:
            with self.subTest(enum=enum_type.__name__):
                self.assertIn(f"enum {enum_type.__name__} {{", sdl)


class MaskErrorsTests(unittest.TestCase):
    def test_only_unexpected_errors_are_masked(self) -> None:
        self.assertTrue(should_mask_error(GraphQLError("boom", original_error=RuntimeError("boom"))))
        self.assertFalse(should_mask_error(GraphQLError("bad", original_error=ValidationException("bad"))))
        self.assertFalse(should_mask_error(GraphQLError("syntax")))


if __name__ == "__main__":
    unittest.main()
