from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

import strawberry
from fastapi import Header
from graphql import GraphQLError
from strawberry.extensions import MaskErrors
from strawberry.permission import BasePermission
from strawberry.types import ExecutionContext, Info

from fingraph import accounts, bank_transactions, dashboard, exchange, holdings, items, price_history
from fingraph import summaries, transfers, users
from fingraph.config import Settings
from fingraph.context import GraphQLContext
from fingraph.enums import AccountType, CurrencyType, LocationType, TokenType
from fingraph.errors import AppException, ErrorMessage, UnauthorizedException
from fingraph.gql_types import (
    Account,
    Accounts,
    AccountsArgs,
    AccountWithBalance,
    Allocation,
    BankSummary,
    BankTransaction,
    BankTransactions,
    CoinSummaries,
    CoinSummary,
    CoinTransaction,
    CoinTransactions,
    CommonInput,
    CreateAccountInput,
    CreateBankTransactionInput,
    CreateCoinTransactionInput,
    CreateEtcTransactionInput,
    CreateLiabilitiesTransactionInput,
    CreateStockTransactionInput,
    CreateTransferInput,
    Dashboard,
    EtcSummary,
    EtcTransaction,
    EtcTransactions,
    ExchangeRate,
    HoldingSummariesArgs,
    HoldingTransactionsArgs,
    ItemTransactionsArgs,
    LiabilitiesSummary,
    LiabilitiesTransaction,
    LiabilitiesTransactions,
    PasswordInput,
    RebalancingGoal,
    RebalancingGoalInput,
    SignInInput,
    SignUpInput,
    StockSummaries,
    StockSummary,
    StockTransaction,
    StockTransactions,
    Token,
    TransactionsArgs,
    TransferResult,
    UpdateAccountInput,
    UpdateBankSummaryInput,
    UpdateBankTransactionInput,
    UpdateCoinSummaryInput,
    UpdateCoinTransactionInput,
    UpdateEtcSummaryInput,
    UpdateEtcTransactionInput,
    UpdateLiabilitiesSummaryInput,
    UpdateLiabilitiesTransactionInput,
    UpdateStockSummaryInput,
    UpdateStockTransactionInput,
    UpdateUserInput,
    User,
    Users,
    UsersArgs,
    input_data,
)
from fingraph.market_data import StockMarketClient
from fingraph.tokens import TokenPair, parse_bearer

logger = logging.getLogger(__name__)


class IsAuthenticated(BasePermission):
    message = ErrorMessage.MSG_UNAUTHORIZED
    error_extensions = {
        "code": UnauthorizedException.code,
        "status": UnauthorizedException.status_code,
    }

    def has_permission(self, source: Any, info: Info, **kwargs: Any) -> bool:
        return info.context.caller is not None


AUTHENTICATED = [IsAuthenticated]


def _paged(page_type, item_type, result):
    rows, page_info = result
    return page_type(edges=[item_type.from_row(row) for row in rows], page_info=page_info)


def _token(pair: TokenPair) -> Token:
    return Token(access_token=pair.access_token, refresh_token=pair.refresh_token)


def _ctx(info: Info) -> GraphQLContext:
    return info.context


@strawberry.type
class Query:
    # Accounts

    @strawberry.field(permission_classes=AUTHENTICATED)
    async def accounts(self, info: Info, args: AccountsArgs | None = None) -> Accounts:
        ctx = _ctx(info)
        result = await asyncio.to_thread(accounts.list_accounts, ctx.engine, ctx.caller, input_data(args))
        return _paged(Accounts, Account, result)

    @strawberry.field(permission_classes=AUTHENTICATED)
    async def account(self, info: Info, id: int) -> Account:
        ctx = _ctx(info)
        return Account.from_row(await asyncio.to_thread(accounts.get_account, ctx.engine, ctx.caller, id))

    @strawberry.field(permission_classes=AUTHENTICATED, description="Totals per account type in the caller's currency")
    async def allocation(self, info: Info) -> Allocation | None:
        ctx = _ctx(info)
        totals = await asyncio.to_thread(accounts.allocation, ctx.engine, ctx.caller)
        return Allocation(**totals) if totals is not None else None

    @strawberry.field(permission_classes=AUTHENTICATED)
    async def accounts_by_currency(self, info: Info, currency: CurrencyType) -> list[AccountWithBalance]:
        ctx = _ctx(info)
        found = await asyncio.to_thread(transfers.accounts_by_currency, ctx.engine, ctx.caller, {"currency": currency})
        return [AccountWithBalance.from_result(item) for item in found]

    # Summaries

    @strawberry.field(permission_classes=AUTHENTICATED)
    async def stock_summaries(self, info: Info, args: HoldingSummariesArgs) -> StockSummaries:
        ctx = _ctx(info)
        result = await asyncio.to_thread(
            summaries.list_holding_summaries, ctx.engine, ctx.caller, AccountType.STOCK, input_data(args)
        )
        return _paged(StockSummaries, StockSummary, result)

    @strawberry.field(permission_classes=AUTHENTICATED)
    async def coin_summaries(self, info: Info, args: HoldingSummariesArgs) -> CoinSummaries:
        ctx = _ctx(info)
        result = await asyncio.to_thread(
            summaries.list_holding_summaries, ctx.engine, ctx.caller, AccountType.COIN, input_data(args)
        )
        return _paged(CoinSummaries, CoinSummary, result)

    # Transactions

    @strawberry.field(permission_classes=AUTHENTICATED)
    async def bank_transactions(self, info: Info, args: TransactionsArgs) -> BankTransactions:
        ctx = _ctx(info)
        result = await asyncio.to_thread(
            bank_transactions.list_bank_transactions, ctx.engine, ctx.caller, input_data(args)
        )
        return _paged(BankTransactions, BankTransaction, result)

    @strawberry.field(permission_classes=AUTHENTICATED)
    async def bank_transaction(self, info: Info, id: int) -> BankTransaction:
        ctx = _ctx(info)
        row = await asyncio.to_thread(bank_transactions.get_bank_transaction, ctx.engine, ctx.caller, id)
        return BankTransaction.from_row(row)

    @strawberry.field(permission_classes=AUTHENTICATED)
    async def stock_transactions(self, info: Info, args: HoldingTransactionsArgs) -> StockTransactions:
        ctx = _ctx(info)
        result = await asyncio.to_thread(
            holdings.list_holding_transactions, ctx.engine, ctx.caller, holdings.STOCK, input_data(args)
        )
        return _paged(StockTransactions, StockTransaction, result)

    @strawberry.field(permission_classes=AUTHENTICATED)
    async def stock_transaction(self, info: Info, id: int) -> StockTransaction:
        ctx = _ctx(info)
        row = await asyncio.to_thread(holdings.get_holding_transaction, ctx.engine, ctx.caller, holdings.STOCK, id)
        return StockTransaction.from_row(row)

    @strawberry.field(permission_classes=AUTHENTICATED)
    async def coin_transactions(self, info: Info, args: HoldingTransactionsArgs) -> CoinTransactions:
        ctx = _ctx(info)
        result = await asyncio.to_thread(
            holdings.list_holding_transactions, ctx.engine, ctx.caller, holdings.COIN, input_data(args)
        )
        return _paged(CoinTransactions, CoinTransaction, result)

    @strawberry.field(permission_classes=AUTHENTICATED)
    async def coin_transaction(self, info: Info, id: int) -> CoinTransaction:
        ctx = _ctx(info)
        row = await asyncio.to_thread(holdings.get_holding_transaction, ctx.engine, ctx.caller, holdings.COIN, id)
        return CoinTransaction.from_row(row)

    @strawberry.field(permission_classes=AUTHENTICATED)
    async def etc_transactions(self, info: Info, args: ItemTransactionsArgs) -> EtcTransactions:
        ctx = _ctx(info)
        result = await asyncio.to_thread(
            items.list_item_transactions, ctx.engine, ctx.caller, items.ETC, input_data(args)
        )
        return _paged(EtcTransactions, EtcTransaction, result)

    @strawberry.field(permission_classes=AUTHENTICATED)
    async def etc_transaction(self, info: Info, id: int) -> EtcTransaction:
        ctx = _ctx(info)
        row = await asyncio.to_thread(items.get_item_transaction, ctx.engine, ctx.caller, items.ETC, id)
        return EtcTransaction.from_row(row)

    @strawberry.field(permission_classes=AUTHENTICATED)
    async def liabilities_transactions(self, info: Info, args: ItemTransactionsArgs) -> LiabilitiesTransactions:
        ctx = _ctx(info)
        result = await asyncio.to_thread(
            items.list_item_transactions, ctx.engine, ctx.caller, items.LIABILITIES, input_data(args)
        )
        return _paged(LiabilitiesTransactions, LiabilitiesTransaction, result)

    @strawberry.field(permission_classes=AUTHENTICATED)
    async def liabilities_transaction(self, info: Info, id: int) -> LiabilitiesTransaction:
        ctx = _ctx(info)
        row = await asyncio.to_thread(items.get_item_transaction, ctx.engine, ctx.caller, items.LIABILITIES, id)
        return LiabilitiesTransaction.from_row(row)

    # Exchange rates and prices

    @strawberry.field(permission_classes=AUTHENTICATED)
    async def exchange_rate(self, info: Info) -> ExchangeRate | None:
        row = await asyncio.to_thread(exchange.latest_exchange_rate, _ctx(info).engine)
        return ExchangeRate.from_row(row) if row else None

    @strawberry.field(description="Fetch and store the latest exchange rates")
    async def update_exchange(self, info: Info) -> str:
        ctx = _ctx(info)
        return await asyncio.to_thread(exchange.update_exchange, ctx.engine, ctx.settings)

    @strawberry.field(description="Fetch and store the latest coin prices")
    async def update_coin_price(self, info: Info) -> str:
        ctx = _ctx(info)
        return await asyncio.to_thread(price_history.update_coin_price, ctx.engine, ctx.settings)

    @strawberry.field(description="Fetch and store the latest stock prices")
    async def update_stock_price(self, info: Info) -> str:
        ctx = _ctx(info)
        return await asyncio.to_thread(price_history.update_stock_price, ctx.engine, ctx.settings, ctx.stock_client)

    # Dashboard

    @strawberry.field(permission_classes=AUTHENTICATED)
    async def dashboard(self, info: Info) -> Dashboard:
        ctx = _ctx(info)
        return Dashboard.from_result(await asyncio.to_thread(dashboard.dashboard, ctx.engine, ctx.caller))

    @strawberry.field(permission_classes=AUTHENTICATED)
    async def rebalancing_goals(self, info: Info) -> list[RebalancingGoal]:
        ctx = _ctx(info)
        rows = await asyncio.to_thread(dashboard.list_rebalancing_goals, ctx.engine, ctx.caller)
        return [RebalancingGoal.from_row(row) for row in rows]

    # Users

    @strawberry.field(permission_classes=AUTHENTICATED)
    async def users(self, info: Info, args: UsersArgs | None = None) -> Users:
        ctx = _ctx(info)
        return _paged(Users, User, await asyncio.to_thread(users.list_users, ctx.engine, ctx.caller, input_data(args)))

    @strawberry.field(permission_classes=AUTHENTICATED)
    async def me(self, info: Info) -> User:
        ctx = _ctx(info)
        return User.from_row(await asyncio.to_thread(users.me, ctx.engine, ctx.caller))

    @strawberry.field(permission_classes=AUTHENTICATED)
    async def user(self, info: Info, id: int) -> User:
        ctx = _ctx(info)
        return User.from_row(await asyncio.to_thread(users.get_user, ctx.engine, ctx.caller, id))


@strawberry.type
class Mutation:
    # Accounts and summaries

    @strawberry.mutation(permission_classes=AUTHENTICATED)
    async def create_account(self, info: Info, input: CreateAccountInput) -> Account:
        ctx = _ctx(info)
        return Account.from_row(
            await asyncio.to_thread(accounts.create_account, ctx.engine, ctx.caller, input_data(input))
        )

    @strawberry.mutation(permission_classes=AUTHENTICATED)
    async def update_account(self, info: Info, input: UpdateAccountInput) -> Account:
        ctx = _ctx(info)
        return Account.from_row(
            await asyncio.to_thread(accounts.update_account, ctx.engine, ctx.caller, input_data(input))
        )

    @strawberry.mutation(permission_classes=AUTHENTICATED)
    async def update_bank_summary(self, info: Info, input: UpdateBankSummaryInput) -> BankSummary:
        ctx = _ctx(info)
        row = await asyncio.to_thread(summaries.update_bank_summary, ctx.engine, ctx.caller, input_data(input))
        return BankSummary.from_row(row)

    @strawberry.mutation(permission_classes=AUTHENTICATED, description="Returns null when the holding was deleted")
    async def update_stock_summary(self, info: Info, input: UpdateStockSummaryInput) -> StockSummary | None:
        ctx = _ctx(info)
        row = await asyncio.to_thread(
            summaries.update_holding_summary, ctx.engine, ctx.caller, AccountType.STOCK, input_data(input)
        )
        return StockSummary.from_row(row) if row else None

    @strawberry.mutation(permission_classes=AUTHENTICATED, description="Returns null when the holding was deleted")
    async def update_coin_summary(self, info: Info, input: UpdateCoinSummaryInput) -> CoinSummary | None:
        ctx = _ctx(info)
        row = await asyncio.to_thread(
            summaries.update_holding_summary, ctx.engine, ctx.caller, AccountType.COIN, input_data(input)
        )
        return CoinSummary.from_row(row) if row else None

    @strawberry.mutation(permission_classes=AUTHENTICATED)
    async def update_etc_summary(self, info: Info, input: UpdateEtcSummaryInput) -> EtcSummary:
        ctx = _ctx(info)
        row = await asyncio.to_thread(summaries.update_etc_summary, ctx.engine, ctx.caller, input_data(input))
        return EtcSummary.from_row(row)

    @strawberry.mutation(permission_classes=AUTHENTICATED)
    async def update_liabilities_summary(self, info: Info, input: UpdateLiabilitiesSummaryInput) -> LiabilitiesSummary:
        ctx = _ctx(info)
        row = await asyncio.to_thread(summaries.update_liabilities_summary, ctx.engine, ctx.caller, input_data(input))
        return LiabilitiesSummary.from_row(row)

    # Transactions

    @strawberry.mutation(permission_classes=AUTHENTICATED)
    async def create_bank_transaction(self, info: Info, input: CreateBankTransactionInput) -> BankTransaction:
        ctx = _ctx(info)
        row = await asyncio.to_thread(
            bank_transactions.create_bank_transaction, ctx.engine, ctx.caller, input_data(input)
        )
        return BankTransaction.from_row(row)

    @strawberry.mutation(permission_classes=AUTHENTICATED)
    async def update_bank_transaction(self, info: Info, input: UpdateBankTransactionInput) -> BankTransaction:
        ctx = _ctx(info)
        row = await asyncio.to_thread(
            bank_transactions.update_bank_transaction, ctx.engine, ctx.caller, input_data(input)
        )
        return BankTransaction.from_row(row)

    @strawberry.mutation(permission_classes=AUTHENTICATED)
    async def create_stock_transaction(self, info: Info, input: CreateStockTransactionInput) -> StockTransaction:
        ctx = _ctx(info)
        row = await asyncio.to_thread(
            holdings.create_holding_transaction,
            ctx.engine,
            ctx.caller,
            holdings.STOCK,
            input_data(input),
            ctx.stock_client,
        )
        return StockTransaction.from_row(row)

    @strawberry.mutation(permission_classes=AUTHENTICATED)
    async def update_stock_transaction(self, info: Info, input: UpdateStockTransactionInput) -> StockTransaction:
        ctx = _ctx(info)
        row = await asyncio.to_thread(
            holdings.update_holding_transaction, ctx.engine, ctx.caller, holdings.STOCK, input_data(input)
        )
        return StockTransaction.from_row(row)

    @strawberry.mutation(permission_classes=AUTHENTICATED)
    async def create_coin_transaction(self, info: Info, input: CreateCoinTransactionInput) -> CoinTransaction:
        ctx = _ctx(info)
        row = await asyncio.to_thread(
            holdings.create_holding_transaction, ctx.engine, ctx.caller, holdings.COIN, input_data(input)
        )
        return CoinTransaction.from_row(row)

    @strawberry.mutation(permission_classes=AUTHENTICATED)
    async def update_coin_transaction(self, info: Info, input: UpdateCoinTransactionInput) -> CoinTransaction:
        ctx = _ctx(info)
        row = await asyncio.to_thread(
            holdings.update_holding_transaction, ctx.engine, ctx.caller, holdings.COIN, input_data(input)
        )
        return CoinTransaction.from_row(row)

    @strawberry.mutation(permission_classes=AUTHENTICATED)
    async def create_etc_transaction(self, info: Info, input: CreateEtcTransactionInput) -> EtcTransaction:
        ctx = _ctx(info)
        row = await asyncio.to_thread(
            items.create_item_transaction, ctx.engine, ctx.caller, items.ETC, input_data(input)
        )
        return EtcTransaction.from_row(row)

    @strawberry.mutation(permission_classes=AUTHENTICATED)
    async def update_etc_transaction(self, info: Info, input: UpdateEtcTransactionInput) -> EtcTransaction:
        ctx = _ctx(info)
        row = await asyncio.to_thread(
            items.update_item_transaction, ctx.engine, ctx.caller, items.ETC, input_data(input)
        )
        return EtcTransaction.from_row(row)

    @strawberry.mutation(permission_classes=AUTHENTICATED)
    async def create_liabilities_transaction(
        self, info: Info, input: CreateLiabilitiesTransactionInput
    ) -> LiabilitiesTransaction:
        ctx = _ctx(info)
        row = await asyncio.to_thread(
            items.create_item_transaction, ctx.engine, ctx.caller, items.LIABILITIES, input_data(input)
        )
        return LiabilitiesTransaction.from_row(row)

    @strawberry.mutation(permission_classes=AUTHENTICATED)
    async def update_liabilities_transaction(
        self, info: Info, input: UpdateLiabilitiesTransactionInput
    ) -> LiabilitiesTransaction:
        ctx = _ctx(info)
        row = await asyncio.to_thread(
            items.update_item_transaction, ctx.engine, ctx.caller, items.LIABILITIES, input_data(input)
        )
        return LiabilitiesTransaction.from_row(row)

    @strawberry.mutation(permission_classes=AUTHENTICATED)
    async def transfer_balance(self, info: Info, input: CreateTransferInput) -> TransferResult:
        ctx = _ctx(info)
        result = await asyncio.to_thread(transfers.transfer_balance, ctx.engine, ctx.caller, input_data(input))
        return TransferResult.from_result(result)

    # Dashboard

    @strawberry.mutation(permission_classes=AUTHENTICATED)
    async def update_rebalancing_target(self, info: Info, input: RebalancingGoalInput) -> RebalancingGoal:
        ctx = _ctx(info)
        row = await asyncio.to_thread(
            dashboard.update_rebalancing_target, ctx.engine, ctx.caller, input_data(input)
        )
        return RebalancingGoal.from_row(row)

    # Users

    @strawberry.mutation
    async def sign_up(self, info: Info, input: SignUpInput) -> Token:
        ctx = _ctx(info)
        return _token(await asyncio.to_thread(users.sign_up, ctx.engine, ctx.settings, input_data(input)))

    @strawberry.mutation
    async def sign_in(self, info: Info, input: SignInInput) -> Token:
        ctx = _ctx(info)
        return _token(await asyncio.to_thread(users.sign_in, ctx.engine, ctx.settings, input_data(input)))

    @strawberry.mutation
    async def refresh_token(self, info: Info, input: CommonInput) -> Token:
        ctx = _ctx(info)
        return _token(await asyncio.to_thread(users.refresh_token, ctx.engine, ctx.settings, input_data(input)))

    @strawberry.mutation(permission_classes=AUTHENTICATED)
    async def update_user(self, info: Info, input: UpdateUserInput) -> User:
        ctx = _ctx(info)
        return User.from_row(await asyncio.to_thread(users.update_user, ctx.engine, ctx.caller, input_data(input)))

    @strawberry.mutation(permission_classes=AUTHENTICATED)
    async def change_password(self, info: Info, input: PasswordInput) -> bool:
        ctx = _ctx(info)
        return await asyncio.to_thread(users.change_password, ctx.engine, ctx.caller, input_data(input))


def should_mask_error(error: GraphQLError) -> bool:
    original = error.original_error
    return original is not None and not isinstance(original, (AppException, GraphQLError))


class LoggingSchema(strawberry.Schema):
    def process_errors(
        self,
        errors: list[GraphQLError],
        execution_context: ExecutionContext | None = None,
    ) -> None:
        for error in errors:
            original = error.original_error
            if isinstance(original, AppException):
                logger.warning("GraphQL %s at %s: %s", original.code, error.path, original.message)
            elif original is not None:
                logger.error("Unhandled error at %s", error.path, exc_info=original)
            else:
                logger.info("GraphQL error: %s", error.message)


def create_schema() -> strawberry.Schema:
    return LoggingSchema(
        query=Query,
        mutation=Mutation,
        types=[LocationType, TokenType],
        extensions=[
            MaskErrors(should_mask_error=should_mask_error, error_message=ErrorMessage.MSG_INTERNAL_SERVER_ERROR),
        ],
    )


def make_context_getter(
    engine,
    settings: Settings,
    stock_client: StockMarketClient | None = None,
) -> Callable:
    async def get_context(authorization: str | None = Header(None)) -> GraphQLContext:
        return GraphQLContext(engine, settings, parse_bearer(authorization), stock_client)

    return get_context
