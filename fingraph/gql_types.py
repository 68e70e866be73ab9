"""GraphQL object and input types.

Output types are built from table rows or service dataclasses with
``from_row``; computed fields read prices and exchange rates through the
request context. Input types are generated from the pydantic payloads so
that a field omitted from a payload is never exposed in the schema either.
"""
from __future__ import annotations

import dataclasses
import functools
from datetime import datetime
from decimal import Decimal
from typing import Generic, Mapping, TypeVar

import strawberry
from strawberry.experimental.pydantic import input as strawberry_pydantic_input
from strawberry.scalars import JSON
from strawberry.types import Info

from fingraph import payloads
from fingraph.currency_conversion import ZERO
from fingraph.dashboard import Dashboard as DashboardResult
from fingraph.enums import AccountType, SummaryType, TransactionType, UserRole, UserState
from fingraph.pagination import PageInfo
from fingraph.summaries import HoldingValuation, in_currency, total_holdings_value, value_holding
from fingraph.transfers import AccountWithBalance as AccountWithBalanceResult
from fingraph.transfers import TransferResult as TransferResultValue
from fingraph.transfers import TransferTransaction as TransferTransactionValue

T = TypeVar("T")


def build(cls, row: Mapping, **overrides):
    """Instantiate a strawberry type from the matching keys of ``row``."""
    values = {
        field.name: row[field.name]
        for field in dataclasses.fields(cls)
        if field.init and field.name in row and field.name not in overrides
    }
    return cls(**values, **overrides)


def pydantic_input(model, **options):
    """Pydantic-backed input type that remembers which fields the client sent."""
    decorate = strawberry_pydantic_input(model, **options)

    def wrap(cls):
        cls = decorate(cls)
        init = cls.__init__

        @functools.wraps(init)
        def __init__(self, **values):
            init(self, **values)
            self._sent_fields = frozenset(values)

        cls.__init__ = __init__
        return cls

    return wrap


def input_data(value) -> dict:
    """Plain dict of the fields the client sent.

    An explicit null is kept so that optional columns can be cleared; fields
    left out fall back to the payload defaults.
    """
    if value is None:
        return {}
    sent = getattr(value, "_sent_fields", None)
    return {
        field.name: _plain(getattr(value, field.name))
        for field in dataclasses.fields(value)
        if sent is None or field.name in sent
    }


def _plain(value):
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return input_data(value)
    if isinstance(value, list):
        return [_plain(item) for item in value]
    return value


@strawberry.type
class Paginated(Generic[T]):
    edges: list[T]
    page_info: PageInfo


# Inputs


@pydantic_input(model=payloads.SortPayload, all_fields=True, name="SortInput")
class SortInput:
    pass


@pydantic_input(model=payloads.CreateBankSummaryPayload, all_fields=True, name="CreateBankSummaryInput")
class CreateBankSummaryInput:
    pass


@pydantic_input(model=payloads.CreateStockSummaryPayload, all_fields=True, name="CreateStockSummaryInput")
class CreateStockSummaryInput:
    pass


@pydantic_input(model=payloads.CreateCoinSummaryPayload, all_fields=True, name="CreateCoinSummaryInput")
class CreateCoinSummaryInput:
    pass


@pydantic_input(model=payloads.CreateAccountPayload, all_fields=True, name="CreateAccountInput")
class CreateAccountInput:
    pass


@pydantic_input(model=payloads.UpdateAccountPayload, all_fields=True, name="UpdateAccountInput")
class UpdateAccountInput:
    pass


@pydantic_input(model=payloads.AccountsArgsPayload, all_fields=True, name="AccountsArgs")
class AccountsArgs:
    pass


@pydantic_input(model=payloads.UpdateBankSummaryPayload, all_fields=True, name="UpdateBankSummaryInput")
class UpdateBankSummaryInput:
    pass


@pydantic_input(model=payloads.UpdateHoldingSummaryPayload, all_fields=True, name="UpdateStockSummaryInput")
class UpdateStockSummaryInput:
    pass


@pydantic_input(model=payloads.UpdateHoldingSummaryPayload, all_fields=True, name="UpdateCoinSummaryInput")
class UpdateCoinSummaryInput:
    pass


@pydantic_input(model=payloads.HoldingSummariesArgsPayload, all_fields=True, name="HoldingSummariesArgs")
class HoldingSummariesArgs:
    pass


@pydantic_input(model=payloads.UpdateEtcSummaryPayload, all_fields=True, name="UpdateEtcSummaryInput")
class UpdateEtcSummaryInput:
    pass


@pydantic_input(
    model=payloads.UpdateLiabilitiesSummaryPayload, all_fields=True, name="UpdateLiabilitiesSummaryInput"
)
class UpdateLiabilitiesSummaryInput:
    pass


@pydantic_input(model=payloads.CreateBankTransactionPayload, all_fields=True, name="CreateBankTransactionInput")
class CreateBankTransactionInput:
    pass


@pydantic_input(model=payloads.UpdateBankTransactionPayload, all_fields=True, name="UpdateBankTransactionInput")
class UpdateBankTransactionInput:
    pass


@pydantic_input(model=payloads.TransactionsArgsPayload, all_fields=True, name="TransactionsArgs")
class TransactionsArgs:
    pass


@pydantic_input(model=payloads.HoldingTransactionsArgsPayload, all_fields=True, name="HoldingTransactionsArgs")
class HoldingTransactionsArgs:
    pass


@pydantic_input(
    model=payloads.CreateHoldingTransactionPayload, all_fields=True, name="CreateStockTransactionInput"
)
class CreateStockTransactionInput:
    pass


@pydantic_input(
    model=payloads.UpdateHoldingTransactionPayload, all_fields=True, name="UpdateStockTransactionInput"
)
class UpdateStockTransactionInput:
    pass


@pydantic_input(model=payloads.CreateHoldingTransactionPayload, all_fields=True, name="CreateCoinTransactionInput")
class CreateCoinTransactionInput:
    pass


@pydantic_input(model=payloads.UpdateHoldingTransactionPayload, all_fields=True, name="UpdateCoinTransactionInput")
class UpdateCoinTransactionInput:
    pass


@pydantic_input(model=payloads.CreateEtcTransactionPayload, all_fields=True, name="CreateEtcTransactionInput")
class CreateEtcTransactionInput:
    pass


@pydantic_input(model=payloads.UpdateEtcTransactionPayload, all_fields=True, name="UpdateEtcTransactionInput")
class UpdateEtcTransactionInput:
    pass


@pydantic_input(
    model=payloads.CreateLiabilitiesTransactionPayload, all_fields=True, name="CreateLiabilitiesTransactionInput"
)
class CreateLiabilitiesTransactionInput:
    pass


@pydantic_input(
    model=payloads.UpdateLiabilitiesTransactionPayload, all_fields=True, name="UpdateLiabilitiesTransactionInput"
)
class UpdateLiabilitiesTransactionInput:
    pass


@pydantic_input(model=payloads.ItemTransactionsArgsPayload, all_fields=True, name="ItemTransactionsArgs")
class ItemTransactionsArgs:
    pass


@pydantic_input(model=payloads.CreateTransferPayload, all_fields=True, name="CreateTransferInput")
class CreateTransferInput:
    pass


@pydantic_input(model=payloads.CreateRebalancingGoalPayload, all_fields=True, name="RebalancingGoalInput")
class RebalancingGoalInput:
    pass


@pydantic_input(model=payloads.SignUpPayload, all_fields=True, name="SignUpInput")
class SignUpInput:
    pass


@pydantic_input(model=payloads.SignInPayload, all_fields=True, name="SignInInput")
class SignInInput:
    pass


@pydantic_input(model=payloads.UpdateUserPayload, all_fields=True, name="UpdateUserInput")
class UpdateUserInput:
    pass


@pydantic_input(model=payloads.UsersArgsPayload, all_fields=True, name="UsersArgs")
class UsersArgs:
    pass


@pydantic_input(model=payloads.PasswordPayload, all_fields=True, name="PasswordInput")
class PasswordInput:
    pass


@pydantic_input(model=payloads.CommonPayload, all_fields=True, name="CommonInput")
class CommonInput:
    pass


# Summaries


@strawberry.type
class BankSummary:
    id: int
    account_id: int
    name: str | None
    account_number: str | None
    total_deposit_amount: Decimal
    total_withdrawal_amount: Decimal
    balance: Decimal
    currency: str | None
    is_delete: bool
    created_at: datetime | None
    updated_at: datetime | None

    @classmethod
    def from_row(cls, row: Mapping) -> "BankSummary":
        return build(cls, row)

    def _in_default(self, info: Info, amount: Decimal) -> Decimal:
        context = info.context
        return in_currency(context.rates, context.default_currency, self.currency, amount)

    @strawberry.field
    def balance_in_default_currency(self, info: Info) -> Decimal:
        return self._in_default(info, self.balance)

    @strawberry.field
    def total_deposit_amount_in_default_currency(self, info: Info) -> Decimal:
        return self._in_default(info, self.total_deposit_amount)

    @strawberry.field
    def total_withdrawal_amount_in_default_currency(self, info: Info) -> Decimal:
        return self._in_default(info, self.total_withdrawal_amount)


def _valuation_field(attribute: str, description: str | None = None):
    async def resolve(root, info: Info) -> Decimal:
        valuation = await root.valuation(info)
        return getattr(valuation, attribute)

    return strawberry.field(resolver=resolve, description=description)


@strawberry.type
class HoldingSummary:
    id: int
    account_id: int
    name: str | None
    account_number: str | None
    symbol: str | None
    quantity: Decimal
    amount: Decimal
    currency: str | None
    type: SummaryType
    is_delete: bool
    created_at: datetime | None
    updated_at: datetime | None

    price_per_share: Decimal = _valuation_field("price_per_share", "Average purchase price")
    current_amount: Decimal = _valuation_field("current_amount", "Market value in the summary currency")
    price_per_share_current_amount: Decimal = _valuation_field("price_per_share_current_amount")
    current_amount_in_default_currency: Decimal = _valuation_field("current_amount_in_default_currency")
    price_per_share_in_default_currency: Decimal = _valuation_field("price_per_share_in_default_currency")
    amount_in_default_currency: Decimal = _valuation_field("amount_in_default_currency")
    difference_rate: Decimal = _valuation_field("difference_rate", "Unrealized gain in percent")
    earned: Decimal = _valuation_field("earned")
    earned_in_default_currency: Decimal = _valuation_field("earned_in_default_currency")

    @classmethod
    def from_row(cls, row: Mapping):
        return build(cls, row, type=SummaryType.validate(row["type"]))

    def account_type(self) -> AccountType:
        raise NotImplementedError

    @property
    def is_cash(self) -> bool:
        return self.type is SummaryType.CASH

    def _row(self) -> dict:
        return {
            "symbol": self.symbol,
            "currency": self.currency,
            "amount": self.amount,
            "quantity": self.quantity,
            "type": self.type.value,
        }

    async def valuation(self, info: Info) -> HoldingValuation:
        context = info.context
        price = None
        if self.symbol and not self.is_cash:
            price = await context.loaders.prices[self.account_type()].load(self.symbol)
        return value_holding(self._row(), price, context.rates, context.default_currency)

    async def _holdings_value(self, info: Info) -> Decimal:
        context = info.context
        holdings = await context.loaders.holdings[self.account_type()].load(self.account_id)
        symbols = sorted({row["symbol"] for row in holdings if row["symbol"]})
        found = await context.loaders.prices[self.account_type()].load_many(symbols)
        prices = {symbol: price for symbol, price in zip(symbols, found) if price is not None}
        return total_holdings_value(holdings, prices, context.rates)

    @strawberry.field(description="Market value of every holding, on the cash row only")
    async def total_holding_value(self, info: Info) -> Decimal | None:
        if not self.is_cash:
            return None
        return await self._holdings_value(info)

    @strawberry.field(description="Cash plus holdings, on the cash row only")
    async def total_account_value(self, info: Info) -> Decimal | None:
        if not self.is_cash:
            return None
        return (self.amount or ZERO) + await self._holdings_value(info)

    @strawberry.field
    async def total_account_value_in_default_currency(self, info: Info) -> Decimal | None:
        if not self.is_cash:
            return None
        total = (self.amount or ZERO) + await self._holdings_value(info)
        return in_currency(info.context.rates, info.context.default_currency, self.currency, total)


@strawberry.type
class StockSummary(HoldingSummary):
    stock_company_code: str | None
    market: str | None
    logo_image_url: str | None

    def account_type(self) -> AccountType:
        return AccountType.STOCK


@strawberry.type
class CoinSummary(HoldingSummary):
    slug: str | None

    def account_type(self) -> AccountType:
        return AccountType.COIN


@strawberry.type
class EtcSummary:
    id: int
    account_id: int
    purchase_price: Decimal
    current_price: Decimal
    currency: str | None
    count: int
    is_delete: bool
    created_at: datetime | None
    updated_at: datetime | None

    @classmethod
    def from_row(cls, row: Mapping) -> "EtcSummary":
        return build(cls, row)


@strawberry.type
class LiabilitiesSummary:
    id: int
    account_id: int
    amount: Decimal
    remaining_amount: Decimal
    currency: str | None
    count: int
    is_delete: bool
    created_at: datetime | None
    updated_at: datetime | None

    @classmethod
    def from_row(cls, row: Mapping) -> "LiabilitiesSummary":
        return build(cls, row)


# Accounts


@strawberry.type
class Account:
    id: int
    user_id: int
    nick_name: str | None
    type: AccountType
    currency: str
    note: str | None
    is_delete: bool
    created_at: datetime | None
    updated_at: datetime | None

    @classmethod
    def from_row(cls, row: Mapping) -> "Account":
        return build(cls, row, type=AccountType.validate(row["type"]))

    async def _summary(self, info: Info, account_type: AccountType):
        if self.type is not account_type:
            return None
        return await info.context.loaders.summaries[account_type].load(self.id)

    @strawberry.field
    async def bank_summary(self, info: Info) -> BankSummary | None:
        row = await self._summary(info, AccountType.BANK)
        return BankSummary.from_row(row) if row else None

    @strawberry.field(description="Cash row of a stock account")
    async def stock_summary(self, info: Info) -> StockSummary | None:
        row = await self._summary(info, AccountType.STOCK)
        return StockSummary.from_row(row) if row else None

    @strawberry.field(description="Cash row of a coin account")
    async def coin_summary(self, info: Info) -> CoinSummary | None:
        row = await self._summary(info, AccountType.COIN)
        return CoinSummary.from_row(row) if row else None

    @strawberry.field
    async def etc_summary(self, info: Info) -> EtcSummary | None:
        row = await self._summary(info, AccountType.ETC)
        return EtcSummary.from_row(row) if row else None

    @strawberry.field
    async def liabilities_summary(self, info: Info) -> LiabilitiesSummary | None:
        row = await self._summary(info, AccountType.LIABILITIES)
        return LiabilitiesSummary.from_row(row) if row else None


@strawberry.type
class Accounts(Paginated[Account]):
    pass


@strawberry.type
class StockSummaries(Paginated[StockSummary]):
    pass


@strawberry.type
class CoinSummaries(Paginated[CoinSummary]):
    pass


@strawberry.type
class Allocation:
    bank: Decimal
    stock: Decimal
    coin: Decimal
    etc: Decimal
    liabilities: Decimal


# Transactions


@strawberry.type
class BankTransaction:
    id: int
    account_id: int
    name: str | None
    amount: Decimal
    type: TransactionType
    currency: str | None
    note: str | None
    transaction_date: datetime | None
    is_delete: bool
    created_at: datetime | None
    updated_at: datetime | None

    @classmethod
    def from_row(cls, row: Mapping) -> "BankTransaction":
        return build(cls, row, type=TransactionType.validate(row["type"]))


@strawberry.type
class HoldingTransaction:
    id: int
    account_id: int
    name: str | None
    symbol: str
    quantity: Decimal
    amount: Decimal
    currency: str | None
    type: TransactionType
    note: str | None
    transaction_date: datetime | None
    is_delete: bool
    created_at: datetime | None
    updated_at: datetime | None

    @classmethod
    def from_row(cls, row: Mapping):
        return build(cls, row, type=TransactionType.validate(row["type"]))


@strawberry.type
class StockTransaction(HoldingTransaction):
    pass


@strawberry.type
class CoinTransaction(HoldingTransaction):
    pass


@strawberry.type
class EtcTransaction:
    id: int
    account_id: int
    name: str | None
    purchase_price: Decimal
    current_price: Decimal | None
    operation: str | None
    currency: str | None
    note: str | None
    transaction_date: datetime | None
    is_complete: bool
    is_delete: bool
    created_at: datetime | None
    updated_at: datetime | None

    @classmethod
    def from_row(cls, row: Mapping) -> "EtcTransaction":
        return build(cls, row)


@strawberry.type
class LiabilitiesTransaction:
    id: int
    account_id: int
    name: str | None
    amount: Decimal
    remaining_amount: Decimal | None
    rate: Decimal | None
    is_yearly: bool
    operation: str | None
    currency: str | None
    note: str | None
    transaction_date: datetime | None
    repayment_date: datetime | None
    is_complete: bool
    is_delete: bool
    created_at: datetime | None
    updated_at: datetime | None

    @classmethod
    def from_row(cls, row: Mapping) -> "LiabilitiesTransaction":
        return build(cls, row)


@strawberry.type
class BankTransactions(Paginated[BankTransaction]):
    pass


@strawberry.type
class StockTransactions(Paginated[StockTransaction]):
    pass


@strawberry.type
class CoinTransactions(Paginated[CoinTransaction]):
    pass


@strawberry.type
class EtcTransactions(Paginated[EtcTransaction]):
    pass


@strawberry.type
class LiabilitiesTransactions(Paginated[LiabilitiesTransaction]):
    pass


# Transfers


@strawberry.type
class TransferTransaction:
    id: int
    account_id: int
    amount: Decimal
    type: TransactionType
    transaction_date: datetime | None
    description: str

    @classmethod
    def from_result(cls, value: TransferTransactionValue) -> "TransferTransaction":
        return build(cls, dataclasses.asdict(value))


@strawberry.type
class TransferResult:
    success: bool
    from_transaction: TransferTransaction
    to_transaction: TransferTransaction
    message: str

    @classmethod
    def from_result(cls, value: TransferResultValue) -> "TransferResult":
        return cls(
            success=value.success,
            from_transaction=TransferTransaction.from_result(value.from_transaction),
            to_transaction=TransferTransaction.from_result(value.to_transaction),
            message=value.message,
        )


@strawberry.type
class AccountWithBalance:
    id: int
    nick_name: str | None
    type: AccountType
    currency: str
    balance: Decimal
    is_delete: bool

    @classmethod
    def from_result(cls, value: AccountWithBalanceResult) -> "AccountWithBalance":
        return build(cls, dataclasses.asdict(value))


# Exchange rates


@strawberry.type
class ExchangeRate:
    id: int
    base: str
    exchange_rates: JSON
    created_at: datetime | None

    @classmethod
    def from_row(cls, row: Mapping) -> "ExchangeRate":
        return build(cls, row)


# Users


@strawberry.type
class User:
    id: int
    name: str | None
    email: str
    phone: str | None
    profile_img: str | None
    role: UserRole
    currency: str
    state: UserState
    created_at: datetime | None
    updated_at: datetime | None

    @classmethod
    def from_row(cls, row: Mapping) -> "User":
        return build(cls, row, role=UserRole.validate(row["role"]), state=UserState.validate(row["state"]))


@strawberry.type
class Users(Paginated[User]):
    pass


@strawberry.type
class Token:
    access_token: str
    refresh_token: str


# Dashboard


@strawberry.type
class DashboardItem:
    account_id: int
    name: str | None
    amount: Decimal
    type: AccountType


@strawberry.type
class DashboardDetailItem:
    account_id: int
    account_name: str | None
    name: str | None
    account_type: AccountType
    asset_type: str
    currency: str | None
    purchase_amount: Decimal
    current_value: Decimal
    current_value_in_default_currency: Decimal
    unrealized_pnl: Decimal = strawberry.field(name="unrealizedPnL")
    unrealized_pnl_in_default_currency: Decimal = strawberry.field(name="unrealizedPnLInDefaultCurrency")
    unrealized_pnl_percentage: Decimal = strawberry.field(name="unrealizedPnLPercentage")


@strawberry.type
class Dashboard:
    asset: list[DashboardItem]
    liabilities: list[DashboardItem]
    cash: list[DashboardItem]
    asset_total_amount: Decimal
    liabilities_total_amount: Decimal
    cash_total_amount: Decimal
    details: list[DashboardDetailItem]

    @classmethod
    def from_result(cls, value: DashboardResult) -> "Dashboard":
        def items(values) -> list[DashboardItem]:
            return [build(DashboardItem, dataclasses.asdict(item)) for item in values]

        return cls(
            asset=items(value.asset),
            liabilities=items(value.liabilities),
            cash=items(value.cash),
            asset_total_amount=value.asset_total_amount,
            liabilities_total_amount=value.liabilities_total_amount,
            cash_total_amount=value.cash_total_amount,
            details=[build(DashboardDetailItem, dataclasses.asdict(detail)) for detail in value.details],
        )


@strawberry.type
class RebalancingGoal:
    id: int
    user_id: int
    goal_type: str
    reference_id: str
    target_ratio: Decimal
    created_at: datetime | None
    updated_at: datetime | None

    @classmethod
    def from_row(cls, row: Mapping) -> "RebalancingGoal":
        return build(cls, row)
