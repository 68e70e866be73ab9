from __future__ import annotations

from functools import cached_property, partial
from typing import Sequence

from sqlalchemy.engine import Engine, RowMapping
from strawberry.dataloader import DataLoader
from strawberry.fastapi import BaseContext

from fingraph.accounts import HOLDING_ACCOUNT_TYPES, summaries_by_account_ids
from fingraph.config import Settings
from fingraph.currency_conversion import RateTable
from fingraph.enums import AccountType, TokenType
from fingraph.errors import UnauthorizedException
from fingraph.exchange import latest_rate_table
from fingraph.market_data import StockMarketClient
from fingraph.price_history import latest_prices
from fingraph.summaries import LatestPrice, holdings_by_account_ids
from fingraph.tokens import JwtPayload, verify_token


class Loaders:
    """Per-request batching of summary and price lookups."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self.summaries = {
            account_type: DataLoader(load_fn=partial(self._load_summaries, account_type))
            for account_type in AccountType
        }
        self.holdings = {
            account_type: DataLoader(load_fn=partial(self._load_holdings, account_type))
            for account_type in HOLDING_ACCOUNT_TYPES
        }
        self.prices = {
            account_type: DataLoader(load_fn=partial(self._load_prices, account_type))
            for account_type in HOLDING_ACCOUNT_TYPES
        }

    async def _load_summaries(self, account_type: AccountType, account_ids: Sequence[int]) -> list[RowMapping | None]:
        found = summaries_by_account_ids(self.engine, account_type, account_ids)
        return [found.get(account_id) for account_id in account_ids]

    async def _load_holdings(self, account_type: AccountType, account_ids: Sequence[int]) -> list[list[RowMapping]]:
        found = holdings_by_account_ids(self.engine, account_type, account_ids)
        return [found.get(account_id, []) for account_id in account_ids]

    async def _load_prices(self, account_type: AccountType, symbols: Sequence[str]) -> list[LatestPrice | None]:
        found = latest_prices(self.engine, account_type, symbols)
        return [found.get(symbol) for symbol in symbols]


class GraphQLContext(BaseContext):
    def __init__(
        self,
        engine: Engine,
        settings: Settings,
        token: str | None = None,
        stock_client: StockMarketClient | None = None,
    ) -> None:
        super().__init__()
        self.engine = engine
        self.settings = settings
        self.token = token
        self.stock_client = stock_client
        self.loaders = Loaders(engine)

    @cached_property
    def caller(self) -> JwtPayload | None:
        if not self.token:
            return None
        return verify_token(self.settings, self.token, TokenType.ACCESS)

    def require_caller(self) -> JwtPayload:
        caller = self.caller
        if caller is None:
            raise UnauthorizedException()
        return caller

    @cached_property
    def rates(self) -> RateTable | None:
        return latest_rate_table(self.engine)

    @property
    def default_currency(self) -> str:
        caller = self.caller
        return caller.currency if caller else self.settings.default_currency
