from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import func, insert, select
from sqlalchemy.engine import Engine, RowMapping

from fingraph.config import Settings
from fingraph.db import coin_price_history, coin_summaries, stock_price_history, stock_summaries
from fingraph.enums import AccountType, SummaryType
from fingraph.errors import AppException, ExternalServiceException
from fingraph.holdings import refresh_stock_profile
from fingraph.market_data import CoinMarketCapClient, StockMarketClient
from fingraph.summaries import LatestPrice

logger = logging.getLogger(__name__)

LOCAL_SKIP_STOCK = "Local environment, skipping stock price update."
LOCAL_SKIP_COIN = "Local environment, skipping coin price update."
NO_STOCK_GROUPS = "No distinct stock groups found."
NO_COIN_SYMBOLS = "No distinct coin symbols found."


def coin_client_from_settings(settings: Settings) -> CoinMarketCapClient:
    if not settings.coin_price_api_url:
        raise ExternalServiceException("Coin price API is not configured.")
    return CoinMarketCapClient(settings.coin_price_api_url, settings.coin_market_cap_api_key)


def stock_client_from_settings(settings: Settings) -> StockMarketClient:
    return StockMarketClient(
        search_url=settings.stock_search_api_url,
        info_url=settings.stock_info_api_url,
        price_url=settings.stock_price_api_url,
    )


def _active_holding_symbols(engine: Engine) -> list[str]:
    with engine.begin() as conn:
        return list(
            conn.execute(
                select(coin_summaries.c.symbol)
                .distinct()
                .where(
                    coin_summaries.c.type == SummaryType.SUMMARY.value,
                    coin_summaries.c.is_delete.is_(False),
                    coin_summaries.c.symbol.is_not(None),
                )
                .order_by(coin_summaries.c.symbol)
            ).scalars()
        )


def _stock_groups(engine: Engine) -> list[tuple[str, str | None]]:
    with engine.begin() as conn:
        rows = conn.execute(
            select(stock_summaries.c.symbol, stock_summaries.c.stock_company_code)
            .distinct()
            .where(
                stock_summaries.c.type == SummaryType.SUMMARY.value,
                stock_summaries.c.is_delete.is_(False),
                stock_summaries.c.symbol.is_not(None),
            )
            .order_by(stock_summaries.c.symbol)
        ).all()
    return [(row.symbol, row.stock_company_code) for row in rows]


def update_coin_price(engine: Engine, settings: Settings, client: CoinMarketCapClient | None = None) -> str:
    if settings.is_local:
        logger.info(LOCAL_SKIP_COIN)
        return LOCAL_SKIP_COIN
    symbols = _active_holding_symbols(engine)
    if not symbols:
        logger.warning(NO_COIN_SYMBOLS)
        return NO_COIN_SYMBOLS

    client = client or coin_client_from_settings(settings)
    quotes = client.latest_quotes(symbols)
    if quotes:
        with engine.begin() as conn:
            conn.execute(
                insert(coin_price_history),
                [
                    {
                        "symbol": quote.symbol,
                        "currency": quote.currency,
                        "price": quote.price,
                        "market_cap": quote.market_cap,
                        "volume_change_24h": quote.volume_change_24h,
                        "last_updated": quote.last_updated,
                    }
                    for quote in quotes
                ],
            )
    logger.info("Stored %s of %s coin prices", len(quotes), len(symbols))
    return "success"


def update_stock_price(engine: Engine, settings: Settings, client: StockMarketClient | None = None) -> str:
    """Store the latest quote for every held stock.

    Holdings still missing a company code are looked up first; a symbol
    whose quote cannot be fetched is logged and skipped.
    """
    if settings.is_local:
        logger.info(LOCAL_SKIP_STOCK)
        return LOCAL_SKIP_STOCK
    groups = _stock_groups(engine)
    if not groups:
        logger.warning(NO_STOCK_GROUPS)
        return NO_STOCK_GROUPS

    client = client or stock_client_from_settings(settings)
    missing = sorted({symbol for symbol, code in groups if not code})
    if missing:
        for symbol in missing:
            refresh_stock_profile(engine, client, symbol)
        groups = _stock_groups(engine)

    stored = 0
    for symbol, code in groups:
        if not code:
            continue
        try:
            quote = client.quote(symbol, code)
        except AppException as exc:
            logger.error("Failed to get price for %s: %s", symbol, exc)
            continue
        if quote is None:
            logger.warning("No price returned for %s", symbol)
            continue
        with engine.begin() as conn:
            conn.execute(
                insert(stock_price_history).values(
                    symbol=quote.symbol,
                    currency=quote.currency,
                    base=quote.base,
                    close=quote.close,
                    volume=quote.volume,
                    change_type=quote.change_type,
                )
            )
        stored += 1
    logger.info("Stored %s stock prices", stored)
    return "success"


_HISTORY = {
    AccountType.COIN: (coin_price_history, "price"),
    AccountType.STOCK: (stock_price_history, "base"),
}


def find_by_symbols(engine: Engine, account_type: AccountType, symbols: Iterable[str]) -> list[RowMapping]:
    """Most recent history row per symbol."""
    table, _ = _HISTORY[account_type]
    wanted = sorted(set(symbols))
    if not wanted:
        return []
    newest = (
        select(func.max(table.c.id).label("id"))
        .where(table.c.symbol.in_(wanted))
        .group_by(table.c.symbol)
        .subquery()
    )
    with engine.begin() as conn:
        return list(conn.execute(select(table).join(newest, table.c.id == newest.c.id)).mappings().all())


def latest_prices(engine: Engine, account_type: AccountType, symbols: Iterable[str]) -> dict[str, LatestPrice]:
    _, price_column = _HISTORY[account_type]
    prices = {}
    for row in find_by_symbols(engine, account_type, symbols):
        if row[price_column] is None:
            continue
        prices[row["symbol"]] = LatestPrice(symbol=row["symbol"], currency=row["currency"], price=row[price_column])
    return prices
