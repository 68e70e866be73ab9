from __future__ import annotations

import logging

from sqlalchemy import insert, select
from sqlalchemy.engine import Engine, RowMapping

from fingraph.accounts import fetch_latest_rates
from fingraph.config import Settings
from fingraph.currency_conversion import OpenExchangeRatesProvider, RateProviderUnavailable, RateTable
from fingraph.db import (
    bank_summaries,
    coin_summaries,
    etc_transactions,
    exchange_rates,
    liabilities_transactions,
    stock_price_history,
    stock_summaries,
)
from fingraph.errors import ExternalServiceException

logger = logging.getLogger(__name__)

LOCAL_SKIP_MESSAGE = "Local environment, skipping exchange update."


def tracked_currencies(engine: Engine) -> list[str]:
    """Every currency some active record is denominated in."""
    sources = [
        (bank_summaries, True),
        (stock_summaries, True),
        (coin_summaries, True),
        (etc_transactions, True),
        (liabilities_transactions, True),
        (stock_price_history, False),
    ]
    currencies: set[str] = set()
    with engine.begin() as conn:
        for table, soft_deleted in sources:
            stmt = select(table.c.currency).distinct().where(table.c.currency.is_not(None))
            if soft_deleted:
                stmt = stmt.where(table.c.is_delete.is_(False))
            currencies.update(conn.execute(stmt).scalars())
    return sorted(currencies)


def update_exchange(engine: Engine, settings: Settings, provider=None) -> str:
    if settings.is_local:
        logger.info(LOCAL_SKIP_MESSAGE)
        return LOCAL_SKIP_MESSAGE
    if provider is None:
        if not settings.exchange_rate_api_url:
            raise ExternalServiceException("Exchange rate API is not configured.")
        provider = OpenExchangeRatesProvider(settings.exchange_rate_api_url, settings.exchange_rate_api_key)

    currencies = tracked_currencies(engine)
    try:
        table = provider.latest(currencies)
    except RateProviderUnavailable as exc:
        logger.error("Exchange update failed: %s", exc)
        raise ExternalServiceException(f"Failed to fetch exchange rates: {exc}") from exc

    save_rates(engine, table)
    logger.info("Stored %s exchange rates against %s", len(table.rates), table.base)
    return "success"


def save_rates(engine: Engine, table: RateTable) -> RowMapping:
    with engine.begin() as conn:
        return (
            conn.execute(
                insert(exchange_rates)
                .values(base=table.base, exchange_rates={code: float(rate) for code, rate in table.rates.items()})
                .returning(*exchange_rates.c)
            )
            .mappings()
            .one()
        )


def latest_exchange_rate(engine: Engine) -> RowMapping | None:
    with engine.begin() as conn:
        return (
            conn.execute(select(exchange_rates).order_by(exchange_rates.c.id.desc()).limit(1))
            .mappings()
            .first()
        )


def latest_rate_table(engine: Engine) -> RateTable | None:
    with engine.begin() as conn:
        return fetch_latest_rates(conn)
