from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Mapping

from sqlalchemy import Table, select, update
from sqlalchemy.engine import Connection, Engine, RowMapping

from fingraph.access import ensure_account
from fingraph.accounts import SUMMARY_TABLES, TRANSACTION_TABLES, fetch_account
from fingraph.currency_conversion import ZERO, RateTable, convert_currency
from fingraph.enums import AccountType, SummaryType
from fingraph.errors import ErrorMessage, ForbiddenException
from fingraph.pagination import PageInfo, paginate
from fingraph.payloads import (
    HoldingSummariesArgsPayload,
    UpdateBankSummaryPayload,
    UpdateEtcSummaryPayload,
    UpdateHoldingSummaryPayload,
    UpdateLiabilitiesSummaryPayload,
    parse_payload,
    provided,
)
from fingraph.tokens import JwtPayload

logger = logging.getLogger(__name__)

_NOT_FOUND_SUMMARY = {
    AccountType.BANK: ErrorMessage.MSG_NOT_FOUND_BANK_SUMMARY,
    AccountType.STOCK: ErrorMessage.MSG_NOT_FOUND_STOCK_SUMMARY,
    AccountType.COIN: ErrorMessage.MSG_NOT_FOUND_COIN_SUMMARY,
    AccountType.ETC: ErrorMessage.MSG_NOT_FOUND_ETC_SUMMARY,
    AccountType.LIABILITIES: ErrorMessage.MSG_NOT_FOUND_LIABILITIES_SUMMARY,
}

# Fields each kind of coin/stock summary row accepts on update.
CASH_SUMMARY_FIELDS = ("name", "amount", "account_number")
HOLDING_SUMMARY_FIELDS = ("amount", "quantity")


@dataclass(frozen=True)
class LatestPrice:
    symbol: str
    currency: str | None
    price: Decimal


@dataclass(frozen=True)
class HoldingValuation:
    price_per_share: Decimal = ZERO
    current_amount: Decimal = ZERO
    price_per_share_current_amount: Decimal = ZERO
    current_amount_in_default_currency: Decimal = ZERO
    price_per_share_in_default_currency: Decimal = ZERO
    amount_in_default_currency: Decimal = ZERO
    difference_rate: Decimal = ZERO
    earned: Decimal = ZERO
    earned_in_default_currency: Decimal = ZERO


def _load_for_update(
    conn: Connection,
    caller: JwtPayload,
    account_type: AccountType,
    summary_id: int,
) -> RowMapping:
    table = SUMMARY_TABLES[account_type]
    summary = conn.execute(select(table).where(table.c.id == summary_id)).mappings().first()
    if not summary or summary["is_delete"]:
        raise ForbiddenException(_NOT_FOUND_SUMMARY[account_type])
    ensure_account(caller, fetch_account(conn, summary["account_id"]), account_type)
    return summary


def _save(conn: Connection, table: Table, summary: Mapping, values: dict) -> RowMapping:
    if not values:
        return summary
    return (
        conn.execute(update(table).where(table.c.id == summary["id"]).values(**values).returning(*table.c))
        .mappings()
        .one()
    )


def _currency_values(values: dict) -> dict:
    if "currency" in values:
        values["currency"] = values["currency"].value
    return values


def update_bank_summary(engine: Engine, caller: JwtPayload, data) -> RowMapping:
    payload = parse_payload(UpdateBankSummaryPayload, data)
    with engine.begin() as conn:
        summary = _load_for_update(conn, caller, AccountType.BANK, payload.id)
        return _save(conn, SUMMARY_TABLES[AccountType.BANK], summary, provided(payload, "id"))


def update_etc_summary(engine: Engine, caller: JwtPayload, data) -> RowMapping:
    payload = parse_payload(UpdateEtcSummaryPayload, data)
    with engine.begin() as conn:
        summary = _load_for_update(conn, caller, AccountType.ETC, payload.id)
        values = _currency_values(provided(payload, "id"))
        return _save(conn, SUMMARY_TABLES[AccountType.ETC], summary, values)


def update_liabilities_summary(engine: Engine, caller: JwtPayload, data) -> RowMapping:
    payload = parse_payload(UpdateLiabilitiesSummaryPayload, data)
    with engine.begin() as conn:
        summary = _load_for_update(conn, caller, AccountType.LIABILITIES, payload.id)
        values = _currency_values(provided(payload, "id"))
        return _save(conn, SUMMARY_TABLES[AccountType.LIABILITIES], summary, values)


def update_holding_summary(
    engine: Engine, caller: JwtPayload, account_type: AccountType, data
) -> RowMapping | None:
    """Update a stock or coin summary row.

    A CASH row accepts its name, cash amount and account number; a SUMMARY
    holding accepts amount and quantity, or ``isDelete`` which soft-deletes
    the holding with its transactions and returns ``None``.
    """
    payload = parse_payload(UpdateHoldingSummaryPayload, data)
    table = SUMMARY_TABLES[account_type]
    with engine.begin() as conn:
        summary = _load_for_update(conn, caller, account_type, payload.id)
        values = provided(payload, "id")

        if summary["type"] == SummaryType.CASH.value:
            return _save(conn, table, summary, {k: v for k, v in values.items() if k in CASH_SUMMARY_FIELDS})

        if payload.is_delete:
            transactions = TRANSACTION_TABLES[account_type]
            conn.execute(
                update(transactions)
                .where(
                    transactions.c.account_id == summary["account_id"],
                    transactions.c.symbol == summary["symbol"],
                    transactions.c.is_delete.is_(False),
                )
                .values(is_delete=True)
            )
            conn.execute(update(table).where(table.c.id == summary["id"]).values(is_delete=True))
            logger.info("%s holding %s deleted", account_type.value, summary["symbol"])
            return None
        return _save(conn, table, summary, {k: v for k, v in values.items() if k in HOLDING_SUMMARY_FIELDS})


def list_holding_summaries(
    engine: Engine, caller: JwtPayload, account_type: AccountType, data
) -> tuple[list[RowMapping], PageInfo]:
    args = parse_payload(HoldingSummariesArgsPayload, data)
    table = SUMMARY_TABLES[account_type]
    with engine.begin() as conn:
        ensure_account(caller, fetch_account(conn, args.account_id))
        conditions = [
            table.c.account_id == args.account_id,
            table.c.type == SummaryType.SUMMARY.value,
            table.c.is_delete.is_(False),
        ]
        return paginate(conn, table, conditions, args.page, args.take, args.sort_by)


def holdings_by_account_ids(
    engine: Engine, account_type: AccountType, account_ids: Iterable[int]
) -> dict[int, list[RowMapping]]:
    table = SUMMARY_TABLES[account_type]
    ids = list(account_ids)
    result: dict[int, list[RowMapping]] = {account_id: [] for account_id in ids}
    with engine.begin() as conn:
        rows = (
            conn.execute(
                select(table)
                .where(
                    table.c.account_id.in_(ids),
                    table.c.type == SummaryType.SUMMARY.value,
                    table.c.is_delete.is_(False),
                )
                .order_by(table.c.id)
            )
            .mappings()
            .all()
        )
    for row in rows:
        result[row["account_id"]].append(row)
    return result


def in_currency(rates: RateTable | None, target_currency: str, source_currency: str | None, amount) -> Decimal:
    return convert_currency(rates, target_currency, source_currency, amount)


def current_amount(summary: Mapping, price: LatestPrice | None, rates: RateTable | None) -> Decimal:
    """Market value of a holding in the summary's own currency."""
    if price is None or not summary["currency"] or not summary["symbol"]:
        return ZERO
    if summary["type"] == SummaryType.CASH.value:
        return ZERO
    market_value = (summary["quantity"] or ZERO) * price.price
    return convert_currency(rates, summary["currency"], price.currency or summary["currency"], market_value)


def value_holding(
    summary: Mapping,
    price: LatestPrice | None,
    rates: RateTable | None,
    default_currency: str,
) -> HoldingValuation:
    currency = summary["currency"]
    amount = summary["amount"] or ZERO
    quantity = summary["quantity"] or ZERO
    is_cash = summary["type"] == SummaryType.CASH.value

    price_per_share = ZERO if is_cash or quantity == ZERO else amount / quantity
    amount_default = in_currency(rates, default_currency, currency, amount)
    current = current_amount(summary, price, rates)
    if not current:
        return HoldingValuation(price_per_share=price_per_share, amount_in_default_currency=amount_default)

    per_share_current = convert_currency(rates, currency, price.currency or currency, price.price)
    current_default = in_currency(rates, default_currency, currency, current)
    difference_rate = (current - amount) / amount * 100 if amount else ZERO
    earned_default = current_default - amount_default if amount_default and current_default else ZERO
    return HoldingValuation(
        price_per_share=price_per_share,
        current_amount=current,
        price_per_share_current_amount=per_share_current,
        current_amount_in_default_currency=current_default,
        price_per_share_in_default_currency=in_currency(rates, default_currency, currency, per_share_current),
        amount_in_default_currency=amount_default,
        difference_rate=difference_rate,
        earned=current - amount,
        earned_in_default_currency=earned_default,
    )


def total_holdings_value(
    holdings: Iterable[Mapping],
    prices: Mapping[str, LatestPrice],
    rates: RateTable | None,
) -> Decimal:
    return sum(
        (current_amount(row, prices.get(row["symbol"]), rates) for row in holdings),
        ZERO,
    )
