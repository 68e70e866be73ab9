"""Coin and stock trades and the per-symbol holdings they maintain.

Both account types share one ledger: a CASH summary row holding the
account's cash and one SUMMARY row per symbol whose quantity and amount are
the signed sum of its active transactions. Transactions with the
``TRANSFER`` symbol move cash and adjust the CASH row instead.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Mapping

from sqlalchemy import Table, insert, select, update
from sqlalchemy.engine import Connection, Engine, RowMapping

from fingraph.access import ensure_account
from fingraph.accounts import fetch_account
from fingraph.currency_conversion import ZERO
from fingraph.db import coin_summaries, coin_transactions, stock_summaries, stock_transactions
from fingraph.enums import AccountType, SummaryType, transaction_sign
from fingraph.errors import AppException, ErrorMessage, ValidationException
from fingraph.ledger import load_owned_transaction, transaction_filters
from fingraph.market_data import StockMarketClient
from fingraph.pagination import PageInfo, paginate
from fingraph.payloads import (
    CreateHoldingTransactionPayload,
    HoldingTransactionsArgsPayload,
    UpdateHoldingTransactionPayload,
    parse_payload,
    provided,
)
from fingraph.tokens import JwtPayload

logger = logging.getLogger(__name__)

TRANSFER_SYMBOL = "TRANSFER"


@dataclass(frozen=True)
class HoldingKind:
    account_type: AccountType
    summaries: Table
    transactions: Table
    summary_not_found: str
    transaction_not_found: str
    # Coin holdings are unique per (account, symbol, currency).
    currency_keyed: bool
    normalize_symbol: Callable[[str], str]


STOCK = HoldingKind(
    account_type=AccountType.STOCK,
    summaries=stock_summaries,
    transactions=stock_transactions,
    summary_not_found=ErrorMessage.MSG_NOT_FOUND_STOCK_SUMMARY,
    transaction_not_found=ErrorMessage.MSG_NOT_FOUND_STOCK_TRANSACTION,
    currency_keyed=False,
    normalize_symbol=lambda symbol: symbol.strip().upper(),
)

COIN = HoldingKind(
    account_type=AccountType.COIN,
    summaries=coin_summaries,
    transactions=coin_transactions,
    summary_not_found=ErrorMessage.MSG_NOT_FOUND_COIN_SUMMARY,
    transaction_not_found=ErrorMessage.MSG_NOT_FOUND_COIN_TRANSACTION,
    currency_keyed=True,
    normalize_symbol=lambda symbol: symbol.strip(),
)

KINDS = {AccountType.STOCK: STOCK, AccountType.COIN: COIN}


def fetch_cash_summary(conn: Connection, kind: HoldingKind, account_id: int) -> RowMapping:
    table = kind.summaries
    summary = (
        conn.execute(
            select(table).where(
                table.c.account_id == account_id,
                table.c.type == SummaryType.CASH.value,
                table.c.is_delete.is_(False),
            )
        )
        .mappings()
        .first()
    )
    if not summary:
        raise ValidationException(kind.summary_not_found)
    return summary


def _find_holding(
    conn: Connection, kind: HoldingKind, account_id: int, symbol: str, currency: str | None
) -> RowMapping | None:
    """Holding row for ``symbol``, including a soft-deleted one that still owns the key."""
    table = kind.summaries
    conditions = [
        table.c.account_id == account_id,
        table.c.type == SummaryType.SUMMARY.value,
        table.c.symbol == symbol,
    ]
    if kind.currency_keyed:
        conditions.append(table.c.currency == currency)
    return conn.execute(select(table).where(*conditions)).mappings().first()


def _adjust_cash(conn: Connection, kind: HoldingKind, cash: Mapping, amount_delta: Decimal) -> None:
    table = kind.summaries
    conn.execute(
        update(table).where(table.c.id == cash["id"]).values(amount=(cash["amount"] or ZERO) + amount_delta)
    )


def _adjust_holding(
    conn: Connection,
    kind: HoldingKind,
    account_id: int,
    symbol: str,
    currency: str | None,
    quantity_delta: Decimal,
    amount_delta: Decimal,
    name: str | None = None,
) -> bool:
    """Apply deltas to a holding, creating or reviving it. Returns True when newly created."""
    table = kind.summaries
    holding = _find_holding(conn, kind, account_id, symbol, currency)
    if holding is None:
        conn.execute(
            insert(table).values(
                account_id=account_id,
                type=SummaryType.SUMMARY.value,
                symbol=symbol,
                name=name,
                currency=currency,
                quantity=quantity_delta,
                amount=amount_delta,
            )
        )
        return True

    values = {}
    if holding["is_delete"]:
        values.update(is_delete=False, quantity=quantity_delta, amount=amount_delta)
    else:
        values.update(
            quantity=(holding["quantity"] or ZERO) + quantity_delta,
            amount=(holding["amount"] or ZERO) + amount_delta,
        )
    if name:
        values["name"] = name
    conn.execute(update(table).where(table.c.id == holding["id"]).values(**values))
    return False


def _book(
    conn: Connection,
    kind: HoldingKind,
    cash: Mapping,
    symbol: str,
    currency: str | None,
    quantity_delta: Decimal,
    amount_delta: Decimal,
    name: str | None = None,
) -> bool:
    if symbol == TRANSFER_SYMBOL:
        _adjust_cash(conn, kind, cash, amount_delta)
        return False
    return _adjust_holding(
        conn, kind, cash["account_id"], symbol, currency, quantity_delta, amount_delta, name
    )


def create_holding_transaction(
    engine: Engine,
    caller: JwtPayload,
    kind: HoldingKind,
    data,
    stock_client: StockMarketClient | None = None,
) -> RowMapping:
    payload = parse_payload(CreateHoldingTransactionPayload, data)
    symbol = kind.normalize_symbol(payload.symbol)
    sign = transaction_sign(payload.type)

    with engine.begin() as conn:
        ensure_account(caller, fetch_account(conn, payload.account_id), kind.account_type)
        cash = fetch_cash_summary(conn, kind, payload.account_id)
        holding = None if symbol == TRANSFER_SYMBOL else _find_holding(
            conn, kind, payload.account_id, symbol, cash["currency"]
        )
        currency = holding["currency"] if holding and holding["currency"] else cash["currency"]
        is_new = _book(
            conn,
            kind,
            cash,
            symbol,
            currency,
            sign * payload.quantity,
            sign * payload.amount,
            payload.name,
        )
        transaction = (
            conn.execute(
                insert(kind.transactions)
                .values(
                    account_id=payload.account_id,
                    name=payload.name,
                    symbol=symbol,
                    quantity=payload.quantity,
                    amount=payload.amount,
                    currency=currency,
                    type=payload.type.value,
                    note=payload.note,
                    transaction_date=payload.transaction_date,
                )
                .returning(*kind.transactions.c)
            )
            .mappings()
            .one()
        )

    if kind is STOCK and is_new and stock_client is not None:
        outcome = refresh_stock_profile(engine, stock_client, symbol, transaction["id"])
        logger.debug("Stock lookup for %s: %s", symbol, outcome)
    return transaction


def update_holding_transaction(engine: Engine, caller: JwtPayload, kind: HoldingKind, data) -> RowMapping:
    """Reverse the stored transaction's effect, then apply the updated one."""
    payload = parse_payload(UpdateHoldingTransactionPayload, data)
    with engine.begin() as conn:
        existing, _ = load_owned_transaction(
            conn, caller, kind.transactions, payload.id, kind.transaction_not_found, kind.account_type
        )
        cash = fetch_cash_summary(conn, kind, existing["account_id"])

        old_sign = transaction_sign(existing["type"])
        quantity_delta = -old_sign * existing["quantity"]
        amount_delta = -old_sign * existing["amount"]

        if payload.is_delete:
            values = {"is_delete": True}
        else:
            values = provided(payload, "id", "is_delete")
            if "type" in values:
                values["type"] = values["type"].value
            new_sign = transaction_sign(values.get("type", existing["type"]))
            quantity_delta += new_sign * values.get("quantity", existing["quantity"])
            amount_delta += new_sign * values.get("amount", existing["amount"])

        _book(conn, kind, cash, existing["symbol"], existing["currency"], quantity_delta, amount_delta)
        if not values:
            return existing
        return (
            conn.execute(
                update(kind.transactions)
                .where(kind.transactions.c.id == existing["id"])
                .values(**values)
                .returning(*kind.transactions.c)
            )
            .mappings()
            .one()
        )


def list_holding_transactions(
    engine: Engine, caller: JwtPayload, kind: HoldingKind, data
) -> tuple[list[RowMapping], PageInfo]:
    args = parse_payload(HoldingTransactionsArgsPayload, data)
    with engine.begin() as conn:
        ensure_account(caller, fetch_account(conn, args.account_id))
        return paginate(
            conn,
            kind.transactions,
            transaction_filters(kind.transactions, args),
            args.page,
            args.take,
            args.sort_by,
        )


def get_holding_transaction(
    engine: Engine, caller: JwtPayload, kind: HoldingKind, transaction_id: int
) -> RowMapping:
    with engine.begin() as conn:
        transaction, _ = load_owned_transaction(
            conn, caller, kind.transactions, transaction_id, kind.transaction_not_found
        )
    return transaction


def refresh_stock_profile(
    engine: Engine,
    client: StockMarketClient,
    symbol: str,
    transaction_id: int | None = None,
) -> str:
    """Fill listing details on every active holding of ``symbol``.

    Best effort: lookup failures are logged and reported as ``"fail"``.
    """
    try:
        profile = client.lookup(symbol)
    except (AppException, KeyError, TypeError, AttributeError) as exc:
        logger.error("Stock lookup for %s failed: %s", symbol, exc)
        return "fail"
    if profile is None:
        return "fail"

    logger.info("Found stock %s (%s)", symbol, profile.product_code)
    values = {
        key: value
        for key, value in (
            ("stock_company_code", profile.stock_company_code),
            ("currency", profile.currency),
            ("market", profile.market),
            ("logo_image_url", profile.logo_image_url),
        )
        if value is not None
    }
    if not values:
        return "fail"
    with engine.begin() as conn:
        result = conn.execute(
            update(stock_summaries)
            .where(stock_summaries.c.symbol == symbol, stock_summaries.c.is_delete.is_(False))
            .values(**values)
        )
        logger.debug("Updated %s stock summaries for %s", result.rowcount, symbol)
        if transaction_id is not None and profile.currency:
            conn.execute(
                update(stock_transactions)
                .where(stock_transactions.c.id == transaction_id)
                .values(currency=profile.currency)
            )
    return "success"
