from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable, Mapping

from sqlalchemy import Table, insert, select, update
from sqlalchemy.engine import Connection, Engine, RowMapping

from fingraph.access import ensure_owner, resolve_owner
from fingraph.currency_conversion import ZERO, RateTable, add_amount, cross_rate
from fingraph.db import (
    accounts,
    bank_summaries,
    bank_transactions,
    coin_summaries,
    coin_transactions,
    etc_summaries,
    etc_transactions,
    exchange_rates,
    liabilities_summaries,
    liabilities_transactions,
    stock_summaries,
    stock_transactions,
)
from fingraph.enums import AccountType, SummaryType
from fingraph.errors import ErrorMessage, ForbiddenException
from fingraph.pagination import PageInfo, paginate
from fingraph.payloads import (
    AccountsArgsPayload,
    CreateAccountPayload,
    UpdateAccountPayload,
    parse_payload,
    provided,
)
from fingraph.tokens import JwtPayload

logger = logging.getLogger(__name__)

SUMMARY_TABLES: dict[AccountType, Table] = {
    AccountType.BANK: bank_summaries,
    AccountType.STOCK: stock_summaries,
    AccountType.COIN: coin_summaries,
    AccountType.ETC: etc_summaries,
    AccountType.LIABILITIES: liabilities_summaries,
}

TRANSACTION_TABLES: dict[AccountType, Table] = {
    AccountType.BANK: bank_transactions,
    AccountType.STOCK: stock_transactions,
    AccountType.COIN: coin_transactions,
    AccountType.ETC: etc_transactions,
    AccountType.LIABILITIES: liabilities_transactions,
}

HOLDING_ACCOUNT_TYPES = frozenset({AccountType.STOCK, AccountType.COIN})


def fetch_account(conn: Connection, account_id: int) -> RowMapping | None:
    return (
        conn.execute(select(accounts).where(accounts.c.id == account_id, accounts.c.is_delete.is_(False)))
        .mappings()
        .first()
    )


def fetch_latest_rates(conn: Connection) -> RateTable | None:
    row = (
        conn.execute(select(exchange_rates).order_by(exchange_rates.c.id.desc()).limit(1))
        .mappings()
        .first()
    )
    return RateTable.from_row(row) if row else None


def create_account(engine: Engine, caller: JwtPayload, data) -> RowMapping:
    payload = parse_payload(CreateAccountPayload, data)
    owner_id = resolve_owner(caller, payload.user_id)
    account_type = payload.type
    currency = payload.currency.value

    with engine.begin() as conn:
        account = (
            conn.execute(
                insert(accounts)
                .values(
                    user_id=owner_id,
                    nick_name=payload.nick_name,
                    type=account_type.value,
                    currency=currency,
                    note=payload.note,
                )
                .returning(*accounts.c)
            )
            .mappings()
            .one()
        )
        summary_values = {"account_id": account["id"], "currency": currency}
        if account_type is AccountType.BANK:
            summary_values.update(payload.bank_summary.model_dump())
        elif account_type is AccountType.STOCK:
            summary_values.update(payload.stock_summary.model_dump(), type=SummaryType.CASH.value)
        elif account_type is AccountType.COIN:
            summary_values.update(payload.coin_summary.model_dump(), type=SummaryType.CASH.value)
        conn.execute(insert(SUMMARY_TABLES[account_type]).values(**summary_values))

    logger.info("Account %s (%s) created for user %s", account["id"], account_type.value, owner_id)
    return account


def list_accounts(engine: Engine, caller: JwtPayload, data=None) -> tuple[list[RowMapping], PageInfo]:
    args = parse_payload(AccountsArgsPayload, data or {})
    owner_id = resolve_owner(caller, args.user_id)
    conditions = [accounts.c.is_delete.is_(False), accounts.c.user_id == owner_id]
    if args.name:
        conditions.append(accounts.c.nick_name.ilike(f"%{args.name}%"))
    if args.type:
        conditions.append(accounts.c.type == args.type.value)
    with engine.begin() as conn:
        return paginate(conn, accounts, conditions, args.page, args.take, args.sort_by)


def get_account(engine: Engine, caller: JwtPayload, account_id: int) -> RowMapping:
    with engine.begin() as conn:
        account = fetch_account(conn, account_id)
    if not account:
        raise ForbiddenException(ErrorMessage.MSG_NOT_FOUND_ACCOUNT)
    ensure_owner(caller, account["user_id"])
    return account


def update_account(engine: Engine, caller: JwtPayload, data) -> RowMapping:
    """Merge provided fields, or soft-delete the account with ``isDelete``.

    Deleting flags every summary and transaction of the account's type in
    the same transaction.
    """
    payload = parse_payload(UpdateAccountPayload, data)
    owner_id = resolve_owner(caller, payload.user_id)

    with engine.begin() as conn:
        existing = fetch_account(conn, payload.id)
        if not existing:
            raise ForbiddenException(ErrorMessage.MSG_NOT_FOUND_ACCOUNT)
        if existing["user_id"] != owner_id:
            raise ForbiddenException()

        if payload.is_delete:
            account_type = AccountType.validate(existing["type"])
            for table in (SUMMARY_TABLES[account_type], TRANSACTION_TABLES[account_type]):
                conn.execute(update(table).where(table.c.account_id == existing["id"]).values(is_delete=True))
            values = {"is_delete": True}
        else:
            values = provided(payload, "id", "user_id", "is_delete")
            if "currency" in values:
                values["currency"] = values["currency"].value
            if not values:
                return existing

        account = (
            conn.execute(
                update(accounts).where(accounts.c.id == existing["id"]).values(**values).returning(*accounts.c)
            )
            .mappings()
            .one()
        )
    if payload.is_delete:
        logger.info("Account %s deleted by user %s", account["id"], caller.id)
    return account


def summaries_by_account_ids(
    engine: Engine, account_type: AccountType, account_ids: Iterable[int]
) -> dict[int, RowMapping]:
    """Active summary per account; stock and coin accounts yield their CASH row."""
    table = SUMMARY_TABLES[account_type]
    conditions = [table.c.account_id.in_(list(account_ids)), table.c.is_delete.is_(False)]
    if account_type in HOLDING_ACCOUNT_TYPES:
        conditions.append(table.c.type == SummaryType.CASH.value)
    with engine.begin() as conn:
        rows = conn.execute(select(table).where(*conditions)).mappings().all()
    return {row["account_id"]: row for row in rows}


def _owned_summaries(conn: Connection, table: Table, user_id: int) -> list[RowMapping]:
    stmt = (
        select(table)
        .join(accounts, accounts.c.id == table.c.account_id)
        .where(
            accounts.c.user_id == user_id,
            accounts.c.is_delete.is_(False),
            table.c.is_delete.is_(False),
        )
    )
    return list(conn.execute(stmt).mappings().all())


def _sum_converted(
    rates: RateTable,
    target_currency: str,
    rows: Iterable[Mapping],
    value_of,
) -> Decimal:
    total = ZERO
    for row in rows:
        rate = cross_rate(rates, target_currency, row["currency"])
        if rate is None:
            logger.warning("No exchange rate for %s; skipped in allocation", row["currency"])
            continue
        total = add_amount(total, (value_of(row) or ZERO) * rate)
    return total


def allocation(engine: Engine, caller: JwtPayload) -> dict[str, Decimal] | None:
    """Per-type totals in the caller's currency, or ``None`` without rates."""
    with engine.begin() as conn:
        rates = fetch_latest_rates(conn)
        if rates is None:
            return None
        rows = {
            account_type: _owned_summaries(conn, table, caller.id)
            for account_type, table in SUMMARY_TABLES.items()
        }

    target = caller.currency
    return {
        "bank": _sum_converted(rates, target, rows[AccountType.BANK], lambda row: row["balance"]),
        "stock": _sum_converted(rates, target, rows[AccountType.STOCK], lambda row: row["amount"]),
        "coin": _sum_converted(rates, target, rows[AccountType.COIN], lambda row: row["amount"]),
        "etc": _sum_converted(
            rates, target, rows[AccountType.ETC], lambda row: row["current_price"] or row["purchase_price"]
        ),
        "liabilities": _sum_converted(
            rates,
            target,
            rows[AccountType.LIABILITIES],
            lambda row: row["remaining_amount"] or row["amount"],
        ),
    }
