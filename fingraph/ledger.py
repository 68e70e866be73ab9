from __future__ import annotations

from sqlalchemy import Table, select
from sqlalchemy.engine import Connection, RowMapping

from fingraph.access import ensure_account
from fingraph.accounts import fetch_account
from fingraph.enums import AccountType
from fingraph.errors import ForbiddenException
from fingraph.tokens import JwtPayload


def transaction_filters(table: Table, args) -> list:
    """WHERE clauses shared by every ``*Transactions`` list query."""
    conditions = [table.c.is_delete.is_(False), table.c.account_id == args.account_id]
    if getattr(args, "name", None):
        conditions.append(table.c.name.ilike(f"%{args.name}%"))
    if getattr(args, "note", None):
        conditions.append(table.c.note.ilike(f"%{args.note}%"))
    if getattr(args, "type", None):
        conditions.append(table.c.type == args.type.value)
    if getattr(args, "symbol", None):
        conditions.append(table.c.symbol == args.symbol.strip().upper())
    if getattr(args, "is_complete", None) is not None:
        conditions.append(table.c.is_complete.is_(args.is_complete))
    if args.from_date:
        conditions.append(table.c.transaction_date >= args.from_date)
    if args.to_date:
        conditions.append(table.c.transaction_date <= args.to_date)
    return conditions


def load_owned_transaction(
    conn: Connection,
    caller: JwtPayload,
    table: Table,
    transaction_id: int,
    not_found_message: str,
    account_type: AccountType | None = None,
) -> tuple[RowMapping, RowMapping]:
    """Return ``(transaction, account)`` for an active transaction the caller may touch."""
    transaction = (
        conn.execute(select(table).where(table.c.id == transaction_id, table.c.is_delete.is_(False)))
        .mappings()
        .first()
    )
    if not transaction:
        raise ForbiddenException(not_found_message)
    account = ensure_account(caller, fetch_account(conn, transaction["account_id"]), account_type)
    return transaction, account
