from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Mapping, Type

from pydantic import BaseModel
from sqlalchemy import Table, insert, select, update
from sqlalchemy.engine import Connection, Engine, RowMapping

from fingraph.access import ensure_account
from fingraph.accounts import fetch_account
from fingraph.currency_conversion import ZERO
from fingraph.db import etc_summaries, etc_transactions, liabilities_summaries, liabilities_transactions
from fingraph.enums import AccountType
from fingraph.errors import ErrorMessage, ValidationException
from fingraph.ledger import load_owned_transaction, transaction_filters
from fingraph.pagination import PageInfo, paginate
from fingraph.payloads import (
    CreateEtcTransactionPayload,
    CreateLiabilitiesTransactionPayload,
    ItemTransactionsArgsPayload,
    UpdateEtcTransactionPayload,
    UpdateLiabilitiesTransactionPayload,
    parse_payload,
    provided,
)
from fingraph.tokens import JwtPayload


@dataclass(frozen=True)
class ItemKind:
    account_type: AccountType
    summaries: Table
    transactions: Table
    create_payload: Type[BaseModel]
    update_payload: Type[BaseModel]
    # Amount columns mirrored into the summary totals.
    totals: tuple[str, str]
    summary_not_found: str
    transaction_not_found: str
    # When the second total is missing on create it starts at the first one.
    second_defaults_to_first: bool = False


ETC = ItemKind(
    account_type=AccountType.ETC,
    summaries=etc_summaries,
    transactions=etc_transactions,
    create_payload=CreateEtcTransactionPayload,
    update_payload=UpdateEtcTransactionPayload,
    totals=("purchase_price", "current_price"),
    summary_not_found=ErrorMessage.MSG_NOT_FOUND_ETC_SUMMARY,
    transaction_not_found=ErrorMessage.MSG_NOT_FOUND_ETC_TRANSACTION,
)

LIABILITIES = ItemKind(
    account_type=AccountType.LIABILITIES,
    summaries=liabilities_summaries,
    transactions=liabilities_transactions,
    create_payload=CreateLiabilitiesTransactionPayload,
    update_payload=UpdateLiabilitiesTransactionPayload,
    totals=("amount", "remaining_amount"),
    summary_not_found=ErrorMessage.MSG_NOT_FOUND_LIABILITIES_SUMMARY,
    transaction_not_found=ErrorMessage.MSG_NOT_FOUND_LIABILITIES_TRANSACTION,
    second_defaults_to_first=True,
)

KINDS = {AccountType.ETC: ETC, AccountType.LIABILITIES: LIABILITIES}


def _fetch_summary(conn: Connection, kind: ItemKind, account_id: int) -> RowMapping:
    table = kind.summaries
    summary = (
        conn.execute(select(table).where(table.c.account_id == account_id, table.c.is_delete.is_(False)))
        .mappings()
        .first()
    )
    if not summary:
        raise ValidationException(kind.summary_not_found)
    return summary


def _shift_totals(
    kind: ItemKind,
    summary: Mapping,
    deltas: Mapping[str, Decimal],
    count_delta: int = 0,
) -> dict:
    values = {field: (summary[field] or ZERO) + deltas.get(field, ZERO) for field in kind.totals}
    values["count"] = (summary["count"] or 0) + count_delta
    return values


def _save_summary(conn: Connection, kind: ItemKind, summary_id: int, values: dict) -> None:
    conn.execute(update(kind.summaries).where(kind.summaries.c.id == summary_id).values(**values))


def _enum_values(values: dict) -> dict:
    if "currency" in values and values["currency"] is not None:
        values["currency"] = values["currency"].value
    return values


def create_item_transaction(engine: Engine, caller: JwtPayload, kind: ItemKind, data) -> RowMapping:
    payload = parse_payload(kind.create_payload, data)
    values = _enum_values(payload.model_dump())
    first, second = kind.totals
    if values.get(second) is None and kind.second_defaults_to_first:
        values[second] = values[first]

    with engine.begin() as conn:
        ensure_account(caller, fetch_account(conn, payload.account_id), kind.account_type)
        summary = _fetch_summary(conn, kind, payload.account_id)
        values["currency"] = values.get("currency") or summary["currency"]
        transaction = (
            conn.execute(insert(kind.transactions).values(**values).returning(*kind.transactions.c))
            .mappings()
            .one()
        )
        deltas = {field: transaction[field] or ZERO for field in kind.totals}
        _save_summary(conn, kind, summary["id"], _shift_totals(kind, summary, deltas, count_delta=1))
    return transaction


def update_item_transaction(engine: Engine, caller: JwtPayload, kind: ItemKind, data) -> RowMapping:
    """Merge provided fields and move the summary totals by the difference.

    ``isDelete`` removes the transaction's amounts and one from the count.
    """
    payload = parse_payload(kind.update_payload, data)
    with engine.begin() as conn:
        existing, _ = load_owned_transaction(
            conn, caller, kind.transactions, payload.id, kind.transaction_not_found, kind.account_type
        )
        summary = _fetch_summary(conn, kind, existing["account_id"])

        if payload.is_delete:
            values = {"is_delete": True}
            deltas = {field: -(existing[field] or ZERO) for field in kind.totals}
            _save_summary(conn, kind, summary["id"], _shift_totals(kind, summary, deltas, count_delta=-1))
        else:
            values = _enum_values(provided(payload, "id", "is_delete"))
            deltas = {
                field: values[field] - (existing[field] or ZERO)
                for field in kind.totals
                if field in values
            }
            if deltas:
                _save_summary(conn, kind, summary["id"], _shift_totals(kind, summary, deltas))

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


def list_item_transactions(
    engine: Engine, caller: JwtPayload, kind: ItemKind, data
) -> tuple[list[RowMapping], PageInfo]:
    args = parse_payload(ItemTransactionsArgsPayload, data)
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


def get_item_transaction(engine: Engine, caller: JwtPayload, kind: ItemKind, transaction_id: int) -> RowMapping:
    with engine.begin() as conn:
        transaction, _ = load_owned_transaction(
            conn, caller, kind.transactions, transaction_id, kind.transaction_not_found
        )
    return transaction
