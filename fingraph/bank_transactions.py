from __future__ import annotations

import logging
from decimal import Decimal
from typing import Mapping

from sqlalchemy import insert, select, update
from sqlalchemy.engine import Connection, Engine, RowMapping

from fingraph.access import ensure_account
from fingraph.accounts import fetch_account
from fingraph.currency_conversion import ZERO
from fingraph.db import bank_summaries, bank_transactions
from fingraph.enums import AccountType, TransactionType
from fingraph.errors import ErrorMessage, ValidationException
from fingraph.ledger import load_owned_transaction, transaction_filters
from fingraph.pagination import PageInfo, paginate
from fingraph.payloads import (
    CreateBankTransactionPayload,
    TransactionsArgsPayload,
    UpdateBankTransactionPayload,
    parse_payload,
    provided,
)
from fingraph.tokens import JwtPayload

logger = logging.getLogger(__name__)

BALANCE_FIELDS = ("total_deposit_amount", "total_withdrawal_amount", "balance")


def apply_bank_effect(
    totals: Mapping[str, Decimal],
    transaction_type: TransactionType | str,
    amount: Decimal,
    reverse: bool = False,
) -> dict[str, Decimal]:
    """Return new summary totals after booking (or un-booking) one transaction."""
    result = {field: totals[field] or ZERO for field in BALANCE_FIELDS}
    signed = -amount if reverse else amount
    if TransactionType.validate(transaction_type) is TransactionType.DEPOSIT:
        result["total_deposit_amount"] += signed
        result["balance"] += signed
    else:
        result["total_withdrawal_amount"] += signed
        result["balance"] -= signed
    return result


def fetch_bank_summary(conn: Connection, account_id: int) -> RowMapping:
    summary = (
        conn.execute(
            select(bank_summaries).where(
                bank_summaries.c.account_id == account_id,
                bank_summaries.c.is_delete.is_(False),
            )
        )
        .mappings()
        .first()
    )
    if not summary:
        raise ValidationException(ErrorMessage.MSG_NOT_FOUND_BANK_SUMMARY)
    return summary


def save_bank_totals(conn: Connection, summary_id: int, totals: Mapping[str, Decimal]) -> None:
    conn.execute(update(bank_summaries).where(bank_summaries.c.id == summary_id).values(**totals))


def create_bank_transaction(engine: Engine, caller: JwtPayload, data) -> RowMapping:
    payload = parse_payload(CreateBankTransactionPayload, data)
    with engine.begin() as conn:
        ensure_account(caller, fetch_account(conn, payload.account_id), AccountType.BANK)
        summary = fetch_bank_summary(conn, payload.account_id)
        transaction = (
            conn.execute(
                insert(bank_transactions)
                .values(
                    account_id=payload.account_id,
                    name=payload.name,
                    amount=payload.amount,
                    type=payload.type.value,
                    currency=summary["currency"],
                    note=payload.note,
                    transaction_date=payload.transaction_date,
                )
                .returning(*bank_transactions.c)
            )
            .mappings()
            .one()
        )
        save_bank_totals(conn, summary["id"], apply_bank_effect(summary, payload.type, payload.amount))
    return transaction


def update_bank_transaction(engine: Engine, caller: JwtPayload, data) -> RowMapping:
    payload = parse_payload(UpdateBankTransactionPayload, data)
    with engine.begin() as conn:
        existing, _ = load_owned_transaction(
            conn,
            caller,
            bank_transactions,
            payload.id,
            ErrorMessage.MSG_NOT_FOUND_BANK_TRANSACTION,
            AccountType.BANK,
        )
        summary = fetch_bank_summary(conn, existing["account_id"])
        totals = apply_bank_effect(summary, existing["type"], existing["amount"], reverse=True)

        if payload.is_delete:
            values = {"is_delete": True}
        else:
            values = provided(payload, "id", "is_delete")
            if "type" in values:
                values["type"] = values["type"].value
            totals = apply_bank_effect(
                totals,
                values.get("type", existing["type"]),
                values.get("amount", existing["amount"]),
            )

        save_bank_totals(conn, summary["id"], totals)
        if not values:
            return existing
        return (
            conn.execute(
                update(bank_transactions)
                .where(bank_transactions.c.id == existing["id"])
                .values(**values)
                .returning(*bank_transactions.c)
            )
            .mappings()
            .one()
        )


def list_bank_transactions(engine: Engine, caller: JwtPayload, data) -> tuple[list[RowMapping], PageInfo]:
    args = parse_payload(TransactionsArgsPayload, data)
    with engine.begin() as conn:
        ensure_account(caller, fetch_account(conn, args.account_id))
        return paginate(
            conn,
            bank_transactions,
            transaction_filters(bank_transactions, args),
            args.page,
            args.take,
            args.sort_by,
        )


def get_bank_transaction(engine: Engine, caller: JwtPayload, transaction_id: int) -> RowMapping:
    with engine.begin() as conn:
        transaction, _ = load_owned_transaction(
            conn, caller, bank_transactions, transaction_id, ErrorMessage.MSG_NOT_FOUND_BANK_TRANSACTION
        )
    return transaction
