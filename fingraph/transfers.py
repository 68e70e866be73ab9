from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Mapping

from sqlalchemy import insert, select, update
from sqlalchemy.engine import Connection, Engine, RowMapping

from fingraph.access import ensure_owner
from fingraph.accounts import fetch_account
from fingraph.bank_transactions import apply_bank_effect, save_bank_totals
from fingraph.currency_conversion import ZERO
from fingraph.db import accounts, bank_summaries, bank_transactions
from fingraph.enums import CASH_ACCOUNT_TYPES, AccountType, SummaryType, TransactionType
from fingraph.errors import ErrorMessage, ValidationException
from fingraph.holdings import KINDS as HOLDING_KINDS
from fingraph.holdings import TRANSFER_SYMBOL
from fingraph.payloads import AccountsByCurrencyPayload, CreateTransferPayload, parse_payload
from fingraph.tokens import JwtPayload

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransferTransaction:
    id: int
    account_id: int
    amount: Decimal
    type: TransactionType
    transaction_date: datetime | None
    description: str


@dataclass(frozen=True)
class TransferResult:
    success: bool
    from_transaction: TransferTransaction
    to_transaction: TransferTransaction
    message: str


@dataclass(frozen=True)
class AccountWithBalance:
    id: int
    nick_name: str | None
    type: AccountType
    currency: str
    balance: Decimal
    is_delete: bool


def cash_summary(conn: Connection, account: Mapping) -> RowMapping | None:
    """The row holding an account's spendable cash, or ``None`` for non-cash accounts."""
    account_type = AccountType.validate(account["type"])
    if account_type is AccountType.BANK:
        table = bank_summaries
        conditions = [table.c.account_id == account["id"]]
    elif account_type in HOLDING_KINDS:
        table = HOLDING_KINDS[account_type].summaries
        conditions = [table.c.account_id == account["id"], table.c.type == SummaryType.CASH.value]
    else:
        return None
    return conn.execute(select(table).where(*conditions, table.c.is_delete.is_(False))).mappings().first()


def cash_balance(account_type: AccountType | str, summary: Mapping) -> Decimal:
    if AccountType.validate(account_type) is AccountType.BANK:
        return summary["balance"] or ZERO
    return summary["amount"] or ZERO


def _book_leg(
    conn: Connection,
    account: Mapping,
    summary: Mapping,
    transaction_type: TransactionType,
    amount: Decimal,
    when: datetime,
    name: str,
) -> TransferTransaction:
    account_type = AccountType.validate(account["type"])
    if account_type is AccountType.BANK:
        table = bank_transactions
        values = {}
        save_bank_totals(conn, summary["id"], apply_bank_effect(summary, transaction_type, amount))
    else:
        kind = HOLDING_KINDS[account_type]
        table = kind.transactions
        values = {"symbol": TRANSFER_SYMBOL, "quantity": ZERO}
        sign = 1 if transaction_type is TransactionType.DEPOSIT else -1
        conn.execute(
            update(kind.summaries)
            .where(kind.summaries.c.id == summary["id"])
            .values(amount=(summary["amount"] or ZERO) + sign * amount)
        )

    row = (
        conn.execute(
            insert(table)
            .values(
                account_id=account["id"],
                name=name,
                amount=amount,
                type=transaction_type.value,
                currency=summary["currency"],
                transaction_date=when,
                **values,
            )
            .returning(*table.c)
        )
        .mappings()
        .one()
    )
    return TransferTransaction(
        id=row["id"],
        account_id=row["account_id"],
        amount=row["amount"],
        type=TransactionType.validate(row["type"]),
        transaction_date=row["transaction_date"],
        description=row["name"] or "",
    )


def transfer_balance(engine: Engine, caller: JwtPayload, data) -> TransferResult:
    """Move cash between two accounts of the same currency in one transaction."""
    payload = parse_payload(CreateTransferPayload, data)
    when = payload.transaction_date or datetime.now()

    with engine.begin() as conn:
        source = fetch_account(conn, payload.from_account_id)
        target = fetch_account(conn, payload.to_account_id)
        if not source or not target:
            raise ValidationException(ErrorMessage.MSG_NOT_FOUND_ACCOUNT)
        ensure_owner(caller, source["user_id"])
        ensure_owner(caller, target["user_id"])

        source_summary = cash_summary(conn, source)
        target_summary = cash_summary(conn, target)
        if not source_summary or not target_summary:
            raise ValidationException(ErrorMessage.MSG_NOT_CASH_TYPE_SUMMARY)
        if source_summary["currency"] != target_summary["currency"]:
            raise ValidationException(ErrorMessage.MSG_CURRENCY_MISMATCH)
        if cash_balance(source["type"], source_summary) < payload.amount:
            raise ValidationException(ErrorMessage.MSG_INSUFFICIENT_BALANCE)

        withdrawal = _book_leg(
            conn,
            source,
            source_summary,
            TransactionType.WITHDRAWAL,
            payload.amount,
            when,
            payload.description or f"Transfer to {target['nick_name']}",
        )
        deposit = _book_leg(
            conn,
            target,
            target_summary,
            TransactionType.DEPOSIT,
            payload.amount,
            when,
            payload.description or f"Transfer from {source['nick_name']}",
        )

    logger.info(
        "balance_transfer from_account_id=%s to_account_id=%s amount=%s user_id=%s",
        payload.from_account_id,
        payload.to_account_id,
        payload.amount,
        caller.id,
    )
    return TransferResult(
        success=True,
        from_transaction=withdrawal,
        to_transaction=deposit,
        message=ErrorMessage.MSG_TRANSFER_COMPLETED,
    )


def accounts_by_currency(engine: Engine, caller: JwtPayload, data) -> list[AccountWithBalance]:
    payload = parse_payload(AccountsByCurrencyPayload, data)
    conditions = [accounts.c.is_delete.is_(False), accounts.c.type.in_([t.value for t in CASH_ACCOUNT_TYPES])]
    if not caller.is_admin:
        conditions.append(accounts.c.user_id == caller.id)

    result = []
    with engine.begin() as conn:
        rows = conn.execute(select(accounts).where(*conditions).order_by(accounts.c.id)).mappings().all()
        for account in rows:
            summary = cash_summary(conn, account)
            if not summary or summary["currency"] != payload.currency.value:
                continue
            result.append(
                AccountWithBalance(
                    id=account["id"],
                    nick_name=account["nick_name"],
                    type=AccountType.validate(account["type"]),
                    currency=summary["currency"],
                    balance=cash_balance(account["type"], summary),
                    is_delete=account["is_delete"],
                )
            )
    result.sort(key=lambda item: item.balance, reverse=True)
    return result
