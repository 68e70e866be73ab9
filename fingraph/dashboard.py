"""Net-worth dashboard and rebalancing goals.

Every item is converted into the caller's currency through the latest
exchange-rate snapshot. Items whose currency has no rate, and holdings
without a known price, are skipped with a warning rather than failing the
whole dashboard.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Mapping

from sqlalchemy import Table, insert, select, update
from sqlalchemy.engine import Connection, Engine, RowMapping
from sqlalchemy.exc import IntegrityError

from fingraph.access import resolve_owner
from fingraph.accounts import fetch_latest_rates
from fingraph.currency_conversion import ZERO, RateTable, add_amount, cross_rate
from fingraph.db import (
    accounts,
    bank_summaries,
    coin_summaries,
    etc_transactions,
    liabilities_transactions,
    rebalancing_goals,
    stock_summaries,
)
from fingraph.enums import AccountType, SummaryType
from fingraph.errors import ConflictException
from fingraph.payloads import CreateRebalancingGoalPayload, parse_payload
from fingraph.price_history import latest_prices
from fingraph.summaries import LatestPrice
from fingraph.tokens import JwtPayload

logger = logging.getLogger(__name__)

ASSET = "ASSET"
CASH = "CASH"
LIABILITIES = "LIABILITIES"


@dataclass
class DashboardItem:
    account_id: int
    name: str
    amount: Decimal
    type: AccountType


@dataclass(frozen=True)
class DashboardDetailItem:
    account_id: int
    account_name: str
    name: str
    account_type: AccountType
    asset_type: str
    currency: str | None
    purchase_amount: Decimal
    current_value: Decimal
    current_value_in_default_currency: Decimal
    unrealized_pnl: Decimal = ZERO
    unrealized_pnl_in_default_currency: Decimal = ZERO
    unrealized_pnl_percentage: Decimal = ZERO


@dataclass
class Dashboard:
    asset: list[DashboardItem] = field(default_factory=list)
    liabilities: list[DashboardItem] = field(default_factory=list)
    cash: list[DashboardItem] = field(default_factory=list)
    asset_total_amount: Decimal = ZERO
    liabilities_total_amount: Decimal = ZERO
    cash_total_amount: Decimal = ZERO
    details: list[DashboardDetailItem] = field(default_factory=list)

    def add(self, bucket: str, account_id: int, name: str, account_type: AccountType, amount: Decimal) -> None:
        items = {ASSET: self.asset, CASH: self.cash, LIABILITIES: self.liabilities}[bucket]
        for item in items:
            if item.account_id == account_id:
                item.amount = add_amount(item.amount, amount)
                break
        else:
            items.append(DashboardItem(account_id, name, add_amount(ZERO, amount), account_type))

        if bucket == ASSET:
            self.asset_total_amount = add_amount(self.asset_total_amount, amount)
        elif bucket == CASH:
            self.cash_total_amount = add_amount(self.cash_total_amount, amount)
        else:
            self.liabilities_total_amount = add_amount(self.liabilities_total_amount, amount)


def _rate_or_warn(rates: RateTable, target: str, source: str | None) -> Decimal | None:
    rate = cross_rate(rates, target, source)
    if rate is None:
        logger.warning("No exchange rate for %s; item skipped", source)
    return rate


def _add_cash(
    dashboard: Dashboard,
    rates: RateTable,
    target: str,
    row: Mapping,
    account_type: AccountType,
    value: Decimal | None,
) -> None:
    rate = _rate_or_warn(rates, target, row["currency"])
    if rate is None:
        return
    value = value or ZERO
    in_default = value * rate
    dashboard.add(CASH, row["account_id"], row["account_name"], account_type, in_default)
    dashboard.details.append(
        DashboardDetailItem(
            account_id=row["account_id"],
            account_name=row["account_name"],
            name=f"{row['account_name']} (Cash)",
            account_type=account_type,
            asset_type=CASH,
            currency=row["currency"],
            purchase_amount=ZERO,
            current_value=value,
            current_value_in_default_currency=in_default,
        )
    )


def _add_holding(
    dashboard: Dashboard,
    rates: RateTable,
    target: str,
    row: Mapping,
    account_type: AccountType,
    price: LatestPrice | None,
) -> None:
    if price is None:
        logger.warning("No current price for %s; holding skipped", row["symbol"])
        return
    price_to_default = _rate_or_warn(rates, target, price.currency)
    price_to_summary = _rate_or_warn(rates, row["currency"] or target, price.currency)
    summary_to_default = _rate_or_warn(rates, target, row["currency"])
    if price_to_default is None or price_to_summary is None or summary_to_default is None:
        return

    market_value = (row["quantity"] or ZERO) * price.price
    in_default = market_value * price_to_default
    in_summary = market_value * price_to_summary
    purchase = row["amount"] or ZERO
    pnl = in_summary - purchase

    dashboard.add(ASSET, row["account_id"], row["account_name"], account_type, in_default)
    dashboard.details.append(
        DashboardDetailItem(
            account_id=row["account_id"],
            account_name=row["account_name"],
            name=row["name"] or row["symbol"],
            account_type=account_type,
            asset_type=ASSET,
            currency=row["currency"],
            purchase_amount=purchase,
            current_value=in_summary,
            current_value_in_default_currency=in_default,
            unrealized_pnl=pnl,
            unrealized_pnl_in_default_currency=pnl * summary_to_default,
            unrealized_pnl_percentage=pnl / purchase * 100 if purchase > 0 else ZERO,
        )
    )


def _add_etc(dashboard: Dashboard, rates: RateTable, target: str, row: Mapping) -> None:
    rate = _rate_or_warn(rates, target, row["currency"])
    if rate is None:
        return
    purchase = row["purchase_price"] or ZERO
    current = row["current_price"] or ZERO
    in_default = (current or purchase) * rate
    dashboard.add(ASSET, row["account_id"], row["account_name"], AccountType.ETC, in_default)
    dashboard.details.append(
        DashboardDetailItem(
            account_id=row["account_id"],
            account_name=row["account_name"],
            name=row["name"] or row["account_name"],
            account_type=AccountType.ETC,
            asset_type=ASSET,
            currency=row["currency"],
            purchase_amount=purchase,
            current_value=current,
            current_value_in_default_currency=in_default,
            unrealized_pnl=current - purchase,
            unrealized_pnl_in_default_currency=in_default - purchase * rate,
            unrealized_pnl_percentage=(current - purchase) / purchase * 100 if purchase > 0 else ZERO,
        )
    )


def _add_liability(dashboard: Dashboard, rates: RateTable, target: str, row: Mapping) -> None:
    rate = _rate_or_warn(rates, target, row["currency"])
    if rate is None:
        return
    outstanding = row["remaining_amount"] or row["amount"] or ZERO
    in_default = outstanding * rate
    dashboard.add(LIABILITIES, row["account_id"], row["account_name"], AccountType.LIABILITIES, in_default)
    dashboard.details.append(
        DashboardDetailItem(
            account_id=row["account_id"],
            account_name=row["account_name"],
            name=row["name"] or row["account_name"],
            account_type=AccountType.LIABILITIES,
            asset_type=LIABILITIES,
            currency=row["currency"],
            purchase_amount=row["amount"] or ZERO,
            current_value=row["remaining_amount"] or ZERO,
            current_value_in_default_currency=-in_default,
        )
    )


def build_dashboard(
    rates: RateTable | None,
    default_currency: str,
    coin_rows: Iterable[Mapping] = (),
    stock_rows: Iterable[Mapping] = (),
    bank_rows: Iterable[Mapping] = (),
    etc_rows: Iterable[Mapping] = (),
    liabilities_rows: Iterable[Mapping] = (),
    coin_prices: Mapping[str, LatestPrice] | None = None,
    stock_prices: Mapping[str, LatestPrice] | None = None,
) -> Dashboard:
    """Aggregate owned rows into dashboard buckets.

    Rows carry their table's columns plus ``account_name``.
    """
    dashboard = Dashboard()
    if rates is None:
        return dashboard

    for account_type, rows, prices in (
        (AccountType.COIN, coin_rows, coin_prices or {}),
        (AccountType.STOCK, stock_rows, stock_prices or {}),
    ):
        for row in rows:
            if row["type"] == SummaryType.CASH.value:
                _add_cash(dashboard, rates, default_currency, row, account_type, row["amount"])
            else:
                _add_holding(dashboard, rates, default_currency, row, account_type, prices.get(row["symbol"]))
    for row in bank_rows:
        _add_cash(dashboard, rates, default_currency, row, AccountType.BANK, row["balance"])
    for row in etc_rows:
        _add_etc(dashboard, rates, default_currency, row)
    for row in liabilities_rows:
        _add_liability(dashboard, rates, default_currency, row)
    return dashboard


def _owned_rows(conn: Connection, table: Table, user_id: int) -> list[RowMapping]:
    stmt = (
        select(table, accounts.c.nick_name.label("account_name"))
        .join(accounts, accounts.c.id == table.c.account_id)
        .where(accounts.c.user_id == user_id, accounts.c.is_delete.is_(False), table.c.is_delete.is_(False))
        .order_by(table.c.id)
    )
    return list(conn.execute(stmt).mappings().all())


def _holding_symbols(rows: Iterable[Mapping]) -> set[str]:
    return {row["symbol"] for row in rows if row["type"] == SummaryType.SUMMARY.value and row["symbol"]}


def dashboard(engine: Engine, caller: JwtPayload) -> Dashboard:
    with engine.begin() as conn:
        rates = fetch_latest_rates(conn)
        if rates is None:
            return Dashboard()
        coin_rows = _owned_rows(conn, coin_summaries, caller.id)
        stock_rows = _owned_rows(conn, stock_summaries, caller.id)
        bank_rows = _owned_rows(conn, bank_summaries, caller.id)
        etc_rows = _owned_rows(conn, etc_transactions, caller.id)
        liabilities_rows = _owned_rows(conn, liabilities_transactions, caller.id)

    return build_dashboard(
        rates,
        caller.currency,
        coin_rows=coin_rows,
        stock_rows=stock_rows,
        bank_rows=bank_rows,
        etc_rows=etc_rows,
        liabilities_rows=liabilities_rows,
        coin_prices=latest_prices(engine, AccountType.COIN, _holding_symbols(coin_rows)),
        stock_prices=latest_prices(engine, AccountType.STOCK, _holding_symbols(stock_rows)),
    )


def list_rebalancing_goals(engine: Engine, caller: JwtPayload) -> list[RowMapping]:
    with engine.begin() as conn:
        return list(
            conn.execute(
                select(rebalancing_goals)
                .where(rebalancing_goals.c.user_id == caller.id)
                .order_by(rebalancing_goals.c.created_at.desc(), rebalancing_goals.c.id.desc())
            )
            .mappings()
            .all()
        )


def update_rebalancing_target(engine: Engine, caller: JwtPayload, data) -> RowMapping:
    payload = parse_payload(CreateRebalancingGoalPayload, data)
    owner_id = resolve_owner(caller, payload.user_id)
    reference_id = payload.reference_id or "0"
    key = (
        rebalancing_goals.c.user_id == owner_id,
        rebalancing_goals.c.goal_type == payload.goal_type,
        rebalancing_goals.c.reference_id == reference_id,
    )
    try:
        with engine.begin() as conn:
            existing = conn.execute(select(rebalancing_goals.c.id).where(*key)).scalar()
            if existing is None:
                stmt = insert(rebalancing_goals).values(
                    user_id=owner_id,
                    goal_type=payload.goal_type,
                    reference_id=reference_id,
                    target_ratio=payload.target_ratio,
                )
            else:
                stmt = (
                    update(rebalancing_goals)
                    .where(rebalancing_goals.c.id == existing)
                    .values(target_ratio=payload.target_ratio)
                )
            return conn.execute(stmt.returning(*rebalancing_goals.c)).mappings().one()
    except IntegrityError as exc:
        raise ConflictException() from exc
