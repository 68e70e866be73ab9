from __future__ import annotations

from decimal import Decimal

from sqlalchemy import insert
from sqlalchemy.engine import Engine

from fingraph.accounts import create_account
from fingraph.config import Settings
from fingraph.currency_conversion import RateTable
from fingraph.db import create_db_engine, init_db, users
from fingraph.enums import UserRole
from fingraph.exchange import save_rates
from fingraph.passwords import hash_password
from fingraph.tokens import JwtPayload

PASSWORD = "Passw0rd!"

SETTINGS = Settings(jwt_secret="unit-test-secret", environment="test")


def make_engine() -> Engine:
    engine = create_db_engine("sqlite://")
    init_db(engine)
    return engine


def create_user(
    engine: Engine,
    email: str = "owner@example.com",
    role: UserRole = UserRole.USER,
    currency: str = "KRW",
    state: str = "ACTIVE",
    password: str = PASSWORD,
    name: str | None = None,
) -> JwtPayload:
    with engine.begin() as conn:
        row = (
            conn.execute(
                insert(users)
                .values(
                    email=email,
                    name=name,
                    password=hash_password(password),
                    role=role.value,
                    currency=currency,
                    state=state,
                )
                .returning(*users.c)
            )
            .mappings()
            .one()
        )
    return JwtPayload.from_user(row)


def seed_rates(engine: Engine, base: str = "USD", **rates: str) -> None:
    save_rates(engine, RateTable(base=base, rates={code: Decimal(value) for code, value in rates.items()}))


def bank_account(engine: Engine, caller: JwtPayload, name: str = "Checking", currency: str = "KRW"):
    return create_account(
        engine,
        caller,
        {"type": "BANK", "currency": currency, "bank_summary": {"name": name}},
    )


def stock_account(engine: Engine, caller: JwtPayload, name: str = "Brokerage", currency: str = "USD"):
    return create_account(
        engine,
        caller,
        {"type": "STOCK", "currency": currency, "stock_summary": {"name": name}},
    )


def coin_account(engine: Engine, caller: JwtPayload, name: str = "Exchange", currency: str = "USD"):
    return create_account(
        engine,
        caller,
        {"type": "COIN", "currency": currency, "coin_summary": {"name": name}},
    )


def item_account(engine: Engine, caller: JwtPayload, account_type: str, name: str, currency: str = "KRW"):
    return create_account(engine, caller, {"type": account_type, "currency": currency, "nick_name": name})
