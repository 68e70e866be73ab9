from __future__ import annotations

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    UniqueConstraint,
    create_engine,
    func,
)
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

metadata = MetaData()

MONEY = Numeric(24, 6)
QUANTITY = Numeric(28, 10)


def _timestamps() -> list[Column]:
    return [
        Column("created_at", DateTime, nullable=False, server_default=func.now()),
        Column(
            "updated_at",
            DateTime,
            nullable=False,
            server_default=func.now(),
            onupdate=func.now(),
        ),
    ]


users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100)),
    Column("password", String(255)),
    Column("email", String(255), unique=True, nullable=False),
    Column("phone", String(50)),
    Column("profile_img", String(500)),
    Column("role", String(20), nullable=False, default="USER"),
    Column("currency", String(3), nullable=False, default="KRW"),
    Column("state", String(20), nullable=False, default="ACTIVE"),
    *_timestamps(),
)

accounts = Table(
    "accounts",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("nick_name", String(255)),
    Column("type", String(20), nullable=False, default="ETC"),
    Column("currency", String(3), nullable=False, default="KRW"),
    Column("note", String(500)),
    Column("is_delete", Boolean, nullable=False, default=False),
    *_timestamps(),
)

bank_summaries = Table(
    "bank_summaries",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("account_id", Integer, ForeignKey("accounts.id"), nullable=False, unique=True),
    Column("name", String(255)),
    Column("account_number", String(100)),
    Column("total_deposit_amount", MONEY, nullable=False, default=0),
    Column("total_withdrawal_amount", MONEY, nullable=False, default=0),
    Column("balance", MONEY, nullable=False, default=0),
    Column("currency", String(3)),
    Column("is_delete", Boolean, nullable=False, default=False),
    *_timestamps(),
)

bank_transactions = Table(
    "bank_transactions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("account_id", Integer, ForeignKey("accounts.id"), nullable=False),
    Column("name", String(255)),
    Column("amount", MONEY, nullable=False, default=0),
    Column("type", String(20), nullable=False),
    Column("currency", String(3)),
    Column("note", String(500)),
    Column("transaction_date", DateTime),
    Column("is_delete", Boolean, nullable=False, default=False),
    *_timestamps(),
)

stock_summaries = Table(
    "stock_summaries",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("account_id", Integer, ForeignKey("accounts.id"), nullable=False),
    Column("name", String(255)),
    Column("account_number", String(100)),
    Column("symbol", String(50)),
    Column("stock_company_code", String(50)),
    Column("quantity", QUANTITY, nullable=False, default=0),
    Column("amount", MONEY, nullable=False, default=0),
    Column("currency", String(3)),
    Column("market", String(50)),
    Column("logo_image_url", String(500)),
    Column("type", String(20), nullable=False, default="SUMMARY"),
    Column("is_delete", Boolean, nullable=False, default=False),
    *_timestamps(),
    UniqueConstraint("account_id", "type", "symbol", name="uq_stock_summaries_account_type_symbol"),
)

stock_transactions = Table(
    "stock_transactions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("account_id", Integer, ForeignKey("accounts.id"), nullable=False),
    Column("name", String(255)),
    Column("symbol", String(50), nullable=False),
    Column("quantity", QUANTITY, nullable=False, default=0),
    Column("amount", MONEY, nullable=False, default=0),
    Column("currency", String(3)),
    Column("type", String(20), nullable=False),
    Column("note", String(500)),
    Column("transaction_date", DateTime),
    Column("is_delete", Boolean, nullable=False, default=False),
    *_timestamps(),
)

coin_summaries = Table(
    "coin_summaries",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("account_id", Integer, ForeignKey("accounts.id"), nullable=False),
    Column("name", String(255)),
    Column("account_number", String(100)),
    Column("symbol", String(50)),
    Column("slug", String(100)),
    Column("quantity", QUANTITY, nullable=False, default=0),
    Column("amount", MONEY, nullable=False, default=0),
    Column("currency", String(3)),
    Column("type", String(20), nullable=False, default="SUMMARY"),
    Column("is_delete", Boolean, nullable=False, default=False),
    *_timestamps(),
    UniqueConstraint(
        "account_id", "type", "symbol", "currency", name="uq_coin_summaries_account_type_symbol_currency"
    ),
)

coin_transactions = Table(
    "coin_transactions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("account_id", Integer, ForeignKey("accounts.id"), nullable=False),
    Column("name", String(255)),
    Column("symbol", String(50), nullable=False),
    Column("quantity", QUANTITY, nullable=False, default=0),
    Column("amount", MONEY, nullable=False, default=0),
    Column("currency", String(3)),
    Column("type", String(20), nullable=False),
    Column("note", String(500)),
    Column("transaction_date", DateTime),
    Column("is_delete", Boolean, nullable=False, default=False),
    *_timestamps(),
)

etc_summaries = Table(
    "etc_summaries",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("account_id", Integer, ForeignKey("accounts.id"), nullable=False, unique=True),
    Column("purchase_price", MONEY, nullable=False, default=0),
    Column("current_price", MONEY, nullable=False, default=0),
    Column("currency", String(3)),
    Column("count", Integer, nullable=False, default=0),
    Column("is_delete", Boolean, nullable=False, default=False),
    *_timestamps(),
)

etc_transactions = Table(
    "etc_transactions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("account_id", Integer, ForeignKey("accounts.id"), nullable=False),
    Column("name", String(255)),
    Column("purchase_price", MONEY, nullable=False, default=0),
    Column("current_price", MONEY),
    Column("operation", String(100)),
    Column("currency", String(3)),
    Column("note", String(500)),
    Column("transaction_date", DateTime),
    Column("is_complete", Boolean, nullable=False, default=False),
    Column("is_delete", Boolean, nullable=False, default=False),
    *_timestamps(),
)

liabilities_summaries = Table(
    "liabilities_summaries",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("account_id", Integer, ForeignKey("accounts.id"), nullable=False, unique=True),
    Column("amount", MONEY, nullable=False, default=0),
    Column("remaining_amount", MONEY, nullable=False, default=0),
    Column("currency", String(3)),
    Column("count", Integer, nullable=False, default=0),
    Column("is_delete", Boolean, nullable=False, default=False),
    *_timestamps(),
)

liabilities_transactions = Table(
    "liabilities_transactions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("account_id", Integer, ForeignKey("accounts.id"), nullable=False),
    Column("name", String(255)),
    Column("amount", MONEY, nullable=False, default=0),
    Column("remaining_amount", MONEY),
    Column("rate", Numeric(10, 4)),
    Column("is_yearly", Boolean, nullable=False, default=True),
    Column("operation", String(100)),
    Column("currency", String(3)),
    Column("note", String(500)),
    Column("transaction_date", DateTime),
    Column("repayment_date", DateTime),
    Column("is_complete", Boolean, nullable=False, default=False),
    Column("is_delete", Boolean, nullable=False, default=False),
    *_timestamps(),
)

exchange_rates = Table(
    "exchange_rates",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("base", String(3), nullable=False),
    Column("exchange_rates", JSON, nullable=False),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

coin_price_history = Table(
    "coin_price_history",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("symbol", String(50), nullable=False),
    Column("currency", String(3), nullable=False),
    Column("price", MONEY, nullable=False),
    Column("market_cap", MONEY),
    Column("volume_change_24h", MONEY),
    Column("last_updated", DateTime),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

stock_price_history = Table(
    "stock_price_history",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("symbol", String(50), nullable=False),
    Column("currency", String(3)),
    Column("base", MONEY),
    Column("close", MONEY),
    Column("volume", MONEY),
    Column("change_type", String(20)),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

rebalancing_goals = Table(
    "rebalancing_goals",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("goal_type", String(50), nullable=False),
    Column("reference_id", String(100), nullable=False, default="0"),
    Column("target_ratio", Numeric(5, 2), nullable=False),
    *_timestamps(),
    UniqueConstraint("user_id", "goal_type", "reference_id", name="uq_rebalancing_goals_user_goal_reference"),
)


def create_db_engine(database_url: str) -> Engine:
    connect_args = {}
    kwargs = {}
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
        if database_url in {"sqlite://", "sqlite:///:memory:"}:
            kwargs["poolclass"] = StaticPool
    return create_engine(database_url, connect_args=connect_args, **kwargs)


def init_db(engine: Engine) -> None:
    metadata.create_all(engine)
