from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from fingraph.enums import CurrencyType

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _get_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def get_system_default_currency() -> str:
    raw = os.getenv("DEFAULT_CURRENCY", CurrencyType.KRW.value)
    try:
        return CurrencyType.validate(raw).value
    except ValueError:
        return CurrencyType.KRW.value


@dataclass(frozen=True)
class Settings:
    port: int = 3100
    environment: str = "local"
    database_url: str = "sqlite:///./fingraph.db"
    frontend_origin: str = "http://localhost:3000"
    default_currency: str = "KRW"
    log_level: str | None = None

    jwt_algorithm: str = "HS256"
    jwt_secret: str | None = None
    jwt_access_private_key: str | None = None
    jwt_access_public_key: str | None = None
    jwt_refresh_private_key: str | None = None
    jwt_refresh_public_key: str | None = None
    jwt_issuer: str = "fingraph"
    jwt_access_expires_in: int = 60 * 60
    jwt_refresh_expires_in: int = 14 * 24 * 60 * 60

    stock_search_api_url: str | None = None
    stock_info_api_url: str | None = None
    stock_price_api_url: str | None = None
    coin_market_cap_api_key: str | None = None
    coin_price_api_url: str | None = None
    exchange_rate_api_key: str | None = None
    exchange_rate_api_url: str | None = None

    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str | None = None
    redis_tls: bool = False
    scheduler_enabled: bool = False

    @property
    def is_local(self) -> bool:
        return self.environment == "local"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


def load_settings() -> Settings:
    return Settings(
        port=_get_int("PORT", 3100),
        environment=os.getenv("APP_ENVIRONMENT", "local"),
        database_url=os.getenv("DATABASE_URL", "sqlite:///./fingraph.db"),
        frontend_origin=os.getenv("FRONTEND_ORIGIN", "http://localhost:3000"),
        default_currency=get_system_default_currency(),
        log_level=os.getenv("LOG_LEVEL"),
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
        jwt_secret=os.getenv("JWT_SECRET"),
        jwt_access_private_key=os.getenv("JWT_ACCESS_PRIVATE_KEY"),
        jwt_access_public_key=os.getenv("JWT_ACCESS_PUBLIC_KEY"),
        jwt_refresh_private_key=os.getenv("JWT_REFRESH_PRIVATE_KEY"),
        jwt_refresh_public_key=os.getenv("JWT_REFRESH_PUBLIC_KEY"),
        jwt_issuer=os.getenv("JWT_ISSUER", "fingraph"),
        jwt_access_expires_in=_get_int("JWT_ACCESS_EXPIRES_IN", 60 * 60),
        jwt_refresh_expires_in=_get_int("JWT_REFRESH_EXPIRES_IN", 14 * 24 * 60 * 60),
        stock_search_api_url=os.getenv("STOCK_SEARCH_API_URL"),
        stock_info_api_url=os.getenv("STOCK_INFO_API_URL"),
        stock_price_api_url=os.getenv("STOCK_PRICE_API_URL"),
        coin_market_cap_api_key=os.getenv("COIN_MARKET_CAP_API_KEY"),
        coin_price_api_url=os.getenv("COIN_PRICE_API_URL"),
        exchange_rate_api_key=os.getenv("EXCHANGE_RATE_API_KEY"),
        exchange_rate_api_url=os.getenv("EXCHANGE_RATE_API_URL"),
        redis_host=os.getenv("REDIS_HOST", "localhost"),
        redis_port=_get_int("REDIS_PORT", 6379),
        redis_password=os.getenv("REDIS_PASSWORD"),
        redis_tls=_get_bool("REDIS_TLS"),
        scheduler_enabled=_get_bool("SCHEDULER_ENABLED"),
    )


def configure_logging(settings: Settings) -> None:
    level_name = settings.log_level or ("INFO" if settings.is_production else "DEBUG")
    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
