from __future__ import annotations

from enum import Enum

import strawberry


class ValidatedEnum(str, Enum):
    @classmethod
    def validate(cls, value: str | Enum) -> "ValidatedEnum":
        if isinstance(value, cls):
            return value
        raw = value.value if isinstance(value, Enum) else value
        normalized = str(raw).strip().upper()
        try:
            return cls(normalized)
        except ValueError as exc:
            raise ValueError(f"Invalid {cls.__name__}: {raw}") from exc


@strawberry.enum(description="Account kind")
class AccountType(ValidatedEnum):
    BANK = "BANK"
    STOCK = "STOCK"
    COIN = "COIN"
    ETC = "ETC"
    LIABILITIES = "LIABILITIES"


@strawberry.enum(description="ISO 4217 currency code")
class CurrencyType(ValidatedEnum):
    KRW = "KRW"
    USD = "USD"
    EUR = "EUR"
    JPY = "JPY"
    CNY = "CNY"
    GBP = "GBP"
    AUD = "AUD"
    CAD = "CAD"
    CHF = "CHF"
    HKD = "HKD"
    SGD = "SGD"
    SEK = "SEK"
    NOK = "NOK"
    MXN = "MXN"
    NZD = "NZD"
    TRY = "TRY"
    BRL = "BRL"
    TWD = "TWD"
    DKK = "DKK"
    PLN = "PLN"
    THB = "THB"
    ILS = "ILS"
    PHP = "PHP"
    CZK = "CZK"
    AED = "AED"
    COP = "COP"
    SAR = "SAR"
    CLP = "CLP"
    MYR = "MYR"
    RON = "RON"


@strawberry.enum(description="Cash balance row or per-symbol holding")
class SummaryType(ValidatedEnum):
    CASH = "CASH"
    SUMMARY = "SUMMARY"


@strawberry.enum
class TransactionType(ValidatedEnum):
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"


@strawberry.enum
class UserRole(ValidatedEnum):
    USER = "USER"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"


@strawberry.enum
class UserState(ValidatedEnum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    PENDING = "PENDING"
    SUSPENDED = "SUSPENDED"
    BANNED = "BANNED"
    DORMANT = "DORMANT"
    DELETED = "DELETED"


@strawberry.enum
class LocationType(ValidatedEnum):
    KR = "KR"
    US = "US"
    SG = "SG"
    ETC = "ETC"


@strawberry.enum
class TokenType(ValidatedEnum):
    ACCESS = "ACCESS"
    REFRESH = "REFRESH"


CASH_ACCOUNT_TYPES = frozenset({AccountType.BANK, AccountType.STOCK, AccountType.COIN})


def transaction_sign(value: TransactionType | str) -> int:
    return 1 if TransactionType.validate(value) is TransactionType.DEPOSIT else -1
