from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
import json
from typing import Iterable, Mapping
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import urlopen

ZERO = Decimal("0")
ONE = Decimal("1")
AMOUNT_PLACES = Decimal("0.000001")


class RateProviderUnavailable(RuntimeError):
    """Raised when a rate provider cannot fetch live rates."""


@dataclass(frozen=True)
class RateTable:
    """Rates quoted as units of each currency per one unit of ``base``."""

    base: str
    rates: Mapping[str, Decimal]

    @classmethod
    def from_row(cls, row: Mapping) -> "RateTable":
        raw = row["exchange_rates"] or {}
        return cls(
            base=row["base"],
            rates={normalize_currency(code): _coerce_amount(value) for code, value in raw.items()},
        )

    def rate(self, currency: str | None) -> Decimal | None:
        if not currency:
            return None
        value = self.rates.get(normalize_currency(currency))
        if value is None or value == ZERO:
            return None
        return value

    def rate_or_one(self, currency: str | None) -> Decimal | None:
        """Rate used by the dashboard: a missing currency means the base rate.

        Returns ``None`` when a currency is named but the table has no rate
        for it, so the caller can skip the item.
        """
        if not currency:
            return ONE
        return self.rate(currency)


def cross_rate(table: RateTable, target_currency: str, source_currency: str | None) -> Decimal | None:
    target_rate = table.rate_or_one(target_currency)
    source_rate = table.rate_or_one(source_currency)
    if target_rate is None or source_rate is None:
        return None
    return target_rate / source_rate


def convert_currency(
    table: RateTable | None,
    target_currency: str,
    source_currency: str | None,
    amount: Decimal | int | float | str | None,
) -> Decimal:
    """Convert ``amount`` for display, falling back to zero when rates are missing."""
    if not source_currency or amount is None:
        return ZERO
    coerced_amount = _coerce_amount(amount)
    if normalize_currency(source_currency) == normalize_currency(target_currency):
        return coerced_amount
    if table is None:
        return ZERO
    target_rate = table.rate(target_currency)
    source_rate = table.rate(source_currency)
    if target_rate is None or source_rate is None:
        return ZERO
    return coerced_amount * target_rate / source_rate


def add_amount(left: Decimal | int | float | str, right: Decimal | int | float | str) -> Decimal:
    total = _coerce_amount(left) + _coerce_amount(right)
    return total.quantize(AMOUNT_PLACES, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class StaticRateProvider:
    """Deterministic, in-memory FX rates."""

    base: str
    rates: Mapping[str, Decimal]

    def latest(self, currencies: Iterable[str]) -> RateTable:
        wanted = {normalize_currency(code) for code in currencies}
        return RateTable(
            base=self.base,
            rates={code: value for code, value in self.rates.items() if not wanted or code in wanted},
        )


@dataclass
class OpenExchangeRatesProvider:
    """Live rates from an openexchangerates-compatible ``latest.json`` endpoint."""

    base_url: str
    app_id: str | None = None
    timeout: float = 8

    def latest(self, currencies: Iterable[str]) -> RateTable:
        query = {"symbols": ",".join(sorted({normalize_currency(code) for code in currencies}))}
        if self.app_id:
            query = {"app_id": self.app_id, **query}
        url = f"{self.base_url}?{urlencode(query, safe=',')}"
        try:
            with urlopen(url, timeout=self.timeout) as response:
                payload = json.load(response)
        except (HTTPError, URLError, TimeoutError, json.JSONDecodeError) as exc:
            raise RateProviderUnavailable(f"Exchange rate API unavailable: {exc}") from exc

        rates = payload.get("rates")
        base = payload.get("base")
        if not isinstance(rates, dict) or not base:
            raise RateProviderUnavailable("Exchange rate response missing rates")
        return RateTable(
            base=normalize_currency(base),
            rates={normalize_currency(code): _coerce_amount(value) for code, value in rates.items()},
        )


def normalize_currency(value: str) -> str:
    normalized = value.strip().upper()
    if len(normalized) != 3 or not normalized.isalpha():
        raise ValueError("Currency must be a 3-letter ISO 4217 code.")
    return normalized


def _coerce_amount(amount: Decimal | int | float | str) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))
