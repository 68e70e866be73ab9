from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
import json
import logging
from typing import Any, Iterable, Mapping
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from fingraph.errors import ExternalServiceException

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CoinQuote:
    symbol: str
    currency: str
    price: Decimal
    market_cap: Decimal | None
    volume_change_24h: Decimal | None
    last_updated: datetime | None


@dataclass(frozen=True)
class StockQuote:
    symbol: str
    currency: str | None
    base: Decimal | None
    close: Decimal | None
    volume: Decimal | None
    change_type: str | None


@dataclass(frozen=True)
class StockProfile:
    symbol: str
    product_code: str
    stock_company_code: str | None
    currency: str | None
    market: str | None
    logo_image_url: str | None


def fetch_json(
    url: str,
    headers: Mapping[str, str] | None = None,
    body: Any = None,
    timeout: float = 10,
) -> Any:
    data = None
    request_headers = {"Accept": "application/json", **(headers or {})}
    if body is not None:
        data = json.dumps(body).encode("utf-8")
        request_headers["Content-Type"] = "application/json"
    request = Request(url, data=data, headers=request_headers, method="POST" if data else "GET")
    try:
        with urlopen(request, timeout=timeout) as response:
            return json.load(response)
    except (HTTPError, URLError, TimeoutError, json.JSONDecodeError) as exc:
        logger.error("Request to %s failed: %s", url, exc)
        raise ExternalServiceException(f"Request to external service failed: {exc}") from exc


def _decimal_or_none(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value).replace(",", ""))
    except ArithmeticError:
        return None


def _parse_timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def parse_coin_quotes(payload: Mapping[str, Any], currency: str = "USD") -> list[CoinQuote]:
    """Extract quotes from a CoinMarketCap ``quotes/latest`` response.

    The v2 endpoint maps each symbol to a list of candidates; the first one is
    the listing with the highest market cap. Symbols without a quote in
    ``currency`` are skipped.
    """
    quotes = []
    for symbol, entries in (payload.get("data") or {}).items():
        if isinstance(entries, Mapping):
            entries = [entries]
        if not entries:
            continue
        quote = ((entries[0] or {}).get("quote") or {}).get(currency) or {}
        price = _decimal_or_none(quote.get("price"))
        if price is None:
            logger.warning("Coin %s has no %s quote", symbol, currency)
            continue
        quotes.append(
            CoinQuote(
                symbol=symbol,
                currency=currency,
                price=price,
                market_cap=_decimal_or_none(quote.get("market_cap")),
                volume_change_24h=_decimal_or_none(quote.get("volume_24h")),
                last_updated=_parse_timestamp(quote.get("last_updated")),
            )
        )
    return quotes


def parse_stock_quote(symbol: str, payload: Mapping[str, Any]) -> StockQuote | None:
    prices = ((payload.get("result") or {}).get("prices")) or []
    if not prices:
        return None
    price = prices[0]
    return StockQuote(
        symbol=symbol,
        currency=price.get("currency"),
        base=_decimal_or_none(price.get("base")),
        close=_decimal_or_none(price.get("close")),
        volume=_decimal_or_none(price.get("volume")),
        change_type=price.get("changeType"),
    )


def find_product_code(symbol: str, payload: Mapping[str, Any]) -> str | None:
    for section in payload.get("result") or []:
        if section.get("type") != "PRODUCT" or not section.get("data"):
            continue
        for item in section["data"].get("items") or []:
            if item.get("symbol") == symbol:
                return item.get("productCode")
    return None


@dataclass
class CoinMarketCapClient:
    quotes_url: str
    api_key: str | None = None

    def latest_quotes(self, symbols: Iterable[str]) -> list[CoinQuote]:
        joined = ",".join(sorted(set(symbols)))
        url = f"{self.quotes_url}?{urlencode({'symbol': joined}, safe=',')}"
        headers = {"X-CMC_PRO_API_KEY": self.api_key} if self.api_key else {}
        return parse_coin_quotes(fetch_json(url, headers=headers))


@dataclass
class StockMarketClient:
    search_url: str | None = None
    info_url: str | None = None
    price_url: str | None = None

    def quote(self, symbol: str, stock_company_code: str) -> StockQuote | None:
        if not self.price_url:
            raise ExternalServiceException("Stock price API is not configured.")
        return parse_stock_quote(symbol, fetch_json(f"{self.price_url}{stock_company_code}"))

    def lookup(self, symbol: str) -> StockProfile | None:
        if not self.search_url or not self.info_url:
            return None
        search = fetch_json(
            self.search_url,
            body={"query": symbol, "sections": [{"type": "PRODUCT"}]},
        )
        product_code = find_product_code(symbol, search)
        if not product_code:
            logger.info("No listing found for stock %s", symbol)
            return None
        infos = (fetch_json(f"{self.info_url}{product_code}").get("result")) or []
        if not infos:
            return None
        info = infos[0]
        return StockProfile(
            symbol=symbol,
            product_code=product_code,
            stock_company_code=info.get("code"),
            currency=info.get("currency"),
            market=(info.get("market") or {}).get("code"),
            logo_image_url=info.get("logoImageUrl"),
        )
