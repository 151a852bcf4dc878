# services/yahoo_service.py
"""
Yahoo Finance quotes (stocks, ETFs, funds and crypto via *-USD pairs) and
symbol search. No API key; uses the public chart and search endpoints.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

import httpx

from schemas.symbol import SymbolSuggestion
from services.cache.cache_backend import cache_get, cache_get_many, cache_set, cache_set_many
from utils.common_helpers import safe_float, safe_json

logger = logging.getLogger(__name__)

CHART_URL = "https://query1.finance.yahoo.com/v8/finance/chart/{symbol}"
SEARCH_URL = "https://query1.finance.yahoo.com/v1/finance/search"

HEADERS = {
    "User-Agent": "CapTrack/1.0",
    "Accept": "application/json,text/plain,*/*",
}

TTL_QUOTE_SEC = 60
TTL_SEARCH_SEC = 300

_SEARCH_TYPES = {
    "EQUITY": "stock",
    "ETF": "etf",
    "CRYPTOCURRENCY": "crypto",
    "MUTUALFUND": "fund",
}


class YahooPriceError(Exception):
    """A single symbol's quote could not be produced."""


@dataclass(frozen=True)
class Quote:
    symbol: str  # Yahoo symbol, e.g. AAPL, BTC-USD, USDINR=X
    price: float
    currency: str
    timestamp: int  # unix ms
    name: Optional[str] = None
    previous_close: Optional[float] = None
    # percent value: 1.23 means +1.23%
    day_change_percent: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Quote":
        return cls(**d)


def to_yahoo_symbol(symbol: str, asset_type: Optional[str] = None) -> str:
    """
    Internal symbol -> Yahoo symbol.
      stocks/ETFs: AAPL -> AAPL
      crypto:      BTC  -> BTC-USD (ETH-USD stays as-is)
    """
    s = (symbol or "").upper().strip()
    if not s:
        return s
    if asset_type == "crypto" and "-" not in s:
        return f"{s}-USD"
    return s


def _ck_quote(yahoo_symbol: str) -> str:
    return f"YAHOO:QUOTE:{yahoo_symbol}"


def _ck_search(query: str) -> str:
    return f"YAHOO:SEARCH:{query.strip()}"


def parse_chart_payload(yahoo_symbol: str, data: Optional[Dict[str, Any]]) -> Quote:
    """Turn a /v8/finance/chart JSON body into a Quote (latest non-null close)."""
    if data is None:
        raise YahooPriceError(f"Yahoo JSON parse failed for {yahoo_symbol}")

    results = (data.get("chart") or {}).get("result") or []
    result = results[0] if results and isinstance(results[0], dict) else None
    if result is None:
        raise YahooPriceError(f"No chart result for {yahoo_symbol}")

    meta = result.get("meta") or {}
    timestamps = result.get("timestamp") or []
    quotes = (result.get("indicators") or {}).get("quote") or [{}]
    closes = (quotes[0] or {}).get("close") or []

    if not timestamps or not closes:
        raise YahooPriceError(f"No price data for {yahoo_symbol}")

    idx = min(len(timestamps), len(closes)) - 1
    while idx >= 0 and safe_float(closes[idx]) is None:
        idx -= 1
    if idx < 0:
        raise YahooPriceError(f"All prices null for {yahoo_symbol}")

    previous_close = next(
        (
            v
            for v in (
                safe_float(meta.get("previousClose")),
                safe_float(meta.get("regularMarketPreviousClose")),
                safe_float(meta.get("chartPreviousClose")),
            )
            if v is not None
        ),
        None,
    )

    return Quote(
        symbol=yahoo_symbol,
        name=meta.get("shortName") or meta.get("longName"),
        price=float(closes[idx]),
        currency=meta.get("currency") or "USD",
        previous_close=previous_close,
        day_change_percent=safe_float(meta.get("regularMarketChangePercent")),
        timestamp=int(timestamps[idx]) * 1000,
    )


class YahooPriceService:
    def __init__(
        self,
        timeout: float = 8.0,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        cache_ttl_sec: int = TTL_QUOTE_SEC,
    ):
        self.timeout = timeout
        self._transport = transport
        self.cache_ttl_sec = cache_ttl_sec

    @asynccontextmanager
    async def _client(self, client: Optional[httpx.AsyncClient] = None):
        if client is not None:
            yield client
        else:
            async with httpx.AsyncClient(
                timeout=self.timeout, headers=HEADERS, transport=self._transport
            ) as c:
                yield c

    # ---------- Single quote ----------
    async def get_quote(
        self,
        symbol: str,
        asset_type: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> Quote:
        yahoo_symbol = to_yahoo_symbol(symbol, asset_type)
        if not yahoo_symbol:
            raise YahooPriceError("Symbol is required")

        # FX pairs (USDINR=X) often come back empty at 1m; daily bars are reliable
        is_fx = asset_type == "fx"
        params = {"range": "5d" if is_fx else "1d", "interval": "1d" if is_fx else "1m"}

        async with self._client(client) as c:
            try:
                r = await c.get(CHART_URL.format(symbol=yahoo_symbol), params=params)
            except httpx.HTTPError as e:
                raise YahooPriceError(f"Yahoo request failed for {yahoo_symbol}: {e}") from e

        if r.status_code >= 400:
            logger.warning("yahoo request failed symbol=%s status=%s", yahoo_symbol, r.status_code)
            raise YahooPriceError(f"Yahoo request failed for {yahoo_symbol}")

        return parse_chart_payload(yahoo_symbol, safe_json(r))

    # ---------- Batch quotes ----------
    async def get_quotes(
        self,
        assets: Iterable[Tuple[str, Optional[str]]],  # (symbol, asset_type)
        client: Optional[httpx.AsyncClient] = None,
    ) -> List[Quote]:
        """
        Fetch quotes concurrently. Fails soft: a symbol that errors is logged
        and left out; the others are still returned.
        """
        wanted: Dict[str, Tuple[str, Optional[str]]] = {}
        for symbol, asset_type in assets:
            ys = to_yahoo_symbol(symbol, asset_type)
            if ys and ys not in wanted:
                wanted[ys] = (symbol, asset_type)
        if not wanted:
            return []

        found: Dict[str, Quote] = {}
        if self.cache_ttl_sec > 0:
            cached = cache_get_many([_ck_quote(ys) for ys in wanted])
            for ys in wanted:
                payload = cached.get(_ck_quote(ys).upper())
                if isinstance(payload, dict):
                    found[ys] = Quote.from_dict(payload)

        missing = [ys for ys in wanted if ys not in found]
        if missing:
            async with self._client(client) as c:
                results = await asyncio.gather(
                    *(self.get_quote(*wanted[ys], client=c) for ys in missing),
                    return_exceptions=True,
                )

            fresh: Dict[str, Any] = {}
            for ys, res in zip(missing, results):
                if isinstance(res, BaseException):
                    logger.warning("yahoo quote failed symbol=%s error=%s", ys, res)
                    continue
                found[ys] = res
                fresh[_ck_quote(ys)] = res.to_dict()

            if fresh and self.cache_ttl_sec > 0:
                cache_set_many(fresh, ttl_seconds=self.cache_ttl_sec)

        return [found[ys] for ys in wanted if ys in found]

    # ---------- Symbol search ----------
    async def search_symbols(
        self,
        query: str,
        client: Optional[httpx.AsyncClient] = None,
    ) -> List[SymbolSuggestion]:
        """Autocomplete suggestions. Never raises: any upstream problem yields []."""
        q = (query or "").strip()
        if not q:
            return []

        cached = cache_get(_ck_search(q)) if self.cache_ttl_sec > 0 else None
        if isinstance(cached, list):
            return [SymbolSuggestion(**item) for item in cached]

        async with self._client(client) as c:
            try:
                r = await c.get(SEARCH_URL, params={"q": q, "quotesCount": 10, "newsCount": 0})
            except httpx.HTTPError as e:
                logger.warning("yahoo search failed error=%s", e)
                return []

        data = safe_json(r) if r.status_code < 400 else None
        if data is None:
            return []

        out: List[SymbolSuggestion] = []
        for item in data.get("quotes") or []:
            if not isinstance(item, dict) or not item.get("symbol") or not item.get("shortname"):
                continue
            out.append(
                SymbolSuggestion(
                    symbol=item["symbol"],
                    name=item["shortname"],
                    type=_SEARCH_TYPES.get(item.get("quoteType") or "", "other"),
                    exchange=item.get("exchange"),
                )
            )

        if self.cache_ttl_sec > 0:
            cache_set(_ck_search(q), [s.model_dump() for s in out], ttl_seconds=TTL_SEARCH_SEC)
        return out
