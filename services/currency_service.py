# services/currency_service.py
"""
FX rates for converting position values into the user's base currency.

FxRateCache is an explicit object (one per app, kept on app.state) holding
(rate, fetched_at) per currency pair. The clock is injectable so TTL
behavior is testable without sleeping.
"""
from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Mapping, Optional, Tuple

import httpx

from services.yahoo_service import YahooPriceError, YahooPriceService

logger = logging.getLogger(__name__)

SUPPORTED_BASE_CURRENCIES = ("USD", "INR")
DEFAULT_BASE_CURRENCY = "USD"

FX_TTL_SEC = int(os.getenv("FX_TTL_SEC", "3600"))

FRANKFURTER_URL = "https://api.frankfurter.app/latest"

# (from_ccy, to_ccy) -> units of to_ccy per 1 from_ccy, or None when unavailable
RateFetcher = Callable[[str, str], Awaitable[Optional[float]]]


def normalize_currency(ccy: Optional[str]) -> str:
    return (ccy or "").strip().upper()


def resolve_base_currency(value: Optional[str]) -> str:
    ccy = normalize_currency(value)
    return ccy if ccy in SUPPORTED_BASE_CURRENCIES else DEFAULT_BASE_CURRENCY


@dataclass(frozen=True)
class _CachedRate:
    rate: float
    fetched_at: float


class FxRateCache:
    def __init__(
        self,
        fetch_rate: RateFetcher,
        ttl_seconds: float = FX_TTL_SEC,
        clock: Callable[[], float] = time.time,
    ):
        self._fetch_rate = fetch_rate
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[Tuple[str, str], _CachedRate] = {}

    async def get_rate(self, from_ccy: str, to_ccy: str) -> Optional[float]:
        """
        Units of `to_ccy` per 1 `from_ccy`. Same currency is always 1.0.
        A fresh cached value is served as-is; failed lookups are not cached.
        """
        src, dst = normalize_currency(from_ccy), normalize_currency(to_ccy)
        if not src or not dst:
            return None
        if src == dst:
            return 1.0

        now = self._clock()
        hit = self._entries.get((src, dst))
        if hit is not None and now - hit.fetched_at < self.ttl_seconds:
            return hit.rate

        rate = await self._fetch_rate(src, dst)
        if rate is None or rate <= 0:
            logger.warning("fx rate unavailable pair=%s%s", src, dst)
            return None

        self._entries[(src, dst)] = _CachedRate(rate=rate, fetched_at=now)
        return rate

    def invalidate(self) -> None:
        self._entries.clear()


async def fetch_frankfurter_rate(
    from_ccy: str,
    to_ccy: str,
    client: Optional[httpx.AsyncClient] = None,
) -> Optional[float]:
    async def _get(c: httpx.AsyncClient) -> Optional[float]:
        r = await c.get(FRANKFURTER_URL, params={"from": from_ccy, "to": to_ccy})
        if r.status_code >= 400:
            return None
        rate = (r.json().get("rates") or {}).get(to_ccy)
        return float(rate) if rate is not None else None

    try:
        if client is not None:
            return await _get(client)
        async with httpx.AsyncClient(timeout=5.0) as c:
            return await _get(c)
    except (httpx.HTTPError, ValueError, TypeError) as e:
        logger.warning("frankfurter fx fetch failed pair=%s%s error=%s", from_ccy, to_ccy, e)
        return None


def make_rate_fetcher(
    prices: YahooPriceService,
    fallback: Optional[RateFetcher] = fetch_frankfurter_rate,
) -> RateFetcher:
    """
    Yahoo first: direct pair (USDINR=X), then the reverse pair inverted
    (INRUSD=X -> 1/x), then the optional fallback source.
    """

    async def _yahoo(pair: str) -> Optional[float]:
        try:
            q = await prices.get_quote(pair, "fx")
        except YahooPriceError as e:
            logger.info("yahoo fx quote failed pair=%s error=%s", pair, e)
            return None
        return q.price if q.price > 0 else None

    async def fetch(from_ccy: str, to_ccy: str) -> Optional[float]:
        direct = await _yahoo(f"{from_ccy}{to_ccy}=X")
        if direct is not None:
            return direct

        reverse = await _yahoo(f"{to_ccy}{from_ccy}=X")
        if reverse is not None:
            return 1.0 / reverse

        if fallback is not None:
            return await fallback(from_ccy, to_ccy)
        return None

    return fetch


def fx_factor_to_base(
    ccy: Optional[str],
    base_currency: str,
    rates_to_base: Mapping[str, float],
) -> Optional[float]:
    """
    Multiplier converting an amount in `ccy` into the base currency.
    Unknown currency (empty) is treated as already in base.
    """
    cur = normalize_currency(ccy)
    base = normalize_currency(base_currency)
    if not cur or cur == base:
        return 1.0
    rate = rates_to_base.get(cur)
    return rate if rate is not None and rate > 0 else None
