# services/portfolio/dashboard_service.py
"""
Dashboard read model: derive positions once from stored trades, then enrich
them with live quotes and FX so the client can show market value, P&L and
totals in the user's base currency.

Missing quotes or FX rates never fail the request; the affected fields are
left as None and `price_status` / `fx_ready` tell the client what is missing.
"""
from __future__ import annotations

import logging
import time
from math import fsum
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from schemas.portfolio import DashboardOut, DashboardPosition, DashboardTotals, PositionOut
from services.currency_service import FxRateCache, fx_factor_to_base, normalize_currency, resolve_base_currency
from services.portfolio.positions import DerivePositionsOptions, Position, derive_positions
from services.settings_service import ensure_user_bootstrap, get_settings, normalize_platforms
from services.trade_service import list_trades, to_trade_like
from services.yahoo_service import Quote, YahooPriceService, to_yahoo_symbol
from utils.common_helpers import mul_opt, safe_div

logger = logging.getLogger(__name__)


def load_positions(
    db: Session,
    portfolio_id: int,
    *,
    platform: Optional[str] = None,
    options: Optional[DerivePositionsOptions] = None,
) -> List[Position]:
    rows = list_trades(db, portfolio_id, platform=platform)
    return derive_positions([to_trade_like(r) for r in rows], options)


def enrich_position(
    p: Position,
    quote: Optional[Quote],
    factor: Optional[float],
) -> DashboardPosition:
    price = quote.price if quote else None
    prev_close = quote.previous_close if quote else None

    if quote and quote.day_change_percent is not None:
        day_change_pct = quote.day_change_percent / 100.0
    elif price is not None and prev_close:
        day_change_pct = (price - prev_close) / prev_close
    else:
        day_change_pct = None

    market_value = mul_opt(p.quantity, price)
    unrealized = market_value - p.cost_basis if market_value is not None else None
    day_pnl = (price - prev_close) * p.quantity if price is not None and prev_close is not None else None
    prev_close_value = mul_opt(prev_close, p.quantity)

    return DashboardPosition(
        **PositionOut.from_position(p).model_dump(),
        yahoo_symbol=to_yahoo_symbol(p.asset.symbol, p.asset.type),
        display_name=quote.name if quote else None,
        live_price=price,
        live_currency=(quote.currency if quote else None) or p.currency,
        quote_timestamp=quote.timestamp if quote else None,
        market_value=market_value,
        unrealized=unrealized,
        unrealized_pct=safe_div(unrealized, p.cost_basis),
        prev_close=prev_close,
        day_change_pct=day_change_pct,
        day_pnl=day_pnl,
        prev_close_value=prev_close_value,
        cost_basis_base=mul_opt(p.cost_basis, factor),
        market_value_base=mul_opt(market_value, factor),
        unrealized_base=mul_opt(unrealized, factor),
        day_pnl_base=mul_opt(day_pnl, factor),
        prev_close_value_base=mul_opt(prev_close_value, factor),
    )


def compute_totals(items: Iterable[DashboardPosition]) -> DashboardTotals:
    items = list(items)

    def _sum(attr: str) -> float:
        return fsum(v for v in (getattr(it, attr) for it in items) if v is not None)

    cost_basis = _sum("cost_basis_base")
    unrealized = _sum("unrealized_base")
    day_pnl = _sum("day_pnl_base")
    prev_close_value = _sum("prev_close_value_base")

    return DashboardTotals(
        cost_basis=cost_basis,
        market_value=_sum("market_value_base"),
        unrealized=unrealized,
        unrealized_pct=unrealized / cost_basis if cost_basis else 0.0,
        day_pnl=day_pnl,
        prev_close_value=prev_close_value,
        day_pct=day_pnl / prev_close_value if prev_close_value else 0.0,
    )


def _price_status(items: List[DashboardPosition]) -> str:
    live = sum(1 for it in items if it.live_price is not None)
    if not items or live == 0:
        return "unavailable"
    return "live" if live == len(items) else "mixed"


async def build_dashboard(
    db: Session,
    user_id: int,
    prices: YahooPriceService,
    fx: FxRateCache,
    *,
    platform: Optional[str] = None,
) -> DashboardOut:
    portfolio = ensure_user_bootstrap(db, user_id)
    settings = get_settings(db, user_id)

    base_ccy = resolve_base_currency(settings.base_currency if settings else None)
    platforms = normalize_platforms(settings.platforms if settings else None)
    platform = (platform or "").strip() or None

    positions = load_positions(db, portfolio.id, platform=platform)

    quotes: List[Quote] = []
    quotes_error: Optional[str] = None
    if positions:
        try:
            quotes = await prices.get_quotes([(p.asset.symbol, p.asset.type) for p in positions])
        except Exception as e:
            # the whole batch failed (network down etc.); show positions without prices
            logger.warning("quote batch failed positions=%d error=%s", len(positions), e)
            quotes_error = str(e) or "Failed to fetch quotes"

    quote_by_symbol: Dict[str, Quote] = {q.symbol.upper(): q for q in quotes}

    matched = []
    for p in positions:
        q = quote_by_symbol.get(to_yahoo_symbol(p.asset.symbol, p.asset.type).upper())
        # quote currency wins; the trade currency is the fallback
        ccy = normalize_currency((q.currency if q else None) or p.currency)
        matched.append((p, q, ccy))

    currencies = {ccy for _, _, ccy in matched if ccy}

    rates_to_base: Dict[str, float] = {}
    for ccy in sorted(currencies - {base_ccy}):
        rate = await fx.get_rate(ccy, base_ccy)
        if rate is not None:
            rates_to_base[ccy] = rate

    items = [
        enrich_position(p, q, fx_factor_to_base(ccy, base_ccy, rates_to_base))
        for p, q, ccy in matched
    ]

    has_mixed = len(currencies) > 1
    fx_ready = all(c == base_ccy or c in rates_to_base for c in currencies)

    return DashboardOut(
        portfolio_id=portfolio.id,
        portfolio_name=portfolio.name,
        base_currency=base_ccy,
        platforms=platforms,
        platform=platform,
        positions=items,
        totals=compute_totals(items),
        has_mixed_currencies=has_mixed,
        fx_ready=fx_ready,
        fx_rates=rates_to_base,
        price_status=_price_status(items),
        quotes_error=quotes_error,
        as_of=int(time.time()),
    )
