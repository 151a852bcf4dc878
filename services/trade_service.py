# services/trade_service.py
from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from models.trade import Trade
from schemas.trade import DEFAULT_PLATFORM, TradeCreate, TradePage, TradeOut
from services.portfolio.positions import AssetRef, TradeLike

logger = logging.getLogger(__name__)

PAGE_SIZE = 20

_SORT_COLUMNS = {
    "date": Trade.occurred_at,
    "asset": Trade.asset_symbol,
    "qty": Trade.quantity,
    "price": Trade.price,
}
DEFAULT_SORT = ("date", "desc")


class TradeNotFoundError(Exception):
    """No trade with that id in the given portfolio."""


def _as_utc(dt: datetime) -> datetime:
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt.astimezone(timezone.utc)


def _apply(trade: Trade, payload: TradeCreate) -> None:
    trade.occurred_at = _as_utc(payload.occurred_at)
    trade.asset_symbol = payload.symbol
    trade.asset_type = payload.asset_type
    trade.asset_name = payload.asset_name
    trade.side = payload.side
    trade.quantity = payload.quantity
    trade.price = payload.price
    trade.fees = payload.fees
    trade.currency = payload.currency
    trade.platform = payload.platform or DEFAULT_PLATFORM
    trade.source = payload.source
    trade.notes = payload.notes


def create_trade(db: Session, portfolio_id: int, payload: TradeCreate) -> Trade:
    trade = Trade(portfolio_id=portfolio_id)
    _apply(trade, payload)
    db.add(trade)
    db.commit()
    db.refresh(trade)
    logger.info("trade_created symbol=%s side=%s", trade.asset_symbol, trade.side)
    return trade


def get_trade(db: Session, portfolio_id: int, trade_id: str) -> Optional[Trade]:
    return (
        db.query(Trade)
        .filter(Trade.id == trade_id, Trade.portfolio_id == portfolio_id)
        .first()
    )


def update_trade(db: Session, portfolio_id: int, trade_id: str, payload: TradeCreate) -> Trade:
    trade = get_trade(db, portfolio_id, trade_id)
    if trade is None:
        raise TradeNotFoundError(trade_id)
    _apply(trade, payload)
    db.commit()
    db.refresh(trade)
    return trade


def delete_trade(db: Session, portfolio_id: int, trade_id: str) -> None:
    trade = get_trade(db, portfolio_id, trade_id)
    if trade is None:
        raise TradeNotFoundError(trade_id)
    db.delete(trade)
    db.commit()


def list_trades(db: Session, portfolio_id: int, platform: Optional[str] = None) -> List[Trade]:
    """All trades of a portfolio, optionally limited to one platform (null counts as Manual)."""
    q = db.query(Trade).filter(Trade.portfolio_id == portfolio_id)
    if platform:
        label = func.coalesce(func.nullif(func.trim(Trade.platform), ""), DEFAULT_PLATFORM)
        q = q.filter(label == platform)
    return q.all()


def parse_sort(sort: Optional[str]) -> Tuple[str, str]:
    """'field:order' -> (field, order); anything unknown falls back to date:desc."""
    if not sort:
        return DEFAULT_SORT
    field, _, order = sort.partition(":")
    field = field if field in _SORT_COLUMNS else DEFAULT_SORT[0]
    order = "asc" if order == "asc" else "desc"
    return field, order


def _escape_like(term: str) -> str:
    """Match % and _ literally in a LIKE pattern."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def list_trades_page(
    db: Session,
    portfolio_id: int,
    *,
    page: int = 1,
    search: Optional[str] = None,
    sort: Optional[str] = None,
    page_size: int = PAGE_SIZE,
) -> TradePage:
    page = max(1, page)
    field, order = parse_sort(sort)
    term = (search or "").strip()

    q = db.query(Trade).filter(Trade.portfolio_id == portfolio_id)
    if term:
        q = q.filter(Trade.asset_symbol.ilike(f"%{_escape_like(term)}%", escape="\\"))

    total = q.count()

    col = _SORT_COLUMNS[field]
    primary = col.asc() if order == "asc" else col.desc()
    rows = (
        q.order_by(primary, Trade.created_at.desc(), Trade.id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )

    return TradePage(
        items=[TradeOut.model_validate(r) for r in rows],
        page=page,
        page_size=page_size,
        total=total,
        total_pages=max(1, math.ceil(total / page_size)),
        sort=f"{field}:{order}",
        search=term or None,
    )


def to_trade_like(row: Trade) -> TradeLike:
    return TradeLike(
        id=row.id,
        occurred_at=row.occurred_at,
        asset=AssetRef(symbol=row.asset_symbol, type=row.asset_type),
        side=row.side,
        quantity=row.quantity,
        price=row.price,
        fees=row.fees,
        currency=row.currency,
    )
