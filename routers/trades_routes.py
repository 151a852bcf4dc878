# routers/trades_routes.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from database import get_db
from models.portfolio import Portfolio
from models.user import User
from schemas.trade import TradeCreate, TradeOut, TradePage
from services.settings_service import ensure_user_bootstrap
from services.supabase_auth import get_current_db_user
from services.trade_service import (
    TradeNotFoundError,
    create_trade,
    delete_trade,
    list_trades_page,
    update_trade,
)

router = APIRouter()


def get_current_portfolio(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_db_user),
) -> Portfolio:
    return ensure_user_bootstrap(db, user.id)


@router.get("", response_model=TradePage)
def get_trades(
    page: int = Query(1, ge=1),
    search: Optional[str] = Query(None, max_length=32),
    sort: Optional[str] = Query(None, description="field:order, field in date|asset|qty|price"),
    db: Session = Depends(get_db),
    portfolio: Portfolio = Depends(get_current_portfolio),
):
    return list_trades_page(db, portfolio.id, page=page, search=search, sort=sort)


@router.post("", response_model=TradeOut, status_code=status.HTTP_201_CREATED)
def add_trade(
    payload: TradeCreate,
    db: Session = Depends(get_db),
    portfolio: Portfolio = Depends(get_current_portfolio),
):
    return create_trade(db, portfolio.id, payload)


@router.put("/{trade_id}", response_model=TradeOut)
def edit_trade(
    trade_id: str,
    payload: TradeCreate,
    db: Session = Depends(get_db),
    portfolio: Portfolio = Depends(get_current_portfolio),
):
    try:
        return update_trade(db, portfolio.id, trade_id, payload)
    except TradeNotFoundError:
        raise HTTPException(status_code=404, detail="Trade not found")


@router.delete("/{trade_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_trade(
    trade_id: str,
    db: Session = Depends(get_db),
    portfolio: Portfolio = Depends(get_current_portfolio),
):
    try:
        delete_trade(db, portfolio.id, trade_id)
    except TradeNotFoundError:
        raise HTTPException(status_code=404, detail="Trade not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
