# routers/portfolio_routes.py
from __future__ import annotations

from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from database import get_db
from models.user import User
from schemas.portfolio import DashboardOut, PositionOut
from services.currency_service import FxRateCache
from services.portfolio.dashboard_service import build_dashboard, load_positions
from services.portfolio.positions import DerivePositionsOptions
from services.settings_service import ensure_user_bootstrap
from services.supabase_auth import get_current_db_user
from services.yahoo_service import YahooPriceService

router = APIRouter()


def get_price_service(request: Request) -> YahooPriceService:
    return request.app.state.prices


def get_fx_cache(request: Request) -> FxRateCache:
    return request.app.state.fx


@router.get("/positions", response_model=List[PositionOut])
def get_positions(
    platform: Optional[str] = Query(None),
    sell_behavior: Literal["clamp", "allow_negative"] = Query("clamp"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_db_user),
):
    portfolio = ensure_user_bootstrap(db, user.id)
    positions = load_positions(
        db,
        portfolio.id,
        platform=(platform or "").strip() or None,
        options=DerivePositionsOptions(sell_behavior=sell_behavior),
    )
    return [PositionOut.from_position(p) for p in positions]


@router.get("/dashboard", response_model=DashboardOut)
async def get_dashboard(
    platform: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_db_user),
    prices: YahooPriceService = Depends(get_price_service),
    fx: FxRateCache = Depends(get_fx_cache),
):
    return await build_dashboard(db, user.id, prices, fx, platform=platform)
