# routers/symbols_routes.py
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query, Request

from middleware.rate_limit import SYMBOL_SEARCH_RATE_LIMIT, limiter
from routers.portfolio_routes import get_price_service
from schemas.symbol import SymbolSuggestion
from services.supabase_auth import get_current_db_user
from services.yahoo_service import YahooPriceService

router = APIRouter()


@router.get("", response_model=List[SymbolSuggestion])
@limiter.limit(SYMBOL_SEARCH_RATE_LIMIT)
async def search_symbols(
    request: Request,
    q: str = Query("", max_length=64),
    _user=Depends(get_current_db_user),
    prices: YahooPriceService = Depends(get_price_service),
):
    """Autocomplete for the trade form. Fails soft to an empty list."""
    return await prices.search_symbols(q)
