# routers/settings_routes.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from database import get_db
from models.user import User
from schemas.settings import BaseCurrencyUpdate, PlatformsUpdate, SettingsOut
from services.settings_service import (
    ensure_user_bootstrap,
    get_settings,
    update_base_currency,
    update_platforms,
)
from services.supabase_auth import get_current_db_user

router = APIRouter()


@router.get("", response_model=SettingsOut)
def read_settings(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_db_user),
):
    ensure_user_bootstrap(db, user.id)
    return get_settings(db, user.id)


@router.put("/base-currency", response_model=SettingsOut)
def set_base_currency(
    payload: BaseCurrencyUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_db_user),
):
    try:
        return update_base_currency(db, user.id, payload.base_currency)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.put("/platforms", response_model=SettingsOut)
def set_platforms(
    payload: PlatformsUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_db_user),
):
    try:
        return update_platforms(db, user.id, payload.platforms)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
