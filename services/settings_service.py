# services/settings_service.py
from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Union

from sqlalchemy.orm import Session

from models.portfolio import Portfolio
from models.user_settings import UserSettings
from schemas.trade import DEFAULT_PLATFORM
from services.currency_service import DEFAULT_BASE_CURRENCY, SUPPORTED_BASE_CURRENCIES, normalize_currency

logger = logging.getLogger(__name__)

DEFAULT_PORTFOLIO_NAME = "Main"
MAX_PLATFORM_LEN = 64


def normalize_platforms(raw: Optional[Iterable[str]]) -> List[str]:
    """Trim, drop blanks, dedupe case-insensitively (first spelling wins). Never empty."""
    out: List[str] = []
    seen: set[str] = set()
    for item in raw or []:
        name = str(item).strip()
        if not name:
            continue
        key = name.lower()
        if key in seen:
            continue
        seen.add(key)
        out.append(name)
    return out or [DEFAULT_PLATFORM]


def get_default_portfolio(db: Session, user_id: int) -> Optional[Portfolio]:
    return (
        db.query(Portfolio)
        .filter(Portfolio.user_id == user_id)
        .order_by(Portfolio.created_at.asc(), Portfolio.id.asc())
        .first()
    )


def get_settings(db: Session, user_id: int) -> Optional[UserSettings]:
    return db.get(UserSettings, user_id)


def ensure_user_bootstrap(db: Session, user_id: int) -> Portfolio:
    """Make sure the user has a default portfolio and a settings row. Idempotent."""
    created = False

    portfolio = get_default_portfolio(db, user_id)
    if portfolio is None:
        portfolio = Portfolio(user_id=user_id, name=DEFAULT_PORTFOLIO_NAME)
        db.add(portfolio)
        created = True

    if get_settings(db, user_id) is None:
        db.add(
            UserSettings(
                user_id=user_id,
                base_currency=DEFAULT_BASE_CURRENCY,
                platforms=[DEFAULT_PLATFORM],
            )
        )
        created = True

    if created:
        db.commit()
        db.refresh(portfolio)
        logger.info("user_bootstrap_created")
    return portfolio


def update_base_currency(db: Session, user_id: int, base_currency: str) -> UserSettings:
    ccy = normalize_currency(base_currency)
    if ccy not in SUPPORTED_BASE_CURRENCIES:
        raise ValueError(
            f"base currency must be one of {', '.join(SUPPORTED_BASE_CURRENCIES)}"
        )

    ensure_user_bootstrap(db, user_id)
    settings = get_settings(db, user_id)
    settings.base_currency = ccy
    db.commit()
    db.refresh(settings)
    return settings


def update_platforms(db: Session, user_id: int, platforms: Union[str, Iterable[str]]) -> UserSettings:
    items = platforms.splitlines() if isinstance(platforms, str) else list(platforms)
    cleaned = normalize_platforms(items)
    too_long = [p for p in cleaned if len(p) > MAX_PLATFORM_LEN]
    if too_long:
        raise ValueError("Platform name is too long")

    ensure_user_bootstrap(db, user_id)
    settings = get_settings(db, user_id)
    settings.platforms = cleaned
    db.commit()
    db.refresh(settings)
    return settings
