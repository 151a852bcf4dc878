from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

AssetType = Literal["stock", "etf", "mutual_fund", "crypto", "cash"]
TradeSide = Literal["BUY", "SELL"]
TradeSource = Literal["manual", "import", "adjustment"]

DEFAULT_PLATFORM = "Manual"


def _normalize_symbol(value: str) -> str:
    symbol = (value or "").strip().upper()
    if not symbol:
        raise ValueError("Symbol is required")
    if len(symbol) > 32:
        raise ValueError("symbol must be 1-32 characters")
    return symbol


class TradeCreate(BaseModel):
    """
    Validates what a single trade may contain. Portfolio-level rules
    (e.g. selling more than you hold) are handled by position derivation.
    """

    occurred_at: datetime
    symbol: str
    asset_type: AssetType
    asset_name: Optional[str] = None
    side: TradeSide
    quantity: float = Field(gt=0, description="Quantity must be greater than 0")
    price: float = Field(ge=0, description="Price cannot be negative")
    fees: float = Field(default=0.0, ge=0, description="Fees cannot be negative")
    currency: str = "USD"
    platform: Optional[str] = DEFAULT_PLATFORM
    source: TradeSource = "manual"
    notes: Optional[str] = None

    @field_validator("symbol")
    @classmethod
    def validate_symbol(cls, value: str) -> str:
        return _normalize_symbol(value)

    @field_validator("side", mode="before")
    @classmethod
    def upper_side(cls, value):
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, value: str) -> str:
        ccy = (value or "").strip().upper()
        if len(ccy) != 3 or not ccy.isalpha():
            raise ValueError("Currency must be a 3-letter ISO code")
        return ccy

    @field_validator("platform", mode="before")
    @classmethod
    def default_platform(cls, value: Optional[str]) -> str:
        if value is None or not str(value).strip():
            return DEFAULT_PLATFORM
        name = str(value).strip()
        if len(name) > 64:
            raise ValueError("Platform name is too long")
        return name

    @field_validator("notes")
    @classmethod
    def blank_notes(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None


class TradeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    portfolio_id: int
    occurred_at: datetime
    asset_symbol: str
    asset_type: str
    asset_name: Optional[str] = None
    side: str
    quantity: float
    price: float
    fees: float
    currency: str
    platform: Optional[str] = None
    source: str
    notes: Optional[str] = None


class TradePage(BaseModel):
    items: list[TradeOut] = Field(default_factory=list)
    page: int
    page_size: int
    total: int
    total_pages: int
    sort: str
    search: Optional[str] = None
