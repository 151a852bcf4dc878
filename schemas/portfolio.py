from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

from services.portfolio.positions import Position

PriceStatus = Literal["live", "mixed", "unavailable"]


class PositionOut(BaseModel):
    symbol: str
    type: str
    currency: Optional[str] = None
    quantity: float
    avg_cost: float
    cost_basis: float
    total_fees: float

    @classmethod
    def from_position(cls, p: Position) -> "PositionOut":
        return cls(
            symbol=p.asset.symbol,
            type=p.asset.type,
            currency=p.currency,
            quantity=p.quantity,
            avg_cost=p.avg_cost,
            cost_basis=p.cost_basis,
            total_fees=p.total_fees,
        )


class DashboardPosition(PositionOut):
    # Transient/computed fields, all None when the live quote is missing
    yahoo_symbol: str
    display_name: Optional[str] = None
    live_price: Optional[float] = None
    live_currency: Optional[str] = None
    quote_timestamp: Optional[int] = None
    market_value: Optional[float] = None
    unrealized: Optional[float] = None
    unrealized_pct: Optional[float] = None
    prev_close: Optional[float] = None
    day_change_pct: Optional[float] = None
    day_pnl: Optional[float] = None
    prev_close_value: Optional[float] = None

    # same values converted to the user's base currency (None if FX unavailable)
    cost_basis_base: Optional[float] = None
    market_value_base: Optional[float] = None
    unrealized_base: Optional[float] = None
    day_pnl_base: Optional[float] = None
    prev_close_value_base: Optional[float] = None


class DashboardTotals(BaseModel):
    cost_basis: float = 0.0
    market_value: float = 0.0
    unrealized: float = 0.0
    unrealized_pct: float = 0.0
    day_pnl: float = 0.0
    prev_close_value: float = 0.0
    day_pct: float = 0.0


class DashboardOut(BaseModel):
    portfolio_id: int
    portfolio_name: str
    base_currency: str
    platforms: list[str] = Field(default_factory=list)
    platform: Optional[str] = None
    positions: list[DashboardPosition] = Field(default_factory=list)
    totals: DashboardTotals
    has_mixed_currencies: bool = False
    fx_ready: bool = True
    fx_rates: dict[str, float] = Field(default_factory=dict)
    price_status: PriceStatus = "unavailable"
    quotes_error: Optional[str] = None
    as_of: int
