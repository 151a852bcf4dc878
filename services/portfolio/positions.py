# services/portfolio/positions.py
"""
Pure domain logic: derive current positions from a trade stream.

Average-cost method:
  - BUY increases quantity and cost basis by (qty * price + fees)
  - SELL decreases quantity and reduces cost basis by (sold_qty * avg_cost_before_sell)
    Sell fees are only added to total_fees; they never touch cost basis.

No database, HTTP or clock access in this module. The same input always
produces the same output.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, List, Literal, Optional, Sequence

SellBehavior = Literal["clamp", "allow_negative"]
TradeSide = Literal["BUY", "SELL"]

SKIP_EMPTY_SYMBOL = "empty_symbol"
SKIP_NON_POSITIVE_QUANTITY = "non_positive_quantity"
SKIP_NEGATIVE_PRICE = "negative_price"


@dataclass(frozen=True)
class AssetRef:
    symbol: str
    type: str


@dataclass(frozen=True)
class TradeLike:
    # datetime, ISO-8601 string or epoch seconds
    occurred_at: datetime | str | float
    asset: AssetRef
    side: TradeSide
    quantity: float
    price: float
    fees: Optional[float] = None
    currency: Optional[str] = None
    id: Optional[str] = None


@dataclass(frozen=True)
class Position:
    asset: AssetRef
    currency: Optional[str]
    # current holdings
    quantity: float
    # average cost per unit of the units still held
    avg_cost: float
    # total cost basis of the units still held
    cost_basis: float
    # every fee paid on the asset, buys and sells (informational)
    total_fees: float


@dataclass(frozen=True)
class DerivePositionsOptions:
    """
    sell_behavior:
      - "clamp": a sell can never take quantity below zero; excess is dropped
      - "allow_negative": permit net-short holdings (cost basis is zeroed)
    default_fees: used when a trade carries no fees.
    """

    sell_behavior: SellBehavior = "clamp"
    default_fees: float = 0.0


@dataclass(frozen=True)
class SkippedTrade:
    """A trade ignored by derive_positions; index is its position in the sorted stream."""

    index: int
    trade: TradeLike
    reason: str


@dataclass
class _Accumulator:
    asset: AssetRef
    currency: Optional[str]
    quantity: float = 0.0
    avg_cost: float = 0.0
    cost_basis: float = 0.0
    total_fees: float = 0.0

    def freeze(self) -> Position:
        return Position(
            asset=self.asset,
            currency=self.currency,
            quantity=self.quantity,
            avg_cost=self.avg_cost,
            cost_basis=self.cost_basis,
            total_fees=self.total_fees,
        )

    def is_flat(self) -> bool:
        return self.quantity == 0 and self.cost_basis == 0 and self.total_fees == 0


def asset_key(symbol: str, asset_type: Any) -> str:
    return f"{_type_str(asset_type)}::{(symbol or '').strip().upper()}"


def _type_str(asset_type: Any) -> str:
    return str(getattr(asset_type, "value", asset_type) or "")


def _safe_number(x: Any, fallback: float = 0.0) -> float:
    if x is None:
        return fallback
    try:
        n = float(x)
    except (TypeError, ValueError):
        return fallback
    return n if math.isfinite(n) else fallback


def _timestamp(value: datetime | str | float) -> float:
    """
    Epoch seconds for ordering. Numbers are taken as epoch seconds and
    naive datetimes are read as UTC. Unparseable values sort after every
    valid timestamp.
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value) if math.isfinite(value) else math.inf
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return math.inf
    if not isinstance(value, datetime):
        return math.inf
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


def _skip_reason(symbol: str, qty: float, price: float) -> Optional[str]:
    if not symbol:
        return SKIP_EMPTY_SYMBOL
    if qty <= 0:
        return SKIP_NON_POSITIVE_QUANTITY
    if price < 0:
        return SKIP_NEGATIVE_PRICE
    return None


def derive_positions(
    trades: Iterable[TradeLike],
    options: Optional[DerivePositionsOptions] = None,
    *,
    diagnostics: Optional[List[SkippedTrade]] = None,
) -> List[Position]:
    """
    Fold trades (any order) into current positions using the average-cost method.

    Trades are replayed in ascending occurred_at order; equal timestamps keep
    their input order. Rows with an empty symbol, quantity <= 0 or price < 0
    are skipped without error. Pass a list as `diagnostics` to collect the
    skipped rows.

    Returns positions sorted by (type, symbol), excluding fully flat ones
    (quantity, cost basis and total fees all zero).
    """
    opts = options or DerivePositionsOptions()
    allow_negative = opts.sell_behavior == "allow_negative"

    # sorted() is stable, which gives the tie-break on input order
    ordered = sorted(trades, key=lambda t: _timestamp(t.occurred_at))

    book: dict[str, _Accumulator] = {}

    for index, t in enumerate(ordered):
        symbol = (t.asset.symbol or "").upper().strip()
        asset_type = _type_str(t.asset.type)

        qty = _safe_number(t.quantity)
        price = _safe_number(t.price)
        fees = _safe_number(t.fees, opts.default_fees)

        reason = _skip_reason(symbol, qty, price)
        if reason is not None:
            if diagnostics is not None:
                diagnostics.append(SkippedTrade(index=index, trade=t, reason=reason))
            continue

        key = asset_key(symbol, asset_type)
        pos = book.get(key)
        if pos is None:
            pos = _Accumulator(asset=AssetRef(symbol=symbol, type=asset_type), currency=None)
            book[key] = pos

        # first non-empty currency sticks
        if not pos.currency and t.currency:
            pos.currency = t.currency

        if str(t.side).upper() == "BUY":
            pos.quantity += qty
            # negative fees (rebates) can't take cost basis below zero
            pos.cost_basis = max(0.0, pos.cost_basis + qty * price + fees)
            pos.total_fees += fees
        else:
            current_qty = pos.quantity
            sell_qty = qty if allow_negative else min(qty, max(0.0, current_qty))
            current_avg_cost = pos.cost_basis / current_qty if current_qty > 0 else 0.0

            pos.quantity = current_qty - sell_qty
            pos.cost_basis = max(0.0, pos.cost_basis - sell_qty * current_avg_cost)
            pos.total_fees += fees

            # a net-short position carries no cost basis
            if allow_negative and pos.quantity < 0:
                pos.cost_basis = 0.0

        pos.avg_cost = pos.cost_basis / pos.quantity if pos.quantity > 0 else 0.0

    remaining = [p.freeze() for p in book.values() if not p.is_flat()]
    remaining.sort(key=lambda p: (p.asset.type, p.asset.symbol))
    return remaining


def get_position_for_asset(positions: Sequence[Position], asset: AssetRef) -> Optional[Position]:
    """Look up a single asset's position by its normalized (type, symbol) key."""
    key = asset_key(asset.symbol, asset.type)
    for p in positions:
        if asset_key(p.asset.symbol, p.asset.type) == key:
            return p
    return None
