from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Float, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class Trade(Base):
    """An immutable buy/sell fact. Positions are derived from these, never stored."""

    __tablename__ = "trades"
    __table_args__ = (
        CheckConstraint("side IN ('BUY', 'SELL')", name="ck_trades_side"),
        CheckConstraint("quantity > 0", name="ck_trades_quantity_positive"),
        CheckConstraint("price >= 0", name="ck_trades_price_non_negative"),
        CheckConstraint("fees >= 0", name="ck_trades_fees_non_negative"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    portfolio_id: Mapped[int] = mapped_column(ForeignKey("portfolios.id", ondelete="CASCADE"), index=True)

    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)

    asset_symbol: Mapped[str] = mapped_column(String(32), index=True)
    asset_type: Mapped[str] = mapped_column(String(16))
    asset_name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    side: Mapped[str] = mapped_column(String(4))

    quantity: Mapped[float] = mapped_column(Float)
    price: Mapped[float] = mapped_column(Float)
    fees: Mapped[float] = mapped_column(Float, default=0.0)

    currency: Mapped[str] = mapped_column(String(3), default="USD")
    platform: Mapped[str | None] = mapped_column(String(64), nullable=True, default="Manual")

    # manual | import | adjustment
    source: Mapped[str] = mapped_column(String(16), default="manual")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    portfolio = relationship("Portfolio", back_populates="trades")
