from __future__ import annotations

from sqlalchemy import JSON, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class UserSettings(Base):
    __tablename__ = "user_settings"

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    base_currency: Mapped[str] = mapped_column(String(3), default="USD")
    # trading venues the user picks from when entering trades; also the dashboard filter
    platforms: Mapped[list[str]] = mapped_column(JSON, default=lambda: ["Manual"])

    user = relationship("User", back_populates="settings")
