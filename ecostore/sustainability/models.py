from datetime import datetime
from typing import Optional
from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ecostore.shared.database import Base

PACKAGING_PREFERENCES = ("standard", "minimal", "plastic_free")

class UserPreference(Base):
    __tablename__ = "user_preferences"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), unique=True)
    packaging_preference: Mapped[str] = mapped_column(String(32), default="standard")
    notify_green_deals: Mapped[bool] = mapped_column(Boolean, default=True)
    show_carbon_footprint: Mapped[bool] = mapped_column(Boolean, default=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True)

class PointsCredit(Base):
    """Ledger row: the green points and savings an order added to its user."""

    __tablename__ = "points_credits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # Unique so an order can be credited at most once
    order_id: Mapped[int] = mapped_column(Integer, unique=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    points: Mapped[int] = mapped_column(Integer, default=0)
    co2_saved: Mapped[float] = mapped_column(Float, default=0.0)
    plastic_saved: Mapped[float] = mapped_column(Float, default=0.0)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=lambda: datetime.utcnow())
