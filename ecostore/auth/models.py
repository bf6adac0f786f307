from datetime import datetime
from sqlalchemy import CheckConstraint, DateTime, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ecostore.shared.database import Base

ROLES = ("user", "admin")

class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("green_points >= 0", name="ck_users_green_points_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255))
    name: Mapped[str] = mapped_column(String(120))
    role: Mapped[str] = mapped_column(String(16), default="user")
    green_points: Mapped[int] = mapped_column(Integer, default=0, index=True)
    total_co2_saved: Mapped[float] = mapped_column(Float, default=0.0)
    total_plastic_saved: Mapped[float] = mapped_column(Float, default=0.0)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=lambda: datetime.utcnow())
