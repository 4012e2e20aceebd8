from sqlalchemy import String, Float, Boolean, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from app.db.session import Base

class Seat(Base):
    __tablename__ = "seats"
    __table_args__ = (UniqueConstraint("bus_id", "seat_number", name="uq_seats_bus_seat_number"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    bus_id: Mapped[str] = mapped_column(String(36), index=True)
    seat_number: Mapped[str] = mapped_column(String(10))
    seat_type: Mapped[str] = mapped_column(String(20), default="STANDARD")  # STANDARD, VIP, SLEEPER
    price_multiplier: Mapped[float] = mapped_column(Float, nullable=True, default=1.0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
