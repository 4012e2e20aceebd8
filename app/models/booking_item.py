from sqlalchemy import String, Integer, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from app.db.session import Base

class BookingItem(Base):
    __tablename__ = "booking_items"
    __table_args__ = (UniqueConstraint("booking_id", "seat_id", name="uq_booking_items_booking_seat"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    booking_id: Mapped[str] = mapped_column(String(36), index=True)
    trip_id: Mapped[str] = mapped_column(String(36), index=True)
    seat_id: Mapped[str] = mapped_column(String(36), index=True)
    seat_number: Mapped[str] = mapped_column(String(10))
    price: Mapped[int] = mapped_column(Integer)  # resolved unit price
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
