from sqlalchemy import String, Integer, DateTime, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from app.db.session import Base

class Trip(Base):
    __tablename__ = "trips"
    __table_args__ = (
        CheckConstraint("available_seats >= 0 AND available_seats <= total_seats", name="ck_trips_available_seats"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    company_id: Mapped[str] = mapped_column(String(36), index=True)
    bus_id: Mapped[str] = mapped_column(String(36), index=True)

    departure_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    arrival_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)

    base_price: Mapped[int] = mapped_column(Integer, default=0)  # VND per seat before multiplier
    total_seats: Mapped[int] = mapped_column(Integer)
    available_seats: Mapped[int] = mapped_column(Integer)  # kept in step with committed bookings

    status: Mapped[str] = mapped_column(String(20), default="SCHEDULED")  # SCHEDULED, IN_PROGRESS, COMPLETED, CANCELLED

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
