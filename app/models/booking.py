from sqlalchemy import String, Integer, DateTime, Text, JSON
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from app.db.session import Base

class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    booking_code: Mapped[str] = mapped_column(String(20), unique=True, index=True)

    user_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)  # NULL = guest checkout
    trip_id: Mapped[str] = mapped_column(String(36), index=True)
    company_id: Mapped[str] = mapped_column(String(36), index=True)

    passenger_name: Mapped[str] = mapped_column(String(200))
    passenger_phone: Mapped[str] = mapped_column(String(30))
    passenger_email: Mapped[str] = mapped_column(String(320), default="")

    # Display cache only; booking_items is authoritative
    seat_numbers: Mapped[list] = mapped_column(JSON, default=list)

    total_price: Mapped[int] = mapped_column(Integer, default=0)  # before discount
    discount_amount: Mapped[int] = mapped_column(Integer, default=0)
    voucher_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    payment_method: Mapped[str] = mapped_column(String(20))  # CASH, BANK_TRANSFER, CREDIT_CARD, E_WALLET, VNPAY
    payment_status: Mapped[str] = mapped_column(String(20), default="PENDING")  # PENDING, PAID, CANCELLED, REFUNDED, REFUND_PENDING
    booking_status: Mapped[str] = mapped_column(String(20), default="CONFIRMED", index=True)  # CONFIRMED, CANCELLED, COMPLETED, CANCEL_REQUESTED

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
