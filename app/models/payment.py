from sqlalchemy import String, Integer, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from app.db.session import Base

class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    payment_code: Mapped[str] = mapped_column(String(30), unique=True, index=True)
    booking_id: Mapped[str] = mapped_column(String(36), index=True)
    company_id: Mapped[str] = mapped_column(String(36), index=True)
    amount: Mapped[int] = mapped_column(Integer)  # payable = order total - discount
    discount_amount: Mapped[int] = mapped_column(Integer, default=0)
    voucher_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    payment_method: Mapped[str] = mapped_column(String(20))
    payment_status: Mapped[str] = mapped_column(String(20), default="PENDING")  # PENDING, SUCCESS, FAILED, CANCELLED
    transaction_id: Mapped[str | None] = mapped_column(String(120), nullable=True)  # gateway reference
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
