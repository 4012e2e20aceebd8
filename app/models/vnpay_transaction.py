from sqlalchemy import String, Integer, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from app.db.session import Base

class VNPayTransaction(Base):
    __tablename__ = "vnpay_transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    payment_id: Mapped[str] = mapped_column(String(36), index=True)
    order_id: Mapped[str] = mapped_column(String(60), unique=True, index=True)  # vnp_TxnRef
    amount: Mapped[int] = mapped_column(Integer)
    order_info: Mapped[str] = mapped_column(Text, default="")
    bank_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    payment_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    transaction_no: Mapped[str | None] = mapped_column(String(60), nullable=True)
    response_code: Mapped[str | None] = mapped_column(String(10), nullable=True)
    response_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="PENDING")  # PENDING, SUCCESS, FAILED, CANCELLED
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
