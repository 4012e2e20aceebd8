from sqlalchemy import String, Integer, Boolean, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from app.db.session import Base

class Voucher(Base):
    __tablename__ = "vouchers"
    __table_args__ = (UniqueConstraint("company_id", "code", name="uq_vouchers_company_code"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    code: Mapped[str] = mapped_column(String(50), index=True)  # stored upper-case
    name: Mapped[str] = mapped_column(String(200), default="")
    company_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)  # NULL = global

    discount_type: Mapped[str] = mapped_column(String(10))  # PERCENT, AMOUNT
    discount_value: Mapped[int] = mapped_column(Integer)
    min_order_value: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_discount: Mapped[int | None] = mapped_column(Integer, nullable=True)

    start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    usage_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)  # NULL = unlimited
    usage_per_user: Mapped[int | None] = mapped_column(Integer, nullable=True)
    used_count: Mapped[int] = mapped_column(Integer, default=0)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
