"""Voucher rules.

``validate_voucher`` never writes. The caller records the redemption with
``record_voucher_usage`` inside the same transaction that creates the booking.
"""
import uuid
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session
from sqlalchemy import select, func

from app.core.errors import BookingError, ConflictError, ValidationError
from app.core.timeutils import utcnow, as_utc
from app.models.voucher import Voucher
from app.models.voucher_usage import VoucherUsage
from app.services.trip_service import get_trip, get_seats_by_bus_and_numbers, seat_price

logger = logging.getLogger(__name__)


@dataclass
class VoucherResult:
    valid: bool
    discount: int = 0
    voucher: Voucher | None = None
    reason: str = ""
    error: type[BookingError] = ValidationError

    def raise_for_invalid(self) -> None:
        if not self.valid:
            raise self.error(self.reason)


def normalize_code(code: str | None) -> str:
    return (code or "").strip().upper()


def find_voucher_by_code(db: Session, code: str, company_id: str | None, for_update: bool = False) -> Voucher | None:
    """Company-owned code first, then a global one, then any company's (so the caller can explain the mismatch)."""
    code = normalize_code(code)
    if not code:
        return None

    def _one(*conds):
        q = select(Voucher).where(Voucher.code == code, *conds).order_by(Voucher.created_at).limit(1)
        if for_update:
            q = q.with_for_update()
        return db.execute(q).scalar_one_or_none()

    if company_id:
        v = _one(Voucher.company_id == company_id)
        if v:
            return v
    v = _one(Voucher.company_id.is_(None))
    if v:
        return v
    return _one()


def calculate_discount(voucher: Voucher, order_amount: int) -> int:
    if voucher.discount_type == "PERCENT":
        discount = order_amount * voucher.discount_value / 100
        if voucher.max_discount is not None:
            discount = min(discount, voucher.max_discount)
    else:
        discount = min(voucher.discount_value, order_amount)
    return max(0, int(round(discount)))


def count_user_usage(db: Session, voucher_id: str, user_id: str) -> int:
    return db.execute(
        select(func.count(VoucherUsage.id)).where(
            VoucherUsage.voucher_id == voucher_id,
            VoucherUsage.user_id == user_id,
        )
    ).scalar_one()


def validate_voucher(
    db: Session,
    code: str,
    company_id: str | None,
    order_amount: int,
    user_id: str | None = None,
    require_company_match: bool = True,
    for_update: bool = False,
    now: datetime | None = None,
) -> VoucherResult:
    now = now or utcnow()
    voucher = find_voucher_by_code(db, code, company_id, for_update=for_update)

    if not voucher:
        return VoucherResult(False, reason="Voucher code does not exist")
    if not voucher.is_active:
        return VoucherResult(False, voucher=voucher, reason="Voucher is no longer active")
    if require_company_match and voucher.company_id and voucher.company_id != company_id:
        return VoucherResult(False, voucher=voucher, reason="Voucher is not valid for this bus company")

    start, end = as_utc(voucher.start_date), as_utc(voucher.end_date)
    if start and now < start:
        return VoucherResult(False, voucher=voucher, reason="Voucher is not yet valid")
    if end and now > end:
        return VoucherResult(False, voucher=voucher, reason="Voucher has expired")

    if voucher.min_order_value is not None and order_amount < voucher.min_order_value:
        return VoucherResult(
            False, voucher=voucher,
            reason=f"Order must be at least {voucher.min_order_value} to use this voucher",
        )

    if voucher.usage_limit is not None and voucher.used_count >= voucher.usage_limit:
        return VoucherResult(False, voucher=voucher, reason="Voucher usage limit reached", error=ConflictError)
    # guests are never counted against a per-user cap
    if voucher.usage_per_user is not None and user_id:
        if count_user_usage(db, voucher.id, user_id) >= voucher.usage_per_user:
            return VoucherResult(
                False, voucher=voucher,
                reason="You have already used this voucher the maximum number of times",
                error=ConflictError,
            )

    discount = calculate_discount(voucher, order_amount)
    if discount <= 0:
        return VoucherResult(False, voucher=voucher, reason="Voucher gives no discount on this order")
    return VoucherResult(True, discount=discount, voucher=voucher)


def record_voucher_usage(db: Session, voucher: Voucher, booking_id: str, user_id: str | None, discount: int) -> VoucherUsage:
    """Write the redemption and bump the counter. No commit; runs in the booking transaction."""
    usage = VoucherUsage(
        id=str(uuid.uuid4()),
        voucher_id=voucher.id,
        booking_id=booking_id,
        user_id=user_id,
        applied_discount=discount,
    )
    db.add(usage)
    voucher.used_count = (voucher.used_count or 0) + 1
    logger.info("voucher redeemed code=%s booking=%s used=%s", voucher.code, booking_id, voucher.used_count)
    return usage


def preview_voucher(db: Session, code: str, trip_id: str, seat_numbers: list[str], user_id: str | None = None) -> dict:
    """Price the seats server-side and run the rules without writing anything."""
    trip = get_trip(db, trip_id)
    numbers = [str(n).strip() for n in seat_numbers if str(n).strip()]
    seats = get_seats_by_bus_and_numbers(db, trip.bus_id, numbers)
    found = {s.seat_number for s in seats}
    missing = [n for n in numbers if n not in found]
    if missing:
        raise ValidationError("Seats not found on this bus", missingSeats=missing)
    order_amount = sum(seat_price(trip, s) for s in seats)

    result = validate_voucher(db, code, trip.company_id, order_amount, user_id)
    out = {
        "valid": result.valid,
        "code": normalize_code(code),
        "orderAmount": order_amount,
        "discount": result.discount,
        "payableAmount": max(0, order_amount - result.discount),
    }
    if result.valid:
        v = result.voucher
        out["voucher"] = {
            "id": v.id,
            "name": v.name,
            "discountType": v.discount_type,
            "discountValue": v.discount_value,
            "maxDiscount": v.max_discount,
        }
    else:
        out["reason"] = result.reason
    return out
