from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import get_current_user_id, get_notifier, get_optional_user_id
from app.core.errors import PermissionDeniedError
from app.schemas.booking import BookingCancel, BookingCreate
from app.services.booking_service import (
    Notifier, booking_detail, cancel_booking, create_booking, get_booking, get_booking_by_code, list_bookings,
)

router = APIRouter(tags=["bookings"])


@router.post("/bookings", status_code=201)
def create_booking_endpoint(
    body: BookingCreate,
    db: Session = Depends(get_db),
    user_id: str | None = Depends(get_optional_user_id),
    notifier: Notifier = Depends(get_notifier),
):
    return create_booking(
        db,
        trip_id=body.tripId,
        seat_numbers=body.seatNumbers,
        passenger={"name": body.passengerName, "phone": body.passengerPhone, "email": body.passengerEmail},
        payment_method=body.paymentMethod,
        voucher_code=body.voucherCode,
        requester_id=user_id,
        notes=body.notes,
        notifier=notifier,
    )


@router.get("/bookings")
def my_bookings(
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return list_bookings(db, user_id, status=status, page=page, limit=limit)


@router.get("/bookings/code/{booking_code}")
def booking_by_code(booking_code: str, db: Session = Depends(get_db)):
    return booking_detail(db, get_booking_by_code(db, booking_code))


@router.get("/bookings/{booking_id}")
def booking_by_id(
    booking_id: str,
    db: Session = Depends(get_db),
    user_id: str | None = Depends(get_optional_user_id),
):
    b = get_booking(db, booking_id)
    if b.user_id and b.user_id != user_id:
        raise PermissionDeniedError("You can only view your own bookings")
    return booking_detail(db, b)


@router.post("/bookings/{booking_id}/cancel")
def cancel_booking_endpoint(
    booking_id: str,
    body: BookingCancel | None = None,
    db: Session = Depends(get_db),
    user_id: str | None = Depends(get_optional_user_id),
):
    body = body or BookingCancel()
    return cancel_booking(db, booking_id, requester_id=user_id, booking_code=body.bookingCode, reason=body.reason)
