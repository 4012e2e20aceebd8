import uuid
import logging
from collections import Counter
from datetime import timedelta
from typing import Callable

from sqlalchemy.orm import Session
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings
from app.core.errors import (
    BookingError, ConflictError, InternalError, NotFoundError, PermissionDeniedError, ValidationError,
)
from app.core.timeutils import utcnow, as_utc
from app.models.booking import Booking
from app.models.booking_item import BookingItem
from app.services.availability_service import booked_seat_numbers, reserve_seats, release_seats
from app.services.payment_service import create_payment, cancel_pending_payments, latest_payment, make_code
from app.services.payment_log_service import log_payment_event
from app.services.payload_service import booking_payload, payment_payload, trip_payload
from app.services.seat_lock_service import locks_for_seats, held_by_other, release_for_holder
from app.services.trip_service import get_trip_for_update, get_seats_by_bus_and_numbers, seat_price
from app.services.voucher_service import validate_voucher, record_voucher_usage

logger = logging.getLogger(__name__)

PAYMENT_METHODS = ("CASH", "BANK_TRANSFER", "CREDIT_CARD", "E_WALLET", "VNPAY")

Notifier = Callable[[Booking, str], None]


def allocate_booking_code(db: Session) -> str:
    # booking_code must be unique
    for _ in range(10):
        code = make_code("BK")
        if not db.query(Booking).filter(Booking.booking_code == code).first():
            return code
    raise ValueError("could not allocate booking code")


def normalize_seat_numbers(seat_numbers: list[str]) -> list[str]:
    numbers = [str(n).strip() for n in (seat_numbers or []) if str(n).strip()]
    if not numbers:
        raise ValidationError("At least one seat must be selected")
    dupes = sorted(n for n, c in Counter(numbers).items() if c > 1)
    if dupes:
        raise ValidationError(f"Duplicate seats in request: {', '.join(dupes)}", duplicates=dupes)
    return numbers


def create_booking(
    db: Session,
    trip_id: str,
    seat_numbers: list[str],
    passenger: dict,
    payment_method: str,
    voucher_code: str | None = None,
    requester_id: str | None = None,
    notes: str | None = None,
    notifier: Notifier | None = None,
) -> dict:
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"Unsupported payment method: {payment_method}")
    name = (passenger.get("name") or "").strip()
    phone = (passenger.get("phone") or "").strip()
    email = (passenger.get("email") or "").strip()
    if not name or not phone:
        raise ValidationError("Passenger name and phone are required")

    try:
        trip = get_trip_for_update(db, trip_id)
        if trip.status == "CANCELLED":
            raise ConflictError("Trip has been cancelled")
        if as_utc(trip.departure_time) <= utcnow():
            raise ConflictError("Trip has already departed")

        numbers = normalize_seat_numbers(seat_numbers)
        if len(numbers) > trip.available_seats:
            taken = sorted(booked_seat_numbers(db, trip.id) & set(numbers))
            raise ConflictError(
                f"Only {trip.available_seats} seats left on this trip",
                availableSeats=trip.available_seats,
                conflicts=taken or None,
            )

        seats = get_seats_by_bus_and_numbers(db, trip.bus_id, numbers)
        by_number = {s.seat_number: s for s in seats}
        missing = [n for n in numbers if n not in by_number]
        if missing:
            raise ValidationError(f"Seats not found on this bus: {', '.join(missing)}", missingSeats=missing)
        seats = [by_number[n] for n in numbers]
        seat_ids = [s.id for s in seats]

        now = utcnow()
        number_of = {s.id: s.seat_number for s in seats}
        locked = sorted(
            number_of[lk.seat_id]
            for lk in locks_for_seats(db, trip.id, seat_ids, for_update=True)
            if held_by_other(lk, requester_id, now)
        )
        if locked:
            raise ConflictError(f"Seats are being held by another customer: {', '.join(locked)}", conflicts=locked)

        taken = sorted(booked_seat_numbers(db, trip.id, seat_ids, lock=True))
        if taken:
            raise ConflictError(f"Seats already booked: {', '.join(taken)}", conflicts=taken)

        prices = {s.id: seat_price(trip, s) for s in seats}
        order_amount = sum(prices.values())
        if order_amount <= 0:
            raise ValidationError("Could not price the selected seats")

        voucher, discount = None, 0
        if voucher_code and voucher_code.strip():
            result = validate_voucher(
                db, voucher_code, trip.company_id, order_amount, requester_id, for_update=True, now=now,
            )
            result.raise_for_invalid()
            voucher, discount = result.voucher, result.discount
        payable = max(0, order_amount - discount)

        booking = Booking(
            id=str(uuid.uuid4()),
            booking_code=allocate_booking_code(db),
            user_id=requester_id,
            trip_id=trip.id,
            company_id=trip.company_id,
            passenger_name=name,
            passenger_phone=phone,
            passenger_email=email,
            seat_numbers=numbers,
            total_price=order_amount,
            discount_amount=discount,
            voucher_id=voucher.id if voucher else None,
            payment_method=payment_method,
            payment_status="PENDING",
            booking_status="CONFIRMED",
            notes=notes,
        )
        db.add(booking)
        db.add_all([
            BookingItem(
                id=str(uuid.uuid4()),
                booking_id=booking.id,
                trip_id=trip.id,
                seat_id=s.id,
                seat_number=s.seat_number,
                price=prices[s.id],
            )
            for s in seats
        ])
        db.flush()

        reserve_seats(trip, len(seats))
        release_for_holder(db, trip.id, seat_ids, requester_id)
        if voucher:
            record_voucher_usage(db, voucher, booking.id, requester_id, discount)

        payment = create_payment(db, booking, payable, payment_method, discount, booking.voucher_id)
        log_payment_event(
            db, payment.id, "BOOKING_PAYMENT_INIT", status="INFO",
            payload={"bookingCode": booking.booking_code, "seats": numbers, "orderAmount": order_amount, "discount": discount},
            response={"amount": payable, "paymentMethod": payment_method},
        )
        db.commit()
    except BookingError as e:
        db.rollback()
        logger.info("booking rejected trip=%s seats=%s reason=%s", trip_id, seat_numbers, e.message)
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("booking failed trip=%s", trip_id)
        raise InternalError("Could not save the booking, please try again") from e
    except Exception:
        db.rollback()
        raise

    logger.info(
        "booking created code=%s trip=%s seats=%s amount=%s discount=%s",
        booking.booking_code, trip.id, numbers, order_amount, discount,
    )

    if notifier and email:
        try:
            notifier(booking, email)
        except Exception:
            logger.warning("booking confirmation notification failed code=%s", booking.booking_code, exc_info=True)

    return {
        "booking": booking_payload(booking),
        "payment": payment_payload(payment, booking.booking_code),
        "trip": trip_payload(trip),
    }


def _check_cancel_rights(booking: Booking, requester_id: str | None, booking_code: str | None) -> None:
    if booking.user_id:
        if requester_id != booking.user_id:
            raise PermissionDeniedError("You can only cancel your own bookings")
    elif not booking_code or booking_code.strip().upper() != booking.booking_code:
        raise PermissionDeniedError("Booking code is required to cancel a guest booking")


def cancel_booking(
    db: Session,
    booking_id: str,
    requester_id: str | None = None,
    booking_code: str | None = None,
    reason: str | None = None,
) -> dict:
    try:
        found = db.get(Booking, booking_id)
        if not found:
            raise NotFoundError("Booking not found")
        trip_id = found.trip_id

        # trip row first, same order as create_booking
        trip = get_trip_for_update(db, trip_id)
        booking = db.execute(
            select(Booking)
            .where(Booking.id == booking_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one()

        _check_cancel_rights(booking, requester_id, booking_code)
        if booking.booking_status in ("CANCELLED", "COMPLETED"):
            raise ValidationError(f"Booking is already {booking.booking_status.lower()}")
        cutoff = timedelta(hours=settings.CANCELLATION_CUTOFF_HOURS)
        if as_utc(trip.departure_time) - utcnow() < cutoff:
            raise ValidationError(
                f"Bookings can only be cancelled at least {settings.CANCELLATION_CUTOFF_HOURS} hours before departure"
            )

        seat_count = db.query(BookingItem).filter(BookingItem.booking_id == booking.id).count()
        release_seats(trip, seat_count)
        booking.booking_status = "CANCELLED"
        booking.payment_status = "REFUNDED" if booking.payment_status == "PAID" else "CANCELLED"
        booking.cancelled_at = utcnow()
        if reason:
            booking.notes = f"{booking.notes}\n{reason}" if booking.notes else reason
        cancel_pending_payments(db, booking, reason or "booking cancelled")
        db.commit()
    except BookingError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("cancellation failed booking=%s", booking_id)
        raise InternalError("Could not cancel the booking, please try again") from e
    except Exception:
        db.rollback()
        raise

    logger.info("booking cancelled code=%s released=%s payment_status=%s", booking.booking_code, seat_count, booking.payment_status)
    return {"booking": booking_payload(booking), "trip": trip_payload(trip)}


def get_booking(db: Session, booking_id: str) -> Booking:
    b = db.get(Booking, booking_id)
    if not b:
        raise NotFoundError("Booking not found")
    return b


def get_booking_by_code(db: Session, code: str) -> Booking:
    b = db.query(Booking).filter(Booking.booking_code == (code or "").strip().upper()).first()
    if not b:
        raise NotFoundError("Booking not found")
    return b


def booking_detail(db: Session, b: Booking) -> dict:
    out = booking_payload(b)
    items = db.query(BookingItem).filter(BookingItem.booking_id == b.id).order_by(BookingItem.seat_number).all()
    out["items"] = [{"seatId": i.seat_id, "seatNumber": i.seat_number, "price": int(i.price)} for i in items]
    p = latest_payment(db, b.id)
    out["payment"] = payment_payload(p, b.booking_code) if p else None
    return out


def list_bookings(db: Session, user_id: str, status: str | None = None, page: int = 1, limit: int = 20) -> dict:
    q = db.query(Booking).filter(Booking.user_id == user_id)
    if status:
        q = q.filter(Booking.booking_status == status)
    total = q.count()
    page, limit = max(1, page), max(1, min(limit, 100))
    rows = q.order_by(Booking.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "items": [booking_payload(b) for b in rows],
        "page": page,
        "limit": limit,
        "total": total,
    }
