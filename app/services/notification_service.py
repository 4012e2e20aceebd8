import logging

from sqlalchemy.orm import Session

from app.models.booking import Booking
from app.models.trip import Trip
from app.services.email_service import queue_email

logger = logging.getLogger(__name__)


def render_confirmation(booking: Booking, trip: Trip | None) -> tuple[str, str]:
    subject = f"ShanBus: booking {booking.booking_code} confirmed"
    seats = ", ".join(booking.seat_numbers or [])
    payable = max(0, int(booking.total_price) - int(booking.discount_amount or 0))
    lines = [
        f"Hello {booking.passenger_name},",
        "",
        f"Your booking {booking.booking_code} is confirmed.",
        f"Seats: {seats}",
    ]
    if trip:
        lines.append(f"Departure: {trip.departure_time:%d/%m/%Y %H:%M}")
    lines += [
        f"Total: {int(booking.total_price):,} VND",
        f"Discount: {int(booking.discount_amount or 0):,} VND",
        f"To pay: {payable:,} VND ({booking.payment_method})",
        "",
        "Keep your booking code, you need it to look up or cancel the booking.",
    ]
    return subject, "\n".join(lines)


def send_booking_confirmation(db: Session, booking_id: str, recipient_email: str) -> str | None:
    booking = db.get(Booking, booking_id)
    if not booking:
        logger.warning("confirmation skipped, booking %s not found", booking_id)
        return None
    trip = db.get(Trip, booking.trip_id)
    subject, body = render_confirmation(booking, trip)
    return queue_email(db, recipient_email, subject, body, related_booking_code=booking.booking_code)


def notify_booking_confirmed(booking: Booking, recipient_email: str) -> None:
    """Post-commit hook: hand the confirmation to the worker. Fire-and-forget."""
    from app.tasks.jobs import send_booking_confirmation as task
    task.delay(booking.id, recipient_email)
