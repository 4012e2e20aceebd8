import logging

from sqlalchemy.orm import Session
from sqlalchemy import select

from app.core.errors import ConflictError
from app.models.trip import Trip
from app.models.booking import Booking
from app.models.booking_item import BookingItem

logger = logging.getLogger(__name__)

ACTIVE_BOOKING_STATUSES = ("CONFIRMED", "COMPLETED")


def reserve_seats(trip: Trip, seat_count: int) -> None:
    """Decrement the free-seat counter. `trip` must already be locked by the caller's transaction."""
    if seat_count > trip.available_seats:
        raise ConflictError(
            f"Only {trip.available_seats} seats left on this trip",
            availableSeats=trip.available_seats,
        )
    trip.available_seats -= seat_count


def release_seats(trip: Trip, seat_count: int) -> None:
    """Give seats back, never beyond the bus capacity."""
    trip.available_seats = min(trip.total_seats, trip.available_seats + seat_count)


def booked_seat_numbers(db: Session, trip_id: str, seat_ids: list[str] | None = None, lock: bool = False) -> set[str]:
    """Seat numbers already committed to confirmed or completed bookings on the trip."""
    q = (
        select(BookingItem)
        .join(Booking, Booking.id == BookingItem.booking_id)
        .where(
            BookingItem.trip_id == trip_id,
            Booking.booking_status.in_(ACTIVE_BOOKING_STATUSES),
        )
    )
    if seat_ids is not None:
        q = q.where(BookingItem.seat_id.in_(seat_ids))
    if lock:
        q = q.with_for_update(of=BookingItem)
    return {item.seat_number for item in db.execute(q).scalars()}
