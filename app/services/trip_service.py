from sqlalchemy.orm import Session
from sqlalchemy import select

from app.core.errors import NotFoundError
from app.models.trip import Trip
from app.models.seat import Seat


def get_trip_for_update(db: Session, trip_id: str) -> Trip:
    # Every booking, cancellation and lock change on a trip queues up behind this row lock
    trip = db.execute(
        select(Trip).where(Trip.id == trip_id).with_for_update().execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if not trip:
        raise NotFoundError("Trip not found")
    return trip


def get_trip(db: Session, trip_id: str) -> Trip:
    trip = db.get(Trip, trip_id)
    if not trip:
        raise NotFoundError("Trip not found")
    return trip


def get_seats_by_bus_and_numbers(db: Session, bus_id: str, numbers: list[str]) -> list[Seat]:
    if not numbers:
        return []
    return list(
        db.execute(
            select(Seat).where(
                Seat.bus_id == bus_id,
                Seat.seat_number.in_(numbers),
                Seat.is_active.is_(True),
            )
        ).scalars()
    )


def list_bus_seats(db: Session, bus_id: str) -> list[Seat]:
    return list(
        db.execute(
            select(Seat).where(Seat.bus_id == bus_id, Seat.is_active.is_(True)).order_by(Seat.seat_number)
        ).scalars()
    )


def seat_price(trip: Trip, seat: Seat) -> int:
    """Unit price of a seat on a trip; a missing or non-positive multiplier falls back to the base price."""
    base = int(trip.base_price or 0)
    multiplier = seat.price_multiplier
    try:
        multiplier = float(multiplier)
    except (TypeError, ValueError):
        return base
    if multiplier != multiplier or multiplier in (float("inf"), float("-inf")) or multiplier <= 0:
        return base
    return int(round(base * multiplier))
