import uuid
import logging
from datetime import timedelta

from sqlalchemy.orm import Session
from sqlalchemy import select

from app.core.config import settings
from app.core.errors import ConflictError, ValidationError
from app.core.timeutils import utcnow, as_utc
from app.models.seat_lock import SeatLock
from app.services.availability_service import booked_seat_numbers
from app.services.trip_service import get_trip, get_trip_for_update, get_seats_by_bus_and_numbers, list_bus_seats, seat_price

logger = logging.getLogger(__name__)


def is_valid(lock: SeatLock, now=None) -> bool:
    return as_utc(lock.expires_at) > (now or utcnow())


def held_by_other(lock: SeatLock, holder_id: str | None, now=None) -> bool:
    """A valid lock blocks everyone except its owner. Anonymous holds block everybody."""
    if not is_valid(lock, now):
        return False
    if lock.user_id is None:
        return True
    return lock.user_id != holder_id


def locks_for_seats(db: Session, trip_id: str, seat_ids: list[str], for_update: bool = False) -> list[SeatLock]:
    if not seat_ids:
        return []
    q = select(SeatLock).where(SeatLock.trip_id == trip_id, SeatLock.seat_id.in_(seat_ids))
    if for_update:
        q = q.with_for_update()
    return list(db.execute(q).scalars())


def acquire(db: Session, trip_id: str, seat_numbers: list[str], holder_id: str | None, ttl_seconds: int | None = None) -> list[SeatLock]:
    """Create or refresh holds on the given seats for `holder_id` (None for an anonymous hold)."""
    numbers = [str(n).strip() for n in seat_numbers if str(n).strip()]
    if not numbers:
        raise ValidationError("Seat numbers are required")
    ttl = ttl_seconds if ttl_seconds is not None else settings.SEAT_LOCK_TTL_SECONDS
    try:
        trip = get_trip_for_update(db, trip_id)
        seats = get_seats_by_bus_and_numbers(db, trip.bus_id, numbers)
        by_number = {s.seat_number: s for s in seats}
        missing = [n for n in numbers if n not in by_number]
        if missing:
            raise ValidationError("Seats not found on this bus", missingSeats=missing)

        seat_ids = [s.id for s in seats]
        number_of = {s.id: s.seat_number for s in seats}
        now = utcnow()
        existing = {lk.seat_id: lk for lk in locks_for_seats(db, trip_id, seat_ids, for_update=True)}

        conflicts = sorted(number_of[sid] for sid, lk in existing.items() if held_by_other(lk, holder_id, now))
        booked = booked_seat_numbers(db, trip_id, seat_ids)
        conflicts = sorted(set(conflicts) | booked)
        if conflicts:
            raise ConflictError("Some seats are already held or booked", conflicts=conflicts)

        expires = now + timedelta(seconds=ttl)
        locks = []
        for seat in seats:
            lk = existing.get(seat.id)
            if lk:
                # expired or our own: take it over
                lk.user_id = holder_id
                lk.expires_at = expires
            else:
                lk = SeatLock(id=str(uuid.uuid4()), trip_id=trip_id, seat_id=seat.id, user_id=holder_id, expires_at=expires)
                db.add(lk)
            locks.append(lk)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("seat locks acquired trip=%s seats=%s holder=%s", trip_id, numbers, holder_id)
    return locks


def release(db: Session, trip_id: str, seat_numbers: list[str], holder_id: str | None) -> int:
    """Remove the holder's locks on these seats. Returns how many rows were removed."""
    try:
        trip = get_trip_for_update(db, trip_id)
        seats = get_seats_by_bus_and_numbers(db, trip.bus_id, [str(n).strip() for n in seat_numbers])
        removed = release_for_holder(db, trip_id, [s.id for s in seats], holder_id)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("seat locks released trip=%s count=%s holder=%s", trip_id, removed, holder_id)
    return removed


def release_for_holder(db: Session, trip_id: str, seat_ids: list[str], holder_id: str | None) -> int:
    """Delete holder-owned locks inside the caller's transaction (no commit).

    Anonymous holds have no owner to release them and only lapse at expiry.
    """
    if not holder_id:
        return 0
    removed = 0
    for lk in locks_for_seats(db, trip_id, seat_ids, for_update=True):
        if lk.user_id == holder_id:
            db.delete(lk)
            removed += 1
    return removed


def seat_map(db: Session, trip_id: str, viewer_id: str | None = None) -> dict:
    """Every active seat on the trip's bus with its state for this viewer."""
    trip = get_trip(db, trip_id)
    seats = list_bus_seats(db, trip.bus_id)
    booked = booked_seat_numbers(db, trip.id)
    now = utcnow()
    locks = {lk.seat_id: lk for lk in locks_for_seats(db, trip.id, [s.id for s in seats]) if is_valid(lk, now)}

    out = []
    for s in seats:
        lk = locks.get(s.id)
        if s.seat_number in booked:
            state = "BOOKED"
        elif lk and viewer_id and lk.user_id == viewer_id:
            state = "HELD_BY_YOU"
        elif lk:
            state = "LOCKED"
        else:
            state = "AVAILABLE"
        out.append({
            "seatId": s.id,
            "seatNumber": s.seat_number,
            "seatType": s.seat_type,
            "price": seat_price(trip, s),
            "state": state,
            "lockExpiresAt": as_utc(lk.expires_at).isoformat() if lk else None,
        })
    return {"tripId": trip.id, "availableSeats": trip.available_seats, "totalSeats": trip.total_seats, "seats": out}
