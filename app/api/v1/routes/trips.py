from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import get_current_user_id, get_optional_user_id
from app.core.timeutils import as_utc
from app.schemas.seat_lock import SeatLockRelease, SeatLockRequest
from app.services import seat_lock_service

router = APIRouter(tags=["trips"])


@router.get("/trips/{trip_id}/seats")
def trip_seats(trip_id: str, db: Session = Depends(get_db), user_id: str | None = Depends(get_optional_user_id)):
    return seat_lock_service.seat_map(db, trip_id, viewer_id=user_id)


# Holds belong to a signed-in customer. Guests check out without holding seats.
@router.post("/trips/{trip_id}/seat-locks")
def lock_seats(
    trip_id: str,
    body: SeatLockRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    locks = seat_lock_service.acquire(db, trip_id, body.seatNumbers, user_id, ttl_seconds=body.ttlSeconds)
    return {
        "tripId": trip_id,
        "seatNumbers": body.seatNumbers,
        "expiresAt": as_utc(locks[0].expires_at).isoformat() if locks else None,
    }


@router.delete("/trips/{trip_id}/seat-locks")
def unlock_seats(
    trip_id: str,
    body: SeatLockRelease,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    released = seat_lock_service.release(db, trip_id, body.seatNumbers, user_id)
    return {"tripId": trip_id, "released": released}
