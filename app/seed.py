"""Demo data: one bus company, a 40-seat bus, a few trips and two vouchers. Safe to run repeatedly."""
import uuid
import logging
from datetime import timedelta

from sqlalchemy.orm import Session
from sqlalchemy import text
from sqlalchemy.exc import ProgrammingError

from app.db.session import SessionLocal
from app.core.timeutils import utcnow
from app.models.seat import Seat
from app.models.trip import Trip
from app.models.voucher import Voucher

logger = logging.getLogger(__name__)

DEMO_COMPANY_ID = "00000000-0000-0000-0000-00000000c0de"
DEMO_BUS_ID = "00000000-0000-0000-0000-0000000b0500"


def ensure_seats(db: Session, bus_id: str) -> int:
    if db.query(Seat).filter(Seat.bus_id == bus_id).first():
        return 0
    created = 0
    # A1-A20 lower deck, B1-B20 upper deck; front row costs a little more
    for deck in ("A", "B"):
        for n in range(1, 21):
            db.add(Seat(
                id=str(uuid.uuid4()),
                bus_id=bus_id,
                seat_number=f"{deck}{n}",
                seat_type="VIP" if n <= 2 else "STANDARD",
                price_multiplier=1.2 if n <= 2 else 1.0,
                is_active=True,
            ))
            created += 1
    db.commit()
    return created


def ensure_trips(db: Session, company_id: str, bus_id: str, days: int = 7) -> int:
    created = 0
    base = utcnow().replace(hour=1, minute=0, second=0, microsecond=0)
    for i in range(1, days + 1):
        dep = base + timedelta(days=i)
        exists = db.query(Trip).filter(Trip.bus_id == bus_id, Trip.departure_time == dep).first()
        if exists:
            continue
        db.add(Trip(
            id=str(uuid.uuid4()),
            company_id=company_id,
            bus_id=bus_id,
            departure_time=dep,
            arrival_time=dep + timedelta(hours=6),
            base_price=250000,
            total_seats=40,
            available_seats=40,
            status="SCHEDULED",
        ))
        created += 1
    db.commit()
    return created


def ensure_voucher(db: Session, code: str, **fields) -> None:
    if db.query(Voucher).filter(Voucher.code == code).first():
        return
    db.add(Voucher(id=str(uuid.uuid4()), code=code, **fields))
    db.commit()


def run(db=None):
    own = db is None
    if own:
        db = SessionLocal()
    try:
        # If migrations haven't been applied yet, seeding must not crash the API.
        try:
            db.execute(text("SELECT 1 FROM trips LIMIT 1"))
        except ProgrammingError:
            db.rollback()
            logger.warning("trips table not found yet. Skipping seeding (run alembic upgrade head).")
            return

        seats = ensure_seats(db, DEMO_BUS_ID)
        trips = ensure_trips(db, DEMO_COMPANY_ID, DEMO_BUS_ID)
        ensure_voucher(
            db, "WELCOME10", name="10% off, up to 50k", company_id=None,
            discount_type="PERCENT", discount_value=10, max_discount=50000,
            usage_limit=1000, usage_per_user=1,
        )
        ensure_voucher(
            db, "SHAN30K", name="30k off orders from 300k", company_id=DEMO_COMPANY_ID,
            discount_type="AMOUNT", discount_value=30000, min_order_value=300000,
        )
        logger.info("seed done seats=%s trips=%s", seats, trips)
    finally:
        if own:
            db.close()


if __name__ == "__main__":
    run()
