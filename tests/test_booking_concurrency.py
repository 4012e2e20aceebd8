from __future__ import annotations

import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.errors import BookingError, ConflictError
from app.models.booking import Booking
from app.models.booking_item import BookingItem
from app.models.seat import Seat
from app.models.trip import Trip
from app.models.voucher import Voucher
from app.services.booking_service import cancel_booking, create_booking

PASSENGER = {"name": "Tran Thi B", "phone": "0900000002", "email": ""}


def _setup_trip(engine, n_seats: int) -> str:
    bus_id = str(uuid.uuid4())
    trip_id = str(uuid.uuid4())
    dep = datetime.now(timezone.utc) + timedelta(days=2)
    with Session(engine) as s:
        s.add_all([
            Seat(id=str(uuid.uuid4()), bus_id=bus_id, seat_number=f"A{i}", price_multiplier=1.0, is_active=True)
            for i in range(1, n_seats + 1)
        ])
        s.add(Trip(
            id=trip_id, company_id="company-1", bus_id=bus_id,
            departure_time=dep, arrival_time=dep + timedelta(hours=6),
            base_price=100_000, total_seats=n_seats, available_seats=n_seats, status="SCHEDULED",
        ))
        s.commit()
    return trip_id


def _attempt(engine, fn, *args, **kwargs):
    with Session(engine, autoflush=False) as s:
        try:
            return fn(s, *args, **kwargs)
        except BookingError as e:
            return e


def test_overlapping_requests_never_double_book(race_engine, recount_available):
    trip_id = _setup_trip(race_engine, 6)
    requests = [["A1", "A2"], ["A2", "A3"], ["A3", "A4"], ["A4", "A5"], ["A5", "A6"], ["A6", "A1"], ["A1"], ["A6"]]

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda seats: _attempt(race_engine, create_booking, trip_id, seats, PASSENGER, "CASH"), requests))

    ok = [r for r in results if isinstance(r, dict)]
    refused = [r for r in results if isinstance(r, BookingError)]
    assert ok
    assert all(isinstance(r, ConflictError) for r in refused)

    with Session(race_engine) as s:
        items = s.execute(select(BookingItem).where(BookingItem.trip_id == trip_id)).scalars().all()
        numbers = [i.seat_number for i in items]
        assert len(numbers) == len(set(numbers))
        assert sorted(numbers) == sorted(n for r in ok for n in r["booking"]["seatNumbers"])

        trip = s.get(Trip, trip_id)
        assert trip.available_seats == trip.total_seats - len(numbers)
        assert trip.available_seats == recount_available(s, trip)


def test_same_seat_twice_one_wins(race_engine):
    trip_id = _setup_trip(race_engine, 4)
    with ThreadPoolExecutor(max_workers=2) as pool:
        results = list(pool.map(lambda _: _attempt(race_engine, create_booking, trip_id, ["A1"], PASSENGER, "CASH"), range(2)))

    ok = [r for r in results if isinstance(r, dict)]
    conflicts = [r for r in results if isinstance(r, ConflictError)]
    assert len(ok) == 1
    assert len(conflicts) == 1
    assert conflicts[0].extra["conflicts"] == ["A1"]


def test_voucher_limit_holds_under_contention(race_engine):
    trip_id = _setup_trip(race_engine, 8)
    with Session(race_engine) as s:
        s.add(Voucher(
            id=str(uuid.uuid4()), code="LIMIT3", name="", company_id=None, discount_type="PERCENT",
            discount_value=10, usage_limit=3, used_count=0, is_active=True,
        ))
        s.commit()

    seats = [["A1"], ["A2"], ["A3"], ["A4"]]
    with ThreadPoolExecutor(max_workers=4) as pool:
        results = list(pool.map(
            lambda sn: _attempt(race_engine, create_booking, trip_id, sn, PASSENGER, "CASH", voucher_code="LIMIT3"),
            seats,
        ))

    assert sum(isinstance(r, dict) for r in results) == 3
    assert sum(isinstance(r, ConflictError) for r in results) == 1
    with Session(race_engine) as s:
        v = s.execute(select(Voucher).where(Voucher.code == "LIMIT3")).scalar_one()
        assert v.used_count == 3


def test_counter_survives_mixed_bookings_and_cancellations(race_engine, recount_available):
    trip_id = _setup_trip(race_engine, 10)
    made = [_attempt(race_engine, create_booking, trip_id, [f"A{i}"], PASSENGER, "CASH") for i in range(1, 7)]
    codes = [(m["booking"]["id"], m["booking"]["bookingCode"]) for m in made]

    def work(i):
        if i < 3:
            bid, code = codes[i]
            return _attempt(race_engine, cancel_booking, bid, booking_code=code)
        return _attempt(race_engine, create_booking, trip_id, [f"A{i + 4}"], PASSENGER, "CASH")

    with ThreadPoolExecutor(max_workers=6) as pool:
        results = list(pool.map(work, range(7)))
    assert all(isinstance(r, dict) for r in results)

    with Session(race_engine) as s:
        trip = s.get(Trip, trip_id)
        active = s.execute(
            select(Booking).where(Booking.trip_id == trip_id, Booking.booking_status == "CONFIRMED")
        ).scalars().all()
        # 6 made + 4 more, 3 cancelled
        assert len(active) == 7
        assert trip.available_seats == 10 - 7
        assert trip.available_seats == recount_available(s, trip)
