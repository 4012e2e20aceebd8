from __future__ import annotations

import pytest

from app.core.errors import ConflictError
from app.services.availability_service import release_seats, reserve_seats
from app.services.trip_service import seat_price


def test_reserve_decrements(db, make_trip):
    trip = make_trip(total_seats=4)
    reserve_seats(trip, 3)
    assert trip.available_seats == 1


def test_reserve_more_than_left(db, make_trip):
    trip = make_trip(total_seats=4, available_seats=2)
    with pytest.raises(ConflictError) as ei:
        reserve_seats(trip, 3)
    assert ei.value.extra["availableSeats"] == 2
    assert trip.available_seats == 2


def test_release_is_capped_at_capacity(db, make_trip):
    trip = make_trip(total_seats=4, available_seats=3)
    release_seats(trip, 5)
    assert trip.available_seats == 4


def test_recount_matches_fresh_trip(db, make_trip, recount_available):
    trip = make_trip()
    assert recount_available(db, trip) == trip.total_seats


@pytest.mark.parametrize(
    "multiplier, expected",
    [(1.0, 100_000), (1.25, 125_000), (None, 100_000), (0, 100_000), (-2, 100_000), (float("nan"), 100_000)],
)
def test_seat_price_multiplier(db, make_trip, multiplier, expected):
    from app.models.seat import Seat

    trip = make_trip(seats=("A1",), base_price=100_000)
    seat = Seat(seat_number="A1", bus_id=trip.bus_id, price_multiplier=multiplier)
    assert seat_price(trip, seat) == expected
