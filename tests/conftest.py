from __future__ import annotations

import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "memory://")
os.environ.setdefault("VNP_HASH_SECRET", "TESTHASHSECRET")
os.environ.setdefault("FRONTEND_URL", "http://frontend.test")

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from app.db.session import Base
from app.models.trip import Trip
from app.models.seat import Seat
from app.models.seat_lock import SeatLock  # noqa: F401
from app.models.booking import Booking  # noqa: F401
from app.models.booking_item import BookingItem  # noqa: F401
from app.models.payment import Payment  # noqa: F401
from app.models.payment_log import PaymentLog  # noqa: F401
from app.models.invoice import Invoice  # noqa: F401
from app.models.voucher import Voucher
from app.models.voucher_usage import VoucherUsage  # noqa: F401
from app.models.vnpay_transaction import VNPayTransaction  # noqa: F401
from app.models.email_log import EmailLog  # noqa: F401
from app.services.vnpay_client import VNPayClient, VNPayConfig

COMPANY_ID = "company-1"
OTHER_COMPANY_ID = "company-2"
PASSENGER = {"name": "Nguyen Van A", "phone": "0900000001", "email": "a@example.test"}


@pytest.fixture()
def engine(tmp_path):
    """
    Isolated file-backed SQLite engine per test, so the API client and the
    test's own session see each other's commits.
    """
    eng = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'booking.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def db(session_factory):
    s = session_factory()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture()
def race_engine(tmp_path):
    """
    SQLite ignores SELECT ... FOR UPDATE, so every transaction starts with
    BEGIN IMMEDIATE instead: writers queue up exactly like they do behind the
    Trip row lock on Postgres.
    """
    eng = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(eng, "connect")
    def _no_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(eng, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def vnpay_client() -> VNPayClient:
    return VNPayClient(VNPayConfig(
        tmn_code="TESTTMN1",
        hash_secret="TESTHASHSECRET",
        pay_url="https://sandbox.vnpay.test/paymentv2/vpcpay.html",
        return_url="http://frontend.test/payment/vnpay/return",
        api_url="https://sandbox.vnpay.test/merchant_webapi/api/transaction",
        timeout=5,
    ))


def _make_trip(
    db,
    seats=("A1", "A2", "A3", "A4"),
    total_seats: int | None = None,
    available_seats: int | None = None,
    base_price: int = 100_000,
    departs_in: timedelta = timedelta(days=1),
    status: str = "SCHEDULED",
    company_id: str = COMPANY_ID,
    multipliers: dict | None = None,
) -> Trip:
    bus_id = str(uuid.uuid4())
    multipliers = multipliers or {}
    for n in seats:
        db.add(Seat(
            id=str(uuid.uuid4()),
            bus_id=bus_id,
            seat_number=n,
            seat_type="VIP" if n in multipliers else "STANDARD",
            price_multiplier=multipliers.get(n, 1.0),
            is_active=True,
        ))
    total = total_seats if total_seats is not None else len(seats)
    dep = datetime.now(timezone.utc) + departs_in
    trip = Trip(
        id=str(uuid.uuid4()),
        company_id=company_id,
        bus_id=bus_id,
        departure_time=dep,
        arrival_time=dep + timedelta(hours=5),
        base_price=base_price,
        total_seats=total,
        available_seats=available_seats if available_seats is not None else total,
        status=status,
    )
    db.add(trip)
    db.commit()
    return trip


def _make_voucher(db, code: str = "SALE10", **fields) -> Voucher:
    data = {
        "company_id": None,
        "name": code,
        "discount_type": "PERCENT",
        "discount_value": 10,
        "is_active": True,
        "used_count": 0,
    }
    data.update(fields)
    v = Voucher(id=str(uuid.uuid4()), code=code, **data)
    db.add(v)
    db.commit()
    return v


@pytest.fixture()
def make_trip(db):
    """Trip on a fresh bus whose seat catalog holds exactly `seats`."""
    return lambda **kw: _make_trip(db, **kw)


@pytest.fixture()
def make_voucher(db):
    return lambda code="SALE10", **kw: _make_voucher(db, code, **kw)


@pytest.fixture()
def passenger() -> dict:
    return dict(PASSENGER)


@pytest.fixture()
def gateway_params(vnpay_client):
    """Build the parameter set VNPay appends to the return URL / IPN call, signed with the shared secret."""
    def _build(order_id: str, amount: int, code: str = "00", transaction_no: str = "14000001") -> dict:
        params = {
            "vnp_Amount": str(int(amount) * 100),
            "vnp_BankCode": "NCB",
            "vnp_OrderInfo": f"Thanh toan ve xe {order_id.split('_')[0]}",
            "vnp_PayDate": "20261019103000",
            "vnp_ResponseCode": code,
            "vnp_TmnCode": vnpay_client.cfg.tmn_code,
            "vnp_TransactionNo": transaction_no,
            "vnp_TransactionStatus": code,
            "vnp_TxnRef": order_id,
        }
        params["vnp_SecureHash"] = vnpay_client.sign(params)
        return params
    return _build


@pytest.fixture()
def notified() -> list:
    return []


@pytest.fixture()
def client(session_factory, vnpay_client, notified):
    from fastapi.testclient import TestClient

    from app.main import app
    from app.db.session import get_db
    from app.api.deps import get_notifier, get_vnpay_client

    def _get_db():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_notifier] = lambda: (lambda booking, email: notified.append((booking.booking_code, email)))
    app.dependency_overrides[get_vnpay_client] = lambda: vnpay_client
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def auth_header():
    """Bearer header with a token shaped like the account service's."""
    from jose import jwt

    from app.core.config import settings
    from app.core.security import ALGO

    def _header(user_id: str, role: str = "PASSENGER") -> dict:
        claims = {
            "sub": user_id,
            "role": role,
            "type": "access",
            "exp": datetime.now(timezone.utc) + timedelta(minutes=30),
        }
        return {"Authorization": f"Bearer {jwt.encode(claims, settings.SECRET_KEY, algorithm=ALGO)}"}
    return _header


@pytest.fixture()
def recount_available():
    """What a trip's free-seat counter should read given its committed seat set."""
    from app.services.availability_service import booked_seat_numbers

    return lambda s, trip: trip.total_seats - len(booked_seat_numbers(s, trip.id))
