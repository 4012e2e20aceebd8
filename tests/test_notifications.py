from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from app.models.booking import Booking
from app.models.email_log import EmailLog
from app.services import email_service
from app.services.booking_service import create_booking
from app.services.notification_service import (
    notify_booking_confirmed,
    render_confirmation,
    send_booking_confirmation,
)


def test_render_confirmation(db, make_trip, passenger):
    trip = make_trip(seats=("A1", "A2"), base_price=250_000)
    out = create_booking(db, trip.id, ["A1", "A2"], passenger, "CASH")
    b = db.get(Booking, out["booking"]["id"])
    subject, body = render_confirmation(b, trip)
    assert b.booking_code in subject
    assert "A1, A2" in body
    assert "500,000 VND" in body


def test_confirmation_is_sent_and_logged(db, make_trip, passenger, monkeypatch):
    sent = []
    monkeypatch.setattr(email_service, "send_email", lambda to, subject, body: sent.append((to, subject)))
    trip = make_trip()
    out = create_booking(db, trip.id, ["A1"], passenger, "CASH")

    eid = send_booking_confirmation(db, out["booking"]["id"], passenger["email"])
    log = db.get(EmailLog, eid)
    assert log.status == "sent"
    assert log.related_booking_code == out["booking"]["bookingCode"]
    assert sent[0][0] == passenger["email"]


def test_failed_send_is_retried(db, make_trip, passenger, monkeypatch):
    def down(to, subject, body):
        raise OSError("smtp unreachable")

    monkeypatch.setattr(email_service, "send_email", down)
    trip = make_trip()
    out = create_booking(db, trip.id, ["A1"], passenger, "CASH")
    eid = send_booking_confirmation(db, out["booking"]["id"], passenger["email"])
    assert db.get(EmailLog, eid).status == "failed"

    monkeypatch.setattr(email_service, "send_email", lambda to, subject, body: None)
    assert email_service.process_pending_emails(db) == {"processed": 1, "sent": 1, "failed": 0}
    statuses = [e.status for e in db.execute(select(EmailLog)).scalars()]
    assert statuses == ["sent"]


def test_unknown_booking_is_skipped(db):
    assert send_booking_confirmation(db, "missing", "x@example.test") is None


def test_notify_hands_off_to_worker(db, make_trip, passenger, monkeypatch):
    from app.tasks import jobs

    queued = []
    monkeypatch.setattr(jobs.send_booking_confirmation, "delay", lambda *args: queued.append(args))
    trip = make_trip()
    out = create_booking(db, trip.id, ["A1"], passenger, "CASH", notifier=notify_booking_confirmed)
    assert queued == [(out["booking"]["id"], passenger["email"])]


def test_retries_favor_fresh_mail_and_stop_at_the_cap(db, monkeypatch):
    def down(to, subject, body):
        raise OSError("smtp unreachable")

    monkeypatch.setattr(email_service, "send_email", down)
    stale = EmailLog(
        id="stale", to_email="old@example.test", subject="s", body="b", status="failed", attempts=3,
        created_at=datetime.now(timezone.utc) - timedelta(days=1),
    )
    fresh = EmailLog(id="fresh", to_email="new@example.test", subject="s", body="b", status="queued", attempts=0)
    db.add_all([stale, fresh])
    db.commit()

    # the older failure does not starve a newer message
    assert email_service.process_pending_emails(db, limit=1, max_attempts=5)["processed"] == 1
    assert db.get(EmailLog, "fresh").attempts == 1
    assert db.get(EmailLog, "stale").attempts == 3

    # at the cap a row is no longer picked up
    assert email_service.process_pending_emails(db, max_attempts=3) == {"processed": 1, "sent": 0, "failed": 1}
    assert db.get(EmailLog, "stale").attempts == 3
    assert db.get(EmailLog, "stale").status == "failed"
    assert db.get(EmailLog, "fresh").attempts == 2
