import smtplib
import uuid
import logging
from email.message import EmailMessage

import requests
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.timeutils import utcnow
from app.models.email_log import EmailLog

logger = logging.getLogger(__name__)


def queue_email(db: Session, to_email: str, subject: str, body: str, related_booking_code: str = "") -> str:
    """Store the message, then try to send it right away. A failed send is left for process_pending_emails."""
    eid = str(uuid.uuid4())
    db.add(EmailLog(
        id=eid,
        to_email=to_email,
        subject=subject,
        body=body,
        status="queued",
        related_booking_code=related_booking_code,
    ))
    db.commit()

    log = db.get(EmailLog, eid)
    log.attempts = 1
    try:
        send_email(to_email, subject, body)
        log.status = "sent"
        log.sent_at = utcnow()
    except Exception:
        logger.warning("email send failed to=%s, will retry", to_email, exc_info=True)
        log.status = "failed"
    db.commit()
    return eid


def send_email(to_email: str, subject: str, body: str) -> None:
    """SendGrid when an API key is configured, plain SMTP otherwise (MailHog locally)."""
    if settings.SENDGRID_API_KEY:
        _send_via_sendgrid(to_email, subject, body)
        return

    msg = EmailMessage()
    msg["From"] = settings.SMTP_FROM
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=10) as smtp:
        if settings.SMTP_USERNAME:
            smtp.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        smtp.send_message(msg)


def _send_via_sendgrid(to_email: str, subject: str, body: str) -> None:
    payload = {
        "personalizations": [{"to": [{"email": to_email}]}],
        "from": {"email": settings.SENDGRID_FROM_EMAIL or settings.SMTP_FROM},
        "subject": subject,
        "content": [{"type": "text/plain", "value": body}],
    }
    r = requests.post(
        "https://api.sendgrid.com/v3/mail/send",
        json=payload,
        headers={"Authorization": f"Bearer {settings.SENDGRID_API_KEY}"},
        timeout=20,
    )
    if r.status_code >= 400:
        raise RuntimeError(f"SendGrid error {r.status_code}: {r.text}")


def process_pending_emails(db: Session, limit: int = 50, max_attempts: int | None = None) -> dict:
    """Retry up to `limit` queued or failed emails, fewest attempts first, then oldest.

    Rows that already used up `max_attempts` stay `failed` and are skipped.
    """
    max_attempts = max_attempts or settings.EMAIL_MAX_ATTEMPTS
    pending = (
        db.query(EmailLog)
        .filter(
            EmailLog.status.in_(["queued", "failed"]),
            EmailLog.attempts < max_attempts,
            EmailLog.body.isnot(None),
            EmailLog.body != "",
        )
        .order_by(EmailLog.attempts.asc(), EmailLog.created_at.asc())
        .limit(limit)
        .all()
    )
    sent = failed = 0
    for log in pending:
        log.attempts = (log.attempts or 0) + 1
        try:
            send_email(log.to_email, log.subject, log.body)
            log.status = "sent"
            log.sent_at = utcnow()
            sent += 1
        except Exception:
            logger.warning("email retry failed id=%s attempt=%s", log.id, log.attempts, exc_info=True)
            log.status = "failed"
            if log.attempts >= max_attempts:
                logger.error("giving up on email id=%s to=%s", log.id, log.to_email)
            failed += 1
    if pending:
        db.commit()
    return {"processed": len(pending), "sent": sent, "failed": failed}
