import uuid, json
from sqlalchemy.orm import Session
from app.models.payment_log import PaymentLog

def log_payment_event(
    db: Session,
    payment_id: str,
    event_type: str,
    status: str = "INFO",
    payload: dict | None = None,
    response: dict | None = None,
    error_message: str | None = None,
) -> PaymentLog:
    """Append an audit row for a payment. Rows are never updated afterwards."""
    entry = PaymentLog(
        id=str(uuid.uuid4()),
        payment_id=payment_id,
        event_type=event_type,
        status=status,
        payload_json=json.dumps(payload or {}, ensure_ascii=False, default=str),
        response_json=json.dumps(response or {}, ensure_ascii=False, default=str),
        error_message=error_message,
    )
    db.add(entry)
    return entry
