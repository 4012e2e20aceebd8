"""Payment state machine and invoice issuer.

PENDING -> SUCCESS | FAILED | CANCELLED. Every path that settles a payment
(manual confirmation, gateway return, IPN, status query) goes through
``mark_payment_success``.
"""
import uuid
import random
import string
import logging

from sqlalchemy.orm import Session
from sqlalchemy import select

from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.core.timeutils import utcnow
from app.models.booking import Booking
from app.models.booking_item import BookingItem
from app.models.payment import Payment
from app.models.invoice import Invoice
from app.services.payment_log_service import log_payment_event
from app.services.payload_service import booking_payload, payment_payload, invoice_payload

logger = logging.getLogger(__name__)

ALLOWED = {
    "PENDING": {"SUCCESS", "FAILED", "CANCELLED"},
    "SUCCESS": set(),
    "FAILED": set(),
    "CANCELLED": set(),
}

# What observed the confirmation -> PaymentLog event type
SUCCESS_EVENTS = {
    "MANUAL": "MANUAL_PAYMENT_SUCCESS",
    "GATEWAY_RETURN": "VNPAY_RETURN",
    "GATEWAY_IPN": "VNPAY_IPN",
    "GATEWAY_QUERY": "VNPAY_QUERY_SYNC",
}


def make_code(prefix: str) -> str:
    stamp = utcnow().strftime("%y%m%d")
    return prefix + stamp + "".join(random.choices(string.ascii_uppercase + string.digits, k=6))


def allocate_payment_code(db: Session) -> str:
    # payment_code must be unique
    for _ in range(10):
        code = make_code("PAY")
        if not db.query(Payment).filter(Payment.payment_code == code).first():
            return code
    raise ValueError("could not allocate payment code")


def create_payment(db: Session, booking: Booking, amount: int, payment_method: str, discount_amount: int = 0, voucher_id: str | None = None) -> Payment:
    """Open a PENDING payment plus its DRAFT invoice. No commit."""
    payment = Payment(
        id=str(uuid.uuid4()),
        payment_code=allocate_payment_code(db),
        booking_id=booking.id,
        company_id=booking.company_id,
        amount=int(amount),
        discount_amount=int(discount_amount or 0),
        voucher_id=voucher_id,
        payment_method=payment_method,
        payment_status="PENDING",
    )
    db.add(payment)
    db.flush()
    ensure_invoice(db, payment, booking)
    return payment


def _seat_snapshot(db: Session, booking: Booking) -> dict:
    items = db.query(BookingItem).filter(BookingItem.booking_id == booking.id).order_by(BookingItem.seat_number).all()
    seats = [{"seatNumber": i.seat_number, "price": int(i.price)} for i in items]
    if not seats:
        seats = [{"seatNumber": n} for n in (booking.seat_numbers or [])]
    return {"seats": seats, "seatCount": len(seats)}


def ensure_invoice(db: Session, payment: Payment, booking: Booking) -> Invoice:
    """One invoice per payment: create it (DRAFT, or ISSUED for a settled payment) or promote it to ISSUED."""
    inv = db.execute(select(Invoice).where(Invoice.payment_id == payment.id)).scalar_one_or_none()
    paid = payment.payment_status == "SUCCESS"
    if inv:
        if paid and inv.status != "ISSUED":
            inv.status = "ISSUED"
            inv.issued_at = payment.paid_at or utcnow()
            inv.subtotal = int(payment.amount)
            inv.total_amount = int(payment.amount)
        return inv

    inv = Invoice(
        id=str(uuid.uuid4()),
        invoice_number=f"INV-{utcnow().strftime('%Y%m%d')}-{payment.payment_code}",
        company_id=payment.company_id,
        booking_id=booking.id,
        payment_id=payment.id,
        status="ISSUED" if paid else "DRAFT",
        subtotal=int(payment.amount),
        tax_rate=0,
        tax_amount=0,
        total_amount=int(payment.amount),
        issued_at=(payment.paid_at or utcnow()) if paid else None,
        metadata_json=_seat_snapshot(db, booking),
    )
    db.add(inv)
    db.flush()  # unique payment_id guards a racing creator
    return inv


def lock_booking(db: Session, booking_id: str) -> Booking:
    booking = db.execute(
        select(Booking).where(Booking.id == booking_id).with_for_update().execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if not booking:
        raise NotFoundError("Booking not found")
    return booking


def get_payment_for_update(db: Session, payment_id: str) -> Payment:
    payment = db.execute(
        select(Payment).where(Payment.id == payment_id).with_for_update().execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if not payment:
        raise NotFoundError("Payment not found")
    return payment


def transition_payment(payment: Payment, new_status: str) -> bool:
    """Move a payment forward. Returns False for a repeat of the current state."""
    if payment.payment_status == new_status:
        return False
    if new_status not in ALLOWED.get(payment.payment_status, set()):
        raise ConflictError(f"Payment is {payment.payment_status} and cannot become {new_status}")
    payment.payment_status = new_status
    return True


def mark_payment_success(
    db: Session,
    payment_id: str,
    trigger: str,
    transaction_id: str | None = None,
    payload: dict | None = None,
    commit: bool = True,
) -> tuple[Payment, bool]:
    """Settle a payment. Returns (payment, changed); changed is False when it was already SUCCESS."""
    try:
        found = db.get(Payment, payment_id)
        if not found:
            raise NotFoundError("Payment not found")
        # booking row before payment row, same order as cancellation
        booking = lock_booking(db, found.booking_id)
        payment = get_payment_for_update(db, payment_id)
        if payment.payment_status == "SUCCESS":
            if commit:
                db.commit()
            return payment, False

        transition_payment(payment, "SUCCESS")
        payment.paid_at = utcnow()
        if transaction_id:
            payment.transaction_id = transaction_id
        booking.payment_status = "PAID"
        inv = ensure_invoice(db, payment, booking)
        log_payment_event(
            db, payment.id, SUCCESS_EVENTS.get(trigger, trigger), status="SUCCESS",
            payload=payload, response={"invoiceNumber": inv.invoice_number, "transactionId": payment.transaction_id},
        )
        if commit:
            db.commit()
    except Exception:
        if commit:
            db.rollback()
        raise
    logger.info("payment settled payment=%s booking=%s trigger=%s", payment.id, payment.booking_id, trigger)
    return payment, True


def latest_payment(db: Session, booking_id: str, for_update: bool = False) -> Payment | None:
    q = select(Payment).where(Payment.booking_id == booking_id).order_by(Payment.created_at.desc()).limit(1)
    if for_update:
        q = q.with_for_update()
    return db.execute(q).scalar_one_or_none()


def cancel_pending_payments(db: Session, booking: Booking, reason: str) -> int:
    """Cancel every PENDING payment of a booking and void their DRAFT invoices. No commit."""
    payments = db.execute(
        select(Payment).where(Payment.booking_id == booking.id, Payment.payment_status == "PENDING").with_for_update()
    ).scalars().all()
    for p in payments:
        transition_payment(p, "CANCELLED")
        inv = db.execute(select(Invoice).where(Invoice.payment_id == p.id)).scalar_one_or_none()
        if inv and inv.status == "DRAFT":
            inv.status = "CANCELLED"
        log_payment_event(db, p.id, "PAYMENT_CANCELLED", status="INFO", payload={"reason": reason})
    return len(payments)


def process_payment(
    db: Session,
    booking_id: str | None = None,
    payment_id: str | None = None,
    amount: int | None = None,
    payment_method: str | None = None,
    confirmed_by: str | None = None,
) -> dict:
    """Manual settlement (cash at the counter, confirmed bank transfer) by a staff member."""
    if not booking_id and not payment_id:
        raise ValidationError("bookingId or paymentId is required")
    try:
        owner_id = booking_id
        if payment_id:
            found = db.get(Payment, payment_id)
            if not found:
                raise NotFoundError("Payment not found")
            owner_id = found.booking_id
        booking = lock_booking(db, owner_id)
        if booking_id and booking.id != booking_id:
            raise ValidationError("Payment does not belong to this booking")
        if payment_id:
            payment = get_payment_for_update(db, payment_id)
        else:
            payment = latest_payment(db, booking.id, for_update=True)
            if not payment:
                raise NotFoundError("Payment not found")

        if payment.payment_status != "SUCCESS":
            if booking.booking_status != "CONFIRMED":
                raise ConflictError(f"Booking is {booking.booking_status}")
            if amount is not None and int(amount) != int(payment.amount):
                raise ValidationError(
                    f"Amount {int(amount)} does not match the payable amount {int(payment.amount)}",
                    expectedAmount=int(payment.amount),
                )
            if payment_method and payment_method != payment.payment_method:
                payment.payment_method = payment_method
                booking.payment_method = payment_method
                # the re-lock below refreshes both rows from the database
                db.flush()

        payment, changed = mark_payment_success(
            db, payment.id, "MANUAL",
            payload={"amount": amount, "paymentMethod": payment_method, "confirmedBy": confirmed_by},
            commit=False,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(booking)
    return {
        "booking": booking_payload(booking),
        "payment": payment_payload(payment, booking.booking_code),
        "alreadyPaid": not changed,
    }


def get_invoice_projection(db: Session, payment_id: str) -> dict:
    payment = db.get(Payment, payment_id)
    if not payment:
        raise NotFoundError("Payment not found")
    booking = db.get(Booking, payment.booking_id)
    if not booking:
        raise NotFoundError("Booking not found")
    inv = db.execute(select(Invoice).where(Invoice.payment_id == payment.id)).scalar_one_or_none()
    if not inv:
        raise NotFoundError("Invoice not found")
    return {
        "invoice": invoice_payload(inv),
        "payment": payment_payload(payment),
        "booking": booking_payload(booking),
    }
