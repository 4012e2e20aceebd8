from urllib.parse import quote

from app.core.config import settings
from app.models.booking import Booking
from app.models.payment import Payment
from app.models.trip import Trip
from app.models.invoice import Invoice


def _iso(dt):
    return dt.isoformat() if dt else None


def booking_payload(b: Booking) -> dict:
    return {
        "id": b.id,
        "bookingCode": b.booking_code,
        "tripId": b.trip_id,
        "companyId": b.company_id,
        "userId": b.user_id,
        "passengerName": b.passenger_name,
        "passengerPhone": b.passenger_phone,
        "passengerEmail": b.passenger_email,
        "seatNumbers": list(b.seat_numbers or []),
        "totalPrice": int(b.total_price),
        "discountAmount": int(b.discount_amount or 0),
        "payableAmount": max(0, int(b.total_price) - int(b.discount_amount or 0)),
        "voucherId": b.voucher_id,
        "paymentMethod": b.payment_method,
        "paymentStatus": b.payment_status,
        "bookingStatus": b.booking_status,
        "notes": b.notes,
        "cancelledAt": _iso(b.cancelled_at),
        "createdAt": _iso(b.created_at),
    }


def bank_transfer_qr(amount: int, booking_code: str) -> dict:
    add_info = f"Thanh toan don {booking_code}"
    image = (
        f"https://img.vietqr.io/image/{settings.VIETQR_BANK_CODE}-{settings.VIETQR_ACCOUNT_NO}-qr_only.png"
        f"?amount={int(amount)}&addInfo={quote(add_info)}&accountName={quote(settings.VIETQR_ACCOUNT_NAME)}"
    )
    return {
        "bankCode": settings.VIETQR_BANK_CODE,
        "accountNo": settings.VIETQR_ACCOUNT_NO,
        "accountName": settings.VIETQR_ACCOUNT_NAME,
        "amount": int(amount),
        "addInfo": add_info,
        "qrImageUrl": image,
    }


def payment_payload(p: Payment, booking_code: str | None = None) -> dict:
    out = {
        "id": p.id,
        "paymentCode": p.payment_code,
        "bookingId": p.booking_id,
        "amount": int(p.amount),
        "discountAmount": int(p.discount_amount or 0),
        "voucherId": p.voucher_id,
        "paymentMethod": p.payment_method,
        "paymentStatus": p.payment_status,
        "transactionId": p.transaction_id,
        "paidAt": _iso(p.paid_at),
    }
    if p.payment_method == "BANK_TRANSFER" and booking_code:
        out["bankTransfer"] = bank_transfer_qr(p.amount, booking_code)
    return out


def trip_payload(t: Trip) -> dict:
    return {
        "id": t.id,
        "companyId": t.company_id,
        "busId": t.bus_id,
        "departureTime": _iso(t.departure_time),
        "arrivalTime": _iso(t.arrival_time),
        "basePrice": int(t.base_price),
        "totalSeats": t.total_seats,
        "availableSeats": t.available_seats,
        "status": t.status,
    }


def invoice_payload(inv: Invoice) -> dict:
    return {
        "id": inv.id,
        "invoiceNumber": inv.invoice_number,
        "status": inv.status,
        "subtotal": int(inv.subtotal),
        "taxRate": inv.tax_rate,
        "taxAmount": int(inv.tax_amount),
        "totalAmount": int(inv.total_amount),
        "issuedAt": _iso(inv.issued_at),
        "metadata": inv.metadata_json or {},
    }
