"""VNPay reconciliation: payment URL creation plus the return, IPN and query paths.

All three confirmation channels settle through
``payment_service.mark_payment_success``.
"""
import uuid
import time
import logging
from dataclasses import asdict
from urllib.parse import urlencode

from sqlalchemy.orm import Session
from sqlalchemy import select

from app.core.config import settings
from app.core.errors import (
    BookingError, ConflictError, GatewayError, GatewayVerificationError, NotFoundError,
)
from app.core.timeutils import utcnow, as_utc
from app.models.payment import Payment
from app.models.vnpay_transaction import VNPayTransaction
from app.services.payment_log_service import log_payment_event
from app.services.payment_service import create_payment, latest_payment, lock_booking, mark_payment_success
from app.services.vnpay_client import VNPayClient, VNPayError, VNPayResult, vnp_timestamp

logger = logging.getLogger(__name__)

IPN_OK = {"RspCode": "00", "Message": "Confirm Success"}
IPN_NOT_FOUND = {"RspCode": "01", "Message": "Order not found"}
IPN_ALREADY_CONFIRMED = {"RspCode": "02", "Message": "Order already confirmed"}
IPN_BAD_AMOUNT = {"RspCode": "04", "Message": "Invalid amount"}
IPN_BAD_CHECKSUM = {"RspCode": "97", "Message": "Invalid Checksum"}
IPN_UNKNOWN = {"RspCode": "99", "Message": "Unknown error"}


def _get_transaction(db: Session, order_id: str, for_update: bool = False) -> VNPayTransaction | None:
    if not order_id:
        return None
    q = select(VNPayTransaction).where(VNPayTransaction.order_id == order_id)
    if for_update:
        q = q.with_for_update().execution_options(populate_existing=True)
    return db.execute(q).scalar_one_or_none()


def _new_order_id(db: Session, booking_code: str) -> str:
    for _ in range(5):
        order_id = f"{booking_code}_{int(time.time() * 1000)}"
        if not _get_transaction(db, order_id):
            return order_id
        time.sleep(0.002)
    raise ConflictError("Could not allocate a gateway order id, please retry")


def create_payment_url(db: Session, client: VNPayClient, booking_id: str, bank_code: str | None = None, ip_addr: str = "127.0.0.1") -> dict:
    try:
        booking = lock_booking(db, booking_id)
        if booking.payment_status == "PAID":
            raise ConflictError("Booking is already paid")
        if booking.booking_status != "CONFIRMED":
            raise ConflictError(f"Booking is {booking.booking_status}")

        payment = latest_payment(db, booking.id, for_update=True)
        if payment and payment.payment_status == "SUCCESS":
            raise ConflictError("Booking is already paid")
        if not payment or payment.payment_status in ("FAILED", "CANCELLED"):
            payable = max(0, int(booking.total_price) - int(booking.discount_amount or 0))
            payment = create_payment(db, booking, payable, "VNPAY", booking.discount_amount, booking.voucher_id)
        elif payment.payment_method != "VNPAY":
            payment.payment_method = "VNPAY"
            booking.payment_method = "VNPAY"
        if int(payment.amount) <= 0:
            raise ConflictError("Nothing to pay on this booking")

        now = utcnow()
        order_id = _new_order_id(db, booking.booking_code)
        order_info = f"Thanh toan ve xe {booking.booking_code}"
        tx = VNPayTransaction(
            id=str(uuid.uuid4()),
            payment_id=payment.id,
            order_id=order_id,
            amount=int(payment.amount),
            order_info=order_info,
            bank_code=bank_code or None,
            status="PENDING",
            created_at=now,
        )
        db.add(tx)
        tx.payment_url = client.build_payment_url(
            order_id=order_id, amount=tx.amount, order_info=order_info,
            ip_addr=ip_addr, bank_code=bank_code, now=now,
        )
        log_payment_event(
            db, payment.id, "CREATE_VNPAY_URL", status="INFO",
            payload={"bookingId": booking.id, "bankCode": bank_code},
            response={"orderId": order_id, "vnpayTransactionId": tx.id},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("vnpay url created order=%s amount=%s", order_id, tx.amount)
    return {"paymentUrl": tx.payment_url, "orderId": order_id, "amount": int(tx.amount), "paymentId": payment.id}


def _log_unverified(db: Session, order_id: str, event_type: str, params: dict) -> None:
    """Record a signature failure against the payment when the order is known. Never touches state."""
    tx = _get_transaction(db, order_id)
    if not tx:
        return
    log_payment_event(
        db, tx.payment_id, event_type, status="FAILED",
        payload=params, error_message="Invalid signature",
    )
    db.commit()


def _record_decline(db: Session, tx: VNPayTransaction, result: VNPayResult, event_type: str) -> None:
    # The payment stays PENDING so the customer can try again with a new transaction
    if tx.status == "PENDING":
        tx.status = "CANCELLED" if result.code == "24" else "FAILED"
        tx.response_code = result.code
        tx.response_message = result.message
        tx.transaction_no = result.transaction_no or tx.transaction_no
    log_payment_event(
        db, tx.payment_id, event_type, status="FAILED",
        payload=asdict(result), error_message=result.message,
    )


def _settle(db: Session, tx: VNPayTransaction, result: VNPayResult, trigger: str) -> bool:
    """Mark the gateway transaction and its payment successful. Returns False if it already was."""
    already = tx.status == "SUCCESS"
    if not already:
        tx.status = "SUCCESS"
        tx.transaction_no = result.transaction_no or tx.transaction_no
        tx.response_code = result.code
        tx.response_message = result.message
        tx.paid_at = utcnow()
    _, changed = mark_payment_success(
        db, tx.payment_id, trigger,
        transaction_id=tx.transaction_no,
        payload={"orderId": tx.order_id, "transactionNo": tx.transaction_no, "amount": result.amount},
        commit=False,
    )
    return changed and not already


def _log_settle_failure(db: Session, order_id: str, event_type: str, message: str) -> None:
    """The gateway took the money but the payment could not settle (e.g. booking cancelled meanwhile)."""
    tx = _get_transaction(db, order_id)
    if not tx:
        return
    log_payment_event(db, tx.payment_id, event_type, status="ERROR", payload={"orderId": order_id}, error_message=message)
    db.commit()


def _failed_redirect(code: str, message: str) -> str:
    return f"{settings.FRONTEND_URL}/payment/failed?" + urlencode({"code": code, "message": message})


def handle_return(db: Session, client: VNPayClient, params: dict) -> dict:
    """Customer came back from VNPay. Returns the outcome and the frontend URL to send them to."""
    result = client.parse_response(params)
    if not result.valid:
        _log_unverified(db, result.order_id, "VNPAY_RETURN", params)
        logger.warning("vnpay return with bad signature order=%s", result.order_id)
        return {"success": False, "code": "97", "message": "Invalid signature",
                "redirectUrl": _failed_redirect("97", "Invalid signature")}

    try:
        tx = _get_transaction(db, result.order_id, for_update=True)
        if not tx:
            db.rollback()
            return {"success": False, "code": "01", "message": "Order not found",
                    "redirectUrl": _failed_redirect("01", "Order not found")}
        if tx.status in ("FAILED", "CANCELLED"):
            db.rollback()
            return {"success": False, "code": "02", "message": "Order already confirmed",
                    "paymentId": tx.payment_id, "redirectUrl": _failed_redirect("02", "Order already confirmed")}
        if not result.success:
            _record_decline(db, tx, result, "VNPAY_RETURN")
            db.commit()
            logger.info("vnpay return declined order=%s code=%s", tx.order_id, result.code)
            return {"success": False, "code": result.code, "message": result.message,
                    "paymentId": tx.payment_id, "redirectUrl": _failed_redirect(result.code, result.message)}

        _settle(db, tx, result, "GATEWAY_RETURN")
        db.commit()
    except BookingError as e:
        db.rollback()
        logger.warning("vnpay return could not settle order=%s: %s", result.order_id, e.message)
        _log_settle_failure(db, result.order_id, "VNPAY_RETURN", e.message)
        return {"success": False, "code": "02", "message": e.message,
                "redirectUrl": _failed_redirect("02", e.message)}
    except Exception:
        db.rollback()
        raise

    payment = db.get(Payment, tx.payment_id)
    logger.info("vnpay return settled order=%s payment=%s", tx.order_id, payment.id)
    query = urlencode({
        "bookingId": payment.booking_id,
        "paymentId": payment.id,
        "transactionNo": tx.transaction_no or "",
        "method": "vnpay",
    })
    return {
        "success": True, "code": "00", "message": result.message,
        "bookingId": payment.booking_id, "paymentId": payment.id, "transactionNo": tx.transaction_no,
        "redirectUrl": f"{settings.FRONTEND_URL}/payment/success?{query}",
    }


def handle_ipn(db: Session, client: VNPayClient, params: dict) -> dict:
    """Server-to-server push. Always answers with VNPay's RspCode/Message pair."""
    try:
        result = client.parse_response(params)
        if not result.valid:
            _log_unverified(db, result.order_id, "VNPAY_IPN", params)
            logger.warning("vnpay ipn with bad signature order=%s", result.order_id)
            return IPN_BAD_CHECKSUM

        tx = _get_transaction(db, result.order_id, for_update=True)
        if not tx:
            db.rollback()
            return IPN_NOT_FOUND
        if result.amount != int(tx.amount):
            log_payment_event(
                db, tx.payment_id, "VNPAY_IPN", status="FAILED",
                payload=asdict(result), error_message=f"Amount mismatch: expected {int(tx.amount)}",
            )
            db.commit()
            logger.warning("vnpay ipn amount mismatch order=%s got=%s expected=%s", tx.order_id, result.amount, tx.amount)
            return IPN_BAD_AMOUNT
        if tx.status == "SUCCESS":
            db.rollback()
            return IPN_OK
        if tx.status != "PENDING":
            db.rollback()
            return IPN_ALREADY_CONFIRMED

        if not result.success:
            _record_decline(db, tx, result, "VNPAY_IPN")
            db.commit()
            return IPN_OK

        _settle(db, tx, result, "GATEWAY_IPN")
        db.commit()
        logger.info("vnpay ipn settled order=%s", tx.order_id)
        return IPN_OK
    except ConflictError as e:
        db.rollback()
        logger.warning("vnpay ipn for a payment that can no longer settle: %s", e.message)
        _log_settle_failure(db, result.order_id, "VNPAY_IPN", e.message)
        return IPN_ALREADY_CONFIRMED
    except Exception:
        db.rollback()
        logger.exception("vnpay ipn failed")
        return IPN_UNKNOWN


def query_transaction(db: Session, client: VNPayClient, order_id: str) -> dict:
    """Ask VNPay for the order status and settle locally if it reports a paid transaction."""
    tx = _get_transaction(db, order_id)
    if not tx:
        raise NotFoundError("Order not found")
    transaction_date = vnp_timestamp(as_utc(tx.created_at))
    expected_amount = int(tx.amount)
    # no transaction stays open across the HTTP call
    db.commit()

    try:
        data = client.query_transaction(order_id=order_id, transaction_date=transaction_date)
    except VNPayError as e:
        logger.warning("vnpay query failed order=%s: %s", order_id, e)
        raise GatewayError(str(e)) from e
    if not client.verify_query_response(data):
        _log_unverified(db, order_id, "VNPAY_QUERY", data)
        raise GatewayVerificationError("Gateway response failed signature verification")

    code = str(data.get("vnp_ResponseCode") or "")
    txn_status = str(data.get("vnp_TransactionStatus") or "")
    try:
        gateway_amount = int(data.get("vnp_Amount") or 0) // 100
    except (TypeError, ValueError):
        gateway_amount = -1
    synced = False

    if code == "00" and txn_status == "00" and gateway_amount == expected_amount:
        try:
            tx = _get_transaction(db, order_id, for_update=True)
            if tx.status != "SUCCESS":
                result = VNPayResult(
                    valid=True, success=True, code=txn_status, message=str(data.get("vnp_Message") or ""),
                    order_id=order_id, amount=gateway_amount,
                    transaction_no=str(data.get("vnp_TransactionNo") or ""),
                    bank_code=str(data.get("vnp_BankCode") or ""),
                    pay_date=str(data.get("vnp_PayDate") or ""),
                    transaction_status=txn_status,
                )
                synced = _settle(db, tx, result, "GATEWAY_QUERY")
            db.commit()
        except Exception:
            db.rollback()
            raise
        if synced:
            logger.info("vnpay query settled order=%s", order_id)

    tx = _get_transaction(db, order_id)
    payment = db.get(Payment, tx.payment_id)
    return {
        "orderId": order_id,
        "status": tx.status,
        "paymentStatus": payment.payment_status if payment else None,
        "synced": synced,
        "gateway": {
            "responseCode": code,
            "transactionStatus": txn_status,
            "amount": gateway_amount,
            "message": data.get("vnp_Message"),
        },
    }
