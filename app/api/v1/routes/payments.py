from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from starlette.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import STAFF_ROLES, get_optional_claims, get_vnpay_client, is_staff, require_roles
from app.core.errors import PermissionDeniedError
from app.schemas.payments import ProcessPaymentRequest, VNPayCreateRequest
from app.services import gateway_service
from app.services.payment_service import get_invoice_projection, process_payment
from app.services.vnpay_client import VNPayClient

router = APIRouter(tags=["payments"])


def _client_ip(request: Request) -> str:
    fwd = request.headers.get("x-forwarded-for")
    if fwd:
        return fwd.split(",")[0].strip()
    return request.client.host if request.client else "127.0.0.1"


async def _gateway_params(request: Request) -> dict:
    """VNPay sends GET query strings; also accept a form or JSON body on POST."""
    params = dict(request.query_params)
    if request.method == "POST":
        ctype = request.headers.get("content-type", "")
        if "application/json" in ctype:
            body = await request.json()
            if isinstance(body, dict):
                params.update({k: str(v) for k, v in body.items()})
        elif "form" in ctype:
            form = await request.form()
            params.update({k: str(v) for k, v in form.items()})
    return params


@router.post("/payments/process")
def process_payment_endpoint(
    body: ProcessPaymentRequest,
    db: Session = Depends(get_db),
    staff: dict = Depends(require_roles(*STAFF_ROLES)),
):
    return process_payment(
        db,
        booking_id=body.bookingId,
        payment_id=body.paymentId,
        amount=body.amount,
        payment_method=body.paymentMethod,
        confirmed_by=str(staff["sub"]),
    )


@router.get("/payments/vnpay/banks")
def vnpay_banks():
    return {"banks": VNPayClient.banks()}


@router.post("/payments/vnpay/create")
def vnpay_create(
    body: VNPayCreateRequest,
    request: Request,
    db: Session = Depends(get_db),
    client: VNPayClient = Depends(get_vnpay_client),
):
    return gateway_service.create_payment_url(db, client, body.bookingId, body.bankCode, _client_ip(request))


@router.get("/payments/vnpay/return")
def vnpay_return(
    request: Request,
    redirect: bool = False,
    db: Session = Depends(get_db),
    client: VNPayClient = Depends(get_vnpay_client),
):
    params = {k: v for k, v in request.query_params.items() if k.startswith("vnp_")}
    outcome = gateway_service.handle_return(db, client, params)
    if redirect:
        return RedirectResponse(url=outcome["redirectUrl"], status_code=302)
    return outcome


@router.api_route("/payments/vnpay/ipn", methods=["GET", "POST"])
async def vnpay_ipn(
    request: Request,
    db: Session = Depends(get_db),
    client: VNPayClient = Depends(get_vnpay_client),
):
    params = await _gateway_params(request)
    return await run_in_threadpool(gateway_service.handle_ipn, db, client, params)


@router.get("/payments/vnpay/query/{order_id}")
def vnpay_query(
    order_id: str,
    db: Session = Depends(get_db),
    client: VNPayClient = Depends(get_vnpay_client),
):
    return gateway_service.query_transaction(db, client, order_id)


@router.get("/payments/{payment_id}/invoice")
def payment_invoice(
    payment_id: str,
    bookingCode: str | None = None,
    db: Session = Depends(get_db),
    claims: dict | None = Depends(get_optional_claims),
):
    out = get_invoice_projection(db, payment_id)
    if is_staff(claims):
        return out
    owner = out["booking"]["userId"]
    if owner:
        if not claims or str(claims["sub"]) != owner:
            raise PermissionDeniedError("You can only view your own invoices")
    elif not bookingCode or bookingCode.strip().upper() != out["booking"]["bookingCode"]:
        raise PermissionDeniedError("Booking code is required to view a guest invoice")
    return out
