from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.deps import get_optional_user_id
from app.schemas.voucher import VoucherValidateRequest
from app.services.voucher_service import preview_voucher

router = APIRouter(tags=["vouchers"])


@router.post("/vouchers/validate")
def validate_voucher_endpoint(
    body: VoucherValidateRequest,
    db: Session = Depends(get_db),
    user_id: str | None = Depends(get_optional_user_id),
):
    return preview_voucher(db, body.code, body.tripId, body.seatNumbers, user_id)
