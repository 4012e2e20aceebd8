from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError

from app.core.config import settings
from app.core.security import decode_token
from app.services.booking_service import Notifier
from app.services.notification_service import notify_booking_confirmed
from app.services.vnpay_client import VNPayClient, VNPayConfig

bearer = HTTPBearer(auto_error=False)

# Roles allowed to confirm cash and bank-transfer payments
STAFF_ROLES = ("ADMIN", "COMPANY_ADMIN", "STAFF")


def get_optional_claims(creds: HTTPAuthorizationCredentials | None = Depends(bearer)) -> dict | None:
    """Identity comes from the account service's token. No token means guest checkout."""
    if not creds:
        return None
    try:
        payload = decode_token(creds.credentials)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    if not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid token")
    return payload


def get_optional_user_id(claims: dict | None = Depends(get_optional_claims)) -> str | None:
    return str(claims["sub"]) if claims else None


def get_current_user_id(user_id: str | None = Depends(get_optional_user_id)) -> str:
    if not user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user_id


def require_roles(*roles: str):
    allowed = {r.upper() for r in roles}

    def _guard(claims: dict | None = Depends(get_optional_claims)) -> dict:
        if not claims:
            raise HTTPException(status_code=401, detail="Not authenticated")
        if str(claims.get("role") or "").upper() not in allowed:
            raise HTTPException(status_code=403, detail="Forbidden")
        return claims
    return _guard


def is_staff(claims: dict | None) -> bool:
    return bool(claims) and str(claims.get("role") or "").upper() in STAFF_ROLES


def get_notifier() -> Notifier:
    return notify_booking_confirmed


def get_vnpay_client() -> VNPayClient:
    if not (settings.VNP_TMN_CODE and settings.VNP_HASH_SECRET):
        raise HTTPException(status_code=500, detail="VNPay is not configured (missing env vars)")
    return VNPayClient(VNPayConfig(
        tmn_code=settings.VNP_TMN_CODE,
        hash_secret=settings.VNP_HASH_SECRET,
        pay_url=settings.VNP_URL,
        return_url=settings.VNP_RETURN_URL,
        api_url=settings.VNP_API,
        timeout=settings.VNP_TIMEOUT_SECONDS,
        expire_minutes=settings.VNP_PAYMENT_EXPIRE_MINUTES,
    ))
