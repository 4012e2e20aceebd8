import hashlib
import hmac
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from urllib.parse import quote_plus
import requests

# VNPay timestamps are Vietnam local time
VN_TZ = timezone(timedelta(hours=7))

RESPONSE_MESSAGES = {
    "00": "Transaction successful",
    "07": "Amount debited, transaction flagged as suspicious (possible fraud)",
    "09": "Card/account is not registered for internet banking",
    "10": "Card/account verification failed more than 3 times",
    "11": "Payment window expired, please try again",
    "12": "Card/account is locked",
    "13": "Wrong OTP entered, please try again",
    "24": "Customer cancelled the transaction",
    "51": "Insufficient balance",
    "65": "Daily transaction limit exceeded",
    "75": "Paying bank is under maintenance",
    "79": "Wrong payment password entered too many times",
    "99": "Other error",
}

SUPPORTED_BANKS = [
    {"code": "NCB", "name": "NCB"},
    {"code": "AGRIBANK", "name": "Agribank"},
    {"code": "SCB", "name": "SCB"},
    {"code": "SACOMBANK", "name": "Sacombank"},
    {"code": "EXIMBANK", "name": "Eximbank"},
    {"code": "MSBANK", "name": "MSB"},
    {"code": "NAMABANK", "name": "Nam A Bank"},
    {"code": "VNMART", "name": "VnMart wallet"},
    {"code": "VIETINBANK", "name": "VietinBank"},
    {"code": "VIETCOMBANK", "name": "Vietcombank"},
    {"code": "HDBANK", "name": "HDBank"},
    {"code": "DONGABANK", "name": "DongA Bank"},
    {"code": "TPBANK", "name": "TPBank"},
    {"code": "OJB", "name": "OceanBank"},
    {"code": "BIDV", "name": "BIDV"},
    {"code": "TECHCOMBANK", "name": "Techcombank"},
    {"code": "VPBANK", "name": "VPBank"},
    {"code": "MBBANK", "name": "MB Bank"},
    {"code": "ACB", "name": "ACB"},
    {"code": "OCB", "name": "OCB"},
    {"code": "IVB", "name": "IVB"},
    {"code": "VISA", "name": "International card (Visa/Master)"},
]


@dataclass
class VNPayConfig:
    tmn_code: str           # vnp_TmnCode
    hash_secret: str        # shared HMAC-SHA512 secret
    pay_url: str            # redirect endpoint (vpcpay.html)
    return_url: str         # where VNPay sends the customer back
    api_url: str            # merchant_webapi transaction endpoint (querydr)
    timeout: int = 15
    expire_minutes: int = 15


class VNPayError(RuntimeError):
    pass


@dataclass
class VNPayResult:
    valid: bool             # signature verified
    success: bool           # response code 00
    code: str
    message: str
    order_id: str = ""
    amount: int = 0         # VND, already divided by 100
    transaction_no: str = ""
    bank_code: str = ""
    pay_date: str = ""
    transaction_status: str = ""


def response_message(code: str | None) -> str:
    return RESPONSE_MESSAGES.get(code or "", f"Unknown error ({code})")


def _hmac_sha512_hex(secret: str, msg: str) -> str:
    return hmac.new(secret.encode("utf-8"), msg.encode("utf-8"), hashlib.sha512).hexdigest()


def _query_string(params: dict, skip_empty: bool = True) -> str:
    # Sorted by key, values form-encoded; the same string is signed and sent.
    # Outbound requests leave blanks out, callbacks are hashed over every field received.
    return "&".join(
        f"{k}={quote_plus('' if params[k] is None else str(params[k]))}"
        for k in sorted(params)
        if not skip_empty or params[k] not in (None, "")
    )


def vnp_timestamp(dt: datetime) -> str:
    return dt.astimezone(VN_TZ).strftime("%Y%m%d%H%M%S")


class VNPayClient:
    def __init__(self, cfg: VNPayConfig):
        self.cfg = cfg

    def sign(self, params: dict, skip_empty: bool = True) -> str:
        return _hmac_sha512_hex(self.cfg.hash_secret, _query_string(params, skip_empty))

    def build_payment_url(
        self,
        *,
        order_id: str,
        amount: int,
        order_info: str,
        ip_addr: str,
        bank_code: str | None = None,
        locale: str = "vn",
        order_type: str = "other",
        now: datetime | None = None,
    ) -> str:
        now = now or datetime.now(timezone.utc)
        params = {
            "vnp_Version": "2.1.0",
            "vnp_Command": "pay",
            "vnp_TmnCode": self.cfg.tmn_code,
            "vnp_Locale": locale,
            "vnp_CurrCode": "VND",
            "vnp_TxnRef": order_id,
            "vnp_OrderInfo": order_info,
            "vnp_OrderType": order_type,
            "vnp_Amount": int(amount) * 100,
            "vnp_ReturnUrl": self.cfg.return_url,
            "vnp_IpAddr": ip_addr or "127.0.0.1",
            "vnp_CreateDate": vnp_timestamp(now),
            "vnp_ExpireDate": vnp_timestamp(now + timedelta(minutes=self.cfg.expire_minutes)),
        }
        if bank_code:
            params["vnp_BankCode"] = bank_code
        query = _query_string(params)
        return f"{self.cfg.pay_url}?{query}&vnp_SecureHash={self.sign(params)}"

    def verify(self, params: dict) -> bool:
        received = str(params.get("vnp_SecureHash") or "")
        if not received:
            return False
        data = {k: v for k, v in params.items() if k.startswith("vnp_") and k not in ("vnp_SecureHash", "vnp_SecureHashType")}
        return hmac.compare_digest(self.sign(data, skip_empty=False).lower(), received.lower())

    def parse_response(self, params: dict) -> VNPayResult:
        """Verify and normalize a return/IPN parameter set."""
        if not self.verify(params):
            return VNPayResult(valid=False, success=False, code="97", message="Invalid signature",
                               order_id=str(params.get("vnp_TxnRef") or ""))
        code = str(params.get("vnp_ResponseCode") or "")
        try:
            amount = int(params.get("vnp_Amount") or 0) // 100
        except (TypeError, ValueError):
            amount = -1
        return VNPayResult(
            valid=True,
            success=code == "00",
            code=code,
            message=response_message(code),
            order_id=str(params.get("vnp_TxnRef") or ""),
            amount=amount,
            transaction_no=str(params.get("vnp_TransactionNo") or ""),
            bank_code=str(params.get("vnp_BankCode") or ""),
            pay_date=str(params.get("vnp_PayDate") or ""),
            transaction_status=str(params.get("vnp_TransactionStatus") or ""),
        )

    def query_transaction(self, *, order_id: str, transaction_date: str, ip_addr: str = "127.0.0.1") -> dict:
        """Call querydr. `transaction_date` is the vnp_CreateDate of the original payment (yyyyMMddHHmmss)."""
        now = datetime.now(timezone.utc)
        request_id = uuid.uuid4().hex[:32]
        create_date = vnp_timestamp(now)
        order_info = f"Query order {order_id}"
        payload = {
            "vnp_RequestId": request_id,
            "vnp_Version": "2.1.0",
            "vnp_Command": "querydr",
            "vnp_TmnCode": self.cfg.tmn_code,
            "vnp_TxnRef": order_id,
            "vnp_OrderInfo": order_info,
            "vnp_TransactionDate": transaction_date,
            "vnp_CreateDate": create_date,
            "vnp_IpAddr": ip_addr,
        }
        # querydr signs a pipe-joined field list, not the query string
        sign_data = "|".join([
            request_id, "2.1.0", "querydr", self.cfg.tmn_code, order_id,
            transaction_date, create_date, ip_addr, order_info,
        ])
        payload["vnp_SecureHash"] = _hmac_sha512_hex(self.cfg.hash_secret, sign_data)

        try:
            r = requests.post(self.cfg.api_url, json=payload, timeout=self.cfg.timeout)
        except requests.RequestException as e:
            raise VNPayError(f"VNPay query failed: {e}") from e
        try:
            data = r.json() if r.text else {}
        except ValueError:
            data = {"raw": r.text}
        if r.status_code >= 400:
            raise VNPayError(f"VNPay {r.status_code}: {data}")
        return data

    def verify_query_response(self, data: dict) -> bool:
        received = str(data.get("vnp_SecureHash") or "")
        if not received:
            return False
        fields = [
            "vnp_ResponseId", "vnp_Command", "vnp_ResponseCode", "vnp_Message", "vnp_TmnCode",
            "vnp_TxnRef", "vnp_Amount", "vnp_BankCode", "vnp_PayDate", "vnp_TransactionNo",
            "vnp_TransactionType", "vnp_TransactionStatus", "vnp_OrderInfo", "vnp_PromotionCode",
            "vnp_PromotionAmount",
        ]
        sign_data = "|".join(str(data.get(f) if data.get(f) is not None else "") for f in fields)
        return hmac.compare_digest(_hmac_sha512_hex(self.cfg.hash_secret, sign_data).lower(), received.lower())

    @staticmethod
    def banks() -> list[dict]:
        return list(SUPPORTED_BANKS)
