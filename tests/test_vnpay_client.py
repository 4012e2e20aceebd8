from __future__ import annotations

import hashlib
import hmac
from datetime import datetime, timezone
from urllib.parse import parse_qsl, quote_plus, urlsplit

import pytest
import requests

from app.services.vnpay_client import VNPayClient, VNPayError, vnp_timestamp


class _FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload if payload is not None else {}
        self.text = text if text is not None else "{...}"

    def json(self):
        return self._payload


def _url_params(url: str) -> dict:
    return dict(parse_qsl(urlsplit(url).query, keep_blank_values=True))


def test_payment_url_is_signed(vnpay_client):
    now = datetime(2026, 10, 19, 3, 0, tzinfo=timezone.utc)
    url = vnpay_client.build_payment_url(
        order_id="BK261019ABCDEF_1", amount=250_000, order_info="Thanh toan ve xe BK261019ABCDEF",
        ip_addr="10.0.0.1", bank_code="NCB", now=now,
    )
    assert url.startswith(vnpay_client.cfg.pay_url + "?")
    params = _url_params(url)
    assert params["vnp_Amount"] == "25000000"
    assert params["vnp_Version"] == "2.1.0"
    assert params["vnp_Command"] == "pay"
    assert params["vnp_CurrCode"] == "VND"
    assert params["vnp_BankCode"] == "NCB"
    # Vietnam local time, 15 minutes to pay
    assert params["vnp_CreateDate"] == "20261019100000"
    assert params["vnp_ExpireDate"] == "20261019101500"
    assert vnpay_client.verify(params)


def test_payment_url_without_bank(vnpay_client):
    url = vnpay_client.build_payment_url(order_id="X_1", amount=1000, order_info="x", ip_addr="")
    params = _url_params(url)
    assert "vnp_BankCode" not in params
    assert params["vnp_IpAddr"] == "127.0.0.1"


def test_tampered_params_fail_verification(vnpay_client, gateway_params):
    params = gateway_params("BK1_1", 100_000)
    assert vnpay_client.verify(params)
    params["vnp_Amount"] = "100"
    assert not vnpay_client.verify(params)


def test_other_secret_fails_verification(vnpay_client, gateway_params):
    params = gateway_params("BK1_1", 100_000)
    other = VNPayClient(vnpay_client.cfg.__class__(**{**vnpay_client.cfg.__dict__, "hash_secret": "OTHER"}))
    assert not other.verify(params)


def test_secure_hash_type_is_ignored(vnpay_client, gateway_params):
    params = gateway_params("BK1_1", 100_000)
    params["vnp_SecureHashType"] = "HmacSHA512"
    assert vnpay_client.verify(params)


def test_parse_response(vnpay_client, gateway_params):
    r = vnpay_client.parse_response(gateway_params("BK1_1", 120_000, transaction_no="999"))
    assert r.valid and r.success
    assert r.amount == 120_000
    assert r.order_id == "BK1_1"
    assert r.transaction_no == "999"

    declined = vnpay_client.parse_response(gateway_params("BK1_1", 120_000, code="24"))
    assert declined.valid and not declined.success
    assert declined.message == "Customer cancelled the transaction"


def test_parse_response_bad_signature(vnpay_client, gateway_params):
    params = gateway_params("BK1_1", 120_000)
    params["vnp_SecureHash"] = "00" * 64
    r = vnpay_client.parse_response(params)
    assert not r.valid
    assert r.code == "97"
    assert r.order_id == "BK1_1"


def test_query_transaction_signs_and_posts(vnpay_client, monkeypatch):
    captured = {}

    def fake_post(url, json=None, timeout=None, **kw):
        captured.update(url=url, json=json, timeout=timeout)
        return _FakeResponse(200, {"vnp_ResponseCode": "00"})

    monkeypatch.setattr(requests, "post", fake_post)
    data = vnpay_client.query_transaction(order_id="BK1_1", transaction_date="20261019100000", ip_addr="10.0.0.1")
    assert data == {"vnp_ResponseCode": "00"}
    assert captured["url"] == vnpay_client.cfg.api_url
    assert captured["timeout"] == vnpay_client.cfg.timeout

    body = captured["json"]
    assert body["vnp_Command"] == "querydr"
    assert body["vnp_TxnRef"] == "BK1_1"
    sign_data = "|".join([
        body["vnp_RequestId"], "2.1.0", "querydr", vnpay_client.cfg.tmn_code, "BK1_1",
        "20261019100000", body["vnp_CreateDate"], "10.0.0.1", body["vnp_OrderInfo"],
    ])
    expected = hmac.new(b"TESTHASHSECRET", sign_data.encode(), hashlib.sha512).hexdigest()
    assert body["vnp_SecureHash"] == expected


def test_query_transaction_network_error(vnpay_client, monkeypatch):
    def fake_post(*a, **kw):
        raise requests.ConnectionError("down")

    monkeypatch.setattr(requests, "post", fake_post)
    with pytest.raises(VNPayError):
        vnpay_client.query_transaction(order_id="BK1_1", transaction_date="20261019100000")


def test_query_transaction_http_error(vnpay_client, monkeypatch):
    monkeypatch.setattr(requests, "post", lambda *a, **kw: _FakeResponse(503, {"error": "maintenance"}))
    with pytest.raises(VNPayError):
        vnpay_client.query_transaction(order_id="BK1_1", transaction_date="20261019100000")


def _signed_query_response(client: VNPayClient, **overrides) -> dict:
    data = {
        "vnp_ResponseId": "r1", "vnp_Command": "querydr", "vnp_ResponseCode": "00", "vnp_Message": "OK",
        "vnp_TmnCode": client.cfg.tmn_code, "vnp_TxnRef": "BK1_1", "vnp_Amount": "10000000",
        "vnp_BankCode": "NCB", "vnp_PayDate": "20261019101010", "vnp_TransactionNo": "555",
        "vnp_TransactionType": "01", "vnp_TransactionStatus": "00", "vnp_OrderInfo": "x",
        "vnp_PromotionCode": "", "vnp_PromotionAmount": "",
    }
    data.update(overrides)
    fields = [
        "vnp_ResponseId", "vnp_Command", "vnp_ResponseCode", "vnp_Message", "vnp_TmnCode",
        "vnp_TxnRef", "vnp_Amount", "vnp_BankCode", "vnp_PayDate", "vnp_TransactionNo",
        "vnp_TransactionType", "vnp_TransactionStatus", "vnp_OrderInfo", "vnp_PromotionCode",
        "vnp_PromotionAmount",
    ]
    sign_data = "|".join(str(data.get(f) or "") for f in fields)
    data["vnp_SecureHash"] = hmac.new(
        client.cfg.hash_secret.encode(), sign_data.encode(), hashlib.sha512,
    ).hexdigest()
    return data


def test_verify_query_response(vnpay_client):
    data = _signed_query_response(vnpay_client)
    assert vnpay_client.verify_query_response(data)
    data["vnp_Amount"] = "1"
    assert not vnpay_client.verify_query_response(data)
    assert not vnpay_client.verify_query_response({"vnp_ResponseCode": "00"})


def test_timestamp_is_vietnam_time():
    assert vnp_timestamp(datetime(2026, 1, 1, 20, 30, tzinfo=timezone.utc)) == "20260102033000"


def test_banks_list():
    codes = {b["code"] for b in VNPayClient.banks()}
    assert {"NCB", "VIETCOMBANK", "BIDV"} <= codes


def test_callback_with_blank_field_verifies(vnpay_client):
    # the gateway hashes every vnp_ field it sends, blank ones included
    params = {
        "vnp_Amount": "15000000",
        "vnp_BankCode": "NCB",
        "vnp_BankTranNo": "",
        "vnp_CardType": "ATM",
        "vnp_OrderInfo": "Thanh toan ve xe BK1",
        "vnp_PayDate": "20261019103000",
        "vnp_ResponseCode": "00",
        "vnp_TmnCode": vnpay_client.cfg.tmn_code,
        "vnp_TransactionNo": "14000009",
        "vnp_TransactionStatus": "00",
        "vnp_TxnRef": "BK1_1",
    }
    signed = "&".join(f"{k}={quote_plus(params[k])}" for k in sorted(params))
    params["vnp_SecureHash"] = hmac.new(b"TESTHASHSECRET", signed.encode(), hashlib.sha512).hexdigest()
    params["vnp_SecureHashType"] = "HmacSHA512"

    assert vnpay_client.verify(params)
    result = vnpay_client.parse_response(params)
    assert result.valid and result.success
    assert result.amount == 150_000
