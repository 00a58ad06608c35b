from decimal import Decimal

import httpx
import pytest
from orders.models import META_TOKEN, META_TRACK_ID, META_TRANSACTION_ID, Order
from orders.tests.factories import OrderFactory
from payments.conf import GatewayConfig
from payments.exceptions import PaymentInitiationError
from payments.methods import CARD, THAI_DEBIT
from payments.services import initiate_payment, refund_payment

pytestmark = pytest.mark.django_db

CONFIG = GatewayConfig(
    gateway_id="key2pay_credit",
    api_base_url="https://api.key2payment.test/",
    merchant_id="M1",
    password="pw",
    site_url="https://shop.example",
)


class DummyResp:
    def __init__(self, data, status_code=200):
        self._data = data
        self.status_code = status_code

    def json(self):
        if isinstance(self._data, Exception):
            raise self._data
        return self._data


@pytest.fixture
def fake_post(monkeypatch):
    calls = []

    def install(data):
        def fake(url, json=None, headers=None, timeout=None):
            calls.append({"url": url, "json": json, "timeout": timeout})
            if isinstance(data, httpx.HTTPError):
                raise data
            return DummyResp(data)

        monkeypatch.setattr("httpx.post", fake)
        return calls

    return install


def test_initiate_card_payment_success(fake_post):
    order = OrderFactory(total=Decimal("49.99"), currency="USD")
    calls = fake_post(
        {
            "type": "valid",
            "result": "Processing",
            "redirectUrl": "https://api.key2payment.test/transaction/Redirect?ID=1",
            "transactionid": "TX-1",
            "trackid": f"{order.id}_1690000000",
            "token": "tok-1",
        }
    )

    redirect = initiate_payment(order, CARD, CONFIG, customer_ip="203.0.113.5")
    assert redirect == "https://api.key2payment.test/transaction/Redirect?ID=1"

    sent = calls[0]
    assert sent["url"] == "https://api.key2payment.test/PaymentToken/Create"
    assert sent["timeout"] == 60
    assert sent["json"]["merchantid"] == "M1"
    assert sent["json"]["password"] == "pw"
    assert sent["json"]["trackid"].startswith(f"{order.id}_")
    assert sent["json"]["bill_amount"] == 49.99
    assert sent["json"]["serverUrl"] == "https://shop.example/api/v1/payments/webhooks/key2pay_credit/"
    assert sent["json"]["returnUrl"].endswith(f"/orders/{order.id}/received/?key={order.order_key}")

    order.refresh_from_db()
    assert order.status == Order.STATUS_PENDING
    assert order.payment_method == "key2pay_credit"
    assert order.get_meta(META_TRANSACTION_ID) == "TX-1"
    assert order.get_meta(META_TRACK_ID) == f"{order.id}_1690000000"
    assert order.get_meta(META_TOKEN) == "tok-1"
    assert order.notes.get().content == "Awaiting Key2Pay Credit Card payment confirmation."


def test_initiate_moves_failed_order_back_to_pending(fake_post):
    order = OrderFactory(status=Order.STATUS_FAILED)
    fake_post({"type": "valid", "redirectUrl": "https://pay.example/r", "token": "t"})
    initiate_payment(order, CARD, CONFIG)
    order.refresh_from_db()
    assert order.status == Order.STATUS_PENDING


def test_initiate_not_successful_raises(fake_post):
    order = OrderFactory()
    fake_post({"type": "valid", "result": "Not Successful", "redirectUrl": "https://x", "error_text": "Declined"})
    with pytest.raises(PaymentInitiationError) as exc:
        initiate_payment(order, CARD, CONFIG)
    assert exc.value.user_message == "Key2Pay payment failed: Declined"
    order.refresh_from_db()
    assert order.notes.count() == 0
    assert order.get_meta(META_TOKEN) == ""


def test_initiate_invalid_type_uses_friendly_message(fake_post):
    order = OrderFactory()
    fake_post({"type": "invalid", "responsecode": "USD1000", "error_text": "Invalid merchant"})
    with pytest.raises(PaymentInitiationError) as exc:
        initiate_payment(order, CARD, CONFIG)
    assert exc.value.user_message == "Sorry, online payment is temporarily unavailable. Please contact support."
    assert exc.value.detail == "Invalid merchant"


def test_initiate_missing_redirect_raises(fake_post):
    order = OrderFactory()
    fake_post({"type": "valid"})
    with pytest.raises(PaymentInitiationError) as exc:
        initiate_payment(order, CARD, CONFIG)
    assert "no redirection URL" in exc.value.detail


def test_thai_debit_requires_transaction_and_token(fake_post):
    order = OrderFactory(currency="THB")
    fake_post({"type": "valid", "redirectUrl": "https://pay.example/qr", "transactionid": "TX-2"})
    with pytest.raises(PaymentInitiationError) as exc:
        initiate_payment(
            order,
            THAI_DEBIT,
            CONFIG,
            checkout_fields={"payer_bank_code": "014", "payer_account_no": "1", "payer_account_name": "A"},
        )
    assert exc.value.redirect == "https://pay.example/qr"


def test_thai_debit_sends_payer_fields(fake_post):
    order = OrderFactory(currency="THB")
    calls = fake_post({"type": "valid", "redirectUrl": "https://pay.example/qr", "transactionid": "TX-2", "token": "t"})
    initiate_payment(
        order,
        THAI_DEBIT,
        CONFIG,
        checkout_fields={"payer_bank_code": "014", "payer_account_no": "123", "payer_account_name": "A"},
    )
    assert calls[0]["url"] == "https://api.key2payment.test/transaction/s2s"
    assert calls[0]["json"]["payer_account_no"] == "123"
    assert calls[0]["json"]["payment_method"] == {"type": "THAI_DEBIT"}


def test_initiate_transport_error_raises(fake_post):
    order = OrderFactory()
    fake_post(httpx.ConnectError("down"))
    with pytest.raises(PaymentInitiationError):
        initiate_payment(order, CARD, CONFIG)


def test_initiate_undecodable_response_raises(fake_post):
    order = OrderFactory()
    fake_post(ValueError("no json"))
    with pytest.raises(PaymentInitiationError):
        initiate_payment(order, CARD, CONFIG)


def paid_order(**kwargs):
    defaults = dict(
        status=Order.STATUS_COMPLETED,
        transaction_id="TX-1",
        payment_method="key2pay_credit",
        metadata={META_TRACK_ID: "1_1690000000"},
    )
    defaults.update(kwargs)
    return OrderFactory(**defaults)


def test_full_refund_marks_order_refunded(fake_post):
    order = paid_order()
    calls = fake_post({"type": "valid", "result": "Success"})
    assert refund_payment(order, CONFIG, reason="Customer request") is True

    sent = calls[0]["json"]
    assert calls[0]["url"] == "https://api.key2payment.test/transaction/refund"
    assert sent["transactionid"] == "TX-1"
    assert sent["trackid"] == "1_1690000000"
    assert sent["bill_amount"] == 100.0
    assert sent["merchantid"] == "M1"

    order.refresh_from_db()
    assert order.status == Order.STATUS_REFUNDED
    assert "Key2Pay Refund successful" in order.notes.get().content


def test_partial_refund_only_adds_note(fake_post):
    order = paid_order()
    fake_post({"type": "valid", "result": "CAPTURED"})
    assert refund_payment(order, CONFIG, amount=Decimal("10.00")) is True
    order.refresh_from_db()
    assert order.status == Order.STATUS_COMPLETED
    assert "Amount: 10.00 USD" in order.notes.get().content


def test_refund_accepts_approved_response_code(fake_post):
    order = paid_order()
    fake_post({"type": "valid", "result": "Processed", "responsecode": "USD0"})
    assert refund_payment(order, CONFIG) is True


def test_refund_failure_is_noted(fake_post):
    order = paid_order()
    fake_post({"type": "invalid", "error_text": "Refund window closed"})
    assert refund_payment(order, CONFIG) is False
    order.refresh_from_db()
    assert order.status == Order.STATUS_COMPLETED
    assert "Refund window closed" in order.notes.get().content


def test_refund_without_transaction_id_is_refused(fake_post):
    order = OrderFactory(status=Order.STATUS_COMPLETED)
    calls = fake_post({"type": "valid", "result": "Success"})
    assert refund_payment(order, CONFIG) is False
    assert calls == []


def test_refund_transport_error_returns_false(fake_post):
    order = paid_order()
    fake_post(httpx.ReadTimeout("slow"))
    assert refund_payment(order, CONFIG) is False
    assert order.notes.count() == 0
