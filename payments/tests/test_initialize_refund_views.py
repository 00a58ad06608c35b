from decimal import Decimal

import pytest
from django.urls import reverse
from orders.models import META_TRACK_ID, Order
from orders.tests.factories import OrderFactory, StaffUserFactory, UserFactory
from rest_framework.test import APIClient

pytestmark = pytest.mark.django_db


class DummyResp:
    def __init__(self, data):
        self._data = data

    def json(self):
        return self._data


@pytest.fixture
def configured(settings):
    settings.KEY2PAY = {**settings.KEY2PAY, "MERCHANT_ID": "M1", "PASSWORD": "pw"}
    settings.KEY2PAY_GATEWAYS = {"key2pay_thai_debit": {"ENABLED": True}}


@pytest.fixture
def key2pay_replies(monkeypatch):
    def install(data):
        monkeypatch.setattr("httpx.post", lambda *a, **k: DummyResp(data))

    return install


def initialize(gateway_id, payload):
    return APIClient().post(
        reverse("payments:initialize", kwargs={"gateway_id": gateway_id}), payload, format="json"
    )


def test_initialize_returns_redirect(configured, key2pay_replies):
    order = OrderFactory()
    key2pay_replies({"type": "valid", "redirectUrl": "https://pay.example/r?ID=9", "token": "t"})
    r = initialize("key2pay_credit", {"order_id": order.id, "order_key": order.order_key})
    assert r.status_code == 200
    assert r.json() == {"result": "success", "redirect": "https://pay.example/r?ID=9"}


def test_initialize_wrong_key_returns_404(configured):
    order = OrderFactory()
    r = initialize("key2pay_credit", {"order_id": order.id, "order_key": "wc_order_wrong"})
    assert r.status_code == 404


def test_initialize_unknown_gateway_returns_404(configured):
    order = OrderFactory()
    r = initialize("unknown_gateway", {"order_id": order.id, "order_key": order.order_key})
    assert r.status_code == 404


def test_initialize_unconfigured_gateway_returns_400(settings):
    settings.KEY2PAY = {**settings.KEY2PAY, "MERCHANT_ID": "", "PASSWORD": ""}
    order = OrderFactory()
    r = initialize("key2pay_credit", {"order_id": order.id, "order_key": order.order_key})
    assert r.status_code == 400
    assert r.json()["detail"] == "Payment method unavailable"


def test_initialize_paid_order_returns_400(configured):
    order = OrderFactory(status=Order.STATUS_COMPLETED)
    r = initialize("key2pay_credit", {"order_id": order.id, "order_key": order.order_key})
    assert r.status_code == 400
    assert r.json()["detail"] == "Order does not need payment"


def test_initialize_invalid_payload_returns_400(configured):
    r = initialize("key2pay_credit", {"order_key": "x"})
    assert r.status_code == 400
    assert r.json()["detail"] == "Invalid payload"


def test_thai_debit_requires_bank_fields(configured):
    order = OrderFactory(currency="THB")
    r = initialize(
        "key2pay_thai_debit",
        {"order_id": order.id, "order_key": order.order_key, "payer_account_no": "123", "payer_account_name": "A"},
    )
    assert r.status_code == 400
    assert r.json()["detail"] == "Please provide your Bank Code."


def test_initialize_gateway_refusal_returns_user_message(configured, key2pay_replies):
    order = OrderFactory()
    key2pay_replies({"type": "invalid", "responsecode": "05"})
    r = initialize("key2pay_credit", {"order_id": order.id, "order_key": order.order_key})
    assert r.status_code == 400
    assert "declined by your bank" in r.json()["detail"]


def refund(order, client, payload=None):
    return client.post(
        reverse("payments:refund", kwargs={"order_id": order.id}), payload or {}, format="json"
    )


def paid_order():
    return OrderFactory(
        status=Order.STATUS_COMPLETED,
        transaction_id="TX-1",
        payment_method="key2pay_credit",
        metadata={META_TRACK_ID: "1_1"},
    )


def test_refund_requires_staff(configured):
    order = paid_order()
    client = APIClient()
    assert refund(order, client).status_code == 403
    client.force_authenticate(user=UserFactory())
    assert refund(order, client).status_code == 403


def test_staff_refund(configured, key2pay_replies):
    order = paid_order()
    key2pay_replies({"type": "valid", "result": "Success"})
    client = APIClient()
    client.force_authenticate(user=StaffUserFactory())
    r = refund(order, client, {"amount": "25.00", "reason": "damaged"})
    assert r.status_code == 200
    assert r.json() == {"refunded": True}
    order.refresh_from_db()
    assert order.status == Order.STATUS_COMPLETED
    assert "Reason: damaged" in order.notes.get().content


def test_refund_rejects_non_positive_amount(configured):
    order = paid_order()
    client = APIClient()
    client.force_authenticate(user=StaffUserFactory())
    r = refund(order, client, {"amount": str(Decimal("0.00"))})
    assert r.status_code == 400


def test_refund_for_order_not_paid_with_key2pay(configured):
    order = OrderFactory(status=Order.STATUS_COMPLETED, payment_method="cod")
    client = APIClient()
    client.force_authenticate(user=StaffUserFactory())
    r = refund(order, client)
    assert r.status_code == 400


def test_refund_unknown_order_returns_404(configured):
    client = APIClient()
    client.force_authenticate(user=StaffUserFactory())
    r = client.post(reverse("payments:refund", kwargs={"order_id": 999999}), {}, format="json")
    assert r.status_code == 404
