import json
from unittest.mock import patch

import pytest
from django.db import DatabaseError
from django.urls import reverse
from orders.models import META_TOKEN, Order
from orders.tests.factories import OrderFactory
from rest_framework.test import APIClient

pytestmark = pytest.mark.django_db


def post_webhook(payload, gateway_id="key2pay_credit", **extra):
    raw = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
    client = APIClient()
    return client.post(
        reverse("payments:webhook", kwargs={"gateway_id": gateway_id}),
        data=raw,
        content_type="application/json",
        **extra,
    )


def test_webhook_completes_order():
    order = OrderFactory(metadata={META_TOKEN: "tok"})
    r = post_webhook(
        {
            "type": "valid",
            "result": "CAPTURED",
            "responsecode": "USD0",
            "trackid": f"{order.id}_1690000000",
            "transactionid": "T1",
            "token": "tok",
        }
    )
    assert r.status_code == 200
    assert r.json() == {"success": True, "message": "Webhook processed successfully."}
    order.refresh_from_db()
    assert order.status == Order.STATUS_COMPLETED
    assert order.transaction_id == "T1"


def test_webhook_invalid_payload_returns_400():
    r = post_webhook(b"{not json")
    assert r.status_code == 400
    assert r.json() == {"success": False, "message": "Invalid webhook data received."}


def test_webhook_unknown_order_returns_404():
    r = post_webhook({"responsecode": "0", "trackid": "999999_1"})
    assert r.status_code == 404
    assert r.json()["message"] == "Order not found for track_id: 999999_1"


def test_webhook_token_mismatch_returns_403():
    order = OrderFactory(metadata={META_TOKEN: "abc"})
    r = post_webhook({"responsecode": "0", "trackid": f"{order.id}_1", "token": "xyz"})
    assert r.status_code == 403
    assert r.json()["success"] is False
    order.refresh_from_db()
    assert order.status == Order.STATUS_PENDING


def test_webhook_unknown_gateway_returns_404():
    r = post_webhook({"responsecode": "0", "trackid": "1_1"}, gateway_id="unknown_gateway")
    assert r.status_code == 404


def test_webhook_forbidden_ip_returns_403(settings):
    settings.KEY2PAY = {**settings.KEY2PAY, "WEBHOOK_IPS": ["1.2.3.4"]}
    order = OrderFactory()
    # Test client REMOTE_ADDR defaults to 127.0.0.1 which is not allowed
    r = post_webhook({"responsecode": "0", "trackid": f"{order.id}_1"})
    assert r.status_code == 403
    order.refresh_from_db()
    assert order.status == Order.STATUS_PENDING


def test_webhook_allowed_ip_is_processed(settings):
    settings.KEY2PAY = {**settings.KEY2PAY, "WEBHOOK_IPS": ["127.0.0.1"]}
    order = OrderFactory()
    r = post_webhook({"responsecode": "0", "trackid": f"{order.id}_1"})
    assert r.status_code == 200


def test_webhook_accepted_for_disabled_gateway(settings):
    settings.KEY2PAY_GATEWAYS = {"key2pay_thai_debit": {"ENABLED": False}}
    order = OrderFactory()
    r = post_webhook({"responsecode": "EGP9", "trackid": f"{order.id}_1"}, gateway_id="key2pay_thai_debit")
    assert r.status_code == 200


def test_webhook_store_failure_returns_json_500():
    order = OrderFactory(metadata={META_TOKEN: "tok"})
    payload = {"type": "valid", "responsecode": "05", "trackid": f"{order.id}_1", "token": "tok"}
    with patch("payments.reconciliation.update_status", side_effect=DatabaseError("disk full")):
        with patch("payments.views.sentry_sdk.capture_exception") as capture:
            r = post_webhook(payload)
    assert r.status_code == 500
    assert r.json() == {"success": False, "message": "Unable to record payment notification."}
    capture.assert_called_once()
    order.refresh_from_db()
    assert order.status == Order.STATUS_PENDING
