"""Outbound calls to Key2Pay.

Implements payment session creation for each payment method and refunds.
Credentials travel in the request body; everything logged goes through
`redact`.
"""

import logging
from decimal import Decimal
from typing import Dict, Mapping, Optional

import httpx
import sentry_sdk
from django.conf import settings
from django.urls import reverse
from orders.models import META_TRACK_ID, META_TRANSACTION_ID, Order
from orders.services import add_order_note, set_payment_method, store_payment_metadata, update_status
from payments import codes
from payments.conf import GatewayConfig
from payments.exceptions import PaymentInitiationError
from payments.locator import make_track_id
from payments.messages import friendly_message
from payments.methods import InitiationContext, PaymentMethod
from payments.redaction import redact

logger = logging.getLogger("key2pay.payments")

REQUEST_TIMEOUT = 60
RESULT_NOT_SUCCESSFUL = "Not Successful"
REFUND_ENDPOINT = "/transaction/refund"
REFUND_SUCCESS_RESULTS = {"CAPTURED", "Success"}


def _with_credentials(data: Dict, config: GatewayConfig) -> Dict:
    body = dict(data)
    body["merchantid"] = config.merchant_id
    body["password"] = config.password
    return body


def _post(url: str, body: Dict) -> Dict:
    """POST `body` as JSON and decode the response.

    Transport errors and undecodable bodies raise `httpx.HTTPError` or
    `ValueError`.
    """

    r = httpx.post(url, json=body, headers={"Content-Type": "application/json"}, timeout=REQUEST_TIMEOUT)
    data = r.json()
    if not isinstance(data, dict):
        raise ValueError("Unexpected Key2Pay response")
    return data


def _error_text(data: Mapping, default: str) -> str:
    for key in ("error_text", "message", "error"):
        value = data.get(key)
        if value and isinstance(value, str):
            return value.strip()
    return default


def _initiation_failed(order: Order, event: str, user_message: str, detail: str, redirect: str = ""):
    logger.error(event, extra={"order_id": order.id, "detail": detail})
    sentry_sdk.capture_message(event, level="error")
    return PaymentInitiationError(user_message, detail=detail, redirect=redirect)


def build_initiation_context(
    order: Order,
    method: PaymentMethod,
    config: GatewayConfig,
    *,
    checkout_fields: Optional[Mapping[str, str]] = None,
    customer_ip: str = "",
    now: Optional[float] = None,
) -> InitiationContext:
    received = reverse("payments:order-received", kwargs={"order_id": order.id})
    return_url = config.absolute_url(f"{received}?key={order.order_key}")
    return InitiationContext(
        track_id=make_track_id(order, now=now),
        return_url=return_url,
        failure_url=f"{return_url}&k2p-status=failed",
        server_url=config.absolute_url(reverse("payments:webhook", kwargs={"gateway_id": method.gateway_id})),
        customer_ip=customer_ip or "",
        site_name=getattr(settings, "SITE_NAME", ""),
        checkout_fields=dict(checkout_fields or {}),
    )


def initiate_payment(
    order: Order,
    method: PaymentMethod,
    config: GatewayConfig,
    *,
    checkout_fields: Optional[Mapping[str, str]] = None,
    customer_ip: str = "",
) -> str:
    """Open a Key2Pay payment session for `order` and return the redirect URL.

    On success the order is set to pending and the transaction id, track id
    and token returned by Key2Pay are stored on it. Raises
    `PaymentInitiationError` otherwise.
    """

    set_payment_method(order, method.gateway_id)
    context = build_initiation_context(
        order, method, config, checkout_fields=checkout_fields, customer_ip=customer_ip
    )
    payload = method.build_initiation_payload(order, context)
    url = config.build_api_url(method.endpoint)
    logger.info(
        "payments_init_request",
        extra={"order_id": order.id, "gateway": method.gateway_id, "url": url, "payload": redact(payload)},
    )

    try:
        data = _post(url, _with_credentials(payload, config))
    except (httpx.HTTPError, ValueError) as exc:
        raise _initiation_failed(
            order,
            "payments_init_request_failed",
            f"{method.title} payment error: Invalid Key2Pay API response.",
            str(exc),
        ) from exc

    logger.info(
        "payments_init_response",
        extra={"order_id": order.id, "gateway": method.gateway_id, "response": redact(data)},
    )

    response_code = codes.normalize(data.get("responsecode"))
    if data.get("type") != "valid":
        raise _initiation_failed(
            order,
            "payments_init_rejected",
            friendly_message(response_code),
            _error_text(data, f"An unknown error occurred with {method.title}."),
        )

    redirect_url = data.get("redirectUrl") or ""
    if not redirect_url:
        raise _initiation_failed(
            order,
            "payments_init_missing_redirect",
            friendly_message(response_code),
            _error_text(data, "Payment session created, but no redirection URL received."),
        )

    if str(data.get("result") or "").strip() == RESULT_NOT_SUCCESSFUL:
        error = _error_text(data, "Unknown error")
        raise _initiation_failed(
            order,
            "payments_init_not_successful",
            f"Key2Pay payment failed: {error}",
            error,
        )

    if method.requires_session_token and not (data.get("transactionid") and data.get("token")):
        raise _initiation_failed(
            order,
            "payments_init_missing_token",
            friendly_message(response_code),
            "Missing transaction ID or token.",
            redirect=redirect_url,
        )

    store_payment_metadata(
        order,
        transaction_id=data.get("transactionid"),
        track_id=data.get("trackid") or context.track_id,
        token=data.get("token"),
    )
    label = method.title.replace("Key2Pay ", "", 1)
    update_status(order, Order.STATUS_PENDING, f"Awaiting Key2Pay {label} payment confirmation.")
    logger.info("payments_init_success", extra={"order_id": order.id, "gateway": method.gateway_id})
    return redirect_url


def _refund_succeeded(data: Mapping) -> bool:
    if data.get("type") != "valid" or "result" not in data:
        return False
    return data.get("result") in REFUND_SUCCESS_RESULTS or codes.normalize(data.get("responsecode")) == "0"


def refund_payment(
    order: Order,
    config: GatewayConfig,
    amount: Optional[Decimal] = None,
    reason: str = "",
) -> bool:
    """Ask Key2Pay to refund `order`.

    A note records the outcome either way. A full refund moves the order to
    refunded. Returns True on success.
    """

    transaction_id = order.transaction_id or order.get_meta(META_TRANSACTION_ID)
    if not transaction_id:
        logger.error("payments_refund_missing_transaction", extra={"order_id": order.id})
        return False

    refund_amount = Decimal(amount) if amount is not None else Decimal(order.total)
    body = {
        "transactionid": transaction_id,
        "tranid": transaction_id,
        "trackid": order.get_meta(META_TRACK_ID) or order.email,
        "bill_amount": float(refund_amount),
        "bill_currencycode": order.currency,
        "reason": reason,
    }
    url = config.build_api_url(REFUND_ENDPOINT)
    logger.info("payments_refund_request", extra={"order_id": order.id, "url": url, "payload": redact(body)})

    try:
        data = _post(url, _with_credentials(body, config))
    except (httpx.HTTPError, ValueError) as exc:
        logger.error("payments_refund_request_failed", extra={"order_id": order.id, "error": str(exc)})
        sentry_sdk.capture_exception(exc)
        return False

    if config.debug:
        logger.debug("payments_refund_response", extra={"order_id": order.id, "response": redact(data)})

    if not _refund_succeeded(data):
        error = _error_text(data, "An unknown error occurred during Key2Pay refund.")
        add_order_note(
            order,
            f"Key2Pay Refund failed. Amount: {refund_amount} {order.currency}. Reason: {reason}. Error: {error}",
        )
        logger.error("payments_refund_failed", extra={"order_id": order.id, "error": error})
        return False

    note = (
        f"Key2Pay Refund successful. Amount: {refund_amount} {order.currency}. Reason: {reason}. "
        f"Transaction ID: {transaction_id}"
    )
    if refund_amount >= Decimal(order.total):
        update_status(order, Order.STATUS_REFUNDED, note)
    else:
        add_order_note(order, note)
    logger.info("payments_refund_success", extra={"order_id": order.id, "amount": str(refund_amount)})
    return True
