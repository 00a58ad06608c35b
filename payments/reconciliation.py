"""Reconciliation of Key2Pay payment notifications against orders.

Two inbound paths share this module:

* the webhook, sent server-to-server by Key2Pay to the gateway's
  ``serverUrl``; it is authenticated by the session token stored on the order
  and its errors are reported back in the acknowledgment;
* the return-URL fallback, read from the query string when the customer comes
  back to the order-received page; it is unsigned, so it only ever touches
  orders that are still pending, and its errors are logged and swallowed.

Both classify the normalized code with `payments.classifier.classify` and
apply the resulting transition, which appends exactly one order note.

Concurrency: duplicate webhook deliveries may be processed in parallel. No
lock is taken here. Safety relies on the classifier never regressing a status,
on `payment_complete` being idempotent, and on the database applying each
transition (status change plus note) atomically per order.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

import sentry_sdk
from common.choices import NotificationSource
from django.db import transaction
from orders.models import Order
from orders.services import payment_complete, update_status
from payments.classifier import Transition, classify
from payments.codes import normalize
from payments.conf import GatewayConfig
from payments.exceptions import MalformedNotification, MalformedTrackId, NotFound, TokenMismatch
from payments.locator import locate, parse_track_id, verify_token
from payments.redaction import redact

logger = logging.getLogger("key2pay.payments")

WEBHOOK_OK_MESSAGE = "Webhook processed successfully."
FALLBACK_PARAMS = ("result", "responsecode", "trackid", "responsedescription")
FALLBACK_NOTE_SUFFIX = "(Processed via URL parameter fallback.)"


def _text(value: Any) -> str:
    if value is None or isinstance(value, (Mapping, list, tuple)):
        return ""
    return str(value).strip()


@dataclass(frozen=True)
class Notification:
    source: str
    raw_fields: Mapping[str, Any] = field(default_factory=dict)
    status_code: str = ""
    track_id: str = ""
    transaction_id: str = ""
    token: str = ""
    error_text: str = ""
    result: str = ""
    amount: Optional[str] = None

    @classmethod
    def from_webhook(cls, payload: Mapping[str, Any]) -> "Notification":
        raw_code = payload.get("responsecode")
        code = normalize(raw_code if raw_code not in (None, "") else payload)
        return cls(
            source=NotificationSource.WEBHOOK,
            raw_fields=dict(payload),
            status_code=code,
            track_id=_text(payload.get("trackid")),
            transaction_id=_text(payload.get("transactionid")),
            token=_text(payload.get("token")) or _text(payload.get("udf4")),
            error_text=_text(payload.get("error_text")),
            result=_text(payload.get("result")),
            amount=_text(payload.get("bill_amount")) or None,
        )

    @classmethod
    def from_return_params(cls, params: Mapping[str, Any]) -> "Notification":
        fields = {key: params.get(key) for key in FALLBACK_PARAMS if params.get(key)}
        return cls(
            source=NotificationSource.URL_FALLBACK,
            raw_fields=fields,
            status_code=normalize(fields.get("responsecode")),
            track_id=_text(fields.get("trackid")),
            error_text=_text(fields.get("responsedescription")),
            result=_text(fields.get("result")),
        )


@dataclass(frozen=True)
class Acknowledgment:
    success: bool
    message: str
    http_status: int = 200
    order_id: Optional[int] = None
    transition: Optional[Transition] = None

    def as_response_body(self) -> dict:
        return {"success": self.success, "message": self.message}


def has_fallback_params(params: Mapping[str, Any]) -> bool:
    return any(params.get(key) for key in ("result", "responsecode", "trackid"))


def parse_webhook_body(raw_body: bytes) -> dict:
    """Decode a webhook body into a non-empty JSON object."""

    try:
        data = json.loads((raw_body or b"").decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise MalformedNotification() from exc
    if not isinstance(data, dict) or not data:
        raise MalformedNotification()
    return data


class PaymentReconciler:
    """Apply Key2Pay notifications for one configured gateway."""

    def __init__(self, config: GatewayConfig):
        self.config = config

    def _debug(self, event: str, **extra) -> None:
        if self.config.debug:
            logger.debug(event, extra={"gateway": self.config.gateway_id, **extra})

    def _reject(self, exc) -> Acknowledgment:
        return Acknowledgment(success=False, message=exc.message, http_status=exc.http_status)

    def handle_webhook(self, raw_body: bytes) -> Acknowledgment:
        """Entry point for the webhook view."""

        logger.info(
            "payments_webhook_received",
            extra={"gateway": self.config.gateway_id, "body_length": len(raw_body or b"")},
        )
        try:
            payload = parse_webhook_body(raw_body)
        except MalformedNotification as exc:
            logger.warning("payments_webhook_invalid_payload", extra={"gateway": self.config.gateway_id})
            return self._reject(exc)
        return self.reconcile(Notification.from_webhook(payload))

    def handle_return(self, order: Order, params: Mapping[str, Any]) -> Acknowledgment:
        """Best-effort processing of return-page query parameters.

        Never raises: the order-received page must render regardless.
        """

        if self.config.disable_url_fallback:
            self._debug("payments_fallback_disabled", order_id=order.id)
            return Acknowledgment(success=True, message="URL fallback disabled.", order_id=order.id)
        notification = Notification.from_return_params(params)
        try:
            return self.reconcile(notification, order=order)
        except Exception as exc:
            logger.exception(
                "payments_fallback_failed",
                extra={"order_id": order.id, "params": redact(notification.raw_fields)},
            )
            sentry_sdk.capture_exception(exc)
            return Acknowledgment(success=False, message="Fallback processing failed.", order_id=order.id)

    def reconcile(self, notification: Notification, order: Optional[Order] = None) -> Acknowledgment:
        if notification.source == NotificationSource.WEBHOOK:
            return self._reconcile_webhook(notification)
        return self._reconcile_fallback(notification, order)

    def _reconcile_webhook(self, notification: Notification) -> Acknowledgment:
        logger.info(
            "payments_webhook_parsed",
            extra={
                "gateway": self.config.gateway_id,
                "payload": redact(notification.raw_fields),
                "code": notification.status_code,
            },
        )
        try:
            order = locate(notification.track_id)
        except NotFound as exc:
            logger.warning(
                "payments_webhook_order_not_found",
                extra={
                    "gateway": self.config.gateway_id,
                    "reason": "malformed_track_id" if isinstance(exc, MalformedTrackId) else "missing_order",
                    "payload": redact(notification.raw_fields),
                },
            )
            return self._reject(exc)

        try:
            verify_token(order, notification.token)
        except TokenMismatch as exc:
            return self._reject(exc)

        self._debug("payments_webhook_order_found", order_id=order.id, status=order.status)
        transition = self.apply(order, notification)
        logger.info(
            "payments_webhook_processed",
            extra={"order_id": order.id, "code": transition.code, "status": order.status},
        )
        return Acknowledgment(
            success=True,
            message=WEBHOOK_OK_MESSAGE,
            order_id=order.id,
            transition=transition,
        )

    def _reconcile_fallback(self, notification: Notification, order: Optional[Order]) -> Acknowledgment:
        if order is None:
            order = locate(notification.track_id)
        elif notification.track_id:
            try:
                referenced = parse_track_id(notification.track_id)
            except MalformedTrackId:
                referenced = None
            if referenced != str(order.id):
                logger.warning(
                    "payments_fallback_track_id_mismatch",
                    extra={"order_id": order.id, "params": redact(notification.raw_fields)},
                )
                return Acknowledgment(success=False, message="Track id does not match order.", order_id=order.id)

        if not order.has_status(Order.STATUS_PENDING):
            logger.info("payments_fallback_skipped", extra={"order_id": order.id, "status": order.status})
            return Acknowledgment(success=True, message="Order already processed.", order_id=order.id)

        self._debug("payments_fallback_processing", order_id=order.id, code=notification.status_code)
        transition = self.apply(order, notification)
        logger.info(
            "payments_fallback_processed",
            extra={"order_id": order.id, "code": transition.code, "status": order.status},
        )
        return Acknowledgment(success=True, message="Fallback processed.", order_id=order.id, transition=transition)

    def apply(self, order: Order, notification: Notification) -> Transition:
        """Classify the notification and persist the transition.

        Exactly one note is appended. Store failures propagate.
        """

        transition = classify(
            order,
            notification.status_code,
            notification.transaction_id,
            notification.error_text,
            amount=notification.amount,
            unknown_code_policy=self.config.unknown_code_policy,
        )
        note = transition.note_text
        if notification.source == NotificationSource.URL_FALLBACK:
            note = f"{note} {FALLBACK_NOTE_SUFFIX}"

        with transaction.atomic():
            if transition.complete_payment:
                payment_complete(order, transition.transaction_id)
            update_status(order, transition.target_status, note)

        self._debug(
            "payments_transition_applied",
            order_id=order.id,
            code=transition.code,
            outcome=transition.outcome,
            from_status=transition.from_status,
            to_status=order.status,
        )
        return transition
