"""Resolve Key2Pay notifications to orders.

The track id sent to the processor at initiation is ``{order_id}_{timestamp}``;
it is the only correlation between a provider transaction and a local order.
"""

import hmac
import logging
import time
from typing import Optional

import sentry_sdk
from orders.models import META_TOKEN, Order
from orders.selectors import get_order
from payments.exceptions import MalformedTrackId, OrderNotFound, TokenMismatch

logger = logging.getLogger("key2pay.payments")


def make_track_id(order: Order, now: Optional[float] = None) -> str:
    timestamp = int(time.time() if now is None else now)
    return f"{order.id}_{timestamp}"


def parse_track_id(track_id: str) -> str:
    """Return the order id embedded in `track_id`.

    Raises `MalformedTrackId` when the value is empty, has no ``_`` separator
    or an empty order part. The disambiguator is not validated.
    """

    track_id = (track_id or "").strip()
    parts = track_id.split("_", 1)
    if len(parts) < 2 or not parts[0]:
        raise MalformedTrackId(track_id)
    return parts[0]


def locate(track_id: str) -> Order:
    """Return the order referenced by `track_id` or raise a `NotFound`."""

    order_id = parse_track_id(track_id)
    order = get_order(order_id)
    if order is None:
        raise OrderNotFound(track_id)
    return order


def verify_token(order: Order, token: Optional[str]) -> None:
    """Check a webhook token against the one stored at initiation.

    Passes when the notification has no token or the order has none stored.
    A mismatch raises `TokenMismatch`.
    """

    if not token:
        return
    stored = order.get_meta(META_TOKEN)
    if not stored:
        return
    if hmac.compare_digest(stored.encode("utf-8"), str(token).encode("utf-8")):
        return

    logger.error("payments_webhook_token_mismatch", extra={"order_id": order.id})
    sentry_sdk.capture_message("payments_webhook_token_mismatch", level="warning")
    raise TokenMismatch(order_id=order.id)
