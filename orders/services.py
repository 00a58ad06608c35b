"""Order store operations used by the payment gateway.

These are the only functions that mutate orders. Each one commits its own
changes atomically; callers that need several changes to land together wrap
them in `transaction.atomic()`.
"""

import logging
from typing import Optional

from django.db import transaction
from django.utils import timezone
from orders.models import META_TOKEN, META_TRACK_ID, META_TRANSACTION_ID, Order, OrderNote

logger = logging.getLogger("key2pay.orders")


def add_order_note(order: Order, content: str, *, is_customer_note: bool = False) -> OrderNote:
    """Append an audit note to the order."""

    return OrderNote.objects.create(order=order, content=content, is_customer_note=is_customer_note)


def update_status(order: Order, new_status: str, note: str = "") -> None:
    """Move the order to `new_status` and record the change as a note.

    The note is prefixed with the transition, mirroring how the storefront
    shows status changes in the order history.
    """

    old_status = order.status
    if old_status == new_status:
        add_order_note(order, note)
        return
    with transaction.atomic():
        order.status = new_status
        order.save(update_fields=["status", "updated_at"])
        prefix = f"Order status changed from {old_status} to {new_status}."
        add_order_note(order, f"{prefix} {note}".strip())
    logger.info(
        "order_status_updated",
        extra={"order_id": order.id, "from_status": old_status, "to_status": new_status},
    )


def payment_complete(order: Order, transaction_id: str = "") -> bool:
    """Mark the order paid. Idempotent.

    Only orders that still need payment move to `completed`; the first
    transaction id recorded on the order is kept. Returns True when the order
    changed.
    """

    if not order.has_status(*Order.NEEDS_PAYMENT_STATUSES):
        logger.info(
            "order_payment_complete_noop",
            extra={"order_id": order.id, "status": order.status, "transaction_id": transaction_id},
        )
        return False

    order.status = Order.STATUS_COMPLETED
    order.paid_at = timezone.now()
    fields = ["status", "paid_at", "updated_at"]
    if transaction_id and not order.transaction_id:
        order.transaction_id = transaction_id
        fields.append("transaction_id")
    order.save(update_fields=fields)
    logger.info("order_payment_complete", extra={"order_id": order.id, "transaction_id": transaction_id})
    return True


def store_payment_metadata(
    order: Order,
    *,
    transaction_id: Optional[str] = None,
    track_id: Optional[str] = None,
    token: Optional[str] = None,
) -> None:
    """Persist provider correlation data written at payment initiation.

    `token` is write-once: an order that already carries a token keeps it.
    """

    meta = dict(order.metadata or {})
    if transaction_id:
        meta[META_TRANSACTION_ID] = str(transaction_id)
    if track_id:
        meta[META_TRACK_ID] = str(track_id)
    if token:
        existing = meta.get(META_TOKEN)
        if existing and existing != token:
            logger.warning("order_token_already_set", extra={"order_id": order.id})
        elif not existing:
            meta[META_TOKEN] = str(token)
    order.metadata = meta
    order.save(update_fields=["metadata", "updated_at"])


def set_payment_method(order: Order, gateway_id: str) -> None:
    if order.payment_method == gateway_id:
        return
    order.payment_method = gateway_id
    order.save(update_fields=["payment_method", "updated_at"])
