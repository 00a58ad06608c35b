"""Read-only query helpers for orders."""

from __future__ import annotations

from typing import List, Optional

from orders.models import Order, OrderNote


def get_order(order_id) -> Optional[Order]:
    """Return the order with the given id, or None.

    Accepts the raw identifier taken from a track id, so non-numeric input
    simply finds nothing.
    """

    try:
        pk = int(str(order_id).strip())
    except (TypeError, ValueError):
        return None
    if pk <= 0:
        return None
    return Order.objects.filter(pk=pk).first()


def get_order_by_key(order_id, order_key: str) -> Optional[Order]:
    """Return the order only when `order_key` matches it."""

    order = get_order(order_id)
    if order is None or not order_key or order.order_key != order_key:
        return None
    return order


def recent_notes(order: Order, limit: int = 10) -> List[OrderNote]:
    """Return the most recent notes for the order, newest first."""

    return list(OrderNote.objects.filter(order=order).order_by("-created_at", "-id")[:limit])
