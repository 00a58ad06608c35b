"""Order store models.

`Order` is the record the payment gateway reconciles against; `OrderNote` is
its append-only audit trail.
"""

import secrets
from decimal import Decimal

from common.choices import Currency, OrderStatus
from common.models import AppendOnlyModel, TimeStampedModel
from django.core.validators import MinValueValidator
from django.db import models

META_TRANSACTION_ID = "transaction_id"
META_TRACK_ID = "track_id"
META_TOKEN = "token"


def generate_order_key() -> str:
    return f"wc_order_{secrets.token_hex(8)}"


class Order(TimeStampedModel):
    """A customer order as seen by the payment gateway.

    `metadata` holds provider correlation data under the reserved keys
    `transaction_id`, `track_id` and `token`.
    """

    STATUS_PENDING = OrderStatus.PENDING
    STATUS_PROCESSING = OrderStatus.PROCESSING
    STATUS_COMPLETED = OrderStatus.COMPLETED
    STATUS_ON_HOLD = OrderStatus.ON_HOLD
    STATUS_FAILED = OrderStatus.FAILED
    STATUS_REFUNDED = OrderStatus.REFUNDED
    STATUS_CANCELLED = OrderStatus.CANCELLED
    STATUS_CHOICES = OrderStatus.choices

    # Statuses from which payment completion moves the order forward.
    NEEDS_PAYMENT_STATUSES = frozenset({STATUS_PENDING, STATUS_ON_HOLD, STATUS_FAILED, STATUS_CANCELLED})
    PAID_STATUSES = frozenset({STATUS_PROCESSING, STATUS_COMPLETED})

    order_key = models.CharField(max_length=40, unique=True, default=generate_order_key)
    email = models.EmailField(blank=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    total = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    currency = models.CharField(max_length=8, choices=Currency.choices, default=Currency.USD)
    billing = models.JSONField(default=dict, blank=True)
    payment_method = models.CharField(max_length=32, blank=True)
    transaction_id = models.CharField(max_length=64, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["-id"]
        indexes = [
            models.Index(fields=["status", "created_at"], name="orders_status_created_idx"),
        ]
        constraints = [
            models.CheckConstraint(condition=models.Q(total__gte=0), name="order_total_non_negative"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"Order#{self.id} status={self.status} total={self.total} {self.currency}"

    def has_status(self, *statuses) -> bool:
        return self.status in statuses

    def get_meta(self, key: str) -> str:
        value = (self.metadata or {}).get(key)
        return "" if value is None else str(value)

    def save(self, *args, **kwargs):
        if self.currency:
            self.currency = self.currency.upper()
        super().save(*args, **kwargs)


class OrderNote(AppendOnlyModel):
    """A single audit entry attached to an order."""

    order = models.ForeignKey(Order, related_name="notes", on_delete=models.CASCADE)
    content = models.TextField()
    is_customer_note = models.BooleanField(default=False)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self) -> str:  # pragma: no cover
        return f"OrderNote#{self.id} order={self.order_id}"
