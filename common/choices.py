"""Shared enumerations and choices used across apps."""

from django.db import models


class OrderStatus(models.TextChoices):
    PENDING = "pending", "Pending payment"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    ON_HOLD = "on-hold", "On hold"
    FAILED = "failed", "Failed"
    REFUNDED = "refunded", "Refunded"
    CANCELLED = "cancelled", "Cancelled"


class NotificationSource(models.TextChoices):
    WEBHOOK = "webhook", "Webhook"
    URL_FALLBACK = "url_fallback", "Return URL fallback"


class PaymentOutcome(models.TextChoices):
    APPROVED = "approved", "Approved"
    PENDING = "pending", "Pending"
    FAILED = "failed", "Failed"
    UNKNOWN = "unknown", "Unknown"


class UnknownCodePolicy(models.TextChoices):
    APPROVE = "approve", "Treat as approved"
    HOLD = "hold", "Put order on hold"


class Currency(models.TextChoices):
    USD = "USD", "US Dollar"
    EGP = "EGP", "Egyptian Pound"
    THB = "THB", "Thai Baht"
    PHP = "PHP", "Philippine Peso"
    EUR = "EUR", "Euro"
