from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """AppConfig for the Key2Pay payments app. It owns no models."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Key2Pay payments"
