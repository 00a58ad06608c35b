from django.apps import AppConfig


class OrdersConfig(AppConfig):
    """AppConfig for the order store."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "orders"
    verbose_name = "Orders"
