"""URL routes for the payments app (v1)."""

from django.urls import path

from .views import InitializeView, Key2PayWebhookView, OrderReceivedView, PaymentsHealthView, RefundView

app_name = "payments"

urlpatterns = [
    path("health/", PaymentsHealthView.as_view(), name="health"),
    path("webhooks/<str:gateway_id>/", Key2PayWebhookView.as_view(), name="webhook"),
    path("orders/<int:order_id>/received/", OrderReceivedView.as_view(), name="order-received"),
    path("orders/<int:order_id>/refund/", RefundView.as_view(), name="refund"),
    path("<str:gateway_id>/initialize/", InitializeView.as_view(), name="initialize"),
]
