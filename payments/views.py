"""Payments API endpoints.

Includes healthcheck, Key2Pay payment initialization, webhook handling, the
order-received page with its URL-parameter fallback, and refunds.
"""

import logging

import sentry_sdk
from django.db import DatabaseError
from django.http import HttpResponseRedirect
from django.utils.decorators import method_decorator
from django.views.decorators.csrf import csrf_exempt
from drf_spectacular.utils import OpenApiExample, OpenApiParameter, extend_schema, inline_serializer
from orders.selectors import get_order, get_order_by_key
from payments.conf import get_gateway_config
from payments.exceptions import PaymentInitiationError, UnknownGateway
from payments.messages import page_message
from payments.methods import PAYMENT_METHODS
from payments.reconciliation import FALLBACK_PARAMS, PaymentReconciler, has_fallback_params
from payments.serializers import InitializeSerializer, RefundSerializer
from payments.services import initiate_payment, refund_payment
from rest_framework import serializers as rf_serializers
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

logger = logging.getLogger("key2pay.payments")

DetailSerializer = inline_serializer(name="PaymentsError", fields={"detail": rf_serializers.CharField()})
WebhookAckSerializer = inline_serializer(
    name="WebhookAcknowledgment",
    fields={"success": rf_serializers.BooleanField(), "message": rf_serializers.CharField()},
)


class PaymentsHealthView(APIView):
    """Basic health endpoint for the payments app."""

    permission_classes = [AllowAny]
    throttle_scope = "payments"

    @extend_schema(tags=["Payments Endpoints"], summary="Payments health")
    def get(self, request, *args, **kwargs):
        gateways = []
        for gateway_id, method in PAYMENT_METHODS.items():
            config = get_gateway_config(gateway_id)
            gateways.append({"id": gateway_id, "title": method.title, "available": config.is_available})
        return Response({"status": "ok", "gateways": gateways})


class InitializeView(APIView):
    """Open a Key2Pay payment session for an order.

    The order key proves the caller owns the order, as on the storefront's
    pay-for-order page.
    """

    permission_classes = [AllowAny]
    throttle_scope = "payments_write"
    throttle_classes = [ScopedRateThrottle]

    @extend_schema(
        tags=["Payments Endpoints"],
        summary="Initialize Key2Pay payment",
        description=(
            "Creates a payment session with Key2Pay for the given order and returns the URL the customer "
            "must be redirected to. Thai QR debit requires the payer bank fields."
        ),
        request=InitializeSerializer,
        responses={
            200: inline_serializer(
                name="Key2PayInitializeResponse",
                fields={"result": rf_serializers.CharField(), "redirect": rf_serializers.URLField()},
            ),
            400: DetailSerializer,
            404: DetailSerializer,
        },
        examples=[
            OpenApiExample(
                "Card payment",
                value={"order_id": 123, "order_key": "wc_order_0123456789abcdef"},
                request_only=True,
            ),
            OpenApiExample(
                "Thai QR debit",
                value={
                    "order_id": 123,
                    "order_key": "wc_order_0123456789abcdef",
                    "payer_bank_code": "014",
                    "payer_account_no": "1234567890",
                    "payer_account_name": "Somchai Jaidee",
                },
                request_only=True,
            ),
        ],
    )
    def post(self, request, gateway_id: str, *args, **kwargs):
        try:
            config = get_gateway_config(gateway_id)
        except UnknownGateway:
            return Response({"detail": "Payment method not found"}, status=status.HTTP_404_NOT_FOUND)
        if not config.is_available:
            logger.warning("payments_init_gateway_unavailable", extra={"gateway": gateway_id})
            return Response({"detail": "Payment method unavailable"}, status=status.HTTP_400_BAD_REQUEST)

        method = PAYMENT_METHODS[gateway_id]
        serializer = InitializeSerializer(data=request.data, context={"method": method})
        if not serializer.is_valid():
            errs = serializer.errors or {}
            for checkout_field in method.extra_checkout_fields:
                if checkout_field.name in errs:
                    return Response({"detail": str(errs[checkout_field.name][0])}, status=status.HTTP_400_BAD_REQUEST)
            logger.warning("payments_init_invalid_payload", extra={"gateway": gateway_id, "fields": sorted(errs)})
            return Response({"detail": "Invalid payload"}, status=status.HTTP_400_BAD_REQUEST)

        body = serializer.validated_data
        order = get_order_by_key(body["order_id"], body["order_key"])
        if order is None:
            logger.warning("payments_init_order_not_found", extra={"order_id": body["order_id"]})
            return Response({"detail": "Order not found"}, status=status.HTTP_404_NOT_FOUND)
        if not order.has_status(*order.NEEDS_PAYMENT_STATUSES):
            return Response({"detail": "Order does not need payment"}, status=status.HTTP_400_BAD_REQUEST)

        try:
            redirect = initiate_payment(
                order,
                method,
                config,
                checkout_fields=serializer.checkout_fields(),
                customer_ip=request.META.get("REMOTE_ADDR", ""),
            )
        except PaymentInitiationError as exc:
            return Response({"detail": exc.user_message}, status=status.HTTP_400_BAD_REQUEST)

        return Response({"result": "success", "redirect": redirect})


@method_decorator(csrf_exempt, name="dispatch")
class Key2PayWebhookView(APIView):
    """Handle Key2Pay payment notifications.

    Authenticates the notification with the order's session token and applies
    the reported result to the order.
    """

    permission_classes = [AllowAny]
    authentication_classes = []
    throttle_scope = "payments"
    throttle_classes = [ScopedRateThrottle]

    @extend_schema(
        tags=["Payments Endpoints"],
        summary="Key2Pay webhook handler",
        description="Processes payment notifications idempotently; status never regresses.",
        request=inline_serializer(
            name="Key2PayWebhookPayload",
            fields={
                "type": rf_serializers.CharField(required=False),
                "result": rf_serializers.CharField(required=False),
                "responsecode": rf_serializers.CharField(required=False),
                "trackid": rf_serializers.CharField(),
                "transactionid": rf_serializers.CharField(required=False),
                "token": rf_serializers.CharField(required=False),
                "error_text": rf_serializers.CharField(required=False),
            },
        ),
        responses={
            200: WebhookAckSerializer,
            400: WebhookAckSerializer,
            403: WebhookAckSerializer,
            404: WebhookAckSerializer,
            500: WebhookAckSerializer,
        },
    )
    def post(self, request, gateway_id: str, *args, **kwargs):
        try:
            config = get_gateway_config(gateway_id)
        except UnknownGateway:
            logger.warning("payments_webhook_unknown_gateway", extra={"gateway": gateway_id})
            return Response({"success": False, "message": "Unknown gateway."}, status=status.HTTP_404_NOT_FOUND)

        remote_ip = request.META.get("REMOTE_ADDR")
        if config.webhook_ips and remote_ip not in config.webhook_ips:
            logger.warning(
                "payments_webhook_forbidden_ip",
                extra={"remote_addr": remote_ip, "allowed": list(config.webhook_ips)},
            )
            return Response({"success": False, "message": "Forbidden"}, status=status.HTTP_403_FORBIDDEN)

        try:
            ack = PaymentReconciler(config).handle_webhook(request.body or b"")
        except DatabaseError as exc:
            logger.exception("payments_webhook_store_failed", extra={"gateway": gateway_id})
            sentry_sdk.capture_exception(exc)
            return Response(
                {"success": False, "message": "Unable to record payment notification."},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )
        return Response(ack.as_response_body(), status=ack.http_status)


class OrderReceivedView(APIView):
    """Order-received page shown when the customer returns from Key2Pay."""

    permission_classes = [AllowAny]
    authentication_classes = []
    throttle_scope = "payments"
    throttle_classes = [ScopedRateThrottle]

    @extend_schema(
        tags=["Payments Endpoints"],
        summary="Order received",
        description=(
            "Returns the order status and a customer-facing message. When Key2Pay appends result parameters "
            "and the URL fallback is enabled, they are processed once and the client is redirected to the "
            "same URL without them."
        ),
        parameters=[
            OpenApiParameter(name="key", location=OpenApiParameter.QUERY, required=True, type=str),
            OpenApiParameter(name="responsecode", location=OpenApiParameter.QUERY, required=False, type=str),
            OpenApiParameter(name="trackid", location=OpenApiParameter.QUERY, required=False, type=str),
        ],
        responses={
            200: inline_serializer(
                name="OrderReceived",
                fields={
                    "order_id": rf_serializers.IntegerField(),
                    "status": rf_serializers.CharField(),
                    "message": rf_serializers.CharField(),
                },
            ),
            302: None,
            404: DetailSerializer,
        },
    )
    def get(self, request, order_id: int, *args, **kwargs):
        order = get_order_by_key(order_id, request.query_params.get("key", ""))
        if order is None:
            return Response({"detail": "Order not found"}, status=status.HTTP_404_NOT_FOUND)

        params = request.query_params
        if has_fallback_params(params) and order.payment_method in PAYMENT_METHODS:
            config = get_gateway_config(order.payment_method)
            if not config.disable_url_fallback:
                PaymentReconciler(config).handle_return(order, params)
                remaining = params.copy()
                for key in FALLBACK_PARAMS:
                    remaining.pop(key, None)
                query = remaining.urlencode()
                return HttpResponseRedirect(f"{request.path}?{query}" if query else request.path)

        return Response({"order_id": order.id, "status": order.status, "message": page_message(order)})


class RefundView(APIView):
    """Refund a Key2Pay payment. Staff only."""

    permission_classes = [IsAdminUser]
    throttle_scope = "payments_write"
    throttle_classes = [ScopedRateThrottle]

    @extend_schema(
        tags=["Payments Endpoints"],
        summary="Refund Key2Pay payment",
        request=RefundSerializer,
        responses={
            200: inline_serializer(name="RefundResult", fields={"refunded": rf_serializers.BooleanField()}),
            400: DetailSerializer,
            404: DetailSerializer,
        },
    )
    def post(self, request, order_id: int, *args, **kwargs):
        order = get_order(order_id)
        if order is None:
            return Response({"detail": "Order not found"}, status=status.HTTP_404_NOT_FOUND)
        try:
            config = get_gateway_config(order.payment_method)
        except UnknownGateway:
            return Response({"detail": "Order was not paid with Key2Pay"}, status=status.HTTP_400_BAD_REQUEST)

        serializer = RefundSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({"detail": "Invalid payload"}, status=status.HTTP_400_BAD_REQUEST)
        body = serializer.validated_data

        refunded = refund_payment(order, config, amount=body.get("amount"), reason=body.get("reason", ""))
        logger.info("payments_refund_result", extra={"order_id": order.id, "refunded": refunded})
        return Response({"refunded": refunded})
