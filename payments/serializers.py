"""Serializers for payments workflows.

Defines input validation for initializing Key2Pay payments and refunds.
"""

from decimal import Decimal

from rest_framework import serializers


class InitializeSerializer(serializers.Serializer):
    """Validate input for opening a Key2Pay payment session.

    Fields:
    - order_id / order_key: identify the order; the key proves ownership
    - payer_*: bank details, required only by methods that declare them

    The payment method is passed in the serializer context as ``method``.
    """

    order_id = serializers.IntegerField(min_value=1)
    order_key = serializers.CharField(max_length=40)
    payer_bank_code = serializers.CharField(max_length=32, required=False, allow_blank=True)
    payer_account_no = serializers.CharField(max_length=64, required=False, allow_blank=True)
    payer_account_name = serializers.CharField(max_length=128, required=False, allow_blank=True)

    def validate(self, attrs):
        method = self.context.get("method")
        if method is None:
            return attrs
        errors = {}
        for checkout_field in method.extra_checkout_fields:
            value = (attrs.get(checkout_field.name) or "").strip()
            if checkout_field.required and not value:
                errors[checkout_field.name] = checkout_field.missing_message or "This field is required."
        if errors:
            raise serializers.ValidationError(errors)
        return attrs

    def checkout_fields(self) -> dict:
        data = self.validated_data
        return {key: value for key, value in data.items() if key.startswith("payer_")}


class RefundSerializer(serializers.Serializer):
    """Optional partial amount and free-text reason for a refund."""

    amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False)
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")

    def validate_amount(self, value: Decimal) -> Decimal:
        if value is not None and value <= Decimal("0.00"):
            raise serializers.ValidationError("Amount must be positive")
        return value
