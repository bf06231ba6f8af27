"""Payment DRF serializers (request validation only)."""

from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers


class CreateIntentSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    amount = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=Decimal("0.01")
    )
    currency = serializers.CharField(min_length=3, max_length=3)
    description = serializers.CharField(required=False, default="", allow_blank=True)


class VerifyCallbackSerializer(serializers.Serializer):
    gateway_order_id = serializers.CharField(max_length=100)
    gateway_payment_id = serializers.CharField(max_length=100)
    signature = serializers.CharField(max_length=256)
    order_id = serializers.UUIDField(required=False, allow_null=True, default=None)


class CancelPaymentSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, default="", allow_blank=True)
