"""Order DRF serializers for API input/output.

The serializers operate at the interface layer (API views).  Business
logic lives in the service layer, which receives Pydantic DTOs from
``dtos.py``.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.orders.constants import PaymentMethod
from modules.orders.models import (
    Order,
    OrderItem,
    OrderLifecycleEntry,
    VendorSubOrder,
)

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class CartLineSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)


class DeliveryAddressSerializer(serializers.Serializer):
    full_name = serializers.CharField(max_length=255)
    phone = serializers.RegexField(r"^\+?[0-9]{10,13}$", max_length=16)
    address = serializers.CharField(max_length=500)
    city = serializers.CharField(max_length=100)
    state = serializers.CharField(max_length=100)
    pincode = serializers.RegexField(r"^[0-9]{6}$")
    landmark = serializers.CharField(
        max_length=255, required=False, allow_blank=True, default=""
    )


class CreateOrderSerializer(serializers.Serializer):
    """Validates the order creation request payload."""

    items = CartLineSerializer(many=True, allow_empty=False)
    delivery_address = DeliveryAddressSerializer()
    payment_method = serializers.ChoiceField(
        choices=PaymentMethod.choices, default=PaymentMethod.COD
    )
    notes = serializers.CharField(required=False, default="", allow_blank=True)

    def validate_items(self, value):
        product_ids = [item["product_id"] for item in value]
        if len(product_ids) != len(set(product_ids)):
            raise serializers.ValidationError(
                "Each product may appear only once in an order."
            )
        return value


class StatusUpdateSerializer(serializers.Serializer):
    status = serializers.CharField(max_length=20)
    reason = serializers.CharField(required=False, default="", allow_blank=True)
    tracking_number = serializers.CharField(
        max_length=100, required=False, default="", allow_blank=True
    )
    tracking_url = serializers.URLField(required=False, default="", allow_blank=True)
    force = serializers.BooleanField(required=False, default=False)


class CancelOrderSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, default="", allow_blank=True)


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class OrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        fields = [
            "id",
            "product_id",
            "vendor_id",
            "vendor_name",
            "name",
            "unit",
            "unit_price",
            "quantity",
            "line_total",
        ]
        read_only_fields = fields


class VendorSubOrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)

    class Meta:
        model = VendorSubOrder
        fields = [
            "id",
            "vendor_id",
            "vendor_name",
            "status",
            "subtotal",
            "expected_delivery",
            "delivered_at",
            "tracking_number",
            "tracking_url",
            "items",
        ]
        read_only_fields = fields


class LifecycleEntrySerializer(serializers.ModelSerializer):
    timestamp = serializers.DateTimeField(source="created_at", read_only=True)

    class Meta:
        model = OrderLifecycleEntry
        fields = [
            "id",
            "sub_order_id",
            "previous_stage",
            "stage",
            "actor_id",
            "actor_role",
            "notes",
            "timestamp",
        ]
        read_only_fields = fields


class PaymentSummarySerializer(serializers.Serializer):
    method = serializers.CharField(source="payment_method")
    status = serializers.CharField(source="payment_status")
    gateway_order_id = serializers.CharField(allow_null=True)
    gateway_payment_id = serializers.CharField()
    amount = serializers.DecimalField(
        source="payment_amount", max_digits=12, decimal_places=2, allow_null=True
    )
    currency = serializers.CharField(source="payment_currency")
    completed_at = serializers.DateTimeField(source="payment_completed_at")


class OrderSerializer(serializers.ModelSerializer):
    """Read serializer for orders with sub-orders, items and lifecycle."""

    items = OrderItemSerializer(many=True, read_only=True)
    sub_orders = VendorSubOrderSerializer(many=True, read_only=True)
    lifecycle = LifecycleEntrySerializer(many=True, read_only=True)
    payment = PaymentSummarySerializer(source="*", read_only=True)
    cancellation = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "buyer_id",
            "status",
            "delivery_address",
            "currency",
            "subtotal",
            "delivery_fee",
            "total",
            "notes",
            "expected_delivery",
            "delivered_at",
            "tracking_number",
            "tracking_url",
            "payment",
            "cancellation",
            "created_at",
            "updated_at",
            "items",
            "sub_orders",
            "lifecycle",
        ]
        read_only_fields = fields

    def get_cancellation(self, obj: Order):
        if obj.cancelled_at is None:
            return None
        return {"reason": obj.cancellation_reason, "cancelled_at": obj.cancelled_at}


class OrderListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for order lists (no nested relations)."""

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "buyer_id",
            "status",
            "payment_method",
            "payment_status",
            "total",
            "created_at",
        ]
        read_only_fields = fields
