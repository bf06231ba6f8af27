"""Order aggregate and stock reservation models.

Business rules implemented:
- An order is created once, from a validated cart, and never deleted;
  it only moves through status values.
- Line items snapshot name, unit, vendor name and unit price at creation
  time.  Later catalog edits never reach an existing order.
- One ``VendorSubOrder`` per distinct vendor in the cart, created with the
  parent and never added or removed afterwards.
- ``OrderLifecycleEntry`` rows are append-only.
- ``delivery_address`` is an embedded snapshot, not a reference.
- Payment state reconciled with the gateway lives on the order itself.
- Stock held for a checkout is tracked by ``StockReservation`` and its
  lines so release and commit can be applied exactly once.
"""

from __future__ import annotations

import secrets
from decimal import Decimal
from typing import Any

import structlog
from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from modules.core.models import BaseModel
from modules.orders.constants import (
    ORDER_NUMBER_MAX_RETRIES,
    TERMINAL_STATES,
    ActorRole,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    ReservationLineState,
    ReservationState,
    SubOrderStatus,
)
from modules.orders.exceptions import LifecycleEntryImmutable
from shared.domain.events import DomainEventMixin

logger = structlog.get_logger(__name__)

MONEY = {"max_digits": 12, "decimal_places": 2}


# ---------------------------------------------------------------------------
# Stock reservations
# ---------------------------------------------------------------------------


class StockReservation(BaseModel):
    """Stock held for one checkout.

    Written and committed before the order transaction starts.  The order
    transaction flips ``held`` to ``committed``; a ``held`` row past
    ``expires_at`` belongs to a checkout that never finished and is
    released by the sweeper.
    """

    state: models.CharField = models.CharField(
        max_length=20,
        choices=ReservationState.choices,
        default=ReservationState.HELD,
    )
    expires_at: models.DateTimeField = models.DateTimeField()
    committed_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)
    released_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "stock_reservations"
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["state", "expires_at"], name="reservation_state_exp_idx"),
        ]

    def __str__(self) -> str:
        return f"Reservation {self.id} ({self.state})"


class StockReservationLine(BaseModel):
    reservation: models.ForeignKey = models.ForeignKey(
        StockReservation,
        on_delete=models.CASCADE,
        related_name="lines",
    )
    product: models.ForeignKey = models.ForeignKey(
        "products.Product",
        on_delete=models.PROTECT,
        related_name="reservation_lines",
    )
    quantity: models.PositiveIntegerField = models.PositiveIntegerField()
    state: models.CharField = models.CharField(
        max_length=20,
        choices=ReservationLineState.choices,
        default=ReservationLineState.RESERVED,
    )

    class Meta:
        db_table = "stock_reservation_lines"
        ordering = ["product_id"]
        constraints = [
            models.UniqueConstraint(
                fields=["reservation", "product"],
                name="reservation_line_product_unique",
            ),
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1),
                name="reservation_line_quantity_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.product_id} x{self.quantity} ({self.state})"


# ---------------------------------------------------------------------------
# Order aggregate
# ---------------------------------------------------------------------------


class Order(DomainEventMixin, BaseModel):
    """Order aggregate root.

    ``order_number`` is the human-readable identifier, generated on first
    save as prefix + ``yymmdd`` + random hex suffix (``ORD250615A1B2C3D4``).
    The UUIDv7 ``id`` is used for internal references and API look-ups.
    """

    order_number: models.CharField = models.CharField(
        max_length=32, unique=True, editable=False
    )
    buyer: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="orders",
    )
    delivery_address: models.JSONField = models.JSONField()
    payment_method: models.CharField = models.CharField(
        max_length=10,
        choices=PaymentMethod.choices,
        default=PaymentMethod.COD,
    )
    currency: models.CharField = models.CharField(max_length=3, default="INR")
    notes: models.TextField = models.TextField(blank=True, default="")
    idempotency_key: models.CharField = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
    )

    subtotal: models.DecimalField = models.DecimalField(**MONEY, default=Decimal("0.00"))
    delivery_fee: models.DecimalField = models.DecimalField(
        **MONEY, default=Decimal("0.00")
    )
    total: models.DecimalField = models.DecimalField(**MONEY, default=Decimal("0.00"))

    status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
    )
    expected_delivery: models.DateTimeField = models.DateTimeField(null=True, blank=True)
    delivered_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)
    tracking_number: models.CharField = models.CharField(
        max_length=100, blank=True, default=""
    )
    tracking_url: models.URLField = models.URLField(blank=True, default="")

    cancellation_reason: models.TextField = models.TextField(blank=True, default="")
    cancelled_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)
    stock_released_at: models.DateTimeField = models.DateTimeField(
        null=True, blank=True
    )
    reservation: models.OneToOneField = models.OneToOneField(
        StockReservation,
        on_delete=models.PROTECT,
        related_name="order",
        null=True,
        blank=True,
    )

    payment_status: models.CharField = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    gateway_order_id: models.CharField = models.CharField(  # noqa: DJ01
        max_length=100, unique=True, null=True, blank=True
    )
    gateway_payment_id: models.CharField = models.CharField(
        max_length=100, blank=True, default=""
    )
    payment_amount: models.DecimalField = models.DecimalField(
        **MONEY, null=True, blank=True
    )
    payment_currency: models.CharField = models.CharField(
        max_length=3, blank=True, default=""
    )
    payment_completed_at: models.DateTimeField = models.DateTimeField(
        null=True, blank=True
    )
    payment_cancelled_at: models.DateTimeField = models.DateTimeField(
        null=True, blank=True
    )

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="orders_status_idx"),
            models.Index(fields=["-created_at"], name="orders_created_idx"),
            models.Index(fields=["buyer", "-created_at"], name="orders_buyer_created_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(subtotal__gte=0) & models.Q(delivery_fee__gte=0),
                name="orders_amounts_non_negative",
            ),
        ]

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    @property
    def is_cancelled(self) -> bool:
        return self.status == OrderStatus.CANCELLED

    # ------------------------------------------------------------------
    # Order number generation
    # ------------------------------------------------------------------

    @staticmethod
    def generate_order_number() -> str:
        now = timezone.localtime()
        suffix = secrets.token_hex(4).upper()
        return f"{settings.ORDER_NUMBER_PREFIX}{now:%y%m%d}{suffix}"

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self.order_number:
            for _attempt in range(ORDER_NUMBER_MAX_RETRIES):
                candidate = self.generate_order_number()
                if not Order.objects.filter(order_number=candidate).exists():
                    self.order_number = candidate
                    break
            else:
                raise RuntimeError(
                    f"Failed to generate unique order_number after "
                    f"{ORDER_NUMBER_MAX_RETRIES} attempts"
                )
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.order_number} ({self.status})"


class VendorSubOrder(BaseModel):
    """The part of an order one vendor fulfils."""

    order: models.ForeignKey = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name="sub_orders",
    )
    vendor: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="vendor_sub_orders",
    )
    vendor_name: models.CharField = models.CharField(max_length=255)
    status: models.CharField = models.CharField(
        max_length=20,
        choices=SubOrderStatus.choices,
        default=SubOrderStatus.PENDING,
    )
    subtotal: models.DecimalField = models.DecimalField(**MONEY, default=Decimal("0.00"))
    expected_delivery: models.DateTimeField = models.DateTimeField(null=True, blank=True)
    delivered_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)
    tracking_number: models.CharField = models.CharField(
        max_length=100, blank=True, default=""
    )
    tracking_url: models.URLField = models.URLField(blank=True, default="")

    class Meta:
        db_table = "vendor_sub_orders"
        ordering = ["created_at", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["order", "vendor"],
                name="vendor_sub_order_unique_vendor",
            ),
        ]
        indexes = [
            models.Index(fields=["vendor", "status"], name="sub_orders_vendor_status_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.order_id} / {self.vendor_name} ({self.status})"


class OrderItem(BaseModel):
    """Line item snapshot.

    ``unit_price`` and ``line_total`` are copied from the assembler's
    draft and never recomputed here.
    """

    order: models.ForeignKey = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name="items",
    )
    sub_order: models.ForeignKey = models.ForeignKey(
        VendorSubOrder,
        on_delete=models.CASCADE,
        related_name="items",
    )
    position: models.PositiveSmallIntegerField = models.PositiveSmallIntegerField()
    product: models.ForeignKey = models.ForeignKey(
        "products.Product",
        on_delete=models.PROTECT,
        related_name="order_items",
    )
    vendor: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="+",
    )
    vendor_name: models.CharField = models.CharField(max_length=255)
    name: models.CharField = models.CharField(max_length=255)
    unit: models.CharField = models.CharField(max_length=10)
    unit_price: models.DecimalField = models.DecimalField(**MONEY)
    quantity: models.PositiveIntegerField = models.PositiveIntegerField(
        validators=[MinValueValidator(1)],
    )
    line_total: models.DecimalField = models.DecimalField(**MONEY)

    class Meta:
        db_table = "order_items"
        ordering = ["position"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1),
                name="order_items_quantity_positive",
            ),
            models.UniqueConstraint(
                fields=["order", "product"],
                name="order_items_unique_product",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.name} x{self.quantity} ({self.line_total})"


class OrderLifecycleEntry(BaseModel):
    """Append-only audit record of one status transition.

    ``sub_order`` is set when the transition belongs to a vendor
    sub-order.  ``actor`` is ``None`` for system and gateway transitions;
    ``actor_role`` always says who acted.
    """

    order: models.ForeignKey = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name="lifecycle",
    )
    sub_order: models.ForeignKey = models.ForeignKey(
        VendorSubOrder,
        on_delete=models.CASCADE,
        related_name="lifecycle",
        null=True,
        blank=True,
    )
    stage: models.CharField = models.CharField(max_length=20)
    previous_stage: models.CharField = models.CharField(
        max_length=20, blank=True, default=""
    )
    actor: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    actor_role: models.CharField = models.CharField(
        max_length=20, choices=ActorRole.choices
    )
    notes: models.TextField = models.TextField(blank=True, default="")

    class Meta:
        db_table = "order_lifecycle_entries"
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["order", "created_at"], name="lifecycle_order_created_idx"),
        ]

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self._state.adding:
            raise LifecycleEntryImmutable("Lifecycle entries cannot be modified.")
        super().save(*args, **kwargs)

    def delete(self, *args: Any, **kwargs: Any):
        raise LifecycleEntryImmutable("Lifecycle entries cannot be deleted.")

    def __str__(self) -> str:
        return f"{self.order_id}: {self.previous_stage or '-'} -> {self.stage}"
