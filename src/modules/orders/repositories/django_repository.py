"""Django ORM implementation of the Order repository.

Satisfies ``IOrderRepository`` using Django's QuerySet API.  Writes are
wrapped in ``transaction.atomic()`` so the aggregate (order, sub-orders,
items) is stored as one unit, and domain events collected on the order
are written to the outbox in that same transaction.

Concurrent mutations are serialized with ``select_for_update()`` on the
order row.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db import models, transaction

from modules.core.models import OutboxEvent
from modules.orders.actors import Actor
from modules.orders.assembly import OrderDraft
from modules.orders.models import (
    Order,
    OrderItem,
    OrderLifecycleEntry,
    VendorSubOrder,
)
from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)

_PREFETCH = ("sub_orders__items", "items", "lifecycle")


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Create (aggregate root + children)
    # ------------------------------------------------------------------

    @transaction.atomic
    def create(self, draft: OrderDraft, reservation_id: UUID) -> Order:
        order = Order(
            buyer_id=draft.buyer_id,
            delivery_address=draft.delivery_address,
            payment_method=draft.payment_method,
            currency=draft.currency,
            notes=draft.notes,
            idempotency_key=draft.idempotency_key,
            subtotal=draft.totals.subtotal,
            delivery_fee=draft.totals.delivery_fee,
            total=draft.totals.total,
            expected_delivery=draft.expected_delivery,
            reservation_id=reservation_id,
        )
        order.save()

        for draft_sub_order in draft.sub_orders:
            sub_order = VendorSubOrder.objects.create(
                order=order,
                vendor_id=draft_sub_order.vendor_id,
                vendor_name=draft_sub_order.vendor_name,
                subtotal=draft_sub_order.subtotal,
                expected_delivery=draft.expected_delivery,
            )
            OrderItem.objects.bulk_create(
                [
                    OrderItem(
                        order=order,
                        sub_order=sub_order,
                        position=line.position,
                        product_id=line.product_id,
                        vendor_id=line.vendor_id,
                        vendor_name=line.vendor_name,
                        name=line.name,
                        unit=line.unit,
                        unit_price=line.unit_price,
                        quantity=line.quantity,
                        line_total=line.line_total,
                    )
                    for line in draft_sub_order.lines
                ]
            )

        logger.info(
            "order.stored",
            order_id=str(order.id),
            order_number=order.order_number,
            item_count=len(draft.lines),
            sub_order_count=len(draft.sub_orders),
        )
        return order

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: str) -> Optional[Order]:
        """Retrieve an order with eager-loaded children.

        Returns ``None`` for non-existent or invalid IDs.
        """
        try:
            return (
                Order.objects.select_related("buyer")
                .prefetch_related(*_PREFETCH)
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def get_for_update(self, id: str) -> Optional[Order]:
        try:
            return Order.objects.select_for_update().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_by_gateway_order_id_for_update(self, gateway_order_id: str) -> Optional[Order]:
        return (
            Order.objects.select_for_update()
            .filter(gateway_order_id=gateway_order_id)
            .first()
        )

    def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        return (
            Order.objects.select_related("buyer")
            .prefetch_related(*_PREFETCH)
            .filter(idempotency_key=key)
            .first()
        )

    def get_sub_order_for_update(
        self, order_id: UUID, sub_order_id: str
    ) -> Optional[VendorSubOrder]:
        try:
            return (
                VendorSubOrder.objects.select_for_update()
                .filter(id=sub_order_id, order_id=order_id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> models.QuerySet[Order]:
        queryset = Order.objects.select_related("buyer").prefetch_related("sub_orders")
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    def list_for_buyer(self, buyer_id: int) -> models.QuerySet[Order]:
        return self.list({"buyer_id": buyer_id})

    def list_for_vendor(self, vendor_id: int) -> models.QuerySet[Order]:
        vendor_order_ids = VendorSubOrder.objects.filter(vendor_id=vendor_id).values(
            "order_id"
        )
        return self.list({"id__in": vendor_order_ids})

    def sub_order_statuses(self, order_id: UUID) -> List[str]:
        return list(
            VendorSubOrder.objects.filter(order_id=order_id).values_list(
                "status", flat=True
            )
        )

    # ------------------------------------------------------------------
    # Save / Delete (IRepository contract)
    # ------------------------------------------------------------------

    @transaction.atomic
    def save(self, entity: Order) -> Order:
        """Persist an order and flush its domain events to the outbox."""
        entity.save()

        events = entity.domain_events
        for event in events:
            OutboxEvent.record(event)
        entity.clear_domain_events()

        logger.info("order.saved", order_id=str(entity.id), event_count=len(events))
        return entity

    def delete(self, id: str) -> bool:
        raise NotImplementedError("Orders are never deleted; cancel them instead.")

    # ------------------------------------------------------------------
    # Lifecycle trail
    # ------------------------------------------------------------------

    def add_lifecycle_entry(
        self,
        order: Order,
        stage: str,
        actor: Actor,
        notes: str = "",
        previous_stage: str = "",
        sub_order: Optional[VendorSubOrder] = None,
    ) -> OrderLifecycleEntry:
        entry = OrderLifecycleEntry.objects.create(
            order=order,
            sub_order=sub_order,
            stage=stage,
            previous_stage=previous_stage,
            actor_id=actor.user_id,
            actor_role=actor.role,
            notes=notes,
        )
        logger.info(
            "order.lifecycle_appended",
            order_id=str(order.id),
            sub_order_id=str(sub_order.id) if sub_order else None,
            previous_stage=previous_stage,
            stage=stage,
            actor_role=actor.role,
        )
        return entry
