"""Event handlers for Orders domain events."""

from __future__ import annotations

import structlog

from modules.orders.events import (
    OrderCancelled,
    OrderCreated,
    OrderStatusChanged,
    VendorSubOrderStatusChanged,
)
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class OrderCreatedHandler(IEventHandler[OrderCreated]):
    def handle(self, event: OrderCreated) -> None:
        logger.info(
            "order.event.created",
            order_id=str(event.aggregate_id),
            order_number=event.order_number,
            vendor_count=event.vendor_count,
        )


class OrderCancelledHandler(IEventHandler[OrderCancelled]):
    def handle(self, event: OrderCancelled) -> None:
        logger.info(
            "order.event.cancelled",
            order_id=str(event.aggregate_id),
            reason=event.reason,
            actor_role=event.actor_role,
        )


class OrderStatusChangedHandler(IEventHandler[OrderStatusChanged]):
    def handle(self, event: OrderStatusChanged) -> None:
        logger.info(
            "order.event.status_changed",
            order_id=str(event.aggregate_id),
            old_status=event.old_status,
            new_status=event.new_status,
        )


class VendorSubOrderStatusChangedHandler(IEventHandler[VendorSubOrderStatusChanged]):
    def handle(self, event: VendorSubOrderStatusChanged) -> None:
        logger.info(
            "order.event.sub_order_status_changed",
            order_id=str(event.aggregate_id),
            sub_order_id=event.sub_order_id,
            vendor_id=event.vendor_id,
            new_status=event.new_status,
        )


order_created_handler = OrderCreatedHandler()
order_cancelled_handler = OrderCancelledHandler()
order_status_changed_handler = OrderStatusChangedHandler()
sub_order_status_changed_handler = VendorSubOrderStatusChangedHandler()
