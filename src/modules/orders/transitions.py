"""Order State Machine service.

Applies the rules of ``modules.orders.state_machine`` to locked order
and sub-order rows.  Every real transition appends exactly one lifecycle
entry and collects one domain event on the order; asking for the
current status again is a no-op that records nothing.

Callers lock the order row first and save it afterwards through the
repository, which flushes the collected events to the outbox.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List

import structlog
from django.utils import timezone

from modules.orders.constants import (
    SUB_ORDER_TERMINAL_STATES,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    SubOrderStatus,
)
from modules.orders.events import (
    OrderCancelled,
    OrderStatusChanged,
    VendorSubOrderStatusChanged,
)
from modules.orders.exceptions import Forbidden, InvalidTransition
from modules.orders.state_machine import (
    can_transition,
    can_transition_sub_order,
    derive_parent_status,
)

if TYPE_CHECKING:
    from modules.orders.actors import Actor
    from modules.orders.models import Order, VendorSubOrder
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.orders.reservations import InventoryReserver

logger = structlog.get_logger(__name__)

DERIVED_NOTE = "Derived from vendor sub-order statuses"


class OrderStateMachine:
    def __init__(
        self,
        order_repository: IOrderRepository,
        reserver: InventoryReserver,
    ) -> None:
        self._order_repo = order_repository
        self._reserver = reserver

    # ------------------------------------------------------------------
    # Parent order
    # ------------------------------------------------------------------

    def transition_order(
        self,
        order: Order,
        target: str,
        actor: Actor,
        notes: str = "",
        force: bool = False,
    ) -> bool:
        """Move the parent order to *target*.

        ``force`` lets an administrator skip the transition table from
        any non-terminal status; the override is recorded with the
        administrator as actor.  ``delivered`` still requires every
        sub-order to be delivered, and a forced delivery delivers the
        remaining sub-orders first.  Cancellation goes through the
        cancellation coordinator, never through here.

        Returns ``False`` when *target* is already the current status.

        Raises:
            Forbidden: ``force`` requested by a non-administrator.
            InvalidTransition: the change is not allowed.
        """
        if target == order.status:
            return False

        log = logger.bind(
            order_id=str(order.id),
            current_status=order.status,
            new_status=target,
            actor_role=actor.role,
        )

        if target not in OrderStatus.values:
            raise InvalidTransition(f"Unknown order status '{target}'.")
        if target == OrderStatus.CANCELLED:
            raise InvalidTransition("Orders are cancelled through the cancel operation.")

        if force:
            if not actor.is_admin:
                raise Forbidden("Only administrators can override order status.")
            if order.is_terminal:
                raise InvalidTransition(
                    f"Order {order.order_number} is {order.status} and cannot change."
                )
            if target in (OrderStatus.RETURNED, OrderStatus.PARTIALLY_DELIVERED):
                raise InvalidTransition(f"Status {target} cannot be forced.")
        elif not can_transition(order.status, target):
            log.warning("order.invalid_transition")
            raise InvalidTransition(
                f"Cannot transition from {order.status} to {target}."
            )

        if target == OrderStatus.DELIVERED:
            target = self._settle_delivery(order, actor, force)

        if force:
            notes = f"Administrative override: {notes}" if notes else "Administrative override"
            log.warning("order.status_overridden")

        self.record_transition(order, target, actor, notes)
        log.info("order.status_updated")
        return True

    # ------------------------------------------------------------------
    # Vendor sub-orders
    # ------------------------------------------------------------------

    def transition_sub_order(
        self,
        order: Order,
        sub_order: VendorSubOrder,
        target: str,
        actor: Actor,
        notes: str = "",
        tracking_number: str = "",
        tracking_url: str = "",
    ) -> bool:
        """Move one vendor sub-order and re-derive the parent status.

        Delivered sub-orders consume their reserved stock; cancelled ones
        give it back.  Online orders can only be confirmed by a vendor
        once the payment has completed.

        Raises:
            Forbidden: the actor is neither an administrator nor the
                sub-order's vendor.
            InvalidTransition: the change is not allowed.
        """
        if not actor.is_admin and actor.user_id != sub_order.vendor_id:
            raise Forbidden("Only the vendor of this sub-order can update it.")

        if tracking_number:
            sub_order.tracking_number = tracking_number
        if tracking_url:
            sub_order.tracking_url = tracking_url

        if target == sub_order.status:
            if tracking_number or tracking_url:
                sub_order.save(update_fields=["tracking_number", "tracking_url", "updated_at"])
            return False

        log = logger.bind(
            order_id=str(order.id),
            sub_order_id=str(sub_order.id),
            current_status=sub_order.status,
            new_status=target,
            actor_role=actor.role,
        )

        if order.is_terminal or order.status == OrderStatus.DISPUTED:
            raise InvalidTransition(
                f"Order {order.order_number} is {order.status}; its sub-orders are frozen."
            )
        if not can_transition_sub_order(sub_order.status, target):
            log.warning("sub_order.invalid_transition")
            raise InvalidTransition(
                f"Cannot transition sub-order from {sub_order.status} to {target}."
            )
        if (
            target == SubOrderStatus.CONFIRMED
            and order.payment_method == PaymentMethod.ONLINE
            and order.payment_status != PaymentStatus.COMPLETED
        ):
            raise InvalidTransition("Online orders are confirmed only after payment.")

        self._move_sub_order(order, sub_order, target, actor, notes)
        log.info("sub_order.status_updated")

        self.sync_parent(order, actor)
        return True

    def sync_parent(self, order: Order, actor: Actor) -> bool:
        """Apply the parent status implied by the sub-orders, if it changed."""
        derived = derive_parent_status(
            order.status, self._order_repo.sub_order_statuses(order.id)
        )
        if derived == order.status:
            return False

        if derived in (OrderStatus.DELIVERED, OrderStatus.PARTIALLY_DELIVERED):
            order.delivered_at = timezone.now()
        if derived == OrderStatus.CANCELLED:
            order.cancellation_reason = "All vendor sub-orders were cancelled."
            order.cancelled_at = timezone.now()
            self.release_stock_once(order)
            order.add_domain_event(
                OrderCancelled(
                    aggregate_id=order.id,
                    reason=order.cancellation_reason,
                    actor_role=actor.role,
                )
            )

        self.record_transition(order, derived, actor, DERIVED_NOTE)
        return True

    def cancel_open_sub_orders(self, order: Order, actor: Actor, notes: str) -> List[str]:
        """Cancel every sub-order still in flight; returns their ids."""
        cancelled = []
        for sub_order in order.sub_orders.select_for_update().order_by("id"):
            if sub_order.status in SUB_ORDER_TERMINAL_STATES:
                continue
            self._move_sub_order(
                order, sub_order, SubOrderStatus.CANCELLED, actor, notes, touch_stock=False
            )
            cancelled.append(str(sub_order.id))
        return cancelled

    def release_stock_once(self, order: Order) -> bool:
        """Release the order's remaining stock unless already released."""
        if order.stock_released_at is not None:
            logger.info("order.stock_already_released", order_id=str(order.id))
            return False
        if order.reservation_id is not None:
            self._reserver.release(order.reservation_id)
        order.stock_released_at = timezone.now()
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _settle_delivery(self, order: Order, actor: Actor, force: bool) -> str:
        open_sub_orders = [
            s
            for s in order.sub_orders.select_for_update().order_by("id")
            if s.status != SubOrderStatus.DELIVERED
        ]
        if open_sub_orders and not force:
            raise InvalidTransition(
                "Order cannot be delivered while vendor sub-orders are undelivered."
            )
        for sub_order in open_sub_orders:
            if sub_order.status == SubOrderStatus.CANCELLED:
                continue
            self._move_sub_order(
                order,
                sub_order,
                SubOrderStatus.DELIVERED,
                actor,
                "Delivered by administrative override",
            )

        order.delivered_at = timezone.now()
        statuses = self._order_repo.sub_order_statuses(order.id)
        if any(s == SubOrderStatus.CANCELLED for s in statuses):
            return OrderStatus.PARTIALLY_DELIVERED
        return OrderStatus.DELIVERED

    def _move_sub_order(
        self,
        order: Order,
        sub_order: VendorSubOrder,
        target: str,
        actor: Actor,
        notes: str,
        touch_stock: bool = True,
    ) -> None:
        previous = sub_order.status
        product_ids = list(sub_order.items.values_list("product_id", flat=True))

        sub_order.status = target
        if target == SubOrderStatus.DELIVERED:
            sub_order.delivered_at = timezone.now()
            if touch_stock and order.reservation_id is not None:
                self._reserver.fulfil(order.reservation_id, product_ids)
        elif target == SubOrderStatus.CANCELLED:
            if touch_stock and order.reservation_id is not None:
                self._reserver.release(order.reservation_id, product_ids)
        sub_order.save()

        self._order_repo.add_lifecycle_entry(
            order,
            stage=target,
            actor=actor,
            notes=notes,
            previous_stage=previous,
            sub_order=sub_order,
        )
        order.add_domain_event(
            VendorSubOrderStatusChanged(
                aggregate_id=order.id,
                sub_order_id=str(sub_order.id),
                vendor_id=sub_order.vendor_id,
                old_status=previous,
                new_status=target,
            )
        )

    def record_transition(self, order: Order, target: str, actor: Actor, notes: str) -> None:
        previous = order.status
        order.status = target
        self._order_repo.add_lifecycle_entry(
            order,
            stage=target,
            actor=actor,
            notes=notes,
            previous_stage=previous,
        )
        order.add_domain_event(
            OrderStatusChanged(
                aggregate_id=order.id,
                old_status=previous,
                new_status=target,
                actor_role=actor.role,
            )
        )
