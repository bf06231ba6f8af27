"""Cancellation and rollback coordinator.

Cancelling an order cancels its open sub-orders, records the reason,
appends the lifecycle entries and hands the order's stock back exactly
once.  ``stock_released_at`` on the order guards the release, so a
retried cancellation returns the already-cancelled order without
touching stock again.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

import structlog
from django.db import transaction
from django.utils import timezone

from modules.orders.actors import resolve_actor
from modules.orders.constants import BUYER_CANCELLABLE_STATES, ActorRole, OrderStatus
from modules.orders.events import OrderCancelled
from modules.orders.exceptions import Forbidden, NotCancellable, OrderNotFound

if TYPE_CHECKING:
    from modules.orders.actors import Actor
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.orders.transitions import OrderStateMachine

logger = structlog.get_logger(__name__)


class CancellationCoordinator:
    def __init__(
        self,
        order_repository: IOrderRepository,
        state_machine: OrderStateMachine,
    ) -> None:
        self._order_repo = order_repository
        self._state_machine = state_machine

    @transaction.atomic
    def cancel(self, order_id: UUID | str, reason: str, user) -> Order:
        """Cancel an order on behalf of an authenticated user.

        Raises:
            OrderNotFound: order does not exist.
            Forbidden: the user has no role on the order.
            NotCancellable: the order cannot be cancelled by this user now.
        """
        order = self._order_repo.get_for_update(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        actor = resolve_actor(user, order)
        self.cancel_locked(order, reason, actor)
        return self._order_repo.get_by_id(str(order.id))

    def cancel_locked(self, order: Order, reason: str, actor: Actor) -> Order:
        """Cancel an order whose row the caller has already locked."""
        log = logger.bind(
            order_id=str(order.id),
            current_status=order.status,
            actor_role=actor.role,
        )

        if order.is_cancelled:
            # Retried cancellation: make sure stock went back, change nothing else.
            if self._state_machine.release_stock_once(order):
                self._order_repo.save(order)
            log.info("order.cancel_repeated")
            return order

        self._check_allowed(order, actor)

        reason = reason.strip() or "Cancelled"
        self._state_machine.cancel_open_sub_orders(order, actor, reason)
        order.cancellation_reason = reason
        order.cancelled_at = timezone.now()
        self._state_machine.release_stock_once(order)
        self._state_machine.record_transition(order, OrderStatus.CANCELLED, actor, reason)
        order.add_domain_event(
            OrderCancelled(aggregate_id=order.id, reason=reason, actor_role=actor.role)
        )
        self._order_repo.save(order)

        log.info("order.cancelled", reason=reason)
        return order

    @staticmethod
    def _check_allowed(order: Order, actor: Actor) -> None:
        if actor.role == ActorRole.VENDOR:
            raise Forbidden(
                "Vendors cannot cancel a whole order; cancel your sub-order instead."
            )
        if actor.role == ActorRole.BUYER:
            if order.status not in BUYER_CANCELLABLE_STATES:
                raise NotCancellable(
                    f"Order {order.order_number} is {order.status}; buyers can only "
                    f"cancel pending or confirmed orders."
                )
            return
        if order.is_terminal:
            raise NotCancellable(
                f"Order {order.order_number} is already {order.status}."
            )
