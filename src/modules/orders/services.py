"""Order service layer (use cases).

Orchestrates checkout and status management.  Checkout runs as:

1. validate the cart against the catalog (read only),
2. assemble the priced draft and the per-vendor split,
3. reserve stock in its own transaction,
4. store the order and commit the reservation in one transaction.

If step 4 fails the reservation is released before the error reaches the
caller; if the process dies in between, the expiry sweep releases it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

import structlog
from django.db import DatabaseError, IntegrityError, transaction

from modules.orders.actors import Actor, resolve_actor
from modules.orders.assembly import OrderAssembler
from modules.orders.cancellation import CancellationCoordinator
from modules.orders.constants import ActorRole, OrderStatus, SubOrderStatus
from modules.orders.events import OrderCreated
from modules.orders.exceptions import (
    Forbidden,
    InvalidTransition,
    OrderNotFound,
    OrphanedReservation,
    StorageFailure,
)
from modules.orders.reservations import InventoryReserver, ReservationRequest
from modules.orders.transitions import OrderStateMachine
from modules.orders.validation import CartValidator

if TYPE_CHECKING:
    from django.db import models

    from modules.orders.dtos import CreateOrderDTO, StatusUpdateDTO
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)


class OrderService:
    """Application service for Order use-cases.

    Receives repositories via constructor injection (DIP) and builds the
    collaborators that work on them.
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        product_repository: IProductRepository,
    ) -> None:
        self._order_repo = order_repository
        self._product_repo = product_repository
        self.validator = CartValidator(product_repository)
        self.assembler = OrderAssembler()
        self.reserver = InventoryReserver(product_repository)
        self.state_machine = OrderStateMachine(order_repository, self.reserver)
        self.cancellations = CancellationCoordinator(order_repository, self.state_machine)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_order(self, dto: CreateOrderDTO) -> Order:
        """Turn a buyer's cart into a stored order.

        Raises:
            CartValidationFailed: one or more lines failed validation or
                could not be reserved.
            OrphanedReservation: the reservation was swept before the
                order could be stored; nothing was kept.
            StorageFailure: the order could not be stored; the reservation
                has been released and the caller may retry.
        """
        log = logger.bind(buyer_id=dto.buyer_id, line_count=len(dto.items))
        log.info("order.creation_started")

        if dto.idempotency_key:
            existing = self._order_repo.get_by_idempotency_key(dto.idempotency_key)
            if existing:
                self._check_replay_owner(existing, dto)
                log.info(
                    "order.idempotency_hit",
                    order_id=str(existing.id),
                    key=dto.idempotency_key,
                )
                return existing

        snapshots = self.validator.validate(dto.items)
        draft = self.assembler.build(dto, snapshots)
        try:
            reservation = self.reserver.reserve(
                [ReservationRequest(line.product_id, line.quantity) for line in dto.items]
            )
        except DatabaseError as exc:
            log.error("order.reservation_failed", error=str(exc))
            raise StorageFailure("Stock could not be reserved; please retry.") from exc
        log = log.bind(reservation_id=str(reservation.id))

        try:
            with transaction.atomic():
                order = self._order_repo.create(draft, reservation.id)
                self.reserver.commit(reservation.id)
                self._order_repo.add_lifecycle_entry(
                    order,
                    stage=OrderStatus.PENDING,
                    actor=Actor(user_id=dto.buyer_id, role=ActorRole.BUYER),
                    notes="Order placed",
                )
                order.add_domain_event(
                    OrderCreated(
                        aggregate_id=order.id,
                        order_number=order.order_number,
                        buyer_id=dto.buyer_id,
                        total=str(order.total),
                        vendor_count=len(draft.sub_orders),
                    )
                )
                self._order_repo.save(order)
        except OrphanedReservation:
            self.reserver.release(reservation.id)
            log.error("order.reservation_orphaned")
            raise
        except IntegrityError as exc:
            self.reserver.release(reservation.id)
            if dto.idempotency_key:
                existing = self._order_repo.get_by_idempotency_key(dto.idempotency_key)
                if existing:
                    self._check_replay_owner(existing, dto)
                    log.info("order.idempotency_race", order_id=str(existing.id))
                    return existing
            log.error("order.storage_failed", error=str(exc))
            raise StorageFailure("Order could not be stored; please retry.") from exc
        except DatabaseError as exc:
            self.reserver.release(reservation.id)
            log.error("order.storage_failed", error=str(exc))
            raise StorageFailure("Order could not be stored; please retry.") from exc

        log.info(
            "order.created",
            order_id=str(order.id),
            order_number=order.order_number,
            total=str(order.total),
        )
        return self._order_repo.get_by_id(str(order.id)) or order

    @transaction.atomic
    def update_status(self, order_id: UUID | str, user, dto: StatusUpdateDTO) -> Order:
        """Status update from ``/orders/{id}/status``.

        Administrators move the parent order (optionally with ``force``).
        Vendors move their own sub-order; the parent follows.  Buyers can
        only cancel, through the cancel operation.

        Raises:
            OrderNotFound, Forbidden, InvalidTransition, NotCancellable
        """
        order = self._locked_order(order_id)
        actor = resolve_actor(user, order, as_vendor=True)

        if actor.role == ActorRole.BUYER:
            raise Forbidden("Buyers cannot change order status; use cancel instead.")

        if actor.role == ActorRole.VENDOR:
            sub_order = order.sub_orders.select_for_update().get(vendor_id=actor.user_id)
            self._apply_sub_order_update(order, sub_order, actor, dto)
            return self._order_repo.get_by_id(str(order.id))

        if dto.status == OrderStatus.CANCELLED:
            self.cancellations.cancel_locked(order, dto.reason, actor)
            return self._order_repo.get_by_id(str(order.id))

        if dto.tracking_number:
            order.tracking_number = dto.tracking_number
        if dto.tracking_url:
            order.tracking_url = dto.tracking_url
        self.state_machine.transition_order(
            order, dto.status, actor, notes=dto.reason, force=dto.force
        )
        self._order_repo.save(order)
        return self._order_repo.get_by_id(str(order.id))

    @transaction.atomic
    def update_sub_order_status(
        self,
        order_id: UUID | str,
        sub_order_id: str,
        user,
        dto: StatusUpdateDTO,
    ) -> Order:
        """Status update for one vendor sub-order.

        Raises:
            OrderNotFound, Forbidden, InvalidTransition
        """
        order = self._locked_order(order_id)
        actor = resolve_actor(user, order, as_vendor=True)
        if actor.role == ActorRole.BUYER:
            raise Forbidden("Buyers cannot change sub-order status.")

        sub_order = self._order_repo.get_sub_order_for_update(order.id, sub_order_id)
        if not sub_order:
            raise OrderNotFound(f"Sub-order {sub_order_id} not found on order {order_id}.")

        self._apply_sub_order_update(order, sub_order, actor, dto)
        return self._order_repo.get_by_id(str(order.id))

    def cancel_order(self, order_id: UUID | str, reason: str, user) -> Order:
        return self.cancellations.cancel(order_id, reason, user)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: str, user) -> Order:
        """Retrieve an order visible to *user*.

        Raises:
            OrderNotFound: the order does not exist.
            Forbidden: the user is not its buyer, one of its vendors or staff.
        """
        order = self._order_repo.get_by_id(order_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        resolve_actor(user, order)
        return order

    def list_orders(self, user) -> models.QuerySet[Order]:
        """Orders visible to *user*: all for staff, else bought or sold."""
        if user.is_staff:
            return self._order_repo.list()
        bought = self._order_repo.list_for_buyer(user.id)
        sold = self._order_repo.list_for_vendor(user.id)
        return bought | sold

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _locked_order(self, order_id: UUID | str) -> Order:
        order = self._order_repo.get_for_update(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def _apply_sub_order_update(self, order, sub_order, actor, dto) -> None:
        if dto.status not in SubOrderStatus.values:
            raise InvalidTransition(f"Unknown sub-order status '{dto.status}'.")
        changed = self.state_machine.transition_sub_order(
            order,
            sub_order,
            dto.status,
            actor,
            notes=dto.reason,
            tracking_number=dto.tracking_number,
            tracking_url=dto.tracking_url,
        )
        if changed:
            self._order_repo.save(order)

    @staticmethod
    def _check_replay_owner(order: Order, dto: CreateOrderDTO) -> None:
        if order.buyer_id != dto.buyer_id:
            raise Forbidden("Idempotency key belongs to another buyer.")
