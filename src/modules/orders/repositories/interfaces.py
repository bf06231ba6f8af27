"""Order repository interface.

Extends ``IRepository[Order]`` with what the Order aggregate needs:
atomic creation from a draft (order, sub-orders and items), row-locked
look-ups, the lifecycle trail and idempotency-key look-up.

The service layer depends exclusively on this contract (DIP).
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, List, Optional
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from django.db import models

    from modules.orders.actors import Actor
    from modules.orders.assembly import OrderDraft
    from modules.orders.models import Order, OrderLifecycleEntry, VendorSubOrder


class IOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate root.

    The aggregate includes VendorSubOrder and OrderItem children and the
    OrderLifecycleEntry trail.  Mutations must be atomic.
    """

    @abstractmethod
    def create(self, draft: OrderDraft, reservation_id: UUID) -> Order:
        """Store a draft as an order with its sub-orders and items."""

    @abstractmethod
    def get_by_id(self, id: str) -> Optional[Order]:
        """Retrieve an order with prefetched children."""

    @abstractmethod
    def get_for_update(self, id: str) -> Optional[Order]:
        """Retrieve an order with a row-level lock."""

    @abstractmethod
    def get_by_gateway_order_id_for_update(self, gateway_order_id: str) -> Optional[Order]:
        """Retrieve and lock the order a gateway order id was issued for."""

    @abstractmethod
    def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        """Retrieve an order by its idempotency key."""

    @abstractmethod
    def get_sub_order_for_update(
        self, order_id: UUID, sub_order_id: str
    ) -> Optional[VendorSubOrder]:
        """Retrieve and lock one sub-order of an order."""

    @abstractmethod
    def list(self, filters: Optional[Dict[str, Any]] = None) -> "models.QuerySet[Order]":
        """List orders with optional filters."""

    @abstractmethod
    def list_for_buyer(self, buyer_id: int) -> "models.QuerySet[Order]":
        """Orders placed by one buyer."""

    @abstractmethod
    def list_for_vendor(self, vendor_id: int) -> "models.QuerySet[Order]":
        """Orders containing a sub-order of one vendor."""

    @abstractmethod
    def add_lifecycle_entry(
        self,
        order: Order,
        stage: str,
        actor: Actor,
        notes: str = "",
        previous_stage: str = "",
        sub_order: Optional[VendorSubOrder] = None,
    ) -> OrderLifecycleEntry:
        """Append one entry to the order's lifecycle trail."""

    @abstractmethod
    def sub_order_statuses(self, order_id: UUID) -> List[str]:
        """Current status of every sub-order of an order."""
