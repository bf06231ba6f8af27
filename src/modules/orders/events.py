"""Domain events for the Orders bounded context."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class OrderCreated(DomainEvent):
    """Raised when an order is placed."""

    topic: ClassVar[str] = "orders"

    order_number: str = ""
    buyer_id: int = 0
    total: str = "0.00"
    vendor_count: int = 0


@dataclass(frozen=True)
class OrderStatusChanged(DomainEvent):
    """Raised when the parent order status changes."""

    topic: ClassVar[str] = "orders"

    old_status: str = ""
    new_status: str = ""
    actor_role: str = ""


@dataclass(frozen=True)
class OrderCancelled(DomainEvent):
    """Raised when an order is cancelled and its stock released."""

    topic: ClassVar[str] = "orders"

    reason: str = ""
    actor_role: str = ""


@dataclass(frozen=True)
class VendorSubOrderStatusChanged(DomainEvent):
    """Raised when a vendor moves their part of an order forward."""

    topic: ClassVar[str] = "orders"

    sub_order_id: str = ""
    vendor_id: int = 0
    old_status: str = ""
    new_status: str = ""
