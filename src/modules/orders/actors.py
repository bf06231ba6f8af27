"""Who is acting on an order, and in which capacity."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from modules.orders.constants import ActorRole
from modules.orders.exceptions import Forbidden

if TYPE_CHECKING:
    from modules.orders.models import Order


@dataclass(frozen=True)
class Actor:
    user_id: Optional[int]
    role: str

    @classmethod
    def system(cls) -> Actor:
        return cls(user_id=None, role=ActorRole.SYSTEM)

    @classmethod
    def gateway(cls) -> Actor:
        return cls(user_id=None, role=ActorRole.GATEWAY)

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN


def resolve_actor(user, order: Order, as_vendor: bool = False) -> Actor:
    """Map an authenticated user to their role on *order*.

    Staff users act as administrators on every order.  A vendor who bought
    their own produce is the buyer unless ``as_vendor`` is set, as it is
    for sub-order updates.  Raises ``Forbidden`` when the user is neither
    the buyer nor one of the order's vendors.
    """
    if user.is_staff:
        return Actor(user_id=user.id, role=ActorRole.ADMIN)
    is_vendor = order.sub_orders.filter(vendor_id=user.id).exists()
    if as_vendor and is_vendor:
        return Actor(user_id=user.id, role=ActorRole.VENDOR)
    if order.buyer_id == user.id:
        return Actor(user_id=user.id, role=ActorRole.BUYER)
    if is_vendor:
        return Actor(user_id=user.id, role=ActorRole.VENDOR)
    raise Forbidden(f"User {user.id} has no role on order {order.id}.")
