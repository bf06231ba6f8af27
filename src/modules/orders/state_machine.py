"""Pure transition rules for orders and vendor sub-orders.

Nothing in this module reads or writes the database.  The services in
``modules.orders.transitions`` apply these rules to locked rows.
"""

from __future__ import annotations

from typing import Iterable

from modules.orders.constants import (
    STAGE_RANK,
    SUB_ORDER_TERMINAL_STATES,
    SUB_ORDER_TRANSITIONS,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    OrderStatus,
    SubOrderStatus,
)


def can_transition(current: str, target: str) -> bool:
    return target in VALID_TRANSITIONS.get(current, set())


def can_transition_sub_order(current: str, target: str) -> bool:
    return target in SUB_ORDER_TRANSITIONS.get(current, set())


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATES


def derive_parent_status(current: str, sub_statuses: Iterable[str]) -> str:
    """Return the parent status implied by its vendor sub-orders.

    The parent is ``delivered`` only when every sub-order is delivered.
    A mix of delivered and cancelled sub-orders with nothing left in
    flight yields ``partially_delivered``; all cancelled yields
    ``cancelled``.  While sub-orders are still moving the parent follows
    the slowest one, and never moves backwards.  Terminal and disputed
    parents are left alone.
    """
    statuses = list(sub_statuses)
    if not statuses or is_terminal(current) or current == OrderStatus.DISPUTED:
        return current

    if all(s == SubOrderStatus.CANCELLED for s in statuses):
        return OrderStatus.CANCELLED
    if all(s == SubOrderStatus.DELIVERED for s in statuses):
        return OrderStatus.DELIVERED

    in_flight = [s for s in statuses if s not in SUB_ORDER_TERMINAL_STATES]
    if not in_flight:
        return OrderStatus.PARTIALLY_DELIVERED

    slowest = min(in_flight, key=lambda s: STAGE_RANK[s])
    if STAGE_RANK[slowest] > STAGE_RANK.get(current, 0):
        return OrderStatus(slowest)
    return current
