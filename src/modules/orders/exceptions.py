"""Order domain exceptions.

Raised by the service layer when business rules are violated.  The API
layer (views) catches these and translates them into HTTP responses.
"""

from __future__ import annotations

from typing import Any, Dict, List, Sequence
from uuid import UUID


class OrderNotFound(Exception):
    """The requested order (or sub-order) does not exist."""


class Forbidden(Exception):
    """The acting user has no role on this order."""


# ---------------------------------------------------------------------------
# Cart problems
# ---------------------------------------------------------------------------


class CartProblem(Exception):
    """One failing cart line.  Never raised alone; see CartValidationFailed."""

    code = "cart_problem"

    def __init__(
        self, product_id: UUID | str, requested: int, available: int = 0
    ) -> None:
        self.product_id = str(product_id)
        self.requested = requested
        self.available = available
        super().__init__(self.describe())

    def describe(self) -> str:
        return f"Product {self.product_id} cannot be ordered."

    def as_dict(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "code": self.code,
            "detail": self.describe(),
            "requested": self.requested,
            "available": self.available,
        }


class ProductNotFound(CartProblem):
    code = "product_not_found"

    def describe(self) -> str:
        return f"Product {self.product_id} does not exist."


class ProductUnavailable(CartProblem):
    code = "product_unavailable"

    def describe(self) -> str:
        return f"Product {self.product_id} is not available for sale."


class InsufficientStock(CartProblem):
    code = "insufficient_stock"

    def describe(self) -> str:
        return (
            f"Product {self.product_id}: requested {self.requested}, "
            f"available {self.available}."
        )


class CartValidationFailed(Exception):
    """The cart was rejected; ``problems`` lists every failing line."""

    def __init__(self, problems: Sequence[CartProblem]) -> None:
        self.problems: List[CartProblem] = list(problems)
        super().__init__("; ".join(problem.describe() for problem in self.problems))

    def as_list(self) -> List[Dict[str, Any]]:
        return [problem.as_dict() for problem in self.problems]

    @property
    def only_stock_shortage(self) -> bool:
        return all(isinstance(p, InsufficientStock) for p in self.problems)


# ---------------------------------------------------------------------------
# State machine guards
# ---------------------------------------------------------------------------


class InvalidTransition(Exception):
    """The requested status change is not allowed from the current status."""


class NotCancellable(Exception):
    """The order cannot be cancelled by this actor in its current status."""


class LifecycleEntryImmutable(Exception):
    """Lifecycle entries are append-only."""


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------


class OrphanedReservation(Exception):
    """A stock reservation was released before its order could be stored."""


class StorageFailure(Exception):
    """The order could not be stored.  Safe for the caller to retry."""
