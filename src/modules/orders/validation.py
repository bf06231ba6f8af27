"""Cart validation against the catalog.

The validator only reads.  It can be run speculatively, before any stock
is reserved, and reports every failing line instead of stopping at the
first one.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, List, Sequence
from uuid import UUID

import structlog

from modules.orders.exceptions import (
    CartProblem,
    CartValidationFailed,
    InsufficientStock,
    ProductNotFound,
    ProductUnavailable,
)

if TYPE_CHECKING:
    from modules.orders.dtos import CartLineDTO
    from modules.products.dtos import ProductSnapshot
    from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)


class CartValidator:
    def __init__(self, product_repository: IProductRepository) -> None:
        self._product_repo = product_repository

    def validate(self, lines: Sequence[CartLineDTO]) -> Dict[UUID, ProductSnapshot]:
        """Check each line for existence, sale status and availability.

        Returns the snapshots keyed by product id when every line passes.

        Raises:
            CartValidationFailed: with one problem per failing line.
        """
        snapshots = self._product_repo.get_snapshots(line.product_id for line in lines)
        problems: List[CartProblem] = []

        for line in lines:
            snapshot = snapshots.get(line.product_id)
            if snapshot is None:
                problems.append(ProductNotFound(line.product_id, line.quantity))
            elif not snapshot.active:
                problems.append(ProductUnavailable(line.product_id, line.quantity))
            elif line.quantity > snapshot.available_quantity:
                problems.append(
                    InsufficientStock(
                        line.product_id, line.quantity, snapshot.available_quantity
                    )
                )

        if problems:
            logger.info(
                "cart.validation_failed",
                problems=[problem.as_dict() for problem in problems],
            )
            raise CartValidationFailed(problems)

        return snapshots
