"""Product repository interface.

Extends ``IRepository[Product]`` with the catalog read used by cart
validation and the stock primitives used by the inventory reserver.
Every stock primitive is a single conditional update: it either applies
completely or reports ``False`` without touching the row.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.products.dtos import ProductSnapshot
    from modules.products.models import Product


class IProductRepository(IRepository["Product"]):
    """Repository contract for the Product aggregate."""

    @abstractmethod
    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Product]:
        """List products with optional filters."""

    @abstractmethod
    def get_snapshot(self, id: UUID | str) -> Optional[ProductSnapshot]:
        """Return an immutable catalog view of a product, or ``None``."""

    @abstractmethod
    def get_snapshots(self, ids: Iterable[UUID]) -> Dict[UUID, ProductSnapshot]:
        """Bulk variant of :meth:`get_snapshot`; unknown ids are omitted."""

    @abstractmethod
    def reserve_stock(self, id: UUID, quantity: int) -> bool:
        """Hold *quantity* units if at least that many are available."""

    @abstractmethod
    def release_stock(self, id: UUID, quantity: int) -> bool:
        """Return *quantity* held units to availability."""

    @abstractmethod
    def commit_stock(self, id: UUID, quantity: int) -> bool:
        """Consume *quantity* held units (goods have left the vendor)."""
