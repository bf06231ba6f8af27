"""Base repository contract shared by the order and product repositories.

Services receive repositories through their constructors and only see
these abstract interfaces, so unit tests can hand them in-memory fakes
(see ``tests/unit/orders/test_validation.py``).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, Iterable, Optional, TypeVar

T = TypeVar("T")


class IRepository(ABC, Generic[T]):
    """Minimal persistence contract for one aggregate root ``T``.

    Aggregates with extra needs (row locks, stock primitives, the order
    lifecycle trail) extend this in their own module.
    """

    @abstractmethod
    def get_by_id(self, id: str) -> Optional[T]:
        """Return the aggregate, or ``None`` for unknown or malformed ids."""

    @abstractmethod
    def list(self, filters: Optional[Dict[str, Any]] = None) -> Iterable[T]:
        """Aggregates matching ``filters`` (ORM lookups)."""

    @abstractmethod
    def save(self, entity: T) -> T:
        ...

    @abstractmethod
    def delete(self, id: str) -> bool:
        """Remove an aggregate.  Repositories may refuse (orders are never deleted)."""
