"""Django ORM implementation of the Product repository.

Stock changes never read a value and write it back.  Each primitive is
one ``UPDATE ... WHERE`` built from ``F()`` expressions, and the number of
affected rows tells the caller whether the guard held.  Two checkouts
racing for the last units therefore cannot both succeed, whatever the
isolation level of the database.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

import structlog

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from modules.products.dtos import ProductSnapshot
from modules.products.models import Product, ProductStatus
from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)


class ProductDjangoRepository(IProductRepository):
    """Concrete Product repository backed by Django ORM."""

    def get_by_id(self, id: str) -> Optional[Product]:
        """Retrieve a product by primary key.

        Returns ``None`` for non-existent or invalid IDs.
        """
        try:
            return Product.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Product]:
        queryset = Product.objects.alive()
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    @transaction.atomic
    def save(self, entity: Product) -> Product:
        entity.save()
        logger.info("product.saved", product_id=str(entity.id), sku=entity.sku)
        return entity

    @transaction.atomic
    def delete(self, id: str) -> bool:
        """Soft-delete a product; existing orders keep their snapshots."""
        product = self.get_by_id(id)
        if not product:
            return False
        product.delete()
        logger.info("product.soft_deleted", product_id=str(id))
        return True

    # ------------------------------------------------------------------
    # Catalog reads
    # ------------------------------------------------------------------

    def get_snapshot(self, id: UUID | str) -> Optional[ProductSnapshot]:
        product = self.get_by_id(str(id))
        if product is None:
            return None
        return ProductSnapshot.from_entity(product)

    def get_snapshots(self, ids: Iterable[UUID]) -> Dict[UUID, ProductSnapshot]:
        products = Product.objects.filter(id__in=list(ids))
        return {product.id: ProductSnapshot.from_entity(product) for product in products}

    # ------------------------------------------------------------------
    # Stock primitives
    # ------------------------------------------------------------------

    def reserve_stock(self, id: UUID, quantity: int) -> bool:
        updated = Product.objects.filter(
            id=id,
            status=ProductStatus.ACTIVE,
            deleted_at__isnull=True,
            quantity__gte=F("reserved_quantity") + quantity,
        ).update(
            reserved_quantity=F("reserved_quantity") + quantity,
            updated_at=timezone.now(),
        )
        logger.debug(
            "product.stock_reserve_attempted",
            product_id=str(id),
            quantity=quantity,
            applied=bool(updated),
        )
        return bool(updated)

    def release_stock(self, id: UUID, quantity: int) -> bool:
        updated = Product.objects.filter(
            id=id,
            reserved_quantity__gte=quantity,
        ).update(
            reserved_quantity=F("reserved_quantity") - quantity,
            updated_at=timezone.now(),
        )
        if not updated:
            logger.error(
                "product.stock_release_mismatch",
                product_id=str(id),
                quantity=quantity,
            )
        return bool(updated)

    def commit_stock(self, id: UUID, quantity: int) -> bool:
        updated = Product.objects.filter(
            id=id,
            reserved_quantity__gte=quantity,
            quantity__gte=quantity,
        ).update(
            quantity=F("quantity") - quantity,
            reserved_quantity=F("reserved_quantity") - quantity,
            updated_at=timezone.now(),
        )
        if not updated:
            logger.error(
                "product.stock_commit_mismatch",
                product_id=str(id),
                quantity=quantity,
            )
        return bool(updated)
