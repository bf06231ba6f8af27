"""Product model: the catalog record orders read from and reserve against.

Business rules implemented:
- A product belongs to exactly one vendor; ``vendor_name`` is the display
  name shown on order lines.
- ``price`` is the single canonical selling price per ``unit``.
- Price must be greater than zero.
- ``reserved_quantity`` never exceeds ``quantity``, so the available
  quantity can never go negative.  Enforced by a CHECK constraint as well
  as by the conditional updates in the repository.
- Only ``active`` products that are not soft-deleted can be sold.
"""

from __future__ import annotations

from decimal import Decimal

import structlog

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models

from modules.core.models import SoftDeleteModel

logger = structlog.get_logger(__name__)


class ProductStatus(models.TextChoices):
    ACTIVE = "active", "Active"
    INACTIVE = "inactive", "Inactive"


class ProductUnit(models.TextChoices):
    KG = "kg", "Kilogram"
    GRAM = "g", "Gram"
    PIECE = "piece", "Piece"
    DOZEN = "dozen", "Dozen"
    BUNCH = "bunch", "Bunch"
    LITRE = "litre", "Litre"


class Product(SoftDeleteModel):
    """Produce listed by a vendor.

    ``sku`` is normalised to uppercase on save.  Stock columns are only
    ever changed through ``F()`` conditional updates in
    ``ProductDjangoRepository``; ``save()`` is for catalog edits.
    """

    vendor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="products",
    )
    vendor_name = models.CharField(max_length=255)
    sku = models.CharField(max_length=64, unique=True)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    unit = models.CharField(
        max_length=10,
        choices=ProductUnit.choices,
        default=ProductUnit.KG,
    )
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    quantity = models.PositiveIntegerField(default=0)
    reserved_quantity = models.PositiveIntegerField(default=0)
    status = models.CharField(
        max_length=20,
        choices=ProductStatus.choices,
        default=ProductStatus.ACTIVE,
    )

    class Meta:
        db_table = "products"
        ordering = ["name"]
        indexes = [
            models.Index(fields=["status"], name="products_status_idx"),
            models.Index(fields=["vendor", "status"], name="products_vendor_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(price__gt=0),
                name="products_price_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(reserved_quantity__lte=models.F("quantity")),
                name="products_reserved_within_quantity",
            ),
        ]

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    @property
    def available_quantity(self) -> int:
        return self.quantity - self.reserved_quantity

    @property
    def is_sellable(self) -> bool:
        return self.status == ProductStatus.ACTIVE and not self.is_deleted

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def clean(self) -> None:
        super().clean()
        if self.sku:
            self.sku = self.sku.strip().upper()
        if self.price is not None and self.price <= 0:
            raise ValidationError({"price": "Price must be greater than zero."})
        if (
            self.quantity is not None
            and self.reserved_quantity is not None
            and self.reserved_quantity > self.quantity
        ):
            raise ValidationError(
                {"quantity": "Quantity cannot drop below the reserved quantity."}
            )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, *args, **kwargs) -> None:
        is_new = self._state.adding
        if self.sku:
            self.sku = self.sku.strip().upper()
        super().save(*args, **kwargs)
        if is_new:
            logger.info(
                "product.created",
                product_id=str(self.id),
                vendor_id=str(self.vendor_id),
                sku=self.sku,
            )

    def __str__(self) -> str:
        return f"{self.sku} - {self.name}"
