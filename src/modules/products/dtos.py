"""Read-only catalog view handed to the order core.

``ProductSnapshot`` is what the cart validator and the assembler see of
a product: price, availability and vendor identity captured at one
instant.  It is immutable (``frozen=True``) so a snapshot can be passed
around without anyone mistaking it for the live row.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from modules.products.models import Product


class ProductSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_id: UUID
    name: str
    unit: str
    unit_price: Decimal
    available_quantity: int
    vendor_id: int
    vendor_name: str
    active: bool

    @classmethod
    def from_entity(cls, product: Product) -> ProductSnapshot:
        return cls(
            product_id=product.id,
            name=product.name,
            unit=product.unit,
            unit_price=product.price,
            available_quantity=product.available_quantity,
            vendor_id=product.vendor_id,
            vendor_name=product.vendor_name,
            active=product.is_sellable,
        )
