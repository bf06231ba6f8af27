"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
These are the contracts between the API layer (DRF serializers)
and the service layer.  DTOs are immutable (``frozen=True``).

- ``CartLineDTO``: one requested product and quantity.
- ``DeliveryAddressDTO``: the address snapshot stored on the order.
- ``CreateOrderDTO``: input for order creation.
- ``StatusUpdateDTO``: input for order and sub-order status changes.
"""

from __future__ import annotations

from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator, model_validator


# ---------------------------------------------------------------------------
# Input DTOs
# ---------------------------------------------------------------------------


class CartLineDTO(BaseModel):
    """A requested line.  Price is never taken from the client."""

    model_config = ConfigDict(frozen=True)

    product_id: UUID
    quantity: int

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Quantity must be at least 1.")
        return v


class DeliveryAddressDTO(BaseModel):
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    full_name: str
    phone: str
    address: str
    city: str
    state: str
    pincode: str
    landmark: str = ""

    @model_validator(mode="after")
    def required_fields_not_blank(self):
        for name in ("full_name", "phone", "address", "city", "state", "pincode"):
            if not getattr(self, name):
                raise ValueError(f"Delivery address field '{name}' must not be blank.")
        return self


class CreateOrderDTO(BaseModel):
    """Immutable DTO for order creation requests.

    Validates:
    - ``items`` must contain at least one line.
    - No product appears twice.
    """

    model_config = ConfigDict(frozen=True)

    buyer_id: int
    items: List[CartLineDTO]
    delivery_address: DeliveryAddressDTO
    payment_method: Literal["cod", "online"] = "cod"
    notes: str = ""
    idempotency_key: Optional[str] = None

    @field_validator("items")
    @classmethod
    def items_must_not_be_empty(cls, v: List[CartLineDTO]) -> List[CartLineDTO]:
        if not v:
            raise ValueError("Order must have at least one item.")
        return v

    @model_validator(mode="after")
    def no_duplicate_products(self):
        product_ids = [item.product_id for item in self.items]
        if len(product_ids) != len(set(product_ids)):
            raise ValueError("Duplicate product_id entries are not allowed.")
        return self


class StatusUpdateDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str
    reason: str = ""
    tracking_number: str = ""
    tracking_url: str = ""
    force: bool = False
