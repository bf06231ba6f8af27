"""Payment DTOs exchanged between the payment views and ``PaymentService``."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator

if TYPE_CHECKING:
    from modules.orders.models import Order


class CreateIntentDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: UUID
    amount: Decimal
    currency: str
    description: str = ""

    @field_validator("currency")
    @classmethod
    def normalise_currency(cls, v: str) -> str:
        return v.strip().upper()


class VerifyCallbackDTO(BaseModel):
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    gateway_order_id: str
    gateway_payment_id: str
    signature: str
    order_id: Optional[UUID] = None


class PaymentIntentDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: UUID
    gateway_order_id: str
    amount: Decimal
    currency: str
    key_id: str


class PaymentStatusDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: UUID
    order_number: str
    order_status: str
    payment_method: str
    payment_status: str
    gateway_order_id: Optional[str] = None
    gateway_payment_id: str = ""
    amount: Optional[Decimal] = None
    currency: str = ""
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, order: Order) -> PaymentStatusDTO:
        return cls(
            order_id=order.id,
            order_number=order.order_number,
            order_status=order.status,
            payment_method=order.payment_method,
            payment_status=order.payment_status,
            gateway_order_id=order.gateway_order_id,
            gateway_payment_id=order.gateway_payment_id,
            amount=order.payment_amount,
            currency=order.payment_currency,
            completed_at=order.payment_completed_at,
            cancelled_at=order.payment_cancelled_at,
        )
