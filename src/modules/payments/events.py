"""Domain events for payment reconciliation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class PaymentCompleted(DomainEvent):
    """Raised when a verified gateway callback settles an order."""

    topic: ClassVar[str] = "payments"

    gateway_order_id: str = ""
    gateway_payment_id: str = ""
    amount: str = "0.00"
    currency: str = ""
