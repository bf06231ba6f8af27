"""Payment gateway port (abstract interface).

Every adapter (the Razorpay HTTP client, the in-memory fake used by
tests and local development) implements this contract, so the payment
service never depends on a concrete gateway.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Optional


@dataclass(frozen=True)
class GatewayOrder:
    """A payment order as issued by the gateway."""

    gateway_order_id: str
    amount_minor: int
    currency: str
    receipt: str
    status: str = "created"
    raw: Dict = field(default_factory=dict, compare=False)


class GatewayError(Exception):
    """The gateway rejected the request."""


class GatewayTimeout(GatewayError):
    """The gateway did not answer in time, or could not be reached."""


class PaymentGateway(ABC):
    @abstractmethod
    def create_order(
        self,
        amount_minor: int,
        currency: str,
        receipt: str,
        notes: Optional[Dict[str, str]] = None,
    ) -> GatewayOrder:
        """Create a payment order for *amount_minor* (paise, cents)."""
        ...
