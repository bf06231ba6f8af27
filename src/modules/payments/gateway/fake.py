"""In-memory payment gateway for development and testing.

Issues predictable ``order_fake_<hex>`` ids without any network call.
It can be told to time out or to reject, and records every call so
tests can assert on what the service sent.
"""

from __future__ import annotations

from typing import Dict, List, Optional
from uuid import uuid4

from modules.payments.gateway.port import (
    GatewayError,
    GatewayOrder,
    GatewayTimeout,
    PaymentGateway,
)


class FakeGateway(PaymentGateway):
    def __init__(self) -> None:
        self.calls: List[Dict] = []
        self.fail_with: Optional[GatewayError] = None

    def configure(self, fail_with: Optional[GatewayError] = None) -> None:
        self.fail_with = fail_with

    def time_out(self) -> None:
        self.configure(GatewayTimeout("Simulated gateway timeout"))

    def create_order(
        self,
        amount_minor: int,
        currency: str,
        receipt: str,
        notes: Optional[Dict[str, str]] = None,
    ) -> GatewayOrder:
        self.calls.append(
            {
                "method": "create_order",
                "amount_minor": amount_minor,
                "currency": currency,
                "receipt": receipt,
                "notes": notes or {},
            }
        )
        if self.fail_with is not None:
            raise self.fail_with
        return GatewayOrder(
            gateway_order_id=f"order_fake_{uuid4().hex[:14]}",
            amount_minor=amount_minor,
            currency=currency,
            receipt=receipt,
        )
