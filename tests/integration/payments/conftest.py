from __future__ import annotations

import pytest

from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.payments.services import PaymentService
from modules.payments.signatures import compute_signature


@pytest.fixture()
def payment_service(order_service):
    return PaymentService(
        order_repository=OrderDjangoRepository(),
        state_machine=order_service.state_machine,
        cancellations=order_service.cancellations,
    )


@pytest.fixture()
def online_order(place_order, tomatoes, apples):
    """Online order totalling 310.00 INR."""
    return place_order((tomatoes, 2), (apples, 1), payment_method="online")


@pytest.fixture()
def signed_callback():
    """Callback body as the gateway would send it for *gateway_order_id*."""

    def _signed_callback(gateway_order_id: str, gateway_payment_id: str = "pay_29QQoUBi66xm2f"):
        return {
            "gateway_order_id": gateway_order_id,
            "gateway_payment_id": gateway_payment_id,
            "signature": compute_signature(gateway_order_id, gateway_payment_id),
        }

    return _signed_callback
