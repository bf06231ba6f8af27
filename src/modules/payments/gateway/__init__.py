"""Payment gateway registry.

``get_gateway()`` builds the adapter named by ``PAYMENT_GATEWAY_BACKEND``
on first use; ``set_gateway()`` / ``reset_gateway()`` swap it at runtime
(tests, credential rotation) without restarting the process.
"""

from __future__ import annotations

from typing import Optional

from django.conf import settings
from django.utils.module_loading import import_string

from modules.payments.gateway.port import (
    GatewayError,
    GatewayOrder,
    GatewayTimeout,
    PaymentGateway,
)

_current_gateway: Optional[PaymentGateway] = None


def get_gateway() -> PaymentGateway:
    global _current_gateway
    if _current_gateway is None:
        _current_gateway = import_string(settings.PAYMENT_GATEWAY_BACKEND)()
    return _current_gateway


def set_gateway(gateway: PaymentGateway) -> None:
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    global _current_gateway
    _current_gateway = None


__all__ = [
    "GatewayError",
    "GatewayOrder",
    "GatewayTimeout",
    "PaymentGateway",
    "get_gateway",
    "reset_gateway",
    "set_gateway",
]
