"""Payment reconciliation exceptions.

Raised by ``PaymentService`` and translated into HTTP responses by the
payment views.
"""

from __future__ import annotations


class InvalidSignature(Exception):
    """The callback signature does not match; nothing was changed."""


class PaymentGatewayUnavailable(Exception):
    """The gateway did not answer in time; the payment stays pending."""


class PaymentNotAllowed(Exception):
    """The order is not in a state where this payment action applies."""


class AmountMismatch(Exception):
    """The requested amount differs from the order total."""


class PaymentConflict(Exception):
    """The callback contradicts a payment already recorded on the order."""


class UnknownGatewayOrder(Exception):
    """No order carries the gateway order id named by the callback."""
