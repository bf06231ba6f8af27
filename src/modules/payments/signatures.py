"""Gateway callback signatures.

The gateway signs ``"{gateway_order_id}|{gateway_payment_id}"`` with
HMAC-SHA256 under the merchant key secret and sends the hex digest.
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Optional

import structlog
from django.conf import settings

logger = structlog.get_logger(__name__)


def compute_signature(
    gateway_order_id: str, gateway_payment_id: str, secret: Optional[str] = None
) -> str:
    key = settings.PAYMENT_GATEWAY_KEY_SECRET if secret is None else secret
    message = f"{gateway_order_id}|{gateway_payment_id}"
    return hmac.new(key.encode(), message.encode(), hashlib.sha256).hexdigest()


def signature_matches(
    gateway_order_id: str, gateway_payment_id: str, signature: str
) -> bool:
    """Constant-time comparison against the expected signature.

    Without a configured key secret nothing verifies: an empty HMAC key
    is known to everyone.
    """
    if not settings.PAYMENT_GATEWAY_KEY_SECRET:
        logger.error(
            "payment.signature_secret_missing", gateway_order_id=gateway_order_id
        )
        return False
    expected = compute_signature(gateway_order_id, gateway_payment_id)
    return hmac.compare_digest(expected, (signature or "").strip().lower())
