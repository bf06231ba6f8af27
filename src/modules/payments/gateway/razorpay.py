"""Razorpay adapter over its REST API.

Uses ``requests`` with HTTP basic auth (key id / key secret) and the
configured timeout.  Connection problems and timeouts surface as
``GatewayTimeout`` so the caller leaves the payment pending; any other
non-2xx answer is a ``GatewayError``.
"""

from __future__ import annotations

from typing import Dict, Optional

import requests
import structlog
from django.conf import settings

from modules.payments.gateway.port import (
    GatewayError,
    GatewayOrder,
    GatewayTimeout,
    PaymentGateway,
)

logger = structlog.get_logger(__name__)


class RazorpayGateway(PaymentGateway):
    def __init__(
        self,
        key_id: Optional[str] = None,
        key_secret: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.key_id = key_id or settings.PAYMENT_GATEWAY_KEY_ID
        self.key_secret = key_secret or settings.PAYMENT_GATEWAY_KEY_SECRET
        self.base_url = (base_url or settings.PAYMENT_GATEWAY_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.PAYMENT_GATEWAY_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    def create_order(
        self,
        amount_minor: int,
        currency: str,
        receipt: str,
        notes: Optional[Dict[str, str]] = None,
    ) -> GatewayOrder:
        payload = {
            "amount": amount_minor,
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {},
        }
        try:
            response = self.session.post(
                f"{self.base_url}/orders",
                json=payload,
                auth=(self.key_id, self.key_secret),
                timeout=self.timeout,
            )
        except (requests.Timeout, requests.ConnectionError) as exc:
            logger.warning("gateway.unreachable", receipt=receipt, error=str(exc))
            raise GatewayTimeout(str(exc)) from exc

        if response.status_code >= 400:
            logger.error(
                "gateway.order_rejected",
                receipt=receipt,
                status_code=response.status_code,
            )
            raise GatewayError(
                f"Gateway rejected order creation ({response.status_code})."
            )

        data = response.json()
        return GatewayOrder(
            gateway_order_id=data["id"],
            amount_minor=data["amount"],
            currency=data["currency"],
            receipt=data.get("receipt", receipt),
            status=data.get("status", "created"),
            raw=data,
        )
