"""Event handlers for payment domain events."""

from __future__ import annotations

import structlog

from modules.payments.events import PaymentCompleted
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class PaymentCompletedHandler(IEventHandler[PaymentCompleted]):
    def handle(self, event: PaymentCompleted) -> None:
        logger.info(
            "payment.event.completed",
            order_id=str(event.aggregate_id),
            gateway_payment_id=event.gateway_payment_id,
            amount=event.amount,
        )


payment_completed_handler = PaymentCompletedHandler()
