"""Payment reconciliation service.

Creates payment intents with the gateway, verifies signed gateway
callbacks and cancels pending payments.  Gateways retry callbacks, so
verification is keyed on the state already stored on the order: a
replayed callback for a completed payment changes nothing.

The gateway is called outside any database transaction and without a
row lock held; a slow or failing gateway leaves the order untouched with
its payment ``pending``.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Callable
from uuid import UUID

import structlog
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from modules.orders.actors import Actor, resolve_actor
from modules.orders.constants import (
    ActorRole,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from modules.orders.exceptions import Forbidden, OrderNotFound
from modules.payments.dtos import PaymentIntentDTO, PaymentStatusDTO
from modules.payments.events import PaymentCompleted
from modules.payments.exceptions import (
    AmountMismatch,
    InvalidSignature,
    PaymentConflict,
    PaymentGatewayUnavailable,
    PaymentNotAllowed,
    UnknownGatewayOrder,
)
from modules.payments.gateway import GatewayError, PaymentGateway, get_gateway
from modules.payments.signatures import signature_matches

if TYPE_CHECKING:
    from modules.orders.cancellation import CancellationCoordinator
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.orders.transitions import OrderStateMachine
    from modules.payments.dtos import CreateIntentDTO, VerifyCallbackDTO

logger = structlog.get_logger(__name__)


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).to_integral_value())


class PaymentService:
    def __init__(
        self,
        order_repository: IOrderRepository,
        state_machine: OrderStateMachine,
        cancellations: CancellationCoordinator,
        gateway_provider: Callable[[], PaymentGateway] = get_gateway,
    ) -> None:
        self._order_repo = order_repository
        self._state_machine = state_machine
        self._cancellations = cancellations
        self._gateway_provider = gateway_provider

    # ------------------------------------------------------------------
    # Intents
    # ------------------------------------------------------------------

    def create_intent(self, dto: CreateIntentDTO, user) -> PaymentIntentDTO:
        """Create (or return the pending) gateway order for an online order.

        Raises:
            OrderNotFound: the order does not exist.
            Forbidden: the user is not the order's buyer.
            PaymentNotAllowed: cash-on-delivery, cancelled or already paid.
            AmountMismatch: amount or currency differ from the order.
            PaymentGatewayUnavailable: the gateway failed or timed out.
        """
        order = self._order_repo.get_by_id(str(dto.order_id))
        if not order:
            raise OrderNotFound(f"Order {dto.order_id} not found.")
        log = logger.bind(order_id=str(order.id), buyer_id=user.id)

        self._check_payable(order, user)
        if dto.amount != order.total or dto.currency != order.currency:
            log.warning(
                "payment.intent_amount_mismatch",
                requested_amount=str(dto.amount),
                order_total=str(order.total),
            )
            raise AmountMismatch(
                f"Payment must be {order.total} {order.currency} for order "
                f"{order.order_number}."
            )

        if order.gateway_order_id:
            log.info("payment.intent_reused", gateway_order_id=order.gateway_order_id)
            return self._intent_for(order)

        try:
            gateway_order = self._gateway_provider().create_order(
                amount_minor=to_minor_units(order.total),
                currency=order.currency,
                receipt=f"order_{order.order_number}",
                notes={"order_id": str(order.id), "description": dto.description},
            )
        except GatewayError as exc:
            log.warning("payment.gateway_unavailable", error=str(exc))
            raise PaymentGatewayUnavailable(
                "Payment gateway unavailable; the order remains pending."
            ) from exc

        with transaction.atomic():
            order = self._order_repo.get_for_update(str(order.id))
            if order.gateway_order_id:
                # A concurrent request stored its intent first.
                return self._intent_for(order)
            order.gateway_order_id = gateway_order.gateway_order_id
            order.payment_status = PaymentStatus.PENDING
            order.payment_amount = order.total
            order.payment_currency = order.currency
            self._order_repo.save(order)

        log.info(
            "payment.intent_created",
            gateway_order_id=gateway_order.gateway_order_id,
            amount=str(order.total),
        )
        return self._intent_for(order)

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    @transaction.atomic
    def verify_callback(self, dto: VerifyCallbackDTO) -> Order:
        """Apply a signed gateway confirmation.

        The signature is checked before anything is read or written.

        Raises:
            InvalidSignature: the signature does not match.
            UnknownGatewayOrder: no order carries this gateway order id.
            PaymentConflict: the callback contradicts the stored payment.
        """
        log = logger.bind(
            gateway_order_id=dto.gateway_order_id,
            gateway_payment_id=dto.gateway_payment_id,
        )
        if not signature_matches(
            dto.gateway_order_id, dto.gateway_payment_id, dto.signature
        ):
            log.warning("payment.signature_invalid")
            raise InvalidSignature("Payment signature verification failed.")

        order = self._order_repo.get_by_gateway_order_id_for_update(dto.gateway_order_id)
        if not order:
            raise UnknownGatewayOrder(f"No order for {dto.gateway_order_id}.")
        log = log.bind(order_id=str(order.id))

        if dto.order_id is not None and dto.order_id != order.id:
            raise PaymentConflict("Callback order id does not match the gateway order.")

        if order.payment_status == PaymentStatus.COMPLETED:
            if order.gateway_payment_id == dto.gateway_payment_id:
                log.info("payment.callback_replayed")
                return order
            log.error("payment.callback_conflict", stored=order.gateway_payment_id)
            raise PaymentConflict("Order already paid with a different payment.")

        if order.payment_status == PaymentStatus.CANCELLED or order.is_cancelled:
            log.error("payment.callback_for_cancelled_order")
            raise PaymentConflict("Order was cancelled before the payment completed.")

        order.payment_status = PaymentStatus.COMPLETED
        order.gateway_payment_id = dto.gateway_payment_id
        order.payment_completed_at = timezone.now()
        if order.status == OrderStatus.PENDING:
            self._state_machine.transition_order(
                order, OrderStatus.CONFIRMED, Actor.gateway(), notes="Payment completed"
            )
        order.add_domain_event(
            PaymentCompleted(
                aggregate_id=order.id,
                gateway_order_id=dto.gateway_order_id,
                gateway_payment_id=dto.gateway_payment_id,
                amount=str(order.payment_amount or order.total),
                currency=order.payment_currency or order.currency,
            )
        )
        self._order_repo.save(order)

        log.info("payment.completed")
        return order

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    @transaction.atomic
    def cancel_payment(self, order_id: UUID | str, user, reason: str = "") -> Order:
        """Cancel a pending payment and, with it, the order.

        Raises:
            OrderNotFound, Forbidden, PaymentNotAllowed, NotCancellable
        """
        order = self._order_repo.get_for_update(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        if order.buyer_id != user.id:
            raise Forbidden("Only the buyer can cancel this payment.")

        log = logger.bind(order_id=str(order.id), payment_status=order.payment_status)
        if order.payment_status == PaymentStatus.CANCELLED:
            log.info("payment.cancel_repeated")
            return order
        if order.payment_method != PaymentMethod.ONLINE:
            raise PaymentNotAllowed("Cash-on-delivery orders have no online payment.")
        if order.payment_status != PaymentStatus.PENDING:
            raise PaymentNotAllowed(
                f"Payment is {order.payment_status} and can no longer be cancelled."
            )

        order.payment_status = PaymentStatus.CANCELLED
        order.payment_cancelled_at = timezone.now()
        self._cancellations.cancel_locked(
            order,
            reason or "Payment cancelled by buyer",
            Actor(user_id=user.id, role=ActorRole.BUYER),
        )
        self._order_repo.save(order)

        log.info("payment.cancelled")
        return order

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_status(self, order_id: UUID | str, user) -> PaymentStatusDTO:
        order = self._order_repo.get_by_id(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        resolve_actor(user, order)
        return PaymentStatusDTO.from_entity(order)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _check_payable(order: Order, user) -> None:
        if order.buyer_id != user.id:
            raise Forbidden("Only the buyer can pay for this order.")
        if order.payment_method != PaymentMethod.ONLINE:
            raise PaymentNotAllowed("Cash-on-delivery orders are not paid online.")
        if order.payment_status == PaymentStatus.COMPLETED:
            raise PaymentNotAllowed("Order is already paid.")
        if order.payment_status == PaymentStatus.CANCELLED or order.is_cancelled:
            raise PaymentNotAllowed("Order is cancelled.")

    @staticmethod
    def _intent_for(order: Order) -> PaymentIntentDTO:
        return PaymentIntentDTO(
            order_id=order.id,
            gateway_order_id=order.gateway_order_id,
            amount=order.payment_amount or order.total,
            currency=order.payment_currency or order.currency,
            key_id=settings.PAYMENT_GATEWAY_KEY_ID,
        )
