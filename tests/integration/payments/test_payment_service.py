"""Integration tests for PaymentService.

Covers:
- Intent creation against the gateway, reuse of a pending intent.
- Guards: cash-on-delivery, wrong amount, gateway outage.
- Callback verification: confirmation, replays, conflicts, bad signatures.
- Payment cancellation rolling the order back.
"""

from __future__ import annotations

import hashlib
import hmac
from decimal import Decimal

import pytest

from modules.core.models import OutboxEvent
from modules.orders.constants import ActorRole, OrderStatus, PaymentStatus
from modules.orders.dtos import StatusUpdateDTO
from modules.orders.exceptions import Forbidden, OrderNotFound
from modules.orders.models import Order
from modules.payments.dtos import CreateIntentDTO, VerifyCallbackDTO
from modules.payments.exceptions import (
    AmountMismatch,
    InvalidSignature,
    PaymentConflict,
    PaymentGatewayUnavailable,
    PaymentNotAllowed,
    UnknownGatewayOrder,
)

pytestmark = pytest.mark.integration


def _intent_dto(order, amount=None, currency="INR") -> CreateIntentDTO:
    return CreateIntentDTO(
        order_id=order.id,
        amount=amount if amount is not None else order.total,
        currency=currency,
        description="Weekly vegetables",
    )


@pytest.fixture()
def intent(payment_service, online_order, buyer):
    return payment_service.create_intent(_intent_dto(online_order), buyer)


# ---------------------------------------------------------------------------
# Intents
# ---------------------------------------------------------------------------


class TestCreateIntent:
    def test_gateway_order_created(self, payment_service, online_order, buyer, fake_gateway):
        intent = payment_service.create_intent(_intent_dto(online_order), buyer)

        assert intent.order_id == online_order.id
        assert intent.gateway_order_id.startswith("order_fake_")
        assert intent.amount == Decimal("310.00")
        assert intent.currency == "INR"
        assert intent.key_id == "rzp_test_key"

        [call] = fake_gateway.calls
        assert call["amount_minor"] == 31000
        assert call["currency"] == "INR"
        assert call["receipt"] == f"order_{online_order.order_number}"
        assert call["notes"]["order_id"] == str(online_order.id)

        stored = Order.objects.get(id=online_order.id)
        assert stored.gateway_order_id == intent.gateway_order_id
        assert stored.payment_amount == Decimal("310.00")
        assert stored.payment_status == PaymentStatus.PENDING

    def test_pending_intent_is_reused(self, payment_service, online_order, buyer, intent, fake_gateway):
        again = payment_service.create_intent(_intent_dto(online_order), buyer)

        assert again.gateway_order_id == intent.gateway_order_id
        assert len(fake_gateway.calls) == 1

    def test_lowercase_currency_accepted(self, payment_service, online_order, buyer):
        intent = payment_service.create_intent(
            _intent_dto(online_order, currency="inr"), buyer
        )

        assert intent.currency == "INR"

    def test_cash_on_delivery_rejected(self, payment_service, place_order, tomatoes, buyer):
        cod = place_order((tomatoes, 1))

        with pytest.raises(PaymentNotAllowed):
            payment_service.create_intent(_intent_dto(cod), buyer)

    def test_amount_must_match_total(self, payment_service, online_order, buyer, fake_gateway):
        with pytest.raises(AmountMismatch):
            payment_service.create_intent(
                _intent_dto(online_order, amount=Decimal("10.00")), buyer
            )

        assert fake_gateway.calls == []

    def test_currency_must_match(self, payment_service, online_order, buyer):
        with pytest.raises(AmountMismatch):
            payment_service.create_intent(_intent_dto(online_order, currency="USD"), buyer)

    def test_only_buyer_can_pay(self, payment_service, online_order, other_buyer):
        with pytest.raises(Forbidden):
            payment_service.create_intent(_intent_dto(online_order), other_buyer)

    def test_unknown_order(self, payment_service, online_order, buyer):
        dto = CreateIntentDTO(
            order_id="0190a0b0-0000-7000-8000-000000000000",
            amount=Decimal("1.00"),
            currency="INR",
        )

        with pytest.raises(OrderNotFound):
            payment_service.create_intent(dto, buyer)

    def test_gateway_timeout_leaves_order_pending(
        self, payment_service, online_order, buyer, fake_gateway
    ):
        fake_gateway.time_out()

        with pytest.raises(PaymentGatewayUnavailable):
            payment_service.create_intent(_intent_dto(online_order), buyer)

        stored = Order.objects.get(id=online_order.id)
        assert stored.status == OrderStatus.PENDING
        assert stored.payment_status == PaymentStatus.PENDING
        assert stored.gateway_order_id is None

    def test_cancelled_order_cannot_be_paid(
        self, payment_service, order_service, online_order, buyer
    ):
        order_service.cancel_order(online_order.id, "", buyer)

        with pytest.raises(PaymentNotAllowed):
            payment_service.create_intent(_intent_dto(online_order), buyer)


# ---------------------------------------------------------------------------
# Callbacks
# ---------------------------------------------------------------------------


class TestVerifyCallback:
    def test_valid_callback_confirms_order(
        self, payment_service, online_order, intent, signed_callback
    ):
        order = payment_service.verify_callback(
            VerifyCallbackDTO(**signed_callback(intent.gateway_order_id))
        )

        assert order.payment_status == PaymentStatus.COMPLETED
        assert order.gateway_payment_id == "pay_29QQoUBi66xm2f"
        assert order.payment_completed_at is not None
        assert order.status == OrderStatus.CONFIRMED

        entry = order.lifecycle.last()
        assert entry.actor_role == ActorRole.GATEWAY
        assert entry.notes == "Payment completed"

        row = OutboxEvent.objects.get(event_type="PaymentCompleted")
        assert row.payload["gateway_payment_id"] == "pay_29QQoUBi66xm2f"
        assert row.payload["amount"] == "310.00"

    def test_replayed_callback_is_a_no_op(
        self, payment_service, online_order, intent, signed_callback
    ):
        body = signed_callback(intent.gateway_order_id)
        payment_service.verify_callback(VerifyCallbackDTO(**body))
        entries_before = online_order.lifecycle.count()

        order = payment_service.verify_callback(VerifyCallbackDTO(**body))

        assert order.payment_status == PaymentStatus.COMPLETED
        assert online_order.lifecycle.count() == entries_before
        assert OutboxEvent.objects.filter(event_type="PaymentCompleted").count() == 1

    def test_second_payment_conflicts(
        self, payment_service, online_order, intent, signed_callback
    ):
        payment_service.verify_callback(
            VerifyCallbackDTO(**signed_callback(intent.gateway_order_id))
        )

        with pytest.raises(PaymentConflict):
            payment_service.verify_callback(
                VerifyCallbackDTO(**signed_callback(intent.gateway_order_id, "pay_other"))
            )

        stored = Order.objects.get(id=online_order.id)
        assert stored.gateway_payment_id == "pay_29QQoUBi66xm2f"

    def test_bad_signature_changes_nothing(
        self, payment_service, online_order, intent, signed_callback
    ):
        body = signed_callback(intent.gateway_order_id)
        body["signature"] = "f" * 64

        with pytest.raises(InvalidSignature):
            payment_service.verify_callback(VerifyCallbackDTO(**body))

        stored = Order.objects.get(id=online_order.id)
        assert stored.payment_status == PaymentStatus.PENDING
        assert stored.status == OrderStatus.PENDING

    def test_unconfigured_secret_rejects_forged_callback(
        self, payment_service, online_order, intent, settings
    ):
        settings.PAYMENT_GATEWAY_KEY_SECRET = ""
        forged = hmac.new(
            b"", f"{intent.gateway_order_id}|pay_forged".encode(), hashlib.sha256
        ).hexdigest()

        with pytest.raises(InvalidSignature):
            payment_service.verify_callback(
                VerifyCallbackDTO(
                    gateway_order_id=intent.gateway_order_id,
                    gateway_payment_id="pay_forged",
                    signature=forged,
                )
            )

        stored = Order.objects.get(id=online_order.id)
        assert stored.payment_status == PaymentStatus.PENDING
        assert stored.status == OrderStatus.PENDING

    def test_signature_for_other_payment_rejected(
        self, payment_service, intent, signed_callback
    ):
        body = signed_callback(intent.gateway_order_id, "pay_a")
        body["gateway_payment_id"] = "pay_b"

        with pytest.raises(InvalidSignature):
            payment_service.verify_callback(VerifyCallbackDTO(**body))

    def test_unknown_gateway_order(self, payment_service, signed_callback):
        with pytest.raises(UnknownGatewayOrder):
            payment_service.verify_callback(
                VerifyCallbackDTO(**signed_callback("order_never_issued"))
            )

    def test_order_id_must_match(
        self, payment_service, place_order, apples, intent, signed_callback
    ):
        other = place_order((apples, 1), payment_method="online")
        body = signed_callback(intent.gateway_order_id)

        with pytest.raises(PaymentConflict):
            payment_service.verify_callback(VerifyCallbackDTO(**body, order_id=other.id))

    def test_callback_after_cancellation_conflicts(
        self, payment_service, order_service, online_order, buyer, intent, signed_callback
    ):
        order_service.cancel_order(online_order.id, "", buyer)

        with pytest.raises(PaymentConflict):
            payment_service.verify_callback(
                VerifyCallbackDTO(**signed_callback(intent.gateway_order_id))
            )

    def test_paid_order_can_be_confirmed_by_vendor(
        self, payment_service, order_service, online_order, intent, signed_callback, vendor_a
    ):
        payment_service.verify_callback(
            VerifyCallbackDTO(**signed_callback(intent.gateway_order_id))
        )

        order = order_service.update_status(
            online_order.id, vendor_a, StatusUpdateDTO(status="confirmed")
        )

        statuses = {s.vendor_id: s.status for s in order.sub_orders.all()}
        assert statuses[vendor_a.id] == "confirmed"


# ---------------------------------------------------------------------------
# Cancellation and status
# ---------------------------------------------------------------------------


class TestCancelPayment:
    def test_cancel_pending_payment_cancels_order(
        self, payment_service, online_order, buyer, intent, tomatoes, apples
    ):
        order = payment_service.cancel_payment(online_order.id, buyer, "")

        assert order.payment_status == PaymentStatus.CANCELLED
        assert order.payment_cancelled_at is not None
        assert order.status == OrderStatus.CANCELLED
        assert order.cancellation_reason == "Payment cancelled by buyer"
        tomatoes.refresh_from_db()
        apples.refresh_from_db()
        assert tomatoes.reserved_quantity == 0
        assert apples.reserved_quantity == 0

    def test_repeat_cancel_is_idempotent(self, payment_service, online_order, buyer):
        payment_service.cancel_payment(online_order.id, buyer, "")

        order = payment_service.cancel_payment(online_order.id, buyer, "")

        assert order.payment_status == PaymentStatus.CANCELLED

    def test_completed_payment_cannot_be_cancelled(
        self, payment_service, online_order, buyer, intent, signed_callback
    ):
        payment_service.verify_callback(
            VerifyCallbackDTO(**signed_callback(intent.gateway_order_id))
        )

        with pytest.raises(PaymentNotAllowed):
            payment_service.cancel_payment(online_order.id, buyer, "")

    def test_cash_on_delivery_has_no_payment_to_cancel(
        self, payment_service, place_order, tomatoes, buyer
    ):
        cod = place_order((tomatoes, 1))

        with pytest.raises(PaymentNotAllowed):
            payment_service.cancel_payment(cod.id, buyer, "")

    def test_only_buyer_can_cancel(self, payment_service, online_order, vendor_a):
        with pytest.raises(Forbidden):
            payment_service.cancel_payment(online_order.id, vendor_a, "")


class TestPaymentStatus:
    def test_status_for_buyer(self, payment_service, online_order, buyer, intent):
        payment = payment_service.get_status(online_order.id, buyer)

        assert payment.order_number == online_order.order_number
        assert payment.payment_method == "online"
        assert payment.payment_status == "pending"
        assert payment.gateway_order_id == intent.gateway_order_id

    def test_status_for_stranger(self, payment_service, online_order, other_buyer):
        with pytest.raises(Forbidden):
            payment_service.get_status(online_order.id, other_buyer)
