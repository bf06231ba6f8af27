"""Payment API views.

``verify`` is called by the gateway's checkout flow on behalf of the
buyer and is authenticated by its HMAC signature, not by a user token.
Every other endpoint requires the authenticated buyer (or staff for the
status query).
"""

from __future__ import annotations

from typing import Dict, Type

from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.orders.views import ORDER_ERRORS, order_error_response
from modules.payments.dtos import CreateIntentDTO, VerifyCallbackDTO
from modules.payments.exceptions import (
    AmountMismatch,
    InvalidSignature,
    PaymentConflict,
    PaymentGatewayUnavailable,
    PaymentNotAllowed,
    UnknownGatewayOrder,
)
from modules.payments.serializers import (
    CancelPaymentSerializer,
    CreateIntentSerializer,
    VerifyCallbackSerializer,
)
from modules.payments.services import PaymentService
from modules.products.repositories.django_repository import ProductDjangoRepository

PAYMENT_ERRORS = (
    AmountMismatch,
    InvalidSignature,
    PaymentConflict,
    PaymentGatewayUnavailable,
    PaymentNotAllowed,
    UnknownGatewayOrder,
)

_STATUS_BY_ERROR: Dict[Type[Exception], int] = {
    AmountMismatch: status.HTTP_400_BAD_REQUEST,
    InvalidSignature: status.HTTP_400_BAD_REQUEST,
    PaymentConflict: status.HTTP_409_CONFLICT,
    PaymentGatewayUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
    PaymentNotAllowed: status.HTTP_409_CONFLICT,
    UnknownGatewayOrder: status.HTTP_404_NOT_FOUND,
}


def build_payment_service() -> PaymentService:
    order_repository = OrderDjangoRepository()
    orders = OrderService(
        order_repository=order_repository,
        product_repository=ProductDjangoRepository(),
    )
    return PaymentService(
        order_repository=order_repository,
        state_machine=orders.state_machine,
        cancellations=orders.cancellations,
    )


def payment_error_response(exc: Exception) -> Response:
    if isinstance(exc, ORDER_ERRORS):
        return order_error_response(exc)
    body = {"detail": str(exc)}
    if isinstance(exc, InvalidSignature):
        body["status"] = "failure"
    return Response(body, status=_STATUS_BY_ERROR[type(exc)])


class PaymentIntentView(APIView):
    """POST /api/v1/payments/intents/"""

    def post(self, request: Request) -> Response:
        serializer = CreateIntentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            intent = build_payment_service().create_intent(
                CreateIntentDTO(**serializer.validated_data), request.user
            )
        except (*ORDER_ERRORS, *PAYMENT_ERRORS) as exc:
            return payment_error_response(exc)
        return Response(intent.model_dump(mode="json"), status=status.HTTP_201_CREATED)


class PaymentVerifyView(APIView):
    """POST /api/v1/payments/verify/"""

    authentication_classes: list = []
    permission_classes = [AllowAny]
    throttle_scope = "payment_callback"

    def post(self, request: Request) -> Response:
        serializer = VerifyCallbackSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            order = build_payment_service().verify_callback(
                VerifyCallbackDTO(**serializer.validated_data)
            )
        except (*ORDER_ERRORS, *PAYMENT_ERRORS) as exc:
            return payment_error_response(exc)
        return Response(
            {
                "status": "success",
                "order_id": str(order.id),
                "order_number": order.order_number,
                "order_status": order.status,
                "payment_status": order.payment_status,
            }
        )


class PaymentStatusView(APIView):
    """GET /api/v1/payments/status/{order_id}/"""

    def get(self, request: Request, order_id) -> Response:
        try:
            payment = build_payment_service().get_status(order_id, request.user)
        except ORDER_ERRORS as exc:
            return order_error_response(exc)
        return Response(payment.model_dump(mode="json"))


class PaymentCancelView(APIView):
    """POST /api/v1/payments/cancel/{order_id}/"""

    def post(self, request: Request, order_id) -> Response:
        serializer = CancelPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            order = build_payment_service().cancel_payment(
                order_id, request.user, serializer.validated_data["reason"]
            )
        except (*ORDER_ERRORS, *PAYMENT_ERRORS) as exc:
            return payment_error_response(exc)
        return Response(
            {
                "order_id": str(order.id),
                "order_status": order.status,
                "payment_status": order.payment_status,
            }
        )
