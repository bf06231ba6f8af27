"""Order API views.

Exposes ``OrderService`` via HTTP using DRF ViewSets.  Domain exceptions
are caught and translated into HTTP status codes; the views never
swallow generic exceptions.
"""

from __future__ import annotations

from typing import Dict, Type

from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.viewsets import GenericViewSet

from modules.core.pagination import StandardResultsSetPagination
from modules.orders.dtos import (
    CartLineDTO,
    CreateOrderDTO,
    DeliveryAddressDTO,
    StatusUpdateDTO,
)
from modules.orders.exceptions import (
    CartValidationFailed,
    Forbidden,
    InvalidTransition,
    NotCancellable,
    OrderNotFound,
    OrphanedReservation,
    StorageFailure,
)
from modules.orders.filters import OrderFilter
from modules.orders.models import Order
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.serializers import (
    CancelOrderSerializer,
    CreateOrderSerializer,
    OrderListSerializer,
    OrderSerializer,
    StatusUpdateSerializer,
)
from modules.orders.services import OrderService
from modules.products.repositories.django_repository import ProductDjangoRepository

ORDER_ERRORS = (
    CartValidationFailed,
    Forbidden,
    InvalidTransition,
    NotCancellable,
    OrderNotFound,
    OrphanedReservation,
    StorageFailure,
)

_STATUS_BY_ERROR: Dict[Type[Exception], int] = {
    OrderNotFound: status.HTTP_404_NOT_FOUND,
    Forbidden: status.HTTP_403_FORBIDDEN,
    InvalidTransition: status.HTTP_409_CONFLICT,
    NotCancellable: status.HTTP_409_CONFLICT,
    OrphanedReservation: status.HTTP_503_SERVICE_UNAVAILABLE,
    StorageFailure: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def order_error_response(exc: Exception) -> Response:
    """Translate an order domain exception into its HTTP response."""
    if isinstance(exc, CartValidationFailed):
        return Response(
            {
                "detail": "Some items in the cart cannot be ordered.",
                "problems": exc.as_list(),
            },
            status=status.HTTP_409_CONFLICT,
        )
    return Response({"detail": str(exc)}, status=_STATUS_BY_ERROR[type(exc)])


class OrderViewSet(GenericViewSet):
    """ViewSet for Order operations.

    Uses ``OrderService`` with injected repositories (DIP).  Does **not**
    extend ``ModelViewSet``; all ORM access goes through the
    service/repository layer.
    """

    queryset = Order.objects.all()
    filterset_class = OrderFilter
    search_fields = ["order_number"]
    ordering_fields = ["created_at", "total", "status"]
    ordering = ["-created_at", "-id"]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = OrderService(
            order_repository=OrderDjangoRepository(),
            product_repository=ProductDjangoRepository(),
        )

    def get_throttles(self) -> list[BaseThrottle]:
        """Per-action throttling scopes."""
        throttle_scope: str | None
        if self.action == "create":
            throttle_scope = "order_creation"
        elif self.action in {"list", "retrieve"}:
            throttle_scope = "order_listing"
        else:
            throttle_scope = None
        self.throttle_scope = throttle_scope
        return super().get_throttles()

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, request: Request) -> Response:
        """POST /api/v1/orders/

        Supports idempotency via the ``Idempotency-Key`` header: a repeated
        key returns the order created by the first request.
        """
        create_serializer = CreateOrderSerializer(data=request.data)
        create_serializer.is_valid(raise_exception=True)

        data = create_serializer.validated_data
        dto = CreateOrderDTO(
            buyer_id=request.user.id,
            items=[
                CartLineDTO(product_id=item["product_id"], quantity=item["quantity"])
                for item in data["items"]
            ],
            delivery_address=DeliveryAddressDTO(**data["delivery_address"]),
            payment_method=data["payment_method"],
            notes=data.get("notes", ""),
            idempotency_key=request.headers.get("Idempotency-Key"),
        )

        try:
            order = self._service.create_order(dto)
        except ORDER_ERRORS as exc:
            return order_error_response(exc)

        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)

    # ------------------------------------------------------------------
    # List / Retrieve
    # ------------------------------------------------------------------

    def get_queryset(self):
        return self._service.list_orders(self.request.user)

    def list(self, request: Request) -> Response:
        """GET /api/v1/orders/

        Staff see every order; other users see the orders they bought and
        the orders containing their sub-orders.
        """
        queryset = self.filter_queryset(self.get_queryset())

        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(queryset, request)
        serializer = OrderListSerializer(page, many=True)
        return paginator.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/"""
        try:
            order = self._service.get_order(str(pk), request.user)
        except ORDER_ERRORS as exc:
            return order_error_response(exc)
        return Response(OrderSerializer(order).data)

    # ------------------------------------------------------------------
    # Status updates
    # ------------------------------------------------------------------

    @action(detail=True, methods=["patch", "post"], url_path="status")
    def update_status(self, request: Request, pk: str | None = None) -> Response:
        """PATCH /api/v1/orders/{pk}/status/

        Administrators move the order; vendors move their own sub-order.
        """
        serializer = StatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            order = self._service.update_status(
                str(pk), request.user, StatusUpdateDTO(**serializer.validated_data)
            )
        except ORDER_ERRORS as exc:
            return order_error_response(exc)
        return Response(OrderSerializer(order).data)

    @action(
        detail=True,
        methods=["patch", "post"],
        url_path=r"vendor-orders/(?P<sub_order_id>[^/.]+)/status",
    )
    def vendor_order_status(
        self,
        request: Request,
        pk: str | None = None,
        sub_order_id: str | None = None,
    ) -> Response:
        """PATCH /api/v1/orders/{pk}/vendor-orders/{sub_order_id}/status/"""
        serializer = StatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            order = self._service.update_sub_order_status(
                str(pk),
                str(sub_order_id),
                request.user,
                StatusUpdateDTO(**serializer.validated_data),
            )
        except ORDER_ERRORS as exc:
            return order_error_response(exc)
        return Response(OrderSerializer(order).data)

    # ------------------------------------------------------------------
    # Cancel (dedicated action)
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post", "patch"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/cancel/

        Cancels the order and releases its reserved stock.
        """
        serializer = CancelOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            order = self._service.cancel_order(
                str(pk), serializer.validated_data["reason"], request.user
            )
        except ORDER_ERRORS as exc:
            return order_error_response(exc)
        return Response(OrderSerializer(order).data)
