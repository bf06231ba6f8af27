from __future__ import annotations

from decimal import Decimal
from itertools import count

import pytest
from django.contrib.auth import get_user_model
from django.core.cache import cache
from rest_framework.test import APIClient

from modules.orders.dtos import CartLineDTO, CreateOrderDTO, DeliveryAddressDTO
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.payments.gateway import reset_gateway, set_gateway
from modules.payments.gateway.fake import FakeGateway
from modules.products.models import Product, ProductStatus, ProductUnit
from modules.products.repositories.django_repository import ProductDjangoRepository

User = get_user_model()

_sku_counter = count(1)


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture(autouse=True)
def _clear_cache():
    """Throttle counters live in the cache; start every test from zero."""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture(autouse=True)
def fake_gateway():
    gateway = FakeGateway()
    set_gateway(gateway)
    yield gateway
    reset_gateway()


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@pytest.fixture()
def buyer():
    return User.objects.create_user(username="buyer", password="testpass123")


@pytest.fixture()
def other_buyer():
    return User.objects.create_user(username="other-buyer", password="testpass123")


@pytest.fixture()
def vendor_a():
    return User.objects.create_user(
        username="green-acres", password="testpass123", first_name="Green Acres"
    )


@pytest.fixture()
def vendor_b():
    return User.objects.create_user(
        username="hill-orchard", password="testpass123", first_name="Hill Orchard"
    )


@pytest.fixture()
def admin_user():
    return User.objects.create_user(
        username="ops-admin", password="testpass123", is_staff=True
    )


@pytest.fixture()
def client_for():
    """Build an APIClient force-authenticated as *user*."""

    def _client_for(user) -> APIClient:
        client = APIClient()
        client.force_authenticate(user=user)
        return client

    return _client_for


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_product():
    def _make_product(
        vendor,
        name: str = "Tomatoes",
        price: str = "40.00",
        quantity: int = 100,
        status: str = ProductStatus.ACTIVE,
        unit: str = ProductUnit.KG,
    ) -> Product:
        return Product.objects.create(
            vendor=vendor,
            vendor_name=vendor.first_name or vendor.username,
            sku=f"SKU-{next(_sku_counter):05d}",
            name=name,
            unit=unit,
            price=Decimal(price),
            quantity=quantity,
            status=status,
        )

    return _make_product


@pytest.fixture()
def tomatoes(make_product, vendor_a):
    return make_product(vendor_a, name="Tomatoes", price="40.00", quantity=50)


@pytest.fixture()
def spinach(make_product, vendor_a):
    return make_product(vendor_a, name="Spinach", price="25.00", quantity=30)


@pytest.fixture()
def apples(make_product, vendor_b):
    return make_product(vendor_b, name="Shimla Apples", price="180.00", quantity=20)


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


@pytest.fixture()
def delivery_address() -> dict:
    return {
        "full_name": "Asha Menon",
        "phone": "9876543210",
        "address": "12 Market Road",
        "city": "Kochi",
        "state": "Kerala",
        "pincode": "682001",
    }


@pytest.fixture()
def order_service():
    return OrderService(
        order_repository=OrderDjangoRepository(),
        product_repository=ProductDjangoRepository(),
    )


@pytest.fixture()
def place_order(order_service, buyer, delivery_address):
    """Place an order through the service: ``place_order((product, qty), ...)``."""

    def _place_order(*lines, user=None, payment_method="cod", idempotency_key=None):
        dto = CreateOrderDTO(
            buyer_id=(user or buyer).id,
            items=[CartLineDTO(product_id=p.id, quantity=q) for p, q in lines],
            delivery_address=DeliveryAddressDTO(**delivery_address),
            payment_method=payment_method,
            idempotency_key=idempotency_key,
        )
        return order_service.create_order(dto)

    return _place_order
