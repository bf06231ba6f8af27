"""Unit tests for OrderAssembler (pricing + vendor split)."""

from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

import pytest

from modules.orders.assembly import OrderAssembler
from modules.orders.dtos import CartLineDTO, CreateOrderDTO, DeliveryAddressDTO
from modules.products.dtos import ProductSnapshot

pytestmark = pytest.mark.unit


def _snapshot(vendor_id: int, price: str, name: str = "Produce") -> ProductSnapshot:
    return ProductSnapshot(
        product_id=uuid4(),
        name=name,
        unit="kg",
        unit_price=Decimal(price),
        available_quantity=100,
        vendor_id=vendor_id,
        vendor_name=f"Vendor {vendor_id}",
        active=True,
    )


@pytest.fixture()
def build(delivery_address):
    def _build(*lines):
        snapshots = {snapshot.product_id: snapshot for snapshot, _ in lines}
        dto = CreateOrderDTO(
            buyer_id=42,
            items=[CartLineDTO(product_id=s.product_id, quantity=q) for s, q in lines],
            delivery_address=DeliveryAddressDTO(**delivery_address),
            notes="Leave at the gate",
        )
        return OrderAssembler().build(dto, snapshots)

    return _build


def test_prices_come_from_catalog_snapshot(build):
    tomatoes = _snapshot(1, "40.00", "Tomatoes")

    draft = build((tomatoes, 3))

    line = draft.lines[0]
    assert line.unit_price == Decimal("40.00")
    assert line.line_total == Decimal("120.00")
    assert line.name == "Tomatoes"
    assert line.vendor_name == "Vendor 1"


def test_small_order_pays_delivery_fee(build):
    draft = build((_snapshot(1, "40.00"), 3))

    assert draft.totals.subtotal == Decimal("120.00")
    assert draft.totals.delivery_fee == Decimal("50.00")
    assert draft.totals.total == Decimal("170.00")


def test_large_order_ships_free(build):
    draft = build((_snapshot(1, "180.00"), 3))

    assert draft.totals.subtotal == Decimal("540.00")
    assert draft.totals.delivery_fee == Decimal("0.00")
    assert draft.totals.total == Decimal("540.00")


def test_one_sub_order_per_vendor_in_first_seen_order(build):
    a1, b1, a2 = _snapshot(1, "10.00"), _snapshot(2, "20.00"), _snapshot(1, "5.00")

    draft = build((b1, 1), (a1, 2), (a2, 4))

    assert [s.vendor_id for s in draft.sub_orders] == [2, 1]
    assert [line.product_id for line in draft.sub_orders[1].lines] == [
        a1.product_id,
        a2.product_id,
    ]
    assert draft.sub_orders[1].subtotal == Decimal("40.00")
    assert draft.sub_orders[0].subtotal == Decimal("20.00")


def test_sub_order_subtotals_add_up_to_order_subtotal(build):
    draft = build(
        (_snapshot(1, "12.50"), 3),
        (_snapshot(2, "99.99"), 1),
        (_snapshot(3, "0.90"), 250),
    )

    assert sum(s.subtotal for s in draft.sub_orders) == draft.totals.subtotal


def test_positions_follow_cart_order(build):
    draft = build((_snapshot(2, "1.00"), 1), (_snapshot(1, "1.00"), 1))

    assert [line.position for line in draft.lines] == [0, 1]


def test_snapshot_of_address_and_notes(build, delivery_address):
    draft = build((_snapshot(1, "1.00"), 1))

    assert draft.delivery_address["city"] == delivery_address["city"]
    assert draft.delivery_address["landmark"] == ""
    assert draft.notes == "Leave at the gate"
    assert draft.currency == "INR"
    assert draft.expected_delivery is not None
