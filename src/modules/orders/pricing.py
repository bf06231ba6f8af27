"""Order pricing.

Plain functions over ``Decimal``; nothing here touches the database, so
totals are only ever computed where the assembler calls them.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from django.conf import settings

CENT = Decimal("0.01")


def quantize(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(unit_price: Decimal, quantity: int) -> Decimal:
    return quantize(unit_price * quantity)


def delivery_fee_for(subtotal: Decimal) -> Decimal:
    """Flat fee below the free-delivery threshold, zero at or above it."""
    if subtotal >= settings.ORDER_FREE_DELIVERY_THRESHOLD:
        return Decimal("0.00")
    return quantize(settings.ORDER_FLAT_DELIVERY_FEE)


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    delivery_fee: Decimal
    total: Decimal


def compute_totals(line_totals: Iterable[Decimal], delivery_fee: Decimal) -> OrderTotals:
    subtotal = quantize(sum(line_totals, Decimal("0.00")))
    delivery_fee = quantize(delivery_fee)
    return OrderTotals(
        subtotal=subtotal,
        delivery_fee=delivery_fee,
        total=subtotal + delivery_fee,
    )
