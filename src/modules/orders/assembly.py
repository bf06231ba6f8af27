"""Order assembly: pricing and the per-vendor split.

``OrderAssembler.build`` turns a validated cart into an ``OrderDraft``,
an in-memory description of the order with every price already fixed.
The repository stores a draft as-is; no totals are recomputed on save.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Dict, List, Mapping, Optional
from uuid import UUID

from django.conf import settings
from django.utils import timezone

from modules.orders.pricing import (
    OrderTotals,
    compute_totals,
    delivery_fee_for,
    line_total,
)

if TYPE_CHECKING:
    from modules.orders.dtos import CreateOrderDTO
    from modules.products.dtos import ProductSnapshot


@dataclass(frozen=True)
class DraftLine:
    position: int
    product_id: UUID
    vendor_id: int
    vendor_name: str
    name: str
    unit: str
    unit_price: Decimal
    quantity: int
    line_total: Decimal


@dataclass
class DraftSubOrder:
    vendor_id: int
    vendor_name: str
    lines: List[DraftLine] = field(default_factory=list)

    @property
    def subtotal(self) -> Decimal:
        return sum((line.line_total for line in self.lines), Decimal("0.00"))


@dataclass
class OrderDraft:
    buyer_id: int
    delivery_address: Dict[str, str]
    payment_method: str
    currency: str
    notes: str
    idempotency_key: Optional[str]
    expected_delivery: datetime
    lines: List[DraftLine]
    sub_orders: List[DraftSubOrder]
    totals: OrderTotals


class OrderAssembler:
    def build(
        self,
        dto: CreateOrderDTO,
        snapshots: Mapping[UUID, ProductSnapshot],
    ) -> OrderDraft:
        """Price every line and group lines by vendor.

        Sub-orders appear in the order their vendor first appears in the
        cart; a vendor with no lines is never represented.
        """
        lines: List[DraftLine] = []
        for position, cart_line in enumerate(dto.items):
            snapshot = snapshots[cart_line.product_id]
            lines.append(
                DraftLine(
                    position=position,
                    product_id=snapshot.product_id,
                    vendor_id=snapshot.vendor_id,
                    vendor_name=snapshot.vendor_name,
                    name=snapshot.name,
                    unit=snapshot.unit,
                    unit_price=snapshot.unit_price,
                    quantity=cart_line.quantity,
                    line_total=line_total(snapshot.unit_price, cart_line.quantity),
                )
            )

        sub_orders = self.partition_by_vendor(lines)
        subtotal = sum((line.line_total for line in lines), Decimal("0.00"))
        totals = compute_totals(
            (line.line_total for line in lines), delivery_fee_for(subtotal)
        )

        return OrderDraft(
            buyer_id=dto.buyer_id,
            delivery_address=dto.delivery_address.model_dump(),
            payment_method=dto.payment_method,
            currency=settings.ORDER_CURRENCY,
            notes=dto.notes,
            idempotency_key=dto.idempotency_key,
            expected_delivery=timezone.now()
            + timedelta(days=settings.ORDER_EXPECTED_DELIVERY_DAYS),
            lines=lines,
            sub_orders=sub_orders,
            totals=totals,
        )

    @staticmethod
    def partition_by_vendor(lines: List[DraftLine]) -> List[DraftSubOrder]:
        groups: Dict[int, DraftSubOrder] = {}
        for line in lines:
            group = groups.get(line.vendor_id)
            if group is None:
                group = groups[line.vendor_id] = DraftSubOrder(
                    vendor_id=line.vendor_id, vendor_name=line.vendor_name
                )
            group.lines.append(line)
        return list(groups.values())
