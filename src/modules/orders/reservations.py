"""Inventory reservation.

A reservation holds stock for one checkout.  It is written in its own
transaction, so it survives a failure of the order transaction that
follows and can be found again.

Lifecycle::

    held ──commit()──> committed ──release()──> released
      │
      └─ expired, swept by release_expired() ──> released

Each line is claimed with a conditional state update before the product
row is touched, so releasing or fulfilling a line twice changes stock
once.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Iterable, List, Optional, Sequence
from uuid import UUID

import structlog
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from modules.orders.constants import ReservationLineState, ReservationState
from modules.orders.exceptions import (
    CartProblem,
    CartValidationFailed,
    InsufficientStock,
    OrphanedReservation,
    ProductNotFound,
    ProductUnavailable,
)
from modules.orders.models import StockReservation, StockReservationLine

if TYPE_CHECKING:
    from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ReservationRequest:
    product_id: UUID
    quantity: int


class InventoryReserver:
    """Holds, commits, fulfils and releases stock for checkouts."""

    def __init__(self, product_repository: IProductRepository) -> None:
        self._product_repo = product_repository

    # ------------------------------------------------------------------
    # Reserve
    # ------------------------------------------------------------------

    def reserve(self, requests: Sequence[ReservationRequest]) -> StockReservation:
        """Hold stock for every request, or for none of them.

        Lines are attempted in product-id order so concurrent checkouts
        touch rows in the same order.  Every line is attempted even after
        a failure so the caller learns about all shortages at once; the
        rollback of the enclosing transaction undoes the lines that did
        succeed.

        Raises:
            CartValidationFailed: one problem per line that could not be
                held: ``InsufficientStock``, or ``ProductUnavailable`` /
                ``ProductNotFound`` when the product left the catalogue
                after validation.
        """
        ordered = sorted(requests, key=lambda r: str(r.product_id))
        ttl = timedelta(seconds=settings.STOCK_RESERVATION_TTL_SECONDS)

        with transaction.atomic():
            reservation = StockReservation.objects.create(
                state=ReservationState.HELD,
                expires_at=timezone.now() + ttl,
            )
            shortages: List[CartProblem] = []
            for request in ordered:
                if self._product_repo.reserve_stock(request.product_id, request.quantity):
                    StockReservationLine.objects.create(
                        reservation=reservation,
                        product_id=request.product_id,
                        quantity=request.quantity,
                    )
                    continue
                snapshot = self._product_repo.get_snapshot(request.product_id)
                if snapshot is None:
                    shortages.append(ProductNotFound(request.product_id, request.quantity))
                elif not snapshot.active:
                    shortages.append(
                        ProductUnavailable(request.product_id, request.quantity)
                    )
                else:
                    shortages.append(
                        InsufficientStock(
                            request.product_id,
                            request.quantity,
                            snapshot.available_quantity,
                        )
                    )

            if shortages:
                logger.info(
                    "reservation.rejected",
                    shortages=[s.as_dict() for s in shortages],
                )
                raise CartValidationFailed(shortages)

        logger.info(
            "reservation.held",
            reservation_id=str(reservation.id),
            line_count=len(ordered),
            expires_at=reservation.expires_at.isoformat(),
        )
        return reservation

    # ------------------------------------------------------------------
    # Commit (order stored)
    # ------------------------------------------------------------------

    def commit(self, reservation_id: UUID) -> None:
        """Mark a held reservation as owned by a stored order.

        Must run inside the order transaction.

        Raises:
            OrphanedReservation: the reservation was already released.
        """
        claimed = StockReservation.objects.filter(
            id=reservation_id, state=ReservationState.HELD
        ).update(
            state=ReservationState.COMMITTED,
            committed_at=timezone.now(),
            updated_at=timezone.now(),
        )
        if not claimed:
            logger.error("reservation.commit_lost", reservation_id=str(reservation_id))
            raise OrphanedReservation(
                f"Reservation {reservation_id} was released before the order was stored."
            )
        logger.info("reservation.committed", reservation_id=str(reservation_id))

    # ------------------------------------------------------------------
    # Release / fulfil
    # ------------------------------------------------------------------

    @transaction.atomic
    def release(
        self,
        reservation_id: UUID,
        product_ids: Optional[Iterable[UUID]] = None,
    ) -> int:
        """Return held stock.  Safe to call any number of times.

        With *product_ids* only those lines are released (a cancelled
        vendor sub-order); otherwise the whole reservation is closed.
        Returns the number of lines released by this call.
        """
        if product_ids is None:
            StockReservation.objects.filter(
                id=reservation_id,
                state__in=[ReservationState.HELD, ReservationState.COMMITTED],
            ).update(
                state=ReservationState.RELEASED,
                released_at=timezone.now(),
                updated_at=timezone.now(),
            )

        released = 0
        for line in self._open_lines(reservation_id, product_ids):
            if not self._claim(line, ReservationLineState.RELEASED):
                continue
            self._product_repo.release_stock(line.product_id, line.quantity)
            released += 1

        logger.info(
            "reservation.released",
            reservation_id=str(reservation_id),
            released_lines=released,
        )
        return released

    @transaction.atomic
    def fulfil(self, reservation_id: UUID, product_ids: Iterable[UUID]) -> int:
        """Consume held stock for delivered lines.  Idempotent per line."""
        fulfilled = 0
        for line in self._open_lines(reservation_id, product_ids):
            if not self._claim(line, ReservationLineState.FULFILLED):
                continue
            self._product_repo.commit_stock(line.product_id, line.quantity)
            fulfilled += 1

        logger.info(
            "reservation.fulfilled",
            reservation_id=str(reservation_id),
            fulfilled_lines=fulfilled,
        )
        return fulfilled

    # ------------------------------------------------------------------
    # Orphan sweep
    # ------------------------------------------------------------------

    def release_expired(self, now: Optional[datetime] = None) -> int:
        """Release held reservations whose checkout never finished."""
        now = now or timezone.now()
        expired_ids = list(
            StockReservation.objects.filter(
                state=ReservationState.HELD, expires_at__lte=now
            ).values_list("id", flat=True)
        )

        swept = 0
        for reservation_id in expired_ids:
            with transaction.atomic():
                claimed = StockReservation.objects.filter(
                    id=reservation_id, state=ReservationState.HELD
                ).update(
                    state=ReservationState.RELEASED,
                    released_at=now,
                    updated_at=now,
                )
                if not claimed:
                    continue
                lines = self.release(reservation_id)
            swept += 1
            logger.warning(
                "reservation.orphan_released",
                reservation_id=str(reservation_id),
                released_lines=lines,
            )

        if swept:
            logger.info("reservation.sweep_completed", released=swept)
        return swept

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _open_lines(
        reservation_id: UUID, product_ids: Optional[Iterable[UUID]]
    ) -> List[StockReservationLine]:
        queryset = StockReservationLine.objects.filter(
            reservation_id=reservation_id,
            state=ReservationLineState.RESERVED,
        )
        if product_ids is not None:
            queryset = queryset.filter(product_id__in=list(product_ids))
        return list(queryset.order_by("product_id"))

    @staticmethod
    def _claim(line: StockReservationLine, target: str) -> bool:
        return bool(
            StockReservationLine.objects.filter(
                id=line.id, state=ReservationLineState.RESERVED
            ).update(state=target, updated_at=timezone.now())
        )
