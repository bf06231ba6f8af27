"""Integration tests for InventoryReserver.

Covers:
- All-or-nothing reservation across lines.
- Idempotent release and fulfil (stock touched once per line).
- Partial release for one vendor's products.
- Expiry sweep of held reservations whose order never persisted.
"""

from __future__ import annotations

import pytest
from django.core.management import call_command
from freezegun import freeze_time

from modules.orders.constants import ReservationLineState, ReservationState
from modules.orders.exceptions import CartValidationFailed, OrphanedReservation
from modules.orders.reservations import InventoryReserver, ReservationRequest
from modules.orders.tasks import release_expired_reservations
from modules.products.repositories.django_repository import ProductDjangoRepository

pytestmark = pytest.mark.integration


@pytest.fixture()
def reserver():
    return InventoryReserver(ProductDjangoRepository())


def _requests(*lines):
    return [ReservationRequest(product.id, quantity) for product, quantity in lines]


class TestReserve:
    def test_holds_every_line(self, reserver, tomatoes, apples):
        reservation = reserver.reserve(_requests((tomatoes, 3), (apples, 2)))

        assert reservation.state == ReservationState.HELD
        assert reservation.lines.count() == 2
        tomatoes.refresh_from_db()
        apples.refresh_from_db()
        assert tomatoes.reserved_quantity == 3
        assert apples.reserved_quantity == 2

    def test_one_short_line_holds_nothing(self, reserver, tomatoes, apples):
        with pytest.raises(CartValidationFailed) as exc_info:
            reserver.reserve(_requests((tomatoes, 3), (apples, 21)))

        assert len(exc_info.value.problems) == 1
        assert exc_info.value.problems[0].available == 20
        tomatoes.refresh_from_db()
        assert tomatoes.reserved_quantity == 0

    @freeze_time("2026-05-01 06:00:00")
    def test_expiry_uses_configured_ttl(self, reserver, tomatoes, settings):
        settings.STOCK_RESERVATION_TTL_SECONDS = 600

        reservation = reserver.reserve(_requests((tomatoes, 1)))

        assert (reservation.expires_at - reservation.created_at).total_seconds() == 600


class TestReleaseAndFulfil:
    def test_release_is_idempotent(self, reserver, tomatoes):
        reservation = reserver.reserve(_requests((tomatoes, 4)))

        assert reserver.release(reservation.id) == 1
        assert reserver.release(reservation.id) == 0

        tomatoes.refresh_from_db()
        assert tomatoes.reserved_quantity == 0
        reservation.refresh_from_db()
        assert reservation.state == ReservationState.RELEASED

    def test_partial_release_keeps_other_lines(self, reserver, tomatoes, apples):
        reservation = reserver.reserve(_requests((tomatoes, 4), (apples, 1)))

        reserver.release(reservation.id, [apples.id])

        apples.refresh_from_db()
        tomatoes.refresh_from_db()
        assert apples.reserved_quantity == 0
        assert tomatoes.reserved_quantity == 4
        reservation.refresh_from_db()
        assert reservation.state == ReservationState.HELD

    def test_fulfil_consumes_stock_once(self, reserver, tomatoes):
        reservation = reserver.reserve(_requests((tomatoes, 4)))

        assert reserver.fulfil(reservation.id, [tomatoes.id]) == 1
        assert reserver.fulfil(reservation.id, [tomatoes.id]) == 0

        tomatoes.refresh_from_db()
        assert tomatoes.quantity == 46
        assert tomatoes.reserved_quantity == 0

    def test_fulfilled_line_is_not_released(self, reserver, tomatoes):
        reservation = reserver.reserve(_requests((tomatoes, 4)))
        reserver.fulfil(reservation.id, [tomatoes.id])

        assert reserver.release(reservation.id) == 0

        line = reservation.lines.get()
        assert line.state == ReservationLineState.FULFILLED
        tomatoes.refresh_from_db()
        assert tomatoes.quantity == 46


class TestExpirySweep:
    def test_expired_held_reservation_is_released(self, reserver, tomatoes, settings):
        settings.STOCK_RESERVATION_TTL_SECONDS = 900
        with freeze_time("2026-05-01 06:00:00"):
            reservation = reserver.reserve(_requests((tomatoes, 5)))

        with freeze_time("2026-05-01 06:14:59"):
            assert reserver.release_expired() == 0

        with freeze_time("2026-05-01 06:15:00"):
            assert reserver.release_expired() == 1

        reservation.refresh_from_db()
        assert reservation.state == ReservationState.RELEASED
        tomatoes.refresh_from_db()
        assert tomatoes.reserved_quantity == 0

    def test_committed_reservation_is_never_swept(self, place_order, tomatoes, reserver):
        order = place_order((tomatoes, 5))

        with freeze_time("2099-01-01"):
            assert reserver.release_expired() == 0

        tomatoes.refresh_from_db()
        assert tomatoes.reserved_quantity == 5
        assert order.reservation.state == ReservationState.COMMITTED

    def test_commit_after_sweep_is_orphaned(self, reserver, tomatoes):
        with freeze_time("2026-05-01 06:00:00"):
            reservation = reserver.reserve(_requests((tomatoes, 5)))
        with freeze_time("2026-05-02 06:00:00"):
            reserver.release_expired()

        with pytest.raises(OrphanedReservation):
            reserver.commit(reservation.id)

    def test_sweep_task_and_command(self, reserver, tomatoes):
        with freeze_time("2026-05-01 06:00:00"):
            reserver.reserve(_requests((tomatoes, 1)))
            reserver.reserve(_requests((tomatoes, 2)))

        with freeze_time("2026-05-02 06:00:00"):
            assert release_expired_reservations.delay().result == 2
            call_command("release_expired_reservations")

        tomatoes.refresh_from_db()
        assert tomatoes.reserved_quantity == 0
