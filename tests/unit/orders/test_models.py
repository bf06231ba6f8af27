"""Unit tests for Order model helpers and the append-only lifecycle."""

from __future__ import annotations

import re

import pytest
from freezegun import freeze_time

from modules.orders.constants import ActorRole, OrderStatus
from modules.orders.exceptions import LifecycleEntryImmutable
from modules.orders.models import Order, OrderLifecycleEntry

pytestmark = pytest.mark.unit


class TestOrderNumber:
    @freeze_time("2026-03-14 09:30:00")
    def test_format_is_prefix_date_and_hex_suffix(self, settings):
        settings.ORDER_NUMBER_PREFIX = "ORD"
        number = Order.generate_order_number()
        assert re.fullmatch(r"ORD260314[0-9A-F]{8}", number)

    def test_generated_numbers_differ(self):
        numbers = {Order.generate_order_number() for _ in range(50)}
        assert len(numbers) == 50

    def test_assigned_on_first_save(self, place_order, tomatoes):
        order = place_order((tomatoes, 1))
        assert order.order_number.startswith("ORD")
        assert len(order.order_number) == 17

    def test_retries_on_collision(self, place_order, tomatoes, monkeypatch):
        existing = place_order((tomatoes, 1))
        candidates = iter([existing.order_number, "ORD260101ABCDEF01"])
        monkeypatch.setattr(
            Order, "generate_order_number", staticmethod(lambda: next(candidates))
        )

        order = place_order((tomatoes, 1))

        assert order.order_number == "ORD260101ABCDEF01"

    def test_gives_up_after_max_retries(self, place_order, tomatoes, buyer, monkeypatch):
        existing = place_order((tomatoes, 1))
        monkeypatch.setattr(
            Order, "generate_order_number", staticmethod(lambda: existing.order_number)
        )

        with pytest.raises(RuntimeError, match="unique order_number"):
            Order(buyer=buyer, delivery_address={}).save()


class TestOrderState:
    def test_terminal_and_cancelled_flags(self):
        order = Order(status=OrderStatus.CANCELLED)
        assert order.is_terminal
        assert order.is_cancelled

    def test_disputed_is_open(self):
        order = Order(status=OrderStatus.DISPUTED)
        assert not order.is_terminal


class TestLifecycleEntry:
    def test_first_entry_written_on_creation(self, place_order, tomatoes, buyer):
        order = place_order((tomatoes, 1))

        entries = list(order.lifecycle.all())

        assert len(entries) == 1
        assert entries[0].stage == OrderStatus.PENDING
        assert entries[0].previous_stage == ""
        assert entries[0].actor_id == buyer.id
        assert entries[0].actor_role == ActorRole.BUYER

    def test_entries_cannot_be_modified(self, place_order, tomatoes):
        entry = place_order((tomatoes, 1)).lifecycle.get()
        entry.notes = "rewritten"

        with pytest.raises(LifecycleEntryImmutable):
            entry.save()

    def test_entries_cannot_be_deleted(self, place_order, tomatoes):
        entry = place_order((tomatoes, 1)).lifecycle.get()

        with pytest.raises(LifecycleEntryImmutable):
            entry.delete()
        assert OrderLifecycleEntry.objects.filter(pk=entry.pk).exists()
