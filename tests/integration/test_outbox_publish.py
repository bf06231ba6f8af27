"""Integration tests for the outbox publisher task."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from modules.core.models import OUTBOX_MAX_RETRIES, EventStatus, OutboxEvent
from modules.core.tasks import publish_outbox_events
from modules.orders.events import OrderCreated
from shared.infrastructure.bus import event_bus

pytestmark = pytest.mark.integration


class RecordingHandler:
    def __init__(self) -> None:
        self.events = []

    def handle(self, event) -> None:
        self.events.append(event)


@pytest.fixture()
def recorder():
    handler = RecordingHandler()
    event_bus.subscribe(OrderCreated, handler)
    yield handler
    event_bus.unsubscribe(OrderCreated, handler)


def test_pending_events_are_published(recorder, place_order, tomatoes):
    order = place_order((tomatoes, 1))

    result = publish_outbox_events.delay().result

    assert result == {"published": 1, "failed": 0}
    row = OutboxEvent.objects.get(event_type="OrderCreated")
    assert row.status == EventStatus.PUBLISHED
    assert row.processed_at is not None
    [event] = recorder.events
    assert isinstance(event, OrderCreated)
    assert event.aggregate_id == order.id
    assert event.order_number == order.order_number


def test_published_events_are_not_sent_twice(place_order, tomatoes):
    place_order((tomatoes, 1))
    publish_outbox_events()

    assert publish_outbox_events() == {"published": 0, "failed": 0}


def test_failing_handler_marks_row_failed(place_order, tomatoes):
    place_order((tomatoes, 1))

    with patch.object(event_bus, "publish", side_effect=RuntimeError("handler down")):
        result = publish_outbox_events()

    assert result == {"published": 0, "failed": 1}
    row = OutboxEvent.objects.get(event_type="OrderCreated")
    assert row.status == EventStatus.FAILED
    assert row.retry_count == 1
    assert row.error_message == "handler down"


def test_failed_rows_retry_until_ceiling(place_order, tomatoes):
    place_order((tomatoes, 1))

    with patch.object(event_bus, "publish", side_effect=RuntimeError("handler down")):
        for _ in range(OUTBOX_MAX_RETRIES + 2):
            publish_outbox_events()

    row = OutboxEvent.objects.get(event_type="OrderCreated")
    assert row.retry_count == OUTBOX_MAX_RETRIES
    assert not OutboxEvent.objects.deliverable().exists()


def test_failed_row_recovers(place_order, tomatoes):
    place_order((tomatoes, 1))
    with patch.object(event_bus, "publish", side_effect=RuntimeError("handler down")):
        publish_outbox_events()

    result = publish_outbox_events()

    assert result == {"published": 1, "failed": 0}
    assert OutboxEvent.objects.get(event_type="OrderCreated").status == EventStatus.PUBLISHED
