"""Asynchronous tasks of the core module."""

from __future__ import annotations

import structlog
from celery import shared_task
from django.db import transaction

from modules.core.models import OutboxEvent
from shared.domain.events import DomainEvent
from shared.infrastructure.bus import event_bus

logger = structlog.get_logger(__name__)


@shared_task(name="core.debug_task")
def debug_task():
    """Diagnostic task confirming the worker is running."""
    logger.info("debug_task.executed", status="ok")
    return {"status": "ok", "message": "Celery is working"}


@shared_task(name="core.publish_outbox_events")
def publish_outbox_events(batch_size: int = 100) -> dict:
    """Drain deliverable outbox rows into the in-process event bus.

    Rows are locked while they are published so two workers never
    deliver the same event.  A handler failure marks only that event
    as failed; the rest of the batch still goes out.
    """
    published = 0
    failed = 0
    with transaction.atomic():
        batch = list(
            OutboxEvent.objects.deliverable()
            .select_for_update(skip_locked=True)
            .order_by("created_at")[:batch_size]
        )
        for outbox_event in batch:
            try:
                event_bus.publish(DomainEvent.from_payload(outbox_event.payload))
            except Exception as exc:  # noqa: BLE001 - recorded on the row for retry
                outbox_event.mark_as_failed(str(exc))
                failed += 1
                logger.warning(
                    "outbox.publish_failed",
                    outbox_event_id=str(outbox_event.id),
                    event_type=outbox_event.event_type,
                    error=str(exc),
                )
                continue
            outbox_event.mark_as_published()
            published += 1

    logger.info("outbox.drained", published=published, failed=failed)
    return {"published": published, "failed": failed}
