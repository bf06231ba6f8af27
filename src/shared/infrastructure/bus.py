"""In-memory event bus implementation."""

from __future__ import annotations

from typing import Dict, List, Type

import structlog

from shared.domain.bus import IEventBus, IEventHandler
from shared.domain.events import DomainEvent

logger = structlog.get_logger(__name__)


class InMemoryEventBus(IEventBus):
    """Process-local bus fed by ``core.publish_outbox_events``.

    A handler exception propagates to the publisher, which marks the
    outbox row failed so the event is retried on the next run.
    """

    def __init__(self) -> None:
        self._handlers: Dict[Type[DomainEvent], List[IEventHandler]] = {}

    def subscribe(self, event_class: Type[DomainEvent], handler: IEventHandler) -> None:
        handlers = self._handlers.setdefault(event_class, [])
        if handler not in handlers:
            handlers.append(handler)

    def unsubscribe(self, event_class: Type[DomainEvent], handler: IEventHandler) -> None:
        handlers = self._handlers.get(event_class, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, event: DomainEvent) -> None:
        handlers = list(self._handlers.get(type(event), []))
        for handler in handlers:
            handler.handle(event)
        logger.debug(
            "event_bus.published",
            event_name=event.event_name,
            handler_count=len(handlers),
        )


event_bus = InMemoryEventBus()
