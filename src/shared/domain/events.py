"""Domain event primitives shared by the bounded contexts."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, Type
from uuid import UUID, uuid4

EVENT_TYPES: Dict[str, Type["DomainEvent"]] = {}


@dataclass(frozen=True)
class DomainEvent:
    """Base domain event (immutable).

    Subclasses register themselves by class name so events read back
    from the outbox can be rebuilt with :meth:`from_payload`.
    """

    topic: ClassVar[str] = "domain"

    aggregate_id: UUID
    event_id: UUID = field(default_factory=uuid4)
    occurred_on: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_name: str = field(init=False)

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        EVENT_TYPES[cls.__name__] = cls

    def __post_init__(self) -> None:
        object.__setattr__(self, "event_name", self.__class__.__name__)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "DomainEvent":
        """Rebuild an event from its JSON outbox payload."""
        event_cls = EVENT_TYPES.get(payload.get("event_name", ""), cls)
        init_fields = {f.name for f in fields(event_cls) if f.init}
        data = {key: value for key, value in payload.items() if key in init_fields}
        data["aggregate_id"] = UUID(str(data["aggregate_id"]))
        if "event_id" in data:
            data["event_id"] = UUID(str(data["event_id"]))
        if isinstance(data.get("occurred_on"), str):
            data["occurred_on"] = datetime.fromisoformat(data["occurred_on"])
        return event_cls(**data)


class DomainEventMixin:
    """Mixin for aggregate roots that collect domain events in memory."""

    _domain_events: list[DomainEvent]

    def add_domain_event(self, event: DomainEvent) -> None:
        if not hasattr(self, "_domain_events"):
            self._domain_events = []
        self._domain_events.append(event)

    def clear_domain_events(self) -> None:
        if hasattr(self, "_domain_events"):
            self._domain_events.clear()

    @property
    def domain_events(self) -> list[DomainEvent]:
        if not hasattr(self, "_domain_events"):
            self._domain_events = []
        return list(self._domain_events)
