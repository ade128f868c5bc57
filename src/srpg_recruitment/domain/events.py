"""Publish/subscribe channel for recruitment notifications.

The engine only ever needs "emit a named event with a payload".  UI and
telemetry layers subscribe to the events they care about.

Usage:
    bus = EventBus()
    bus.on(RecruitmentEvent.NPC_DEFEATED, handler)
    bus.emit(RecruitmentEvent.NPC_DEFEATED, unit_id="enemy-1")

In deferred mode events are queued and delivered, in emission order, by
:meth:`EventBus.flush`.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)


class RecruitmentEvent(StrEnum):
    """Named events emitted by the engine."""

    INITIALIZED = "recruitment-initialized"
    ELIGIBILITY_CHECKED = "recruitment-eligibility-checked"
    CONVERTED_TO_NPC = "character-converted-to-npc"
    NPC_DAMAGED = "npc-damaged"
    NPC_DEFEATED = "npc-defeated"
    RECRUITMENT_COMPLETED = "recruitment-completed"
    RECRUITMENT_FAILED = "recruitment-failed"
    STAGE_COMPLETED = "stage-recruitment-completed"
    CHARACTER_LOST = "recruited-character-lost"


@dataclass(slots=True)
class EngineEvent:
    """Event payload delivered to subscribers."""

    type: RecruitmentEvent
    data: dict[str, Any] = field(default_factory=dict)
    sequence: int = 0

    def __str__(self) -> str:
        return f"[{self.type.value}] {self.data}"


EventHandler = Callable[[EngineEvent], None]


class EventBus:
    """Synchronous event bus with an optional deferred delivery queue.

    A failing handler is logged and skipped; it never breaks delivery to the
    remaining handlers or propagates into the caller.
    """

    def __init__(self, *, deferred: bool = False, history_limit: int = 100) -> None:
        self._listeners: dict[RecruitmentEvent, list[EventHandler]] = {}
        self._pending: deque[EngineEvent] = deque()
        self._history: deque[EngineEvent] = deque(maxlen=history_limit)
        self._sequence = 0
        self.deferred = deferred

    def on(self, event_type: RecruitmentEvent, handler: EventHandler) -> None:
        """Subscribe ``handler`` to ``event_type``."""

        handlers = self._listeners.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)

    def off(self, event_type: RecruitmentEvent, handler: EventHandler) -> None:
        """Remove a subscription if present."""

        handlers = self._listeners.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, event_type: RecruitmentEvent, **data: Any) -> EngineEvent:
        """Publish an event now, or queue it when the bus is deferred."""

        self._sequence += 1
        event = EngineEvent(type=event_type, data=data, sequence=self._sequence)
        self._history.append(event)
        if self.deferred:
            self._pending.append(event)
        else:
            # Anything still queued goes first so delivery order matches emission order.
            self.flush()
            self._deliver(event)
        return event

    def flush(self, max_events: int | None = None) -> int:
        """Deliver queued events in order; returns how many were delivered."""

        delivered = 0
        while self._pending and (max_events is None or delivered < max_events):
            self._deliver(self._pending.popleft())
            delivered += 1
        return delivered

    def _deliver(self, event: EngineEvent) -> None:
        for handler in list(self._listeners.get(event.type, [])):
            try:
                handler(event)
            except Exception:
                logger.exception("event handler failed for %s", event.type.value)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def history(self, event_type: RecruitmentEvent | None = None) -> list[EngineEvent]:
        """Recent events, optionally filtered by type."""

        if event_type is None:
            return list(self._history)
        return [e for e in self._history if e.type == event_type]

    def listener_count(self, event_type: RecruitmentEvent) -> int:
        return len(self._listeners.get(event_type, []))

    def clear(self) -> None:
        """Drop all subscriptions and queued events."""

        self._listeners.clear()
        self._pending.clear()
