"""
Engine events for notification/UI collaborators. Handlers are plain callables
invoked synchronously on the event loop.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    OPPORTUNITY_FOUND = "opportunity-found"
    ORDER_PLACED = "order-placed"
    ORDER_FILLED = "order-filled"
    ORDER_EXPIRED = "order-expired"
    ORDER_CANCELLED = "order-cancelled"
    ORDER_RESUBMIT_REQUESTED = "order-resubmit-requested"
    POSITION_OPENED = "position-opened"
    POSITION_CLOSED = "position-closed"
    DAILY_LIMIT_REACHED = "daily-limit-reached"
    EMERGENCY_STOP = "emergency-stop"


@dataclass(frozen=True)
class EngineEvent:
    kind: EventKind
    at: datetime
    payload: dict[str, Any] = field(default_factory=dict)


EventHandler = Callable[[EngineEvent], None]


class EventBus:
    """Fan-out to subscribers. Keeps the last `history` events for inspection."""

    def __init__(self, history: int = 500) -> None:
        self._handlers: list[EventHandler] = []
        self._recent: deque[EngineEvent] = deque(maxlen=history)

    def subscribe(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    def emit(self, kind: EventKind, at: datetime, **payload: Any) -> EngineEvent:
        event = EngineEvent(kind=kind, at=at, payload=payload)
        self._recent.append(event)
        logger.debug("Event %s: %s", kind.value, payload)
        for handler in self._handlers:
            try:
                handler(event)
            except Exception:
                # A broken notifier must not take down the order loops
                logger.exception("Event handler failed for %s", kind.value)
        return event

    def recent(self, kind: EventKind | None = None) -> list[EngineEvent]:
        if kind is None:
            return list(self._recent)
        return [e for e in self._recent if e.kind == kind]
