"""Push-event channel for squad-lite.

Core operations emit typed notifications once they complete. A transport
layer (WebSocket, SSE, ...) subscribes with :meth:`EventEmitter.on` and
forwards them; tests read :attr:`EventEmitter.history`.
"""

import logging
import threading
from collections import deque
from datetime import datetime
from enum import Enum
from typing import Any, Callable

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    AGENT_CREATED = "agent:created"
    AGENT_STATUS = "agent:status"
    AGENT_OUTPUT = "agent:output"
    AGENT_KILLED = "agent:killed"
    MESSAGE_NEW = "message:new"
    CHECKPOINT_NEW = "checkpoint:new"
    TASK_CREATED = "task:created"
    TASK_STATUS = "task:status"
    SANDBOX_EVENT = "sandbox:event"


class Event(BaseModel):
    """A single notification. ``data`` always carries an ISO ``timestamp``."""

    type: EventType
    data: dict[str, Any] = Field(default_factory=dict)


EventHandler = Callable[[Event], None]

WILDCARD = "*"


class EventEmitter:
    """Synchronous fan-out of events to registered handlers.

    Example:
        events = EventEmitter()
        events.on(EventType.TASK_STATUS, lambda e: print(e.data["status"]))
        events.emit(EventType.TASK_STATUS, taskId="...", status="completed")
    """

    def __init__(self, history_size: int = 1000):
        self._handlers: dict[str, list[EventHandler]] = {}
        self._history: deque[Event] = deque(maxlen=history_size)
        self._lock = threading.Lock()

    def on(self, event_type: EventType | str, handler: EventHandler) -> None:
        """Subscribe to an event type, or ``"*"`` for every event."""
        key = event_type.value if isinstance(event_type, EventType) else event_type
        with self._lock:
            self._handlers.setdefault(key, []).append(handler)

    def off(self, event_type: EventType | str, handler: EventHandler) -> None:
        key = event_type.value if isinstance(event_type, EventType) else event_type
        with self._lock:
            handlers = self._handlers.get(key, [])
            if handler in handlers:
                handlers.remove(handler)

    def emit(self, event_type: EventType, **data: Any) -> Event:
        data.setdefault("timestamp", datetime.now().isoformat())
        event = Event(type=event_type, data=data)

        with self._lock:
            self._history.append(event)
            handlers = list(self._handlers.get(event_type.value, []))
            handlers += self._handlers.get(WILDCARD, [])

        for handler in handlers:
            try:
                handler(event)
            except Exception:
                # A broken subscriber must not fail the operation that emitted
                logger.exception("Event handler failed for %s", event_type.value)
        return event

    def history(self, event_type: EventType | None = None) -> list[Event]:
        with self._lock:
            events = list(self._history)
        if event_type is not None:
            events = [e for e in events if e.type == event_type]
        return events

    def clear(self) -> None:
        with self._lock:
            self._history.clear()
