"""
EVENT SYSTEM - How the refresh cycle talks to its presenters

The core never writes to a presenter directly. It publishes events and any
number of subscribers (a terminal printer, a web front end, a test) react:
- Refresh lifecycle (started, committed, suppressed, discarded, failed)
- Market switches
- Missing artifacts and configuration fallbacks

Each coordinator owns its own EventBus; there is no process-wide bus.
"""

import asyncio
import uuid
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional

from loguru import logger


class EventType(str, Enum):
    """All engine event types."""

    # === REFRESH CYCLE ===
    REFRESH_STARTED = "refresh_started"
    REFRESH_COMMITTED = "refresh_committed"
    REFRESH_SUPPRESSED = "refresh_suppressed"
    REFRESH_DISCARDED = "refresh_discarded"
    REFRESH_FAILED = "refresh_failed"

    # === MARKET ===
    MARKET_SWITCHED = "market_switched"

    # === DATA ===
    ARTIFACT_MISSING = "artifact_missing"
    CONFIG_FALLBACK = "config_fallback"


@dataclass
class Event:
    """Something that happened, with free-form details in `payload`."""
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    event_type: EventType = EventType.REFRESH_STARTED
    timestamp: datetime = field(default_factory=datetime.utcnow)
    source: str = "unknown"
    payload: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.payload is None:
            self.payload = {}


@dataclass
class RefreshEvent(Event):
    """Event emitted along a refresh cycle."""
    cycle: int = 0
    market: str = ""


EventHandler = Callable[[Event], None]
AsyncEventHandler = Callable[[Event], Awaitable[None]]


class EventBus:
    """
    Pub/sub bus between the refresh cycle and its presenters.

    Sync handlers run inside publish(); async handlers run concurrently inside
    publish_async(). A failing handler is logged and never affects the other
    handlers or the publisher.
    """

    def __init__(self, max_history_size: int = 1000):
        self._handlers: Dict[EventType, List[EventHandler]] = defaultdict(list)
        self._async_handlers: Dict[EventType, List[AsyncEventHandler]] = defaultdict(list)
        self._global_handlers: List[EventHandler] = []
        self._history: Deque[Event] = deque(maxlen=max_history_size)

    # ===== Subscriptions =====

    def subscribe(self, event_type: EventType, handler: EventHandler) -> None:
        self._handlers[event_type].append(handler)
        logger.debug(f"Handler subscribed to {event_type.name}")

    def subscribe_async(self, event_type: EventType, handler: AsyncEventHandler) -> None:
        self._async_handlers[event_type].append(handler)
        logger.debug(f"Async handler subscribed to {event_type.name}")

    def subscribe_all(self, handler: EventHandler) -> None:
        """Receive every event regardless of type."""
        self._global_handlers.append(handler)

    def unsubscribe(self, event_type: EventType, handler: EventHandler) -> None:
        handlers = self._handlers[event_type]
        if handler in handlers:
            handlers.remove(handler)

    # ===== Publishing =====

    def publish(self, event: Event) -> None:
        """Record the event and run the sync handlers."""
        self._history.append(event)

        for handler in [*self._global_handlers, *self._handlers[event.event_type]]:
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Handler error for {event.event_type.name}: {e}")

    async def publish_async(self, event: Event) -> None:
        """publish(), then await every async handler of the event type."""
        self.publish(event)

        handlers = self._async_handlers[event.event_type]
        if not handlers:
            return

        results = await asyncio.gather(*(h(event) for h in handlers), return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error(f"Async handler error for {event.event_type.name}: {result}")

    # ===== History =====

    def get_recent_events(
        self,
        event_type: Optional[EventType] = None,
        limit: int = 100
    ) -> List[Event]:
        """Most recent events, oldest first, optionally of one type."""
        events = [e for e in self._history if event_type is None or e.event_type == event_type]
        return events[-limit:]

    def clear_history(self) -> None:
        self._history.clear()
