"""In-process event bus: subscription lists keyed by event name."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from typing import Any

EventHandler = Callable[[dict[str, Any]], None]

TURN_STATE = "turn_state"
TURN_COMPLETED = "turn_completed"
CONVERSATION_CREATED = "conversation_created"
CONVERSATION_CLEARED = "conversation_cleared"

logger = logging.getLogger("nlq.events")


class EventBus:
    """Dispatches events to subscribers synchronously, in subscription order."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_name: str, handler: EventHandler) -> None:
        """Register a callback for an event."""
        self._handlers[event_name].append(handler)

    def unsubscribe(self, event_name: str, handler: EventHandler) -> bool:
        """Remove a callback; returns False when it was not subscribed."""
        handlers = self._handlers.get(event_name, [])
        if handler not in handlers:
            return False
        handlers.remove(handler)
        return True

    def emit(self, event_name: str, payload: dict[str, Any]) -> None:
        """Emit an event to all subscribers."""
        handlers = list(self._handlers.get(event_name, []))
        logger.debug("Emitting %s to %d handler(s)", event_name, len(handlers))
        for handler in handlers:
            handler(payload)
