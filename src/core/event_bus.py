"""
Street Legacy - Event Bus

Per-component listener registry. Each component owns one bus and
notifies the game-state layer through it.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

Listener = Callable[..., Any]
Disposer = Callable[[], None]

WILDCARD = "*"


class EventBus:
    """Named events with ordered, isolated listener delivery.

    Listeners for an event run in registration order. An exception raised
    by one listener is logged and the remaining listeners still run.
    """

    def __init__(self, name: str = "events") -> None:
        self._name = name
        self._listeners: dict[str, list[Listener]] = {}

    def on(self, event: str, listener: Listener) -> Disposer:
        """Register a listener and return a function that removes it."""
        listeners = self._listeners.setdefault(event, [])
        if listener not in listeners:
            listeners.append(listener)
        return lambda: self.off(event, listener)

    def off(self, event: str, listener: Listener) -> None:
        """Remove a listener. Unknown listeners are ignored."""
        listeners = self._listeners.get(event)
        if not listeners:
            return
        try:
            listeners.remove(listener)
        except ValueError:
            return
        if not listeners:
            del self._listeners[event]

    def once(self, event: str, listener: Listener) -> Disposer:
        """Register a listener that removes itself after the first call."""

        def wrapper(*args: Any) -> None:
            self.off(event, wrapper)
            listener(*args)

        return self.on(event, wrapper)

    def emit(self, event: str, *args: Any) -> int:
        """Deliver an event to its listeners.

        Returns:
            Number of listeners that completed without raising.
        """
        # Snapshot so listeners may unsubscribe while being called
        listeners = list(self._listeners.get(event, ()))
        delivered = 0
        for listener in listeners:
            try:
                listener(*args)
                delivered += 1
            except Exception:
                logger.exception("[%s] Error in %s listener", self._name, event)
        return delivered

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def clear(self) -> None:
        self._listeners.clear()
