"""
Minimal publish/subscribe used for agent and auth notifications.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

Listener = Callable[[Any], Any]


class EventEmitter:
    """
    Registry of listener callbacks per event name.

    Listeners are invoked synchronously, in registration order. A listener
    that raises is logged and does not prevent the remaining listeners
    from running.
    """

    def __init__(self) -> None:
        self._listeners: Dict[str, List[Listener]] = {}

    def on(self, event: str, listener: Listener) -> Callable[[], None]:
        """
        Register a listener.

        Returns:
            A callable that unregisters the listener
        """
        self._listeners.setdefault(event, []).append(listener)
        return lambda: self.off(event, listener)

    def off(self, event: str, listener: Listener) -> None:
        """Unregister a listener. Unknown listeners are ignored."""
        listeners = self._listeners.get(event)
        if listeners and listener in listeners:
            listeners.remove(listener)

    def emit(self, event: str, payload: Any = None) -> int:
        """
        Invoke every listener registered for event.

        Returns:
            Number of listeners invoked
        """
        listeners = list(self._listeners.get(event, ()))
        for listener in listeners:
            try:
                listener(payload)
            except Exception as e:
                logger.error(f"Listener for '{event}' raised {type(e).__name__}: {e}")
        return len(listeners)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def clear(self) -> None:
        self._listeners.clear()
