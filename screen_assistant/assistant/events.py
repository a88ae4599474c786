"""
Event channel between the orchestrator and the presentation layer.

Subscribers register per event name and get back an unsubscribe
callable. A failing subscriber is logged and skipped; it never stops
delivery to the others or the pipeline that emitted the event.
"""

import logging
import threading
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

CAPTURE_STARTED = "capture-started"
ANALYZING = "analyzing"
CAPTURE_COMPLETE = "capture-complete"
AUTO_CAPTURE_STATUS = "auto-capture-status"

EVENT_NAMES = (CAPTURE_STARTED, ANALYZING, CAPTURE_COMPLETE, AUTO_CAPTURE_STATUS)

Listener = Callable[[Optional[dict]], Any]


class EventEmitter:
    """Synchronous observer registry keyed by event name."""

    def __init__(self):
        self._listeners: dict[str, list[Listener]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event: str, listener: Listener) -> Callable[[], None]:
        """
        Register a listener.

        Args:
            event: One of EVENT_NAMES
            listener: Called with the event payload (None for payload-less events)

        Returns:
            Callable that removes the listener again
        """
        if event not in EVENT_NAMES:
            raise ValueError(f"Unknown event: {event}")

        with self._lock:
            self._listeners.setdefault(event, []).append(listener)

        def unsubscribe():
            with self._lock:
                listeners = self._listeners.get(event, [])
                if listener in listeners:
                    listeners.remove(listener)

        return unsubscribe

    def emit(self, event: str, payload: Optional[dict] = None):
        with self._lock:
            listeners = list(self._listeners.get(event, []))

        for listener in listeners:
            try:
                listener(payload)
            except Exception:
                logger.exception(f"Listener for '{event}' failed")

    def listener_count(self, event: str) -> int:
        with self._lock:
            return len(self._listeners.get(event, []))
