# =============================================================================
# practice_core/offline/wake_channel.py
# In-process message channel for background sync requests
# =============================================================================
"""
WakeChannel - lets a background job ask the sync controller to replay.

A scheduler, a webhook handler or a test posts a message; subscribers
receive it on the posting thread.
"""

from __future__ import annotations
import threading
from typing import Any, Callable, Dict, List
import logging

from practice_core.offline.models import Clock, current_millis

logger = logging.getLogger(__name__)

SYNC_REQUESTED = "SYNC_REQUESTED"

Message = Dict[str, Any]
MessageHandler = Callable[[Message], None]


class WakeChannel:
    """Publish/subscribe channel carrying dict messages with a "type" key."""

    def __init__(self, clock: Clock = current_millis):
        self._clock = clock
        self._handlers: List[MessageHandler] = []
        self._lock = threading.Lock()

    def subscribe(self, handler: MessageHandler) -> Callable[[], None]:
        """
        Register a message handler.

        Returns:
            Function that removes the handler
        """
        with self._lock:
            self._handlers.append(handler)

        def unsubscribe() -> None:
            with self._lock:
                if handler in self._handlers:
                    self._handlers.remove(handler)

        return unsubscribe

    def post(self, message: Message) -> int:
        """
        Deliver a message to every subscriber.

        Returns:
            Number of handlers that received it
        """
        with self._lock:
            handlers = list(self._handlers)

        for handler in handlers:
            try:
                handler(message)
            except Exception as e:
                logger.error(f"Error handling {message.get('type')} message: {e}")
        return len(handlers)

    def request_sync(self) -> int:
        """Post a SYNC_REQUESTED message."""
        return self.post({"type": SYNC_REQUESTED, "timestamp": self._clock()})
