# =============================================================================
# practice_core/offline/notifications.py
# User-facing sync notifications
# =============================================================================
"""
Notifications shown after queueing or syncing.

Streamlit can only draw from a thread that owns a ScriptRunContext. Replay
passes started by a reconnect, a wake message or the periodic loop run on
background threads, so StreamlitNotifier holds their messages until the next
script run calls flush().
"""

from __future__ import annotations
import threading
from collections import deque
from typing import Deque, List, Tuple
import logging

import streamlit as st
from streamlit.runtime.scriptrunner import get_script_run_ctx

logger = logging.getLogger(__name__)


class SyncNotifier:
    """Sink for the short messages shown after queueing or syncing."""

    def info(self, message: str) -> None:
        raise NotImplementedError

    def success(self, message: str) -> None:
        raise NotImplementedError

    def error(self, message: str) -> None:
        raise NotImplementedError

    def flush(self) -> int:
        """Show messages held back from background threads. Returns how many."""
        return 0


class LoggingNotifier(SyncNotifier):
    """Writes notifications to the log (headless workers, scripts)."""

    def info(self, message: str) -> None:
        logger.info(message)

    def success(self, message: str) -> None:
        logger.info(message)

    def error(self, message: str) -> None:
        logger.warning(message)


class StreamlitNotifier(SyncNotifier):
    """
    Shows notifications as Streamlit toasts.

    Messages raised outside a script run are kept (newest max_pending) and
    shown by flush() on the next rerun.
    """

    ICONS = {"info": "💾", "success": "✅", "error": "⚠️"}

    def __init__(self, max_pending: int = 20):
        self._pending: Deque[Tuple[str, str]] = deque(maxlen=max_pending)
        self._lock = threading.Lock()

    @property
    def pending(self) -> List[Tuple[str, str]]:
        with self._lock:
            return list(self._pending)

    def info(self, message: str) -> None:
        self._show("info", message)

    def success(self, message: str) -> None:
        self._show("success", message)

    def error(self, message: str) -> None:
        self._show("error", message)

    def _show(self, level: str, message: str) -> None:
        if get_script_run_ctx(suppress_warning=True) is None:
            with self._lock:
                self._pending.append((level, message))
            logger.debug(f"Held {level} notification for the next rerun: {message}")
            return
        st.toast(message, icon=self.ICONS[level])

    def flush(self) -> int:
        if get_script_run_ctx(suppress_warning=True) is None:
            return 0
        with self._lock:
            messages = list(self._pending)
            self._pending.clear()
        for level, message in messages:
            st.toast(message, icon=self.ICONS[level])
        return len(messages)


def plural(count: int, noun: str = "change") -> str:
    return f"{count} {noun}{'s' if count != 1 else ''}"
