# =============================================================================
# practice_core/offline/sync_controller.py
# Network-Aware Sync Controller
# =============================================================================
"""
SyncController - decides when the pending mutation log is replayed.

Replay is triggered by:
- an offline -> online transition reported by the ConnectionManager
- a manual trigger_sync() from the UI
- a SYNC_REQUESTED message on the WakeChannel
- the background loop, every auto_sync_interval seconds while online

State machine: IDLE -> SYNCING -> IDLE. A trigger that arrives while SYNCING
is ignored, and the controller always returns to IDLE, even when the replay
pass raises.
"""

from __future__ import annotations
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union
import logging

import pandas as pd

from practice_core.errors import MutationValidationError, SyncError, handle_error
from practice_core.offline.config import OfflineSyncConfig
from practice_core.offline.connection_manager import ConnectionManager, ConnectionState
from practice_core.offline.local_database import LocalDatabase
from practice_core.offline.models import (
    MutationOperation,
    QueuedMutation,
    SyncResult,
)
from practice_core.offline.notifications import LoggingNotifier, SyncNotifier, plural
from practice_core.offline.sync_queue import SyncQueue
from practice_core.offline.wake_channel import SYNC_REQUESTED, WakeChannel

logger = logging.getLogger(__name__)


class SyncPhase(Enum):
    """Controller phases."""
    IDLE = "idle"
    SYNCING = "syncing"


@dataclass
class SyncState:
    """State exposed to the presentation layer."""
    phase: SyncPhase = SyncPhase.IDLE
    is_online: bool = False
    pending_count: int = 0
    last_sync_time: Optional[int] = None
    last_result: Optional[SyncResult] = None
    last_error: Optional[str] = None

    @property
    def is_syncing(self) -> bool:
        return self.phase is SyncPhase.SYNCING


class SyncController:
    """
    Orchestrates replay of queued writes and exposes sync status.

    Usage:
        controller = SyncController(queue, store, connection)
        controller.start()
        controller.queue_mutation("tasks", "update", {"id": "t1", "status": "complete"})
        print(controller.pending_count, controller.is_syncing)
    """

    def __init__(
        self,
        queue: SyncQueue,
        store: LocalDatabase,
        connection: ConnectionManager,
        notifier: Optional[SyncNotifier] = None,
        wake_channel: Optional[WakeChannel] = None,
        config: Optional[OfflineSyncConfig] = None,
    ):
        self._queue = queue
        self._store = store
        self._connection = connection
        self._notifier = notifier or LoggingNotifier()
        self._wake_channel = wake_channel
        self._config = config or OfflineSyncConfig()
        self._state = SyncState()
        self._phase_lock = threading.Lock()
        self._callbacks: List[Callable[[SyncState], None]] = []
        self._unsubscribers: List[Callable[[], None]] = []

        self._poll_thread: Optional[threading.Thread] = None
        self._stop_polling = threading.Event()
        self._last_auto_sync = time.monotonic()
        self._started = False

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def queue(self) -> SyncQueue:
        return self._queue

    @property
    def connection(self) -> ConnectionManager:
        return self._connection

    @property
    def wake_channel(self) -> Optional[WakeChannel]:
        """Channel a background job can post SYNC_REQUESTED messages to."""
        return self._wake_channel

    @property
    def is_online(self) -> bool:
        return self._connection.is_online

    @property
    def pending_count(self) -> int:
        return self._state.pending_count

    @property
    def is_syncing(self) -> bool:
        return self._state.is_syncing

    @property
    def last_sync_time(self) -> Optional[int]:
        """Completion time (ms since epoch) of the last pass that synced something."""
        return self._state.last_sync_time

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self, background: bool = True) -> None:
        """
        Load initial state and subscribe to connectivity, queue and wake events.

        Args:
            background: Whether to start the polling thread
        """
        if self._started:
            return

        self._store.initialize()
        self._state.is_online = self._connection.is_online
        self.refresh_pending_count()
        self.refresh_last_sync_time()

        self._connection.register_callback(self._on_connection_change)
        self._unsubscribers.append(
            lambda: self._connection.unregister_callback(self._on_connection_change)
        )
        self._unsubscribers.append(self._queue.on_sync_complete(self._on_sync_complete))
        if self._wake_channel is not None:
            self._unsubscribers.append(self._wake_channel.subscribe(self._on_wake_message))

        self._last_auto_sync = time.monotonic()
        if background:
            self._start_polling()

        self._started = True
        logger.info(f"SyncController started. Online: {self.is_online}, pending: {self.pending_count}")

    def stop(self) -> None:
        """Stop polling and drop every subscription."""
        self._stop_polling.set()
        if self._poll_thread is not None:
            self._poll_thread.join(timeout=10)
            self._poll_thread = None

        for unsubscribe in reversed(self._unsubscribers):
            unsubscribe()
        self._unsubscribers.clear()
        self._started = False
        logger.info("SyncController stopped")

    def cleanup(self) -> None:
        """Stop the controller, the connection monitor and close the store."""
        try:
            self.stop()
            self._connection.stop_monitoring()
            self._store.close()
        except Exception as e:
            logger.error(f"Error during cleanup: {e}")

    def _start_polling(self) -> None:
        if self._poll_thread is not None and self._poll_thread.is_alive():
            return
        self._stop_polling.clear()
        self._poll_thread = threading.Thread(
            target=self._polling_loop,
            daemon=True,
            name="SyncController"
        )
        self._poll_thread.start()

    def _polling_loop(self) -> None:
        while not self._stop_polling.wait(timeout=self._config.poll_interval):
            try:
                self.poll()
            except Exception as e:
                logger.error(f"Error in sync polling: {e}")

    def poll(self) -> None:
        """One background tick: refresh the pending count, auto-sync when due."""
        self.refresh_pending_count()

        interval = self._config.auto_sync_interval
        if interval <= 0 or not self.is_online or self._state.pending_count == 0:
            return
        now = time.monotonic()
        if now - self._last_auto_sync < interval:
            return
        self._last_auto_sync = now
        logger.debug("Periodic sync due")
        self.trigger_sync()

    # =========================================================================
    # EVENT HANDLERS
    # =========================================================================

    def _on_connection_change(self, state: ConnectionState) -> None:
        self._state.is_online = state.is_online
        self._notify_callbacks()
        if state.reconnected:
            logger.info("Connection restored, triggering sync")
            self.trigger_sync()

    def _on_wake_message(self, message: Dict[str, Any]) -> None:
        if message.get("type") == SYNC_REQUESTED:
            logger.info("Sync requested by background job")
            self.trigger_sync()

    def _on_sync_complete(self, result: SyncResult) -> None:
        self.refresh_pending_count()
        if result.synced > 0:
            self.refresh_last_sync_time()

    # =========================================================================
    # SYNC
    # =========================================================================

    def trigger_sync(self) -> Optional[SyncResult]:
        """
        Replay pending mutations now.

        Returns:
            SyncResult of the pass, or None when offline, already syncing,
            or when the pass itself failed
        """
        if not self.is_online:
            logger.debug("Cannot sync: offline")
            return None

        with self._phase_lock:
            if self._state.phase is SyncPhase.SYNCING:
                logger.debug("Sync trigger ignored: already syncing")
                return None
            self._state.phase = SyncPhase.SYNCING
            self._state.last_error = None
        self._notify_callbacks()

        result: Optional[SyncResult] = None
        try:
            result = self._queue.sync_pending_mutations()
        except Exception as e:
            handle_error(
                SyncError(f"Replay pass failed: {e}", pending=self._state.pending_count),
                show_user_message=False,
            )
            self._state.last_error = str(e)
            self._notify_user("error", "Sync failed. Will retry automatically.")
        else:
            self._state.last_result = result
            if result.synced > 0:
                self.refresh_last_sync_time()
            self._announce(result)
        finally:
            self.refresh_pending_count(notify=False)
            with self._phase_lock:
                self._state.phase = SyncPhase.IDLE
            self._notify_callbacks()

        return result

    def _announce(self, result: SyncResult) -> None:
        if result.synced > 0:
            self._notify_user("success", f"Synced {plural(result.synced)}")
        if result.failed > 0:
            self._notify_user("error", f"{plural(result.failed)} failed to sync, will retry")

    # =========================================================================
    # WRITES AND CACHE
    # =========================================================================

    def queue_mutation(
        self,
        table: str,
        operation: Union[str, MutationOperation],
        data: Any,
    ) -> QueuedMutation:
        """
        Queue a write; replays immediately when online and sync_on_queue is set.

        Raises:
            MutationValidationError: for a bad table, operation or payload
        """
        try:
            mutation = self._queue.queue_mutation(table, operation, data)
        except MutationValidationError:
            self._notify_user("error", "Failed to save changes offline")
            raise

        self.refresh_pending_count()

        if not self.is_online:
            self._notify_user("info", "Changes saved offline. Will sync when connection is restored.")
        elif self._config.sync_on_queue:
            self.trigger_sync()

        return mutation

    def cache_data(self, table: str, rows: Union[List[Any], pd.DataFrame]) -> None:
        """Store the latest rows read for a table."""
        self._store.set_cached_data(table, rows)

    def get_cached_data(self, table: str) -> List[Any]:
        """Last cached rows for a table (empty when none)."""
        return self._store.get_cached_data(table)

    def get_cached_dataframe(self, table: str) -> pd.DataFrame:
        return self._store.get_cached_dataframe(table)

    def for_table(self, table: str) -> TableSync:
        """Handle bound to one table, for pages that only touch one collection."""
        return TableSync(self, table)

    # =========================================================================
    # STATE REFRESH & CALLBACKS
    # =========================================================================

    def refresh_pending_count(self, notify: bool = True) -> int:
        count = self._queue.get_pending_count()
        changed = count != self._state.pending_count
        self._state.pending_count = count
        if changed and notify:
            self._notify_callbacks()
        return count

    def refresh_last_sync_time(self) -> Optional[int]:
        self._state.last_sync_time = self._store.get_last_sync_time(self._queue.last_sync_key)
        return self._state.last_sync_time

    def register_callback(self, callback: Callable[[SyncState], None]) -> None:
        """Register a callback for sync state changes."""
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: Callable[[SyncState], None]) -> None:
        """Remove a registered callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _notify_callbacks(self) -> None:
        for callback in list(self._callbacks):
            try:
                callback(self._state)
            except Exception as e:
                logger.error(f"Error in sync callback: {e}")

    def _notify_user(self, level: str, message: str) -> None:
        try:
            getattr(self._notifier, level)(message)
        except Exception as e:
            logger.error(f"Error showing sync notification: {e}")

    def flush_notifications(self) -> int:
        """Show notifications raised by background passes; call once per script run."""
        try:
            return self._notifier.flush()
        except Exception as e:
            logger.error(f"Error showing held sync notifications: {e}")
            return 0

    def get_status_display(self) -> Dict[str, Any]:
        """Get sync status for UI display."""
        last_result = self._state.last_result
        return {
            "is_online": self.is_online,
            "phase": self._state.phase.value,
            "is_syncing": self.is_syncing,
            "pending_count": self.pending_count,
            "last_sync_time": self.last_sync_time,
            "last_result": last_result.to_dict() if last_result else None,
            "last_error": self._state.last_error,
            "connection": self._connection.get_status_display(),
            "store": self._store.get_stats(),
        }


class TableSync:
    """
    SyncController view for a single table.

    Usage:
        tasks = controller.for_table("tasks")
        tasks.queue_mutation("insert", {"title": "Fire drill", "practice_id": "p1"})
        rows = tasks.get_cached_data()
    """

    def __init__(self, controller: SyncController, table: str):
        self._controller = controller
        self.table = table

    @property
    def is_online(self) -> bool:
        return self._controller.is_online

    @property
    def pending_count(self) -> int:
        return self._controller.pending_count

    @property
    def is_syncing(self) -> bool:
        return self._controller.is_syncing

    @property
    def last_sync_time(self) -> Optional[int]:
        return self._controller.last_sync_time

    def queue_mutation(self, operation: Union[str, MutationOperation], data: Any) -> QueuedMutation:
        return self._controller.queue_mutation(self.table, operation, data)

    def trigger_sync(self) -> Optional[SyncResult]:
        return self._controller.trigger_sync()

    def cache_data(self, rows: Union[List[Any], pd.DataFrame]) -> None:
        self._controller.cache_data(self.table, rows)

    def get_cached_data(self) -> List[Any]:
        return self._controller.get_cached_data(self.table)
