# =============================================================================
# practice_core/offline/sync_queue.py
# Pending Mutation Queue and Replay
# =============================================================================
"""
SyncQueue - owns the pending mutation log and replays it against the backend.

Features:
- Durable enqueue through LocalDatabase (in-memory fallback when the store
  is unavailable)
- FIFO replay passes with per-item success/failure accounting
- Single-flight: concurrent callers share the pass that is already running
- Completion listeners with unsubscribe handles

Delivery is at-least-once. A mutation leaves the log only after the remote
apply function reports success for it; if the backend persisted a write but
the acknowledgement was lost, the same mutation is sent again on the next
pass. The remote apply function must therefore be safe to retry.
"""

from __future__ import annotations
import threading
import uuid
from concurrent.futures import Future
from dataclasses import replace
from typing import Any, Callable, List, Optional, Union
import logging

from practice_core.errors import MutationValidationError
from practice_core.logging import LogContext
from practice_core.offline.local_database import LocalDatabase, decode_payload, encode_payload
from practice_core.offline.models import (
    Clock,
    MutationOperation,
    QueuedMutation,
    SyncFailure,
    SyncResult,
    current_millis,
)

logger = logging.getLogger(__name__)


RemoteApplyFn = Callable[[str, str, Any], Optional[bool]]
SyncListener = Callable[[SyncResult], None]

LAST_SYNC_KEY = "lastSync"


def _coerce_operation(operation: Union[str, MutationOperation], table: str) -> MutationOperation:
    if isinstance(operation, MutationOperation):
        return operation
    if isinstance(operation, str):
        try:
            return MutationOperation(operation)
        except ValueError:
            pass
    raise MutationValidationError(
        f"Unknown operation {operation!r}; expected one of {MutationOperation.values()}",
        table=table,
        operation=str(operation),
    )


class SyncQueue:
    """
    Durable queue of writes made while the backend may be unreachable.

    Usage:
        queue = SyncQueue(store, remote_apply)
        queue.queue_mutation("tasks", "update", {"id": "t1", "status": "complete"})
        result = queue.sync_pending_mutations()
        print(result.synced, result.failed)
    """

    def __init__(
        self,
        store: LocalDatabase,
        remote_apply: RemoteApplyFn,
        clock: Clock = current_millis,
        last_sync_key: str = LAST_SYNC_KEY,
    ):
        self._store = store
        self._remote_apply = remote_apply
        self._clock = clock
        self.last_sync_key = last_sync_key

        self._listeners: List[SyncListener] = []
        self._listeners_lock = threading.Lock()

        # Mutations the store refused to persist; replayed live, lost on restart
        self._volatile: List[QueuedMutation] = []
        self._volatile_lock = threading.Lock()

        self._flight_lock = threading.Lock()
        self._in_flight: Optional[Future] = None

    @property
    def is_syncing(self) -> bool:
        """True while a replay pass is running."""
        return self._in_flight is not None

    # =========================================================================
    # ENQUEUE
    # =========================================================================

    def queue_mutation(
        self,
        table: str,
        operation: Union[str, MutationOperation],
        data: Any,
    ) -> QueuedMutation:
        """
        Record a write for later replay.

        Args:
            table: Logical table name (e.g. "tasks")
            operation: "insert", "update" or "delete"
            data: Payload handed verbatim to the remote apply function

        Returns:
            The queued mutation

        Raises:
            MutationValidationError: for a bad table, operation or payload
        """
        if not isinstance(table, str) or not table.strip():
            raise MutationValidationError(f"Table name must be a non-empty string, got {table!r}")
        op = _coerce_operation(operation, table)
        # Snapshot of the caller's data; later edits to it are not replayed
        payload_json = encode_payload(data)

        mutation = QueuedMutation(
            id=uuid.uuid4().hex,
            table=table,
            operation=op,
            payload=decode_payload(payload_json),
            enqueued_at=self._clock(),
        )

        if self._store.add_pending_mutation(mutation, payload_json):
            logger.debug(f"Queued {op.value} on {table} ({mutation.id})")
        else:
            with self._volatile_lock:
                self._volatile.append(mutation)
            logger.warning(f"Queued {op.value} on {table} in memory only; local store unavailable")

        return mutation

    # =========================================================================
    # INSPECTION
    # =========================================================================

    def get_pending_mutations(self) -> List[QueuedMutation]:
        """Snapshot of every pending mutation in enqueue order."""
        durable = self._store.get_pending_mutations()
        with self._volatile_lock:
            volatile = list(self._volatile)
        if not volatile:
            return durable
        # sorted() is stable, so durable rows keep their seq order on ties
        return sorted(durable + volatile, key=lambda m: m.enqueued_at)

    def get_pending_count(self) -> int:
        """Number of mutations not yet applied remotely."""
        with self._volatile_lock:
            volatile_count = len(self._volatile)
        return self._store.get_pending_count() + volatile_count

    # =========================================================================
    # REPLAY
    # =========================================================================

    def sync_pending_mutations(self) -> SyncResult:
        """
        Run one replay pass over the pending log.

        Only one pass runs at a time. A caller arriving while a pass is in
        flight waits for it and gets the same result instead of starting a
        second pass over the same rows.

        Returns:
            SyncResult with synced/failed counts
        """
        with self._flight_lock:
            in_flight = self._in_flight
            if in_flight is None:
                in_flight = Future()
                self._in_flight = in_flight
                owner = True
            else:
                owner = False

        if not owner:
            logger.debug("Sync already in progress, waiting for the running pass")
            return in_flight.result()

        try:
            result = self._run_pass()
        except BaseException as e:
            in_flight.set_exception(e)
            raise
        else:
            in_flight.set_result(result)
        finally:
            with self._flight_lock:
                self._in_flight = None

        self._notify_listeners(result)
        return result

    def _run_pass(self) -> SyncResult:
        mutations = self.get_pending_mutations()
        result = SyncResult(started_at=self._clock())

        if not mutations:
            result.finished_at = self._clock()
            return result

        with LogContext(logger, f"Replaying {len(mutations)} pending mutations"):
            for mutation in mutations:
                error = self._apply(mutation)
                if error is None:
                    self._discard(mutation)
                    result.synced += 1
                else:
                    self._record_failure(mutation, error)
                    result.failed += 1
                    result.errors.append(SyncFailure(
                        mutation_id=mutation.id,
                        table=mutation.table,
                        operation=mutation.operation.value,
                        error=error,
                    ))

        result.finished_at = self._clock()
        self._store.set_last_sync_time(self.last_sync_key, result.finished_at)
        logger.info(f"Sync complete: {result.synced} synced, {result.failed} failed")
        return result

    def _apply(self, mutation: QueuedMutation) -> Optional[str]:
        """Apply one mutation remotely; returns an error message on failure."""
        try:
            outcome = self._remote_apply(mutation.table, mutation.operation.value, mutation.payload)
        except Exception as e:
            logger.warning(f"Failed to sync mutation {mutation.id} ({mutation.operation.value} {mutation.table}): {e}")
            return str(e) or e.__class__.__name__
        if outcome is False:
            logger.warning(f"Remote apply rejected mutation {mutation.id}")
            return "Remote apply reported failure"
        return None

    def _discard(self, mutation: QueuedMutation) -> None:
        with self._volatile_lock:
            for i, queued in enumerate(self._volatile):
                if queued.id == mutation.id:
                    del self._volatile[i]
                    return
        self._store.remove_pending_mutation(mutation.id)

    def _record_failure(self, mutation: QueuedMutation, error: str) -> None:
        with self._volatile_lock:
            for i, queued in enumerate(self._volatile):
                if queued.id == mutation.id:
                    self._volatile[i] = replace(queued, attempts=queued.attempts + 1, last_error=error)
                    return
        self._store.record_failed_attempt(mutation.id, error, self._clock())

    def clear_all(self) -> None:
        """Drop pending mutations, cached snapshots and sync markers."""
        with self._volatile_lock:
            self._volatile.clear()
        self._store.clear_all()

    # =========================================================================
    # LISTENERS
    # =========================================================================

    def on_sync_complete(self, listener: SyncListener) -> Callable[[], None]:
        """
        Register a listener called with the SyncResult after each pass.

        Returns:
            Function that removes the listener
        """
        with self._listeners_lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._listeners_lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify_listeners(self, result: SyncResult) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(result)
            except Exception as e:
                logger.error(f"Error in sync listener: {e}")
