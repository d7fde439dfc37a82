# =============================================================================
# tests/unit/test_sync_queue.py
# Unit Tests for SyncQueue
# =============================================================================

import threading

import pytest

from practice_core.errors import MutationValidationError
from practice_core.offline.local_database import LocalDatabase
from practice_core.offline.models import MutationOperation
from practice_core.offline.sync_queue import SyncQueue


class TestQueueMutation:
    """Test enqueue validation and durability"""

    def test_queue_builds_mutation(self, queue, clock):
        mutation = queue.queue_mutation("tasks", "update", {"id": "t1", "status": "complete"})

        assert mutation.table == "tasks"
        assert mutation.operation is MutationOperation.UPDATE
        assert mutation.payload == {"id": "t1", "status": "complete"}
        assert mutation.attempts == 0
        assert mutation.enqueued_at == clock.now
        assert queue.get_pending_count() == 1

    def test_ids_are_unique(self, queue):
        first = queue.queue_mutation("tasks", "insert", {"title": "a"})
        second = queue.queue_mutation("tasks", "insert", {"title": "a"})

        assert first.id != second.id

    def test_enum_operation_is_accepted(self, queue):
        mutation = queue.queue_mutation("tasks", MutationOperation.DELETE, {"id": "t1"})

        assert mutation.operation is MutationOperation.DELETE

    @pytest.mark.parametrize("operation", ["upsert", "INSERT", "", None, 3])
    def test_unknown_operation_raises(self, queue, operation):
        with pytest.raises(MutationValidationError):
            queue.queue_mutation("tasks", operation, {"id": "t1"})
        assert queue.get_pending_count() == 0

    @pytest.mark.parametrize("table", ["", "   ", None, 42])
    def test_bad_table_raises(self, queue, table):
        with pytest.raises(MutationValidationError):
            queue.queue_mutation(table, "insert", {"id": "t1"})

    def test_unserializable_payload_raises(self, queue):
        with pytest.raises(MutationValidationError):
            queue.queue_mutation("tasks", "insert", {"handler": lambda: None})
        assert queue.get_pending_count() == 0

    def test_returned_payload_is_a_copy(self, queue):
        data = {"id": "t1", "tags": ["fire"]}

        mutation = queue.queue_mutation("tasks", "insert", data)
        data["tags"].append("ipc")

        assert mutation.payload == {"id": "t1", "tags": ["fire"]}
        assert queue.get_pending_mutations()[0].payload == {"id": "t1", "tags": ["fire"]}

    def test_queue_does_not_replay(self, queue, remote_apply):
        """Enqueue only records; replay is the controller's decision"""
        queue.queue_mutation("tasks", "insert", {"id": "t1"})

        assert remote_apply.calls == []

    def test_mutation_survives_restart(self, db_path, remote_apply):
        """A queued mutation is still pending after the process restarts"""
        store = LocalDatabase(db_path)
        SyncQueue(store, remote_apply).queue_mutation("complaints", "insert", {"id": "c1"})
        store.close()

        reopened = LocalDatabase(db_path)
        pending = SyncQueue(reopened, remote_apply).get_pending_mutations()
        reopened.close()

        assert [(m.table, m.payload) for m in pending] == [("complaints", {"id": "c1"})]


class TestReplay:
    """Test replay passes"""

    def test_empty_log(self, queue, remote_apply):
        result = queue.sync_pending_mutations()

        assert (result.synced, result.failed) == (0, 0)
        assert result.success
        assert remote_apply.calls == []

    def test_partial_failure_keeps_only_failed_mutation(self, queue, remote_apply):
        """Failure of m2 does not stop m3 and only m2 stays pending"""
        remote_apply.fail_ids = {"m2"}
        for mid in ("m1", "m2", "m3"):
            queue.queue_mutation("tasks", "update", {"id": mid})

        result = queue.sync_pending_mutations()

        assert (result.synced, result.failed) == (2, 1)
        pending = queue.get_pending_mutations()
        assert [m.payload["id"] for m in pending] == ["m2"]
        assert pending[0].attempts == 1
        assert "m2" in pending[0].last_error
        assert result.errors[0].mutation_id == pending[0].id

    def test_failed_mutation_is_retried_next_pass(self, queue, remote_apply):
        remote_apply.fail_ids = {"m1"}
        queue.queue_mutation("tasks", "update", {"id": "m1"})
        queue.sync_pending_mutations()

        remote_apply.fail_ids = set()
        result = queue.sync_pending_mutations()

        assert result.synced == 1
        assert queue.get_pending_count() == 0
        assert len(remote_apply.calls) == 2

    def test_false_return_counts_as_failure(self, store, clock):
        queue = SyncQueue(store, lambda table, operation, payload: False, clock=clock)
        queue.queue_mutation("tasks", "insert", {"id": "t1"})

        result = queue.sync_pending_mutations()

        assert (result.synced, result.failed) == (0, 1)
        assert queue.get_pending_count() == 1

    def test_fifo_order_across_tables(self, queue, remote_apply):
        """Remote apply sees mutations in exact enqueue order"""
        enqueued = [
            ("tasks", "insert", {"id": "a"}),
            ("complaints", "insert", {"id": "b"}),
            ("tasks", "update", {"id": "a", "status": "done"}),
            ("complaints", "delete", {"id": "b"}),
            ("tasks", "insert", {"id": "c"}),
            ("complaints", "insert", {"id": "d"}),
        ]
        for table, operation, payload in enqueued:
            queue.queue_mutation(table, operation, payload)

        queue.sync_pending_mutations()

        assert remote_apply.calls == enqueued

    def test_pass_records_last_sync_time(self, queue, store, clock):
        queue.queue_mutation("tasks", "insert", {"id": "t1"})

        result = queue.sync_pending_mutations()

        assert store.get_last_sync_time("lastSync") == result.finished_at
        assert result.finished_at >= result.started_at

    def test_mutations_queued_during_pass_wait_for_next_pass(self, queue, remote_apply):
        """Items enqueued while a pass runs are not part of that pass"""
        queue.queue_mutation("tasks", "insert", {"id": "first"})
        remote_apply.gate = threading.Event()

        worker = threading.Thread(target=queue.sync_pending_mutations)
        worker.start()
        assert remote_apply.entered.wait(timeout=5)
        queue.queue_mutation("tasks", "insert", {"id": "second"})
        remote_apply.gate.set()
        worker.join(timeout=5)

        assert [payload["id"] for _, _, payload in remote_apply.calls] == ["first"]
        assert [m.payload["id"] for m in queue.get_pending_mutations()] == ["second"]

    def test_concurrent_calls_share_one_pass(self, queue, remote_apply):
        """A second caller during a slow pass does not replay anything twice"""
        for mid in ("m1", "m2", "m3"):
            queue.queue_mutation("tasks", "update", {"id": mid})
        remote_apply.gate = threading.Event()
        results = []
        second_entered = threading.Event()

        def run(entered=None):
            if entered is not None:
                entered.set()
            results.append(queue.sync_pending_mutations())

        first = threading.Thread(target=run)
        second = threading.Thread(target=run, kwargs={"entered": second_entered})
        first.start()
        assert remote_apply.entered.wait(timeout=5)
        assert queue.is_syncing
        second.start()
        assert second_entered.wait(timeout=5)
        second.join(timeout=0.2)
        assert second.is_alive()
        remote_apply.gate.set()
        first.join(timeout=5)
        second.join(timeout=5)

        assert len(remote_apply.calls) == 3
        assert queue.get_pending_count() == 0
        assert len(results) == 2
        assert results[0] is results[1]
        assert not queue.is_syncing


class TestListeners:

    def test_listeners_receive_result(self, queue):
        received_a, received_b = [], []
        queue.on_sync_complete(received_a.append)
        queue.on_sync_complete(received_b.append)
        queue.queue_mutation("tasks", "insert", {"id": "t1"})

        result = queue.sync_pending_mutations()

        assert received_a == [result]
        assert received_b == [result]

    def test_unsubscribe(self, queue):
        received = []
        unsubscribe = queue.on_sync_complete(received.append)

        unsubscribe()
        queue.sync_pending_mutations()

        assert received == []

    def test_failing_listener_does_not_block_others(self, queue):
        received = []

        def broken(result):
            raise RuntimeError("badge crashed")

        queue.on_sync_complete(broken)
        queue.on_sync_complete(received.append)

        queue.sync_pending_mutations()

        assert len(received) == 1


class TestDegradedMode:
    """Test queueing when the local store is unavailable"""

    @pytest.fixture
    def broken_store(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        database = LocalDatabase(blocker / "offline.db")
        database.initialize()
        return database

    def test_mutations_are_kept_in_memory(self, broken_store, remote_apply, clock):
        queue = SyncQueue(broken_store, remote_apply, clock=clock)

        queue.queue_mutation("tasks", "insert", {"id": "t1"})
        queue.queue_mutation("tasks", "insert", {"id": "t2"})

        assert queue.get_pending_count() == 2

    def test_in_memory_mutations_are_replayed(self, broken_store, remote_apply, clock):
        queue = SyncQueue(broken_store, remote_apply, clock=clock)
        remote_apply.fail_ids = {"t2"}
        queue.queue_mutation("tasks", "insert", {"id": "t1"})
        queue.queue_mutation("tasks", "insert", {"id": "t2"})

        result = queue.sync_pending_mutations()

        assert (result.synced, result.failed) == (1, 1)
        (remaining,) = queue.get_pending_mutations()
        assert remaining.payload == {"id": "t2"}
        assert remaining.attempts == 1

    def test_in_memory_payload_is_a_snapshot(self, broken_store, remote_apply, clock):
        """Editing the caller's dict after enqueue does not change what is replayed"""
        queue = SyncQueue(broken_store, remote_apply, clock=clock)
        data = {"id": "t1", "status": "complete"}

        queue.queue_mutation("tasks", "update", data)
        data["status"] = "draft"
        queue.sync_pending_mutations()

        assert remote_apply.calls == [("tasks", "update", {"id": "t1", "status": "complete"})]


def test_clear_all_drops_pending(queue):
    queue.queue_mutation("tasks", "insert", {"id": "t1"})

    queue.clear_all()

    assert queue.get_pending_count() == 0
