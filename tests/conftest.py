# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import threading
from typing import Any, List, Optional, Set, Tuple

import pytest

from practice_core.offline.config import OfflineSyncConfig
from practice_core.offline.connection_manager import ConnectionManager
from practice_core.offline.local_database import LocalDatabase
from practice_core.offline.notifications import SyncNotifier
from practice_core.offline.sync_controller import SyncController
from practice_core.offline.sync_queue import SyncQueue
from practice_core.offline.wake_channel import WakeChannel


# =============================================================================
# TEST DOUBLES
# =============================================================================

class ManualClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = 1_700_000_000_000, step: int = 1):
        self.now = start
        self.step = step

    def __call__(self) -> int:
        self.now += self.step
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeRemoteApply:
    """
    Records every call; fails for payloads whose "id" is in fail_ids.

    Set `gate` to a threading.Event to block each call until it is set.
    """

    def __init__(self, fail_ids: Optional[Set[Any]] = None):
        self.calls: List[Tuple[str, str, Any]] = []
        self.fail_ids = set(fail_ids or ())
        self.gate: Optional[threading.Event] = None
        self.entered = threading.Event()
        self._lock = threading.Lock()

    def __call__(self, table: str, operation: str, payload: Any) -> bool:
        with self._lock:
            self.calls.append((table, operation, payload))
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if isinstance(payload, dict) and payload.get("id") in self.fail_ids:
            raise ConnectionError(f"backend unreachable for {payload['id']}")
        return True


class RecordingNotifier(SyncNotifier):
    """Collects (level, message) pairs instead of showing toasts."""

    def __init__(self):
        self.messages: List[Tuple[str, str]] = []

    def info(self, message: str) -> None:
        self.messages.append(("info", message))

    def success(self, message: str) -> None:
        self.messages.append(("success", message))

    def error(self, message: str) -> None:
        self.messages.append(("error", message))

    def levels(self) -> List[str]:
        return [level for level, _ in self.messages]


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def db_path(tmp_path):
    """Path for a throwaway SQLite store"""
    return tmp_path / "local_data" / "offline.db"


@pytest.fixture
def store(db_path):
    """Initialized LocalDatabase on a temp file"""
    database = LocalDatabase(db_path)
    database.initialize()
    yield database
    database.close()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def remote_apply():
    return FakeRemoteApply()


@pytest.fixture
def queue(store, remote_apply, clock):
    return SyncQueue(store, remote_apply, clock=clock)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def connection():
    """ConnectionManager driven by set_online(); starts offline"""
    manager = ConnectionManager(probe=lambda: False)
    manager.initialize(start_monitoring=False)
    return manager


@pytest.fixture
def wake_channel(clock):
    return WakeChannel(clock=clock)


@pytest.fixture
def sync_config(db_path):
    return OfflineSyncConfig(db_path=str(db_path), auto_sync_interval=0, log_to_file=False)


@pytest.fixture
def controller(queue, store, connection, notifier, wake_channel, sync_config):
    """Started SyncController without the polling thread"""
    ctrl = SyncController(
        queue,
        store,
        connection,
        notifier=notifier,
        wake_channel=wake_channel,
        config=sync_config,
    )
    ctrl.start(background=False)
    yield ctrl
    ctrl.stop()
