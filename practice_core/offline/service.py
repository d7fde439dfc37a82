# =============================================================================
# practice_core/offline/service.py
# Wiring of the offline sync object graph
# =============================================================================
"""
Builds the store, queue, connectivity observer and controller as one graph.

Nothing here is a module-level singleton: create_offline_sync() returns a new
controller every time. Streamlit apps call get_offline_sync(), which caches
one controller per server process with st.cache_resource.
"""

from __future__ import annotations
from typing import Callable, Optional
import logging

import streamlit as st

from practice_core.logging import setup_logging
from practice_core.offline.config import OfflineSyncConfig, load_config
from practice_core.offline.connection_manager import ConnectionManager, socket_probe
from practice_core.offline.local_database import LocalDatabase
from practice_core.offline.models import Clock, current_millis
from practice_core.offline.notifications import StreamlitNotifier, SyncNotifier
from practice_core.offline.remote_apply import build_remote_apply
from practice_core.offline.sync_controller import SyncController
from practice_core.offline.sync_queue import RemoteApplyFn, SyncQueue
from practice_core.offline.wake_channel import WakeChannel

logger = logging.getLogger(__name__)


def create_offline_sync(
    config: Optional[OfflineSyncConfig] = None,
    remote_apply: Optional[RemoteApplyFn] = None,
    probe: Optional[Callable[[], bool]] = None,
    notifier: Optional[SyncNotifier] = None,
    wake_channel: Optional[WakeChannel] = None,
    clock: Optional[Clock] = None,
    start: bool = True,
    monitor_connection: bool = True,
) -> SyncController:
    """
    Create a fully wired SyncController.

    Args:
        config: Settings (default: load_config())
        remote_apply: Backend apply function (default: built from config)
        probe: Connectivity probe (default: TCP connect to the API host)
        notifier: Where user notifications go (default: log)
        wake_channel: Channel for SYNC_REQUESTED messages (default: new channel)
        clock: Millisecond clock for timestamps
        start: Whether to start the controller
        monitor_connection: Whether to start the connectivity monitor thread

    Returns:
        SyncController
    """
    config = config or load_config()
    clock = clock or current_millis

    store = LocalDatabase(config.db_path)
    store.initialize()

    queue = SyncQueue(
        store,
        remote_apply or build_remote_apply(config),
        clock=clock,
        last_sync_key=config.last_sync_key,
    )

    connection = ConnectionManager(
        probe=probe or socket_probe(config.api_base_url or config.supabase_url, timeout=config.request_timeout),
        check_interval_online=config.check_interval_online,
        check_interval_offline=config.check_interval_offline,
    )

    controller = SyncController(
        queue,
        store,
        connection,
        notifier=notifier,
        wake_channel=wake_channel or WakeChannel(clock=clock),
        config=config,
    )

    if start:
        connection.initialize(start_monitoring=monitor_connection)
        controller.start()

    return controller


@st.cache_resource
def get_offline_sync() -> SyncController:
    """
    Get the process-wide SyncController for the Streamlit app.

    Usage:
        from practice_core.offline import get_offline_sync

        sync = get_offline_sync()
        sync.queue_mutation("complaints", "insert", record)
    """
    config = load_config()
    setup_logging(log_to_file=config.log_to_file)
    return create_offline_sync(config, notifier=StreamlitNotifier())


def use_offline_sync() -> SyncController:
    """
    Page-level entry point: the shared controller, after showing any toasts
    that background sync passes raised since the last rerun.

    Usage:
        sync = use_offline_sync()
        st.caption(f"{sync.pending_count} changes waiting to sync")
    """
    controller = get_offline_sync()
    controller.flush_notifications()
    return controller
