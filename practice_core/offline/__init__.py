# =============================================================================
# practice_core/offline/__init__.py
# Offline-First Write Path for the Practice Compliance app
# =============================================================================
"""
Offline-First Write Path

Forms keep working when the surgery's connection drops. Writes go into a
durable local queue and are replayed against the practice API once the
connection returns.

Architecture:
------------
    UI page
      │ queue_mutation / trigger_sync / cache_data
      ▼
    SyncController ◄── ConnectionManager (offline -> online)
      │            ◄── WakeChannel (SYNC_REQUESTED)
      ▼
    SyncQueue ──────► remote apply (HTTP API or Supabase)
      │
      ▼
    LocalDatabase (SQLite: pending_mutations, cached_data, sync_metadata)

Delivery is at-least-once: a write whose acknowledgement was lost is sent
again on the next pass.

Usage:
------
from practice_core.offline import use_offline_sync

sync = use_offline_sync()
sync.queue_mutation("tasks", "update", {"id": "t1", "status": "complete", "practice_id": "p1"})

print(sync.is_online, sync.pending_count, sync.is_syncing, sync.last_sync_time)
"""

from practice_core.offline.models import (
    MutationOperation,
    QueuedMutation,
    SyncFailure,
    SyncResult,
    current_millis,
)

from practice_core.offline.local_database import (
    LocalDatabase,
    encode_payload,
    decode_payload,
)

from practice_core.offline.sync_queue import SyncQueue

from practice_core.offline.connection_manager import (
    ConnectionManager,
    ConnectionState,
    ConnectionStatus,
    socket_probe,
)

from practice_core.offline.wake_channel import WakeChannel, SYNC_REQUESTED

from practice_core.offline.notifications import (
    SyncNotifier,
    LoggingNotifier,
    StreamlitNotifier,
)

from practice_core.offline.remote_apply import (
    HttpRemoteApply,
    SupabaseRemoteApply,
    build_remote_apply,
)

from practice_core.offline.config import OfflineSyncConfig, load_config

from practice_core.offline.sync_controller import (
    SyncController,
    SyncPhase,
    SyncState,
    TableSync,
)

from practice_core.offline.service import create_offline_sync, get_offline_sync, use_offline_sync

__all__ = [
    # Data model
    "MutationOperation",
    "QueuedMutation",
    "SyncFailure",
    "SyncResult",
    "current_millis",
    # Local store
    "LocalDatabase",
    "encode_payload",
    "decode_payload",
    # Queue
    "SyncQueue",
    # Connectivity
    "ConnectionManager",
    "ConnectionState",
    "ConnectionStatus",
    "socket_probe",
    "WakeChannel",
    "SYNC_REQUESTED",
    # Notifications
    "SyncNotifier",
    "LoggingNotifier",
    "StreamlitNotifier",
    # Backends
    "HttpRemoteApply",
    "SupabaseRemoteApply",
    "build_remote_apply",
    # Configuration
    "OfflineSyncConfig",
    "load_config",
    # Controller (main API)
    "SyncController",
    "SyncPhase",
    "SyncState",
    "TableSync",
    "create_offline_sync",
    "get_offline_sync",
    "use_offline_sync",
]
