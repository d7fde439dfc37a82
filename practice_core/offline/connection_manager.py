# =============================================================================
# practice_core/offline/connection_manager.py
# Connection Status Detection and Management
# =============================================================================
"""
ConnectionManager - detects and monitors connectivity to the practice API.

Features:
- Pluggable reachability probe (TCP connect to the API host by default)
- Push updates from the platform via set_online()
- Periodic health checks on a background thread
- Callbacks on status changes, flagging offline -> online reconnects
"""

from __future__ import annotations
import socket
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple
from urllib.parse import urlparse
import logging

logger = logging.getLogger(__name__)


class ConnectionStatus(Enum):
    """Connection status states."""
    ONLINE = "online"
    OFFLINE = "offline"
    CHECKING = "checking"
    UNKNOWN = "unknown"         # Initial state


@dataclass
class ConnectionState:
    """Current connection state with metadata."""
    status: ConnectionStatus = ConnectionStatus.UNKNOWN
    last_check: Optional[datetime] = None
    last_online: Optional[datetime] = None
    consecutive_failures: int = 0
    was_offline: bool = False
    reconnected: bool = False
    error_message: Optional[str] = None

    @property
    def is_online(self) -> bool:
        return self.status == ConnectionStatus.ONLINE


FALLBACK_HOSTS: Tuple[Tuple[str, int], ...] = (
    ("8.8.8.8", 53),        # Google DNS
    ("1.1.1.1", 53),        # Cloudflare DNS
)


def socket_probe(
    api_base_url: Optional[str] = None,
    timeout: float = 5.0,
    fallback_hosts: Sequence[Tuple[str, int]] = FALLBACK_HOSTS,
) -> Callable[[], bool]:
    """
    Build a probe that opens a TCP connection to the API host.

    Without an API URL the probe checks general internet reachability.
    """
    targets: List[Tuple[str, int]] = []
    if api_base_url:
        parsed = urlparse(api_base_url)
        if parsed.hostname:
            default_port = 443 if parsed.scheme == "https" else 80
            targets.append((parsed.hostname, parsed.port or default_port))
    if not targets:
        targets.extend(fallback_hosts)

    def probe() -> bool:
        for host, port in targets:
            try:
                with socket.create_connection((host, port), timeout=timeout):
                    return True
            except OSError:
                continue
        return False

    return probe


class ConnectionManager:
    """
    Observer for online/offline transitions.

    Usage:
        manager = ConnectionManager(probe=socket_probe("https://api.example.com"))
        manager.register_callback(lambda state: print(state.status))
        manager.initialize()
        if manager.is_online:
            ...
    """

    CHECK_INTERVAL_ONLINE = 30      # Seconds between checks when online
    CHECK_INTERVAL_OFFLINE = 10     # Seconds between checks when offline

    def __init__(
        self,
        probe: Optional[Callable[[], bool]] = None,
        check_interval_online: Optional[float] = None,
        check_interval_offline: Optional[float] = None,
    ):
        self._probe = probe or socket_probe()
        self.check_interval_online = check_interval_online or self.CHECK_INTERVAL_ONLINE
        self.check_interval_offline = check_interval_offline or self.CHECK_INTERVAL_OFFLINE

        self._state = ConnectionState()
        self._state_lock = threading.RLock()
        self._callbacks: List[Callable[[ConnectionState], None]] = []
        self._monitor_thread: Optional[threading.Thread] = None
        self._stop_monitoring = threading.Event()
        self._initialized = False

    @property
    def state(self) -> ConnectionState:
        """Get current connection state."""
        return self._state

    @property
    def status(self) -> ConnectionStatus:
        return self._state.status

    @property
    def is_online(self) -> bool:
        """Check if the API is reachable."""
        return self._state.status == ConnectionStatus.ONLINE

    @property
    def is_offline(self) -> bool:
        return self._state.status == ConnectionStatus.OFFLINE

    @property
    def was_offline(self) -> bool:
        """True once the connection has dropped at least once."""
        return self._state.was_offline

    def initialize(self, start_monitoring: bool = True) -> None:
        """
        Run the first check and optionally start background monitoring.
        """
        if self._initialized:
            return

        self.check_connection()
        if start_monitoring:
            self.start_monitoring()

        self._initialized = True
        logger.info(f"ConnectionManager initialized. Status: {self._state.status.value}")

    def check_connection(self) -> ConnectionState:
        """
        Probe reachability and update state.

        Returns:
            Updated ConnectionState
        """
        try:
            online = bool(self._probe())
            error = None
        except Exception as e:
            online = False
            error = str(e)
            logger.debug(f"Connectivity probe failed: {e}")

        self._apply_status(online, error)
        return self._state

    def set_online(self, online: bool) -> ConnectionState:
        """Record a connectivity change pushed by the platform."""
        self._apply_status(online)
        return self._state

    def force_offline(self) -> None:
        """Force offline mode (for testing or user preference)."""
        self._apply_status(False)
        logger.info("Forced offline mode")

    def force_check(self) -> ConnectionState:
        """Force an immediate connection check."""
        return self.check_connection()

    def _apply_status(self, online: bool, error: Optional[str] = None) -> None:
        with self._state_lock:
            old_status = self._state.status
            now = datetime.now()
            self._state.last_check = now

            if online:
                new_status = ConnectionStatus.ONLINE
                self._state.last_online = now
                self._state.consecutive_failures = 0
                self._state.error_message = None
            else:
                new_status = ConnectionStatus.OFFLINE
                self._state.consecutive_failures += 1
                self._state.error_message = error
                self._state.was_offline = True

            self._state.status = new_status
            self._state.reconnected = (
                online
                and old_status != ConnectionStatus.ONLINE
                and self._state.was_offline
            )
            changed = old_status != new_status

        if changed:
            logger.info(f"Connection status changed: {old_status.value} -> {new_status.value}")
            self._notify_callbacks()

    def start_monitoring(self) -> None:
        """Start background connection monitoring."""
        if self._monitor_thread is not None and self._monitor_thread.is_alive():
            return

        self._stop_monitoring.clear()
        self._monitor_thread = threading.Thread(
            target=self._monitoring_loop,
            daemon=True,
            name="ConnectionMonitor"
        )
        self._monitor_thread.start()
        logger.debug("Connection monitoring started")

    def stop_monitoring(self) -> None:
        """Stop background connection monitoring."""
        self._stop_monitoring.set()
        if self._monitor_thread:
            self._monitor_thread.join(timeout=5)
            self._monitor_thread = None
        logger.debug("Connection monitoring stopped")

    def _monitoring_loop(self) -> None:
        while not self._stop_monitoring.is_set():
            interval = (
                self.check_interval_online
                if self.is_online
                else self.check_interval_offline
            )

            if self._stop_monitoring.wait(timeout=interval):
                break

            try:
                self.check_connection()
            except Exception as e:
                logger.error(f"Error in connection check: {e}")

    def register_callback(self, callback: Callable[[ConnectionState], None]) -> None:
        """
        Register a callback for connection status changes.

        Args:
            callback: Function called with ConnectionState when status changes
        """
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: Callable[[ConnectionState], None]) -> None:
        """Remove a registered callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _notify_callbacks(self) -> None:
        for callback in list(self._callbacks):
            try:
                callback(self._state)
            except Exception as e:
                logger.error(f"Error in connection callback: {e}")

    def get_status_display(self) -> dict:
        """Get status information for UI display."""
        return {
            "status": self._state.status.value,
            "is_online": self.is_online,
            "was_offline": self._state.was_offline,
            "last_check": self._state.last_check.isoformat() if self._state.last_check else None,
            "last_online": self._state.last_online.isoformat() if self._state.last_online else None,
            "failures": self._state.consecutive_failures,
            "error": self._state.error_message,
        }
