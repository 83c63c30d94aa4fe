# =============================================================================
# records_core/offline/connection_manager.py
# Record Service Reachability Tracking
# =============================================================================
"""
ConnectionManager - tracks whether the record service is reachable.

Status is derived from the outcome of real remote calls: every attempt the
patient store makes reports success or failure here. A forced-offline mode
makes the store skip remote calls altogether.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional
import logging

logger = logging.getLogger(__name__)


class ConnectionStatus(Enum):
    """Connection status states."""
    ONLINE = "online"           # Last remote call succeeded
    OFFLINE = "offline"         # Last remote call failed, or forced offline
    UNKNOWN = "unknown"         # No call made yet


@dataclass
class ConnectionState:
    """Current connection state with metadata."""
    status: ConnectionStatus = ConnectionStatus.UNKNOWN
    forced_offline: bool = False
    last_check: Optional[datetime] = None
    last_online: Optional[datetime] = None
    consecutive_failures: int = 0
    error_message: Optional[str] = None


class ConnectionManager:
    """
    Records remote call outcomes and notifies listeners on status changes.

    Usage:
        manager = ConnectionManager()
        manager.record_failure("connection refused")
        if manager.is_offline:
            # Serve from the mirror
    """

    def __init__(self):
        self._state = ConnectionState()
        self._callbacks: List[Callable[[ConnectionState], None]] = []

    @property
    def state(self) -> ConnectionState:
        """Get current connection state."""
        return self._state

    @property
    def status(self) -> ConnectionStatus:
        """Get current status."""
        return self._state.status

    @property
    def is_online(self) -> bool:
        """Last remote call succeeded."""
        return self._state.status == ConnectionStatus.ONLINE

    @property
    def is_offline(self) -> bool:
        """Last remote call failed, or offline mode is forced."""
        return self._state.status == ConnectionStatus.OFFLINE

    @property
    def is_forced_offline(self) -> bool:
        return self._state.forced_offline

    def record_success(self) -> None:
        """Register a successful remote call."""
        now = datetime.now()
        self._state.last_check = now
        self._state.last_online = now
        self._state.consecutive_failures = 0
        self._state.error_message = None
        self._set_status(ConnectionStatus.ONLINE)

    def record_failure(self, error: Optional[str] = None) -> None:
        """Register a failed remote call."""
        self._state.last_check = datetime.now()
        self._state.consecutive_failures += 1
        self._state.error_message = error
        self._set_status(ConnectionStatus.OFFLINE)

    def _set_status(self, status: ConnectionStatus) -> None:
        old_status = self._state.status
        self._state.status = status

        if old_status != status:
            logger.info(f"Connection status changed: {old_status.value} -> {status.value}")
            self._notify_callbacks()

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
        """Notify all registered callbacks of status change."""
        for callback in list(self._callbacks):
            try:
                callback(self._state)
            except Exception as e:
                logger.error(f"Error in connection callback: {e}")

    def force_offline(self) -> None:
        """Force offline mode (for testing or user preference)."""
        self._state.forced_offline = True
        self._set_status(ConnectionStatus.OFFLINE)
        logger.info("Forced offline mode")

    def go_online(self) -> None:
        """Leave forced offline mode; the next remote call decides the status."""
        self._state.forced_offline = False
        self._set_status(ConnectionStatus.UNKNOWN)

    def get_status_display(self) -> dict:
        """Get status information for UI display."""
        return {
            "status": self._state.status.value,
            "is_online": self.is_online,
            "forced_offline": self._state.forced_offline,
            "last_check": self._state.last_check.isoformat() if self._state.last_check else None,
            "last_online": self._state.last_online.isoformat() if self._state.last_online else None,
            "failures": self._state.consecutive_failures,
            "error": self._state.error_message,
        }
