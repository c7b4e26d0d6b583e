"""
Connection status state machine for the pub/sub channel
"""

import time
from enum import Enum
from typing import Dict, Any, Callable, List
from datetime import datetime

from .logging_config import get_logger

logger = get_logger(__name__)


class ConnectionStatus(Enum):
    """Pub/sub connection statuses"""
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    FAILED = "failed"

    @property
    def label(self) -> str:
        """Human readable text shown on the panel"""
        return STATUS_LABELS[self]

    @property
    def style(self) -> str:
        """Presentation style class for the status"""
        return STATUS_STYLES[self]


STATUS_LABELS = {
    ConnectionStatus.CONNECTING: "Connecting...",
    ConnectionStatus.CONNECTED: "Connected",
    ConnectionStatus.DISCONNECTED: "Disconnected",
    ConnectionStatus.FAILED: "Connection Failed",
}

STATUS_STYLES = {
    ConnectionStatus.CONNECTING: "status-connecting",
    ConnectionStatus.CONNECTED: "status-connected",
    ConnectionStatus.DISCONNECTED: "status-disconnected",
    ConnectionStatus.FAILED: "status-disconnected",
}


class StatusTransition:
    """Represents a status transition"""
    def __init__(self, from_status: ConnectionStatus, to_status: ConnectionStatus, reason: str = ""):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        self.timestamp = time.time()
        self.datetime = datetime.now()

    def __str__(self):
        return f"{self.from_status.value} -> {self.to_status.value} ({self.reason})"


class ConnectionStateMachine:
    """Tracks the pub/sub connection status and enforces valid transitions"""

    # No automatic way out of DISCONNECTED/FAILED: only a reinitialised
    # channel re-enters CONNECTING.
    VALID_TRANSITIONS = {
        ConnectionStatus.CONNECTING: [ConnectionStatus.CONNECTED, ConnectionStatus.FAILED],
        ConnectionStatus.CONNECTED: [ConnectionStatus.DISCONNECTED],
        ConnectionStatus.DISCONNECTED: [ConnectionStatus.CONNECTING],
        ConnectionStatus.FAILED: [ConnectionStatus.CONNECTING],
    }

    def __init__(self, max_history: int = 100):
        self.current_status = ConnectionStatus.CONNECTING

        self.transitions: List[StatusTransition] = []
        self.max_history = max_history

        self.listeners: List[Callable[[ConnectionStatus, ConnectionStatus], None]] = []

        self.status_start_time = time.time()
        self.status_durations: Dict[ConnectionStatus, float] = {status: 0.0 for status in ConnectionStatus}

        self.failure_count = 0
        self.drop_count = 0
        self.last_reason = None

    def get_status(self) -> ConnectionStatus:
        """Get current status"""
        return self.current_status

    @property
    def is_connected(self) -> bool:
        return self.current_status == ConnectionStatus.CONNECTED

    def transition_to(self, new_status: ConnectionStatus, reason: str = "") -> bool:
        """
        Transition to a new status

        Args:
            new_status: Target status
            reason: Reason for transition

        Returns:
            True if transition successful, False if invalid
        """
        if not self._is_valid_transition(self.current_status, new_status):
            logger.debug(f"Ignoring invalid status transition: {self.current_status.value} -> {new_status.value} ({reason})")
            return False

        current_duration = time.time() - self.status_start_time
        self.status_durations[self.current_status] += current_duration

        transition = StatusTransition(self.current_status, new_status, reason)
        self.transitions.append(transition)

        if len(self.transitions) > self.max_history:
            self.transitions = self.transitions[-self.max_history:]

        old_status = self.current_status
        self.current_status = new_status
        self.status_start_time = time.time()
        self.last_reason = reason

        if new_status == ConnectionStatus.FAILED:
            self.failure_count += 1
        elif new_status == ConnectionStatus.DISCONNECTED:
            self.drop_count += 1

        logger.info(f"Connection status transition: {transition}")

        self._notify_listeners(old_status, new_status)

        return True

    def reset(self, reason: str = "Channel reinitialized") -> bool:
        """Re-enter CONNECTING after a drop or a failed connect"""
        if self.current_status == ConnectionStatus.CONNECTING:
            return True
        return self.transition_to(ConnectionStatus.CONNECTING, reason)

    def add_listener(self, listener: Callable[[ConnectionStatus, ConnectionStatus], None]):
        """Add status change listener"""
        self.listeners.append(listener)

    def remove_listener(self, listener: Callable[[ConnectionStatus, ConnectionStatus], None]):
        """Remove status change listener"""
        if listener in self.listeners:
            self.listeners.remove(listener)

    def _is_valid_transition(self, from_status: ConnectionStatus, to_status: ConnectionStatus) -> bool:
        """Check if status transition is valid"""
        valid_targets = self.VALID_TRANSITIONS.get(from_status, [])
        return to_status in valid_targets

    def _notify_listeners(self, old_status: ConnectionStatus, new_status: ConnectionStatus):
        """Notify all listeners of status change"""
        for listener in list(self.listeners):
            try:
                listener(old_status, new_status)
            except Exception as e:
                logger.error(f"Error in status listener: {e}", exc_info=True)

    def get_status_duration(self) -> float:
        """Get duration in current status (seconds)"""
        return time.time() - self.status_start_time

    def get_transition_history(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Get recent status transitions"""
        recent = self.transitions[-limit:] if self.transitions else []
        return [
            {
                "from": t.from_status.value,
                "to": t.to_status.value,
                "reason": t.reason,
                "timestamp": t.timestamp,
                "datetime": t.datetime.isoformat()
            }
            for t in recent
        ]

    def get_stats(self) -> Dict[str, Any]:
        """Get state machine statistics"""
        return {
            "current_status": self.current_status.value,
            "status_duration": self.get_status_duration(),
            "transition_count": len(self.transitions),
            "failure_count": self.failure_count,
            "drop_count": self.drop_count,
            "last_reason": self.last_reason,
            "is_connected": self.is_connected,
        }
