"""
Dashboard state store: the single owner of the displayed feed value and status message
"""

import time
from typing import Any, Callable, Dict, List, Optional

from config import DASHBOARD_CONFIG
from core.logging_config import get_logger
from core.state_manager import ConnectionStatus
from events import DashboardEvent, EventBus, EventTypes
from rest.command_client import CommandResult

logger = get_logger(__name__)

LIVE_UPDATE_MESSAGE = "Live value updated via MQTT."


class DashboardStateStore:
    """
    Holds what the panel displays.

    The apply_* methods are the only writers. Writes are applied in the
    order they arrive with no merging: whichever channel resolves last
    wins, even when that means a stale read overwrites a newer push.
    """

    def __init__(self,
                 initial_feed_value: Optional[str] = None,
                 initial_status_message: Optional[str] = None):
        self._initial_feed_value = initial_feed_value or DASHBOARD_CONFIG["initial_feed_value"]
        self._initial_status_message = initial_status_message or DASHBOARD_CONFIG["initial_status_message"]

        self._connection_status = ConnectionStatus.CONNECTING
        self._feed_value = self._initial_feed_value
        self._status_message = self._initial_status_message
        self._closed = False

        self.listeners: List[Callable[[Dict[str, Any]], None]] = []

        self.update_count = 0
        self.ignored_writes = 0
        self.last_update_time: Optional[float] = None
        self.last_update_source: Optional[str] = None

    # Read access

    @property
    def connection_status(self) -> ConnectionStatus:
        return self._connection_status

    @property
    def connection_label(self) -> str:
        return self._connection_status.label

    @property
    def status_style(self) -> str:
        return self._connection_status.style

    @property
    def feed_value(self) -> str:
        return self._feed_value

    @property
    def status_message(self) -> str:
        return self._status_message

    @property
    def is_closed(self) -> bool:
        return self._closed

    def snapshot(self) -> Dict[str, Any]:
        """Get everything the presentation layer renders"""
        return {
            "connection_status": self._connection_status.value,
            "connection_label": self.connection_label,
            "status_style": self.status_style,
            "feed_value": self._feed_value,
            "status_message": self._status_message,
            "updated_at": self.last_update_time,
        }

    # Write entry points

    def apply_connection_status(self, status: ConnectionStatus):
        """Record the status reported by the connection state machine"""
        if not self._accepts_writes("connection status"):
            return
        self._connection_status = status
        self._commit("pubsub")

    def apply_feed_message(self, payload: Optional[str]):
        """Apply a value pushed by the pub/sub channel"""
        if not self._accepts_writes("feed message"):
            return
        if payload is None:
            logger.warning("Ignoring empty pub/sub payload")
            return
        self._feed_value = payload
        self._status_message = LIVE_UPDATE_MESSAGE
        self._commit("pubsub")

    def apply_command_pending(self, message: str):
        """Show that a command is in progress"""
        if not self._accepts_writes("command progress"):
            return
        self._status_message = message
        self._commit("rest")

    def apply_command_result(self, result: CommandResult):
        """Apply a resolved command; the value only changes on success"""
        if not self._accepts_writes("command result"):
            return
        self._status_message = result.message
        if result.ok and result.value is not None:
            self._feed_value = result.value
        self._commit("rest")

    def attach(self, bus: EventBus):
        """Route bus events to the write entry points"""
        bus.on(EventTypes.CONNECTION_STATUS, self._on_connection_status)
        bus.on(EventTypes.FEED_MESSAGE, self._on_feed_message)
        bus.on(EventTypes.COMMAND_PENDING, self._on_command_pending)
        bus.on(EventTypes.COMMAND_RESOLVED, self._on_command_resolved)

    def _on_connection_status(self, event: DashboardEvent):
        self.apply_connection_status(event.data["status"])

    def _on_feed_message(self, event: DashboardEvent):
        self.apply_feed_message(event.data.get("payload"))

    def _on_command_pending(self, event: DashboardEvent):
        self.apply_command_pending(event.data["message"])

    def _on_command_resolved(self, event: DashboardEvent):
        self.apply_command_result(event.data["result"])

    # Lifecycle

    def close(self):
        """Tear the store down; later writes are discarded"""
        self._closed = True

    def reset(self):
        """Restore initial values for a new activation"""
        self._connection_status = ConnectionStatus.CONNECTING
        self._feed_value = self._initial_feed_value
        self._status_message = self._initial_status_message
        self._closed = False
        self._commit("lifecycle")

    def add_listener(self, listener: Callable[[Dict[str, Any]], None]):
        """Add a listener called with a snapshot after every write"""
        self.listeners.append(listener)

    def remove_listener(self, listener: Callable[[Dict[str, Any]], None]):
        if listener in self.listeners:
            self.listeners.remove(listener)

    def _accepts_writes(self, kind: str) -> bool:
        if self._closed:
            self.ignored_writes += 1
            logger.debug(f"Discarding {kind}: store is closed")
            return False
        return True

    def _commit(self, source: str):
        self.update_count += 1
        self.last_update_time = time.time()
        self.last_update_source = source
        snapshot = self.snapshot()
        for listener in list(self.listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Error in store listener: {e}", exc_info=True)

    def get_stats(self) -> Dict[str, Any]:
        """Get store statistics"""
        return {
            "update_count": self.update_count,
            "ignored_writes": self.ignored_writes,
            "last_update_time": self.last_update_time,
            "last_update_source": self.last_update_source,
            "closed": self._closed,
        }
