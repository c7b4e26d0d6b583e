"""
Dashboard state and presentation boundary
"""

from .state_store import DashboardStateStore
from .websocket_server import DashboardWebSocketServer

__all__ = ["DashboardStateStore", "DashboardWebSocketServer"]
