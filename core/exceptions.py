"""
Custom exceptions for the control panel core
"""

from typing import Optional, Dict, Any


class DashboardError(Exception):
    """Base exception for all control panel errors"""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class DashboardNotRunningError(DashboardError):
    """Raised when a command is issued while the dashboard is not active"""
    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Cannot {operation}: dashboard is not running")


class ChannelAlreadyConnectedError(DashboardError):
    """Raised when connect is called on a channel that already owns a connection"""
    def __init__(self, client_id: str):
        self.client_id = client_id
        super().__init__(f"Channel already has an outstanding connection ({client_id})")
