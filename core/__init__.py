"""
Core components for connection status and channel identity
"""

from .state_manager import ConnectionStateMachine, ConnectionStatus
from .identity import ChannelIdentity, Credentials

__all__ = [
    "ConnectionStateMachine",
    "ConnectionStatus",
    "ChannelIdentity",
    "Credentials",
]
