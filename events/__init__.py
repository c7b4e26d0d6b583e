"""
Event delivery for the control panel
"""

from .event_bus import EventBus, EventTypes, DashboardEvent

__all__ = ['EventBus', 'EventTypes', 'DashboardEvent']
