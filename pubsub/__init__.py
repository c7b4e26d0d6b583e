"""
Pub/sub channel for live feed updates
"""

from .channel_manager import PubSubChannelManager, create_mqtt_client

__all__ = ["PubSubChannelManager", "create_mqtt_client"]
