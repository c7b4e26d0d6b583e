"""
Pub/sub channel manager for live feed updates over MQTT
"""

import asyncio
from typing import Any, Callable, Dict, Optional

import paho.mqtt.client as mqtt

from config import MQTT_CONFIG
from core.exceptions import ChannelAlreadyConnectedError
from core.identity import ChannelIdentity, Credentials
from core.logging_config import get_logger, log_error_with_context
from core.state_manager import ConnectionStateMachine, ConnectionStatus

logger = get_logger(__name__)


def create_mqtt_client(client_id: str, broker_config: Dict[str, Any]) -> mqtt.Client:
    """Build a paho client for the broker described by broker_config"""
    transport = broker_config.get("transport", "websockets")
    client = mqtt.Client(
        callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
        client_id=client_id,
        transport=transport,
        reconnect_on_failure=False,
    )
    if transport == "websockets":
        client.ws_set_options(path=broker_config.get("path", "/mqtt"))
    if broker_config.get("use_tls", True):
        client.tls_set()
    return client


class PubSubChannelManager:
    """
    Owns one long-lived broker connection.

    paho runs its network loop on a background thread; every callback is
    handed over to the asyncio loop before the state machine or the sinks
    are touched. Failures and drops are reported, never retried: the
    network loop is stopped as soon as one is seen.
    """

    def __init__(self,
                 state_machine: ConnectionStateMachine,
                 on_status_change: Callable[[ConnectionStatus], None],
                 on_message: Callable[[str], None],
                 client_factory: Optional[Callable[[str, Dict[str, Any]], Any]] = None,
                 broker_config: Optional[Dict[str, Any]] = None):
        """
        Initialize the channel manager

        Args:
            state_machine: Status state machine driven by connection callbacks
            on_status_change: Sink receiving every accepted status transition
            on_message: Sink receiving each inbound payload as text
            client_factory: Builds the MQTT client for a client id
            broker_config: Broker host, port, path and transport settings
        """
        self.state_machine = state_machine
        self.on_status_change = on_status_change
        self.on_message = on_message
        self.client_factory = client_factory or create_mqtt_client
        self.broker_config = broker_config or MQTT_CONFIG

        self._client = None
        self._client_id: Optional[str] = None
        self._topic: Optional[str] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._connected = False

        self.messages_received = 0
        self.connect_attempts = 0

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def topic(self) -> Optional[str]:
        return self._topic

    async def connect(self, identity: ChannelIdentity, credentials: Credentials) -> None:
        """
        Start connecting to the broker and return without waiting for the handshake

        Raises:
            ChannelAlreadyConnectedError: If this instance already owns a connection
        """
        if self._client is not None:
            raise ChannelAlreadyConnectedError(self._client_id)

        self._loop = asyncio.get_running_loop()
        self._client_id = identity.client_id
        self._topic = identity.topic
        self.connect_attempts += 1

        client = self.client_factory(identity.client_id, self.broker_config)
        client.username_pw_set(credentials.username, credentials.key)
        client.on_connect = self._on_connect
        client.on_connect_fail = self._on_connect_fail
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message
        self._client = client

        host = self.broker_config["host"]
        port = self.broker_config["port"]
        logger.info("Connecting to broker", extra={"extra_data": {
            "host": host, "port": port, "client_id": identity.client_id, "topic": self._topic
        }})

        try:
            client.connect_async(host, port, keepalive=self.broker_config.get("keepalive", 60))
            client.loop_start()
        except (OSError, ValueError) as e:
            log_error_with_context(logger, e, "broker connect", host=host, port=port)
            client.loop_stop()
            self._handle_connect_failed(client, f"Could not start connection: {e}")

    async def disconnect(self) -> None:
        """Close the broker session; does nothing when not connected"""
        client = self._client
        if client is None or not self._connected:
            return
        self._connected = False
        logger.info(f"Disconnecting from broker ({self._client_id})")
        rc = client.disconnect()
        if rc != mqtt.MQTT_ERR_SUCCESS:
            logger.debug(f"Broker disconnect returned {rc}")

    async def shutdown(self) -> None:
        """Stop delivering events and release the network thread"""
        client = self._client
        if client is None:
            return
        self._client = None
        self._connected = False
        await self._loop.run_in_executor(None, client.loop_stop)
        # A handshake that completed after the last dispatch still holds a socket
        if client.is_connected():
            logger.debug(f"Closing session left open by a late handshake ({self._client_id})")
            client.disconnect()
        logger.debug(f"Channel {self._client_id} shut down")

    # paho callbacks, called on the network thread

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        if reason_code.is_failure:
            client.loop_stop()
            self._dispatch(self._handle_connect_failed, client, f"Connection refused: {reason_code}")
            return
        client.subscribe(self._topic, qos=self.broker_config.get("qos", 0))
        self._dispatch(self._handle_connected, client)

    def _on_connect_fail(self, client, userdata):
        client.loop_stop()
        self._dispatch(self._handle_connect_failed, client, "Broker unreachable")

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties):
        if not reason_code.is_failure:
            logger.debug(f"Broker session closed: {reason_code}")
            return
        client.loop_stop()
        self._dispatch(self._handle_connection_lost, client, f"Connection lost: {reason_code}")

    def _on_message(self, client, userdata, message):
        payload = message.payload
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8", errors="replace")
        self._dispatch(self._handle_message, client, payload)

    def _dispatch(self, handler: Callable, *args):
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.debug(f"Event loop gone, dropping {handler.__name__}")
            return
        loop.call_soon_threadsafe(handler, *args)

    # Handlers, called on the event loop

    def _handle_connected(self, client):
        if client is not self._client:
            return
        if self._report(ConnectionStatus.CONNECTED, "Handshake complete"):
            self._connected = True
            logger.info(f"Connected to broker, subscribed to {self._topic}")

    def _handle_connect_failed(self, client, reason: str):
        if client is not self._client:
            return
        self._connected = False
        logger.warning(f"Broker connection failed: {reason}")
        self._report(ConnectionStatus.FAILED, reason)

    def _handle_connection_lost(self, client, reason: str):
        if client is not self._client:
            return
        if not self._connected:
            # Closed before the handshake completed
            self._handle_connect_failed(client, reason)
            return
        self._connected = False
        logger.warning(f"Broker connection lost: {reason}")
        self._report(ConnectionStatus.DISCONNECTED, reason)

    def _handle_message(self, client, payload: str):
        if client is not self._client:
            return
        self.messages_received += 1
        logger.debug(f"Message on {self._topic}: {payload}")
        self.on_message(payload)

    def _report(self, status: ConnectionStatus, reason: str) -> bool:
        if not self.state_machine.transition_to(status, reason):
            return False
        self.on_status_change(status)
        return True

    def get_stats(self) -> Dict[str, Any]:
        """Get channel statistics"""
        return {
            "client_id": self._client_id,
            "topic": self._topic,
            "connected": self._connected,
            "messages_received": self.messages_received,
            "connect_attempts": self.connect_attempts,
        }
