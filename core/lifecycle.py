"""
Lifecycle controller wiring the channel, the command client and the state store together
"""

from typing import Any, Callable, Dict, Optional, Tuple

from config import AIO_CONFIG, REST_CONFIG
from dashboard.state_store import DashboardStateStore
from events import EventBus, EventTypes
from pubsub.channel_manager import PubSubChannelManager
from rest.command_client import CommandClient, CommandResult

from .exceptions import DashboardError, DashboardNotRunningError
from .identity import ChannelIdentity, Credentials
from .logging_config import get_logger, log_error_with_context, redact_secret
from .state_manager import ConnectionStateMachine, ConnectionStatus

logger = get_logger(__name__)


class LifecycleController:
    """Owns the broker connection for one dashboard activation at a time"""

    def __init__(self,
                 credentials: Credentials,
                 feed_key: Optional[str] = None,
                 platform_host: Optional[str] = None,
                 api_url: Optional[str] = None,
                 store: Optional[DashboardStateStore] = None,
                 mqtt_client_factory: Optional[Callable] = None,
                 broker_config: Optional[Dict[str, Any]] = None):
        """
        Initialize the controller

        Args:
            credentials: Account name and key for both channels
            feed_key: Feed to bind to (defaults to AIO_CONFIG)
            platform_host: Platform host name (defaults to AIO_CONFIG)
            api_url: REST API root (defaults to REST_CONFIG)
            store: State store shared with the presentation layer
            mqtt_client_factory: Builds the MQTT client for a client id
            broker_config: Broker settings passed to the channel manager
        """
        self.credentials = credentials
        redact_secret(credentials.key)
        self.feed_key = feed_key or AIO_CONFIG["feed_key"]
        self.platform_host = platform_host or AIO_CONFIG["platform_host"]
        self.api_url = api_url or REST_CONFIG["api_url"]
        self.store = store or DashboardStateStore()
        self.mqtt_client_factory = mqtt_client_factory
        self.broker_config = broker_config

        self.identity: Optional[ChannelIdentity] = None
        self.state_machine = ConnectionStateMachine()

        self._bus: Optional[EventBus] = None
        self._channel: Optional[PubSubChannelManager] = None
        self._command_client: Optional[CommandClient] = None
        self._active = False

        self.activations = 0
        self.reconnects = 0

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def event_bus(self) -> Optional[EventBus]:
        return self._bus

    @property
    def channel(self) -> Optional[PubSubChannelManager]:
        return self._channel

    async def start(self) -> bool:
        """
        Activate the dashboard and start connecting the pub/sub channel

        Returns:
            True if activated, False if it was already active
        """
        if self._active:
            logger.warning("Dashboard already active")
            return False

        self.identity = self._new_identity()
        self.state_machine = ConnectionStateMachine()
        self.store.reset()

        bus = EventBus()
        await bus.start()
        self._bus = bus
        self.store.attach(bus)

        self._command_client = CommandClient(
            self.identity.feed_url(self.api_url),
            self.credentials.key,
            on_status=lambda message: bus.emit(
                EventTypes.COMMAND_PENDING, {"message": message}, source="rest"
            ),
        )
        self._active = True

        try:
            await self._open_channel(bus)
        except BaseException:
            logger.error("Dashboard activation failed, releasing resources", exc_info=True)
            await self._teardown()
            raise

        self.activations += 1
        logger.info("Dashboard activated", extra={"extra_data": {
            "client_id": self.identity.client_id,
            "topic": self.identity.topic,
        }})
        return True

    async def stop(self) -> bool:
        """
        Deactivate the dashboard and release the connection

        Returns:
            True if this call released the dashboard, False if it was not active
        """
        if not self._active:
            return False
        await self._teardown()
        logger.info("Dashboard deactivated")
        return True

    async def reconnect(self) -> bool:
        """
        Reinitialise the channel after a drop or a failed connect

        Returns:
            True if a new connection attempt was started
        """
        bus, _ = self._require_running("reconnect")
        status = self.state_machine.get_status()
        if status not in (ConnectionStatus.DISCONNECTED, ConnectionStatus.FAILED):
            logger.info(f"Not reconnecting while {status.value}")
            return False

        old_channel, self._channel = self._channel, None
        if old_channel is not None:
            await self._release_channel(old_channel)

        self.identity = self._new_identity()
        self.state_machine.reset("Manual reconnect")
        bus.emit(EventTypes.CONNECTION_STATUS, {"status": ConnectionStatus.CONNECTING}, source="lifecycle")
        try:
            await self._open_channel(bus)
        except Exception as e:
            log_error_with_context(logger, e, "reconnect", client_id=self.identity.client_id)
            channel, self._channel = self._channel, None
            if channel is not None:
                await channel.shutdown()
            if self.state_machine.transition_to(ConnectionStatus.FAILED, f"Reconnect failed: {e}"):
                bus.emit(EventTypes.CONNECTION_STATUS, {"status": ConnectionStatus.FAILED}, source="lifecycle")
            raise DashboardError("Could not reinitialise the connection", {"error": str(e)}) from e
        self.reconnects += 1
        return True

    async def send_command(self, value: str) -> CommandResult:
        """Write value through the REST API and apply the outcome"""
        bus, client = self._require_running("send a command")
        result = await client.send_command(value)
        await self._apply(bus, result)
        return result

    async def read_last_value(self) -> CommandResult:
        """Read the last recorded value through the REST API and apply it"""
        bus, client = self._require_running("read the last value")
        result = await client.read_last_value()
        await self._apply(bus, result)
        return result

    @property
    def connection_status(self) -> ConnectionStatus:
        return self.store.connection_status

    @property
    def feed_value(self) -> str:
        return self.store.feed_value

    @property
    def status_message(self) -> str:
        return self.store.status_message

    def snapshot(self) -> Dict[str, Any]:
        return self.store.snapshot()

    async def _apply(self, bus: EventBus, result: CommandResult):
        # Posted to the bus of the activation that issued the call; a closed
        # bus drops it and join() returns at once
        bus.emit(EventTypes.COMMAND_RESOLVED, {"result": result}, source="rest")
        await bus.join()

    def _new_identity(self) -> ChannelIdentity:
        return ChannelIdentity.generate(
            self.platform_host, self.credentials.username, self.feed_key
        )

    async def _open_channel(self, bus: EventBus):
        channel = PubSubChannelManager(
            self.state_machine,
            on_status_change=lambda status: bus.emit(
                EventTypes.CONNECTION_STATUS, {"status": status}, source="pubsub"
            ),
            on_message=lambda payload: bus.emit(
                EventTypes.FEED_MESSAGE, {"payload": payload}, source="pubsub"
            ),
            client_factory=self.mqtt_client_factory,
            broker_config=self.broker_config,
        )
        self._channel = channel
        await channel.connect(self.identity, self.credentials)

    async def _release_channel(self, channel: PubSubChannelManager):
        if channel.is_connected:
            await channel.disconnect()
        await channel.shutdown()

    async def _teardown(self):
        channel, self._channel = self._channel, None
        bus, self._bus = self._bus, None
        self._command_client = None
        self._active = False
        try:
            if channel is not None:
                await self._release_channel(channel)
        finally:
            self.store.close()
            if bus is not None:
                await bus.close()

    def _require_running(self, operation: str) -> Tuple[EventBus, CommandClient]:
        if not self._active or self._bus is None or self._command_client is None:
            raise DashboardNotRunningError(operation)
        return self._bus, self._command_client

    async def __aenter__(self) -> "LifecycleController":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    def get_stats(self) -> Dict[str, Any]:
        """Get controller statistics"""
        return {
            "active": self._active,
            "activations": self.activations,
            "reconnects": self.reconnects,
            "client_id": self.identity.client_id if self.identity else None,
            "connection": self.state_machine.get_stats(),
            "channel": self._channel.get_stats() if self._channel else None,
            "events": self._bus.get_stats() if self._bus else None,
            "store": self.store.get_stats(),
        }
