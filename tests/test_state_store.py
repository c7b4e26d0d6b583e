import pytest

from core.state_manager import ConnectionStatus
from dashboard import DashboardStateStore
from events import EventBus, EventTypes
from rest import CommandError, CommandResult


def ok_send(value):
    return CommandResult(ok=True, operation="send", message=f'Successfully sent "{value}"!', value=value)


class TestDashboardStateStore:
    """Tests for the single owner of displayed state."""

    def test_initial_values(self):
        store = DashboardStateStore()
        snapshot = store.snapshot()

        assert snapshot["feed_value"] == "—"
        assert snapshot["status_message"] == "Welcome!"
        assert snapshot["connection_status"] == "connecting"
        assert snapshot["connection_label"] == "Connecting..."
        assert snapshot["status_style"] == "status-connecting"

    def test_feed_message_sets_value_and_message(self):
        store = DashboardStateStore()
        store.apply_feed_message("UNLOCK")

        assert store.feed_value == "UNLOCK"
        assert store.status_message == "Live value updated via MQTT."

    def test_empty_payload_is_accepted_but_none_ignored(self):
        store = DashboardStateStore()
        store.apply_feed_message("")
        assert store.feed_value == ""

        store.apply_feed_message(None)
        assert store.feed_value == ""

    def test_failed_command_keeps_value(self):
        store = DashboardStateStore()
        store.apply_feed_message("LOCK")
        store.apply_command_result(CommandResult(
            ok=False, operation="send", message="Failed to send. Status: 500",
            status_code=500, error=CommandError.REJECTED,
        ))

        assert store.feed_value == "LOCK"
        assert store.status_message == "Failed to send. Status: 500"

    def test_successful_command_sets_value(self):
        store = DashboardStateStore()
        store.apply_command_pending('Sending "LOCK"...')
        assert store.status_message == 'Sending "LOCK"...'

        store.apply_command_result(ok_send("LOCK"))
        assert store.feed_value == "LOCK"
        assert store.status_message == 'Successfully sent "LOCK"!'

    def test_last_write_wins(self):
        """A read resolving after a push overwrites it, stale or not."""
        store = DashboardStateStore()
        store.apply_feed_message("UNLOCK")
        store.apply_command_result(CommandResult(
            ok=True, operation="read", message='Last value is "LOCK".', value="LOCK"
        ))

        assert store.feed_value == "LOCK"
        assert store.status_message == 'Last value is "LOCK".'

    def test_connection_status(self):
        store = DashboardStateStore()
        store.apply_connection_status(ConnectionStatus.FAILED)

        assert store.connection_label == "Connection Failed"
        assert store.status_style == "status-disconnected"
        assert store.feed_value == "—"

    def test_closed_store_discards_writes(self):
        store = DashboardStateStore()
        store.close()

        store.apply_feed_message("LOCK")
        store.apply_command_result(ok_send("LOCK"))
        store.apply_connection_status(ConnectionStatus.CONNECTED)

        assert store.feed_value == "—"
        assert store.connection_status == ConnectionStatus.CONNECTING
        assert store.ignored_writes == 3

    def test_reset_reopens_with_initial_values(self):
        store = DashboardStateStore(initial_feed_value="?", initial_status_message="Hi")
        store.apply_feed_message("LOCK")
        store.close()
        store.reset()

        assert not store.is_closed
        assert store.feed_value == "?"
        assert store.status_message == "Hi"

    def test_listeners_receive_snapshots(self):
        store = DashboardStateStore()
        snapshots = []
        store.add_listener(snapshots.append)

        store.apply_feed_message("LOCK")
        store.remove_listener(snapshots.append)
        store.apply_feed_message("UNLOCK")

        assert [s["feed_value"] for s in snapshots] == ["LOCK"]
        assert store.get_stats()["update_count"] == 2

    @pytest.mark.asyncio
    async def test_attach_routes_bus_events(self):
        store = DashboardStateStore()
        bus = EventBus()
        await bus.start()
        store.attach(bus)

        bus.emit(EventTypes.CONNECTION_STATUS, {"status": ConnectionStatus.CONNECTED})
        bus.emit(EventTypes.FEED_MESSAGE, {"payload": "UNLOCK"})
        bus.emit(EventTypes.COMMAND_PENDING, {"message": "Reading last value..."})
        bus.emit(EventTypes.COMMAND_RESOLVED, {"result": ok_send("LOCK")})
        await bus.join()

        assert store.connection_status == ConnectionStatus.CONNECTED
        assert store.feed_value == "LOCK"
        assert store.status_message == 'Successfully sent "LOCK"!'
        await bus.close()
