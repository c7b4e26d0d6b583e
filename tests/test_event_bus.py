import asyncio
import threading

import pytest

from events import DashboardEvent, EventBus, EventTypes


class TestDashboardEvent:
    """Tests for event serialization."""

    def test_to_dict_serializes_enums_and_results(self):
        from core.state_manager import ConnectionStatus
        from rest.command_client import CommandResult

        event = DashboardEvent(EventTypes.CONNECTION_STATUS, {
            "status": ConnectionStatus.CONNECTED,
            "result": CommandResult(ok=True, operation="send", message="ok", value="LOCK"),
        }, source="test")

        data = event.to_dict()
        assert data["type"] == "connection.status"
        assert data["source"] == "test"
        assert data["data"]["status"] == "connected"
        assert data["data"]["result"]["value"] == "LOCK"


class TestEventBus:
    """Tests for ordered delivery on the event loop."""

    @pytest.mark.asyncio
    async def test_events_delivered_in_order(self):
        bus = EventBus()
        await bus.start()
        received = []
        bus.on(EventTypes.FEED_MESSAGE, lambda e: received.append(e.data["payload"]))

        for payload in ("LOCK", "UNLOCK", "LOCK"):
            bus.emit(EventTypes.FEED_MESSAGE, {"payload": payload})
        await bus.join()

        assert received == ["LOCK", "UNLOCK", "LOCK"]
        await bus.close()

    @pytest.mark.asyncio
    async def test_emit_from_another_thread(self):
        bus = EventBus()
        await bus.start()
        received = []
        bus.on_all(lambda e: received.append((e.type, threading.get_ident())))

        worker = threading.Thread(
            target=bus.emit, args=(EventTypes.FEED_MESSAGE, {"payload": "LOCK"}, "paho")
        )
        worker.start()
        worker.join()
        await asyncio.sleep(0)
        await bus.join()

        assert received == [(EventTypes.FEED_MESSAGE, threading.get_ident())]
        await bus.close()

    @pytest.mark.asyncio
    async def test_listener_errors_are_isolated(self):
        bus = EventBus()
        await bus.start()
        received = []

        def broken(event):
            raise RuntimeError("boom")

        bus.on(EventTypes.COMMAND_PENDING, broken)
        bus.on(EventTypes.COMMAND_PENDING, lambda e: received.append(e.data["message"]))
        bus.emit(EventTypes.COMMAND_PENDING, {"message": "Reading last value..."})
        await bus.join()

        assert received == ["Reading last value..."]
        await bus.close()

    @pytest.mark.asyncio
    async def test_closed_bus_drops_events(self):
        bus = EventBus()
        await bus.start()
        received = []
        bus.on_all(received.append)

        await bus.close()
        bus.emit(EventTypes.FEED_MESSAGE, {"payload": "LOCK"})
        await bus.join()

        assert received == []
        assert bus.get_stats()["dropped_events"] == 1
        assert not bus.is_running

    @pytest.mark.asyncio
    async def test_emit_before_start_is_dropped(self):
        bus = EventBus()
        bus.emit(EventTypes.FEED_MESSAGE, {"payload": "LOCK"})
        assert bus.dropped_events == 1

    @pytest.mark.asyncio
    async def test_off_and_history(self):
        bus = EventBus(max_history=2)
        await bus.start()
        received = []
        listener = lambda e: received.append(e)
        bus.on(EventTypes.FEED_MESSAGE, listener)
        bus.off(EventTypes.FEED_MESSAGE, listener)

        bus.emit(EventTypes.FEED_MESSAGE, {"payload": "a"})
        bus.emit(EventTypes.COMMAND_PENDING, {"message": "b"})
        bus.emit(EventTypes.FEED_MESSAGE, {"payload": "c"})
        await bus.join()

        assert received == []
        recent = bus.get_recent_events()
        assert [e["type"] for e in recent] == [EventTypes.COMMAND_PENDING, EventTypes.FEED_MESSAGE]
        assert bus.get_recent_events(event_type=EventTypes.FEED_MESSAGE)[0]["data"]["payload"] == "c"
        assert bus.get_stats()["total_events"] == 3
        await bus.close()
