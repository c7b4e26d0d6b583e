"""
Event bus delivering dashboard events to a single consumer on the event loop
"""

import asyncio
import contextlib
import time
import uuid
from collections import defaultdict
from datetime import datetime
from typing import Dict, Any, List, Callable, Optional

from config import EVENT_CONFIG
from core.logging_config import get_logger

logger = get_logger(__name__)


class DashboardEvent:
    """Represents a dashboard event"""

    def __init__(self, event_type: str, data: Dict[str, Any], source: str = None):
        self.id = str(uuid.uuid4())
        self.type = event_type
        self.data = data
        self.source = source or "system"
        self.timestamp = time.time()
        self.datetime = datetime.now().isoformat()

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary"""
        return {
            "id": self.id,
            "type": self.type,
            "data": {key: _serializable(value) for key, value in self.data.items()},
            "source": self.source,
            "timestamp": self.timestamp,
            "datetime": self.datetime
        }


def _serializable(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if hasattr(value, "value") and not isinstance(value, (str, bytes)):
        return value.value
    return value


class EventBus:
    """
    Per-activation event bus.

    Events are applied in the order they are enqueued by one consumer task,
    so listeners never run concurrently. emit() may be called from any
    thread; once the bus is closed every emission is dropped.
    """

    def __init__(self, max_history: Optional[int] = None):
        self.listeners: Dict[str, List[Callable[[DashboardEvent], None]]] = defaultdict(list)
        self.event_history: List[DashboardEvent] = []
        self.max_history = max_history or EVENT_CONFIG["max_history"]

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue] = None
        self._consumer: Optional[asyncio.Task] = None
        self._closed = False

        self.event_counts = defaultdict(int)
        self.dropped_events = 0

    @property
    def is_running(self) -> bool:
        return self._consumer is not None and not self._closed

    async def start(self):
        """Start the consumer task on the running loop"""
        if self._consumer is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._consumer = self._loop.create_task(self._process_events())

    def emit(self, event_type: str, data: Dict[str, Any], source: str = None):
        """Emit an event to the bus"""
        event = DashboardEvent(event_type, data, source)
        if self._closed or self._loop is None:
            self._drop(event)
            return

        try:
            running_loop = asyncio.get_running_loop()
        except RuntimeError:
            running_loop = None

        if running_loop is self._loop:
            self._enqueue(event)
        else:
            self._loop.call_soon_threadsafe(self._enqueue, event)

    def _enqueue(self, event: DashboardEvent):
        # Re-checked here: a threadsafe emission may land after close()
        if self._closed:
            self._drop(event)
            return
        self._queue.put_nowait(event)

    def _drop(self, event: DashboardEvent):
        self.dropped_events += 1
        logger.debug(f"Dropping {event.type} from {event.source}: bus is closed")

    def on(self, event_type: str, callback: Callable[[DashboardEvent], None]):
        """Register a listener for specific event type"""
        self.listeners[event_type].append(callback)

    def on_all(self, callback: Callable[[DashboardEvent], None]):
        """Register a listener for all events"""
        self.listeners["*"].append(callback)

    def off(self, event_type: str, callback: Callable[[DashboardEvent], None]):
        """Remove a listener"""
        if callback in self.listeners[event_type]:
            self.listeners[event_type].remove(callback)

    async def _process_events(self):
        """Apply queued events one at a time"""
        while True:
            event = await self._queue.get()
            try:
                self._dispatch(event)
            finally:
                self._queue.task_done()

    def _dispatch(self, event: DashboardEvent):
        self.event_counts[event.type] += 1

        self.event_history.append(event)
        if len(self.event_history) > self.max_history:
            self.event_history.pop(0)

        for listener in list(self.listeners.get(event.type, [])):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Error in event listener for {event.type}: {e}", exc_info=True)

        for listener in list(self.listeners.get("*", [])):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Error in wildcard event listener: {e}", exc_info=True)

    async def join(self):
        """Wait until every event enqueued so far has been applied"""
        if self._queue is not None and not self._closed:
            await self._queue.join()

    async def close(self):
        """Stop delivery; pending and future events are discarded"""
        if self._closed:
            return
        self._closed = True
        if self._queue is not None:
            while not self._queue.empty():
                self._drop(self._queue.get_nowait())
                self._queue.task_done()
        if self._consumer is not None:
            self._consumer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._consumer

    def get_stats(self) -> Dict[str, Any]:
        """Get event bus statistics"""
        return {
            "total_events": sum(self.event_counts.values()),
            "event_counts": dict(self.event_counts),
            "queue_size": self._queue.qsize() if self._queue is not None else 0,
            "history_size": len(self.event_history),
            "dropped_events": self.dropped_events,
            "closed": self._closed,
            "listener_counts": {
                event_type: len(listeners)
                for event_type, listeners in self.listeners.items()
            }
        }

    def get_recent_events(self, count: int = 50, event_type: str = None) -> List[Dict[str, Any]]:
        """Get recent events from history"""
        events = self.event_history[-count:]

        if event_type:
            events = [e for e in events if e.type == event_type]

        return [e.to_dict() for e in events]


# Event type constants
class EventTypes:
    # Pub/sub channel events
    CONNECTION_STATUS = "connection.status"
    FEED_MESSAGE = "feed.message"

    # Command client events
    COMMAND_PENDING = "command.pending"
    COMMAND_RESOLVED = "command.resolved"
