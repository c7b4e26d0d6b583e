"""
WebSocket server exposing the dashboard to presentation clients
"""

import asyncio
import json
from typing import Any, Dict, Optional, Set

import websockets

from config import SERVER_CONFIG
from core.exceptions import DashboardError
from core.logging_config import get_logger
from security import CommandSanitizer, InputValidationError, RateLimitConfig, RateLimiter, RateLimitExceeded

logger = get_logger(__name__)


class DashboardWebSocketServer:
    """
    Serves the panel state over JSON messages and accepts commands.

    Runs on the same event loop as the lifecycle controller, so store
    updates and command handling never cross threads.
    """

    def __init__(self, controller, host: Optional[str] = None, port: Optional[int] = None,
                 sanitizer: Optional[CommandSanitizer] = None,
                 rate_limit: Optional[RateLimitConfig] = None):
        self.controller = controller
        self.host = host or SERVER_CONFIG["host"]
        self.requested_port = SERVER_CONFIG["port"] if port is None else port
        self.sanitizer = sanitizer or CommandSanitizer()
        self.rate_limiter = RateLimiter(rate_limit or RateLimitConfig(**SERVER_CONFIG["rate_limit"]))

        self.clients: Set[Any] = set()
        self.server = None
        self._pending: Set[asyncio.Task] = set()

        self.messages_handled = 0
        self.messages_rejected = 0

    @property
    def port(self) -> Optional[int]:
        """Port actually bound, which differs from the requested one for port 0"""
        if self.server is None or not self.server.sockets:
            return None
        return self.server.sockets[0].getsockname()[1]

    @property
    def is_running(self) -> bool:
        return self.server is not None

    async def start(self):
        """Start serving on the running loop"""
        if self.server is not None:
            return
        self.server = await websockets.serve(self.handle_client, self.host, self.requested_port)
        self.controller.store.add_listener(self._on_state_change)
        logger.info(f"WebSocket server running on ws://{self.host}:{self.port}")

    async def stop(self):
        """Close every client connection and stop serving"""
        if self.server is None:
            return
        logger.info("Stopping WebSocket server...")
        self.controller.store.remove_listener(self._on_state_change)
        server, self.server = self.server, None
        server.close()
        await server.wait_closed()

        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        self.clients.clear()
        logger.info("WebSocket server stopped")

    async def handle_client(self, websocket):
        """Handle a WebSocket client connection"""
        client_key = str(websocket.remote_address)
        self.clients.add(websocket)
        logger.info(f"Client connected: {websocket.remote_address} (Total: {len(self.clients)})")

        try:
            await self._send(websocket, "initial_state", self.controller.snapshot())

            async for message in websocket:
                try:
                    self.rate_limiter.check(client_key)
                except RateLimitExceeded as e:
                    self.messages_rejected += 1
                    await websocket.send(json.dumps({
                        "type": "error",
                        "error": str(e),
                        "retry_after": round(e.retry_after, 2),
                    }))
                    continue
                await self._handle_message(websocket, message)

        except websockets.exceptions.ConnectionClosed:
            pass
        finally:
            self.clients.discard(websocket)
            self.rate_limiter.forget(client_key)
            logger.info(f"Client disconnected (Total: {len(self.clients)})")

    async def _handle_message(self, websocket, message):
        try:
            request = self.sanitizer.parse(message)
        except InputValidationError as e:
            self.messages_rejected += 1
            await self._send_error(websocket, str(e))
            return

        command = request["command"]
        try:
            if command == "send_command":
                result = await self.controller.send_command(request["value"])
                await self._send(websocket, "command_result", result.to_dict())
            elif command == "read_last_value":
                result = await self.controller.read_last_value()
                await self._send(websocket, "command_result", result.to_dict())
            elif command == "reconnect":
                started = await self.controller.reconnect()
                await self._send(websocket, "command_result", {"operation": "reconnect", "ok": started})
            elif command == "get_state":
                await self._send(websocket, "state_response", self.controller.snapshot())
            elif command == "get_events":
                bus = self.controller.event_bus
                events = bus.get_recent_events(request["count"], request["event_type"]) if bus else []
                await self._send(websocket, "events_response", events)
            elif command == "get_stats":
                await self._send(websocket, "stats_response", self.get_stats())
            self.messages_handled += 1
        except DashboardError as e:
            self.messages_rejected += 1
            await self._send_error(websocket, str(e), command=command)

    async def _send(self, websocket, message_type: str, data: Any):
        await websocket.send(json.dumps({"type": message_type, "data": data}, default=str))

    async def _send_error(self, websocket, error: str, command: Optional[str] = None):
        payload: Dict[str, Any] = {"type": "error", "error": error}
        if command:
            payload["command"] = command
        await websocket.send(json.dumps(payload))

    def _on_state_change(self, snapshot: Dict[str, Any]):
        if not self.clients:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("State changed outside the event loop; update not broadcast")
            return
        task = loop.create_task(self.broadcast("state_update", snapshot))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def broadcast(self, message_type: str, data: Any):
        """Send a message to all connected clients"""
        if not self.clients:
            return

        message = json.dumps({"type": message_type, "data": data}, default=str)

        disconnected = []
        for client in list(self.clients):
            try:
                await client.send(message)
            except (websockets.exceptions.ConnectionClosed, OSError):
                disconnected.append(client)

        for client in disconnected:
            self.clients.discard(client)

    def get_stats(self) -> Dict[str, Any]:
        """Get server and controller statistics"""
        return {
            "clients": len(self.clients),
            "port": self.port,
            "messages_handled": self.messages_handled,
            "messages_rejected": self.messages_rejected,
            "controller": self.controller.get_stats(),
        }
