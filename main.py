#!/usr/bin/env python3
"""
Main application - runs the lock feed control panel and its WebSocket server
"""

import asyncio
import signal
import sys
from typing import Optional

from config import AIO_CONFIG, LOGGING_CONFIG, SERVER_CONFIG
from core import Credentials
from core.config_validator import validate_startup_config, ConfigValidationError
from core.lifecycle import LifecycleController
from core.logging_config import setup_logging, get_logger
from dashboard import DashboardWebSocketServer
from security import mask_api_key


class LockPanelApp:
    def __init__(self):
        self.logger = get_logger(__name__)
        self.controller = LifecycleController(Credentials.from_config(AIO_CONFIG))

        self.server = None
        if SERVER_CONFIG.get("enabled", True):
            self.server = DashboardWebSocketServer(self.controller)

        self._stop_requested: Optional[asyncio.Event] = None

    async def start(self):
        """Activate the panel and start serving clients"""
        self.logger.info("Starting lock panel", extra={"extra_data": {
            "feed_key": self.controller.feed_key,
            "account": self.controller.credentials.username,
            "key": mask_api_key(self.controller.credentials.key),
        }})

        await self.controller.start()
        if self.server:
            try:
                await self.server.start()
            except OSError:
                self.logger.error("Could not start WebSocket server", exc_info=True)
                await self.controller.stop()
                raise

        self.logger.info("System ready", extra={"extra_data": {
            "client_id": self.controller.identity.client_id,
            "server_port": self.server.port if self.server else None,
        }})

    async def stop(self):
        """Stop serving and release the connection"""
        self.logger.info("Stopping lock panel")

        if self.server:
            try:
                await self.server.stop()
            except Exception as e:
                self.logger.error(f"Error stopping WebSocket server: {e}", exc_info=True)

        try:
            await self.controller.stop()
        except Exception as e:
            self.logger.error(f"Error stopping controller: {e}", exc_info=True)

        self.logger.info("Lock panel stopped")

    def request_stop(self):
        if self._stop_requested is not None:
            self._stop_requested.set()

    async def run(self):
        """Run until SIGINT or SIGTERM"""
        self._stop_requested = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_stop)
            except NotImplementedError:
                # Windows event loops have no signal handler support
                pass

        await self.start()
        try:
            await self._stop_requested.wait()
        finally:
            await self.stop()


def main():
    # Validate configuration first
    try:
        validate_startup_config()
    except ConfigValidationError as e:
        print(f"Configuration validation failed: {e}")
        print("Please fix the configuration errors and try again.")
        sys.exit(1)

    setup_logging(LOGGING_CONFIG)
    logger = get_logger(__name__)
    logger.info("Starting lock panel application")

    app = LockPanelApp()
    try:
        asyncio.run(app.run())
    except KeyboardInterrupt:
        pass
    except Exception as e:
        logger.error("Lock panel exited with an error", exc_info=True, extra={
            "extra_data": {"error_type": type(e).__name__, "error_message": str(e)}
        })
        sys.exit(1)


if __name__ == "__main__":
    main()
