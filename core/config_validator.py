"""
Configuration validation run before the panel starts.

Catches missing credentials and malformed broker/API settings up front so
they surface as a clear startup error instead of a "Connection Failed"
status with no explanation.
"""

import os
import re
from typing import List, Tuple
from urllib.parse import urlparse

from .logging_config import get_logger

logger = get_logger(__name__)

FEED_KEY_PATTERN = re.compile(r"^[a-z0-9][a-z0-9-]*(\.[a-z0-9][a-z0-9-]*)?$")


class ConfigValidationError(Exception):
    """Raised when configuration validation fails"""
    pass


class ConfigValidator:
    """Validates application configuration"""

    def __init__(self):
        self.errors: List[str] = []
        self.warnings: List[str] = []

    def validate_all(self) -> Tuple[bool, List[str], List[str]]:
        """
        Validate all configuration settings.

        Returns:
            Tuple of (is_valid, errors, warnings)
        """
        self.errors.clear()
        self.warnings.clear()

        self._validate_environment_variables()
        self._validate_api_key()
        self._validate_feed_config()
        self._validate_broker_config()
        self._validate_rest_config()
        self._validate_server_config()
        self._validate_logging_config()

        is_valid = len(self.errors) == 0
        return is_valid, self.errors.copy(), self.warnings.copy()

    def _validate_environment_variables(self):
        """Validate required environment variables"""
        for var in ("AIO_USERNAME", "AIO_KEY"):
            value = os.getenv(var)
            if value is None:
                self.errors.append(f"Required environment variable {var} is not set")
            elif not value.strip():
                self.errors.append(f"Required environment variable {var} is empty")

    def _validate_api_key(self):
        """Check the account key looks like a platform key"""
        key = os.getenv("AIO_KEY", "").strip()
        if not key:
            return
        if not key.startswith("aio_"):
            self.warnings.append("AIO_KEY does not look like an Adafruit IO key (expected 'aio_' prefix)")
        elif len(key) < 20:
            self.warnings.append("AIO_KEY appears to be too short")

    def _validate_feed_config(self):
        from config import AIO_CONFIG

        feed_key = AIO_CONFIG.get("feed_key", "")
        if not feed_key:
            self.errors.append("Feed key is empty")
        elif not FEED_KEY_PATTERN.match(feed_key):
            self.errors.append(
                f"Invalid feed key '{feed_key}': use lowercase letters, digits and dashes, "
                f"optionally prefixed by a group key and a dot"
            )

        username = AIO_CONFIG.get("username", "")
        if username and "/" in username:
            self.errors.append("AIO_USERNAME must not contain '/'")

    def _validate_broker_config(self):
        from config import MQTT_CONFIG

        port = MQTT_CONFIG.get("port")
        if not isinstance(port, int) or not 1 <= port <= 65535:
            self.errors.append(f"Invalid broker port: {port}")

        transport = MQTT_CONFIG.get("transport")
        if transport not in ("websockets", "tcp"):
            self.errors.append(f"Invalid broker transport '{transport}'. Must be 'websockets' or 'tcp'")
        elif transport == "websockets" and not str(MQTT_CONFIG.get("path", "")).startswith("/"):
            self.errors.append(f"Broker websocket path must start with '/': {MQTT_CONFIG.get('path')}")

        if not MQTT_CONFIG.get("use_tls", True):
            self.warnings.append("Broker TLS is disabled; the account key will be sent in clear text")

        keepalive = MQTT_CONFIG.get("keepalive", 60)
        if keepalive < 5 or keepalive > 1200:
            self.warnings.append(f"Broker keepalive {keepalive}s is unusual. Recommended: 30-300s")

    def _validate_rest_config(self):
        from config import REST_CONFIG

        url = REST_CONFIG.get("api_url", "")
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            self.errors.append(f"REST API URL has invalid format: {url}")
        elif parsed.scheme == "http":
            self.warnings.append("REST API URL uses plain http; the account key will be sent in clear text")

    def _validate_server_config(self):
        from config import SERVER_CONFIG

        if not SERVER_CONFIG.get("enabled", True):
            return

        port = SERVER_CONFIG.get("port")
        if not isinstance(port, int) or not 0 <= port <= 65535:
            self.errors.append(f"Invalid dashboard server port: {port}")
        elif 0 < port < 1024:
            self.warnings.append(f"Dashboard server port {port} is privileged and may need elevated permissions")

        if SERVER_CONFIG.get("host") not in ("localhost", "127.0.0.1", "::1"):
            self.warnings.append(
                f"Dashboard server listens on {SERVER_CONFIG.get('host')}; commands are not authenticated"
            )

    def _validate_logging_config(self):
        from config import LOGGING_CONFIG

        log_level = LOGGING_CONFIG.get("log_level", "INFO")
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if log_level.upper() not in valid_levels:
            self.errors.append(f"Invalid log level '{log_level}'. Must be one of: {', '.join(valid_levels)}")

        backup_count = LOGGING_CONFIG.get("backup_count", 5)
        if backup_count < 1 or backup_count > 50:
            self.warnings.append(f"Log backup count {backup_count} may be {'too low' if backup_count < 3 else 'too high'}. Recommended: 3-20")


def validate_startup_config() -> None:
    """
    Validate configuration on startup.

    Raises:
        ConfigValidationError: If critical configuration errors are found
    """
    validator = ConfigValidator()
    is_valid, errors, warnings = validator.validate_all()

    for warning in warnings:
        logger.warning(f"Configuration warning: {warning}")

    if errors:
        for error in errors:
            logger.error(f"Configuration error: {error}")

        error_msg = f"Found {len(errors)} configuration error(s) that must be fixed before starting the panel."
        if warnings:
            error_msg += f" Also found {len(warnings)} warning(s) that should be addressed."
        raise ConfigValidationError(error_msg)

    if warnings:
        logger.info(f"Configuration validated with {len(warnings)} warning(s)")
    else:
        logger.info("Configuration validated successfully")
