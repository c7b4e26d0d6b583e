"""
Input validation and rate limiting for the dashboard command surface.

Everything a presentation client sends over the WebSocket passes through
CommandSanitizer before it can reach the command client, and every client
is rate limited so a misbehaving page cannot hammer the platform API.
"""

import json
import re
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from config import SERVER_CONFIG, DASHBOARD_CONFIG
from core.logging_config import get_logger

logger = get_logger(__name__)


class SecurityError(Exception):
    """Raised when security validation fails"""
    pass


class RateLimitExceeded(SecurityError):
    """Raised when rate limits are exceeded"""
    def __init__(self, retry_after: float):
        self.retry_after = retry_after
        super().__init__("Rate limit exceeded")


class InputValidationError(SecurityError):
    """Raised when input validation fails"""
    pass


@dataclass
class RateLimitConfig:
    """Configuration for rate limiting"""
    requests_per_minute: int = 60
    burst_size: int = 10
    burst_window: float = 10.0


class RateLimiter:
    """Simple in-memory rate limiter keyed by client identifier"""

    def __init__(self, config: RateLimitConfig):
        self.config = config
        self.requests: Dict[str, List[float]] = {}

    def is_allowed(self, identifier: str) -> bool:
        """
        Check if a request is allowed for the given identifier and record it.

        Args:
            identifier: Unique identifier (e.g., remote address)

        Returns:
            True if request is allowed, False otherwise
        """
        now = time.time()
        request_times = self._recent(identifier, now)

        if len(request_times) >= self.config.requests_per_minute:
            return False

        cutoff_burst = now - self.config.burst_window
        burst_requests = [t for t in request_times if t > cutoff_burst]
        if len(burst_requests) >= self.config.burst_size:
            return False

        request_times.append(now)
        return True

    def check(self, identifier: str):
        """
        Record a request, raising if it is over the limit.

        Raises:
            RateLimitExceeded: With the delay before the next allowed request
        """
        if not self.is_allowed(identifier):
            raise RateLimitExceeded(self.time_until_allowed(identifier))

    def time_until_allowed(self, identifier: str) -> float:
        """
        Get time in seconds until the next request is allowed, 0 if allowed now.
        Does not record a request.
        """
        now = time.time()
        request_times = self._recent(identifier, now)

        if len(request_times) >= self.config.requests_per_minute:
            return max(0.0, min(request_times) + 60 - now)

        cutoff_burst = now - self.config.burst_window
        burst_requests = [t for t in request_times if t > cutoff_burst]
        if len(burst_requests) >= self.config.burst_size:
            return max(0.0, min(burst_requests) + self.config.burst_window - now)

        return 0.0

    def forget(self, identifier: str):
        """Drop the history of a client that went away"""
        self.requests.pop(identifier, None)

    def _recent(self, identifier: str, now: float) -> List[float]:
        request_times = self.requests.setdefault(identifier, [])
        cutoff_minute = now - 60
        request_times[:] = [t for t in request_times if t > cutoff_minute]
        return request_times


class CommandSanitizer:
    """Parses and validates messages sent by presentation clients"""

    # Commands and whether they carry a value
    COMMANDS = {
        "send_command": True,
        "read_last_value": False,
        "reconnect": False,
        "get_state": False,
        "get_events": False,
        "get_stats": False,
    }

    CONTROL_CHARS = re.compile(r'[\x00-\x1f\x7f]')

    def __init__(self, max_value_length: Optional[int] = None, presets: Optional[Dict[str, str]] = None):
        self.max_value_length = max_value_length or SERVER_CONFIG["max_value_length"]
        self.presets = presets if presets is not None else DASHBOARD_CONFIG["presets"]

    def parse(self, raw: Any) -> Dict[str, Any]:
        """
        Parse a raw client message.

        Preset commands (e.g. "lock") are expanded into send_command with
        their configured value.

        Returns:
            Dict with "command" and, for send_command, "value"

        Raises:
            InputValidationError: If the message is malformed or not allowed
        """
        if isinstance(raw, bytes):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError:
                raise InputValidationError("Message is not valid UTF-8")

        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            raise InputValidationError("Message is not valid JSON")

        if not isinstance(data, dict):
            raise InputValidationError("Message must be a JSON object")

        command = data.get("command")
        if not isinstance(command, str):
            raise InputValidationError("Missing command")

        if command in self.presets:
            return {"command": "send_command", "value": self.presets[command]}

        if command not in self.COMMANDS:
            raise InputValidationError(f"Unknown command: {command[:50]}")

        parsed: Dict[str, Any] = {"command": command}
        if self.COMMANDS[command]:
            parsed["value"] = self.validate_value(data.get("value"))
        elif command == "get_events":
            count = data.get("count", 50)
            if not isinstance(count, int) or isinstance(count, bool) or count < 1:
                raise InputValidationError("count must be a positive integer")
            parsed["count"] = min(count, 500)
            event_type = data.get("event_type")
            if event_type is not None and not isinstance(event_type, str):
                raise InputValidationError("event_type must be a string")
            parsed["event_type"] = event_type
        return parsed

    def validate_value(self, value: Any) -> str:
        """Validate a feed value supplied by a client"""
        if not isinstance(value, str):
            raise InputValidationError("value must be a string")
        if not value:
            raise InputValidationError("value cannot be empty")
        if len(value) > self.max_value_length:
            raise InputValidationError(f"value too long: {len(value)} > {self.max_value_length}")
        if self.CONTROL_CHARS.search(value):
            logger.warning("Rejected command value containing control characters")
            raise InputValidationError("value contains control characters")
        return value


def mask_api_key(api_key: str) -> str:
    """
    Mask API key for safe logging.

    Args:
        api_key: API key to mask

    Returns:
        Masked version showing only first and last few characters
    """
    if not api_key or len(api_key) < 8:
        return "***"

    return f"{api_key[:4]}...{api_key[-4:]}"
