"""
Request/response client for writing and reading the feed
"""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

import aiohttp

from config import REST_CONFIG
from core.logging_config import get_logger, log_api_call, log_error_with_context

logger = get_logger(__name__)

UNREACHABLE_MESSAGE = "Error: Could not reach API."


class CommandError(Enum):
    """Why a command did not succeed"""
    REJECTED = "rejected"            # the service answered with a non-2xx status
    UNREACHABLE = "unreachable"      # the service could not be reached at all
    INVALID_RESPONSE = "invalid_response"


@dataclass
class CommandResult:
    """Outcome of one request/response operation"""
    ok: bool
    operation: str
    message: str
    value: Optional[str] = None
    status_code: Optional[int] = None
    error: Optional[CommandError] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "operation": self.operation,
            "message": self.message,
            "value": self.value,
            "status_code": self.status_code,
            "error": self.error.value if self.error else None,
        }


class CommandClient:
    """
    Stateless wrapper around the feed's REST resource.

    Each call opens its own session so a call already in flight is never
    cancelled by somebody else tearing the dashboard down. Progress is
    reported through on_status before the request is made; the outcome is
    returned and never raised.
    """

    def __init__(self,
                 feed_url: str,
                 api_key: str,
                 on_status: Optional[Callable[[str], None]] = None,
                 key_header: Optional[str] = None,
                 timeout: Optional[float] = None):
        self.feed_url = feed_url.rstrip("/")
        self.api_key = api_key
        self.on_status = on_status
        self.key_header = key_header or REST_CONFIG["key_header"]
        self.timeout = aiohttp.ClientTimeout(total=timeout or REST_CONFIG["timeout"])

    async def send_command(self, value: str) -> CommandResult:
        """Write value to the feed"""
        if value is None:
            raise ValueError("Command value must not be None")

        self._report(f'Sending "{value}"...')
        url = f"{self.feed_url}/data"
        start = time.monotonic()

        try:
            async with aiohttp.ClientSession(headers=self._headers(), timeout=self.timeout) as session:
                async with session.post(url, json={"value": value}) as response:
                    self._log_call("POST", url, response.status, start)
                    if _is_success(response.status):
                        return CommandResult(
                            ok=True,
                            operation="send",
                            message=f'Successfully sent "{value}"!',
                            value=value,
                            status_code=response.status,
                        )
                    return CommandResult(
                        ok=False,
                        operation="send",
                        message=f"Failed to send. Status: {response.status}",
                        status_code=response.status,
                        error=CommandError.REJECTED,
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            log_error_with_context(logger, e, "send command", url=url)
            return CommandResult(
                ok=False,
                operation="send",
                message=UNREACHABLE_MESSAGE,
                error=CommandError.UNREACHABLE,
            )

    async def read_last_value(self) -> CommandResult:
        """Read the most recently recorded feed value"""
        self._report("Reading last value...")
        url = f"{self.feed_url}/data/last"
        start = time.monotonic()

        try:
            async with aiohttp.ClientSession(headers=self._headers(), timeout=self.timeout) as session:
                async with session.get(url) as response:
                    self._log_call("GET", url, response.status, start)
                    if not _is_success(response.status):
                        return CommandResult(
                            ok=False,
                            operation="read",
                            message=f"Failed to read. Status: {response.status}",
                            status_code=response.status,
                            error=CommandError.REJECTED,
                        )
                    try:
                        data = await response.json(content_type=None)
                    except ValueError as e:
                        logger.warning(f"Unparseable response from {url}: {e}")
                        data = None
                    value = data.get("value") if isinstance(data, dict) else None
                    if value is None:
                        return CommandResult(
                            ok=False,
                            operation="read",
                            message="Failed to read. Unexpected response.",
                            status_code=response.status,
                            error=CommandError.INVALID_RESPONSE,
                        )
                    if not isinstance(value, str):
                        value = str(value)
                    return CommandResult(
                        ok=True,
                        operation="read",
                        message=f'Last value is "{value}".',
                        value=value,
                        status_code=response.status,
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            log_error_with_context(logger, e, "read last value", url=url)
            return CommandResult(
                ok=False,
                operation="read",
                message=UNREACHABLE_MESSAGE,
                error=CommandError.UNREACHABLE,
            )

    def _headers(self) -> Dict[str, str]:
        return {self.key_header: self.api_key}

    def _report(self, message: str):
        if self.on_status:
            self.on_status(message)

    def _log_call(self, method: str, url: str, status: int, start: float):
        duration_ms = (time.monotonic() - start) * 1000
        log_api_call(logger, "feed", f"{method} {url}", status, round(duration_ms, 1))


def _is_success(status: int) -> bool:
    return 200 <= status < 300
