"""Identity helpers binding a dashboard instance to one feed."""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from config import DASHBOARD_CONFIG


@dataclass(frozen=True)
class Credentials:
    """Account name and secret key for both the broker and the REST API."""

    username: str
    key: str = field(repr=False)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "Credentials":
        return cls(username=config.get("username", ""), key=config.get("key", ""))

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, key='***')"


@dataclass(frozen=True)
class ChannelIdentity:
    """Which broker topic and REST resource a dashboard activation binds to."""

    platform_host: str
    account: str
    feed_key: str
    client_id: str

    @classmethod
    def generate(
        cls,
        platform_host: str,
        account: str,
        feed_key: str,
        prefix: Optional[str] = None,
    ) -> "ChannelIdentity":
        """Return an identity with a fresh random client instance id."""
        if prefix is None:
            prefix = DASHBOARD_CONFIG["client_id_prefix"]
        return cls(
            platform_host=platform_host,
            account=account,
            feed_key=feed_key,
            client_id=_generate_client_id(prefix),
        )

    @property
    def topic(self) -> str:
        return f"{self.account}/feeds/{self.feed_key}"

    def feed_url(self, api_url: str) -> str:
        """Return the REST base resource for the feed."""
        return f"{api_url.rstrip('/')}/{self.account}/feeds/{self.feed_key}"


def _generate_client_id(prefix: str) -> str:
    return f"{prefix}{secrets.token_hex(8)}"
