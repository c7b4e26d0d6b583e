import json

import pytest

from security import (
    CommandSanitizer,
    InputValidationError,
    RateLimitConfig,
    RateLimiter,
    RateLimitExceeded,
    mask_api_key,
)


@pytest.fixture
def sanitizer():
    return CommandSanitizer(max_value_length=16, presets={"lock": "LOCK", "unlock": "UNLOCK"})


class TestCommandSanitizer:
    """Tests for client message validation."""

    def test_send_command(self, sanitizer):
        parsed = sanitizer.parse(json.dumps({"command": "send_command", "value": "OPEN"}))
        assert parsed == {"command": "send_command", "value": "OPEN"}

    def test_presets_expand_to_send_command(self, sanitizer):
        assert sanitizer.parse('{"command": "lock"}') == {"command": "send_command", "value": "LOCK"}
        assert sanitizer.parse(b'{"command": "unlock"}') == {"command": "send_command", "value": "UNLOCK"}

    def test_commands_without_value(self, sanitizer):
        for name in ("read_last_value", "reconnect", "get_state", "get_stats"):
            assert sanitizer.parse(json.dumps({"command": name})) == {"command": name}

    def test_get_events_defaults_and_cap(self, sanitizer):
        assert sanitizer.parse('{"command": "get_events"}') == {
            "command": "get_events", "count": 50, "event_type": None
        }
        parsed = sanitizer.parse('{"command": "get_events", "count": 10000, "event_type": "feed.message"}')
        assert parsed["count"] == 500
        assert parsed["event_type"] == "feed.message"

    @pytest.mark.parametrize("raw", [
        "not json",
        "[1, 2]",
        '{"value": "LOCK"}',
        '{"command": "format_disk"}',
        '{"command": 7}',
        '{"command": "get_events", "count": 0}',
        '{"command": "get_events", "count": true}',
        b"\xff\xfe",
    ])
    def test_rejects_malformed_messages(self, sanitizer, raw):
        with pytest.raises(InputValidationError):
            sanitizer.parse(raw)

    @pytest.mark.parametrize("value", [None, 42, "", "x" * 17, "LOCK\n", "a\x00b"])
    def test_rejects_bad_values(self, sanitizer, value):
        with pytest.raises(InputValidationError):
            sanitizer.parse(json.dumps({"command": "send_command", "value": value}))

    def test_accepts_value_at_length_limit(self, sanitizer):
        assert sanitizer.validate_value("x" * 16) == "x" * 16

    def test_accepts_unicode(self, sanitizer):
        assert sanitizer.validate_value("ouvert ✓") == "ouvert ✓"


class TestRateLimiter:
    """Tests for per-client rate limiting."""

    def test_burst_limit(self):
        limiter = RateLimiter(RateLimitConfig(requests_per_minute=60, burst_size=3))

        assert [limiter.is_allowed("a") for _ in range(4)] == [True, True, True, False]
        assert limiter.is_allowed("b")
        assert limiter.time_until_allowed("a") > 0
        assert limiter.time_until_allowed("b") == 0.0

    def test_minute_limit(self):
        limiter = RateLimiter(RateLimitConfig(requests_per_minute=2, burst_size=10))

        assert limiter.is_allowed("a")
        assert limiter.is_allowed("a")
        assert not limiter.is_allowed("a")
        assert 0 < limiter.time_until_allowed("a") <= 60

    def test_check_raises_with_retry_after(self):
        limiter = RateLimiter(RateLimitConfig(requests_per_minute=60, burst_size=1))
        limiter.check("a")

        with pytest.raises(RateLimitExceeded) as excinfo:
            limiter.check("a")
        assert 0 < excinfo.value.retry_after <= 10

    def test_forget_clears_history(self):
        limiter = RateLimiter(RateLimitConfig(requests_per_minute=1, burst_size=1))
        limiter.is_allowed("a")
        limiter.forget("a")
        assert limiter.is_allowed("a")

    def test_time_until_allowed_does_not_record(self):
        limiter = RateLimiter(RateLimitConfig(requests_per_minute=1, burst_size=1))
        limiter.time_until_allowed("a")
        assert limiter.is_allowed("a")


def test_mask_api_key():
    assert mask_api_key("aio_abcdefghijklmnop") == "aio_...mnop"
    assert mask_api_key("short") == "***"
    assert mask_api_key("") == "***"
