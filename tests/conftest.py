import asyncio
import os
import sys
from pathlib import Path

# Keep test runs from writing logs; must happen before config is imported
os.environ.setdefault("ENABLE_FILE_LOGGING", "false")
os.environ.setdefault("ENABLE_CONSOLE_LOGGING", "false")

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

# Add the repository root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.identity import Credentials


class FakeReasonCode:
    """Stand-in for paho's ReasonCode"""

    def __init__(self, value: int = 0, name: str = "Success"):
        self.value = value
        self.name = name

    @property
    def is_failure(self) -> bool:
        return self.value >= 0x80

    def __str__(self):
        return self.name


class FakeMqttClient:
    """Records what the channel manager asks of the client and lets tests fire callbacks"""

    def __init__(self, client_id, broker_config):
        self.client_id = client_id
        self.broker_config = broker_config
        self.credentials = None
        self.connect_args = None
        self.loop_started = False
        self.loop_stopped = False
        self.subscriptions = []
        self.disconnect_calls = 0
        self.connect_error = None
        self.connected = False

        self.on_connect = None
        self.on_connect_fail = None
        self.on_disconnect = None
        self.on_message = None

    def username_pw_set(self, username, password):
        self.credentials = (username, password)

    def connect_async(self, host, port, keepalive=60):
        if self.connect_error is not None:
            raise self.connect_error
        self.connect_args = (host, port, keepalive)

    def loop_start(self):
        self.loop_started = True

    def loop_stop(self):
        self.loop_stopped = True

    def subscribe(self, topic, qos=0):
        self.subscriptions.append((topic, qos))

    def disconnect(self):
        self.disconnect_calls += 1
        self.connected = False
        return 0

    def is_connected(self):
        return self.connected

    # Simulated broker behaviour

    def fire_connect(self, refused: bool = False):
        code = FakeReasonCode(0x87, "Not authorized") if refused else FakeReasonCode()
        self.connected = not refused
        self.on_connect(self, None, {}, code, None)

    def fire_connect_fail(self):
        self.on_connect_fail(self, None)

    def fire_disconnect(self, unexpected: bool = True):
        code = FakeReasonCode(0x80, "Unspecified error") if unexpected else FakeReasonCode()
        self.connected = False
        self.on_disconnect(self, None, {}, code, None)

    def fire_message(self, payload: bytes):
        message = type("Message", (), {"payload": payload, "topic": self.subscriptions[0][0]})()
        self.on_message(self, None, message)


class MqttClientFactory:
    """Client factory handing out FakeMqttClient instances"""

    def __init__(self):
        self.clients = []
        self.connect_error = None

    def __call__(self, client_id, broker_config):
        client = FakeMqttClient(client_id, broker_config)
        client.connect_error = self.connect_error
        self.clients.append(client)
        return client

    @property
    def last(self) -> FakeMqttClient:
        return self.clients[-1]


async def settle(bus=None):
    """Let callbacks handed over with call_soon_threadsafe run, then drain the bus"""
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    if bus is not None:
        await bus.join()


@pytest.fixture
def mqtt_factory():
    return MqttClientFactory()


@pytest.fixture
def broker_config():
    return {
        "host": "broker.test",
        "port": 443,
        "path": "/mqtt",
        "transport": "websockets",
        "use_tls": True,
        "keepalive": 60,
        "qos": 0,
    }


@pytest.fixture
def credentials():
    return Credentials(username="alice", key="aio_testkey0000000000000000")


UNREACHABLE_API_URL = "http://127.0.0.1:1/api/v2"


class FakeFeedService:
    """Behaviour of the feed's REST resource, adjustable per test"""

    def __init__(self):
        self.post_status = 200
        self.post_delay = 0
        self.last_status = 200
        self.last_body = {"id": "0", "value": "UNLOCK"}
        self.last_raw = None
        self.posted = []
        self.keys = []
        self.paths = []
        self.api_url = None

    async def post_data(self, request):
        self.keys.append(request.headers.get("X-AIO-Key"))
        self.paths.append(request.path)
        body = await request.json()
        if self.post_delay:
            await asyncio.sleep(self.post_delay)
        self.posted.append(body)
        if self.post_status >= 300:
            return web.json_response({"error": "rejected"}, status=self.post_status)
        return web.json_response({"id": str(len(self.posted)), "value": body["value"]}, status=self.post_status)

    async def last_data(self, request):
        self.keys.append(request.headers.get("X-AIO-Key"))
        self.paths.append(request.path)
        if self.last_raw is not None:
            return web.Response(text=self.last_raw, status=self.last_status)
        return web.json_response(self.last_body, status=self.last_status)


@pytest_asyncio.fixture
async def feed_service():
    service = FakeFeedService()
    app = web.Application()
    app.router.add_post("/api/v2/{account}/feeds/{feed_key}/data", service.post_data)
    app.router.add_get("/api/v2/{account}/feeds/{feed_key}/data/last", service.last_data)

    server = TestServer(app)
    await server.start_server()
    service.api_url = str(server.make_url("/api/v2"))
    yield service
    await server.close()
