"""Shared fixtures: a scriptable fake transport and channel builders."""

import asyncio
import json

import pytest

from kalze_client.channel import KalzeChannel
from kalze_client.transport import Transport
from kalze_client.types import KalzeOptions

VALID_KEY = "wpk_live_" + "a1B2_c3-D4" * 4 + "xyz"  # 43 chars after prefix
SUBDOMAIN = "rojo-azul-casa-gato"


class FakeTransport(Transport):
    """Records what the channel does and lets tests play the server."""

    def __init__(self):
        super().__init__()
        self.url = None
        self.sent = []
        self.closed = None
        self._open = False

    @property
    def is_open(self):
        return self._open

    def open(self, url):
        self.url = url

    def send(self, data):
        if not self._open:
            return False
        self.sent.append(data)
        return True

    def close(self, code, reason=""):
        self.closed = (code, reason)
        self._open = False

    # -- Server side ----------------------------------------------------------

    def server_open(self):
        self._open = True
        if self.on_open:
            self.on_open()

    def server_send(self, message):
        raw = message if isinstance(message, (str, bytes)) else json.dumps(message)
        if self.on_message:
            self.on_message(raw)

    def establish(self, socket_id="sock-1"):
        self.server_open()
        self.server_send(
            {
                "event": "connection:established",
                "data": {
                    "socketId": socket_id,
                    "channel": "orders",
                    "subdomain": SUBDOMAIN,
                    "timestamp": 1700000000000,
                },
            }
        )

    def server_close(self, code, reason=""):
        self._open = False
        if self.on_close:
            self.on_close(code, reason)

    def server_error(self, exc=None):
        if self.on_error:
            self.on_error(exc or OSError("boom"))

    @property
    def sent_messages(self):
        return [json.loads(s) for s in self.sent]


class FakeTransportFactory:
    def __init__(self):
        self.transports = []

    def __call__(self):
        transport = FakeTransport()
        self.transports.append(transport)
        return transport

    @property
    def last(self):
        return self.transports[-1]


async def wait_until(predicate, timeout=1.0):
    """Poll ``predicate`` on the running loop until true or timeout."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.002)


@pytest.fixture
def factory():
    return FakeTransportFactory()


@pytest.fixture
def make_channel(factory):
    """Build a channel on the fake transport.

    The handshake watchdog is off by default so channels can be built
    outside an event loop; tests that need it pass ``handshake_timeout``.
    """
    created = []

    def _make(name="orders", **overrides):
        fields = {
            "key": VALID_KEY,
            "subdomain": SUBDOMAIN,
            "handshake_timeout": None,
            "reconnect_delay": 0.01,
        }
        fields.update(overrides)
        channel = KalzeChannel(name, KalzeOptions(**fields), transport_factory=factory)
        created.append(channel)
        return channel

    yield _make

    for channel in created:
        channel.disconnect()


def record(channel, event="*"):
    """Collect everything delivered for ``event`` into a list."""
    received = []
    channel.on(event, received.append)
    return received
