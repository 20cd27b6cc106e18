"""
Shared test doubles for the MQTT-HTTP bridge tests.
"""
import asyncio
import itertools
from datetime import datetime, timedelta, timezone
from typing import List, Tuple

import pytest

from mqtt_http_bridge.errors import PublishError, TransportError
from mqtt_http_bridge.transport import Transport

FAST_DELAY = 0.05


class FakeTransport(Transport):
    """In-memory broker transport with scripted failures"""

    def __init__(self, fail_connects: int = 0, connect_error=TransportError):
        super().__init__()
        self.fail_connects = fail_connects
        self.connect_error = connect_error
        self.connect_times: List[float] = []
        self.subscriptions: List[Tuple[str, int]] = []
        self.published: List[Tuple[str, bytes, int]] = []
        self.disconnects = 0
        self.connected = False
        self.ack_publishes = True
        self._mids = itertools.count(1)

    async def connect(self) -> None:
        self.connect_times.append(asyncio.get_running_loop().time())
        if len(self.connect_times) <= self.fail_connects:
            raise self.connect_error(f"attempt {len(self.connect_times)} refused")
        self.connected = True

    async def disconnect(self) -> None:
        if self.connected:
            self.disconnects += 1
        self.connected = False

    async def subscribe(self, topic: str, qos: int = 1) -> None:
        if not self.connected:
            raise TransportError("not connected")
        self.subscriptions.append((topic, qos))

    async def publish(self, topic: str, payload: bytes, qos: int = 1, timeout: float = 5.0) -> int:
        if not self.connected:
            raise PublishError("not connected")
        if not self.ack_publishes:
            await asyncio.sleep(timeout)
            raise PublishError("no acknowledgment")
        self.published.append((topic, payload, qos))
        return next(self._mids)

    def drop(self, reason: str = "network unreachable"):
        """Simulate the broker connection going away"""
        self.connected = False
        self._deliver_connection_lost(reason)

    def inject(self, topic: str, payload):
        """Simulate an inbound message"""
        if isinstance(payload, str):
            payload = payload.encode("utf-8")
        self._deliver_message(topic, payload)

    def published_on(self, topic: str) -> List[bytes]:
        return [payload for t, payload, _qos in self.published if t == topic]


async def wait_until(predicate, timeout: float = 2.0, interval: float = 0.005):
    """Poll `predicate` until it is truthy or fail the test"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("condition not met within timeout")
        await asyncio.sleep(interval)


class StepClock:
    """Deterministic clock: every call advances one second"""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)):
        self.now = start
        self.calls = 0

    def __call__(self) -> datetime:
        value = self.now
        self.now = self.now + timedelta(seconds=1)
        self.calls += 1
        return value


