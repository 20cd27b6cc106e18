"""
Test configuration and fixtures for the MQTT-HTTP bridge tests.
"""
import os

import pytest
import pytest_asyncio

from mqtt_http_bridge.config import BridgeConfig
from mqtt_http_bridge.supervisor import ConnectionSupervisor, ReconnectPolicy

from helpers import FAST_DELAY, FakeTransport, StepClock


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def step_clock():
    return StepClock()


@pytest.fixture
def fast_policy():
    return ReconnectPolicy(initial_delay=FAST_DELAY, max_delay=FAST_DELAY)


@pytest.fixture
def bridge_config():
    """Configuration with short timings for tests"""
    return BridgeConfig(
        mqtt_host="test_broker",
        mqtt_port=8883,
        device_id="test_esp_001",
        reconnect_delay=FAST_DELAY,
        max_reconnect_delay=FAST_DELAY,
        publish_timeout=0.2,
        publish_interval=60.0,
    )


@pytest_asyncio.fixture
async def supervisor(fake_transport, fast_policy):
    """Supervisor over a FakeTransport, stopped after the test"""
    sup = ConnectionSupervisor(fake_transport, reconnect_policy=fast_policy, name="test")
    yield sup
    await sup.stop()


@pytest.fixture
def mqtt_test_config():
    """Configuration for MQTT integration tests."""
    return {
        "broker": os.getenv("MQTT_TEST_BROKER", "localhost"),
        "port": int(os.getenv("MQTT_TEST_PORT", "1883")),
        "username": os.getenv("MQTT_TEST_USERNAME"),
        "password": os.getenv("MQTT_TEST_PASSWORD"),
    }


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")


def pytest_collection_modifyitems(config, items):
    """Add markers to tests based on file location."""
    for item in items:
        location = str(item.fspath)
        if os.sep + "unit" + os.sep in location:
            item.add_marker(pytest.mark.unit)
        elif os.sep + "integration" + os.sep in location:
            item.add_marker(pytest.mark.integration)
