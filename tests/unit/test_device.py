"""
Unit tests for the device-side agent.
"""
import json

import pytest
import pytest_asyncio

from mqtt_http_bridge.device import DeviceAgent, LedActuator, UptimeProbe

from helpers import FakeTransport, wait_until


@pytest_asyncio.fixture
async def agent(bridge_config):
    transport = FakeTransport()
    device = DeviceAgent(
        bridge_config,
        transport=transport,
        health_probe=lambda: {"uptime": 120, "freeHeap": 30000, "rssi": -55},
    )
    yield device
    await device.stop()


def test_led_actuator():
    led = LedActuator()
    assert led.apply("LED_ON") is True
    assert led.state is True
    assert led.apply("LED_OFF") is True
    assert led.state is False
    assert led.apply("led_on") is False
    assert led.state is False


def test_uptime_probe_reports_only_uptime():
    report = UptimeProbe()()
    assert set(report) == {"uptime"}
    assert report["uptime"] >= 0


@pytest.mark.asyncio
async def test_subscribes_to_command_topic_and_announces_online(agent):
    await agent.start()
    await wait_until(lambda: agent.transport.published_on(agent.topics.status))

    assert agent.transport.subscriptions == [("device/test_esp_001/command", 1)]
    assert agent.transport.published_on(agent.topics.status) == [b"online"]


@pytest.mark.asyncio
async def test_command_drives_led_and_publishes_immediately(agent):
    await agent.start()
    await wait_until(agent.supervisor.is_connected)

    agent.transport.inject(agent.topics.command, "LED_ON")
    await wait_until(lambda: agent.transport.published_on(agent.topics.telemetry))

    assert agent.actuator.state is True
    telemetry = json.loads(agent.transport.published_on(agent.topics.telemetry)[0])
    assert telemetry == {"ledState": True, "uptime": 120, "freeHeap": 30000, "rssi": -55}
    assert agent.telemetry_sent == 1


@pytest.mark.asyncio
async def test_unknown_command_is_ignored(agent):
    await agent.start()
    await wait_until(agent.supervisor.is_connected)

    agent.transport.inject(agent.topics.command, "SELF_DESTRUCT")
    agent.transport.inject(agent.topics.command, "LED_OFF")
    await wait_until(lambda: agent.telemetry_sent == 1)

    assert agent.actuator.state is False
    assert len(agent.transport.published_on(agent.topics.telemetry)) == 1


@pytest.mark.asyncio
async def test_periodic_publish(bridge_config):
    bridge_config.publish_interval = 0.02
    device = DeviceAgent(bridge_config, transport=FakeTransport())
    try:
        await device.start()
        await wait_until(lambda: device.telemetry_sent >= 3)
    finally:
        await device.stop()

    payload = json.loads(device.transport.published_on(device.topics.telemetry)[-1])
    assert payload["ledState"] is False
    assert "uptime" in payload


@pytest.mark.asyncio
async def test_publish_without_session_is_skipped(agent):
    assert await agent.publish_telemetry() is False
    assert agent.telemetry_sent == 0
