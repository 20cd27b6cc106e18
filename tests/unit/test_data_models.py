"""
Unit tests for data models and the reconnect policy.
"""
from datetime import datetime, timezone
from itertools import islice

import pytest

from mqtt_http_bridge.data_models import AckInfo, Command, DeviceState, SessionState
from mqtt_http_bridge.errors import InvalidInput
from mqtt_http_bridge.supervisor import ReconnectPolicy

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class TestCommand:
    """Test cases for Command normalization."""

    def test_bool_commands(self):
        assert Command.from_bool(True).text == "LED_ON"
        assert Command.from_bool(False).text == "LED_OFF"
        assert Command.from_bool(True).structured is True

    @pytest.mark.parametrize("value", [1, 0, "true", "on", None, [True]])
    def test_non_bool_rejected(self, value):
        with pytest.raises(InvalidInput):
            Command.from_bool(value)

    def test_text_is_trimmed(self):
        command = Command.from_text("  REBOOT \n")
        assert command.text == "REBOOT"
        assert command.payload == b"REBOOT"
        assert command.structured is False

    @pytest.mark.parametrize("value", ["", "   ", "\t\n", None, 42])
    def test_empty_or_non_string_rejected(self, value):
        with pytest.raises(InvalidInput):
            Command.from_text(value)


class TestDeviceState:
    """Test cases for DeviceState."""

    def test_initial_is_placeholder(self):
        state = DeviceState.initial(T0)
        assert state == DeviceState(led_state=False, observed_at=T0, placeholder=True)

    def test_to_dict_keeps_unknown_fields_null(self):
        state = DeviceState(led_state=True, observed_at=T0, uptime_seconds=120)
        assert state.to_dict() == {
            "ledState": True,
            "observedAt": "2024-01-01T12:00:00Z",
            "uptimeSeconds": 120,
            "freeHeapBytes": None,
            "signalStrengthDbm": None,
            "placeholder": False,
        }


def test_ack_info_to_dict():
    ack = AckInfo(message_id=3, topic="device/d1/command", command="LED_ON", qos=1, acknowledged_at=T0)
    assert ack.to_dict() == {
        "messageId": 3,
        "topic": "device/d1/command",
        "qos": 1,
        "acknowledgedAt": "2024-01-01T12:00:00Z",
    }


def test_session_state_values():
    assert [s.value for s in SessionState] == ["disconnected", "connecting", "connected", "reconnecting"]


class TestReconnectPolicy:
    """Test cases for ReconnectPolicy."""

    def test_default_is_fixed_five_seconds(self):
        assert list(islice(ReconnectPolicy().delays(), 4)) == [5.0, 5.0, 5.0, 5.0]

    def test_capped_exponential(self):
        policy = ReconnectPolicy(initial_delay=1.0, max_delay=8.0, multiplier=2.0)
        assert list(islice(policy.delays(), 6)) == [1.0, 2.0, 4.0, 8.0, 8.0, 8.0]
