"""
Unit tests for configuration and CLI argument handling.
"""
import pytest

from mqtt_http_bridge.__main__ import config_from_args, parse_args
from mqtt_http_bridge.config import BridgeConfig
from mqtt_http_bridge.errors import ConfigError


class TestBridgeConfig:
    """Test cases for BridgeConfig.validate."""

    def test_defaults_are_valid(self):
        config = BridgeConfig().validate()
        assert config.mqtt_port == 8883
        assert config.use_tls is True
        assert config.device_id == "esp8266_001"
        assert config.reconnect_policy().initial_delay == 5.0

    @pytest.mark.parametrize("device_id", ["", "  ", "a/b", "dev+", "dev#"])
    def test_device_id_must_be_topic_safe(self, device_id):
        with pytest.raises(ConfigError):
            BridgeConfig(device_id=device_id).validate()

    def test_credentials_come_in_pairs(self):
        with pytest.raises(ConfigError):
            BridgeConfig(mqtt_username="user").validate()
        with pytest.raises(ConfigError):
            BridgeConfig(mqtt_password="secret").validate()
        BridgeConfig(mqtt_username="user", mqtt_password="secret").validate()

    @pytest.mark.parametrize("overrides", [
        {"mqtt_host": ""},
        {"mqtt_port": 0},
        {"mqtt_port": 70000},
        {"http_port": 0},
        {"reconnect_delay": 0},
        {"publish_timeout": -1},
        {"reconnect_delay": 10, "max_reconnect_delay": 5},
        {"role": "gateway"},
        {"ca_certs": "/nonexistent/ca.pem"},
    ])
    def test_invalid_values(self, overrides):
        with pytest.raises(ConfigError):
            BridgeConfig(**overrides).validate()

    def test_ca_file_must_exist(self, tmp_path):
        ca = tmp_path / "root_ca.pem"
        ca.write_text("-----BEGIN CERTIFICATE-----\n")
        assert BridgeConfig(ca_certs=str(ca)).validate().ca_certs == str(ca)

    def test_client_id_defaults_to_device_and_role(self):
        assert BridgeConfig(device_id="d1").effective_client_id == "d1_bridge"
        assert BridgeConfig(device_id="d1", role="device").effective_client_id == "d1_device"
        assert BridgeConfig(client_id="custom").effective_client_id == "custom"

    def test_broker_settings(self):
        config = BridgeConfig(mqtt_host="broker.example", mqtt_username="u", mqtt_password="p")
        settings = config.broker_settings(will_topic="device/x/status", will_payload="offline")
        assert settings.host == "broker.example"
        assert settings.port == 8883
        assert settings.username == "u"
        assert settings.use_tls is True
        assert settings.will_topic == "device/x/status"


class TestParseArgs:
    """Test cases for CLI parsing."""

    def test_environment_defaults(self, monkeypatch):
        monkeypatch.setenv("MQTT_HOST", "broker.example")
        monkeypatch.setenv("MQTT_PORT", "8884")
        monkeypatch.setenv("DEVICE_ID", "esp_42")
        monkeypatch.setenv("PORT", "8080")

        config = config_from_args(parse_args([]))

        assert config.mqtt_host == "broker.example"
        assert config.mqtt_port == 8884
        assert config.device_id == "esp_42"
        assert config.http_port == 8080

    def test_flags_override_environment(self, monkeypatch):
        monkeypatch.setenv("MQTT_HOST", "broker.example")
        config = config_from_args(parse_args([
            "--mqtt-host", "localhost", "--mqtt-port", "1883", "--no-tls", "--role", "device",
        ]))
        assert config.mqtt_host == "localhost"
        assert config.mqtt_port == 1883
        assert config.use_tls is False
        assert config.role == "device"

    def test_backoff_is_fixed_unless_capped(self, monkeypatch):
        monkeypatch.delenv("MAX_RECONNECT_DELAY", raising=False)
        fixed = config_from_args(parse_args(["--reconnect-delay", "2"]))
        assert fixed.reconnect_delay == fixed.max_reconnect_delay == 2.0

        capped = config_from_args(parse_args(["--reconnect-delay", "1", "--max-reconnect-delay", "30"]))
        assert capped.max_reconnect_delay == 30.0
        capped.validate()
