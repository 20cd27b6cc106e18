"""
Configuration for the MQTT-HTTP bridge.
"""

import os
from dataclasses import dataclass
from typing import Optional

from .errors import ConfigError
from .mqtt_transport import BrokerSettings
from .supervisor import ReconnectPolicy

ROLE_BRIDGE = "bridge"
ROLE_DEVICE = "device"
ROLES = (ROLE_BRIDGE, ROLE_DEVICE)

# Characters that would break out of the device's topic namespace
_FORBIDDEN_ID_CHARS = "/+#"


@dataclass
class BridgeConfig:
    """Configuration for the MQTT-HTTP bridge"""
    mqtt_host: str = "localhost"
    mqtt_port: int = 8883
    mqtt_username: Optional[str] = None
    mqtt_password: Optional[str] = None
    device_id: str = "esp8266_001"
    client_id: Optional[str] = None
    use_tls: bool = True
    ca_certs: Optional[str] = None
    tls_insecure: bool = False
    keepalive: int = 60
    connect_timeout: float = 10.0
    reconnect_delay: float = 5.0
    max_reconnect_delay: float = 5.0
    publish_timeout: float = 5.0
    publish_interval: float = 5.0
    http_host: str = "0.0.0.0"
    http_port: int = 3000
    log_level: str = "INFO"
    role: str = ROLE_BRIDGE

    def validate(self) -> "BridgeConfig":
        """Check the configuration, raising ConfigError on the first problem"""
        if not self.mqtt_host:
            raise ConfigError("MQTT host is required")
        if not 0 < self.mqtt_port < 65536:
            raise ConfigError(f"Invalid MQTT port: {self.mqtt_port}")
        if not 0 < self.http_port < 65536:
            raise ConfigError(f"Invalid HTTP port: {self.http_port}")

        if not self.device_id or not self.device_id.strip():
            raise ConfigError("Device ID is required")
        bad = [c for c in _FORBIDDEN_ID_CHARS if c in self.device_id]
        if bad:
            raise ConfigError(f"Device ID may not contain {''.join(bad)!r}: {self.device_id}")

        if bool(self.mqtt_username) != bool(self.mqtt_password):
            raise ConfigError("MQTT username and password must be given together")

        for name in ("keepalive", "connect_timeout", "reconnect_delay",
                     "max_reconnect_delay", "publish_timeout", "publish_interval"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")
        if self.max_reconnect_delay < self.reconnect_delay:
            raise ConfigError("max_reconnect_delay must not be smaller than reconnect_delay")

        if self.role not in ROLES:
            raise ConfigError(f"Unknown role {self.role!r}, expected one of {', '.join(ROLES)}")
        if self.ca_certs and not os.path.isfile(self.ca_certs):
            raise ConfigError(f"CA certificate file not found: {self.ca_certs}")
        return self

    @property
    def effective_client_id(self) -> str:
        if self.client_id:
            return self.client_id
        suffix = "bridge" if self.role == ROLE_BRIDGE else "device"
        return f"{self.device_id}_{suffix}"

    def broker_settings(self, will_topic: Optional[str] = None,
                        will_payload: Optional[str] = None) -> BrokerSettings:
        return BrokerSettings(
            host=self.mqtt_host,
            port=self.mqtt_port,
            username=self.mqtt_username,
            password=self.mqtt_password,
            client_id=self.effective_client_id,
            use_tls=self.use_tls,
            ca_certs=self.ca_certs,
            tls_insecure=self.tls_insecure,
            keepalive=self.keepalive,
            connect_timeout=self.connect_timeout,
            will_topic=will_topic,
            will_payload=will_payload,
        )

    def reconnect_policy(self) -> ReconnectPolicy:
        return ReconnectPolicy(initial_delay=self.reconnect_delay, max_delay=self.max_reconnect_delay)
