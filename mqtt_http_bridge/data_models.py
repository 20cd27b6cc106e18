"""
Data models for the MQTT-HTTP bridge.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from .errors import InvalidInput
from .timezone_utils import utc_isoformat, utc_now

LED_ON = "LED_ON"
LED_OFF = "LED_OFF"


@dataclass(frozen=True)
class DeviceState:
    """Last-known snapshot reported by the device.

    `observed_at` is always the bridge's receipt time. Optional fields are
    None when the device did not report them (or reported garbage).
    """
    led_state: bool
    observed_at: datetime
    uptime_seconds: Optional[int] = None
    free_heap_bytes: Optional[int] = None
    signal_strength_dbm: Optional[int] = None
    placeholder: bool = False

    @classmethod
    def initial(cls, now: Optional[datetime] = None) -> "DeviceState":
        """Startup value, used until the first telemetry message arrives"""
        return cls(led_state=False, observed_at=now or utc_now(), placeholder=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ledState": self.led_state,
            "observedAt": utc_isoformat(self.observed_at),
            "uptimeSeconds": self.uptime_seconds,
            "freeHeapBytes": self.free_heap_bytes,
            "signalStrengthDbm": self.signal_strength_dbm,
            "placeholder": self.placeholder,
        }


class SessionState(str, Enum):
    """Broker session lifecycle"""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


@dataclass
class SessionMetrics:
    """Counters kept by the connection supervisor"""
    connect_attempts: int = 0
    successful_connects: int = 0
    connection_losses: int = 0
    messages_received: int = 0
    publishes: int = 0
    started_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "connectAttempts": self.connect_attempts,
            "successfulConnects": self.successful_connects,
            "connectionLosses": self.connection_losses,
            "messagesReceived": self.messages_received,
            "publishes": self.publishes,
            "startedAt": utc_isoformat(self.started_at),
        }


@dataclass(frozen=True)
class Command:
    """Outbound instruction for the device.

    Either a boolean actuator command normalized to LED_ON/LED_OFF, or an
    opaque free-text string.
    """
    text: str
    structured: bool = False

    @classmethod
    def from_bool(cls, value: Any) -> "Command":
        # bool is checked exactly; 1/0 and "true" are not accepted
        if not isinstance(value, bool):
            raise InvalidInput("Invalid command. Expected { state: boolean }")
        return cls(text=LED_ON if value else LED_OFF, structured=True)

    @classmethod
    def from_text(cls, value: Any) -> "Command":
        if not isinstance(value, str) or not value.strip():
            raise InvalidInput("Invalid command. Expected a non-empty string")
        return cls(text=value.strip())

    @property
    def payload(self) -> bytes:
        return self.text.encode("utf-8")


@dataclass(frozen=True)
class AckInfo:
    """Broker acknowledgment for a single publish"""
    message_id: int
    topic: str
    command: str
    qos: int
    acknowledged_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "messageId": self.message_id,
            "topic": self.topic,
            "qos": self.qos,
            "acknowledgedAt": utc_isoformat(self.acknowledged_at),
        }
