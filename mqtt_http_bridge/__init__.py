"""
MQTT-HTTP Bridge

Bridges a microcontroller-class device (talking MQTT) to HTTP clients:
keeps one supervised broker session, caches the device's last reported
state and forwards commands.
"""

__version__ = "1.0.0"

from .data_models import (
    AckInfo,
    Command,
    DeviceState,
    SessionState,
)
from .errors import (
    AuthError,
    BridgeError,
    ConfigError,
    DecodeError,
    InvalidInput,
    PublishError,
    SessionClosingError,
    TransportError,
)
from .topics import TopicSet, topics_for
from .state_cache import StateCache
from .supervisor import BrokerSession, ConnectionSupervisor, ReconnectPolicy
from .dispatcher import CommandDispatcher
from .config import BridgeConfig
from .bridge import DeviceBridge

__all__ = [
    "DeviceBridge",
    "BridgeConfig",
    "ConnectionSupervisor",
    "BrokerSession",
    "ReconnectPolicy",
    "CommandDispatcher",
    "StateCache",
    "TopicSet",
    "topics_for",
    "DeviceState",
    "SessionState",
    "Command",
    "AckInfo",
    "BridgeError",
    "ConfigError",
    "TransportError",
    "AuthError",
    "DecodeError",
    "InvalidInput",
    "PublishError",
    "SessionClosingError",
]
