"""
Broker transport interface.

The connection supervisor only talks to the broker through this interface,
which keeps it independent of the MQTT client library and lets tests drive
it with an in-memory transport.
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional

MessageCallback = Callable[[str, bytes], None]
ConnectionLostCallback = Callable[[Optional[str]], None]


class Transport(ABC):
    """One broker connection at a time.

    Callbacks passed to `bind` must be invoked on the event loop thread.
    `on_connection_lost` fires at most once per successful `connect`, and
    never for a disconnect requested through `disconnect()`.
    """

    def __init__(self):
        self._on_message: Optional[MessageCallback] = None
        self._on_connection_lost: Optional[ConnectionLostCallback] = None

    def bind(self, on_message: MessageCallback, on_connection_lost: ConnectionLostCallback):
        """Register the receivers for inbound messages and connection loss"""
        self._on_message = on_message
        self._on_connection_lost = on_connection_lost

    def _deliver_message(self, topic: str, payload: bytes):
        if self._on_message is not None:
            self._on_message(topic, payload)

    def _deliver_connection_lost(self, reason: Optional[str]):
        if self._on_connection_lost is not None:
            self._on_connection_lost(reason)

    @abstractmethod
    async def connect(self) -> None:
        """Open and authenticate a session.

        Raises:
            AuthError: credentials rejected
            TransportError: any other connect failure
        """

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the session gracefully. Safe to call when not connected."""

    @abstractmethod
    async def subscribe(self, topic: str, qos: int = 1) -> None:
        """Raises TransportError if the subscription cannot be sent"""

    @abstractmethod
    async def publish(self, topic: str, payload: bytes, qos: int = 1, timeout: float = 5.0) -> int:
        """Publish and wait for the broker acknowledgment (QoS >= 1).

        Returns the message id.

        Raises:
            PublishError: not connected, rejected, or not acknowledged in time
        """
