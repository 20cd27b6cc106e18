"""
Main Bridge Coordinator

Wires the topic namespace, state cache, connection supervisor and command
dispatcher for one device, and exposes the operations the HTTP facade
calls.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from .config import BridgeConfig
from .data_models import AckInfo, DeviceState
from .dispatcher import CommandDispatcher
from .errors import DecodeError
from .mqtt_transport import PahoTransport
from .state_cache import StateCache
from .supervisor import ConnectionSupervisor
from .timezone_utils import utc_isoformat, utc_now
from .topics import topics_for
from .transport import Transport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Snapshot:
    """Cached device state plus the current connectivity fact"""
    state: DeviceState
    session_connected: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"data": self.state.to_dict(), "mqttConnected": self.session_connected}


class DeviceBridge:
    """Main bridge coordinator class"""

    def __init__(self, config: BridgeConfig,
                 transport: Optional[Transport] = None,
                 clock: Callable[[], datetime] = utc_now):
        self.config = config
        self.topics = topics_for(config.device_id)
        self.state_cache = StateCache(clock=clock)
        self.transport = transport or PahoTransport(config.broker_settings())
        self.supervisor = ConnectionSupervisor(
            self.transport,
            reconnect_policy=config.reconnect_policy(),
            name="bridge",
        )
        self.dispatcher = CommandDispatcher(self.supervisor, self.topics, config.publish_timeout)

        self.started_at = utc_now()
        self.decode_errors = 0
        self.last_status: Optional[str] = None
        self.last_status_at: Optional[datetime] = None
        self.running = False
        self._setup_event_handlers()

    def _setup_event_handlers(self):
        self.supervisor.add_message_handler(self.topics.telemetry, self._handle_telemetry)
        self.supervisor.add_message_handler(self.topics.status, self._handle_device_status)
        self.supervisor.add_connection_callback(self._on_mqtt_connected)

    async def start(self):
        if self.running:
            logger.warning("Bridge already running")
            return
        logger.info(f"Starting bridge for device {self.config.device_id}")
        await self.supervisor.start()
        self.running = True

    async def stop(self):
        logger.info("Stopping bridge...")
        self.running = False
        await self.supervisor.stop()

    # -------------------- inbound --------------------

    def _handle_telemetry(self, topic: str, payload: bytes):
        try:
            state = self.state_cache.replace(payload)
        except DecodeError as e:
            # Keep the last good snapshot
            self.decode_errors += 1
            logger.warning(f"Discarding telemetry on {topic}: {e}")
            return
        logger.info(f"Data updated: ledState={state.led_state}")

    def _handle_device_status(self, topic: str, payload: bytes):
        status = payload.decode("utf-8", errors="replace").strip()
        self.last_status = status
        self.last_status_at = utc_now()
        logger.info(f"Status: {status}")

    def _on_mqtt_connected(self):
        logger.info(f"Listening on {self.topics.telemetry} and {self.topics.status}")

    # -------------------- operations used by the HTTP facade --------------------

    def get_snapshot(self) -> Snapshot:
        return Snapshot(
            state=self.state_cache.read(),
            session_connected=self.supervisor.is_connected(),
        )

    def get_health(self) -> Dict[str, Any]:
        return {
            "sessionConnected": self.supervisor.is_connected(),
            "lastError": self.supervisor.last_error(),
            "sessionState": self.supervisor.state.value,
        }

    def get_status(self) -> Dict[str, Any]:
        """Detailed session report"""
        return {
            "connected": self.supervisor.is_connected(),
            "state": self.supervisor.state.value,
            "lastError": self.supervisor.last_error(),
            "topics": self.topics.to_dict(),
            "lastStatus": self.last_status,
            "lastStatusAt": utc_isoformat(self.last_status_at) if self.last_status_at else None,
            "decodeErrors": self.decode_errors,
            "metrics": self.supervisor.metrics.to_dict(),
        }

    async def send_bool_command(self, value: Any) -> AckInfo:
        return await self.dispatcher.send_bool_command(value)

    async def send_raw_command(self, text: Any) -> AckInfo:
        return await self.dispatcher.send_raw_command(text)
