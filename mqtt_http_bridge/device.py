"""
Device-side counterpart of the bridge.

Behaves like the firmware: subscribes to its command topic, drives an LED,
and publishes telemetry both on a fixed timer and right after every
command. Useful for exercising a bridge without hardware.
"""

import asyncio
import json
import logging
import time
from typing import Any, Callable, Dict, Optional

from .config import BridgeConfig
from .data_models import LED_OFF, LED_ON
from .errors import PublishError
from .mqtt_transport import PahoTransport
from .supervisor import ConnectionSupervisor
from .topics import topics_for
from .transport import Transport

logger = logging.getLogger(__name__)

STATUS_ONLINE = "online"
STATUS_OFFLINE = "offline"

HealthProbe = Callable[[], Dict[str, Any]]


class LedActuator:
    """In-memory LED; swap for a GPIO-backed one on real hardware"""

    def __init__(self, initial: bool = False):
        self.state = initial

    def apply(self, command: str) -> bool:
        """Apply a command token; False if the token is not an LED command"""
        if command == LED_ON:
            self.state = True
        elif command == LED_OFF:
            self.state = False
        else:
            return False
        return True


class UptimeProbe:
    """Reports uptime only; heap and signal strength are unknown off-device"""

    def __init__(self):
        self._boot = time.monotonic()

    def __call__(self) -> Dict[str, Any]:
        return {"uptime": int(time.monotonic() - self._boot)}


class DeviceAgent:
    """Simulated device that publishes telemetry and obeys commands"""

    def __init__(self, config: BridgeConfig,
                 transport: Optional[Transport] = None,
                 actuator: Optional[LedActuator] = None,
                 health_probe: Optional[HealthProbe] = None):
        self.config = config
        self.topics = topics_for(config.device_id)
        self.actuator = actuator or LedActuator()
        self.health_probe = health_probe or UptimeProbe()
        self.transport = transport or PahoTransport(
            config.broker_settings(will_topic=self.topics.status, will_payload=STATUS_OFFLINE)
        )
        self.supervisor = ConnectionSupervisor(
            self.transport,
            reconnect_policy=config.reconnect_policy(),
            name="device",
        )
        self.supervisor.add_message_handler(self.topics.command, self._handle_command)
        self.supervisor.add_connection_callback(self._announce_online)

        self.telemetry_sent = 0
        self._publisher: Optional[asyncio.Task] = None

    async def start(self):
        logger.info(f"Starting device agent {self.config.device_id}")
        await self.supervisor.start()
        self._publisher = asyncio.create_task(self._publish_loop(), name="device-telemetry")

    async def stop(self):
        if self._publisher is not None:
            self._publisher.cancel()
            await asyncio.gather(self._publisher, return_exceptions=True)
            self._publisher = None
        await self.supervisor.stop()

    def telemetry(self) -> Dict[str, Any]:
        payload = {"ledState": self.actuator.state}
        payload.update(self.health_probe())
        return payload

    async def publish_telemetry(self) -> bool:
        """Publish the current state once; False when there is no session"""
        payload = json.dumps(self.telemetry()).encode("utf-8")
        try:
            await self.supervisor.publish(self.topics.telemetry, payload, qos=0,
                                          timeout=self.config.publish_timeout)
        except PublishError as e:
            logger.debug(f"Telemetry not sent: {e}")
            return False
        self.telemetry_sent += 1
        return True

    async def _publish_loop(self):
        while True:
            await asyncio.sleep(self.config.publish_interval)
            await self.publish_telemetry()

    async def _announce_online(self):
        try:
            await self.supervisor.publish(self.topics.status, STATUS_ONLINE.encode("utf-8"),
                                          qos=1, timeout=self.config.publish_timeout)
        except PublishError as e:
            logger.warning(f"Could not announce status: {e}")

    async def _handle_command(self, topic: str, payload: bytes):
        command = payload.decode("utf-8", errors="replace").strip()
        logger.info(f"Command received: {command}")
        if not self.actuator.apply(command):
            logger.warning(f"Unknown command: {command}")
            return
        logger.info(f"LED {'ON' if self.actuator.state else 'OFF'}")
        # Report the change right away instead of waiting for the timer
        await self.publish_telemetry()
