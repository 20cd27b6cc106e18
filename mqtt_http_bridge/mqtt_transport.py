"""
paho-mqtt implementation of the broker transport.

paho runs its network loop on its own thread (`loop_start`). Every callback
coming off that thread is handed to the asyncio loop with
`call_soon_threadsafe`, so the rest of the bridge only ever runs on the
event loop thread.
"""

import asyncio
import logging
import ssl
from dataclasses import dataclass
from typing import Dict, Optional

import paho.mqtt.client as mqtt

from .errors import AuthError, PublishError, SessionClosingError, TransportError
from .transport import Transport

logger = logging.getLogger(__name__)

# CONNACK reason codes (MQTT 3.1.1 return codes 4 and 5 map onto these)
BAD_CREDENTIALS = 134
NOT_AUTHORIZED = 135
AUTH_FAILURE_CODES = (BAD_CREDENTIALS, NOT_AUTHORIZED)


@dataclass
class BrokerSettings:
    """Connection parameters for one broker session"""
    host: str
    port: int = 8883
    username: Optional[str] = None
    password: Optional[str] = None
    client_id: str = ""
    use_tls: bool = True
    ca_certs: Optional[str] = None
    tls_insecure: bool = False
    keepalive: int = 60
    connect_timeout: float = 10.0
    will_topic: Optional[str] = None
    will_payload: Optional[str] = None


class PahoTransport(Transport):
    """Broker transport backed by paho-mqtt.

    A fresh paho client is created for every connect attempt and torn down
    on loss, so paho's own reconnect logic never competes with the
    supervisor's. Callbacks from a client that is no longer current are
    ignored.
    """

    def __init__(self, settings: BrokerSettings):
        super().__init__()
        self.settings = settings
        self._client: Optional[mqtt.Client] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._connack: Optional[asyncio.Future] = None
        self._pending: Dict[int, asyncio.Future] = {}
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    def _create_client(self) -> mqtt.Client:
        s = self.settings
        client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=s.client_id,
            clean_session=True,
            reconnect_on_failure=False,
        )
        client.connect_timeout = s.connect_timeout

        if s.username:
            client.username_pw_set(s.username, s.password)

        if s.use_tls:
            # ca_certs=None loads the platform trust store
            client.tls_set(ca_certs=s.ca_certs, cert_reqs=ssl.CERT_REQUIRED)
            if s.tls_insecure:
                client.tls_insecure_set(True)

        if s.will_topic:
            client.will_set(s.will_topic, s.will_payload, qos=1, retain=True)

        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message
        client.on_publish = self._on_publish
        client.on_log = self._on_log
        return client

    async def connect(self) -> None:
        self._loop = asyncio.get_running_loop()
        await self.disconnect()

        s = self.settings
        try:
            # tls_set reads the CA file; ssl.SSLError is an OSError
            client = self._create_client()
        except (OSError, ValueError) as e:
            raise TransportError(f"Cannot set up MQTT client for {s.host}:{s.port}: {e}") from e
        self._client = client
        self._connack = self._loop.create_future()

        logger.info(f"Connecting to MQTT broker at {s.host}:{s.port} (tls={s.use_tls})")
        try:
            # Blocking: DNS, TCP and the TLS handshake happen here
            await self._loop.run_in_executor(None, client.connect, s.host, s.port, s.keepalive)
        except (OSError, ValueError) as e:
            self._client = None
            raise TransportError(f"Cannot connect to {s.host}:{s.port}: {e}") from e

        client.loop_start()
        try:
            await asyncio.wait_for(self._connack, timeout=s.connect_timeout)
        except asyncio.TimeoutError as e:
            await self.disconnect()
            raise TransportError(f"No CONNACK from {s.host}:{s.port} within {s.connect_timeout}s") from e
        except TransportError:
            await self.disconnect()
            raise

        self._connected = True

    async def disconnect(self) -> None:
        client = self._client
        if client is None:
            return
        self._client = None
        self._connected = False
        self._fail_pending(SessionClosingError("Broker session closing"))
        await asyncio.get_running_loop().run_in_executor(None, self._shutdown_client, client)
        logger.debug("MQTT client shut down")

    async def subscribe(self, topic: str, qos: int = 1) -> None:
        client = self._client
        if client is None:
            raise TransportError("Cannot subscribe - not connected to broker")
        result, _mid = client.subscribe(topic, qos)
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise TransportError(f"Failed to subscribe to {topic}: {mqtt.error_string(result)}")
        logger.info(f"Subscribed to {topic}")

    async def publish(self, topic: str, payload: bytes, qos: int = 1, timeout: float = 5.0) -> int:
        client = self._client
        if client is None or not self._connected:
            raise PublishError("Cannot publish - not connected to broker")

        info = client.publish(topic, payload, qos=qos)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise PublishError(f"Failed to publish to {topic}: {mqtt.error_string(info.rc)}")
        if qos == 0:
            return info.mid

        # Registered before yielding; the PUBACK handler also runs on this loop
        future = self._loop.create_future()
        self._pending[info.mid] = future
        try:
            await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise PublishError(f"Broker did not acknowledge message {info.mid} within {timeout}s") from e
        finally:
            self._pending.pop(info.mid, None)

        logger.debug(f"Published to {topic} (mid={info.mid})")
        return info.mid

    @staticmethod
    def _shutdown_client(client: mqtt.Client):
        client.disconnect()
        client.loop_stop()

    @staticmethod
    def _log_shutdown_error(future: asyncio.Future):
        if not future.cancelled() and future.exception() is not None:
            logger.error(f"Error shutting down MQTT client: {future.exception()}")

    def _fail_pending(self, error: Exception):
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()

    def _call_soon(self, callback, *args):
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(callback, *args)

    # -------------------- paho callbacks (network thread) --------------------

    def _on_log(self, client, userdata, level, buf):
        logger.debug(f"MQTT: {buf}")

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        self._call_soon(self._handle_connack, client, reason_code)

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties):
        self._call_soon(self._handle_disconnect, client, str(reason_code))

    def _on_message(self, client, userdata, msg):
        self._call_soon(self._handle_message, client, msg.topic, bytes(msg.payload))

    def _on_publish(self, client, userdata, mid, reason_code, properties):
        self._call_soon(self._handle_puback, client, mid, reason_code)

    # -------------------- event loop side --------------------

    def _handle_connack(self, client, reason_code):
        if client is not self._client or self._connack is None or self._connack.done():
            return
        if reason_code.is_failure:
            if reason_code.value in AUTH_FAILURE_CODES:
                error = AuthError(f"Broker rejected credentials: {reason_code}")
            else:
                error = TransportError(f"Broker refused connection: {reason_code}")
            self._connack.set_exception(error)
        else:
            logger.info("Connected to MQTT broker")
            self._connack.set_result(None)

    def _handle_disconnect(self, client, reason: str):
        if client is not self._client:
            return
        if self._connack is not None and not self._connack.done():
            self._connack.set_exception(TransportError(f"Connection closed during handshake: {reason}"))
            return

        logger.warning(f"Disconnected from MQTT broker ({reason})")
        self._client = None
        self._connected = False
        self._fail_pending(PublishError(f"Connection lost: {reason}"))
        # Stop paho from reconnecting on its own
        shutdown = self._loop.run_in_executor(None, self._shutdown_client, client)
        shutdown.add_done_callback(self._log_shutdown_error)
        self._deliver_connection_lost(reason)

    def _handle_message(self, client, topic: str, payload: bytes):
        if client is self._client:
            self._deliver_message(topic, payload)

    def _handle_puback(self, client, mid: int, reason_code):
        future = self._pending.get(mid)
        if future is None or future.done():
            return
        if reason_code.is_failure:
            future.set_exception(PublishError(f"Broker rejected message {mid}: {reason_code}"))
        else:
            future.set_result(None)
