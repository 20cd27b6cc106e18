"""
Connection supervisor: owns the single broker session.

It runs as one background task that connects, subscribes, waits for the
connection to drop and reconnects with backoff, forever, until `stop()`.
Inbound messages are queued by the transport callbacks and dispatched by a
separate receiver task, so a slow handler never stalls the session.
"""

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Iterator, List, Optional, Tuple, Union

from .data_models import AckInfo, SessionMetrics, SessionState
from .errors import PublishError, SessionClosingError, TransportError
from .transport import Transport

logger = logging.getLogger(__name__)

MessageHandler = Callable[[str, bytes], Union[None, Awaitable[None]]]
ConnectionCallback = Callable[[], Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class ReconnectPolicy:
    """Delay schedule between connect attempts.

    With `initial_delay == max_delay` the interval is fixed; otherwise the
    delay grows by `multiplier` up to `max_delay`.
    """
    initial_delay: float = 5.0
    max_delay: float = 5.0
    multiplier: float = 2.0

    def delays(self) -> Iterator[float]:
        delay = self.initial_delay
        while True:
            yield delay
            delay = min(delay * self.multiplier, self.max_delay)


class BrokerSession(ABC):
    """What the rest of the bridge may do with the broker session"""

    @abstractmethod
    def is_connected(self) -> bool:
        ...

    @abstractmethod
    def last_error(self) -> Optional[str]:
        ...

    @abstractmethod
    async def publish(self, topic: str, payload: bytes, qos: int = 1,
                      timeout: float = 5.0) -> AckInfo:
        ...


class ConnectionSupervisor(BrokerSession):
    """Keeps one broker session alive and routes inbound messages"""

    def __init__(self, transport: Transport,
                 reconnect_policy: Optional[ReconnectPolicy] = None,
                 subscribe_qos: int = 1,
                 name: str = "bridge"):
        self.transport = transport
        self.reconnect_policy = reconnect_policy or ReconnectPolicy()
        self.subscribe_qos = subscribe_qos
        self.name = name
        self.metrics = SessionMetrics()

        self._handlers: Dict[str, MessageHandler] = {}
        self._connection_callbacks: List[ConnectionCallback] = []
        self._state = SessionState.DISCONNECTED
        self._connected = False
        self._last_error: Optional[str] = None

        self._inbound: "asyncio.Queue[Tuple[str, bytes]]" = asyncio.Queue()
        self._session_lost = asyncio.Event()
        self._stop_requested = asyncio.Event()
        self._closing = False
        self._task: Optional[asyncio.Task] = None
        self._receiver: Optional[asyncio.Task] = None

        self.transport.bind(self._on_message, self._on_connection_lost)

    # -------------------- registration --------------------

    def add_message_handler(self, topic: str, handler: MessageHandler):
        """Route messages on `topic` to `handler`; the topic is subscribed on every connect"""
        self._handlers[topic] = handler
        logger.debug(f"Registered handler for {topic}")

    def add_connection_callback(self, callback: ConnectionCallback):
        """Run `callback` after each successful (re)connect and subscribe"""
        self._connection_callbacks.append(callback)

    @property
    def subscriptions(self) -> List[str]:
        return list(self._handlers)

    # -------------------- observability --------------------

    @property
    def state(self) -> SessionState:
        return self._state

    def is_connected(self) -> bool:
        return self._connected

    def last_error(self) -> Optional[str]:
        return self._last_error

    # -------------------- lifecycle --------------------

    async def start(self):
        """Start the supervisor and receiver tasks; returns immediately"""
        if self._task is not None:
            logger.warning("Supervisor already running")
            return
        self._closing = False
        self._stop_requested.clear()
        self._receiver = asyncio.create_task(self._receive_loop(), name=f"{self.name}-receiver")
        self._task = asyncio.create_task(self._run(), name=f"{self.name}-supervisor")

    async def stop(self):
        """End the session gracefully and stop reconnecting"""
        if self._task is None:
            return
        logger.info("Stopping connection supervisor...")
        self._closing = True
        self._connected = False
        self._stop_requested.set()

        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None

        if self._receiver is not None:
            self._receiver.cancel()
            await asyncio.gather(self._receiver, return_exceptions=True)
            self._receiver = None

        self._state = SessionState.DISCONNECTED
        logger.info("Connection supervisor stopped")

    async def _run(self):
        delays = self.reconnect_policy.delays()
        first_attempt = True
        try:
            while not self._stop_requested.is_set():
                self._state = SessionState.CONNECTING if first_attempt else SessionState.RECONNECTING
                first_attempt = False

                if not await self._establish():
                    self._state = SessionState.RECONNECTING
                    delay = next(delays)
                    logger.info(f"Retrying broker connection in {delay:.1f}s")
                    await self._pause(delay)
                    continue

                delays = self.reconnect_policy.delays()
                await self._wait_for_loss_or_stop()

                if self._stop_requested.is_set():
                    break

                self._state = SessionState.RECONNECTING
                self.metrics.connection_losses += 1
                await self._close_transport()
                delay = next(delays)
                logger.info(f"Reconnecting to broker in {delay:.1f}s")
                await self._pause(delay)
        finally:
            self._connected = False
            await self._close_transport()
            self._state = SessionState.DISCONNECTED

    async def _establish(self) -> bool:
        """One connect + subscribe attempt; True when the session is live"""
        self.metrics.connect_attempts += 1
        self._session_lost.clear()
        try:
            await self.transport.connect()
            for topic in self._handlers:
                # Always reissued: subscriptions do not survive a new session
                await self.transport.subscribe(topic, self.subscribe_qos)
        except TransportError as e:
            # AuthError included: a bad password and a broker hiccup look alike
            self._last_error = f"{type(e).__name__}: {e}"
            logger.warning(f"Broker connection attempt {self.metrics.connect_attempts} failed: {e}")
            await self._close_transport()
            return False
        except Exception as e:
            self._last_error = f"{type(e).__name__}: {e}"
            logger.error(f"Unexpected error on broker connection attempt {self.metrics.connect_attempts}: {e}")
            await self._close_transport()
            return False

        if self._session_lost.is_set():
            return False

        self._connected = True
        self._last_error = None
        self._state = SessionState.CONNECTED
        self.metrics.successful_connects += 1
        logger.info(f"Broker session established ({len(self._handlers)} subscriptions)")

        for callback in self._connection_callbacks:
            try:
                result = callback()
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Error in connection callback: {e}")
        return True

    async def _close_transport(self):
        try:
            await self.transport.disconnect()
        except Exception as e:
            logger.error(f"Error closing broker session: {e}")

    async def _wait_for_loss_or_stop(self):
        lost = asyncio.ensure_future(self._session_lost.wait())
        stop = asyncio.ensure_future(self._stop_requested.wait())
        try:
            await asyncio.wait({lost, stop}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            lost.cancel()
            stop.cancel()

    async def _pause(self, delay: float):
        """Sleep for `delay` unless a stop is requested first"""
        try:
            await asyncio.wait_for(self._stop_requested.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    # -------------------- transport callbacks (event loop) --------------------

    def _on_message(self, topic: str, payload: bytes):
        self._inbound.put_nowait((topic, payload))

    def _on_connection_lost(self, reason: Optional[str]):
        self._connected = False
        self._last_error = f"Connection lost: {reason}" if reason else "Connection lost"
        self._session_lost.set()

    # -------------------- inbound dispatch --------------------

    async def _receive_loop(self):
        while True:
            topic, payload = await self._inbound.get()
            self.metrics.messages_received += 1
            try:
                await self._dispatch(topic, payload)
            except Exception as e:
                logger.error(f"Error in message handler for {topic}: {e}")

    async def _dispatch(self, topic: str, payload: bytes):
        handler = self._handlers.get(topic)
        if handler is None:
            logger.debug(f"No handler for topic: {topic}")
            return
        logger.debug(f"Received message on {topic}: {payload!r}")
        result = handler(topic, payload)
        if inspect.isawaitable(result):
            await result

    # -------------------- outbound --------------------

    async def publish(self, topic: str, payload: bytes, qos: int = 1,
                      timeout: float = 5.0) -> AckInfo:
        if self._closing:
            raise SessionClosingError("Broker session closing")
        if not self._connected:
            raise PublishError("Not connected to broker")

        message_id = await self.transport.publish(topic, payload, qos=qos, timeout=timeout)
        self.metrics.publishes += 1
        return AckInfo(
            message_id=message_id,
            topic=topic,
            command=payload.decode("utf-8", errors="replace"),
            qos=qos,
        )
