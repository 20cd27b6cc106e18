"""
Command dispatcher: publishes commands on the device's command topic.

The dispatcher's contract ends at the broker. A successful return means the
broker acknowledged the message (QoS 1); it says nothing about whether the
device received or executed it. The state cache is never touched here; the
device confirms changes through its own telemetry.
"""

import logging
from typing import Any

from .data_models import AckInfo, Command
from .errors import PublishError
from .supervisor import BrokerSession
from .topics import TopicSet

logger = logging.getLogger(__name__)

COMMAND_QOS = 1


class CommandDispatcher:
    """Sends commands through an injected broker session"""

    def __init__(self, session: BrokerSession, topics: TopicSet, publish_timeout: float = 5.0):
        self.session = session
        self.topics = topics
        self.publish_timeout = publish_timeout

    async def send_bool_command(self, value: Any) -> AckInfo:
        """Publish LED_ON / LED_OFF.

        Raises:
            InvalidInput: value is not a bool
            PublishError: no live session, or no broker acknowledgment
        """
        return await self.send(Command.from_bool(value))

    async def send_raw_command(self, text: Any) -> AckInfo:
        """Publish a free-text command (surrounding whitespace trimmed).

        Empty or whitespace-only input is rejected before any network I/O.
        """
        return await self.send(Command.from_text(text))

    async def send(self, command: Command) -> AckInfo:
        logger.info(f"Command: {command.text}")
        try:
            ack = await self.session.publish(
                self.topics.command,
                command.payload,
                qos=COMMAND_QOS,
                timeout=self.publish_timeout,
            )
        except PublishError as e:
            logger.error(f"Publish failed for command {command.text!r}: {e}")
            raise
        logger.debug(f"Command {command.text!r} acknowledged (mid={ack.message_id})")
        return ack
