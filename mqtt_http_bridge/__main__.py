#!/usr/bin/env python3
"""
MQTT-HTTP Bridge CLI

Command-line interface for running the bridge (or, with --role device, a
simulated device publishing into the same topics).
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from typing import List, Optional

from .config import ROLE_BRIDGE, ROLE_DEVICE, ROLES, BridgeConfig
from .errors import ConfigError


def setup_logging(log_level: str = "INFO"):
    """Setup logging configuration"""
    numeric_level = getattr(logging, log_level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f'Invalid log level: {log_level}')

    logging.basicConfig(
        level=numeric_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def parse_args(argv: Optional[List[str]] = None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description="MQTT-HTTP Bridge - expose an MQTT device over HTTP"
    )

    # MQTT settings
    parser.add_argument(
        "--mqtt-host",
        default=os.getenv("MQTT_HOST", "localhost"),
        help="MQTT broker hostname or IP address (default: localhost)"
    )
    parser.add_argument(
        "--mqtt-port",
        type=int,
        default=int(os.getenv("MQTT_PORT", "8883")),
        help="MQTT broker port (default: 8883)"
    )
    parser.add_argument(
        "--mqtt-username",
        default=os.getenv("MQTT_USERNAME"),
        help="MQTT username for authentication"
    )
    parser.add_argument(
        "--mqtt-password",
        default=os.getenv("MQTT_PASSWORD"),
        help="MQTT password for authentication"
    )
    parser.add_argument(
        "--client-id",
        default=os.getenv("MQTT_CLIENT_ID"),
        help="MQTT client id (default: <device-id>_<role>)"
    )
    parser.add_argument(
        "--ca-certs",
        default=os.getenv("MQTT_CA_CERTS"),
        help="Root CA file to trust instead of the platform trust store"
    )
    parser.add_argument(
        "--no-tls",
        action="store_true",
        default=not _env_flag("MQTT_TLS", True),
        help="Connect without TLS (local brokers only)"
    )
    parser.add_argument(
        "--tls-insecure",
        action="store_true",
        default=_env_flag("MQTT_TLS_INSECURE", False),
        help="Skip broker hostname verification"
    )

    # Device settings
    parser.add_argument(
        "--device-id",
        default=os.getenv("DEVICE_ID", "esp8266_001"),
        help="Device identifier used in topic names (default: esp8266_001)"
    )
    parser.add_argument(
        "--role",
        default=os.getenv("BRIDGE_ROLE", ROLE_BRIDGE),
        choices=ROLES,
        help="Run the HTTP bridge or a simulated device (default: bridge)"
    )
    parser.add_argument(
        "--publish-interval",
        type=float,
        default=float(os.getenv("PUBLISH_INTERVAL", "5")),
        help="Device role: seconds between telemetry messages (default: 5)"
    )

    # Session settings
    parser.add_argument(
        "--reconnect-delay",
        type=float,
        default=float(os.getenv("RECONNECT_DELAY", "5")),
        help="Seconds before the first reconnect attempt (default: 5)"
    )
    parser.add_argument(
        "--max-reconnect-delay",
        type=float,
        default=None,
        help="Cap for exponential backoff (default: same as --reconnect-delay, i.e. fixed)"
    )
    parser.add_argument(
        "--publish-timeout",
        type=float,
        default=float(os.getenv("PUBLISH_TIMEOUT", "5")),
        help="Seconds to wait for the broker to acknowledge a command (default: 5)"
    )

    # HTTP settings
    parser.add_argument(
        "--http-host",
        default=os.getenv("HOST", "0.0.0.0"),
        help="HTTP host to bind to (default: 0.0.0.0)"
    )
    parser.add_argument(
        "--http-port",
        type=int,
        default=int(os.getenv("PORT", "3000")),
        help="HTTP port (default: 3000)"
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)"
    )

    return parser.parse_args(argv)


def config_from_args(args) -> BridgeConfig:
    max_delay = args.max_reconnect_delay
    if max_delay is None:
        max_delay = float(os.getenv("MAX_RECONNECT_DELAY", args.reconnect_delay))
    return BridgeConfig(
        mqtt_host=args.mqtt_host,
        mqtt_port=args.mqtt_port,
        mqtt_username=args.mqtt_username,
        mqtt_password=args.mqtt_password,
        device_id=args.device_id,
        client_id=args.client_id,
        use_tls=not args.no_tls,
        ca_certs=args.ca_certs,
        tls_insecure=args.tls_insecure,
        reconnect_delay=args.reconnect_delay,
        max_reconnect_delay=max_delay,
        publish_timeout=args.publish_timeout,
        publish_interval=args.publish_interval,
        http_host=args.http_host,
        http_port=args.http_port,
        log_level=args.log_level,
        role=args.role,
    )


def _install_signal_handlers(stop_event: asyncio.Event):
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows: KeyboardInterrupt still ends asyncio.run()
            pass


async def run_bridge(config: BridgeConfig, stop_event: asyncio.Event):
    from .bridge import DeviceBridge
    from .http_server import BridgeHTTPServer

    logger = logging.getLogger(__name__)
    bridge = DeviceBridge(config)
    http_server = BridgeHTTPServer(bridge, host=config.http_host, port=config.http_port)

    await bridge.start()
    try:
        await http_server.start()
        logger.info("Bridge running... Press Ctrl+C to stop")
        await stop_event.wait()
    finally:
        await http_server.stop()
        await bridge.stop()


async def run_device(config: BridgeConfig, stop_event: asyncio.Event):
    from .device import DeviceAgent

    logger = logging.getLogger(__name__)
    agent = DeviceAgent(config)
    await agent.start()
    try:
        logger.info("Device running... Press Ctrl+C to stop")
        await stop_event.wait()
    finally:
        await agent.stop()


async def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    args = parse_args(argv)

    setup_logging(args.log_level)
    logger = logging.getLogger(__name__)

    try:
        config = config_from_args(args).validate()
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    logger.info(f"Starting MQTT-HTTP bridge ({config.role})...")
    logger.info(f"MQTT Broker: {config.mqtt_host}:{config.mqtt_port} (tls={config.use_tls})")
    logger.info(f"Device ID: {config.device_id}")

    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)

    if config.role == ROLE_DEVICE:
        await run_device(config, stop_event)
    else:
        await run_bridge(config, stop_event)

    logger.info("Shutdown complete")
    return 0


def cli():
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    cli()
