"""
HTTP Server Module

Exposes the bridge over HTTP: read the cached device state, check the
broker session and send commands to the device.
"""

import json
import logging
import time
from typing import Optional

import aiohttp_cors
from aiohttp import web

from . import __version__
from .bridge import DeviceBridge
from .data_models import AckInfo
from .errors import InvalidInput, PublishError
from .timezone_utils import utc_isoformat

logger = logging.getLogger(__name__)


class BridgeHTTPServer:
    """HTTP facade over a DeviceBridge"""

    def __init__(self, bridge: DeviceBridge, host: str = "0.0.0.0", port: int = 3000):
        self.bridge = bridge
        self.host = host
        self.port = port
        self.app = web.Application()
        self._runner: Optional[web.AppRunner] = None
        self._started = time.monotonic()
        self._setup_routes()
        self._setup_cors()

    def _setup_cors(self):
        """Setup CORS for cross-origin requests"""
        cors = aiohttp_cors.setup(self.app, defaults={
            "*": aiohttp_cors.ResourceOptions(
                allow_credentials=True,
                expose_headers="*",
                allow_headers="*",
                allow_methods="*"
            )
        })

        for route in list(self.app.router.routes()):
            cors.add(route)

    def _setup_routes(self):
        self.app.router.add_get("/", self.index)
        self.app.router.add_get("/health", self.health_check)
        self.app.router.add_get("/api/data", self.get_data)
        self.app.router.add_get("/api/status", self.get_status)
        self.app.router.add_post("/api/command/led", self.command_led)
        self.app.router.add_post("/api/command", self.command_raw)

    async def index(self, request):
        return web.json_response({
            "status": "running",
            "service": "mqtt-http-bridge",
            "version": __version__,
            "mqtt": "connected" if self.bridge.supervisor.is_connected() else "disconnected",
            "topics": self.bridge.topics.to_dict(),
            "timestamp": utc_isoformat(),
        })

    async def health_check(self, request):
        return web.json_response(self.bridge.get_health())

    async def get_data(self, request):
        snapshot = self.bridge.get_snapshot()
        return web.json_response({"success": True, **snapshot.to_dict()})

    async def get_status(self, request):
        return web.json_response({
            "mqtt": self.bridge.get_status(),
            "server": {
                "uptime": round(time.monotonic() - self._started, 3),
                "timestamp": utc_isoformat(),
            },
        })

    async def command_led(self, request):
        body = await self._read_json(request)
        if isinstance(body, web.Response):
            return body

        try:
            ack = await self.bridge.send_bool_command(body.get("state"))
        except InvalidInput as e:
            return self._error(str(e), status=400)
        except PublishError as e:
            return self._error(f"Failed to send command: {e}", status=503)

        return self._sent(ack, f"LED turned {'ON' if body['state'] else 'OFF'}")

    async def command_raw(self, request):
        body = await self._read_json(request)
        if isinstance(body, web.Response):
            return body

        try:
            ack = await self.bridge.send_raw_command(body.get("command"))
        except InvalidInput as e:
            return self._error(str(e), status=400)
        except PublishError as e:
            return self._error(f"Failed to send command: {e}", status=503)

        return self._sent(ack, "Command sent")

    async def _read_json(self, request):
        """Return the decoded JSON object, or a 400 response"""
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return self._error("Invalid JSON in request body", status=400)
        if not isinstance(body, dict):
            return self._error("Request body must be a JSON object", status=400)
        return body

    @staticmethod
    def _sent(ack: AckInfo, message: str) -> web.Response:
        return web.json_response({
            "success": True,
            "message": message,
            "command": ack.command,
            "ack": ack.to_dict(),
        })

    @staticmethod
    def _error(message: str, status: int) -> web.Response:
        return web.json_response({"success": False, "message": message}, status=status)

    async def start(self):
        """Start the HTTP server"""
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()

        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()

        logger.info(f"HTTP server started on http://{self.host}:{self.port}")
        logger.info("  GET  /                  - service info")
        logger.info("  GET  /health            - broker session health")
        logger.info("  GET  /api/data          - latest device data")
        logger.info("  GET  /api/status        - broker session details")
        logger.info("  POST /api/command/led   - {\"state\": boolean}")
        logger.info("  POST /api/command       - {\"command\": string}")

    async def stop(self):
        """Stop the HTTP server"""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
        logger.info("HTTP server stopped")
