"""
MCP SSE transport.
This module serves sessions over Server-Sent Events: ``GET /sse`` opens an
event stream (one session per stream) and ``POST /messages?session_id=...``
delivers client messages to that session.
"""

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any, Dict, Optional, Set

from aiohttp import web
from aiohttp_sse import sse_response

from journal_mcp.protocol.base import Transport, TransportClosedError

if TYPE_CHECKING:
    from journal_mcp.core.mcp_server import MCPServer

logger = logging.getLogger(__name__)

_CLOSED = object()


class SSETransport(Transport):
    """
    Transport for one SSE client.
    Inbound messages are fed by the POST handler; outbound messages are
    drained by the event stream handler.
    """

    def __init__(self):
        self.inbound: asyncio.Queue = asyncio.Queue()
        self.outbound: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def feed(self, message: Any) -> None:
        """Queue a decoded client message for the session."""
        if self._closed:
            raise TransportClosedError("SSE transport is closed")
        self.inbound.put_nowait(message)

    async def send(self, message: Dict[str, Any]) -> None:
        if self._closed:
            raise TransportClosedError("SSE transport is closed")
        self.outbound.put_nowait(message)

    async def receive(self) -> Optional[Any]:
        item = await self.inbound.get()
        if item is _CLOSED:
            self.inbound.put_nowait(_CLOSED)
            return None
        return item

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.inbound.put_nowait(_CLOSED)
        self.outbound.put_nowait(_CLOSED)


class SSEServer:
    """
    HTTP front end for SSE sessions.
    Handles origin checks, session routing and heartbeats.
    """

    def __init__(
        self,
        server: "MCPServer",
        allowed_origins: Optional[Set[str]] = None,
        heartbeat_interval: float = 30,
    ):
        """
        Initialize the SSE server.

        Args:
            server: Protocol server the sessions are attached to
            allowed_origins: Set of allowed origins; "*" allows any
            heartbeat_interval: Seconds between keep-alive comments
        """
        self.server = server
        self.allowed_origins = set(allowed_origins or {"*"})
        self.heartbeat_interval = heartbeat_interval
        self._transports: Dict[str, SSETransport] = {}
        self._runner: Optional[web.AppRunner] = None
        self._stopped = asyncio.Event()

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/sse", self._sse_handler)
        app.router.add_post("/messages", self._post_handler)
        return app

    def _check_origin(self, request: web.Request) -> None:
        origin = request.headers.get("Origin")
        if origin and "*" not in self.allowed_origins and origin not in self.allowed_origins:
            logger.warning(f"Rejected request from origin: {origin}")
            raise web.HTTPForbidden(reason="Origin not allowed")

    async def _sse_handler(self, request: web.Request) -> web.StreamResponse:
        """
        Open an event stream and attach a new session to it.

        The first event is ``endpoint``, carrying the URL the client posts its
        messages to.
        """
        self._check_origin(request)

        transport = SSETransport()
        session = self.server.connect(transport)
        session_id = session.session_id
        self._transports[session_id] = transport
        logger.info(f"SSE client connected: session_id={session_id}, total sessions: {len(self._transports)}")

        response = None
        try:
            async with sse_response(request) as response:
                await response.send(f"/messages?session_id={session_id}", event="endpoint")
                while True:
                    try:
                        message = await asyncio.wait_for(transport.outbound.get(), timeout=self.heartbeat_interval)
                    except asyncio.TimeoutError:
                        await response.write(b": ping\n\n")
                        continue
                    if message is _CLOSED:
                        break
                    await response.send(json.dumps(message), event="message")
        except ConnectionResetError:
            logger.info(f"SSE client went away: session_id={session_id}")
        finally:
            self._transports.pop(session_id, None)
            await session.close()
            logger.info(f"SSE client disconnected: session_id={session_id}, remaining {len(self._transports)} sessions")
        return response

    async def _post_handler(self, request: web.Request) -> web.Response:
        self._check_origin(request)

        session_id = request.query.get("session_id")
        transport = self._transports.get(session_id) if session_id else None
        if transport is None or transport.closed:
            return web.Response(status=404, text="Unknown session")

        try:
            data = json.loads(await request.text())
        except json.JSONDecodeError as e:
            logger.warning(f"Invalid JSON posted to session {session_id}: {e}")
            return web.Response(status=400, text="Invalid JSON")
        if not isinstance(data, (dict, list)):
            return web.Response(status=400, text="Invalid JSON-RPC payload")

        transport.feed(data)
        return web.Response(status=202, text="Accepted")

    async def start(self, host: str = "localhost", port: int = 8080) -> None:
        app = self.create_app()
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, host, port)
        await site.start()
        logger.info(f"SSE server listening on http://{host}:{port}")

    async def run(self, host: str = "localhost", port: int = 8080) -> None:
        """
        Run the SSE server until stop() is called.

        Args:
            host: Host to bind to
            port: Port to bind to
        """
        await self.start(host, port)
        try:
            await self._stopped.wait()
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        logger.info("Stopping SSE server")
        for transport in list(self._transports.values()):
            await transport.close()
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None

    def stop(self) -> None:
        self._stopped.set()
