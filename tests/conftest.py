import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

import pytest

from journal_mcp.config import ServerConfig
from journal_mcp.db.store import JournalStore
from journal_mcp.protocol.memory import MemoryTransport
from journal_mcp.server import create_server

SamplingHandler = Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]


class SamplingRefused(Exception):
    """Raised by a sampling handler to answer with a JSON-RPC error."""


def sampling_reply(text: str, model: str = "test-model") -> Dict[str, Any]:
    return {
        "model": model,
        "stopReason": "endTurn",
        "role": "assistant",
        "content": {"type": "text", "text": text},
    }


class JsonRpcClient:
    """Minimal client driving a server session over a memory transport."""

    def __init__(self, transport: MemoryTransport, sampling_handler: Optional[SamplingHandler] = None):
        self.transport = transport
        self.sampling_handler = sampling_handler
        self.notifications: List[Dict[str, Any]] = []
        self.server_requests: List[Dict[str, Any]] = []
        self._pending: Dict[Any, asyncio.Future] = {}
        self._next_id = 0
        self._tasks = set()
        self._server_request_event = asyncio.Event()
        self._reader = asyncio.create_task(self._read_loop())

    async def _read_loop(self):
        while True:
            message = await self.transport.receive()
            if message is None:
                break
            if "method" in message and "id" in message:
                self.server_requests.append(message)
                self._server_request_event.set()
                task = asyncio.create_task(self._answer(message))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
            elif "method" in message:
                self.notifications.append(message)
            else:
                future = self._pending.pop(message.get("id"), None)
                if future is not None and not future.done():
                    future.set_result(message)

    async def _answer(self, request: Dict[str, Any]):
        if self.sampling_handler is None:
            return
        try:
            result = await self.sampling_handler(request["params"])
        except SamplingRefused as e:
            await self.transport.send({
                "jsonrpc": "2.0",
                "id": request["id"],
                "error": {"code": -1, "message": str(e)},
            })
            return
        await self.transport.send({"jsonrpc": "2.0", "id": request["id"], "result": result})

    async def wait_for_server_request(self, timeout: float = 5):
        await asyncio.wait_for(self._server_request_event.wait(), timeout)
        return self.server_requests[-1]

    def next_id(self) -> int:
        self._next_id += 1
        return self._next_id

    async def send(self, message: Any):
        await self.transport.send(message)

    def expect(self, request_id) -> asyncio.Future:
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        return future

    async def request(self, method: str, params: Optional[Dict[str, Any]] = None, timeout: float = 5) -> Dict[str, Any]:
        """Send a request and return the whole response message."""
        request_id = self.next_id()
        future = self.expect(request_id)
        message: Dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
        if params is not None:
            message["params"] = params
        await self.send(message)
        return await asyncio.wait_for(future, timeout)

    async def call(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Send a request and return its result, failing on an error response."""
        response = await self.request(method, params)
        assert "error" not in response, response["error"]
        return response["result"]

    async def notify(self, method: str, params: Optional[Dict[str, Any]] = None):
        message: Dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            message["params"] = params
        await self.send(message)

    async def initialize(self, capabilities: Optional[Dict[str, Any]] = None,
                         protocol_version: str = "2025-06-18") -> Dict[str, Any]:
        result = await self.call("initialize", {
            "protocolVersion": protocol_version,
            "capabilities": capabilities or {},
            "clientInfo": {"name": "test-client", "version": "1.0.0"},
        })
        await self.notify("notifications/initialized")
        return result

    async def call_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self.call("tools/call", {"name": name, "arguments": arguments or {}})

    async def read_resource(self, uri: str) -> Dict[str, Any]:
        return await self.call("resources/read", {"uri": uri})

    async def close(self):
        await self.transport.close()
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(self._reader, *self._tasks, return_exceptions=True)


async def settle(rounds: int = 5):
    """Let queued tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


async def suggestions_done(server, timeout: float = 5):
    """Wait for the background tag suggestions of every session."""
    tasks = [
        task for session in server.sessions for task in session._tasks
        if task.get_name().startswith("suggest-tags-")
    ]
    if tasks:
        await asyncio.wait_for(asyncio.gather(*tasks), timeout)


@pytest.fixture
def store():
    store = JournalStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def config():
    return ServerConfig(database_path=":memory:")


@pytest.fixture
def server(config, store):
    server, _ = create_server(config, store=store)
    return server


@pytest.fixture
async def connect(server):
    """Factory connecting (and by default initializing) clients to the server."""
    clients = []

    async def _connect(capabilities=None, sampling_handler=None, initialize=True):
        client_end, server_end = MemoryTransport.create_pair()
        server.connect(server_end)
        client = JsonRpcClient(client_end, sampling_handler)
        clients.append(client)
        if initialize:
            await client.initialize(capabilities)
        return client

    yield _connect
    for client in clients:
        await client.close()
    await server.close()


@pytest.fixture
async def client(connect):
    return await connect()
