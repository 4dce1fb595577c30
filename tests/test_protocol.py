import asyncio

import pytest

from conftest import JsonRpcClient, settle
from journal_mcp.core.capabilities_manager import CapabilitiesManager
from journal_mcp.core.mcp_server import MCPServer, SessionState
from journal_mcp.core.types import TextContent, ToolResult
from journal_mcp.error_handling.exceptions import (
    INTERNAL_ERROR, INVALID_PARAMS, INVALID_REQUEST, METHOD_NOT_FOUND, PARSE_ERROR, RESOURCE_NOT_FOUND,
)
from journal_mcp.protocol.base import Transport, TransportParseError
from journal_mcp.protocol.memory import MemoryTransport
from journal_mcp.schema import ArgsSchema, integer
from journal_mcp.tools.tool_manager import ToolDescriptor


def tools_only_server() -> MCPServer:
    server = MCPServer(name="test", version="0.1")

    async def add(ctx, args):
        return ToolResult(content=[TextContent(text=str(args["a"] + args["b"]))])

    server.register_tool(ToolDescriptor(
        name="add",
        description="Add two numbers",
        input_schema=ArgsSchema({"a": integer(), "b": integer()}),
        handler=add,
    ))
    return server


async def open_client(server: MCPServer, **kwargs) -> JsonRpcClient:
    client_end, server_end = MemoryTransport.create_pair()
    server.connect(server_end)
    return JsonRpcClient(client_end, **kwargs)


# Lifecycle

@pytest.mark.asyncio
async def test_initialize(connect, server):
    """Test the initialize handshake."""
    client = await connect(initialize=False)
    result = await client.initialize()
    assert result["protocolVersion"] == "2025-06-18"
    assert result["serverInfo"] == {"name": "journal-mcp", "version": "1.0.0"}
    assert "journal" in result["instructions"]
    assert set(result["capabilities"]) == {"tools", "resources", "prompts", "completions"}
    session = next(iter(server.sessions))
    assert session.state == SessionState.READY
    assert session.client_info.name == "test-client"


@pytest.mark.asyncio
async def test_protocol_version_negotiation(connect):
    """Test that supported versions are echoed and unknown ones get the latest."""
    client = await connect(initialize=False)
    result = await client.initialize(protocol_version="2024-11-05")
    assert result["protocolVersion"] == "2024-11-05"

    other = await connect(initialize=False)
    result = await other.initialize(protocol_version="1999-01-01")
    assert result["protocolVersion"] == "2025-06-18"


@pytest.mark.asyncio
async def test_requests_before_initialize_rejected(connect):
    """Test that only initialize and ping are accepted before initialization."""
    client = await connect(initialize=False)
    assert await client.call("ping") == {}
    response = await client.request("tools/list")
    assert response["error"]["code"] == INVALID_REQUEST


@pytest.mark.asyncio
async def test_second_initialize_rejected(client):
    """Test that initialize is accepted once."""
    response = await client.request("initialize", {"protocolVersion": "2025-06-18", "capabilities": {}})
    assert response["error"]["code"] == INVALID_REQUEST


@pytest.mark.asyncio
async def test_initialize_requires_protocol_version(connect):
    """Test initialize param validation."""
    client = await connect(initialize=False)
    response = await client.request("initialize", {"capabilities": {}})
    assert response["error"]["code"] == INVALID_PARAMS


@pytest.mark.asyncio
async def test_unknown_method(client):
    """Test method-not-found errors."""
    response = await client.request("entries/explode")
    assert response["error"]["code"] == METHOD_NOT_FOUND


@pytest.mark.asyncio
async def test_snake_case_aliases(client):
    """Test that snake-case method names are accepted."""
    tools = await client.call("list_tools")
    assert len(tools["tools"]) == 12
    result = await client.call("call_tool", {"name": "list_tags", "arguments": {}})
    assert result["content"][0]["text"] == "Found 0 tags."


# Capability gating

@pytest.mark.asyncio
async def test_undeclared_capability_is_method_not_found():
    """Test that methods of undeclared groups are rejected before any lookup."""
    server = tools_only_server()
    client = await open_client(server)
    try:
        result = await client.initialize()
        assert result["capabilities"] == {"tools": {"listChanged": True}}

        for method, params in [
            ("resources/list", None),
            ("resources/read", {"uri": "journal://entries/1"}),
            ("prompts/get", {"name": "suggest_tags"}),
            ("completion/complete", {"ref": {"type": "ref/prompt", "name": "x"}, "argument": {"name": "a"}}),
        ]:
            response = await client.request(method, params)
            assert response["error"]["code"] == METHOD_NOT_FOUND
            assert "capability" in response["error"]["data"]

        result = await client.call_tool("add", {"a": 2, "b": 3})
        assert result["content"][0]["text"] == "5"
    finally:
        await client.close()
        await server.close()


@pytest.mark.asyncio
async def test_disabled_capability_not_declared(store):
    """Test that a disabled group stays undeclared even with registrations."""
    server = MCPServer(name="test", version="0.1", store=store, capabilities=CapabilitiesManager({"tools": False}))
    server.register_tool(tools_only_server().capabilities.tool_manager.get_tool("add"))
    client = await open_client(server)
    try:
        result = await client.initialize()
        assert "tools" not in result["capabilities"]
        response = await client.request("tools/call", {"name": "add", "arguments": {"a": 1, "b": 1}})
        assert response["error"]["code"] == METHOD_NOT_FOUND
        assert response["error"]["data"] == {"capability": "tools", "method": "tools/call"}
    finally:
        await client.close()
        await server.close()


# Errors

@pytest.mark.asyncio
async def test_tool_errors(client):
    """Test invalid tool calls and tool failures."""
    response = await client.request("tools/call", {"name": "no_such_tool", "arguments": {}})
    assert response["error"]["code"] == INVALID_PARAMS

    response = await client.request("tools/call", {"name": "get_entry", "arguments": {"id": "1"}})
    assert response["error"]["code"] == INVALID_PARAMS
    assert response["error"]["data"]["errors"][0]["field"] == "id"

    response = await client.request("tools/call", {"arguments": {}})
    assert response["error"]["code"] == INVALID_PARAMS

    result = await client.call_tool("get_entry", {"id": 99})
    assert result == {"content": [{"type": "text", "text": 'Entry with ID "99" not found'}], "isError": True}

    # The session is still usable
    assert await client.call("ping") == {}


@pytest.mark.asyncio
async def test_resource_errors(client):
    """Test unknown resources and failing resource handlers."""
    response = await client.request("resources/read", {"uri": "journal://nothing"})
    assert response["error"]["code"] == RESOURCE_NOT_FOUND

    response = await client.request("resources/read", {"uri": "journal://entries/5"})
    assert response["error"]["code"] == INTERNAL_ERROR
    assert response["error"]["message"] == 'Entry with ID "5" not found'


@pytest.mark.asyncio
async def test_malformed_envelopes(client):
    """Test invalid JSON-RPC messages."""
    request_id = client.next_id()
    future = client.expect(request_id)
    await client.send({"jsonrpc": "1.0", "id": request_id, "method": "ping"})
    response = await asyncio.wait_for(future, 5)
    assert response["error"]["code"] == INVALID_REQUEST

    future = client.expect(None)
    await client.send({"jsonrpc": "2.0"})
    response = await asyncio.wait_for(future, 5)
    assert response["error"]["code"] == INVALID_REQUEST
    assert response["id"] is None


@pytest.mark.asyncio
async def test_batch(client):
    """Test that each message of a batch is answered."""
    first, second = client.next_id(), client.next_id()
    futures = [client.expect(first), client.expect(second)]
    await client.send([
        {"jsonrpc": "2.0", "id": first, "method": "ping"},
        {"jsonrpc": "2.0", "id": second, "method": "tools/list"},
        {"jsonrpc": "2.0", "method": "notifications/unknown"},
    ])
    ping, tools = await asyncio.wait_for(asyncio.gather(*futures), 5)
    assert ping["result"] == {}
    assert len(tools["result"]["tools"]) == 12

    future = client.expect(None)
    await client.send([])
    response = await asyncio.wait_for(future, 5)
    assert response["error"]["code"] == INVALID_REQUEST


class ScriptedTransport(Transport):
    """Serves a fixed list of inbound items; exceptions are raised from receive()."""

    def __init__(self, inbound):
        self.inbound = list(inbound)
        self.sent = []
        self.closed = False

    async def send(self, message):
        self.sent.append(message)

    async def receive(self):
        await asyncio.sleep(0)
        if not self.inbound:
            return None
        item = self.inbound.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self):
        self.closed = True


@pytest.mark.asyncio
async def test_parse_error_answered_with_null_id():
    """Test that undecodable input gets a parse error and the session keeps reading."""
    server = tools_only_server()
    transport = ScriptedTransport([
        TransportParseError("Parse error: Expecting value"),
        {"jsonrpc": "2.0", "id": 1, "method": "ping"},
    ])
    await server.serve(transport)
    await settle()
    assert transport.sent[0]["id"] is None
    assert transport.sent[0]["error"]["code"] == PARSE_ERROR
    assert transport.sent[1] == {"jsonrpc": "2.0", "id": 1, "result": {}}
    assert transport.closed
    assert not server.sessions


# Ordering and concurrency

@pytest.mark.asyncio
async def test_tool_calls_run_in_arrival_order():
    """Test that tool calls are serialized in arrival order while other requests proceed."""
    server = MCPServer(name="test", version="0.1")
    events = []
    release = asyncio.Event()

    async def slow(ctx, args):
        events.append(("start", args["n"]))
        if args["n"] == 1:
            await release.wait()
        events.append(("end", args["n"]))
        return ToolResult(content=[TextContent(text=str(args["n"]))])

    server.register_tool(ToolDescriptor(
        name="slow", description="Slow tool", input_schema=ArgsSchema({"n": integer()}), handler=slow,
    ))
    client = await open_client(server)
    try:
        await client.initialize()
        first = asyncio.create_task(client.call_tool("slow", {"n": 1}))
        await settle()
        second = asyncio.create_task(client.call_tool("slow", {"n": 2}))
        await settle()

        # Non-tool requests are not blocked by the running tool
        assert await client.call("tools/list")
        assert events == [("start", 1)]

        release.set()
        results = await asyncio.gather(first, second)
        assert [r["content"][0]["text"] for r in results] == ["1", "2"]
        assert events == [("start", 1), ("end", 1), ("start", 2), ("end", 2)]
    finally:
        await client.close()
        await server.close()


@pytest.mark.asyncio
async def test_cancelled_request_gets_no_response():
    """Test notifications/cancelled for an in-flight request."""
    server = MCPServer(name="test", version="0.1")
    started = asyncio.Event()

    async def hang(ctx, args):
        started.set()
        await asyncio.Event().wait()

    server.register_tool(ToolDescriptor(name="hang", description="Never returns", input_schema=ArgsSchema(), handler=hang))
    client = await open_client(server)
    try:
        await client.initialize()
        request_id = client.next_id()
        future = client.expect(request_id)
        await client.send({"jsonrpc": "2.0", "id": request_id, "method": "tools/call", "params": {"name": "hang"}})
        await asyncio.wait_for(started.wait(), 5)
        await client.notify("notifications/cancelled", {"requestId": request_id, "reason": "test"})
        await settle()

        # The lock is released, so later tool calls still run
        session = next(iter(server.sessions))
        assert not session._tool_lock.locked()
        assert not future.done()
        assert await client.call("ping") == {}
    finally:
        await client.close()
        await server.close()


@pytest.mark.asyncio
async def test_close_ends_session(server):
    """Test that closing the client end closes the server session."""
    client = await open_client(server)
    await client.initialize()
    session = next(iter(server.sessions))
    await client.close()
    await asyncio.wait_for(session.wait_closed(), 5)
    assert session.state == SessionState.CLOSED
    assert session not in server.sessions
