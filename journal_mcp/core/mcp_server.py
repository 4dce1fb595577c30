"""
MCP protocol engine.
This module provides the MCPServer, which owns the registries and live
sessions, and the ServerSession, which runs the per-connection state machine
and dispatches requests read from a transport.
"""

import asyncio
import logging
import uuid
from enum import Enum
from typing import Any, Awaitable, Callable, Coroutine, Dict, List, Optional, Set, Union

from journal_mcp.core.capabilities_manager import CapabilitiesManager
from journal_mcp.core.context import AgentContext
from journal_mcp.core.protocol_handler import (
    JsonRpcRequest, JsonRpcResponse, ProtocolHandler, batch_items,
)
from journal_mcp.core.request_models import validate_request_params
from journal_mcp.core.sampling import CREATE_MESSAGE_METHOD, SamplingManager
from journal_mcp.core.types import (
    Change, ClientCapabilities, CreateMessageResult, Implementation, SamplingMessage, ServerCapabilities,
)
from journal_mcp.error_handling.exceptions import (
    CapabilityError, MethodNotFoundError, ProtocolError,
)
from journal_mcp.protocol.base import Transport, TransportParseError
from journal_mcp.prompts.prompt_manager import PromptDescriptor
from journal_mcp.resources.resource_manager import ResourceDescriptor, ResourceTemplateDescriptor
from journal_mcp.tools.tool_manager import ToolDescriptor

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Lifecycle of one client connection."""
    UNINITIALIZED = "uninitialized"
    NEGOTIATING = "negotiating"
    READY = "ready"
    CLOSED = "closed"


# Snake-case method names accepted alongside the protocol names
METHOD_ALIASES = {
    "list_tools": "tools/list",
    "call_tool": "tools/call",
    "list_resources": "resources/list",
    "list_resource_templates": "resources/templates/list",
    "read_resource": "resources/read",
    "complete": "completion/complete",
    "list_prompts": "prompts/list",
    "get_prompt": "prompts/get",
}

# Capability group a method needs the server to have declared
METHOD_CAPABILITIES = {
    "tools/list": "tools",
    "tools/call": "tools",
    "resources/list": "resources",
    "resources/templates/list": "resources",
    "resources/read": "resources",
    "prompts/list": "prompts",
    "prompts/get": "prompts",
    "completion/complete": "completions",
}

LIST_CHANGED_NOTIFICATIONS = {
    "tools": "notifications/tools/list_changed",
    "resources": "notifications/resources/list_changed",
    "prompts": "notifications/prompts/list_changed",
}


class MCPServer:
    """
    Protocol server.
    Holds server info, the capabilities manager, the data store and the set of
    live sessions. Each transport connected with :meth:`connect` gets its own
    :class:`ServerSession`.
    """

    def __init__(
        self,
        name: str,
        version: str,
        store: Any = None,
        capabilities: Optional[CapabilitiesManager] = None,
        instructions: Optional[str] = None,
        sampling_enabled: bool = True,
        sampling_max_tokens: int = 100,
        sampling_timeout: Optional[float] = None,
    ):
        """
        Initialize the server.

        Args:
            name: Server name reported in serverInfo
            version: Server version reported in serverInfo
            store: Data store handed to handlers through the context
            capabilities: Registries; a fresh manager is created when omitted
            instructions: Usage instructions returned from initialize
            sampling_enabled: When False, handlers see no client sampling support
            sampling_max_tokens: Default maxTokens for sampling requests
            sampling_timeout: Seconds to wait for a sampling answer, None for no limit
        """
        self.info = Implementation(name=name, version=version)
        self.store = store
        self.capabilities = capabilities or CapabilitiesManager()
        self.instructions = instructions
        self.sampling_enabled = sampling_enabled
        self.sampling_max_tokens = sampling_max_tokens
        self.sampling_timeout = sampling_timeout
        self.protocol = ProtocolHandler()
        self.sessions: Set["ServerSession"] = set()
        self.capabilities.add_list_changed_listener(self._broadcast_list_changed)

    def register_tool(self, tool: ToolDescriptor) -> None:
        self.capabilities.register_tool(tool)

    def register_resource(self, resource: ResourceDescriptor) -> None:
        self.capabilities.register_resource(resource)

    def register_resource_template(self, template: ResourceTemplateDescriptor) -> None:
        self.capabilities.register_resource_template(template)

    def register_prompt(self, prompt: PromptDescriptor) -> None:
        self.capabilities.register_prompt(prompt)

    def connect(self, transport: Transport, session_id: Optional[str] = None) -> "ServerSession":
        """
        Start serving a transport.

        Must be called from a running event loop; the session's reader task
        starts immediately.

        Args:
            transport: The connected transport
            session_id: Optional identifier, generated when omitted

        Returns:
            ServerSession: The new session
        """
        session = ServerSession(self, transport, session_id=session_id)
        self.sessions.add(session)
        session.start()
        logger.info(f"Session {session.session_id} connected")
        return session

    async def serve(self, transport: Transport) -> None:
        """Serve a transport until it closes."""
        session = self.connect(transport)
        await session.wait_closed()

    async def close(self) -> None:
        """Close every live session."""
        for session in list(self.sessions):
            await session.close()

    def _broadcast_list_changed(self, group: str) -> None:
        for session in list(self.sessions):
            if session.state == SessionState.READY and session.server_capabilities.declares(group):
                session.notify(LIST_CHANGED_NOTIFICATIONS[group])


class ServerSession:
    """
    One client connection.
    Runs a single reader over the transport; each inbound request is handled
    in its own task so the reader keeps consuming messages, including
    responses to sampling requests, while handlers are suspended.
    """

    def __init__(self, server: MCPServer, transport: Transport, session_id: Optional[str] = None):
        self.server = server
        self.transport = transport
        self.session_id = session_id or uuid.uuid4().hex
        self.state = SessionState.UNINITIALIZED
        self.protocol = server.protocol
        self.client_capabilities = ClientCapabilities()
        self.client_info: Optional[Implementation] = None
        self.protocol_version: Optional[str] = None
        self.server_capabilities = ServerCapabilities()
        self.sampling = SamplingManager(self.send)
        self.context = AgentContext(
            store=server.store,
            capabilities=server.capabilities,
            server=server,
            session=self,
        )
        self._tool_lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()
        self._inflight: Dict[Union[str, int], asyncio.Task] = {}
        self._reader_task: Optional[asyncio.Task] = None
        self._unsubscribe_changes: Optional[Callable[[], None]] = None
        self._closed = asyncio.Event()
        self._handlers: Dict[str, Callable[[Any], Awaitable[Dict[str, Any]]]] = {
            "tools/list": self._handle_list_tools,
            "tools/call": self._handle_call_tool,
            "resources/list": self._handle_list_resources,
            "resources/templates/list": self._handle_list_resource_templates,
            "resources/read": self._handle_read_resource,
            "prompts/list": self._handle_list_prompts,
            "prompts/get": self._handle_get_prompt,
            "completion/complete": self._handle_complete,
        }

    def start(self) -> None:
        self._reader_task = asyncio.create_task(self._read_loop())

    async def wait_closed(self) -> None:
        await self._closed.wait()

    @property
    def is_closed(self) -> bool:
        return self.state == SessionState.CLOSED

    def client_supports_sampling(self) -> bool:
        """True when the client declared sampling and sampling is enabled on the server."""
        return self.server.sampling_enabled and self.client_capabilities.sampling is not None

    async def create_message(
        self,
        messages: List[Union[SamplingMessage, Dict[str, Any]]],
        max_tokens: Optional[int] = None,
        system_prompt: Optional[str] = None,
    ) -> Optional[CreateMessageResult]:
        """
        Send a sampling request to the client and wait for its answer.

        Returns:
            Optional[CreateMessageResult]: The client's answer, or None without
            sending anything when the client did not declare sampling or
            sampling is disabled on the server
        """
        if not self.client_supports_sampling():
            logger.debug(f"Session {self.session_id}: client cannot sample, skipping {CREATE_MESSAGE_METHOD}")
            return None
        return await self.sampling.create_message(
            messages,
            max_tokens=max_tokens or self.server.sampling_max_tokens,
            system_prompt=system_prompt,
        )

    # Transport I/O

    async def send(self, message: Dict[str, Any]) -> None:
        await self.transport.send(message)

    async def _send_response(self, response: JsonRpcResponse) -> None:
        try:
            await self.send(response.to_wire())
        except Exception as e:
            logger.error(f"Session {self.session_id}: failed to send response {response.id}: {e}")

    async def send_notification(self, method: str, params: Optional[Dict[str, Any]] = None) -> None:
        await self.send(self.protocol.notification(method, params))

    def notify(self, method: str, params: Optional[Dict[str, Any]] = None) -> None:
        """Send a notification without waiting for it; failures are logged."""
        if self.is_closed:
            return

        async def _send() -> None:
            try:
                await self.send_notification(method, params)
            except Exception as e:
                logger.warning(f"Session {self.session_id}: dropped notification {method}: {e}")

        self._track(asyncio.create_task(_send()))

    def spawn(self, coro: Coroutine[Any, Any, Any], name: Optional[str] = None) -> Optional[asyncio.Task]:
        """
        Run work in the background for the lifetime of the session.

        The task does not hold the tool lock and is cancelled when the
        session closes. Returns None, closing the coroutine, when the
        session is already closed.
        """
        if self.is_closed:
            coro.close()
            return None
        task = asyncio.create_task(coro, name=name)
        self._track(task)
        return task

    def _track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _read_loop(self) -> None:
        try:
            while not self.is_closed:
                try:
                    data = await self.transport.receive()
                except TransportParseError as e:
                    await self._send_response(self.protocol.handle_protocol_error(None, e))
                    continue
                if data is None:
                    logger.info(f"Session {self.session_id}: transport closed by peer")
                    break
                self._handle_payload(data)
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error(f"Session {self.session_id}: reader failed: {e}")
        finally:
            await self.close()

    def _handle_payload(self, data: Any) -> None:
        items = batch_items(data)
        if not items:
            self._reply_error(None, ProtocolError("Invalid request: empty batch"))
            return
        for item in items:
            self._handle_message(item)

    def _reply_error(self, request_id: Optional[Union[str, int]], error: Exception) -> None:
        response = self.protocol.handle_protocol_error(request_id, error)
        self._track(asyncio.create_task(self._send_response(response)))

    def _handle_message(self, data: Any) -> None:
        try:
            message = self.protocol.parse_message(data)
        except ProtocolError as e:
            logger.warning(f"Session {self.session_id}: {e.message}")
            self._reply_error(self.protocol.extract_id(data), e)
            return

        if isinstance(message, JsonRpcResponse):
            self.sampling.handle_response(message)
            return
        if message.is_notification:
            self._handle_notification(message)
            return

        task = asyncio.create_task(self._handle_request(message))
        self._inflight[message.id] = task
        self._track(task)

    def _handle_notification(self, notification: JsonRpcRequest) -> None:
        if notification.method == "notifications/initialized":
            logger.debug(f"Session {self.session_id}: client initialized")
        elif notification.method == "notifications/cancelled":
            params = notification.params if isinstance(notification.params, dict) else {}
            task = self._inflight.get(params.get("requestId"))
            if task is not None:
                logger.info(f"Session {self.session_id}: request {params.get('requestId')} cancelled by client")
                task.cancel()
        else:
            logger.debug(f"Session {self.session_id}: ignoring notification {notification.method}")

    async def _handle_request(self, request: JsonRpcRequest) -> None:
        try:
            result = await self._dispatch(request)
            response = self.protocol.create_response(request.id, result=result)
        except asyncio.CancelledError:
            return
        except Exception as e:
            response = self.protocol.handle_protocol_error(request.id, e)
        finally:
            self._inflight.pop(request.id, None)

        await self._send_response(response)
        if request.method == "initialize" and self.state == SessionState.NEGOTIATING and not response.is_error:
            self._mark_ready()

    async def _dispatch(self, request: JsonRpcRequest) -> Dict[str, Any]:
        method = METHOD_ALIASES.get(request.method, request.method)

        if self.is_closed:
            raise ProtocolError("Session is closed")
        if method == "initialize":
            return self._handle_initialize(request.params)
        if method == "ping":
            validate_request_params(method, request.params)
            return {}
        if self.state != SessionState.READY:
            raise ProtocolError(f"Session not initialized: {request.method} is not allowed before initialize")

        handler = self._handlers.get(method)
        if handler is None:
            raise MethodNotFoundError(request.method)

        group = METHOD_CAPABILITIES.get(method)
        if group and not self.server_capabilities.declares(group):
            raise CapabilityError(group, method)

        params = validate_request_params(method, request.params)
        if method == "tools/call":
            # Tool calls run one at a time in arrival order
            async with self._tool_lock:
                return await handler(params)
        return await handler(params)

    def _handle_initialize(self, raw_params: Any) -> Dict[str, Any]:
        if self.state != SessionState.UNINITIALIZED:
            raise ProtocolError("Session already initialized")
        params = validate_request_params("initialize", raw_params)

        self.state = SessionState.NEGOTIATING
        self.client_capabilities = params.capabilities
        self.client_info = params.client_info
        self.protocol_version = self.protocol.negotiate_version(params.protocol_version)
        self.server_capabilities = self.server.capabilities.get_capabilities()

        client_name = params.client_info.name if params.client_info else "unknown client"
        logger.info(
            f"Session {self.session_id}: initializing for {client_name} "
            f"(protocol {self.protocol_version}, sampling={'yes' if self.client_supports_sampling() else 'no'})"
        )

        result: Dict[str, Any] = {
            "protocolVersion": self.protocol_version,
            "capabilities": self.server_capabilities.to_wire(),
            "serverInfo": self.server.info.to_wire(),
        }
        if self.server.instructions:
            result["instructions"] = self.server.instructions
        return result

    def _mark_ready(self) -> None:
        self.state = SessionState.READY
        store = self.server.store
        if store is not None and hasattr(store, "subscribe"):
            self._unsubscribe_changes = store.subscribe(self._on_change)
        logger.info(f"Session {self.session_id}: ready")

    def _on_change(self, change: Change) -> None:
        if self.state != SessionState.READY:
            return
        if (self.server_capabilities.declares("resources")
                and self.server.capabilities.resource_manager.has_listable_templates):
            logger.debug(f"Session {self.session_id}: data changed (entries={change.entries}, tags={change.tags})")
            self.notify(LIST_CHANGED_NOTIFICATIONS["resources"])

    # Method handlers

    async def _handle_list_tools(self, params) -> Dict[str, Any]:
        return {"tools": self.server.capabilities.tool_manager.list_tools()}

    async def _handle_call_tool(self, params) -> Dict[str, Any]:
        result = await self.server.capabilities.tool_manager.call_tool(self.context, params.name, params.arguments)
        return result.to_wire()

    async def _handle_list_resources(self, params) -> Dict[str, Any]:
        return {"resources": await self.server.capabilities.resource_manager.list_resources(self.context)}

    async def _handle_list_resource_templates(self, params) -> Dict[str, Any]:
        return {"resourceTemplates": self.server.capabilities.resource_manager.list_resource_templates()}

    async def _handle_read_resource(self, params) -> Dict[str, Any]:
        result = await self.server.capabilities.resource_manager.read_resource(self.context, params.uri)
        return result.to_wire()

    async def _handle_list_prompts(self, params) -> Dict[str, Any]:
        return {"prompts": self.server.capabilities.prompt_manager.list_prompts()}

    async def _handle_get_prompt(self, params) -> Dict[str, Any]:
        result = await self.server.capabilities.prompt_manager.get_prompt(self.context, params.name, params.arguments)
        return result.to_wire()

    async def _handle_complete(self, params) -> Dict[str, Any]:
        completion = await self.server.capabilities.complete(
            self.context, params.ref, params.argument.model_dump()
        )
        return {"completion": completion}

    async def close(self) -> None:
        """
        Close the session.
        Cancels in-flight requests, fails pending sampling requests with
        ConnectionClosedError and stops listening for data changes.
        """
        if self.is_closed:
            return
        self.state = SessionState.CLOSED
        if self._unsubscribe_changes:
            self._unsubscribe_changes()
            self._unsubscribe_changes = None
        self.sampling.close()

        current = asyncio.current_task()
        to_wait = []
        for task in list(self._tasks) + [self._reader_task]:
            if task is not None and task is not current and not task.done():
                task.cancel()
                to_wait.append(task)
        if to_wait:
            await asyncio.gather(*to_wait, return_exceptions=True)

        try:
            await self.transport.close()
        except Exception as e:
            logger.warning(f"Session {self.session_id}: error closing transport: {e}")
        self.server.sessions.discard(self)
        self._closed.set()
        logger.info(f"Session {self.session_id} closed")
