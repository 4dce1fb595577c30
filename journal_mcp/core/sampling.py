"""
Server-to-client sampling requests.
This module keeps the table of pending ``sampling/createMessage`` requests and
correlates the client's responses with the handlers waiting on them.
"""

import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from pydantic import ValidationError

from journal_mcp.core.protocol_handler import JsonRpcResponse, ProtocolHandler
from journal_mcp.core.types import CreateMessageRequestParams, CreateMessageResult, SamplingMessage
from journal_mcp.error_handling.exceptions import (
    ConnectionClosedError, SamplingError, SamplingResponseError,
)

logger = logging.getLogger(__name__)

CREATE_MESSAGE_METHOD = "sampling/createMessage"


class SamplingManager:
    """Pending-request table for sampling round trips over one session."""

    def __init__(self, send: Callable[[Dict[str, Any]], Awaitable[None]]):
        """
        Initialize the sampling manager.

        Args:
            send: Coroutine that writes a message to the session's transport
        """
        self._send = send
        self._pending: Dict[Union[str, int], asyncio.Future] = {}
        self._closed = False

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def _new_request_id(self) -> str:
        return f"sampling-{uuid.uuid4().hex}"

    async def create_message(
        self,
        messages: List[Union[SamplingMessage, Dict[str, Any]]],
        max_tokens: int,
        system_prompt: Optional[str] = None,
    ) -> CreateMessageResult:
        """
        Ask the client's LLM for a completion.

        Suspends until the client answers. There is no built-in timeout;
        callers wrap this with ``asyncio.wait_for`` when they need one.
        Sends unconditionally; ServerSession.create_message checks the
        client capability first.

        Args:
            messages: Conversation to sample from
            max_tokens: Upper bound on generated tokens
            system_prompt: Optional system prompt

        Returns:
            CreateMessageResult: The client's answer

        Raises:
            SamplingError: If the client answers with a JSON-RPC error
            SamplingResponseError: If the result does not have the expected shape
            ConnectionClosedError: If the session closes before the answer arrives
        """
        if self._closed:
            raise ConnectionClosedError("Cannot send sampling request: connection closed")

        params = CreateMessageRequestParams(
            system_prompt=system_prompt,
            messages=[m if isinstance(m, SamplingMessage) else SamplingMessage.model_validate(m) for m in messages],
            max_tokens=max_tokens,
        )
        request_id = self._new_request_id()
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        logger.debug(f"Sending sampling request {request_id}")
        try:
            await self._send(ProtocolHandler.request(request_id, CREATE_MESSAGE_METHOD, params.to_wire()))
            response: JsonRpcResponse = await future
        finally:
            self._pending.pop(request_id, None)

        if response.error is not None:
            message = response.error.get("message", "Unknown Error")
            raise SamplingError(f"Sampling request failed: {message}")
        try:
            return CreateMessageResult.model_validate(response.result)
        except ValidationError as e:
            raise SamplingResponseError(original_exception=e)

    def handle_response(self, response: JsonRpcResponse) -> bool:
        """
        Resolve the pending request a response belongs to.

        Args:
            response: A response received from the client

        Returns:
            bool: False if no request with that id is pending
        """
        future = self._pending.pop(response.id, None)
        if future is None:
            logger.warning(f"Dropping response with unknown id: {response.id}")
            return False
        if not future.done():
            future.set_result(response)
        return True

    def close(self) -> None:
        """Fail every pending request with ConnectionClosedError."""
        self._closed = True
        pending = list(self._pending.values())
        self._pending.clear()
        for future in pending:
            if not future.done():
                future.set_exception(ConnectionClosedError("Connection closed while awaiting sampling response"))
        if pending:
            logger.info(f"Cancelled {len(pending)} pending sampling request(s)")
