"""
MCP Protocol Handler implementation.
This module provides JSON-RPC envelope parsing, response construction and
error normalization for the MCP server.
"""

import logging
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, StrictInt, StrictStr, ValidationError

from journal_mcp.core.types import LATEST_PROTOCOL_VERSION, SUPPORTED_PROTOCOL_VERSIONS
from journal_mcp.error_handling.exceptions import (
    INTERNAL_ERROR, JournalMCPError, ProtocolError,
)

logger = logging.getLogger(__name__)

RequestId = Union[StrictInt, StrictStr]


class JsonRpcRequest(BaseModel):
    """JSON-RPC 2.0 request model. A request without an id is a notification."""
    model_config = ConfigDict(extra="ignore")
    jsonrpc: Literal["2.0"] = "2.0"
    method: str
    params: Optional[Any] = None
    id: Optional[RequestId] = None

    @property
    def is_notification(self) -> bool:
        return self.id is None


class JsonRpcResponse(BaseModel):
    """JSON-RPC 2.0 response model."""
    jsonrpc: Literal["2.0"] = "2.0"
    result: Optional[Any] = None
    error: Optional[Dict[str, Any]] = None
    id: Optional[RequestId] = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_wire(self) -> Dict[str, Any]:
        message: Dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            message["error"] = self.error
        else:
            message["result"] = self.result if self.result is not None else {}
        return message


def normalize_error(error: BaseException) -> str:
    """
    Turn any exception into the text shown to the client.

    Args:
        error: The exception raised by a handler

    Returns:
        str: The error message, or "Unknown Error" when there is none
    """
    if isinstance(error, JournalMCPError):
        return error.message or "Unknown Error"
    message = str(error)
    return message if message else "Unknown Error"


class ProtocolHandler:
    """
    Centralized protocol handler for the MCP server.
    Manages protocol version negotiation and request/response handling.
    """

    def __init__(self, protocol_version: str = LATEST_PROTOCOL_VERSION):
        """
        Initialize the protocol handler.

        Args:
            protocol_version: The protocol version offered when the client's is unsupported
        """
        self.protocol_version = protocol_version
        self._supported_versions = set(SUPPORTED_PROTOCOL_VERSIONS)

    def validate_protocol_version(self, version: str) -> bool:
        return version in self._supported_versions

    def negotiate_version(self, requested: str) -> str:
        """Answer with the client's version when supported, otherwise the latest one."""
        if self.validate_protocol_version(requested):
            return requested
        logger.info(f"Client requested unsupported protocol version {requested}, offering {self.protocol_version}")
        return self.protocol_version

    def parse_message(self, data: Any) -> Union[JsonRpcRequest, JsonRpcResponse]:
        """
        Classify and validate an inbound JSON-RPC message.

        Args:
            data: The decoded JSON value

        Returns:
            JsonRpcRequest for requests and notifications, JsonRpcResponse for
            responses to server-initiated requests

        Raises:
            ProtocolError: If the envelope is invalid
        """
        if not isinstance(data, dict):
            raise ProtocolError("Invalid JSON-RPC message: expected an object")
        if data.get("jsonrpc") != "2.0":
            raise ProtocolError("Invalid JSON-RPC message: jsonrpc must be \"2.0\"")
        try:
            if "method" in data:
                return JsonRpcRequest.model_validate(data)
            if "result" in data or "error" in data:
                if data.get("id") is None:
                    raise ProtocolError("Invalid JSON-RPC response: missing id")
                return JsonRpcResponse.model_validate(data)
        except ValidationError as e:
            raise ProtocolError(f"Invalid JSON-RPC message: {e.errors()[0]['msg']}", original_exception=e)
        raise ProtocolError("Invalid JSON-RPC message: no method, result or error")

    @staticmethod
    def extract_id(data: Any) -> Optional[Union[str, int]]:
        """Best-effort id of a message that failed validation."""
        if isinstance(data, dict):
            request_id = data.get("id")
            if isinstance(request_id, (str, int)) and not isinstance(request_id, bool):
                return request_id
        return None

    def create_response(
        self,
        request_id: Optional[Union[str, int]],
        result: Optional[Any] = None,
        error: Optional[Dict[str, Any]] = None
    ) -> JsonRpcResponse:
        return JsonRpcResponse(result=result, error=error, id=request_id)

    def create_error_response(
        self,
        request_id: Optional[Union[str, int]],
        code: int,
        message: str,
        data: Optional[Any] = None
    ) -> JsonRpcResponse:
        """
        Create a JSON-RPC error response.

        Args:
            request_id: The request ID to include in the response
            code: The error code
            message: The error message
            data: Optional additional error data

        Returns:
            JsonRpcResponse: The formatted error response
        """
        error = {
            "code": code,
            "message": message
        }
        if data is not None:
            error["data"] = data

        return self.create_response(request_id=request_id, error=error)

    def handle_protocol_error(self, request_id: Optional[Union[str, int]], error: Exception) -> JsonRpcResponse:
        """
        Convert an exception into a JSON-RPC error response.

        Args:
            request_id: The id of the failed request
            error: The exception to handle

        Returns:
            JsonRpcResponse: The formatted error response
        """
        if isinstance(error, JournalMCPError):
            return self.create_response(request_id=request_id, error=error.to_jsonrpc_error())
        logger.exception("Unhandled error while processing request", exc_info=error)
        return self.create_error_response(
            request_id=request_id,
            code=INTERNAL_ERROR,
            message=f"Internal error: {normalize_error(error)}"
        )

    @staticmethod
    def notification(method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        message: Dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            message["params"] = params
        return message

    @staticmethod
    def request(request_id: Union[str, int], method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        message = ProtocolHandler.notification(method, params)
        message["id"] = request_id
        return message


def batch_items(data: Any) -> List[Any]:
    """Split a possibly batched payload into individual messages."""
    if isinstance(data, list):
        return data
    return [data]
