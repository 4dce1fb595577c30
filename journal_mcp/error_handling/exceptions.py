"""
Custom exceptions for the Journal MCP Server.
This module provides the exception taxonomy and its JSON-RPC error codes.
"""

from typing import Any, Dict, List, Optional

# JSON-RPC 2.0 standard codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

# MCP-specific codes
RESOURCE_NOT_FOUND = -32002


class JournalMCPError(Exception):
    """Base exception class for Journal MCP errors."""
    def __init__(self, message: str, code: int = INTERNAL_ERROR, original_exception: Optional[Exception] = None):
        self.message = message
        self.code = code
        self.original_exception = original_exception
        super().__init__(self.message)

    def error_data(self) -> Optional[Dict[str, Any]]:
        """Extra data attached to the JSON-RPC error object."""
        if self.original_exception:
            return {'original_exception': str(self.original_exception)}
        return None

    def to_jsonrpc_error(self) -> dict:
        """Convert exception to JSON-RPC error object."""
        error = {
            'code': self.code,
            'message': self.message,
        }
        data = self.error_data()
        if data is not None:
            error['data'] = data
        return error


class ProtocolError(JournalMCPError):
    """Malformed envelope or request not valid in the current connection state."""
    def __init__(self, message: str = "Invalid request", original_exception: Optional[Exception] = None):
        super().__init__(message, code=INVALID_REQUEST, original_exception=original_exception)


class ParseError(JournalMCPError):
    """Inbound bytes were not valid JSON."""
    def __init__(self, message: str = "Parse error", original_exception: Optional[Exception] = None):
        super().__init__(message, code=PARSE_ERROR, original_exception=original_exception)


class MethodNotFoundError(JournalMCPError):
    """Unknown JSON-RPC method."""
    def __init__(self, method: str):
        self.method = method
        super().__init__(f"Method not found: {method}", code=METHOD_NOT_FOUND)


class CapabilityError(JournalMCPError):
    """A method was called for a capability group the server did not declare."""
    def __init__(self, capability: str, method: str):
        self.capability = capability
        self.method = method
        super().__init__(
            f"Server does not support {capability} (required for {method})",
            code=METHOD_NOT_FOUND,
        )

    def error_data(self) -> Optional[Dict[str, Any]]:
        return {'capability': self.capability, 'method': self.method}


class InvalidParamsError(JournalMCPError):
    """Request params are missing, malformed or refer to something unknown."""
    def __init__(self, message: str = "Invalid params", original_exception: Optional[Exception] = None):
        super().__init__(message, code=INVALID_PARAMS, original_exception=original_exception)


class SchemaValidationError(InvalidParamsError):
    """Arguments failed schema validation. Carries one message per field."""
    def __init__(self, message: str, errors: Optional[List[Dict[str, str]]] = None):
        self.errors = errors or []
        super().__init__(message)

    def error_data(self) -> Optional[Dict[str, Any]]:
        return {'errors': self.errors}


class ResourceNotFoundError(JournalMCPError):
    """No static resource or template matches a URI."""
    def __init__(self, uri: str):
        self.uri = uri
        super().__init__(f"Resource not found: {uri}", code=RESOURCE_NOT_FOUND)

    def error_data(self) -> Optional[Dict[str, Any]]:
        return {'uri': self.uri}


class ConfigurationError(JournalMCPError):
    """Configuration error."""
    def __init__(self, message: str = "Configuration error occurred", original_exception: Optional[Exception] = None):
        super().__init__(message, code=-32004, original_exception=original_exception)


class DuplicateNameError(ConfigurationError):
    """A descriptor with the same name (or URI) is already registered."""
    def __init__(self, kind: str, name: str):
        self.kind = kind
        self.name = name
        super().__init__(f"{kind} already registered: {name}")


class NotFoundError(JournalMCPError):
    """A journal entity does not exist."""
    def __init__(self, message: str = "Record not found", original_exception: Optional[Exception] = None):
        super().__init__(message, code=-32008, original_exception=original_exception)


class StorageError(JournalMCPError):
    """The data store failed to execute an operation."""
    def __init__(self, message: str = "Storage error occurred", original_exception: Optional[Exception] = None):
        super().__init__(message, code=-32011, original_exception=original_exception)


class SamplingError(JournalMCPError):
    """The client failed to fulfil a sampling request."""
    def __init__(self, message: str = "Sampling request failed", original_exception: Optional[Exception] = None):
        super().__init__(message, code=-32014, original_exception=original_exception)


class SamplingResponseError(SamplingError):
    """The client answered, but the result did not match the expected shape."""
    def __init__(self, message: str = "Sampling response did not match the expected shape",
                 original_exception: Optional[Exception] = None):
        super().__init__(message, original_exception=original_exception)


class ConnectionClosedError(SamplingError):
    """The connection closed while a server-to-client request was pending."""
    def __init__(self, message: str = "Connection closed", original_exception: Optional[Exception] = None):
        super().__init__(message, original_exception=original_exception)
