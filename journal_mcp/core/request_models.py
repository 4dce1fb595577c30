from typing import Any, Dict, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from journal_mcp.core.types import ClientCapabilities, Implementation
from journal_mcp.error_handling.exceptions import InvalidParamsError


class BaseParams(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# Param models for each inbound method

class InitializeParams(BaseParams):
    protocol_version: str = Field(..., alias="protocolVersion", min_length=1)
    capabilities: ClientCapabilities = Field(default_factory=ClientCapabilities)
    client_info: Optional[Implementation] = Field(default=None, alias="clientInfo")


class PaginatedParams(BaseParams):
    cursor: Optional[str] = None


class CallToolParams(BaseParams):
    name: str = Field(..., min_length=1)
    arguments: Optional[Dict[str, Any]] = None


class ReadResourceParams(BaseParams):
    uri: str = Field(..., min_length=1)


class GetPromptParams(BaseParams):
    name: str = Field(..., min_length=1)
    arguments: Optional[Dict[str, Any]] = None


class CompletionArgument(BaseParams):
    name: str
    value: str = ""


class CompleteParams(BaseParams):
    ref: Dict[str, Any]
    argument: CompletionArgument
    context: Optional[Dict[str, Any]] = None


class EmptyParams(BaseParams):
    pass


# Method name -> params model
METHOD_PARAMS_MAP: Dict[str, Type[BaseModel]] = {
    "initialize": InitializeParams,
    "ping": EmptyParams,
    "tools/list": PaginatedParams,
    "tools/call": CallToolParams,
    "resources/list": PaginatedParams,
    "resources/templates/list": PaginatedParams,
    "resources/read": ReadResourceParams,
    "prompts/list": PaginatedParams,
    "prompts/get": GetPromptParams,
    "completion/complete": CompleteParams,
}


def validate_request_params(method: str, params: Optional[Dict[str, Any]]) -> BaseModel:
    """
    Validate the params of a JSON-RPC request with pydantic.

    Args:
        method: The canonical JSON-RPC method name.
        params: The params object received (may be None).

    Returns:
        An instance of the validated pydantic model.

    Raises:
        InvalidParamsError: If validation fails.
        KeyError: If the method has no params model.
    """
    model_class = METHOD_PARAMS_MAP.get(method)
    if model_class is None:
        raise KeyError(f"No validation model defined for method: {method}")
    try:
        return model_class.model_validate(params or {})
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'params'}: {err['msg']}"
            for err in e.errors()
        )
        raise InvalidParamsError(f"Invalid params for {method}: {details}", original_exception=e)
