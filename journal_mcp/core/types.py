"""
MCP wire types.
These pydantic models define the structures exchanged with the client.
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

LATEST_PROTOCOL_VERSION = "2025-06-18"
SUPPORTED_PROTOCOL_VERSIONS = ["2025-06-18", "2025-03-26", "2024-11-05"]


class WireModel(BaseModel):
    """Base model: camelCase aliases on the wire, unknown keys tolerated."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class TextContent(WireModel):
    type: Literal["text"] = "text"
    text: str


class TextResourceContents(WireModel):
    uri: str
    mime_type: Optional[str] = Field(default=None, alias="mimeType")
    text: str


class EmbeddedResource(WireModel):
    type: Literal["resource"] = "resource"
    resource: TextResourceContents


class ResourceLink(WireModel):
    type: Literal["resource_link"] = "resource_link"
    uri: str
    name: str
    description: Optional[str] = None
    mime_type: Optional[str] = Field(default=None, alias="mimeType")


ContentItem = Annotated[
    Union[TextContent, EmbeddedResource, ResourceLink],
    Field(discriminator="type"),
]


class ToolResult(WireModel):
    """Result of tools/call. isError marks an application-level failure."""
    content: List[ContentItem] = Field(default_factory=list)
    is_error: Optional[bool] = Field(default=None, alias="isError")


class ReadResourceResult(WireModel):
    contents: List[TextResourceContents]


class ResourceListing(WireModel):
    """One row of resources/list."""
    uri: str
    name: str
    title: Optional[str] = None
    description: Optional[str] = None
    mime_type: Optional[str] = Field(default=None, alias="mimeType")


class PromptMessage(WireModel):
    role: Literal["user", "assistant"]
    content: ContentItem


class GetPromptResult(WireModel):
    description: Optional[str] = None
    messages: List[PromptMessage]


class Implementation(WireModel):
    name: str
    version: str
    title: Optional[str] = None


class ClientCapabilities(WireModel):
    """Capabilities the client declares in initialize."""
    sampling: Optional[Dict[str, Any]] = None
    roots: Optional[Dict[str, Any]] = None
    elicitation: Optional[Dict[str, Any]] = None
    experimental: Optional[Dict[str, Any]] = None


class ServerCapabilities(WireModel):
    """Capabilities the server declares. An absent group is not implemented."""
    tools: Optional[Dict[str, Any]] = None
    resources: Optional[Dict[str, Any]] = None
    prompts: Optional[Dict[str, Any]] = None
    completions: Optional[Dict[str, Any]] = None
    logging: Optional[Dict[str, Any]] = None

    def declares(self, group: str) -> bool:
        return getattr(self, group, None) is not None


class SamplingContent(WireModel):
    type: Literal["text"] = "text"
    text: str
    mime_type: Optional[str] = Field(default=None, alias="mimeType")


class SamplingMessage(WireModel):
    role: Literal["user", "assistant"]
    content: SamplingContent


class CreateMessageRequestParams(WireModel):
    system_prompt: Optional[str] = Field(default=None, alias="systemPrompt")
    messages: List[SamplingMessage]
    max_tokens: int = Field(alias="maxTokens")


class CreateMessageResult(WireModel):
    """What the client's LLM produced for a sampling request."""
    model: str
    stop_reason: Optional[str] = Field(default=None, alias="stopReason")
    role: Literal["user", "assistant"]
    content: SamplingContent


class Change(BaseModel):
    """Ids touched by a successful store mutation."""
    entries: List[int] = Field(default_factory=list)
    tags: List[int] = Field(default_factory=list)
