"""
Tool Manager implementation for the Journal MCP Server.
This module provides the tool registry and tool invocation.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from journal_mcp.core.protocol_handler import normalize_error
from journal_mcp.core.types import TextContent, ToolResult
from journal_mcp.error_handling.exceptions import DuplicateNameError, InvalidParamsError
from journal_mcp.schema import ArgsSchema

logger = logging.getLogger(__name__)

ToolHandler = Callable[[Any, Dict[str, Any]], Awaitable[ToolResult]]


@dataclass
class ToolDescriptor:
    """Tool definition."""
    name: str
    description: str
    input_schema: ArgsSchema
    handler: ToolHandler
    title: Optional[str] = None

    def to_listing(self) -> Dict[str, Any]:
        listing: Dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema.to_json_schema(),
        }
        if self.title:
            listing["title"] = self.title
        return listing


class ToolManager:
    """Manages registered tools and their invocation."""

    def __init__(self, on_change: Optional[Callable[[], None]] = None):
        """
        Initialize the tool manager.

        Args:
            on_change: Called after every successful registration
        """
        self.tools: Dict[str, ToolDescriptor] = {}
        self._on_change = on_change

    def register_tool(self, tool: ToolDescriptor) -> None:
        """
        Register a tool.

        Args:
            tool: Tool to register

        Raises:
            DuplicateNameError: If a tool with the same name is registered
        """
        if tool.name in self.tools:
            raise DuplicateNameError("Tool", tool.name)
        self.tools[tool.name] = tool
        logger.info(f"Registered tool: {tool.name}")
        if self._on_change:
            self._on_change()

    def get_tool(self, name: str) -> Optional[ToolDescriptor]:
        return self.tools.get(name)

    def list_tools(self) -> List[Dict[str, Any]]:
        """
        List registered tools in registration order.

        Returns:
            List[Dict[str, Any]]: Tool listings with their JSON input schemas
        """
        return [tool.to_listing() for tool in self.tools.values()]

    async def call_tool(self, ctx: Any, name: str, arguments: Optional[Dict[str, Any]]) -> ToolResult:
        """
        Validate arguments and run a tool.

        Unknown tools and invalid arguments are protocol errors and are
        raised. Anything the handler raises becomes an ``isError`` result.

        Args:
            ctx: Agent context handed to the handler
            name: Tool name
            arguments: Raw arguments from the request

        Returns:
            ToolResult: The handler's result, or an error result

        Raises:
            InvalidParamsError: If the tool is unknown
            SchemaValidationError: If the arguments do not match the schema
        """
        tool = self.tools.get(name)
        if tool is None:
            raise InvalidParamsError(f"Unknown tool: {name}")

        args = tool.input_schema.validate(arguments)

        try:
            return await tool.handler(ctx, args)
        except Exception as e:
            logger.warning(f"Tool {name} failed: {e}")
            return ToolResult(content=[TextContent(text=normalize_error(e))], is_error=True)
