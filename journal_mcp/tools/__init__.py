"""
Journal MCP Tools package initialization.
This module provides tool registration and invocation for the Journal MCP Server.
"""

from journal_mcp.tools.tool_manager import ToolDescriptor, ToolManager

__all__ = ["ToolDescriptor", "ToolManager"]
