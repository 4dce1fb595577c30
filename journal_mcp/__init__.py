"""
Journal MCP Server.
A Model Context Protocol server exposing a journal of entries and tags.
"""

__version__ = "1.0.0"
