"""
Transports carrying JSON-RPC messages between client and server.
"""

from journal_mcp.protocol.base import Transport, TransportClosedError, TransportParseError
from journal_mcp.protocol.memory import MemoryTransport

__all__ = ["MemoryTransport", "Transport", "TransportClosedError", "TransportParseError"]
