"""
MCP transport base class.
A transport moves whole JSON-RPC messages between the server session and one client.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from journal_mcp.error_handling.exceptions import ParseError


class TransportParseError(ParseError):
    """Inbound bytes could not be decoded as JSON. The transport stays open."""


class TransportClosedError(ConnectionError):
    """Raised by send() after the transport has closed."""


class Transport(ABC):
    """
    Base class for MCP transports.
    Must be implemented by subclasses.
    """

    @abstractmethod
    async def send(self, message: Dict[str, Any]) -> None:
        """
        Send one message to the peer.

        Raises:
            TransportClosedError: If the transport is closed
        """

    @abstractmethod
    async def receive(self) -> Optional[Any]:
        """
        Wait for the next inbound message.

        Returns:
            The decoded JSON value (an object, or a list for batches), or None
            once the peer has closed the stream

        Raises:
            TransportParseError: If the next message is not valid JSON
        """

    @abstractmethod
    async def close(self) -> None:
        """Close the transport. Pending and later receive() calls return None."""
