"""
In-process transport.
Two linked MemoryTransport ends pass messages through asyncio queues; used
for embedding a client in the same process and in tests.
"""

import asyncio
import copy
import logging
from typing import Any, Dict, Optional, Tuple

from journal_mcp.protocol.base import Transport, TransportClosedError

logger = logging.getLogger(__name__)

_CLOSED = object()


class MemoryTransport(Transport):
    """One end of an in-memory transport pair."""

    def __init__(self):
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._peer: Optional["MemoryTransport"] = None
        self._closed = False

    @classmethod
    def create_pair(cls) -> Tuple["MemoryTransport", "MemoryTransport"]:
        """
        Create two linked ends.

        Returns:
            Tuple[MemoryTransport, MemoryTransport]: (client end, server end)
        """
        client, server = cls(), cls()
        client._peer = server
        server._peer = client
        return client, server

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, message: Dict[str, Any]) -> None:
        if self._closed or self._peer is None or self._peer._closed:
            raise TransportClosedError("Memory transport is closed")
        # Copy so neither side can mutate what the other received
        self._peer._inbox.put_nowait(copy.deepcopy(message))

    async def receive(self) -> Optional[Any]:
        if self._closed and self._inbox.empty():
            return None
        item = await self._inbox.get()
        if item is _CLOSED:
            # Keep later receive() calls returning None
            self._inbox.put_nowait(_CLOSED)
            return None
        return item

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._inbox.put_nowait(_CLOSED)
        if self._peer is not None and not self._peer._closed:
            self._peer._closed = True
            self._peer._inbox.put_nowait(_CLOSED)
        logger.debug("Memory transport closed")
