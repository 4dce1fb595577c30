"""
MCP stdio transport.
Newline-delimited JSON-RPC over stdin/stdout.
"""

import asyncio
import json
import logging
import sys
from typing import Any, Dict, Optional, TextIO

from journal_mcp.protocol.base import Transport, TransportClosedError, TransportParseError

logger = logging.getLogger(__name__)


class StdioTransport(Transport):
    """
    Implements the MCP transport over stdio.
    Reads one JSON message per line from stdin and writes one per line to stdout.
    """

    def __init__(self, stdin: Optional[TextIO] = None, stdout: Optional[TextIO] = None):
        """
        Initialize the stdio transport.

        Args:
            stdin: Input stream (defaults to sys.stdin)
            stdout: Output stream (defaults to sys.stdout)
        """
        self._stdin = stdin or sys.stdin
        self._stdout = stdout or sys.stdout
        self._write_lock = asyncio.Lock()
        self._closed = False

    async def receive(self) -> Optional[Any]:
        while not self._closed:
            # Blocking readline runs in the default executor
            line = await asyncio.get_running_loop().run_in_executor(None, self._stdin.readline)
            if not line:
                logger.info("stdin closed")
                self._closed = True
                return None
            line = line.strip()
            if not line:
                continue
            try:
                return json.loads(line)
            except json.JSONDecodeError as e:
                logger.error(f"Invalid JSON in request: {e}")
                raise TransportParseError(f"Parse error: {e.msg}", original_exception=e)
        return None

    async def send(self, message: Dict[str, Any]) -> None:
        if self._closed:
            raise TransportClosedError("stdio transport is closed")
        data = json.dumps(message, ensure_ascii=False)
        async with self._write_lock:
            self._stdout.write(data + "\n")
            self._stdout.flush()

    async def close(self) -> None:
        self._closed = True
