"""
Context handed to tool, resource and prompt handlers.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from journal_mcp.core.capabilities_manager import CapabilitiesManager
    from journal_mcp.core.mcp_server import MCPServer, ServerSession
    from journal_mcp.db.store import JournalStore


@dataclass
class AgentContext:
    """Everything a handler may touch: the data store, the registries, the server and the calling session."""
    store: "JournalStore"
    capabilities: "CapabilitiesManager"
    server: "MCPServer"
    session: "ServerSession"

    def client_supports_sampling(self) -> bool:
        return self.session.client_supports_sampling()
