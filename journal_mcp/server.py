"""
Journal MCP server assembly and command line entry point.
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional, Tuple

from journal_mcp.config import ServerConfig, TRANSPORTS, config_from_dict, load_config
from journal_mcp.core.capabilities_manager import CapabilitiesManager
from journal_mcp.core.logging_config import setup_logging, setup_logging_from_config
from journal_mcp.core.mcp_server import MCPServer
from journal_mcp.db.store import JournalStore
from journal_mcp.error_handling.exceptions import JournalMCPError
from journal_mcp.journal.prompts import register_prompts
from journal_mcp.journal.resources import JournalUris, register_resources
from journal_mcp.journal.tools import register_tools
from journal_mcp.protocol.sse import SSEServer
from journal_mcp.protocol.stdio import StdioTransport

logger = logging.getLogger(__name__)

DEFAULT_INSTRUCTIONS = """
This is a journaling app that allows users to write about and review their experiences, thoughts, and reflections.

These tools are the user's window into their journal. With these tools and your help, they can create, read, and manage their journal entries and associated tags.

You can also help users add tags to their entries and get all tags for an entry.
""".strip()


def create_server(config: ServerConfig, store: Optional[JournalStore] = None) -> Tuple[MCPServer, JournalStore]:
    """
    Build a server with every journal tool, resource and prompt registered.

    Args:
        config: Server configuration
        store: Store to use instead of opening ``config.database_path``

    Returns:
        Tuple[MCPServer, JournalStore]: The server and its store
    """
    if store is None:
        store = JournalStore(config.database_path)
    server = MCPServer(
        name=config.server_name,
        version=config.server_version,
        store=store,
        capabilities=CapabilitiesManager(config.capabilities),
        instructions=config.instructions or DEFAULT_INSTRUCTIONS,
        sampling_enabled=config.sampling.enabled,
        sampling_max_tokens=config.sampling.max_tokens,
        sampling_timeout=config.sampling.timeout,
    )
    uris = JournalUris(config.uri_scheme)
    register_tools(server, uris)
    register_resources(server, uris)
    register_prompts(server, uris)
    return server, store


async def main(config: ServerConfig) -> None:
    """Run the server on the configured transport until it is stopped."""
    server, store = create_server(config)
    try:
        if config.transport == "sse":
            sse_server = SSEServer(
                server,
                allowed_origins=set(config.allowed_origins),
                heartbeat_interval=config.heartbeat_interval,
            )
            await sse_server.run(config.host, config.port)
        else:
            logger.info("Server is running in stdio mode")
            await server.serve(StdioTransport())
    finally:
        logger.info("Shutting down server...")
        await server.close()
        store.close()


def main_cli():
    """Command line entry point."""
    parser = argparse.ArgumentParser(description='Journal MCP Server')
    parser.add_argument('--config', help='Path to configuration file')
    parser.add_argument('--transport', choices=TRANSPORTS, help='Override the configured transport')
    parser.add_argument('--db', help='Path to the SQLite database')
    parser.add_argument('--log-level', help='Logging level (DEBUG, INFO, WARNING, ERROR)')
    args = parser.parse_args()

    try:
        config = load_config(args.config) if args.config else config_from_dict(None)
    except JournalMCPError as e:
        print(f"Failed to load configuration: {e}", file=sys.stderr)
        sys.exit(1)

    if args.transport:
        config.transport = args.transport
    if args.db:
        config.database_path = args.db
    if args.log_level:
        config.log_level = args.log_level

    if config.logging:
        setup_logging_from_config(config.logging)
    else:
        setup_logging(config.log_level, config.transport)

    try:
        asyncio.run(main(config))
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception as e:
        logger.error(f"Server error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main_cli()
