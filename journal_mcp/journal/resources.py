"""
Journal resources.
Static listings of all tags and entries, single-entity templates with listing
and id completion, and the tags of one entry.
"""

import getpass
import logging
from typing import Dict, List

from journal_mcp.core.context import AgentContext
from journal_mcp.core.mcp_server import MCPServer
from journal_mcp.core.types import ReadResourceResult, ResourceListing, TextResourceContents
from journal_mcp.journal.formatting import JSON_MIME_TYPE, json_resource_contents
from journal_mcp.resources.resource_manager import ResourceDescriptor, ResourceTemplateDescriptor

logger = logging.getLogger(__name__)


class JournalUris:
    """Builds the journal's resource URIs under a configurable scheme."""

    def __init__(self, scheme: str = "journal"):
        self.scheme = scheme

    @property
    def base(self) -> str:
        return f"{self.scheme}://"

    def entries(self) -> str:
        return f"{self.base}entries"

    def entry(self, entry_id) -> str:
        return f"{self.base}entries/{entry_id}"

    def entry_tags(self, entry_id) -> str:
        return f"{self.base}entries/{entry_id}/tags"

    def tags(self) -> str:
        return f"{self.base}tags"

    def tag(self, tag_id) -> str:
        return f"{self.base}tags/{tag_id}"

    def credits(self) -> str:
        return f"{self.base}credits"


def parse_id(value: str, kind: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ValueError(f'{kind} ID must be an integer, got "{value}"')


async def complete_entry_id(ctx: AgentContext, value: str) -> List[str]:
    entries = await ctx.store.get_entries()
    return [str(entry.id) for entry in entries if value in str(entry.id)]


async def complete_tag_id(ctx: AgentContext, value: str) -> List[str]:
    tags = await ctx.store.get_tags()
    return [str(tag.id) for tag in tags if value in str(tag.id)]


def register_resources(server: MCPServer, uris: JournalUris) -> None:
    """Register every journal resource and resource template."""

    async def read_tags(ctx: AgentContext, uri: str) -> ReadResourceResult:
        tags = await ctx.store.get_tags()
        return ReadResourceResult(contents=[json_resource_contents(uri, tags)])

    async def read_entries(ctx: AgentContext, uri: str) -> ReadResourceResult:
        entries = await ctx.store.get_entries()
        return ReadResourceResult(contents=[json_resource_contents(uri, entries)])

    async def read_credits(ctx: AgentContext, uri: str) -> ReadResourceResult:
        return ReadResourceResult(contents=[
            TextResourceContents(uri=uri, mime_type="text/plain", text=f"This app was created by {getpass.getuser()}")
        ])

    async def read_entry(ctx: AgentContext, uri: str, params: Dict[str, str]) -> ReadResourceResult:
        entry = await ctx.store.get_entry(parse_id(params["id"], "Entry"))
        return ReadResourceResult(contents=[json_resource_contents(uri, entry)])

    async def read_tag(ctx: AgentContext, uri: str, params: Dict[str, str]) -> ReadResourceResult:
        tag = await ctx.store.get_tag(parse_id(params["id"], "Tag"))
        return ReadResourceResult(contents=[json_resource_contents(uri, tag)])

    async def read_entry_tags(ctx: AgentContext, uri: str, params: Dict[str, str]) -> ReadResourceResult:
        tags = await ctx.store.get_entry_tags(parse_id(params["id"], "Entry"))
        return ReadResourceResult(contents=[json_resource_contents(uri, tags)])

    async def list_entries(ctx: AgentContext) -> List[ResourceListing]:
        entries = await ctx.store.get_entries()
        return [
            ResourceListing(uri=uris.entry(entry.id), name=entry.title, mime_type=JSON_MIME_TYPE)
            for entry in entries
        ]

    async def list_tags(ctx: AgentContext) -> List[ResourceListing]:
        tags = await ctx.store.get_tags()
        return [
            ResourceListing(uri=uris.tag(tag.id), name=tag.name, description=tag.description, mime_type=JSON_MIME_TYPE)
            for tag in tags
        ]

    server.register_resource(ResourceDescriptor(
        name="tags",
        uri=uris.tags(),
        title="Tags",
        description="All tags",
        mime_type=JSON_MIME_TYPE,
        handler=read_tags,
    ))
    server.register_resource(ResourceDescriptor(
        name="entries",
        uri=uris.entries(),
        title="Entries",
        description="All journal entries",
        mime_type=JSON_MIME_TYPE,
        handler=read_entries,
    ))
    server.register_resource(ResourceDescriptor(
        name="credits",
        uri=uris.credits(),
        title="Credits",
        description="Credits for the creators of the app",
        mime_type="text/plain",
        handler=read_credits,
    ))

    # The more specific entry-tags template goes first so it never depends on
    # segment counting alone.
    server.register_resource_template(ResourceTemplateDescriptor(
        name="entry_tags",
        uri_template=uris.entry_tags("{id}"),
        title="Entry Tags",
        description="The tags of a single journal entry",
        mime_type=JSON_MIME_TYPE,
        complete_callbacks={"id": complete_entry_id},
        handler=read_entry_tags,
    ))
    server.register_resource_template(ResourceTemplateDescriptor(
        name="entry",
        uri_template=uris.entry("{id}"),
        title="Journal Entry",
        description="A single journal entry",
        mime_type=JSON_MIME_TYPE,
        list_callback=list_entries,
        complete_callbacks={"id": complete_entry_id},
        handler=read_entry,
    ))
    server.register_resource_template(ResourceTemplateDescriptor(
        name="tag",
        uri_template=uris.tag("{id}"),
        title="Tag",
        description="A single tag",
        mime_type=JSON_MIME_TYPE,
        list_callback=list_tags,
        complete_callbacks={"id": complete_tag_id},
        handler=read_tag,
    ))
    logger.info("Journal resources registered")
