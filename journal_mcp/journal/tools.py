"""
Journal tools.
CRUD tools for entries and tags plus tagging of entries. Handlers raise on
failure; the tool manager turns those errors into ``isError`` results.
"""

import asyncio
import logging
from typing import Any, Dict, List

from journal_mcp.core.context import AgentContext
from journal_mcp.core.mcp_server import MCPServer
from journal_mcp.core.types import ToolResult
from journal_mcp.db.models import Entry, Tag
from journal_mcp.journal.formatting import embedded_resource, resource_link, text_content
from journal_mcp.journal.resources import JournalUris
from journal_mcp.journal.sampling import suggest_tags
from journal_mcp.schema import ArgsSchema, array, flag, integer, string
from journal_mcp.tools.tool_manager import ToolDescriptor

logger = logging.getLogger(__name__)

MOOD_DESCRIPTION = 'The mood of the entry (for example: "happy", "sad", "anxious", "excited")'
LOCATION_DESCRIPTION = 'The location of the entry (for example: "home", "work", "school", "park")'
WEATHER_DESCRIPTION = 'The weather of the entry (for example: "sunny", "cloudy", "rainy", "snowy")'
PRIVATE_DESCRIPTION = "Whether the entry is private (1 for private, 0 for public)"
FAVORITE_DESCRIPTION = "Whether the entry is a favorite (1 for favorite, 0 for not favorite)"

CREATE_ENTRY_SCHEMA = ArgsSchema({
    "title": string("The title of the entry"),
    "content": string("The content of the entry"),
    "mood": string(MOOD_DESCRIPTION, optional=True),
    "location": string(LOCATION_DESCRIPTION, optional=True),
    "weather": string(WEATHER_DESCRIPTION, optional=True),
    "isPrivate": flag(PRIVATE_DESCRIPTION, default=1),
    "isFavorite": flag(FAVORITE_DESCRIPTION, default=0),
    "tags": array(integer(), "The IDs of the tags to add to the entry", optional=True),
}, name="create_entry")

UPDATE_ENTRY_SCHEMA = ArgsSchema({
    "id": integer("The ID of the entry"),
    "title": string("The title of the entry", optional=True),
    "content": string("The content of the entry", optional=True),
    "mood": string(MOOD_DESCRIPTION, optional=True, nullable=True),
    "location": string(LOCATION_DESCRIPTION, optional=True, nullable=True),
    "weather": string(WEATHER_DESCRIPTION, optional=True, nullable=True),
    "isPrivate": flag(PRIVATE_DESCRIPTION, optional=True),
    "isFavorite": flag(FAVORITE_DESCRIPTION, optional=True),
}, name="update_entry")

CREATE_TAG_SCHEMA = ArgsSchema({
    "name": string("The name of the tag"),
    "description": string("The description of the tag", optional=True),
}, name="create_tag")

UPDATE_TAG_SCHEMA = ArgsSchema({
    "id": integer("The ID of the tag"),
    "name": string("The name of the tag", optional=True),
    "description": string("The description of the tag", optional=True, nullable=True),
}, name="update_tag")

ENTRY_ID_SCHEMA = ArgsSchema({"id": integer("The ID of the entry")}, name="entry_id")
TAG_ID_SCHEMA = ArgsSchema({"id": integer("The ID of the tag")}, name="tag_id")

LIST_ENTRIES_SCHEMA = ArgsSchema({
    "tagIds": array(integer(), "Optional array of tag IDs to filter entries by", optional=True),
}, name="list_entries")

ENTRY_TAG_SCHEMA = ArgsSchema({
    "entryId": integer("The ID of the entry"),
    "tagId": integer("The ID of the tag"),
}, name="add_tag_to_entry")

GET_ENTRY_TAGS_SCHEMA = ArgsSchema({"entryId": integer("The ID of the entry")}, name="get_entry_tags")


def _plural(count: int, singular: str, plural: str) -> str:
    return f"{count} {singular if count == 1 else plural}"


class JournalTools:
    """Tool handlers bound to one URI scheme."""

    def __init__(self, uris: JournalUris):
        self.uris = uris

    def entry_link(self, entry: Entry):
        return resource_link(self.uris.entry(entry.id), entry.title)

    def tag_link(self, tag: Tag):
        return resource_link(self.uris.tag(tag.id), tag.name, tag.description)

    # Entries

    async def create_entry(self, ctx: AgentContext, args: Dict[str, Any]) -> ToolResult:
        tag_ids: List[int] = list(dict.fromkeys(args.pop("tags", None) or []))
        async with ctx.store.transaction():
            created = await ctx.store.create_entry(args)
            for tag_id in tag_ids:
                await ctx.store.add_tag_to_entry(created.id, tag_id)

        # Suggestions arrive after the tool has answered
        if ctx.client_supports_sampling():
            ctx.session.spawn(self._suggest_tags(ctx, created.id), name=f"suggest-tags-{created.id}")
        else:
            logger.debug(f"Skipping tag suggestions for entry {created.id}, client cannot sample")

        return ToolResult(content=[
            text_content(f'Entry "{created.title}" created successfully with ID "{created.id}"'),
            self.entry_link(created),
        ])

    async def _suggest_tags(self, ctx: AgentContext, entry_id: int) -> None:
        """Run tag suggestions; a failure only costs the suggestions."""
        try:
            await asyncio.wait_for(suggest_tags(ctx, entry_id), timeout=ctx.server.sampling_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Timed out waiting for tag suggestions for entry {entry_id}")
        except Exception as e:
            logger.warning(f"Tag suggestions for entry {entry_id} failed: {e}")

    async def get_entry(self, ctx: AgentContext, args: Dict[str, Any]) -> ToolResult:
        entry = await ctx.store.get_entry(args["id"])
        return ToolResult(content=[embedded_resource(self.uris.entry(entry.id), entry)])

    async def list_entries(self, ctx: AgentContext, args: Dict[str, Any]) -> ToolResult:
        entries = await ctx.store.list_entries(args.get("tagIds"))
        return ToolResult(content=[
            text_content(f"Found {_plural(len(entries), 'entry', 'entries')}."),
            *[self.entry_link(entry) for entry in entries],
        ])

    async def update_entry(self, ctx: AgentContext, args: Dict[str, Any]) -> ToolResult:
        entry_id = args.pop("id")
        updated = await ctx.store.update_entry(entry_id, args)
        return ToolResult(content=[
            text_content(f'Entry "{updated.title}" (ID: {entry_id}) updated successfully'),
            embedded_resource(self.uris.entry(entry_id), updated),
        ])

    async def delete_entry(self, ctx: AgentContext, args: Dict[str, Any]) -> ToolResult:
        entry_id = args["id"]
        existing = await ctx.store.delete_entry(entry_id)
        return ToolResult(content=[
            text_content(f'Entry "{existing.title}" (ID: {entry_id}) deleted successfully'),
        ])

    # Tags

    async def create_tag(self, ctx: AgentContext, args: Dict[str, Any]) -> ToolResult:
        created = await ctx.store.create_tag(args)
        return ToolResult(content=[
            text_content(f'Tag "{created.name}" created successfully with ID "{created.id}"'),
            self.tag_link(created),
        ])

    async def get_tag(self, ctx: AgentContext, args: Dict[str, Any]) -> ToolResult:
        tag = await ctx.store.get_tag(args["id"])
        return ToolResult(content=[embedded_resource(self.uris.tag(tag.id), tag)])

    async def list_tags(self, ctx: AgentContext, args: Dict[str, Any]) -> ToolResult:
        tags = await ctx.store.get_tags()
        return ToolResult(content=[
            text_content(f"Found {_plural(len(tags), 'tag', 'tags')}."),
            *[self.tag_link(tag) for tag in tags],
        ])

    async def update_tag(self, ctx: AgentContext, args: Dict[str, Any]) -> ToolResult:
        tag_id = args.pop("id")
        updated = await ctx.store.update_tag(tag_id, args)
        return ToolResult(content=[
            text_content(f'Tag "{updated.name}" (ID: {tag_id}) updated successfully'),
            embedded_resource(self.uris.tag(tag_id), updated),
        ])

    async def delete_tag(self, ctx: AgentContext, args: Dict[str, Any]) -> ToolResult:
        tag_id = args["id"]
        existing = await ctx.store.delete_tag(tag_id)
        return ToolResult(content=[
            text_content(f'Tag "{existing.name}" (ID: {tag_id}) deleted successfully'),
        ])

    # Entry tags

    async def add_tag_to_entry(self, ctx: AgentContext, args: Dict[str, Any]) -> ToolResult:
        tag = await ctx.store.get_tag(args["tagId"])
        entry = await ctx.store.get_entry(args["entryId"])
        entry_tag = await ctx.store.add_tag_to_entry(entry.id, tag.id)
        return ToolResult(content=[
            text_content(
                f'Tag "{tag.name}" (ID: {entry_tag.tag_id}) added to entry "{entry.title}" '
                f'(ID: {entry_tag.entry_id}) successfully'
            ),
            self.tag_link(tag),
            self.entry_link(entry),
        ])

    async def get_entry_tags(self, ctx: AgentContext, args: Dict[str, Any]) -> ToolResult:
        entry_id = args["entryId"]
        tags = await ctx.store.get_entry_tags(entry_id)
        return ToolResult(content=[
            text_content(f"Found {_plural(len(tags), 'tag', 'tags')} on entry {entry_id}."),
            embedded_resource(self.uris.entry_tags(entry_id), tags),
        ])


def register_tools(server: MCPServer, uris: JournalUris) -> None:
    """Register every journal tool on the server."""
    tools = JournalTools(uris)
    descriptors = [
        ToolDescriptor(
            name="create_entry",
            title="Create Entry",
            description="Create a new journal entry",
            input_schema=CREATE_ENTRY_SCHEMA,
            handler=tools.create_entry,
        ),
        ToolDescriptor(
            name="get_entry",
            title="Get Entry",
            description="Get a journal entry by ID",
            input_schema=ENTRY_ID_SCHEMA,
            handler=tools.get_entry,
        ),
        ToolDescriptor(
            name="list_entries",
            title="List Entries",
            description="List all journal entries",
            input_schema=LIST_ENTRIES_SCHEMA,
            handler=tools.list_entries,
        ),
        ToolDescriptor(
            name="update_entry",
            title="Update Entry",
            description=(
                "Update a journal entry. Fields that are not provided (or set to undefined) will not be updated. "
                "Fields that are set to null or any other value will be updated."
            ),
            input_schema=UPDATE_ENTRY_SCHEMA,
            handler=tools.update_entry,
        ),
        ToolDescriptor(
            name="delete_entry",
            title="Delete Entry",
            description="Delete a journal entry",
            input_schema=ENTRY_ID_SCHEMA,
            handler=tools.delete_entry,
        ),
        ToolDescriptor(
            name="create_tag",
            title="Create Tag",
            description="Create a new tag",
            input_schema=CREATE_TAG_SCHEMA,
            handler=tools.create_tag,
        ),
        ToolDescriptor(
            name="get_tag",
            title="Get Tag",
            description="Get a tag by ID",
            input_schema=TAG_ID_SCHEMA,
            handler=tools.get_tag,
        ),
        ToolDescriptor(
            name="list_tags",
            title="List Tags",
            description="List all tags",
            input_schema=ArgsSchema(name="list_tags"),
            handler=tools.list_tags,
        ),
        ToolDescriptor(
            name="update_tag",
            title="Update Tag",
            description="Update a tag",
            input_schema=UPDATE_TAG_SCHEMA,
            handler=tools.update_tag,
        ),
        ToolDescriptor(
            name="delete_tag",
            title="Delete Tag",
            description="Delete a tag",
            input_schema=TAG_ID_SCHEMA,
            handler=tools.delete_tag,
        ),
        ToolDescriptor(
            name="add_tag_to_entry",
            title="Add Tag to Entry",
            description="Add a tag to an entry",
            input_schema=ENTRY_TAG_SCHEMA,
            handler=tools.add_tag_to_entry,
        ),
        ToolDescriptor(
            name="get_entry_tags",
            title="Get Entry Tags",
            description="Get the tags of a journal entry",
            input_schema=GET_ENTRY_TAGS_SCHEMA,
            handler=tools.get_entry_tags,
        ),
    ]
    for descriptor in descriptors:
        server.register_tool(descriptor)
    logger.info(f"Registered {len(descriptors)} journal tools")
