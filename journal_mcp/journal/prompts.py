"""
Journal prompts.
"""

import logging
from typing import Any, Dict

from journal_mcp.core.context import AgentContext
from journal_mcp.core.mcp_server import MCPServer
from journal_mcp.core.types import GetPromptResult, PromptMessage
from journal_mcp.journal.formatting import embedded_resource, format_entry, text_content
from journal_mcp.journal.resources import JournalUris, complete_entry_id, parse_id
from journal_mcp.prompts.prompt_manager import PromptDescriptor
from journal_mcp.schema import ArgsSchema, string

logger = logging.getLogger(__name__)

SUGGEST_TAGS_ARGUMENTS = ArgsSchema({
    "entryId": string("The ID of the journal entry to suggest tags for"),
}, name="suggest_tags")


def register_prompts(server: MCPServer, uris: JournalUris) -> None:
    """Register the journal prompts."""

    async def suggest_tags(ctx: AgentContext, args: Dict[str, Any]) -> GetPromptResult:
        entry_id = parse_id(args["entryId"], "Entry")
        entry = await ctx.store.get_entry(entry_id)
        applied = {tag.id for tag in entry.tags}
        unused_tags = [tag for tag in await ctx.store.get_tags() if tag.id not in applied]

        lines = [
            f"Here is my journal entry (ID: {entry_id}):",
            "",
            "---",
            format_entry(entry),
            "---",
            "",
        ]
        if unused_tags:
            lines.append("Here are other tags I have available:")
            lines.extend(f"{tag.name}: {tag.description or ''} ({tag.id})" for tag in unused_tags)
        else:
            lines.append("I do not have any other tags available.")
        lines.extend([
            "",
            "The entry and the available tags are attached below.",
            "Can you please suggest some tags to add to my entry? For those that I approve, if it does not yet "
            'exist, create it with the journal "create_tag" tool. Then add it with the journal "add_tag_to_entry" tool.',
        ])

        return GetPromptResult(
            description=f"Suggest tags for journal entry {entry_id}",
            messages=[
                PromptMessage(role="user", content=text_content("\n".join(lines))),
                PromptMessage(role="user", content=embedded_resource(uris.entry(entry_id), entry)),
                PromptMessage(role="user", content=embedded_resource(uris.tags(), unused_tags)),
            ],
        )

    server.register_prompt(PromptDescriptor(
        name="suggest_tags",
        title="Suggest Tags",
        description="Suggest tags for a journal entry",
        arguments=SUGGEST_TAGS_ARGUMENTS,
        complete_callbacks={"entryId": complete_entry_id},
        handler=suggest_tags,
    ))
    logger.info("Journal prompts registered")
