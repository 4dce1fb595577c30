"""
Tag suggestions through client sampling.
After an entry is created the server asks the client's LLM which tags fit it,
then creates and attaches the accepted suggestions.
"""

import json
import logging
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

from journal_mcp.core.context import AgentContext
from journal_mcp.error_handling.exceptions import SamplingResponseError
from journal_mcp.journal.formatting import JSON_MIME_TYPE, to_json

logger = logging.getLogger(__name__)

SUGGEST_TAGS_SYSTEM_PROMPT = """
You are a helpful assistant that suggests relevant tags for journal entries to make them easier to categorize and find later.
You will be provided with a journal entry, it's current tags, and all existing tags.
Only suggest tags that are not already applied to this entry.
Journal entries should not have more than 4-5 tags and it's perfectly fine to not have any tags at all.
Feel free to suggest new tags that are not currently in the database and they will be created.

You will respond with JSON only.
Example responses:
If you have no suggestions, respond with an empty array:
[]

If you have some suggestions, respond with an array of tag objects. Existing tags have an "id" property, new tags have a "name" and "description" property:
[{"id": 1}, {"name": "New Tag", "description": "The description of the new tag"}, {"id": 24}]
""".strip()


class ExistingTagSuggestion(BaseModel):
    model_config = ConfigDict(extra="ignore", strict=True)
    id: int


class NewTagSuggestion(BaseModel):
    model_config = ConfigDict(extra="ignore", strict=True)
    name: str
    description: Optional[str] = None


TagSuggestion = Union[ExistingTagSuggestion, NewTagSuggestion]

_suggestions_adapter = TypeAdapter(List[TagSuggestion])


def parse_suggestions(text: str) -> List[TagSuggestion]:
    """
    Parse the LLM's answer.

    Args:
        text: Raw text of the sampling result

    Returns:
        List[TagSuggestion]: Suggested existing and new tags

    Raises:
        SamplingResponseError: If the text is not a JSON array of tag objects
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise SamplingResponseError(f"Tag suggestions are not valid JSON: {e}", original_exception=e)
    try:
        return _suggestions_adapter.validate_python(data)
    except ValidationError as e:
        raise SamplingResponseError(
            f"Tag suggestions have an unexpected shape: {e.errors()[0]['msg']}", original_exception=e
        )


async def suggest_tags(ctx: AgentContext, entry_id: int) -> List[int]:
    """
    Ask the client for tag suggestions and apply them to an entry.

    Does nothing when the client cannot sample.

    Args:
        ctx: Agent context of the calling session
        entry_id: Entry to tag

    Returns:
        List[int]: Ids of the tags that were added to the entry

    Raises:
        SamplingError: If the client answers with an error
        SamplingResponseError: If the answer cannot be used
        ConnectionClosedError: If the session closes while waiting
    """
    if not ctx.client_supports_sampling():
        logger.debug(f"Client does not support sampling, skipping tag suggestions for entry {entry_id}")
        return []

    store = ctx.store
    entry = await store.get_entry(entry_id)
    current_tags = await store.get_entry_tags(entry_id)
    existing_tags = await store.get_tags()

    payload = {
        "entry": entry.to_json_dict(),
        "currentTags": json.loads(to_json(current_tags)),
        "existingTags": json.loads(to_json(existing_tags)),
    }
    result = await ctx.session.create_message(
        messages=[{
            "role": "user",
            "content": {"type": "text", "mimeType": JSON_MIME_TYPE, "text": json.dumps(payload)},
        }],
        max_tokens=ctx.server.sampling_max_tokens,
        system_prompt=SUGGEST_TAGS_SYSTEM_PROMPT,
    )
    if result is None:
        return []
    suggestions = parse_suggestions(result.content.text)
    logger.info(f"Received {len(suggestions)} tag suggestion(s) for entry {entry_id} from {result.model}")

    # Re-read after the round trip, the data may have changed while suspended
    current_ids = {tag.id for tag in await store.get_entry_tags(entry_id)}
    all_tags = await store.get_tags()
    known_ids = {tag.id for tag in all_tags}
    known_names = {tag.name for tag in all_tags}

    existing_ids: List[int] = []
    new_tags: List[NewTagSuggestion] = []
    for suggestion in suggestions:
        if isinstance(suggestion, ExistingTagSuggestion):
            if suggestion.id in known_ids and suggestion.id not in current_ids and suggestion.id not in existing_ids:
                existing_ids.append(suggestion.id)
            else:
                logger.debug(f"Ignoring tag suggestion {suggestion.id} for entry {entry_id}")
        elif suggestion.name not in known_names and all(t.name != suggestion.name for t in new_tags):
            new_tags.append(suggestion)
        else:
            logger.debug(f"Ignoring new tag suggestion {suggestion.name!r}, a tag with that name exists")

    added: List[int] = []
    async with store.transaction():
        for new_tag in new_tags:
            tag = await store.create_tag({"name": new_tag.name, "description": new_tag.description})
            existing_ids.append(tag.id)
        for tag_id in existing_ids:
            await store.add_tag_to_entry(entry_id, tag_id)
            added.append(tag_id)

    if added:
        logger.info(f"Added {len(added)} suggested tag(s) to entry {entry_id}")
    return added
