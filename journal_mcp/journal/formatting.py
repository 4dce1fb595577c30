"""
Text and content-item helpers shared by the journal tools, resources and prompts.
"""

import json
import time
from datetime import datetime
from typing import Any, Optional

from journal_mcp.core.types import EmbeddedResource, ResourceLink, TextContent, TextResourceContents
from journal_mcp.db.models import EntryWithTags, JournalModel

JSON_MIME_TYPE = "application/json"


def format_date(timestamp: int) -> str:
    """Local date and time, e.g. ``Mar 04, 2025, 09:15 AM``."""
    return datetime.fromtimestamp(timestamp).strftime("%b %d, %Y, %I:%M %p")


def time_ago(timestamp: int, now: Optional[float] = None) -> str:
    """Coarse relative time, e.g. ``3 days ago`` or ``just now``."""
    now = time.time() if now is None else now
    seconds = int(max(0, now - timestamp))
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24
    for amount, unit in (
        (days // 365, "year"),
        (days // 30, "month"),
        (days // 7, "week"),
        (days, "day"),
        (hours, "hour"),
        (minutes, "minute"),
    ):
        if amount > 0:
            return f"{amount} {unit}{'' if amount == 1 else 's'} ago"
    return "just now"


def format_entry(entry: EntryWithTags, now: Optional[float] = None) -> str:
    """Markdown rendering of an entry for prompts."""
    tag_list = ", ".join(tag.name for tag in entry.tags) if entry.tags else "None"
    return "\n".join([
        f"# {entry.title}",
        "",
        entry.content,
        "",
        f"Mood: {entry.mood or 'N/A'}",
        f"Weather: {entry.weather or 'N/A'}",
        f"Location: {entry.location or 'N/A'}",
        f"Is Private: {'Yes' if entry.is_private else 'No'}",
        f"Is Favorite: {'Yes' if entry.is_favorite else 'No'}",
        f"Created At: {format_date(entry.created_at)} ({time_ago(entry.created_at, now)})",
        f"Updated At: {format_date(entry.updated_at)} ({time_ago(entry.updated_at, now)})",
        f"Tags: {tag_list}",
    ])


def to_json(data: Any) -> str:
    if isinstance(data, JournalModel):
        data = data.to_json_dict()
    elif isinstance(data, list):
        data = [item.to_json_dict() if isinstance(item, JournalModel) else item for item in data]
    return json.dumps(data)


def text_content(text: Any) -> TextContent:
    return TextContent(text=text if isinstance(text, str) else to_json(text))


def json_resource_contents(uri: str, data: Any) -> TextResourceContents:
    return TextResourceContents(uri=uri, mime_type=JSON_MIME_TYPE, text=to_json(data))


def embedded_resource(uri: str, data: Any) -> EmbeddedResource:
    return EmbeddedResource(resource=json_resource_contents(uri, data))


def resource_link(uri: str, name: str, description: Optional[str] = None) -> ResourceLink:
    return ResourceLink(uri=uri, name=name, description=description, mime_type=JSON_MIME_TYPE)
