"""
Journal data models.
Rows are read into these models; dumping with ``by_alias=True`` gives the
camelCase JSON shape served to clients.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class JournalModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict:
        return self.model_dump(by_alias=True)


class TagSummary(JournalModel):
    id: int
    name: str


class Entry(JournalModel):
    id: int
    title: str
    content: str
    mood: Optional[str] = None
    location: Optional[str] = None
    weather: Optional[str] = None
    is_private: int = Field(default=1, ge=0, le=1)
    is_favorite: int = Field(default=0, ge=0, le=1)
    created_at: int
    updated_at: int


class EntryWithTags(Entry):
    tags: List[TagSummary] = Field(default_factory=list)


class Tag(JournalModel):
    id: int
    name: str
    description: Optional[str] = None
    created_at: int
    updated_at: int


class EntryTag(JournalModel):
    id: int
    entry_id: int
    tag_id: int
    created_at: int
    updated_at: int


class NewEntry(JournalModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")
    title: str
    content: str
    mood: Optional[str] = None
    location: Optional[str] = None
    weather: Optional[str] = None
    is_private: int = Field(default=1, ge=0, le=1)
    is_favorite: int = Field(default=0, ge=0, le=1)


class EntryUpdate(JournalModel):
    """Partial entry update. Only fields that were set are written."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")
    title: Optional[str] = None
    content: Optional[str] = None
    mood: Optional[str] = None
    location: Optional[str] = None
    weather: Optional[str] = None
    is_private: Optional[int] = Field(default=None, ge=0, le=1)
    is_favorite: Optional[int] = Field(default=None, ge=0, le=1)


class NewTag(JournalModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")
    name: str
    description: Optional[str] = None


class TagUpdate(JournalModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")
    name: Optional[str] = None
    description: Optional[str] = None
