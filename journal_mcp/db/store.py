"""
SQLite data store for journal entries and tags.
Mutations publish a Change on the store's ChangeBus once they are committed.
"""

import logging
import sqlite3
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Optional

from pydantic import ValidationError

from journal_mcp.core.change_bus import ChangeBus
from journal_mcp.core.types import Change
from journal_mcp.db.migrations import migrate
from journal_mcp.db.models import (
    Entry, EntryTag, EntryUpdate, EntryWithTags, NewEntry, NewTag, Tag, TagSummary, TagUpdate,
)
from journal_mcp.error_handling.exceptions import NotFoundError, StorageError

logger = logging.getLogger(__name__)

_NOW = "CAST(strftime('%s', 'now') AS INTEGER)"


class JournalStore:
    """
    Journal database.

    Methods are coroutines so handlers can await them, but each runs its
    SQLite calls synchronously; a transaction never yields to the event loop
    between statements unless its body does.
    """

    def __init__(self, path: str = ":memory:", bus: Optional[ChangeBus] = None):
        """
        Open (and migrate) a database.

        Args:
            path: Database file, or ":memory:"
            bus: Change bus to publish on; a new one is created when omitted
        """
        self.path = path
        self.bus = bus or ChangeBus()
        self._tx_depth = 0
        self._pending: List[Change] = []
        try:
            self._conn = sqlite3.connect(path, isolation_level=None, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            self.schema_version = migrate(self._conn)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to open database {path}: {e}", original_exception=e)
        logger.info(f"Opened journal database {path} (schema version {self.schema_version})")

    def close(self) -> None:
        self._conn.close()

    def subscribe(self, listener: Callable[[Change], None]) -> Callable[[], None]:
        return self.bus.subscribe(listener)

    # Internals

    def _execute(self, sql: str, params: Iterable[Any] = ()) -> sqlite3.Cursor:
        try:
            return self._conn.execute(sql, tuple(params))
        except sqlite3.Error as e:
            logger.error(f"SQLite error: {e}")
            raise StorageError(str(e), original_exception=e)

    def _notify(self, entries: Iterable[int] = (), tags: Iterable[int] = ()) -> None:
        change = Change(entries=list(entries), tags=list(tags))
        if self._tx_depth:
            self._pending.append(change)
        else:
            self.bus.publish(change)

    @property
    def in_transaction(self) -> bool:
        return self._tx_depth > 0

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["JournalStore"]:
        """
        Run several mutations atomically.

        Commits on success and rolls back on error. Change notifications are
        held back until commit and dropped on rollback. Nested use joins the
        outer transaction.
        """
        if self._tx_depth:
            self._tx_depth += 1
            try:
                yield self
            finally:
                self._tx_depth -= 1
            return

        self._execute("BEGIN")
        self._tx_depth = 1
        try:
            yield self
        except BaseException:
            self._tx_depth = 0
            self._pending = []
            self._conn.execute("ROLLBACK")
            logger.debug("Transaction rolled back")
            raise
        self._tx_depth = 0
        pending, self._pending = self._pending, []
        self._execute("COMMIT")
        if pending:
            self.bus.publish(Change(
                entries=_unique(i for change in pending for i in change.entries),
                tags=_unique(i for change in pending for i in change.tags),
            ))

    # Entries

    async def create_entry(self, entry: Any) -> EntryWithTags:
        """
        Create an entry.

        Args:
            entry: NewEntry or a mapping with its fields (snake_case or camelCase)
        """
        new_entry = _validate(NewEntry, entry)
        cursor = self._execute(
            """
            INSERT INTO entries (title, content, mood, location, weather, is_private, is_favorite)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                new_entry.title, new_entry.content, new_entry.mood, new_entry.location,
                new_entry.weather, new_entry.is_private, new_entry.is_favorite,
            ),
        )
        entry_id = cursor.lastrowid
        if not entry_id:
            raise StorageError("Failed to create entry")
        created = await self.get_entry(entry_id)
        self._notify(entries=[entry_id])
        return created

    async def get_entry(self, entry_id: int) -> EntryWithTags:
        """
        Fetch an entry with its tags.

        Raises:
            NotFoundError: If the entry does not exist
        """
        row = self._execute("SELECT * FROM entries WHERE id = ?", (entry_id,)).fetchone()
        if row is None:
            raise NotFoundError(f'Entry with ID "{entry_id}" not found')
        tags = self._execute(
            """
            SELECT t.id, t.name
            FROM tags t
            JOIN entry_tags et ON et.tag_id = t.id
            WHERE et.entry_id = ?
            ORDER BY t.name
            """,
            (entry_id,),
        ).fetchall()
        return EntryWithTags(**dict(row), tags=[TagSummary(**dict(tag)) for tag in tags])

    async def get_entries(self) -> List[Entry]:
        rows = self._execute("SELECT * FROM entries ORDER BY created_at DESC, id DESC").fetchall()
        return [Entry(**dict(row)) for row in rows]

    async def list_entries(self, tag_ids: Optional[List[int]] = None) -> List[Entry]:
        """
        List entries, newest first.

        Args:
            tag_ids: When given, only entries carrying at least one of these tags
        """
        if not tag_ids:
            return await self.get_entries()
        placeholders = ", ".join("?" for _ in tag_ids)
        rows = self._execute(
            f"""
            SELECT DISTINCT e.*
            FROM entries e
            JOIN entry_tags et ON et.entry_id = e.id
            WHERE et.tag_id IN ({placeholders})
            ORDER BY e.created_at DESC, e.id DESC
            """,
            tag_ids,
        ).fetchall()
        return [Entry(**dict(row)) for row in rows]

    async def update_entry(self, entry_id: int, changes: Any) -> EntryWithTags:
        """
        Update the given fields of an entry.

        Fields that are not present are left alone; fields set to None are
        cleared.

        Raises:
            NotFoundError: If the entry does not exist
        """
        existing = await self.get_entry(entry_id)
        values = _validate(EntryUpdate, changes).model_dump(exclude_unset=True)
        if not values:
            return existing
        assignments = ", ".join(f"{column} = ?" for column in values)
        self._execute(
            f"UPDATE entries SET {assignments}, updated_at = {_NOW} WHERE id = ?",
            list(values.values()) + [entry_id],
        )
        updated = await self.get_entry(entry_id)
        self._notify(entries=[entry_id])
        return updated

    async def delete_entry(self, entry_id: int) -> EntryWithTags:
        """
        Delete an entry and its tag links.

        Returns:
            EntryWithTags: The entry as it was before deletion

        Raises:
            NotFoundError: If the entry does not exist
        """
        existing = await self.get_entry(entry_id)
        cursor = self._execute("DELETE FROM entries WHERE id = ?", (entry_id,))
        if not cursor.rowcount:
            raise StorageError("Failed to delete entry")
        self._notify(entries=[entry_id])
        return existing

    # Tags

    async def create_tag(self, tag: Any) -> Tag:
        new_tag = _validate(NewTag, tag)
        cursor = self._execute(
            "INSERT INTO tags (name, description) VALUES (?, ?)",
            (new_tag.name, new_tag.description),
        )
        tag_id = cursor.lastrowid
        if not tag_id:
            raise StorageError("Failed to create tag")
        created = await self.get_tag(tag_id)
        self._notify(tags=[tag_id])
        return created

    async def get_tag(self, tag_id: int) -> Tag:
        """
        Raises:
            NotFoundError: If the tag does not exist
        """
        row = self._execute("SELECT * FROM tags WHERE id = ?", (tag_id,)).fetchone()
        if row is None:
            raise NotFoundError(f'Tag with ID "{tag_id}" not found')
        return Tag(**dict(row))

    async def get_tags(self) -> List[Tag]:
        rows = self._execute("SELECT * FROM tags ORDER BY name").fetchall()
        return [Tag(**dict(row)) for row in rows]

    async def update_tag(self, tag_id: int, changes: Any) -> Tag:
        existing = await self.get_tag(tag_id)
        values = _validate(TagUpdate, changes).model_dump(exclude_unset=True)
        if not values:
            return existing
        assignments = ", ".join(f"{column} = ?" for column in values)
        self._execute(
            f"UPDATE tags SET {assignments}, updated_at = {_NOW} WHERE id = ?",
            list(values.values()) + [tag_id],
        )
        updated = await self.get_tag(tag_id)
        self._notify(tags=[tag_id])
        return updated

    async def delete_tag(self, tag_id: int) -> Tag:
        """
        Delete a tag and its entry links.

        Returns:
            Tag: The tag as it was before deletion
        """
        existing = await self.get_tag(tag_id)
        cursor = self._execute("DELETE FROM tags WHERE id = ?", (tag_id,))
        if not cursor.rowcount:
            raise StorageError("Failed to delete tag")
        self._notify(tags=[tag_id])
        return existing

    # Entry tags

    async def add_tag_to_entry(self, entry_id: int, tag_id: int) -> EntryTag:
        """
        Link a tag to an entry.

        Raises:
            NotFoundError: If the entry or tag does not exist
            StorageError: If the tag is already on the entry
        """
        await self.get_entry(entry_id)
        await self.get_tag(tag_id)
        cursor = self._execute(
            "INSERT INTO entry_tags (entry_id, tag_id) VALUES (?, ?)",
            (entry_id, tag_id),
        )
        created = await self.get_entry_tag(cursor.lastrowid)
        self._notify(entries=[entry_id], tags=[tag_id])
        return created

    async def get_entry_tag(self, entry_tag_id: int) -> EntryTag:
        row = self._execute("SELECT * FROM entry_tags WHERE id = ?", (entry_tag_id,)).fetchone()
        if row is None:
            raise NotFoundError(f'Entry tag with ID "{entry_tag_id}" not found')
        return EntryTag(**dict(row))

    async def get_entry_tags(self, entry_id: int) -> List[Tag]:
        """
        Tags on an entry, by name.

        Raises:
            NotFoundError: If the entry does not exist
        """
        await self.get_entry(entry_id)
        rows = self._execute(
            """
            SELECT t.*
            FROM tags t
            JOIN entry_tags et ON et.tag_id = t.id
            WHERE et.entry_id = ?
            ORDER BY t.name
            """,
            (entry_id,),
        ).fetchall()
        return [Tag(**dict(row)) for row in rows]


def _validate(model, data: Any):
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise StorageError(f"Invalid {model.__name__}: {e.errors()[0]['msg']}", original_exception=e)


def _unique(ids: Iterable[int]) -> List[int]:
    seen: Dict[int, None] = {}
    for i in ids:
        seen.setdefault(i, None)
    return list(seen)
