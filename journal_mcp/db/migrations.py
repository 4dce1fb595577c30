"""
Schema migrations for the journal database.
Applied versions are recorded in ``schema_versions``; only newer ones run.
"""

import logging
import sqlite3
from typing import List, Tuple

logger = logging.getLogger(__name__)

_NOW = "(CAST(strftime('%s', 'now') AS INTEGER))"

# (version, name, script)
MIGRATIONS: List[Tuple[int, str, str]] = [
    (1, "initial_schema", f"""
        CREATE TABLE IF NOT EXISTS entries (
            id INTEGER PRIMARY KEY AUTOINCREMENT NOT NULL,
            title TEXT NOT NULL,
            content TEXT NOT NULL,
            mood TEXT,
            location TEXT,
            weather TEXT,
            is_private INTEGER DEFAULT 1 NOT NULL CHECK (is_private IN (0, 1)),
            is_favorite INTEGER DEFAULT 0 NOT NULL CHECK (is_favorite IN (0, 1)),
            created_at INTEGER DEFAULT {_NOW} NOT NULL,
            updated_at INTEGER DEFAULT {_NOW} NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_entries_created_at ON entries(created_at);
        CREATE INDEX IF NOT EXISTS idx_entries_is_private ON entries(is_private);

        CREATE TABLE IF NOT EXISTS tags (
            id INTEGER PRIMARY KEY AUTOINCREMENT NOT NULL,
            name TEXT NOT NULL UNIQUE,
            description TEXT,
            created_at INTEGER DEFAULT {_NOW} NOT NULL,
            updated_at INTEGER DEFAULT {_NOW} NOT NULL
        );

        CREATE TABLE IF NOT EXISTS entry_tags (
            id INTEGER PRIMARY KEY AUTOINCREMENT NOT NULL,
            entry_id INTEGER NOT NULL,
            tag_id INTEGER NOT NULL,
            created_at INTEGER DEFAULT {_NOW} NOT NULL,
            updated_at INTEGER DEFAULT {_NOW} NOT NULL,
            FOREIGN KEY (entry_id) REFERENCES entries(id) ON DELETE CASCADE,
            FOREIGN KEY (tag_id) REFERENCES tags(id) ON DELETE CASCADE,
            UNIQUE(entry_id, tag_id)
        );
        CREATE INDEX IF NOT EXISTS idx_entry_tags_entry ON entry_tags(entry_id);
        CREATE INDEX IF NOT EXISTS idx_entry_tags_tag ON entry_tags(tag_id);
    """),
]


def current_version(conn: sqlite3.Connection) -> int:
    row = conn.execute("SELECT MAX(version) FROM schema_versions").fetchone()
    return row[0] or 0


def migrate(conn: sqlite3.Connection) -> int:
    """
    Bring the schema up to date.

    Each migration runs in its own transaction together with its
    ``schema_versions`` row.

    Args:
        conn: Open connection in autocommit mode

    Returns:
        int: The schema version after migrating
    """
    conn.execute(f"""
        CREATE TABLE IF NOT EXISTS schema_versions (
            version INTEGER PRIMARY KEY,
            name TEXT NOT NULL,
            applied_at INTEGER DEFAULT {_NOW} NOT NULL
        )
    """)
    version = current_version(conn)
    logger.debug(f"Current schema version: {version}")

    for number, name, script in MIGRATIONS:
        if number <= version:
            continue
        logger.info(f"Running migration {number}: {name}")
        try:
            conn.execute("BEGIN")
            for statement in script.split(";"):
                if statement.strip():
                    conn.execute(statement)
            conn.execute("INSERT INTO schema_versions (version, name) VALUES (?, ?)", (number, name))
            conn.execute("COMMIT")
        except sqlite3.Error:
            conn.execute("ROLLBACK")
            logger.error(f"Migration {number} ({name}) failed")
            raise
        version = number
    return version
