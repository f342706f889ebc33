"""SQLite schema for persisted engine state."""

from __future__ import annotations

import logging
import sqlite3

LOGGER = logging.getLogger(__name__)

CURRENT_SCHEMA_VERSION = 1


def init_schema(conn: sqlite3.Connection) -> None:
    """Create the state tables if they do not exist.

    Idempotent: safe to run on every startup.
    """
    with conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS meta (
                key   TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
            """
        )
        conn.execute(
            "INSERT OR IGNORE INTO meta (key, value) VALUES ('schema_version', ?)",
            (str(CURRENT_SCHEMA_VERSION),),
        )

        # One row per cataloged file, keyed by absolute path.
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS entries (
                path              TEXT PRIMARY KEY,
                file_size         INTEGER NOT NULL,
                modified_time     REAL NOT NULL,
                display_count     INTEGER NOT NULL DEFAULT 0,
                last_displayed_at TEXT,
                media_kind        TEXT NOT NULL DEFAULT 'image',
                captured_on       TEXT
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS settings (
                key   TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS rules (
                position INTEGER PRIMARY KEY,
                line     TEXT NOT NULL
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS history (
                position INTEGER PRIMARY KEY,
                path     TEXT NOT NULL
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS scan_history (
                id      INTEGER PRIMARY KEY AUTOINCREMENT,
                payload TEXT NOT NULL
            )
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_entries_count ON entries(display_count)")

    LOGGER.debug("State schema initialized.")


__all__ = ["init_schema", "CURRENT_SCHEMA_VERSION"]
