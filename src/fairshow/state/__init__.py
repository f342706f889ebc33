"""State persistence for the playlist engine."""

from __future__ import annotations

import logging
import sqlite3
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

from pydantic import ValidationError

from fairshow.scanning.models import ScanReport

from .errors import MissingStateError, PersistenceCorruptError, StateError
from .models import EngineSnapshot, EntryRecord, HistoryState, StateDelta
from .schema import init_schema

LOGGER = logging.getLogger(__name__)

DEFAULT_STATE_FILENAME = "state.db"
DEFAULT_SCAN_HISTORY_LIMIT = 20

_ENTRY_COLUMNS = (
    "path, file_size, modified_time, display_count, last_displayed_at, media_kind, captured_on"
)


def _entry_row(record: EntryRecord) -> tuple:
    return (
        record.path,
        record.file_size,
        record.modified_time,
        record.display_count,
        record.last_displayed_at.isoformat() if record.last_displayed_at else None,
        record.media_kind,
        record.captured_on.isoformat() if record.captured_on else None,
    )


class StateRepository:
    """Persist engine snapshots in a SQLite database inside the state directory.

    Every write happens inside one transaction, so a crash leaves either the
    previous committed state or the new one, never a mix.
    """

    def __init__(
        self,
        directory: Path,
        *,
        filename: str = DEFAULT_STATE_FILENAME,
        scan_history_limit: int = DEFAULT_SCAN_HISTORY_LIMIT,
    ) -> None:
        """Initialize the repository.

        Args:
            directory: Directory holding the state database.
            filename: Name of the database file.
            scan_history_limit: Number of scan reports to retain.
        """
        self._directory = directory.expanduser()
        self._filename = filename
        self._scan_history_limit = max(1, scan_history_limit)
        self._conn: Optional[sqlite3.Connection] = None

    @property
    def directory(self) -> Path:
        return self._directory

    @property
    def state_path(self) -> Path:
        return self._directory / self._filename

    def exists(self) -> bool:
        return self.state_path.exists()

    def connect(self) -> sqlite3.Connection:
        """Open the database, creating the schema on first use.

        Returns:
            sqlite3.Connection: Shared connection; callers serialize access.
        """
        if self._conn is not None:
            return self._conn

        self._directory.mkdir(parents=True, exist_ok=True)
        LOGGER.debug("Opening state database %s", self.state_path)
        conn = sqlite3.connect(self.state_path, check_same_thread=False)
        try:
            conn.execute("PRAGMA journal_mode=WAL;")
            # FULL keeps every committed transaction durable across power loss.
            conn.execute("PRAGMA synchronous=FULL;")
            conn.execute("PRAGMA temp_store=MEMORY;")
            init_schema(conn)
        except sqlite3.DatabaseError:
            conn.close()
            raise
        self._conn = conn
        return conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "StateRepository":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # Reading                                                            #
    # ------------------------------------------------------------------ #

    def load(self) -> EngineSnapshot:
        """Load the most recent committed snapshot.

        Returns:
            EngineSnapshot: Deserialized state.

        Raises:
            MissingStateError: If no state database exists.
            PersistenceCorruptError: If the database cannot be read or validated.
        """
        if not self.exists():
            raise MissingStateError(f"No engine state found at {self.state_path}")

        try:
            conn = self.connect()
            meta = dict(conn.execute("SELECT key, value FROM meta").fetchall())
            entries = [
                EntryRecord(
                    path=path,
                    file_size=size,
                    modified_time=mtime,
                    display_count=count,
                    last_displayed_at=datetime.fromisoformat(shown) if shown else None,
                    media_kind=kind,
                    captured_on=date.fromisoformat(captured) if captured else None,
                )
                for path, size, mtime, count, shown, kind, captured in conn.execute(
                    f"SELECT {_ENTRY_COLUMNS} FROM entries"
                )
            ]
            history_paths = [
                row[0] for row in conn.execute("SELECT path FROM history ORDER BY position")
            ]
            rules = [row[0] for row in conn.execute("SELECT line FROM rules ORDER BY position")]
            settings = dict(conn.execute("SELECT key, value FROM settings").fetchall())
            scans = [
                row[0] for row in conn.execute("SELECT payload FROM scan_history ORDER BY id")
            ]
            return EngineSnapshot.model_validate(
                {
                    "version": int(meta.get("schema_version", "1")),
                    "root": meta.get("root"),
                    "entries": entries,
                    "history": HistoryState(
                        entries=history_paths,
                        cursor=int(meta.get("history_cursor", "0")),
                        detached=meta.get("history_detached") == "1",
                    ),
                    "rules": rules,
                    "settings": settings,
                    "scans": [ScanReport.model_validate_json(payload) for payload in scans],
                    "saved_at": meta.get("saved_at") or datetime.now(timezone.utc),
                }
            )
        except (sqlite3.DatabaseError, ValidationError, ValueError) as exc:
            self.close()
            raise PersistenceCorruptError(f"Invalid engine state at {self.state_path}: {exc}") from exc

    # ------------------------------------------------------------------ #
    # Writing                                                            #
    # ------------------------------------------------------------------ #

    def save(self, snapshot: EngineSnapshot) -> None:
        """Replace the stored state with ``snapshot`` in one transaction."""
        conn = self.connect()
        now = datetime.now(timezone.utc)
        snapshot.saved_at = now
        with conn:
            conn.execute("DELETE FROM entries")
            conn.executemany(
                f"INSERT INTO entries ({_ENTRY_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (_entry_row(record) for record in snapshot.entries),
            )
            self._write_history(conn, snapshot.history)
            self._write_rules(conn, snapshot.rules)
            self._write_settings(conn, snapshot.settings)
            conn.execute("DELETE FROM scan_history")
            conn.executemany(
                "INSERT INTO scan_history (payload) VALUES (?)",
                ((report.model_dump_json(),) for report in snapshot.scans[-self._scan_history_limit :]),
            )
            self._set_meta(conn, "root", snapshot.root)
            self._set_meta(conn, "saved_at", now.isoformat())
        LOGGER.debug("Saved snapshot with %d entries", len(snapshot.entries))

    def commit(self, delta: StateDelta) -> None:
        """Apply an incremental change in one transaction."""
        conn = self.connect()
        with conn:
            if delta.removals:
                conn.executemany(
                    "DELETE FROM entries WHERE path = ?",
                    ((path,) for path in delta.removals),
                )
            if delta.upserts:
                conn.executemany(
                    f"INSERT OR REPLACE INTO entries ({_ENTRY_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (_entry_row(record) for record in delta.upserts),
                )
            if delta.history is not None:
                self._write_history(conn, delta.history)
            if delta.rules is not None:
                self._write_rules(conn, delta.rules)
            if delta.settings is not None:
                self._write_settings(conn, delta.settings)
            if delta.root is not None:
                self._set_meta(conn, "root", delta.root)
            if delta.scan is not None:
                conn.execute(
                    "INSERT INTO scan_history (payload) VALUES (?)",
                    (delta.scan.model_dump_json(),),
                )
                conn.execute(
                    """
                    DELETE FROM scan_history WHERE id NOT IN (
                        SELECT id FROM scan_history ORDER BY id DESC LIMIT ?
                    )
                    """,
                    (self._scan_history_limit,),
                )
            self._set_meta(conn, "saved_at", datetime.now(timezone.utc).isoformat())

    def quarantine(self) -> Optional[Path]:
        """Move an unreadable database aside so a fresh one can be created.

        Returns:
            Optional[Path]: Where the old file was moved, if it existed.
        """
        self.close()
        if not self.exists():
            return None
        target = self.state_path.with_name(self.state_path.name + ".corrupt")
        self.state_path.replace(target)
        for suffix in ("-wal", "-shm"):
            sidecar = self.state_path.with_name(self.state_path.name + suffix)
            sidecar.unlink(missing_ok=True)
        LOGGER.warning("Moved unreadable state database to %s", target)
        return target

    # Internal helpers -------------------------------------------------

    def _write_history(self, conn: sqlite3.Connection, history: HistoryState) -> None:
        conn.execute("DELETE FROM history")
        conn.executemany(
            "INSERT INTO history (position, path) VALUES (?, ?)",
            enumerate(history.entries),
        )
        self._set_meta(conn, "history_cursor", str(history.cursor))
        self._set_meta(conn, "history_detached", "1" if history.detached else "0")

    def _write_rules(self, conn: sqlite3.Connection, rules: Iterable[str]) -> None:
        conn.execute("DELETE FROM rules")
        conn.executemany("INSERT INTO rules (position, line) VALUES (?, ?)", enumerate(rules))

    def _write_settings(self, conn: sqlite3.Connection, settings: dict[str, str]) -> None:
        conn.execute("DELETE FROM settings")
        conn.executemany(
            "INSERT INTO settings (key, value) VALUES (?, ?)",
            ((key, str(value)) for key, value in settings.items()),
        )

    def _set_meta(self, conn: sqlite3.Connection, key: str, value: Optional[str]) -> None:
        if value is None:
            conn.execute("DELETE FROM meta WHERE key = ?", (key,))
        else:
            conn.execute("INSERT OR REPLACE INTO meta (key, value) VALUES (?, ?)", (key, value))


__all__ = [
    "StateRepository",
    "DEFAULT_STATE_FILENAME",
    "EngineSnapshot",
    "EntryRecord",
    "HistoryState",
    "StateDelta",
    "StateError",
    "MissingStateError",
    "PersistenceCorruptError",
]
