"""Persisted snapshot models."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from fairshow.catalog.models import CatalogEntry
from fairshow.scanning.models import ScanReport

SNAPSHOT_VERSION = 1


class EntryRecord(BaseModel):
    """One cataloged file as stored on disk."""

    path: str
    file_size: int
    modified_time: float
    display_count: int = Field(default=0, ge=0)
    last_displayed_at: Optional[datetime] = None
    media_kind: Literal["image", "video"] = "image"
    captured_on: Optional[date] = None

    @classmethod
    def from_entry(cls, entry: CatalogEntry) -> "EntryRecord":
        return cls(
            path=entry.path,
            file_size=entry.file_size,
            modified_time=entry.modified_time,
            display_count=entry.display_count,
            last_displayed_at=entry.last_displayed_at,
            media_kind=entry.media_kind,
            captured_on=entry.captured_on,
        )

    def to_entry(self) -> CatalogEntry:
        return CatalogEntry(
            path=self.path,
            file_size=self.file_size,
            modified_time=self.modified_time,
            media_kind=self.media_kind,
            display_count=self.display_count,
            last_displayed_at=self.last_displayed_at,
            captured_on=self.captured_on,
        )


class HistoryState(BaseModel):
    """Navigation history as stored on disk.

    Attributes:
        entries: Displayed paths, oldest first.
        cursor: Index of the shown entry.
        detached: Whether the shown entry was discarded with nothing earlier
            left, so the next forward move replays ``entries[cursor]``.
    """

    entries: List[str] = Field(default_factory=list)
    cursor: int = 0
    detached: bool = False


class EngineSnapshot(BaseModel):
    """Everything the engine needs to resume after a restart.

    Attributes:
        version: Snapshot schema version.
        root: Root directory of the most recent scan.
        entries: Cataloged files.
        history: Navigation history and cursor.
        rules: Exclusion rule lines in effect at snapshot time.
        settings: Raw string settings table.
        scans: Most recent scan reports, newest last.
        saved_at: When the snapshot was written.
    """

    version: int = SNAPSHOT_VERSION
    root: Optional[str] = None
    entries: List[EntryRecord] = Field(default_factory=list)
    history: HistoryState = Field(default_factory=HistoryState)
    rules: List[str] = Field(default_factory=list)
    settings: Dict[str, str] = Field(default_factory=dict)
    scans: List[ScanReport] = Field(default_factory=list)
    saved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class StateDelta(BaseModel):
    """Incremental change committed in a single transaction.

    Attributes:
        upserts: Entries to insert or overwrite.
        removals: Paths to delete.
        history: Replacement navigation history, if it changed.
        settings: Replacement settings table, if it changed.
        rules: Replacement exclusion rule lines, if they changed.
        root: New scan root, if it changed.
        scan: Scan report to append to the scan history.
    """

    upserts: List[EntryRecord] = Field(default_factory=list)
    removals: List[str] = Field(default_factory=list)
    history: Optional[HistoryState] = None
    settings: Optional[Dict[str, str]] = None
    rules: Optional[List[str]] = None
    root: Optional[str] = None
    scan: Optional[ScanReport] = None


__all__ = ["EntryRecord", "HistoryState", "EngineSnapshot", "StateDelta", "SNAPSHOT_VERSION"]
