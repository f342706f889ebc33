"""In-memory catalog data models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Literal, NamedTuple, Optional

MediaKind = Literal["image", "video"]


@dataclass(slots=True)
class CatalogEntry:
    """A single cataloged media file and its exposure counters.

    Attributes:
        path: Absolute path used as the stable identity key.
        file_size: Size of the file in bytes at the last scan.
        modified_time: POSIX modification time observed at the last scan.
        media_kind: Broad media category derived from the file extension.
        display_count: Number of draws that returned this entry.
        last_displayed_at: UTC timestamp of the most recent draw.
        captured_on: Cached capture date, filled the first time a date rule needs it.
    """

    path: str
    file_size: int
    modified_time: float
    media_kind: MediaKind = "image"
    display_count: int = 0
    last_displayed_at: Optional[datetime] = None
    captured_on: Optional[date] = None


class CatalogStats(NamedTuple):
    """Totals reported to callers; excluded files never count."""

    total_count: int
    displayed_count: int


__all__ = ["CatalogEntry", "CatalogStats", "MediaKind"]
