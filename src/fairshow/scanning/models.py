"""Scan data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import List, NamedTuple, Optional

from pydantic import BaseModel, Field

from fairshow.catalog.models import MediaKind


class ScanProgress(NamedTuple):
    """Number of files processed so far out of the enumerated total.

    ``total`` is 0 while the directory walk is still counting candidates.
    """

    current: int
    total: int


@dataclass(slots=True)
class DiscoveredFile:
    """A supported media file found on disk."""

    path: str
    size_bytes: int
    modified_time: float
    media_kind: MediaKind


@dataclass(slots=True)
class KnownFile:
    """Catalog view handed to the scanner so it can diff without locking."""

    size_bytes: int
    modified_time: float
    captured_on: Optional[date] = None


@dataclass(slots=True)
class ScanPlan:
    """Changes a scan wants to apply to the catalog.

    Attributes:
        root: Resolved root directory that was scanned.
        added: Files not previously cataloged and not excluded.
        refreshed: Cataloged files whose size or modification time changed.
        deleted: Cataloged paths no longer found on disk.
        excluded: Cataloged paths that now match an exclusion rule.
        excluded_new: Number of discovered files skipped because of a rule.
        skipped_directories: Directories that could not be read.
        total_files: Eligible files present after the scan.
        duration_ms: Wall time spent walking and diffing.
        cancelled: Whether the scan stopped early; a cancelled plan is never applied.
    """

    root: Path
    added: List[DiscoveredFile] = field(default_factory=list)
    refreshed: List[DiscoveredFile] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    excluded: List[str] = field(default_factory=list)
    excluded_new: int = 0
    skipped_directories: List[str] = field(default_factory=list)
    total_files: int = 0
    duration_ms: int = 0
    cancelled: bool = False


class ScanReport(BaseModel):
    """Summary of a completed scan returned to callers.

    Attributes:
        root: Directory that was scanned.
        total_files: Eligible files cataloged after the scan.
        new_files: Files added to the catalog.
        deleted_files: Cataloged files that disappeared from disk.
        excluded_files: Files skipped or removed because of exclusion rules.
        skipped_directories: Unreadable directories left untouched.
        duration_ms: Wall time of the scan in milliseconds.
        cancelled: Whether the scan was cancelled before committing.
    """

    root: str
    total_files: int = 0
    new_files: int = 0
    deleted_files: int = 0
    excluded_files: int = 0
    skipped_directories: List[str] = Field(default_factory=list)
    duration_ms: int = 0
    cancelled: bool = False


__all__ = ["ScanProgress", "DiscoveredFile", "KnownFile", "ScanPlan", "ScanReport"]
