"""Configuration models describing fairshow settings."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fairshow.scanning.discovery import DEFAULT_IMAGE_EXTENSIONS, DEFAULT_VIDEO_EXTENSIONS
from fairshow.selection.history import DEFAULT_HISTORY_CAPACITY


class FairshowBaseModel(BaseModel):
    """Shared configuration for fairshow Pydantic models."""

    model_config = ConfigDict(extra="forbid")


class StateSettings(FairshowBaseModel):
    """Where persisted engine state lives.

    Attributes:
        directory: Directory holding the state database, rule file and log.
        scan_history_limit: Number of scan reports kept for diagnostics.
    """

    directory: str = "~/.fairshow"
    scan_history_limit: int = Field(default=20, ge=1)


class ScanningSettings(FairshowBaseModel):
    """Options governing directory scans.

    Attributes:
        image_extensions: File extensions treated as images.
        video_extensions: File extensions treated as videos.
        include_hidden: Whether hidden files and directories are scanned.
        progress_every: Emit a progress update every N processed files.
        watch_debounce_seconds: Quiet period before watch mode triggers a rescan.
    """

    image_extensions: List[str] = Field(default_factory=lambda: list(DEFAULT_IMAGE_EXTENSIONS))
    video_extensions: List[str] = Field(default_factory=lambda: list(DEFAULT_VIDEO_EXTENSIONS))
    include_hidden: bool = False
    progress_every: int = Field(default=100, ge=1)
    watch_debounce_seconds: float = Field(default=2.0, ge=0)

    @field_validator("image_extensions", "video_extensions")
    @classmethod
    def _normalize_extensions(cls, value: List[str]) -> List[str]:
        return [item.lower().lstrip(".") for item in value if item.strip()]


class HistorySettings(FairshowBaseModel):
    """Navigation history options.

    Attributes:
        capacity: Maximum number of displayed paths kept for back/forward.
    """

    capacity: int = Field(default=DEFAULT_HISTORY_CAPACITY, ge=1)


class LoggingSettings(FairshowBaseModel):
    """Runtime logging configuration.

    Attributes:
        level: Logging verbosity level.
        max_size_mb: Maximum log size before rotation.
        backup_count: Number of historical log files to retain.
    """

    level: str = "WARNING"
    max_size_mb: int = 10
    backup_count: int = 3


class FairshowConfig(FairshowBaseModel):
    """Top-level configuration struct for fairshow.

    Attributes:
        state: Persistence location.
        scanning: Scan behavior.
        history: Navigation history options.
        logging: Logging configuration.
    """

    state: StateSettings = Field(default_factory=StateSettings)
    scanning: ScanningSettings = Field(default_factory=ScanningSettings)
    history: HistorySettings = Field(default_factory=HistorySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


__all__ = [
    "FairshowBaseModel",
    "StateSettings",
    "ScanningSettings",
    "HistorySettings",
    "LoggingSettings",
    "FairshowConfig",
]
