"""Playback settings stored as a string table and used as a typed model."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

DISPLAY_INTERVAL_KEY = "display_interval"
RESET_ON_DIRECTORY_CHANGE_KEY = "reset_on_directory_change"
APPLY_EXIF_ROTATION_KEY = "apply_exif_rotation"
SHARE_DIRECTORY_KEY = "share_directory_path"
LAST_DIRECTORY_KEY = "last_directory_path"

MIN_DISPLAY_INTERVAL_MS = 5_000
MAX_DISPLAY_INTERVAL_MS = 60_000
DEFAULT_DISPLAY_INTERVAL_MS = 10_000

_TRUE_VALUES = {"true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off"}


class SettingsError(ValueError):
    """Raised when a setting value cannot be interpreted."""


def default_share_directory() -> str:
    return str(Path("~/Pictures/fairshow").expanduser())


def _parse_bool(value: object) -> object:
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
    return value


class PlaybackSettings(BaseModel):
    """Typed view over the persisted settings table.

    Attributes:
        display_interval: Milliseconds each item stays on screen.
        reset_on_directory_change: Zero display counts when a different root is scanned.
        apply_exif_rotation: Whether presenters should honor EXIF orientation.
        share_directory_path: Destination directory for shared copies.
        last_directory_path: Root of the most recent scan.
    """

    model_config = ConfigDict(validate_assignment=True)

    display_interval: int = Field(
        default=DEFAULT_DISPLAY_INTERVAL_MS,
        ge=MIN_DISPLAY_INTERVAL_MS,
        le=MAX_DISPLAY_INTERVAL_MS,
    )
    reset_on_directory_change: bool = True
    apply_exif_rotation: bool = True
    share_directory_path: str = Field(default_factory=default_share_directory)
    last_directory_path: Optional[str] = None

    @field_validator("reset_on_directory_change", "apply_exif_rotation", mode="before")
    @classmethod
    def _coerce_bool(cls, value: object) -> object:
        return _parse_bool(value)

    @classmethod
    def from_table(cls, table: Mapping[str, str]) -> "PlaybackSettings":
        """Parse the string table, ignoring keys this version does not know.

        Raises:
            SettingsError: If a known key holds an invalid value.
        """
        known = {key: value for key, value in table.items() if key in cls.model_fields}
        try:
            return cls.model_validate(known)
        except ValidationError as exc:
            raise SettingsError(f"Invalid settings: {exc}") from exc

    def to_table(self) -> Dict[str, str]:
        table: Dict[str, str] = {}
        for key, value in self.model_dump().items():
            if value is None:
                continue
            table[key] = ("true" if value else "false") if isinstance(value, bool) else str(value)
        return table


def validate_setting(key: str, value: str) -> None:
    """Check a single key/value pair against the typed model when the key is known.

    Raises:
        SettingsError: If the value is invalid for a known key.
    """
    if key not in PlaybackSettings.model_fields:
        return
    PlaybackSettings.from_table({key: value})


__all__ = [
    "PlaybackSettings",
    "SettingsError",
    "validate_setting",
    "DISPLAY_INTERVAL_KEY",
    "RESET_ON_DIRECTORY_CHANGE_KEY",
    "APPLY_EXIF_ROTATION_KEY",
    "SHARE_DIRECTORY_KEY",
    "LAST_DIRECTORY_KEY",
]
