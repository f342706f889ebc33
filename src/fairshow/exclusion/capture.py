"""Capture-date extraction used by date-based exclusion rules."""

from __future__ import annotations

import logging
from datetime import date, datetime
from pathlib import Path
from typing import Optional

from PIL import Image, UnidentifiedImageError

LOGGER = logging.getLogger(__name__)

_EXIF_IFD_POINTER = 0x8769
_TAG_DATETIME_ORIGINAL = 0x9003
_TAG_DATETIME = 0x0132
_EXIF_DATE_FORMAT = "%Y:%m:%d %H:%M:%S"


def parse_exif_datetime(value: object) -> Optional[datetime]:
    """Parse an EXIF ``YYYY:MM:DD HH:MM:SS`` value, tolerating padding and NULs."""
    if isinstance(value, bytes):
        value = value.decode("ascii", errors="ignore")
    if not isinstance(value, str):
        return None
    text = value.strip().strip("\x00").strip()
    if not text:
        return None
    try:
        return datetime.strptime(text[:19], _EXIF_DATE_FORMAT)
    except ValueError:
        return None


class CaptureDateReader:
    """Derive the calendar date a media file was captured."""

    def read_exif_datetime(self, path: Path) -> Optional[datetime]:
        """Return the EXIF capture timestamp of an image, if present.

        Args:
            path: Path to the image file.

        Returns:
            Optional[datetime]: ``DateTimeOriginal`` when present, otherwise the
            primary ``DateTime`` tag, otherwise None.
        """
        try:
            with Image.open(path) as img:
                exif = img.getexif()
                if not exif:
                    return None
                original = exif.get_ifd(_EXIF_IFD_POINTER).get(_TAG_DATETIME_ORIGINAL)
                parsed = parse_exif_datetime(original)
                if parsed is None:
                    parsed = parse_exif_datetime(exif.get(_TAG_DATETIME))
                return parsed
        except (OSError, UnidentifiedImageError, ValueError) as exc:
            LOGGER.debug("No EXIF capture date for %s: %s", path, exc)
            return None

    def read(self, path: Path | str, modified_time: float | None = None) -> date:
        """Return the capture date, falling back to the filesystem mtime.

        Args:
            path: Path to the media file.
            modified_time: Known modification time, avoiding an extra stat.

        Returns:
            date: Capture date in local time.

        Raises:
            OSError: If no EXIF date exists and the file cannot be stat'ed.
        """
        file_path = Path(path)
        captured = self.read_exif_datetime(file_path)
        if captured is not None:
            return captured.date()
        if modified_time is None:
            modified_time = file_path.stat().st_mtime
        return datetime.fromtimestamp(modified_time).date()


__all__ = ["CaptureDateReader", "parse_exif_datetime"]
