"""Exclusion rule variants and their text representation.

Each rule renders to a single line of the rule file. Lines carry a kind prefix
(``file:``, ``dir:``, ``date:``); anything without a prefix is treated as a
glob pattern so the file stays compatible with hand-written ignore lists.
"""

from __future__ import annotations

import fnmatch
import os
from dataclasses import dataclass
from datetime import date
from pathlib import PurePath
from typing import Literal, Optional, Union

RuleKind = Literal["file", "directory", "date"]

FILE_PREFIX = "file:"
DIRECTORY_PREFIX = "dir:"
DATE_PREFIX = "date:"


class RuleParseError(ValueError):
    """Raised when a rule line cannot be interpreted."""


@dataclass(frozen=True, slots=True)
class ExactFileRule:
    """Exclude one specific file."""

    path: str
    needs_capture_date = False

    def matches(self, path: str, captured_on: Optional[date] = None) -> bool:
        return path == self.path

    def render(self) -> str:
        return f"{FILE_PREFIX}{self.path}"


@dataclass(frozen=True, slots=True)
class DirectoryPrefixRule:
    """Exclude every file below a directory."""

    directory: str
    needs_capture_date = False

    def matches(self, path: str, captured_on: Optional[date] = None) -> bool:
        prefix = self.directory.rstrip(os.sep) + os.sep
        return path.startswith(prefix)

    def render(self) -> str:
        return f"{DIRECTORY_PREFIX}{self.directory}"


@dataclass(frozen=True, slots=True)
class CaptureDateRule:
    """Exclude every file captured on a given calendar date."""

    captured_on: date
    needs_capture_date = True

    def matches(self, path: str, captured_on: Optional[date] = None) -> bool:
        return captured_on is not None and captured_on == self.captured_on

    def render(self) -> str:
        return f"{DATE_PREFIX}{self.captured_on.isoformat()}"


@dataclass(frozen=True, slots=True)
class GlobRule:
    """Exclude files whose full path or any path component matches a glob."""

    pattern: str
    needs_capture_date = False

    def matches(self, path: str, captured_on: Optional[date] = None) -> bool:
        normalized = path.replace("\\", "/")
        if fnmatch.fnmatchcase(normalized, self.pattern):
            return True
        return any(
            fnmatch.fnmatchcase(part, self.pattern)
            for part in PurePath(path).parts
            if part not in ("/", "\\")
        )

    def render(self) -> str:
        return self.pattern


ExclusionRule = Union[ExactFileRule, DirectoryPrefixRule, CaptureDateRule, GlobRule]


def parse_rule(line: str) -> Optional[ExclusionRule]:
    """Parse one rule-file line.

    Args:
        line: Raw line from the rule file.

    Returns:
        Optional[ExclusionRule]: Parsed rule, or None for blanks and comments.

    Raises:
        RuleParseError: If a prefixed line carries an unusable value.
    """
    text = line.strip()
    if not text or text.startswith("#"):
        return None

    if text.startswith(FILE_PREFIX):
        value = text[len(FILE_PREFIX) :].strip()
        if not value:
            raise RuleParseError(f"Empty file rule: {line!r}")
        return ExactFileRule(os.path.normpath(value))
    if text.startswith(DIRECTORY_PREFIX):
        value = text[len(DIRECTORY_PREFIX) :].strip()
        if not value:
            raise RuleParseError(f"Empty directory rule: {line!r}")
        return DirectoryPrefixRule(os.path.normpath(value))
    if text.startswith(DATE_PREFIX):
        value = text[len(DATE_PREFIX) :].strip()
        try:
            return CaptureDateRule(date.fromisoformat(value))
        except ValueError as exc:
            raise RuleParseError(f"Invalid date rule {line!r}: {exc}") from exc
    return GlobRule(text)


__all__ = [
    "RuleKind",
    "RuleParseError",
    "ExactFileRule",
    "DirectoryPrefixRule",
    "CaptureDateRule",
    "GlobRule",
    "ExclusionRule",
    "parse_rule",
]
