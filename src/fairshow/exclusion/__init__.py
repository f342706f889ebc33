"""Exclusion rule engine backed by a hand-editable rule file."""

from __future__ import annotations

import logging
import os
import textwrap
from datetime import date
from pathlib import Path
from typing import Iterable, List, Optional

from fairshow.catalog.models import CatalogEntry
from fairshow.fsutil import atomic_write_text

from .capture import CaptureDateReader
from .rules import (
    CaptureDateRule,
    DirectoryPrefixRule,
    ExactFileRule,
    ExclusionRule,
    GlobRule,
    RuleKind,
    RuleParseError,
    parse_rule,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_RULES_FILENAME = "ignore"
DEFAULT_RULES_TEXT = textwrap.dedent(
    """\
    # fairshow exclusion rules
    # One rule per line. Prefixes: file:<path>, dir:<directory>, date:<YYYY-MM-DD>.
    # Lines without a prefix are glob patterns matched against the full path
    # and against every path component.

    # Thumbnail caches
    .thumbnails
    Thumbs.db
    .DS_Store

    # System files
    @eaDir
    desktop.ini
    """
)

RULE_KINDS: tuple[str, ...] = ("file", "directory", "date")


class ExclusionEngine:
    """Evaluate and maintain the current exclusion rule set.

    The rule file is the source of truth. It is re-read whenever its
    modification time changes so that edits made outside the process apply to
    the next scan or exclude action without a restart.
    """

    def __init__(self, rules_path: Path, *, reader: CaptureDateReader | None = None) -> None:
        """Initialize the engine for a rule file.

        Args:
            rules_path: Location of the plain-text rule file.
            reader: Capture-date reader used by date rules.
        """
        self._rules_path = rules_path
        self._reader = reader or CaptureDateReader()
        self._rules: List[ExclusionRule] = []
        self._loaded_signature: tuple[int, int] | None = None

    @property
    def rules_path(self) -> Path:
        return self._rules_path

    @property
    def reader(self) -> CaptureDateReader:
        return self._reader

    @property
    def rules(self) -> tuple[ExclusionRule, ...]:
        return tuple(self._rules)

    @property
    def has_date_rules(self) -> bool:
        return any(rule.needs_capture_date for rule in self._rules)

    # ------------------------------------------------------------------ #
    # Rule file lifecycle                                                #
    # ------------------------------------------------------------------ #

    def ensure_file(self, fallback_lines: Iterable[str] | None = None) -> Path:
        """Create the rule file if it does not exist.

        Args:
            fallback_lines: Rule lines to seed the file with, typically those
                recorded in the last snapshot. Defaults are used when None.

        Returns:
            Path: The rule file location.
        """
        if self._rules_path.exists():
            return self._rules_path
        if fallback_lines is None:
            text = DEFAULT_RULES_TEXT
        else:
            text = "".join(f"{line}\n" for line in fallback_lines)
        atomic_write_text(self._rules_path, text)
        LOGGER.info("Created exclusion rule file at %s", self._rules_path)
        return self._rules_path

    def reload(self) -> bool:
        """Re-read the rule file unconditionally.

        Returns:
            bool: True when the parsed rule set differs from the previous one.
        """
        previous = list(self._rules)
        if not self._rules_path.exists():
            self._rules = []
            self._loaded_signature = None
            return previous != self._rules

        text = self._rules_path.read_text(encoding="utf-8")
        parsed: List[ExclusionRule] = []
        seen: set[ExclusionRule] = set()
        for number, line in enumerate(text.splitlines(), start=1):
            try:
                rule = parse_rule(line)
            except RuleParseError as exc:
                LOGGER.warning("%s:%d: %s", self._rules_path, number, exc)
                continue
            if rule is not None and rule not in seen:
                seen.add(rule)
                parsed.append(rule)
        self._rules = parsed
        self._loaded_signature = self._signature()
        return previous != parsed

    def reload_if_changed(self) -> bool:
        """Re-read the rule file when it changed on disk since the last load."""
        if self._signature() == self._loaded_signature and self._loaded_signature is not None:
            return False
        return self.reload()

    def render_lines(self) -> List[str]:
        return [rule.render() for rule in self._rules]

    # ------------------------------------------------------------------ #
    # Evaluation                                                         #
    # ------------------------------------------------------------------ #

    def is_excluded(self, path: str, captured_on: Optional[date] = None) -> bool:
        """Return True when any stored rule matches.

        Args:
            path: Absolute path to test.
            captured_on: Capture date of the file, required for date rules.
        """
        return any(rule.matches(path, captured_on) for rule in self._rules)

    def is_entry_excluded(self, entry: CatalogEntry) -> bool:
        """Evaluate the rules for a catalog entry, resolving its capture date lazily."""
        captured_on = None
        if self.has_date_rules:
            captured_on = self.capture_date_for(entry)
        return self.is_excluded(entry.path, captured_on)

    def is_path_excluded(
        self,
        path: str,
        modified_time: float | None = None,
        captured_on: Optional[date] = None,
    ) -> bool:
        """Evaluate the rules for a path, reading its capture date only if a date rule needs it."""
        if captured_on is None and self.has_date_rules and not self._matches_without_date(path):
            try:
                captured_on = self._reader.read(path, modified_time)
            except OSError as exc:
                LOGGER.warning("Cannot determine capture date for %s: %s", path, exc)
        return self.is_excluded(path, captured_on)

    def capture_date_for(self, entry: CatalogEntry) -> Optional[date]:
        if entry.captured_on is None:
            try:
                entry.captured_on = self._reader.read(entry.path, entry.modified_time)
            except OSError as exc:
                LOGGER.warning("Cannot determine capture date for %s: %s", entry.path, exc)
                return None
        return entry.captured_on

    # ------------------------------------------------------------------ #
    # Mutation                                                           #
    # ------------------------------------------------------------------ #

    def add_rule(self, path: str | Path, kind: RuleKind | str) -> ExclusionRule:
        """Create a rule derived from ``path`` and append it to the rule file.

        Args:
            path: Media file the rule is derived from.
            kind: ``file`` for the exact path, ``directory`` for its containing
                directory, ``date`` for its capture date.

        Returns:
            ExclusionRule: The created (or already present) rule.

        Raises:
            ValueError: If ``kind`` is not a supported rule kind.
            OSError: If a date rule cannot read the file's metadata.
        """
        absolute = os.path.abspath(os.fspath(path))
        rule: ExclusionRule
        if kind == "file":
            rule = ExactFileRule(absolute)
        elif kind == "directory":
            rule = DirectoryPrefixRule(os.path.dirname(absolute))
        elif kind == "date":
            rule = CaptureDateRule(self._reader.read(absolute))
        else:
            raise ValueError(f"Unsupported exclusion kind {kind!r}; expected one of {RULE_KINDS}")

        self.reload_if_changed()
        if rule in self._rules:
            LOGGER.info("Exclusion rule %s already present.", rule.render())
            return rule

        existing = self._rules_path.read_text(encoding="utf-8") if self._rules_path.exists() else ""
        if existing and not existing.endswith("\n"):
            existing += "\n"
        atomic_write_text(self._rules_path, f"{existing}{rule.render()}\n")
        self._rules.append(rule)
        self._loaded_signature = self._signature()
        LOGGER.info("Added exclusion rule %s", rule.render())
        return rule

    def _matches_without_date(self, path: str) -> bool:
        return any(
            rule.matches(path, None) for rule in self._rules if not rule.needs_capture_date
        )

    def _signature(self) -> tuple[int, int] | None:
        try:
            stat = self._rules_path.stat()
        except OSError:
            return None
        return (stat.st_mtime_ns, stat.st_size)


__all__ = [
    "ExclusionEngine",
    "CaptureDateReader",
    "ExclusionRule",
    "ExactFileRule",
    "DirectoryPrefixRule",
    "CaptureDateRule",
    "GlobRule",
    "RuleKind",
    "RULE_KINDS",
    "DEFAULT_RULES_TEXT",
    "DEFAULT_RULES_FILENAME",
    "parse_rule",
]
