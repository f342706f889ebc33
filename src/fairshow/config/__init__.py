"""Configuration management for fairshow."""

from __future__ import annotations

import logging
import os
import textwrap
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, NamedTuple

import yaml

from fairshow.fsutil import atomic_write_text

from .exceptions import ConfigError
from .models import FairshowConfig
from .resolver import (
    ENV_PREFIX,
    assign_path,
    env_overrides,
    flatten_for_env,
    parse_scalar,
    resolve_with_precedence,
    split_key,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("~/.fairshow/config.yaml")
_CONFIG_HEADER = textwrap.dedent(
    """\
    # fairshow configuration file
    # Sections: state, scanning, history, logging. Values may be overridden
    # with FAIRSHOW__SECTION__KEY environment variables.
    """
)
_STAMP_PREFIX = "# Last updated:"


class ConfigChange(NamedTuple):
    """Result of :meth:`ConfigManager.set_value`.

    Attributes:
        key: Dotted key that was assigned.
        before: File contents before the write.
        after: File contents after the write.
        config: The validated configuration now on disk.
    """

    key: str
    before: str
    after: str
    config: FairshowConfig

    @property
    def changed(self) -> bool:
        return _strip_stamp(self.before) != _strip_stamp(self.after)


def _strip_stamp(text: str) -> list[str]:
    return [line for line in text.splitlines() if not line.startswith(_STAMP_PREFIX)]


class ConfigManager:
    """Read, validate and write the YAML configuration file.

    The file only needs to hold the values a user changed; anything missing
    falls back to the model defaults, and the process environment is layered
    on top unless a caller opts out.
    """

    def __init__(
        self,
        config_path: Path | None = None,
        *,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._config_path = (config_path or DEFAULT_CONFIG_PATH).expanduser()
        self._env = env if env is not None else os.environ

    @property
    def config_path(self) -> Path:
        """Return the resolved configuration path."""
        return self._config_path

    def load(
        self,
        *,
        cli_overrides: Mapping[str, Any] | None = None,
        include_env: bool = True,
        ensure_file: bool = True,
        env_overrides: Mapping[str, str] | None = None,
    ) -> FairshowConfig:
        """Resolve the effective configuration.

        Args:
            cli_overrides: Dotted-key overrides supplied on the command line.
            include_env: Whether `FAIRSHOW__SECTION__KEY` variables apply.
            ensure_file: Whether to create a default file when none exists.
            env_overrides: Environment mapping used instead of the process environment.

        Returns:
            FairshowConfig: The resolved configuration.

        Raises:
            ConfigError: If any source is malformed or a value is invalid.
        """
        if ensure_file:
            self.ensure_exists()

        from_env = None
        if include_env:
            from_env = _env_layer(env_overrides if env_overrides is not None else self._env)

        return resolve_with_precedence(
            defaults=FairshowConfig(),
            file_overrides=self._read_file(),
            env_overrides=from_env,
            cli_overrides=cli_overrides,
        )

    def load_file_overrides(self) -> dict[str, Any]:
        """Return raw overrides stored on disk."""
        return self._read_file()

    def save(self, config: FairshowConfig | Mapping[str, Any]) -> None:
        """Persist configuration data to disk."""
        data = config.model_dump(mode="python") if isinstance(config, FairshowConfig) else dict(config)
        self._write_file(data)

    def set_value(self, key: str, raw_value: str) -> ConfigChange:
        """Assign one dotted key in the file after validating the result.

        Args:
            key: Dotted path such as ``history.capacity``.
            raw_value: YAML literal to store.

        Returns:
            ConfigChange: File contents before and after, plus the new config.

        Raises:
            ConfigError: If the key or value would make the file invalid;
                the file is left untouched in that case.
        """
        self.ensure_exists()
        before = self.read_text()
        segments = split_key(key)
        data = self._read_file()
        assign_path(data, segments, parse_scalar(raw_value))
        config = resolve_with_precedence(defaults=FairshowConfig(), file_overrides=data)
        self._write_file(data)
        LOGGER.info("Set %s in %s", ".".join(segments), self._config_path)
        return ConfigChange(".".join(segments), before, self.read_text(), config)

    def ensure_exists(self) -> Path:
        """Create a configuration file with defaults if one does not exist."""
        if not self._config_path.exists():
            self._write_file(FairshowConfig().model_dump(mode="python"))
        return self._config_path

    def read_text(self) -> str:
        """Return the current configuration file contents."""
        if not self._config_path.exists():
            return ""
        return self._config_path.read_text(encoding="utf-8")

    # Internal helpers -------------------------------------------------

    def _read_file(self) -> dict[str, Any]:
        try:
            raw = yaml.safe_load(self.read_text()) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Failed to parse {self._config_path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise ConfigError(f"{self._config_path} must contain a mapping at the top level.")
        return raw

    def _write_file(self, data: Mapping[str, Any]) -> None:
        stamp = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        body = yaml.safe_dump(dict(data), sort_keys=False)
        atomic_write_text(self._config_path, f"{_CONFIG_HEADER}{_STAMP_PREFIX} {stamp}\n{body}")


def _env_layer(env: Mapping[str, str]) -> dict[str, Any] | None:
    return env_overrides(env) or None


__all__ = [
    "ConfigManager",
    "ConfigChange",
    "DEFAULT_CONFIG_PATH",
    "ENV_PREFIX",
    "FairshowConfig",
    "resolve_with_precedence",
    "flatten_for_env",
    "ConfigError",
]
