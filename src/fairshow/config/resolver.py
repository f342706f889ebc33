"""Configuration resolution helpers."""

from __future__ import annotations

from collections.abc import Mapping as MappingABC
from copy import deepcopy
from typing import Any, Dict, Iterable, Mapping, Sequence

import yaml
from pydantic import ValidationError

from .exceptions import ConfigError
from .models import FairshowConfig

ENV_PREFIX = "FAIRSHOW__"


def parse_scalar(raw: str) -> Any:
    """Interpret a command-line or environment value as a YAML literal.

    Unparseable text is kept as the original string.
    """
    try:
        return yaml.safe_load(raw)
    except yaml.YAMLError:
        return raw


def split_key(key: str, *, separator: str = ".") -> list[str]:
    """Split a dotted (or ``__``-joined) key into lower-case segments.

    Raises:
        ConfigError: If no segment remains.
    """
    segments = [segment.strip().lower() for segment in key.split(separator) if segment.strip()]
    if not segments:
        raise ConfigError(f"Configuration key {key!r} is empty.")
    return segments


def assign_path(
    target: dict[str, Any],
    segments: Sequence[str],
    value: Any,
    *,
    source: str = "configuration",
) -> None:
    """Set ``value`` at ``segments`` inside ``target``, creating sections on the way.

    Raises:
        ConfigError: If an intermediate segment already holds a scalar.
    """
    node = target
    for index, segment in enumerate(segments[:-1]):
        child = node.setdefault(segment, {})
        if not isinstance(child, dict):
            joined = ".".join(segments[: index + 1])
            raise ConfigError(f"{source.capitalize()} value {joined} is not a section.")
        node = child
    node[segments[-1]] = value


def env_overrides(env: Mapping[str, str], *, prefix: str = ENV_PREFIX) -> dict[str, Any]:
    """Collect ``FAIRSHOW__SECTION__KEY`` variables into a nested mapping."""
    overrides: dict[str, Any] = {}
    for key, raw_value in env.items():
        if not key.startswith(prefix) or key == prefix:
            continue
        segments = [part.lower() for part in key[len(prefix) :].split("__") if part]
        if segments:
            assign_path(overrides, segments, parse_scalar(raw_value), source="environment")
    return overrides


def resolve_with_precedence(
    *,
    defaults: FairshowConfig,
    file_overrides: Mapping[str, Any] | None = None,
    env_overrides: Mapping[str, Any] | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
) -> FairshowConfig:
    """Merge configuration sources: defaults < file < environment < CLI.

    CLI overrides may use dotted keys such as ``history.capacity``; the other
    sources are nested mappings.

    Raises:
        ConfigError: If a source is malformed or the merged result is invalid.
    """
    merged: dict[str, Any] = defaults.model_dump(mode="python")
    layers: Iterable[tuple[str, Mapping[str, Any] | None]] = (
        ("file", file_overrides),
        ("environment", env_overrides),
        ("cli", cli_overrides),
    )
    for source, layer in layers:
        if layer:
            _merge_into(merged, _expand(layer, source=source))

    try:
        return FairshowConfig.model_validate(merged)
    except ValidationError as exc:
        fields = ", ".join(".".join(str(part) for part in error["loc"]) for error in exc.errors())
        raise ConfigError(f"Invalid configuration values ({fields}): {exc}") from exc


def flatten_for_env(config: FairshowConfig) -> Dict[str, str]:
    """Render the config as the `FAIRSHOW__SECTION__KEY` variables that would reproduce it."""
    flat: Dict[str, str] = {}
    for section, fields in config.model_dump(mode="python").items():
        for name, value in fields.items():
            env_key = f"{ENV_PREFIX}{section.upper()}__{name.upper()}"
            if isinstance(value, list):
                flat[env_key] = yaml.safe_dump(value, default_flow_style=True).strip()
            else:
                flat[env_key] = "null" if value is None else str(value)
    return flat


def _expand(layer: Mapping[str, Any], *, source: str) -> dict[str, Any]:
    if not isinstance(layer, MappingABC):
        raise ConfigError(f"{source.capitalize()} overrides must be a mapping.")
    expanded: dict[str, Any] = {}
    for key, value in layer.items():
        if not isinstance(key, str):
            raise ConfigError(f"{source.capitalize()} override keys must be strings.")
        if isinstance(value, MappingABC):
            value = _expand(value, source=source)
        segments = split_key(key)
        existing = _lookup(expanded, segments)
        if isinstance(existing, dict) and isinstance(value, dict):
            _merge_into(existing, value)
        else:
            assign_path(expanded, segments, value, source=source)
    return expanded


def _lookup(tree: Mapping[str, Any], segments: Sequence[str]) -> Any:
    node: Any = tree
    for segment in segments:
        if not isinstance(node, MappingABC) or segment not in node:
            return None
        node = node[segment]
    return node


def _merge_into(base: dict[str, Any], overrides: Mapping[str, Any]) -> None:
    for key, value in overrides.items():
        current = base.get(key)
        if isinstance(value, MappingABC) and isinstance(current, dict):
            _merge_into(current, value)
        else:
            base[key] = deepcopy(value)


__all__ = [
    "resolve_with_precedence",
    "flatten_for_env",
    "env_overrides",
    "assign_path",
    "split_key",
    "parse_scalar",
    "ENV_PREFIX",
]
