"""Unit tests for configuration management."""

from pathlib import Path

import pytest

from fairshow.config import (
    ConfigError,
    ConfigManager,
    FairshowConfig,
    flatten_for_env,
    resolve_with_precedence,
)


def _fresh_manager(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> ConfigManager:
    monkeypatch.setenv("HOME", str(tmp_path))
    return ConfigManager(env={})


def test_ensure_exists_creates_default_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)

    path = manager.ensure_exists()

    assert path == tmp_path / ".fairshow" / "config.yaml"
    text = path.read_text(encoding="utf-8")
    assert "fairshow configuration file" in text
    assert "Last updated:" in text

    config = manager.load(include_env=False)
    assert isinstance(config, FairshowConfig)
    assert config.history.capacity == 100


def test_resolve_with_precedence_respects_order(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)
    manager.ensure_exists()

    manager.save({"scanning": {"progress_every": 10}, "history": {"capacity": 40}})

    env = {"FAIRSHOW__HISTORY__CAPACITY": "60", "FAIRSHOW__LOGGING__LEVEL": "DEBUG"}
    cli = {"history.capacity": 80}

    config = manager.load(cli_overrides=cli, env_overrides=env)

    assert config.scanning.progress_every == 10
    assert config.logging.level == "DEBUG"
    # CLI overrides take precedence over environment
    assert config.history.capacity == 80


def test_environment_list_values_are_parsed(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)

    config = manager.load(env_overrides={"FAIRSHOW__SCANNING__IMAGE_EXTENSIONS": "[.JPG, png]"})

    assert config.scanning.image_extensions == ["jpg", "png"]


def test_invalid_yaml_raises_config_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)
    manager.ensure_exists()

    manager.config_path.write_text("- not-a-mapping", encoding="utf-8")

    with pytest.raises(ConfigError):
        manager.load()


def test_unknown_key_raises_config_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)
    manager.save({"scanning": {"follow_symlinks": True}})

    with pytest.raises(ConfigError):
        manager.load()


def test_flatten_for_env_round_trips_defaults() -> None:
    flat = flatten_for_env(FairshowConfig())

    assert flat["FAIRSHOW__HISTORY__CAPACITY"] == "100"
    assert flat["FAIRSHOW__STATE__DIRECTORY"] == "~/.fairshow"
    assert flat["FAIRSHOW__SCANNING__INCLUDE_HIDDEN"] == "False"


def test_resolve_with_precedence_invalid_value_raises() -> None:
    with pytest.raises(ConfigError):
        resolve_with_precedence(
            defaults=FairshowConfig(),
            file_overrides={"history": {"capacity": "not-an-int"}},
        )


def test_set_value_validates_before_writing(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)

    change = manager.set_value("History.Capacity", "25")

    assert change.key == "history.capacity"
    assert change.changed
    assert change.config.history.capacity == 25
    assert "capacity: 25" in manager.read_text()

    untouched = manager.read_text()
    with pytest.raises(ConfigError):
        manager.set_value("history.capacity.limit", "3")
    with pytest.raises(ConfigError):
        manager.set_value("history.capacity", "-1")
    assert manager.read_text() == untouched

    assert not manager.set_value("history.capacity", "25").changed
