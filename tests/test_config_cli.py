"""CLI tests for configuration commands."""

import os
from pathlib import Path
from typing import Any

from click.testing import CliRunner

from fairshow.cli import cli
from fairshow.config import ConfigManager


def _env_with_home(tmp_path: Path) -> dict[str, Any]:
    env = dict(os.environ)
    env["HOME"] = str(tmp_path)
    return env


def _config_path(tmp_path: Path) -> Path:
    return tmp_path / ".fairshow" / "config.yaml"


def test_config_view_creates_and_displays_config(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(cli, ["config", "view"], env=env)

    assert result.exit_code == 0
    assert "scanning:" in result.output
    assert _config_path(tmp_path).exists()


def test_config_view_applies_environment(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)
    env["FAIRSHOW__HISTORY__CAPACITY"] = "77"

    with_env = runner.invoke(cli, ["config", "view"], env=env)
    without_env = runner.invoke(cli, ["config", "view", "--no-env"], env=env)

    assert "capacity: 77" in with_env.output
    assert "capacity: 77" not in without_env.output


def test_config_set_updates_value_and_writes_diff(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(cli, ["config", "set", "history.capacity", "--value", "50"], env=env)

    assert result.exit_code == 0
    assert "50" in result.output

    manager = ConfigManager(config_path=_config_path(tmp_path))
    config = manager.load(include_env=False)
    assert config.history.capacity == 50

    again = runner.invoke(cli, ["config", "set", "history.capacity", "--value", "50"], env=env)
    assert "No changes applied" in again.output


def test_config_set_rejects_invalid_value(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(cli, ["config", "set", "history.capacity", "--value", "zero"], env=env)

    assert result.exit_code != 0
    assert "Invalid configuration values" in result.output


def test_config_env_renders_variables(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)
    runner.invoke(cli, ["config", "set", "scanning.include_hidden", "--value", "true"], env=env)

    result = runner.invoke(cli, ["config", "env", "--no-env"], env=env)

    assert result.exit_code == 0
    lines = result.output.splitlines()
    assert "FAIRSHOW__SCANNING__INCLUDE_HIDDEN=True" in lines
    assert "FAIRSHOW__HISTORY__CAPACITY=100" in lines
