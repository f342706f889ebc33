"""Command line interface for fairshow."""

from __future__ import annotations

import difflib
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import click
import yaml
from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn
from rich.syntax import Syntax
from rich.table import Table

from fairshow.catalog import CatalogEntry
from fairshow.config import ConfigError, ConfigManager, FairshowConfig, flatten_for_env
from fairshow.engine import SlideshowEngine
from fairshow.errors import (
    EmptyCatalogError,
    FairshowError,
    NoHistoryError,
    NotFoundError,
    ScanIOError,
)
from fairshow.exclusion import RULE_KINDS
from fairshow.log_config import LOG_FILENAME, configure_logging
from fairshow.scanning import ScanReport
from fairshow.settings import SettingsError
from fairshow.state import StateError
from fairshow.watch import WatchService

console = Console()

_HANDLED_ERRORS = (FairshowError, StateError, ConfigError, ValueError, OSError)


@dataclass(slots=True)
class CLIState:
    """Options shared by every subcommand.

    Attributes:
        state_dir: Explicit state directory overriding the configuration.
        json_output: Whether commands emit JSON instead of rich text.
        log_level: Console log level overriding the configuration.
        engine: Engine opened lazily by the first command needing it.
    """

    state_dir: Optional[Path] = None
    json_output: bool = False
    log_level: Optional[str] = None
    engine: Optional[SlideshowEngine] = None


def _handle_cli_error(
    message: str,
    *,
    code: str,
    json_output: bool,
    details: Any | None = None,
    original: Exception | None = None,
) -> None:
    """Emit a standardized error and terminate the command appropriately.

    Args:
        message: Human-readable error message.
        code: Machine-readable error identifier.
        json_output: Indicates whether JSON mode is active.
        details: Optional structured details to include in the payload.
        original: Original exception for chaining when not using JSON.

    Raises:
        SystemExit: When emitting JSON output to terminate the command.
        click.ClickException: For non-JSON flows to surface the error.
    """
    if json_output:
        payload: dict[str, Any] = {"error": {"code": code, "message": message}}
        if details is not None:
            payload["error"]["details"] = details
        console.print_json(data=payload)
        raise SystemExit(1)

    if isinstance(original, click.ClickException):
        raise original

    raise click.ClickException(message) from original


def _fail(exc: Exception, *, json_output: bool) -> None:
    """Translate an engine exception into a CLI error."""
    if isinstance(exc, EmptyCatalogError):
        code, message = "empty_catalog", "Catalog is empty; run `fairshow scan PATH` first."
    elif isinstance(exc, NoHistoryError):
        code, message = "no_history", str(exc)
    elif isinstance(exc, NotFoundError):
        code, message = "not_found", str(exc)
    elif isinstance(exc, ScanIOError):
        code, message = "scan_error", str(exc)
    elif isinstance(exc, SettingsError):
        code, message = "invalid_setting", str(exc)
    elif isinstance(exc, ConfigError):
        code, message = "config_error", str(exc)
    elif isinstance(exc, StateError):
        code, message = "state_error", str(exc)
    elif isinstance(exc, OSError):
        code, message = "io_error", str(exc)
    else:
        code, message = "invalid_value", str(exc)
    _handle_cli_error(message, code=code, json_output=json_output, original=exc)


def _format_summary_line(command: str, root: Path | str, metrics: dict[str, Any]) -> str:
    """Return a consistent summary line for CLI commands.

    Args:
        command: Command name to include in the summary.
        root: Target root path relevant to the command.
        metrics: Ordered mapping of metric names to values.

    Returns:
        str: Rich-formatted summary string.
    """
    parts = ", ".join(f"{key}={value}" for key, value in metrics.items())
    return f"[green]{command} summary for {root}: {parts}.[/green]"


def _load_config() -> FairshowConfig:
    manager = ConfigManager()
    manager.ensure_exists()
    return manager.load()


def _engine(state: CLIState) -> SlideshowEngine:
    """Open the engine once per invocation and schedule it to close."""
    if state.engine is not None:
        return state.engine

    config = _load_config()
    engine = SlideshowEngine(state.state_dir, config=config)
    configure_logging(
        config.logging,
        engine.state_dir / LOG_FILENAME,
        console=Console(stderr=True),
        level_override=state.log_level,
    )
    outcome = engine.restore()
    if outcome.status == "corrupt" and not state.json_output:
        console.print(f"[yellow]{outcome.message}[/yellow]")
    click.get_current_context().call_on_close(engine.close)
    state.engine = engine
    return engine


def _entry_payload(entry: CatalogEntry) -> dict[str, Any]:
    return {
        "path": entry.path,
        "media_kind": entry.media_kind,
        "display_count": entry.display_count,
        "file_size": entry.file_size,
        "last_displayed_at": entry.last_displayed_at.isoformat() if entry.last_displayed_at else None,
    }


def _emit_entry(state: CLIState, entry: CatalogEntry, engine: SlideshowEngine) -> None:
    position = engine.get_position()
    if state.json_output:
        payload = _entry_payload(entry)
        payload["position"] = position._asdict()
        console.print_json(data=payload)
        return
    console.print(entry.path, highlight=False, soft_wrap=True)
    console.print(
        f"[dim]shown {entry.display_count}x, "
        f"round {position.current_index}/{position.total_eligible}[/dim]"
    )


def _emit_scan_report(state: CLIState, report: ScanReport) -> None:
    if state.json_output:
        console.print_json(data=report.model_dump(mode="json"))
        return
    if report.cancelled:
        console.print(f"[yellow]Scan of {report.root} cancelled; catalog unchanged.[/yellow]")
        return
    for directory in report.skipped_directories:
        console.print(f"[yellow]Skipped unreadable directory: {directory}[/yellow]")
    console.print(
        _format_summary_line(
            "Scan",
            report.root,
            {
                "total": report.total_files,
                "new": report.new_files,
                "deleted": report.deleted_files,
                "excluded": report.excluded_files,
                "duration_ms": report.duration_ms,
            },
        )
    )


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="fairshow")
@click.option(
    "--state-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory holding state.db and the ignore file (defaults to state.directory).",
)
@click.option("--json", "json_output", is_flag=True, help="Emit JSON instead of rich text.")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Console log level overriding logging.level.",
)
@click.pass_context
def cli(ctx: click.Context, state_dir: Path | None, json_output: bool, log_level: str | None) -> None:
    """Show every photo and video in a collection equally often.

    fairshow keeps a catalog of media files with per-file display counts and
    draws the next item so that counts never drift more than one apart.
    """
    ctx.obj = CLIState(state_dir=state_dir, json_output=json_output, log_level=log_level)


@cli.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.pass_obj
def scan(state: CLIState, path: Path) -> None:
    """Reconcile the catalog with the media files under PATH."""
    try:
        engine = _engine(state)
        if state.json_output:
            report = engine.scan(path)
        else:
            with Progress(
                TextColumn("[cyan]Scanning[/cyan]"),
                BarColumn(),
                MofNCompleteColumn(),
                console=console,
                transient=True,
            ) as progress:
                task_id = progress.add_task("scan", total=None)
                report = engine.scan(
                    path,
                    on_progress=lambda current, total: progress.update(
                        task_id, completed=current, total=total or None
                    ),
                )
    except _HANDLED_ERRORS as exc:
        _fail(exc, json_output=state.json_output)
        return
    _emit_scan_report(state, report)


@cli.command("next")
@click.pass_obj
def next_(state: CLIState) -> None:
    """Show the next item, drawing fairly when no forward history exists."""
    try:
        engine = _engine(state)
        entry = engine.get_next()
        _emit_entry(state, entry, engine)
    except _HANDLED_ERRORS as exc:
        _fail(exc, json_output=state.json_output)


@cli.command()
@click.pass_obj
def prev(state: CLIState) -> None:
    """Step back to the previously shown item without drawing."""
    try:
        engine = _engine(state)
        entry = engine.get_previous()
        _emit_entry(state, entry, engine)
    except _HANDLED_ERRORS as exc:
        _fail(exc, json_output=state.json_output)


@cli.command()
@click.pass_obj
def position(state: CLIState) -> None:
    """Report progress through the current round."""
    try:
        current = _engine(state).get_position()
    except _HANDLED_ERRORS as exc:
        _fail(exc, json_output=state.json_output)
        return
    if state.json_output:
        console.print_json(data=current._asdict())
        return
    back = "back available" if current.can_go_back else "no earlier history"
    console.print(f"{current.current_index}/{current.total_eligible} ({back})")


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--kind",
    type=click.Choice(list(RULE_KINDS)),
    default="file",
    show_default=True,
    help="Exclude the file itself, its directory, or its capture date.",
)
@click.pass_obj
def exclude(state: CLIState, path: Path, kind: str) -> None:
    """Stop showing PATH (or everything sharing its directory or date)."""
    try:
        engine = _engine(state)
        before = engine.get_stats().total_count
        rule = engine.exclude(path, kind)
        removed = before - engine.get_stats().total_count
    except _HANDLED_ERRORS as exc:
        _fail(exc, json_output=state.json_output)
        return
    if state.json_output:
        console.print_json(data={"rule": rule, "removed": removed})
        return
    console.print(f"[green]Added rule {rule!r}; removed {removed} catalog entries.[/green]")


@cli.command()
@click.pass_obj
def stats(state: CLIState) -> None:
    """Summarize the catalog."""
    try:
        engine = _engine(state)
        totals = engine.get_stats()
        levels = engine.level_populations()
        root = engine.root
    except _HANDLED_ERRORS as exc:
        _fail(exc, json_output=state.json_output)
        return
    if state.json_output:
        console.print_json(
            data={
                "root": root,
                "total_count": totals.total_count,
                "displayed_count": totals.displayed_count,
                "levels": {str(level): count for level, count in sorted(levels.items())},
            }
        )
        return
    table = Table(title="Catalog", show_header=False)
    table.add_row("Root", root or "-")
    table.add_row("Eligible items", str(totals.total_count))
    table.add_row("Shown at least once", str(totals.displayed_count))
    for level, count in sorted(levels.items()):
        table.add_row(f"Shown {level}x", str(count))
    console.print(table)


@cli.command()
@click.option("--limit", type=click.IntRange(min=1), help="Only list the N most shown items.")
@click.pass_obj
def histogram(state: CLIState, limit: int | None) -> None:
    """List display counts per item."""
    try:
        pairs = _engine(state).get_display_histogram()
    except _HANDLED_ERRORS as exc:
        _fail(exc, json_output=state.json_output)
        return
    if limit is not None:
        pairs = sorted(pairs, key=lambda pair: (-pair[1], pair[0]))[:limit]
    if state.json_output:
        console.print_json(data=[{"path": path, "display_count": count} for path, count in pairs])
        return
    table = Table(title="Display counts")
    table.add_column("Count", justify="right")
    table.add_column("Path", overflow="fold")
    for path, count in pairs:
        table.add_row(str(count), path)
    console.print(table)


@cli.command()
@click.confirmation_option(prompt="Reset every display count to zero?")
@click.pass_obj
def reset(state: CLIState) -> None:
    """Zero every display count and clear navigation history."""
    try:
        _engine(state).reset_counts()
    except _HANDLED_ERRORS as exc:
        _fail(exc, json_output=state.json_output)
        return
    if state.json_output:
        console.print_json(data={"reset": True})
        return
    console.print("[green]Display counts reset.[/green]")


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_obj
def share(state: CLIState, path: Path) -> None:
    """Copy PATH into the configured share directory."""
    try:
        target = _engine(state).share(path)
    except _HANDLED_ERRORS as exc:
        _fail(exc, json_output=state.json_output)
        return
    if state.json_output:
        console.print_json(data={"source": str(path), "target": str(target)})
        return
    console.print(f"[green]Copied to {target}[/green]")


@cli.command()
@click.option("--limit", type=click.IntRange(min=1), default=5, show_default=True)
@click.pass_obj
def scans(state: CLIState, limit: int) -> None:
    """Show the most recent scan reports."""
    try:
        reports = _engine(state).scan_history()[-limit:]
    except _HANDLED_ERRORS as exc:
        _fail(exc, json_output=state.json_output)
        return
    if state.json_output:
        console.print_json(data=[report.model_dump(mode="json") for report in reports])
        return
    if not reports:
        console.print("[yellow]No scans recorded yet.[/yellow]")
        return
    table = Table(title="Recent scans")
    for column in ("Root", "Total", "New", "Deleted", "Excluded", "ms"):
        table.add_column(column)
    for report in reversed(reports):
        table.add_row(
            report.root,
            str(report.total_files),
            str(report.new_files),
            str(report.deleted_files),
            str(report.excluded_files),
            str(report.duration_ms),
        )
    console.print(table)


@cli.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--debounce", type=float, help="Override the rescan debounce interval in seconds.")
@click.option("--once", is_flag=True, help="Rescan once and exit.")
@click.pass_obj
def watch(state: CLIState, path: Path, debounce: float | None, once: bool) -> None:
    """Keep the catalog in sync with PATH as files change."""
    if debounce is not None and debounce <= 0:
        raise click.ClickException("--debounce must be greater than zero.")

    try:
        service = WatchService(_engine(state), path, debounce_seconds=debounce)
        if once:
            _emit_scan_report(state, service.process_once())
            return
        if not state.json_output:
            console.print(f"[cyan]Watching {service.root}. Press Ctrl+C to stop.[/cyan]")
        service.watch(lambda report: _emit_scan_report(state, report))
    except KeyboardInterrupt:
        if not state.json_output:
            console.print("[yellow]Watch stopped by user request.[/yellow]")
    except _HANDLED_ERRORS as exc:
        _fail(exc, json_output=state.json_output)


@cli.group()
def settings() -> None:
    """Read and change playback settings stored with the catalog."""


@settings.command("get")
@click.argument("key")
@click.pass_obj
def settings_get(state: CLIState, key: str) -> None:
    """Print the stored value of KEY."""
    try:
        value = _engine(state).get_setting(key)
    except _HANDLED_ERRORS as exc:
        _fail(exc, json_output=state.json_output)
        return
    if state.json_output:
        console.print_json(data={"key": key, "value": value})
        return
    if value is None:
        raise click.ClickException(f"Setting {key!r} is not set.")
    console.print(value, highlight=False)


@settings.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_obj
def settings_set(state: CLIState, key: str, value: str) -> None:
    """Store VALUE under KEY; known keys are validated."""
    try:
        _engine(state).save_setting(key, value)
    except _HANDLED_ERRORS as exc:
        _fail(exc, json_output=state.json_output)
        return
    if state.json_output:
        console.print_json(data={"key": key, "value": value})
        return
    console.print(f"[green]Updated {key}.[/green]")


@settings.command("list")
@click.pass_obj
def settings_list(state: CLIState) -> None:
    """List every stored setting."""
    try:
        table_data = _engine(state).list_settings()
    except _HANDLED_ERRORS as exc:
        _fail(exc, json_output=state.json_output)
        return
    if state.json_output:
        console.print_json(data=table_data)
        return
    table = Table(title="Settings")
    table.add_column("Key")
    table.add_column("Value", overflow="fold")
    for key in sorted(table_data):
        table.add_row(key, table_data[key])
    console.print(table)


@cli.group()
def config() -> None:
    """Manage the fairshow configuration file and overrides."""


@config.command("view")
@click.option("--no-env", is_flag=True, help="Ignore environment overrides when displaying output.")
def config_view(no_env: bool) -> None:
    """Display the effective configuration after applying precedence rules.

    Raises:
        click.ClickException: If configuration cannot be loaded.
    """
    manager = ConfigManager()
    try:
        manager.ensure_exists()
        loaded = manager.load(include_env=not no_env)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    yaml_text = yaml.safe_dump(loaded.model_dump(mode="python"), sort_keys=False)
    console.print(Syntax(yaml_text, "yaml", word_wrap=True))


@config.command("env")
@click.option("--no-env", is_flag=True, help="Ignore environment overrides when rendering.")
def config_env(no_env: bool) -> None:
    """Print the effective configuration as FAIRSHOW__ environment variables."""
    try:
        loaded = ConfigManager().load(include_env=not no_env)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    for name, rendered in sorted(flatten_for_env(loaded).items()):
        click.echo(f"{name}={shlex.quote(rendered)}")


@config.command("set")
@click.argument("key")
@click.option("--value", required=True, help="YAML literal to assign to KEY.")
def config_set(key: str, value: str) -> None:
    """Persist a configuration value expressed as a dotted KEY.

    Raises:
        click.ClickException: If the key or value is rejected.
    """
    try:
        change = ConfigManager().set_value(key, value)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    if not change.changed:
        console.print("[yellow]No changes applied; value already up to date.[/yellow]")
        return

    diff = difflib.unified_diff(
        change.before.splitlines(),
        change.after.splitlines(),
        fromfile="config.yaml (before)",
        tofile="config.yaml (after)",
        lineterm="",
    )
    console.print(Syntax("\n".join(diff), "diff", word_wrap=False))
    console.print(f"[green]Updated {change.key}.[/green]")


def main() -> None:
    """Invoke the Click CLI as the console script entry point."""
    cli()


if __name__ == "__main__":
    main()
