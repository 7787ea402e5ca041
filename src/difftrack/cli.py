"""Command-line interface for difftrack."""

from __future__ import annotations

import io
import logging
import time
from pathlib import Path
from typing import Iterable

import tomli_w
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.text import Text

from .config import DEFAULT_CONFIG_FILENAME, Config, ConfigError, load_config
from .filesystem import find_repository_root
from .models import ChangedFile, ChangeType, DiffLineType
from .tracker import ChangeTracker, TrackerError

app = typer.Typer(help="Live git-baseline change tracking with collapsed diffs")
console = Console()

_CHANGE_STYLES = {
    ChangeType.CREATED: "green",
    ChangeType.MODIFIED: "yellow",
    ChangeType.DELETED: "red",
    ChangeType.RENAMED: "cyan",
}

_LINE_STYLES = {
    DiffLineType.ADDED: ("+", "green"),
    DiffLineType.REMOVED: ("-", "red"),
    DiffLineType.CONTEXT: (" ", "dim"),
}


def _configure_logging(verbosity: int) -> None:
    logger = logging.getLogger("difftrack")
    if verbosity <= 0:
        return
    logger.setLevel(logging.DEBUG if verbosity > 1 else logging.INFO)
    if not any(isinstance(handler, RichHandler) for handler in logger.handlers):
        logger.addHandler(RichHandler(console=Console(stderr=True), show_path=False))


def _resolve_root(workspace: Path) -> tuple[Path, Path]:
    workspace = workspace.expanduser().resolve(strict=False)
    if not workspace.exists():
        raise TrackerError(f"Workspace '{workspace}' does not exist")
    root = find_repository_root(workspace)
    if root is None:
        raise TrackerError(f"No git repository found at or above '{workspace}'")
    return root, workspace


def _build_tracker(config: Config) -> ChangeTracker:
    # the CLI drives polls itself, so the background scheduler stays off
    settings = config.settings.model_copy(update={"poll_interval": 0})
    return ChangeTracker(settings, config.policy)


def _start(config: Config, workspace: Path) -> ChangeTracker:
    root, scope = _resolve_root(workspace)
    tracker = _build_tracker(config)
    if not tracker.start_tracking(root, scope):
        console.print("[yellow]Could not query git status; showing no changes.[/yellow]")
    return tracker


def _handle_error(exc: Exception) -> None:
    if isinstance(exc, ConfigError):
        message = str(exc)
        console.print(f"[red]{message}[/red]")
        if "does not exist" in message:
            console.print("[yellow]Use 'difftrack init --config <path>' to create a configuration file.[/yellow]")
        elif "Expected to find" in message:
            console.print(
                "[yellow]Point --config at the file itself or at the directory containing difftrack.toml.[/yellow]"
            )
        raise typer.Exit(code=1)
    if isinstance(exc, TrackerError):
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    raise exc


def _format_changed_files(files: Iterable[ChangedFile]) -> Table:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Entry", overflow="fold")
    table.add_column("Change")
    table.add_column("Lines", justify="right")

    for changed in files:
        style = _CHANGE_STYLES.get(changed.change_type, "white")
        entry = changed.relative_path
        if changed.old_path is not None:
            entry = f"{changed.old_path.name} -> {entry}"
        lines = changed.changes_summary if changed.diff_available else f"{changed.changes_summary} (no diff)"
        table.add_row(entry, f"[{style}]{changed.change_type.value}[/{style}]", lines)

    return table


def _print_diff(changed: ChangedFile) -> None:
    style = _CHANGE_STYLES.get(changed.change_type, "white")
    header = Text(f"{changed.relative_path} ", style="bold")
    header.append(changed.type_indicator or changed.change_type.value, style=style)
    header.append(f"  {changed.changes_summary}", style="dim")
    console.print(header)

    if not changed.diff_available:
        console.print("[yellow]  original content unavailable[/yellow]")

    for line in changed.lines:
        if line.is_elision:
            console.print(Text("  ...", style="dim italic"))
            continue
        marker, line_style = _LINE_STYLES[line.line_type]
        number = line.new_number if line.new_number is not None else line.old_number
        row = Text(f"{number if number is not None else '':>5} {marker} ", style="dim")
        row.append(line.text, style=line_style)
        console.print(row)
    console.print()


def _render_init_config(config: Config) -> str:
    settings = config.settings.model_dump()
    policy = config.policy.model_dump()
    data = {
        "settings": settings,
        "policy": {
            "extensions": sorted(policy["extensions"]),
            "ignored_directories": sorted(policy["ignored_directories"]),
            "max_file_bytes": policy["max_file_bytes"],
        },
    }

    buffer = io.StringIO()
    buffer.write("# difftrack configuration\n\n")
    buffer.write(tomli_w.dumps(data))
    return buffer.getvalue()


@app.callback()
def main(
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="Log tracker activity (-vv for debug)"),
) -> None:
    """Track working-tree changes against git HEAD."""

    _configure_logging(verbose)


@app.command()
def init(
    config: Path = typer.Option(
        Path(DEFAULT_CONFIG_FILENAME),
        "--config",
        "-c",
        help="Path to write the configuration file",
        dir_okay=False,
        writable=True,
    ),
    force: bool = typer.Option(False, "--force", help="Overwrite existing config if present"),
) -> None:
    """Create a starter difftrack configuration file."""

    if config.exists() and not force:
        console.print(f"[red]Configuration '{config}' already exists. Use --force to overwrite.[/red]")
        raise typer.Exit(code=1)

    config.parent.mkdir(parents=True, exist_ok=True)
    config.write_text(_render_init_config(Config()))
    console.print(f"[green]Created '{config}'.[/green]")


@app.command()
def status(
    workspace: Path = typer.Argument(Path("."), help="Directory to track (defaults to the current directory)"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to difftrack.toml"),
) -> None:
    """List files changed since HEAD."""

    try:
        with _start(load_config(config), workspace) as tracker:
            files = tracker.get_changed_files()
            if not files:
                console.print("[green]No changes.[/green]")
                return
            console.print(_format_changed_files(files))
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def diff(
    workspace: Path = typer.Argument(Path("."), help="Directory to track (defaults to the current directory)"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to difftrack.toml"),
    context: int | None = typer.Option(None, "--context", "-U", min=0, help="Unchanged lines around each change"),
) -> None:
    """Show collapsed diffs of files changed since HEAD."""

    try:
        loaded = load_config(config)
        if context is not None:
            loaded = loaded.model_copy(update={"settings": loaded.settings.model_copy(update={"context_lines": context})})
        with _start(loaded, workspace) as tracker:
            files = tracker.get_changed_files()
            if not files:
                console.print("[green]No changes.[/green]")
                return
            for changed in files:
                _print_diff(changed)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def watch(
    workspace: Path = typer.Argument(Path("."), help="Directory to track (defaults to the current directory)"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to difftrack.toml"),
    interval: float | None = typer.Option(None, "--interval", "-i", min=0.05, help="Seconds between polls"),
    ticks: int | None = typer.Option(None, "--ticks", min=1, help="Stop after this many polls"),
) -> None:
    """Poll for changes and print the changed-file list whenever it changes."""

    try:
        loaded = load_config(config)
        root, scope = _resolve_root(workspace)
        delay = interval if interval is not None else loaded.settings.poll_interval or 3.0
        tracker = _build_tracker(loaded)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)
        return

    previous: list[tuple[str, str, str]] | None = None
    count = 0
    with tracker:
        try:
            tracker.start_tracking(root, scope)
            console.print(f"[bold]Watching {scope}[/bold] (every {delay:g}s, Ctrl-C to stop)")
            while True:
                files = tracker.refresh()
                view = [(item.relative_path, item.change_type.value, item.changes_summary) for item in files]
                if view != previous:
                    previous = view
                    console.print(_format_changed_files(files) if files else "[green]No changes.[/green]")
                count += 1
                if ticks is not None and count >= ticks:
                    break
                time.sleep(delay)
                tracker.poll()
        except KeyboardInterrupt:
            console.print("[yellow]Stopped.[/yellow]")
        except Exception as exc:  # noqa: BLE001
            _handle_error(exc)


def run() -> None:
    """Entry point used for console_script bindings."""

    app()
