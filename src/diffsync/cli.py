"""diffsync CLI — Typer application with status, diff, stage, unstage, watch and init."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional, Tuple

import typer
from rich.console import Console

from diffsync import __version__

app = typer.Typer(
    name="diffsync",
    help="Live working-tree and pull-request diffs.",
    add_completion=False,
    no_args_is_help=True,
)

console = Console(stderr=True)
out = Console()

_SCOPES = ("all", "staged", "unstaged")


def _resolve_repo_root() -> Path:
    """Find the git repo root, exit 2 on failure."""
    from diffsync.git.adapter import GitError, ToolRunner, get_repo_root

    try:
        root = get_repo_root(ToolRunner(), Path.cwd())
    except GitError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(code=2) from exc
    if root is None:
        console.print("[bold red]Error:[/bold red] not a git repository")
        raise typer.Exit(code=2)
    return root


def _setup(config: Optional[str], verbose: bool):
    """Resolve the repository, load config, configure logging."""
    from diffsync.config.loader import ConfigError, load_config
    from diffsync.logging import configure_logging

    repo_root = _resolve_repo_root()
    try:
        cfg = load_config(repo_root, config)
    except ConfigError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        raise typer.Exit(code=2) from exc
    if verbose:
        cfg.logging.level = "DEBUG"
    configure_logging(cfg.logging)
    return repo_root, cfg


def _runners(cfg) -> Tuple:
    from diffsync.git.adapter import ToolRunner

    git = ToolRunner(cfg.git.executable, extra_paths=cfg.git.extra_paths, timeout=cfg.git.timeout_s)
    gh = ToolRunner(cfg.git.gh_executable, extra_paths=cfg.git.extra_paths, timeout=cfg.git.timeout_s)
    return git, gh


def _check_scope(scope: Optional[str], default: str) -> str:
    value = scope or default
    if value not in _SCOPES:
        console.print(f"[bold red]Invalid scope:[/bold red] {value}")
        raise typer.Exit(code=2)
    return value


# ── status ────────────────────────────────────────────────────────────────────


@app.command()
def status(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to .diffsync.toml"),
    scope: Optional[str] = typer.Option(None, "--scope", "-s", help="Filter: all | staged | unstaged"),
    json_output: bool = typer.Option(False, "--json", help="Emit JSON instead of a table"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """List changed paths with per-file line counts."""
    from diffsync.git.adapter import GitError
    from diffsync.git.models import DiffScope
    from diffsync.git.status import status_entries
    from diffsync.output import json_report, terminal

    repo_root, cfg = _setup(config, verbose)
    active = DiffScope(_check_scope(scope, cfg.diff.default_scope))
    runner, _ = _runners(cfg)

    try:
        entries = status_entries(runner, repo_root, untracked_max_bytes=cfg.status.untracked_max_bytes)
    except GitError as exc:
        console.print(f"[bold red]Git error:[/bold red] {exc}")
        raise typer.Exit(code=2) from exc

    entries = [e for e in entries if e.in_scope(active)]
    if json_output:
        print(json_report.render_entries(entries))
    else:
        terminal.render_entries(entries, console=out)


# ── diff ──────────────────────────────────────────────────────────────────────


@app.command()
def diff(
    path: Optional[str] = typer.Argument(None, help="Limit the diff to one path"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to .diffsync.toml"),
    scope: Optional[str] = typer.Option(None, "--scope", "-s", help="all | staged | unstaged"),
    pr: Optional[int] = typer.Option(None, "--pr", help="Show a pull request diff (via gh)"),
    json_output: bool = typer.Option(False, "--json", help="Emit the parsed document as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Show the parsed diff of the working tree, one path, or a pull request."""
    from diffsync.git.adapter import GitError, get_diff_text, get_pull_request_diff
    from diffsync.git.diff_parser import parse_unified
    from diffsync.git.models import DiffScope, DiffSource
    from diffsync.git.status import status_entries
    from diffsync.output import json_report, terminal

    repo_root, cfg = _setup(config, verbose)
    active = DiffScope(_check_scope(scope, cfg.diff.default_scope))
    runner, gh = _runners(cfg)

    try:
        if pr is not None:
            source = DiffSource.for_pull_request(pr)
            text = get_pull_request_diff(gh, repo_root, pr)
        else:
            source = DiffSource.working_tree(active, path)
            if path:
                entry = next(
                    (e for e in status_entries(runner, repo_root) if e.path == path),
                    None,
                )
                if entry is not None:
                    source = DiffSource.for_entry(entry, active)
            text = get_diff_text(runner, repo_root, source)
    except GitError as exc:
        console.print(f"[bold red]Git error:[/bold red] {exc}")
        raise typer.Exit(code=2) from exc

    document = parse_unified(text, source, max_lines_per_file=cfg.diff.max_lines_per_file)
    if json_output:
        print(json_report.render_document(document))
    else:
        terminal.render_document(document, console=out)


# ── stage / unstage ───────────────────────────────────────────────────────────


def _update_index(path: str, config: Optional[str], *, staged: bool) -> None:
    from diffsync.git.adapter import GitError, stage_path, unstage_path

    repo_root, cfg = _setup(config, False)
    runner, _ = _runners(cfg)
    operation = stage_path if staged else unstage_path
    try:
        operation(runner, repo_root, path)
    except GitError as exc:
        console.print(f"[bold red]Git error:[/bold red] {exc}")
        raise typer.Exit(code=2) from exc
    verb = "Staged" if staged else "Unstaged"
    console.print(f"[green]✓[/green] {verb} {path}")


@app.command()
def stage(
    path: str = typer.Argument(..., help="Path to stage"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to .diffsync.toml"),
) -> None:
    """Stage one path."""
    _update_index(path, config, staged=True)


@app.command()
def unstage(
    path: str = typer.Argument(..., help="Path to unstage"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to .diffsync.toml"),
) -> None:
    """Unstage one path."""
    _update_index(path, config, staged=False)


# ── watch ─────────────────────────────────────────────────────────────────────


async def _watch_session(cfg, repo_root: Path, scope: str) -> None:
    from diffsync.git.models import DiffScope
    from diffsync.output import terminal
    from diffsync.sync.coordinator import RefreshCoordinator
    from diffsync.sync.state import SessionContext

    runner, gh = _runners(cfg)
    async with RefreshCoordinator(cfg, runner=runner, gh_runner=gh) as coordinator:
        updates = coordinator.subscribe()
        await coordinator.set_scope(DiffScope(scope))
        await coordinator.set_visible(True, SessionContext(cwd=repo_root))
        last = None
        while True:
            snapshot = await updates.get()
            if snapshot.is_refreshing:
                continue
            key = (snapshot.scoped_entries, snapshot.error_message)
            if key == last:
                continue
            last = key
            out.clear()
            out.print(f"[dim]{repo_root}  refresh #{snapshot.refresh_count} (Ctrl-C to stop)[/dim]")
            terminal.render_entries(snapshot.scoped_entries, console=out, error=snapshot.error_message)


@app.command()
def watch(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to .diffsync.toml"),
    scope: Optional[str] = typer.Option(None, "--scope", "-s", help="all | staged | unstaged"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Keep the change listing on screen, refreshing as the repository changes."""
    repo_root, cfg = _setup(config, verbose)
    active = _check_scope(scope, cfg.diff.default_scope)
    try:
        asyncio.run(_watch_session(cfg, repo_root, active))
    except KeyboardInterrupt:
        raise typer.Exit(code=0)


# ── init ──────────────────────────────────────────────────────────────────────


@app.command()
def init() -> None:
    """Generate a starter .diffsync.toml in the repo root."""
    from diffsync.config.defaults import DEFAULT_TOML
    from diffsync.config.loader import CONFIG_FILENAME

    repo_root = _resolve_repo_root()
    config_path = repo_root / CONFIG_FILENAME

    if config_path.exists():
        console.print(f"[yellow]⚠[/yellow]  {CONFIG_FILENAME} already exists at {config_path}")
        raise typer.Exit(code=1)

    config_path.write_text(DEFAULT_TOML, encoding="utf-8")
    console.print(f"[green]✓[/green] Created {config_path}")


# ── version ───────────────────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        print(f"diffsync {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-V", callback=_version_callback,
        is_eager=True, help="Show version and exit",
    ),
) -> None:
    """diffsync — live working-tree and pull-request diffs."""
