"""CLI entry point for tracknotify.

Commands:
    run: One notification cycle per project, then exit (cron friendly)
    watch: Run cycles every poll interval until interrupted
    status: Show the stored checkpoint of each project
    check: Test the tracker connection and the bot tokens

Example:
    tracknotify run
    tracknotify run --project PRJ --concurrent
    tracknotify watch
    tracknotify --config /etc/tracknotify.yaml status
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click

from tracknotify import __version__

if TYPE_CHECKING:
    from tracknotify.models import NotifierConfig


def _success(msg: str) -> str:
    """Format success message with green checkmark."""
    return click.style("✓", fg="green") + " " + msg


def _error(msg: str) -> str:
    """Format error message with red X."""
    return click.style("✗", fg="red") + " " + msg


def _info(msg: str) -> str:
    """Format info message with blue arrow."""
    return click.style("→", fg="blue") + " " + msg


def _load(ctx: click.Context) -> NotifierConfig:
    """Load configuration or exit with an error message."""
    from tracknotify.config import load_config
    from tracknotify.exceptions import ConfigError

    try:
        return load_config(ctx.obj.get("config_path"))
    except ConfigError as e:
        click.echo(_error(str(e)), err=True)
        sys.exit(1)


def _fail(ctx: click.Context, label: str, error: Exception) -> None:
    if ctx.obj.get("verbose"):
        import traceback

        click.echo(traceback.format_exc(), err=True)
    click.echo(_error(f"{label}: {error}"), err=True)
    sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="tracknotify")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to .tracknotify.yaml (default: search upwards from cwd)",
)
@click.option("--verbose", "-v", is_flag=True, help="Show detailed output")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, verbose: bool) -> None:
    """tracknotify - issue tracker change notifications.

    Polls YouTrack for changes to the configured projects and posts one
    Telegram message per change.
    """
    from tracknotify.logging import setup_logging

    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose

    setup_logging(logging.DEBUG if verbose else logging.INFO)


@cli.command()
@click.option("--project", "-p", "projects", multiple=True, help="Only run these projects")
@click.option("--concurrent", is_flag=True, help="Run project cycles in parallel")
@click.pass_context
def run(ctx: click.Context, projects: tuple[str, ...], concurrent: bool) -> None:
    """Run one notification cycle per project, then exit.

    Exits with status 1 if any project's cycle failed; its checkpoint is
    left unchanged so the next run covers the same window.
    """
    import asyncio

    from tracknotify.models import CycleResult
    from tracknotify.runner import NotifierRunner

    config = _load(ctx)

    async def run_cycles() -> dict[str, CycleResult | None]:
        runner = await NotifierRunner.from_config(config)
        try:
            return await runner.run_once(list(projects) or None, concurrent=concurrent)
        finally:
            await runner.close()

    try:
        results = asyncio.run(run_cycles())
    except Exception as e:
        _fail(ctx, "Run failed", e)
        return

    if not results:
        click.echo(_info("No matching projects configured."))
        return

    failed = False
    for name, result in results.items():
        if result is None:
            failed = True
            click.echo(_error(f"{name}: cycle failed (see log)"))
            continue
        line = (
            f"{name}: {result.issues} issue(s), {result.report.sent} sent, "
            f"{result.report.failed} failed, checkpoint {result.report.checkpoint.human}"
        )
        click.echo(_success(line) if result.report.failed == 0 else _info(line))

    if failed:
        sys.exit(1)


@cli.command()
@click.option("--project", "-p", "projects", multiple=True, help="Only watch these projects")
@click.option("--concurrent", is_flag=True, help="Run project cycles in parallel")
@click.pass_context
def watch(ctx: click.Context, projects: tuple[str, ...], concurrent: bool) -> None:
    """Run cycles every poll interval in the foreground.

    Press Ctrl+C to stop after the current cycle.
    """
    import asyncio
    import signal

    from tracknotify.runner import NotifierRunner

    config = _load(ctx)

    click.echo()
    click.echo(click.style("tracknotify", bold=True))
    click.echo(_info(f"Polling every {config.poll_interval_minutes} minutes"))
    click.echo(_info(f"Project(s): {', '.join(projects) or 'all configured'}"))
    click.echo()

    async def run_watch() -> None:
        runner = await NotifierRunner.from_config(config)

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, runner.stop)

        try:
            await runner.run(list(projects) or None, concurrent=concurrent)
        finally:
            await runner.close()

    try:
        asyncio.run(run_watch())
    except Exception as e:
        _fail(ctx, "Watcher error", e)

    click.echo()
    click.echo(_success("Stopped."))


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the stored checkpoint of each configured project."""
    import asyncio

    from tracknotify.checkpoint import open_backend
    from tracknotify.exceptions import PersistenceError

    config = _load(ctx)

    async def read_checkpoints() -> list[dict[str, Any]]:
        backend = await open_backend(config.checkpoints)
        rows: list[dict[str, Any]] = []
        try:
            for project in config.resolve_projects():
                try:
                    checkpoint = await backend.get(project.checkpoint_key)
                    state = checkpoint.human if checkpoint else "(none, first run)"
                except PersistenceError as e:
                    state = f"unreadable ({e})"
                rows.append(
                    {"project": project.name, "key": project.checkpoint_key, "state": state}
                )
        finally:
            await backend.close()
        return rows

    try:
        rows = asyncio.run(read_checkpoints())
    except Exception as e:
        _fail(ctx, "Could not read checkpoints", e)
        return

    click.echo()
    click.echo(click.style("Checkpoints", bold=True))
    click.echo()
    for row in rows:
        click.echo(f"  {row['project']:<16} {row['state']}")
    click.echo()
    click.echo(_info(f"Storage: {config.checkpoints.backend} at {config.checkpoints.path}"))


@cli.command()
@click.pass_context
def check(ctx: click.Context) -> None:
    """Test the tracker connection and each project's bot token."""
    import asyncio

    from tracknotify.runner import NotifierRunner

    config = _load(ctx)

    async def run_health_checks() -> dict[str, bool]:
        runner = await NotifierRunner.from_config(config)
        try:
            return await runner.health_check()
        finally:
            await runner.close()

    try:
        results = asyncio.run(run_health_checks())
    except Exception as e:
        _fail(ctx, "Health check failed", e)
        return

    click.echo()
    click.echo(click.style("Connection Status", bold=True))
    click.echo()

    for name, healthy in results.items():
        click.echo("  " + (_success(name) if healthy else _error(f"{name} (check credentials)")))

    click.echo()

    if not all(results.values()):
        sys.exit(1)


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
