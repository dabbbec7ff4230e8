"""Main CLI entry point for agentcache.

Provides an operator interface for inspecting and refreshing the cache.
"""

import dataclasses
import logging
import os
import sys
from pathlib import Path
from typing import Optional

import click
from filelock import FileLock, Timeout
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from agentcache.cache.config import CacheConfig
from agentcache.cache.manager import ORW_PERM, CacheManager
from agentcache.errors import CacheError, CacheLockError, ChecksumMismatchError

# Global console for Rich output
console = Console()

PATH_FIELDS = ("agent_tarball", "cache_state", "desired_image_locator")


def setup_logging(verbose: bool) -> None:
    """Route library logs through Rich.

    Level comes from --verbose, then AGENTCACHE_LOG_LEVEL, then WARNING.
    """
    level = "DEBUG" if verbose else os.environ.get("AGENTCACHE_LOG_LEVEL", "WARNING")
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def load_config(config_path: Optional[str], cache_dir: Optional[str]) -> CacheConfig:
    """Build configuration from multiple sources.

    Priority:
    1. Explicit --config file
    2. AGENTCACHE_* environment variables
    3. Defaults

    --cache-dir overrides the cache directory (and the paths derived from it)
    from either source.
    """
    if config_path:
        path = Path(config_path)
        if not path.exists():
            raise click.ClickException(f"Config file not found: {config_path}")
        config = CacheConfig.load(path)
    else:
        config = CacheConfig.from_env()

    if cache_dir:
        defaults = CacheConfig(cache_dir=config.cache_dir)
        overrides = {"cache_dir": Path(cache_dir)}
        for key in PATH_FIELDS:
            # Re-derive only the paths that were derived from the old cache_dir
            if getattr(config, key) == getattr(defaults, key):
                overrides[key] = None
        config = dataclasses.replace(config, **overrides)
    return config


def download_lock(config: CacheConfig) -> FileLock:
    """Acquire the lock that serializes downloads into the cache directory."""
    Path(config.cache_dir).mkdir(mode=ORW_PERM, parents=True, exist_ok=True)
    lock = FileLock(str(config.lock_path), timeout=config.lock_timeout)
    try:
        lock.acquire()
    except Timeout as e:
        raise CacheLockError(
            f"Timeout acquiring download lock after {config.lock_timeout} seconds"
        ) from e
    return lock


def format_size(size: Optional[int]) -> str:
    """Format byte size for human readability."""
    if size is None:
        return "-"
    for unit in ["B", "KB", "MB", "GB"]:
        if size < 1024:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} TB"


@click.group()
@click.option(
    "--cache-dir",
    "-C",
    type=click.Path(),
    help="Cache directory (default: /var/cache/ecs or AGENTCACHE_DIR env var)",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(),
    help="JSON configuration file",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, cache_dir, config_path, verbose):
    """agentcache CLI - Inspect and refresh the cached agent image."""
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config"] = load_config(config_path, cache_dir)
    if "manager" not in ctx.obj:
        ctx.obj["manager"] = CacheManager.from_config(ctx.obj["config"])


@cli.command("status")
@click.pass_context
def status(ctx):
    """Show the cache files and whether the agent is cached."""
    manager: CacheManager = ctx.obj["manager"]
    info = manager.get_status()

    table = Table(title=f"Cache: {info['cache_dir']}")
    table.add_column("File", style="cyan")
    table.add_column("Path")
    table.add_column("Size", justify="right")

    for label, entry in info["files"].items():
        size = format_size(entry["size_bytes"]) if entry["exists"] else "[dim]missing[/dim]"
        table.add_row(label, entry["path"], size)

    console.print(table)
    if info["cached"]:
        console.print("[green]✓[/green] Agent is cached")
    else:
        console.print("[yellow]Agent is not cached[/yellow]")


@cli.command("download")
@click.option(
    "--record/--no-record",
    default=True,
    help="Write the state marker after a verified download",
)
@click.pass_context
def download(ctx, record):
    """Download and verify the agent tarball.

    Example:
        agentcache download              # Download, verify and mark cached
        agentcache download --no-record  # Leave the state marker untouched
    """
    config: CacheConfig = ctx.obj["config"]
    manager: CacheManager = ctx.obj["manager"]
    try:
        lock = download_lock(config)
        try:
            manager.download_agent()
            if record:
                manager.record_cached_agent()
        finally:
            lock.release()

        console.print(
            f"[green]✓[/green] Downloaded {manager.agent_remote_tarball()} "
            f"to {config.agent_tarball}"
        )
    except ChecksumMismatchError as e:
        console.print(f"[red]✗[/red] Integrity check failed: {e}", style="red")
        sys.exit(2)
    except (CacheError, OSError) as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


@cli.command("record")
@click.pass_context
def record(ctx):
    """Mark the cached agent as usable."""
    manager: CacheManager = ctx.obj["manager"]
    try:
        manager.record_cached_agent()
        console.print(f"[green]✓[/green] Recorded {manager.config.cache_state}")
    except OSError as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


@cli.command("desired")
@click.pass_context
def desired(ctx):
    """Print the path named by the desired-image locator file."""
    manager: CacheManager = ctx.obj["manager"]
    try:
        # Undecodable names are printed as the raw bytes from the locator
        click.echo(os.fsencode(manager.resolve_desired_image_path()))
    except (CacheError, OSError) as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


@cli.command("clean")
@click.pass_context
def clean(ctx):
    """Remove temp files left behind by interrupted downloads."""
    config: CacheConfig = ctx.obj["config"]
    manager: CacheManager = ctx.obj["manager"]
    try:
        lock = download_lock(config)
        try:
            removed = manager.clean_temp_files()
        finally:
            lock.release()
    except (CacheError, OSError) as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)

    if not removed:
        console.print("[dim]No stale temp files[/dim]")
        return
    for path in removed:
        console.print(f"  [red]-[/red] {path}")
    console.print(f"[green]✓[/green] Removed {len(removed)} temp file(s)")


if __name__ == "__main__":
    cli()
