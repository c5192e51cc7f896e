"""Main CLI entry point for subdircache.

Provides commands to refresh, locate and clear cached channel repodata.
"""

import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

import click
from rich.console import Console
from rich.table import Table

from subdircache.base.target import TransferError
from subdircache.cache import CacheConfig, CacheError, SubdirData
from subdircache.display import StatusDisplay
from subdircache.storage.decompress import DecompressionError
from subdircache.transfer import download_all
from subdircache.utils import NOARCH, REPODATA_FN

# Global console for Rich output
console = Console()

FATAL_ERRORS = (CacheError, TransferError, DecompressionError, OSError)


def build_config(
    pkgs_dir: Optional[str], offline: bool, ttl: Optional[int]
) -> CacheConfig:
    """Combine environment configuration with command line overrides."""
    config = CacheConfig.from_env()
    if pkgs_dir:
        config.pkgs_dirs = [Path(pkgs_dir).expanduser()]
    if offline:
        config.offline = True
    if ttl is not None:
        config.local_repodata_ttl = ttl
    return config


def make_subdirs(
    config: CacheConfig,
    channel_url: str,
    platforms: List[str],
    repodata_fn: str = REPODATA_FN,
    display: Optional[StatusDisplay] = None,
) -> List[SubdirData]:
    """One SubdirData per platform, plus noarch which is always included."""
    names = list(dict.fromkeys(list(platforms) + [NOARCH]))
    return [
        SubdirData.from_channel(
            channel_url, platform, repodata_fn, config=config, display=display
        )
        for platform in names
    ]


def _state_label(subdir: SubdirData) -> str:
    if not subdir.loaded:
        return "[red]unavailable[/red]"
    if subdir.download_complete:
        return "[green]refreshed[/green]"
    return "[blue]cached[/blue]"


@click.group()
@click.option(
    "--pkgs-dir",
    type=click.Path(file_okay=False),
    help="Package cache root (default: SUBDIRCACHE_PKGS_DIRS or ~/.subdircache/pkgs)",
)
@click.option("--offline", is_flag=True, help="Never hit the network")
@click.option(
    "--ttl",
    type=int,
    default=None,
    help="Repodata TTL: >1 seconds, 1 honours Cache-Control, 0 always revalidates",
)
@click.option("--verbose", "-v", is_flag=True, help="Log cache decisions")
@click.pass_context
def cli(ctx, pkgs_dir, offline, ttl, verbose):
    """subdircache CLI - Keep channel repodata caches fresh."""
    ctx.ensure_object(dict)
    ctx.obj["config"] = build_config(pkgs_dir, offline, ttl)
    if verbose:
        logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")


@cli.command("fetch")
@click.argument("channel_url")
@click.option(
    "--platform",
    "-p",
    multiple=True,
    help="Platform subdirectory (can be used multiple times; noarch is implied)",
)
@click.option("--repodata-fn", default=REPODATA_FN, help="Repodata file name")
@click.option("--jobs", "-j", default=5, type=int, help="Concurrent downloads")
@click.pass_context
def fetch(ctx, channel_url, platform, repodata_fn, jobs):
    """Load channel repodata, refreshing stale caches.

    Example:
        subdircache fetch https://conda.anaconda.org/conda-forge -p linux-64
    """
    config = ctx.obj["config"]
    try:
        with StatusDisplay(console) as display:
            subdirs = make_subdirs(config, channel_url, list(platform), repodata_fn, display)
            for subdir in subdirs:
                subdir.load()
            download_all([s.target for s in subdirs if not s.loaded], max_workers=jobs)
    except FATAL_ERRORS as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)

    table = Table(title=f"Repodata ({len(subdirs)})")
    table.add_column("Subdir", style="cyan", no_wrap=True)
    table.add_column("State", no_wrap=True)
    table.add_column("Cache", style="white", overflow="fold")
    for subdir in subdirs:
        path = str(subdir.cache_path()) if subdir.loaded else ""
        table.add_row(subdir.name, _state_label(subdir), path)
    console.print(table)


@cli.command("path")
@click.argument("channel_url")
@click.option("--platform", "-p", required=True, help="Platform subdirectory")
@click.option("--repodata-fn", default=REPODATA_FN, help="Repodata file name")
@click.pass_context
def path(ctx, channel_url, platform, repodata_fn):
    """Print the cache file for a subdirectory without downloading it.

    Local file:// channels are never served from cache, so they are re-read.

    Example:
        subdircache path https://conda.anaconda.org/conda-forge -p linux-64
    """
    config = ctx.obj["config"]
    subdir = SubdirData.from_channel(channel_url, platform, repodata_fn, config=config)
    # Offline load accepts any cache carrying valid headers
    offline = replace(config, offline=True)
    try:
        subdir.load(offline)
        if subdir.target is not None:
            if subdir.forbid_cache():
                subdir.target.run()
            elif subdir.staging is not None:
                subdir.staging.release()
        click.echo(str(subdir.cache_path()))
    except FATAL_ERRORS as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


@cli.command("clear")
@click.argument("channel_url")
@click.option("--platform", "-p", multiple=True, help="Platform subdirectory")
@click.option("--repodata-fn", default=REPODATA_FN, help="Repodata file name")
@click.pass_context
def clear(ctx, channel_url, platform, repodata_fn):
    """Delete cached json and solv files of a channel.

    Example:
        subdircache clear https://conda.anaconda.org/conda-forge -p linux-64
    """
    config = ctx.obj["config"]
    for subdir in make_subdirs(config, channel_url, list(platform), repodata_fn):
        subdir.clear_cache()
        console.print(f"[green]✓[/green] Cleared {subdir.name}")


@cli.command("info")
@click.pass_context
def info(ctx):
    """Show the effective cache configuration."""
    config = ctx.obj["config"]
    console.print(f"[bold]Cache dir:[/bold] {config.cache_dir}")
    console.print(f"[bold]Pkgs dirs:[/bold] {', '.join(str(p) for p in config.pkgs_dirs)}")
    console.print(f"[bold]TTL:[/bold] {config.local_repodata_ttl}")
    console.print(f"[bold]Offline:[/bold] {config.offline}")


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
