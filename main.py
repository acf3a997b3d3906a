#!/usr/bin/env python3
"""
MultiFeed - Multi-Source Feed Aggregator
========================================

Main application entry point with CLI interface.

Usage:
    python main.py --help                    # Show all commands
    python main.py check-config              # Validate configuration
    python main.py refresh                   # Run one refresh cycle and report sources
    python main.py serve                     # Serve the feeds with periodic refresh
"""

import sys
import asyncio
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent))

from multifeed.config.settings import MultiFeedSettings, get_settings
from multifeed.processing.aggregator import Aggregator
from multifeed.processing.cache import CacheHolder
from multifeed.utils.logging import configure_application_logging
from multifeed.utils.exceptions import MultiFeedError
from multifeed.utils.validators import URLValidator

console = Console()
logger = logging.getLogger(__name__)


def _configure_logging(settings: MultiFeedSettings, debug: bool = False):
    configure_application_logging(
        log_level="DEBUG" if debug else settings.get_effective_log_level(),
        log_file=settings.logging.file_path,
        enable_console=settings.logging.console_logging,
        structured_logging=settings.logging.structured_logging,
        max_file_size_mb=settings.logging.max_file_size_mb,
        backup_count=settings.logging.backup_count,
    )


def _load_settings_or_exit() -> MultiFeedSettings:
    try:
        return get_settings()
    except MultiFeedError as e:
        console.print(f"[bold red]❌ Configuration error: {e}[/bold red]")
        sys.exit(1)


@click.group(invoke_without_command=True)
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(ctx, debug):
    """MultiFeed - merge RSS, Atom and JSON feeds into one republished feed."""
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
def check_config():
    """Validate configuration and environment variables."""
    console.print("[bold blue]🔧 Checking MultiFeed Configuration[/bold blue]")

    settings = _load_settings_or_exit()

    table = Table(title="Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Listen address", f"{settings.host}:{settings.port}")
    table.add_row("Site URL", settings.feed.site_url)
    table.add_row("Feed title", settings.feed.title)
    table.add_row("Refresh interval", f"{settings.scheduler.refresh_interval_minutes} min")
    table.add_row("Parallel fetches", str(settings.fetch.parallel_feeds))
    table.add_row("Request timeout", f"{settings.fetch.request_timeout}s")
    table.add_row("Log level", settings.get_effective_log_level())
    unusual = []
    for index, source in enumerate(settings.sources, 1):
        table.add_row(f"Source {index}", source)
        if not URLValidator.is_likely_feed_url(source):
            unusual.append(source)

    console.print(table)
    for source in unusual:
        console.print(f"[yellow]⚠️ {source} does not look like a feed URL[/yellow]")
    console.print("[bold green]✅ Configuration is valid[/bold green]")


@cli.command()
@click.option('--source', '-s', 'sources', multiple=True, help='Source URL to fetch instead of the configured list (repeatable)')
@click.pass_context
def refresh(ctx, sources):
    """Run one refresh cycle and show per-source results."""
    settings = _load_settings_or_exit()
    _configure_logging(settings, ctx.obj.get('debug'))

    console.print("[bold blue]🔄 Refreshing sources[/bold blue]")

    aggregator = Aggregator(CacheHolder(), settings=settings)
    cache = asyncio.run(aggregator.refresh(list(sources) if sources else None))

    table = Table(title="Source Results")
    table.add_column("Source", style="cyan")
    table.add_column("Status")
    table.add_column("Format")
    table.add_column("Items", justify="right")
    table.add_column("Details")

    for report in cache.source_reports:
        table.add_row(
            report.source,
            "✅ OK" if report.success else "❌ Failed",
            report.format or "-",
            str(report.item_count),
            report.error or "",
        )
    console.print(table)

    console.print(
        f"[bold]{cache.count}[/bold] unique items, built {cache.last_build.isoformat()}"
    )
    if cache.failed_sources:
        console.print(
            f"[yellow]⚠️ {len(cache.failed_sources)} of {len(cache.source_reports)} sources failed[/yellow]"
        )


@cli.command()
@click.option('--host', help='Address to listen on (overrides configuration)')
@click.option('--port', '-p', type=int, help='Port to listen on (overrides PORT)')
@click.pass_context
def serve(ctx, host, port):
    """Serve the aggregated feeds and refresh them on schedule."""
    from multifeed.web.server import run

    settings = _load_settings_or_exit()
    if host:
        settings.host = host
    if port:
        settings.port = port
    _configure_logging(settings, ctx.obj.get('debug'))

    console.print(f"[bold blue]📡 MultiFeed serving on http://{settings.host}:{settings.port}[/bold blue]")
    console.print(f"Refreshing every {settings.scheduler.refresh_interval_minutes} minutes. Press Ctrl+C to stop.")

    try:
        run(settings)
    except OSError as e:
        logger.error(f"Server failed to start: {e}", exc_info=True)
        console.print(f"[bold red]❌ Failed to start server: {e}[/bold red]")
        sys.exit(1)


if __name__ == '__main__':
    cli()
