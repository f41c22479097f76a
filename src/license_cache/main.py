import json
import sys
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .cache_command import CacheCommand
from .cache_manager import find_record_files
from .cli_config import (
    create_sample_config,
    get_config,
    load_config,
    set_config,
)
from .error_handling import (
    ConfigurationError,
    LicenseCacheError,
    RecordStoreError,
    setup_error_handling,
)
from .record import DependencyRecord
from .reporting import CacheReporter
from .sources import SOURCE_TYPES
from .structured_logging import configure_logging, get_cache_logger

console = Console()


def _load_or_exit(config_path: Optional[str]):
    """Load configuration, turning configuration errors into click errors."""
    try:
        config = load_config(Path(config_path) if config_path else None)
    except ConfigurationError as e:
        raise click.ClickException(str(e))

    set_config(config)
    setup_error_handling(log_level=config.log_level)
    configure_logging(config.logging.log_level)
    get_cache_logger().logger.disabled = not config.logging.structured_events
    return config


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version information")
@click.pass_context
def cli(ctx, version):
    """
    📦 License-Cache: cached dependency license records

    Keeps one record file per application dependency up to date and removes
    records for dependencies that are gone.
    """
    if version:
        console.print(f"License-Cache version {__version__}", style="bold blue")
        ctx.exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@cli.command()
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to configuration file",
)
@click.option(
    "--force",
    "-f",
    is_flag=True,
    help="Rewrite every record even when the cached version matches",
)
@click.option(
    "--source",
    "-s",
    "sources",
    multiple=True,
    type=click.Choice(sorted(SOURCE_TYPES), case_sensitive=False),
    help="Only cache dependencies from these sources",
)
@click.option(
    "--output-format",
    "-o",
    type=click.Choice(["console", "json"], case_sensitive=False),
    default="console",
    help="Output format for results",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress per-source progress output")
def cache(
    config_path: Optional[str],
    force: bool,
    sources: Tuple[str, ...],
    output_format: str,
    quiet: bool,
):
    """Cache dependency records for every configured application."""
    config = _load_or_exit(config_path)

    reporter = None
    if output_format == "console":
        reporter = CacheReporter(console=console, quiet=quiet)

    command = CacheCommand(config, reporter=reporter)
    try:
        success = command.run(force=force, source_types=[s.lower() for s in sources])
    except RecordStoreError as e:
        raise click.ClickException(f"Failed to remove stale records: {e}")

    if output_format == "json":
        print(json.dumps(command.report.to_dict(), indent=2, ensure_ascii=False))

    if not success:
        sys.exit(1)


@cli.command()
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to configuration file",
)
def records(config_path: Optional[str]):
    """List cached dependency records for every configured application."""
    config = _load_or_exit(config_path)

    for app in config.apps:
        files = find_record_files(app.cache_path)
        if not files:
            console.print(f"📭 No cached records for {app.name}", style="yellow")
            continue

        table = Table(title=f"📦 {app.name} ({app.cache_path})", title_style="bold cyan")
        table.add_column("Source", style="bold")
        table.add_column("Dependency")
        table.add_column("Version", justify="center")
        table.add_column("Review", justify="center")

        for file_path in files:
            relative = file_path.relative_to(app.cache_path)
            try:
                record = DependencyRecord.read(file_path)
            except LicenseCacheError as e:
                table.add_row(relative.parts[0], str(relative), f"[red]{e}[/red]", "")
                continue
            if record is None:
                continue

            review = (
                "[yellow]changed[/yellow]"
                if record.get("review_changed_license")
                else ("[green]reviewed[/green]" if app.reviewed(record) else "")
            )
            table.add_row(
                relative.parts[0],
                str(record.get("name", relative.stem)),
                str(record.get("version", "")),
                review,
            )

        console.print(table)


@cli.group()
def config():
    """Configuration management commands."""
    pass


@config.command("init")
@click.option(
    "--path",
    default=".license-cache.yml",
    help="Configuration file path",
    type=click.Path(dir_okay=False),
)
@click.option("--force", is_flag=True, help="Overwrite existing config file")
def config_init(path: str, force: bool):
    """Write a sample configuration file."""
    config_path = Path(path)
    if config_path.exists() and not force:
        raise click.ClickException(
            f"Config file {config_path} already exists (use --force to overwrite)"
        )

    config_path.write_text(create_sample_config(), encoding="utf-8")
    console.print(f"✅ Sample configuration written to {config_path}", style="green")


@config.command("show")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to configuration file",
)
def config_show(config_path: Optional[str]):
    """Show the effective configuration."""
    _load_or_exit(config_path)
    current = get_config()

    console.print(
        Panel("[bold blue]⚙️  License-Cache Configuration[/bold blue]", border_style="blue")
    )
    console.print(f"  Config File: {current.config_file or 'none (defaults)'}")
    console.print(f"  Cache Path: {current.cache.cache_path}")
    console.print(f"  Force: {current.cache.force}")
    console.print(f"  Log Level: {current.logging.log_level}")

    for app in current.apps:
        console.print(f"\n[bold cyan]{app.name}[/bold cyan]")
        console.print(f"  Source Path: {app.source_path}")
        console.print(f"  Cache Path: {app.cache_path}")
        enabled = [t for t in sorted(SOURCE_TYPES) if app.enabled_source(t)]
        console.print(f"  Sources: {', '.join(enabled) or 'none'}")
        for source_type, patterns in app.reviewed_patterns.items():
            console.print(f"  Reviewed ({source_type}): {', '.join(patterns)}")


@config.command("validate")
@click.argument("config_file", type=click.Path(exists=True, dir_okay=False))
def config_validate(config_file: str):
    """Validate a configuration file."""
    try:
        load_config(Path(config_file))
    except ConfigurationError as e:
        console.print(f"❌ {e}", style="red")
        sys.exit(1)

    console.print(f"✅ Configuration {config_file} is valid", style="green")


if __name__ == "__main__":
    cli()
