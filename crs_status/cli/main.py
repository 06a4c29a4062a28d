"""
CLI interface for CRS Status.

Provides command-line access to relay service usage.
"""

import asyncio
import json
import logging
import sys
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler

from crs_status.cli.sink import RichStatusSink, render_state
from crs_status.config.loader import (
    ConfigSource,
    resolve_config_path,
    write_config_template,
)
from crs_status.core.display import DisplayState, resolve_result, resolve_unconfigured
from crs_status.core.monitor import StatusMonitor
from crs_status.sdk.relay_client import UsageClient

app = typer.Typer()
console = Console()
logger = logging.getLogger(__name__)

# Exit codes - a stale fallback still counts as success
EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1
EXIT_CODE_UNCONFIGURED = 2

# How often watch mode re-reads the config file
CONFIG_POLL_SECONDS = 1.0

CONFIG_OPTION_HELP = "Path to the YAML config file (default: crs-status.yaml or $CRS_STATUS_CONFIG)"


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_source(config_path: Optional[str]) -> ConfigSource:
    """Load the config source, exiting with an error on invalid files."""
    try:
        return ConfigSource.from_file(config_path)
    except (ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Invalid configuration:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")
):
    """CRS Status CLI."""
    _setup_logging(verbose)
    if ctx.invoked_subcommand is None:
        console.print("CRS Status - Use --help to see available commands")


@app.command()
def init(
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing config file")
):
    """Write a configuration template."""
    path = resolve_config_path(config_path)
    try:
        write_config_template(str(path), force=force)
    except FileExistsError as e:
        console.print(f"[red]Error:[/] {e} (use --force to overwrite)")
        sys.exit(EXIT_CODE_FAIL)
    console.print(f"[green]✓[/] Config template written to {path}")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def status(
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP),
    json_output: bool = typer.Option(False, "--json", help="Print the usage snapshot as JSON")
):
    """
    Fetch usage once and print the status line with its details.

    Exits with 0 when usage is shown (even from a stale fallback),
    1 on a fetch error and 2 when base URL or API key are missing.
    """
    config = _load_source(config_path).config

    if not config.is_configured:
        console.print(render_state(resolve_unconfigured()))
        console.print(f"Set baseUrl and apiKey in {resolve_config_path(config_path)}")
        sys.exit(EXIT_CODE_UNCONFIGURED)

    client = UsageClient(timeout=config.request_timeout_seconds)
    result = asyncio.run(client.fetch(config.base_url, config.api_key))
    state = resolve_result(result, config.show_percentage, config.show_amounts)

    if json_output and state.snapshot is not None:
        console.print_json(json.dumps(state.snapshot.to_dict()))
    else:
        console.print(render_state(state))

    if state.state == DisplayState.ERROR:
        sys.exit(EXIT_CODE_FAIL)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def watch(
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP)
):
    """
    Keep a live status view refreshed until interrupted.

    The config file is re-read while running; changes take effect
    immediately and reset the refresh timer.
    """
    source = _load_source(config_path)
    try:
        asyncio.run(_watch(source))
    except KeyboardInterrupt:
        console.print("Stopped")
    sys.exit(EXIT_CODE_PASS)


async def _watch(source: ConfigSource) -> None:
    def open_settings() -> None:
        console.print(f"Edit {source.path} to configure CRS Status")

    with Live(console=console, refresh_per_second=4) as live:
        monitor = StatusMonitor(source, RichStatusSink(live), open_settings=open_settings)
        await monitor.start()
        try:
            while True:
                await asyncio.sleep(CONFIG_POLL_SECONDS)
                try:
                    source.reload()
                except (ValueError, yaml.YAMLError) as e:
                    logger.warning("Ignoring invalid configuration: %s", e)
        finally:
            monitor.stop()


if __name__ == "__main__":
    app()
