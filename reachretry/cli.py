"""Command-line interface for reachretry."""

import sys
import threading
import time
from pathlib import Path
from typing import Optional

import click
import requests

from reachretry import __version__
from reachretry.core.config import Config
from reachretry.core.errors import MonitorUnavailable
from reachretry.core.logger import set_level
from reachretry.core.monitor import ConnectivityMonitor
from reachretry.core.retry import retry_on_reachable
from reachretry.core.stream import Stream


def _create_monitor(config: Config) -> ConnectivityMonitor:
    try:
        return ConnectivityMonitor(config=config)
    except MonitorUnavailable as e:
        click.echo(f"✗ Connectivity monitoring unavailable: {e}", err=True)
        sys.exit(1)


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "-c",
    type=click.Path(path_type=Path),
    help="Path to configuration file",
)
@click.pass_context
def main(ctx, config: Optional[Path]):
    """reachretry - Watch connectivity and retry requests when it returns."""
    ctx.ensure_object(dict)
    ctx.obj["config"] = Config(config)
    set_level(ctx.obj["config"].get("log_level", "info"))


@main.command()
@click.option("--timeout", default=10.0, type=float, help="Seconds to wait for the first report")
@click.pass_context
def status(ctx, timeout: float):
    """Show current connectivity state."""
    config: Config = ctx.obj["config"]
    monitor = _create_monitor(config)
    try:
        if not monitor.wait_until_reported(timeout):
            click.echo("No report from the platform yet; assuming offline")
        click.echo(f"Status: {monitor.current_state()}")
    finally:
        monitor.dispose()


@main.command()
@click.option("--count", default=0, type=int, help="Stop after N states (0 = run until interrupted)")
@click.pass_context
def watch(ctx, count: int):
    """Print the current connectivity state and every change after it."""
    config: Config = ctx.obj["config"]
    monitor = _create_monitor(config)
    done = threading.Event()
    seen = 0

    def on_state(state):
        nonlocal seen
        seen += 1
        marker = "✓" if state.reachable else "✗"
        click.echo(f"{marker} {state}")
        if count and seen >= count:
            done.set()

    subscription = None
    try:
        # The replayed UNREACHABLE default is not a report; wait for a real one
        while not monitor.wait_until_reported(0.5):
            pass
        subscription = monitor.observe().subscribe(on_state, on_completed=done.set)
        while not done.wait(0.5):
            pass
    except KeyboardInterrupt:
        click.echo("Stopped")
    finally:
        if subscription:
            subscription.dispose()
        monitor.dispose()


def _http_get(url: str, timeout: float) -> bytes:
    response = requests.get(url, timeout=timeout)
    response.raise_for_status()
    return response.content


@main.command()
@click.argument("url")
@click.option("--fallback", default="(offline, waiting for connectivity)", help="Text shown while offline")
@click.option("--max-wait", default=0.0, type=float, help="Give up after N seconds (0 = wait forever)")
@click.pass_context
def fetch(ctx, url: str, fallback: str, max_wait: float):
    """GET URL, retrying each time connectivity is restored."""
    config: Config = ctx.obj["config"]
    timeout = float(config.get("fetch.timeout", 10))
    monitor = _create_monitor(config)
    done = threading.Event()
    result = {}
    deadline = time.monotonic() + max_wait

    def on_next(value):
        if value is None:
            click.echo(fallback)
            return
        result["body"] = value
        click.echo(f"✓ Fetched {len(value)} bytes from {url}")

    source = Stream.from_callable(lambda: _http_get(url, timeout))
    subscription = retry_on_reachable(source, None, monitor).subscribe(on_next, on_completed=done.set)
    try:
        while not done.wait(0.5):
            if max_wait and not result and time.monotonic() >= deadline:
                break
    except KeyboardInterrupt:
        click.echo("Stopped")
    finally:
        subscription.dispose()
        monitor.dispose()

    if "body" not in result:
        click.echo(f"✗ Could not fetch {url}", err=True)
        sys.exit(1)


@main.group()
def config():
    """Manage configuration."""
    pass


@config.command("show")
@click.pass_context
def config_show(ctx):
    """Show current configuration."""
    config: Config = ctx.obj["config"]
    click.echo(f"Configuration file: {config.config_path}")
    click.echo(f"Log level: {config.get('log_level')}")
    click.echo(f"Poll interval: {config.get('monitor.poll_interval')}s")
    click.echo(f"Probe: {'on' if config.get('monitor.probe_enabled') else 'off'}")
    hosts = ", ".join(f"{host}:{port}" for host, port in config.get("monitor.probe_hosts", []))
    click.echo(f"Probe hosts: {hosts}")
    click.echo(f"Preferred transports: {', '.join(config.get('monitor.preferred_transports', []))}")
    click.echo(f"Fetch timeout: {config.get('fetch.timeout')}s")


@config.command("import")
@click.argument("file", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--format",
    "file_format",
    type=click.Choice(["json", "yaml"]),
    default="json",
    help="File format",
)
@click.pass_context
def config_import(ctx, file, file_format):
    """Import configuration from file."""
    config: Config = ctx.obj["config"]

    if config.import_config(file, file_format):
        click.echo(f"✓ Configuration imported from {file}")
    else:
        click.echo("✗ Failed to import configuration", err=True)
        sys.exit(1)


@config.command("export")
@click.argument("file", type=click.Path(path_type=Path))
@click.option(
    "--format",
    "file_format",
    type=click.Choice(["json", "yaml"]),
    default="json",
    help="File format",
)
@click.pass_context
def config_export(ctx, file, file_format):
    """Export configuration to file."""
    config: Config = ctx.obj["config"]

    if config.export_config(file, file_format):
        click.echo(f"✓ Configuration exported to {file}")
    else:
        click.echo("✗ Failed to export configuration", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
