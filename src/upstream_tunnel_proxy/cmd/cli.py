"""Command-line interface for the local tunnel proxy.

This module provides the main command-line interface, handling:
- Command-line argument parsing
- Configuration loading and overrides
- Server initialization and lifecycle
- Upstream connectivity checks
- Error reporting

The CLI is built using Typer and provides commands for:
- Starting the local proxy (``run``)
- Showing the effective configuration (``show-config``)
- Opening a test tunnel through the upstream (``check``)

Example:
    # Run from command line:
    $ upstream-tunnel-proxy run --config ~/Downloads/httpproxy.json --port 18080
"""

import sys
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from upstream_tunnel_proxy import __version__
from upstream_tunnel_proxy.cmd import serve
from upstream_tunnel_proxy.core.config import (
    FileConfig,
    UpstreamConfig,
    UpstreamKind,
    config_search_paths,
    load_config,
)
from upstream_tunnel_proxy.core.exceptions import (
    ConfigError,
    ListenerBindError,
    ProxyError,
    UpstreamAuthError,
)
from upstream_tunnel_proxy.core.lib.http_request import DEFAULT_CONNECT_PORT, parse_authority
from upstream_tunnel_proxy.core.lib.proxy_server import (
    DEFAULT_LISTEN_HOST,
    DEFAULT_LOCAL_PORT,
    create_upstream_client,
)
from upstream_tunnel_proxy.core.lib.upstream import close_quietly
from upstream_tunnel_proxy.core.utils.log_config import LOG_DIR, configure_logging
from upstream_tunnel_proxy.core.utils.utils import mask_secret

console = Console()
app = typer.Typer(help="Local HTTP proxy tunnelling through an upstream HTTP or SOCKS5 proxy")

ConfigOption = typer.Option(None, "--config", "-c", help="Path to httpproxy.json")
KindOption = typer.Option(None, "--type", "-t", help="Upstream proxy type (http or socks5)")
UpstreamHostOption = typer.Option(None, "--upstream-host", help="Upstream proxy host")
UpstreamPortOption = typer.Option(None, "--upstream-port", help="Upstream proxy port")
UsernameOption = typer.Option(None, "--username", "-u", help="Upstream proxy username")
PasswordOption = typer.Option(None, "--password", help="Upstream proxy password")


def resolve_config(
    config_path: Path | None,
    kind: str | None = None,
    host: str | None = None,
    port: int | None = None,
    username: str | None = None,
    password: str | None = None,
) -> tuple[UpstreamConfig, FileConfig | None]:
    """Load the config file and apply command-line overrides."""
    file_config = load_config(config_path)
    base = file_config.proxy if file_config and file_config.proxy else UpstreamConfig()
    config = base.with_overrides(
        kind=UpstreamKind.parse(kind) if kind else None,
        host=host,
        port=port,
        username=username,
        password=password,
    )
    return config, file_config


def _load_or_exit(config_path: Path | None, **overrides) -> tuple[UpstreamConfig, FileConfig | None]:
    try:
        return resolve_config(config_path, **overrides)
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        console.print(f"[red]Invalid configuration: {e}")
        raise typer.Exit(1) from e


@app.callback(invoke_without_command=True)
def version_callback(ctx: typer.Context) -> None:
    """Show version information."""
    if ctx.invoked_subcommand is None:
        console.print(f"[cyan]Upstream Tunnel Proxy v{__version__}[/cyan]")


@app.command(name="run")
def run_proxy(
    config_path: Path | None = ConfigOption,
    kind: str | None = KindOption,
    upstream_host: str | None = UpstreamHostOption,
    upstream_port: int | None = UpstreamPortOption,
    username: str | None = UsernameOption,
    password: str | None = PasswordOption,
    port: int = typer.Option(DEFAULT_LOCAL_PORT, "--port", "-p", help="Local port to listen on"),
    ui: bool = typer.Option(True, "--ui/--no-ui", help="Show the live statistics panel"),
    copy: bool = typer.Option(False, "--copy", help="Copy the listen address to the clipboard"),
    debug: bool = typer.Option(default=False, help="Enable debug logging"),
) -> None:
    """Start the local proxy."""
    if debug:
        configure_logging("DEBUG")
        logger.debug(f"Debug logging enabled, log file in {LOG_DIR}")

    config, _ = _load_or_exit(
        config_path,
        kind=kind,
        host=upstream_host,
        port=upstream_port,
        username=username,
        password=password,
    )
    if not config.is_complete:
        logger.error("Upstream proxy host and port are not configured")
        console.print("[red]Upstream proxy host and port are not configured.")
        console.print("[yellow]Create httpproxy.json in one of:")
        for path in config_search_paths(config_path):
            console.print(f"[yellow]  {path}")
        raise typer.Exit(1)

    logger.info(f"Starting local proxy on {DEFAULT_LISTEN_HOST}:{port} via {serve.describe_upstream(config)}")
    try:
        serve.run_local_proxy(config, DEFAULT_LISTEN_HOST, port, show_ui=ui, copy_to_clipboard=copy)
    except ListenerBindError as e:
        logger.error(str(e))
        console.print(f"[red]Error: {e}")
        raise typer.Exit(1) from e
    except Exception as e:
        logger.exception("Error running local proxy")
        console.print(f"[red]Error: {e}")
        raise typer.Exit(1) from e


@app.command(name="show-config")
def show_config(config_path: Path | None = ConfigOption) -> None:
    """Show the effective upstream configuration."""
    config, file_config = _load_or_exit(config_path)

    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column("Property", style="cyan", no_wrap=True)
    table.add_column("Value", style="green")
    source = file_config.source if file_config else None
    table.add_row("Source", str(source) if source else "[yellow]defaults (no config file)")
    table.add_row("Type", config.kind.value)
    table.add_row("Host", config.host or "[red]not set")
    table.add_row("Port", str(config.port))
    table.add_row("Username", config.username)
    table.add_row("Password", mask_secret(config.password))
    table.add_row("Complete", "yes" if config.is_complete else "[red]no")
    packages = sorted(file_config.default_packages) if file_config else []
    table.add_row("Default Packages", ", ".join(packages) if packages else "-")
    console.print(table)

    console.print("\n[cyan]Config search paths:")
    for path in config_search_paths(config_path):
        marker = "[green]*" if path.is_file() else " "
        console.print(f" {marker} {path}")


@app.command(name="check")
def check_upstream(
    target: str = typer.Argument("example.com:443", help="Target host[:port] to tunnel to"),
    config_path: Path | None = ConfigOption,
    kind: str | None = KindOption,
    upstream_host: str | None = UpstreamHostOption,
    upstream_port: int | None = UpstreamPortOption,
    username: str | None = UsernameOption,
    password: str | None = PasswordOption,
) -> None:
    """Open one tunnel through the upstream proxy and report the result."""
    config, _ = _load_or_exit(
        config_path,
        kind=kind,
        host=upstream_host,
        port=upstream_port,
        username=username,
        password=password,
    )
    destination = parse_authority(target, DEFAULT_CONNECT_PORT)
    if destination is None:
        console.print(f"[red]Invalid target: {target}")
        raise typer.Exit(1)

    try:
        client = create_upstream_client(config)
        tunnel = client.connect(destination.host, destination.port)
    except UpstreamAuthError as e:
        console.print(f"[red]Authentication failed: {e}")
        raise typer.Exit(1) from e
    except ProxyError as e:
        console.print(f"[red]Tunnel failed: {e}")
        raise typer.Exit(1) from e
    close_quietly(tunnel)
    console.print(f"[green]Tunnel to {destination} through {serve.describe_upstream(config)} OK")


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
