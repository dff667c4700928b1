"""Local proxy server command interface.

This module provides a high-level interface for:
- Building and starting the local proxy server
- Sharing the listen address through the clipboard
- Showing the live statistics panel
- Handling shutdown on Ctrl+C

Example:
    # Start the local proxy in front of an upstream SOCKS5 proxy
    run_local_proxy(UpstreamConfig(UpstreamKind.SOCKS5, "10.0.0.2", 1080))
"""

import time
from typing import Final

import pyperclip
from loguru import logger
from prompt_toolkit.shortcuts import ProgressBar
from rich.console import Console

from upstream_tunnel_proxy.core.config import UpstreamConfig
from upstream_tunnel_proxy.core.proxy import LocalProxyServer, create_proxy_server
from upstream_tunnel_proxy.core.utils.prompt.proxy_ui import create_proxy_ui

console = Console()

SUPERVISE_INTERVAL: Final = 1.0  # Seconds


def describe_upstream(config: UpstreamConfig) -> str:
    """Short label such as ``socks5://user@10.0.0.2:1080``."""
    user = f"{config.username}@" if config.username else ""
    return f"{config.kind.value}://{user}{config.host}:{config.port}"


def copy_address(server: LocalProxyServer) -> None:
    """Copy ``host:port`` of a running server to the clipboard."""
    host, port = server.address
    try:
        pyperclip.copy(f"{host}:{port}")
        console.print("[bold green]Proxy address copied to clipboard")
    except pyperclip.PyperclipException as e:
        console.print(f"[yellow]Could not copy to clipboard: {e}")


def run_local_proxy(
    config: UpstreamConfig,
    host: str,
    port: int,
    *,
    show_ui: bool = True,
    copy_to_clipboard: bool = False,
) -> None:
    """Run the local proxy until interrupted.

    Raises:
        ListenerBindError: The listen address is unavailable
    """
    with ProgressBar(title=f"Starting local proxy via {describe_upstream(config)}...") as pb:
        for _ in pb(range(1)):
            server = create_proxy_server(config, host, port)
            server.start()

    bound_host, bound_port = server.address
    console.print(
        f"[green]Local proxy listening on {bound_host}:{bound_port} "
        f"via {config.kind.value} upstream {config.host}:{config.port}"
    )
    if copy_to_clipboard:
        copy_address(server)

    ui = None
    if show_ui:
        ui, ui_thread = create_proxy_ui(server, describe_upstream(config))
        ui_thread.start()

    try:
        while server.is_running:
            time.sleep(SUPERVISE_INTERVAL)
        logger.warning("Local proxy stopped accepting connections")
    except KeyboardInterrupt:
        logger.info("Received shutdown signal")
        console.print("\n[yellow]Shutting down local proxy...")
    finally:
        if ui is not None:
            ui.stop()
        server.stop()
