"""Status display for a running local proxy server."""

import threading
import time

from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from upstream_tunnel_proxy.core.lib.proxy_server import LocalProxyServer
from upstream_tunnel_proxy.core.utils.utils import format_bytes, format_duration

from .prompt import PromptHandler, console

# Ignore bandwidth changes smaller than this to avoid jitter
BANDWIDTH_THRESHOLD = 100  # bytes


class ProxyUI(PromptHandler):
    """Live statistics panel for a LocalProxyServer."""

    def __init__(self, server: LocalProxyServer, upstream_label: str = "") -> None:
        """Initialize the proxy UI handler.

        Args:
            server: The server whose statistics are displayed
            upstream_label: Human readable description of the upstream proxy
        """
        super().__init__(refresh_rate=0.5)
        self.server = server
        self.upstream_label = upstream_label or repr(server.upstream)
        self.running = True
        self._last_bandwidth = 0.0
        self._start_time = time.monotonic()

    def _generate_table(self) -> Table:
        """Generate statistics table."""
        stats = self.server.stats
        table = Table(show_header=False, box=None, padding=(0, 1))
        table.add_column("Property", style="cyan", no_wrap=True)
        table.add_column("Value", style="green", no_wrap=True)

        bandwidth = stats.get_bandwidth()
        if abs(bandwidth - self._last_bandwidth) > BANDWIDTH_THRESHOLD:
            self._last_bandwidth = bandwidth

        spinner_text = self._spinner.render(time.monotonic() - self._start_time)
        status = "[green]listening" if self.server.is_running else "[red]stopped"

        table.add_row("Status", status)
        table.add_row("Upstream", self.upstream_label)
        table.add_row("Bandwidth", f"{spinner_text} {format_bytes(self._last_bandwidth)}/s")
        table.add_row("Active Connections", str(stats.active_connections))
        table.add_row("Tunnels Opened", str(stats.tunnels_opened))
        table.add_row("Tunnels Failed", str(stats.tunnels_failed))
        table.add_row("Sent Upstream", format_bytes(stats.total_bytes_sent))
        table.add_row("Received", format_bytes(stats.total_bytes_received))
        table.add_row("Uptime", format_duration(stats.get_uptime()))
        return table

    def _generate_display(self) -> Panel:
        """Generate the main display panel."""
        host, port = self.server.address
        title = Text(f"Local Proxy: {host}:{port}", style="bold cyan")
        return Panel(
            self._generate_table(),
            title=title,
            subtitle="Press Ctrl+C to exit",
            border_style="blue",
            padding=(1, 2),
        )

    def run(self) -> None:
        """Refresh the panel until stopped or the server stops listening."""
        try:
            console.clear()
            with self.create_live_display(self._generate_display(), transient=False) as live:
                while self.running and self.server.is_running:
                    live.update(self._generate_display(), refresh=True)
                    time.sleep(self._refresh_rate)
        except KeyboardInterrupt:
            self.running = False

    def stop(self) -> None:
        self.running = False


def create_proxy_ui(server: LocalProxyServer, upstream_label: str = "") -> tuple[ProxyUI, threading.Thread]:
    """Create the UI and the daemon thread that runs it (not started)."""
    ui = ProxyUI(server, upstream_label)
    return ui, threading.Thread(target=ui.run, name="proxy-ui", daemon=True)
