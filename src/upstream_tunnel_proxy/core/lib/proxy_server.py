"""Local proxy server that tunnels client requests through the upstream proxy.

This module implements the loopback listener with the following features:
- Thread per accepted connection, plus one thread per relay direction
- Classification of each request as CONNECT or plain HTTP
- Destination extraction and absolute-URI to origin-form rewriting
- One fresh upstream tunnel per client connection, never pooled
- Idempotent start/stop guarded by a single running flag

Lifecycle is Stopped -> Listening -> Stopped. Stopping closes the listener
only; in-flight relays finish when one of their peers closes.

Example:
    server = create_proxy_server(config, port=18080)
    server.start()
    ...
    server.stop()
"""

import socket
import socketserver
import threading
from typing import Final

from loguru import logger

from upstream_tunnel_proxy.core.config import UpstreamConfig, UpstreamKind
from upstream_tunnel_proxy.core.exceptions import (
    ClientParseError,
    ConfigError,
    ListenerBindError,
    ProxyError,
    UpstreamAuthError,
)

from .http_request import (
    ProxyTarget,
    is_connect,
    parse_connect_target,
    parse_http_request,
    read_header_lines,
    read_line,
)
from .http_upstream import HttpUpstreamClient
from .proxy_stats import ProxyStats
from .relay import RelayPair
from .socks5_upstream import Socks5UpstreamClient
from .upstream import UpstreamProxyClient, close_quietly

# Constants
DEFAULT_LISTEN_HOST: Final = "127.0.0.1"
DEFAULT_LOCAL_PORT: Final = 18080
ACCEPT_POLL_INTERVAL: Final = 0.2  # Seconds
ACCEPT_JOIN_TIMEOUT: Final = 2.0  # Seconds

CONNECT_OK: Final = b"HTTP/1.1 200 Connection established\r\n\r\n"
BAD_GATEWAY: Final = b"HTTP/1.1 502 Bad Gateway\r\n\r\n"
BAD_REQUEST: Final = b"HTTP/1.1 400 Bad Request\r\n\r\n"


def create_upstream_client(config: UpstreamConfig) -> UpstreamProxyClient:
    """Return the upstream client matching ``config.kind``."""
    if not config.is_complete:
        raise ConfigError("Upstream proxy host and port must be configured")
    if config.kind is UpstreamKind.HTTP:
        return HttpUpstreamClient(config.host, config.port, config.username, config.password)
    if config.kind is UpstreamKind.SOCKS5:
        return Socks5UpstreamClient(config.host, config.port, config.username, config.password)
    raise ConfigError(f"Unsupported upstream proxy type: {config.kind}")


class ProxyTCPServer(socketserver.ThreadingMixIn, socketserver.TCPServer):
    """Threaded TCP listener owned by a LocalProxyServer."""

    allow_reuse_address = True
    daemon_threads = True
    request_queue_size = 100

    def __init__(self, server_address: tuple[str, int], proxy: "LocalProxyServer") -> None:
        self.proxy = proxy
        super().__init__(server_address, ProxyRequestHandler)

    def get_request(self) -> tuple[socket.socket, tuple[str, int]]:
        """Accept a connection; a failure while running stops the server."""
        try:
            return super().get_request()
        except OSError:
            if self.proxy.is_running:
                logger.exception("Accept failed, stopping local proxy")
                # stop() waits for serve_forever, which runs on this thread
                threading.Thread(target=self.proxy.stop, name="local-proxy-stop", daemon=True).start()
            raise

    def handle_error(self, request, client_address) -> None:
        logger.exception(f"Unhandled error while serving {client_address[0]}:{client_address[1]}")


class ProxyRequestHandler(socketserver.StreamRequestHandler):
    """Handle one local client connection from first request line to relay end."""

    server: ProxyTCPServer

    def handle(self) -> None:
        stats = self.server.proxy.stats
        client = f"{self.client_address[0]}:{self.client_address[1]}"
        stats.connection_started()
        try:
            request_line = read_line(self.rfile)
            if not request_line:
                logger.debug(f"Client {client} closed before sending a request")
                return
            if is_connect(request_line):
                self._handle_connect(request_line)
            else:
                self._handle_http(request_line)
        except ClientParseError as e:
            logger.debug(f"Rejecting request from {client}: {e}")
            self._send_best_effort(BAD_REQUEST)
        except OSError as e:
            logger.debug(f"Client {client} connection error: {e}")
        finally:
            stats.connection_ended()

    def _handle_connect(self, request_line: str) -> None:
        target = parse_connect_target(request_line)
        # CONNECT carries no body; its headers are not forwarded
        read_header_lines(self.rfile)

        upstream = self._open_tunnel(target)
        if upstream is None:
            self._send_best_effort(BAD_GATEWAY)
            return
        try:
            self.wfile.write(CONNECT_OK)
        except OSError:
            close_quietly(upstream)
            raise
        self._relay(upstream)

    def _handle_http(self, request_line: str) -> None:
        head = parse_http_request(request_line, read_header_lines(self.rfile))

        upstream = self._open_tunnel(head.target)
        if upstream is None:
            self._send_best_effort(BAD_GATEWAY)
            return
        try:
            upstream.sendall(head.to_bytes())
        except OSError as e:
            logger.warning(f"Upstream tunnel to {head.target} dropped before forwarding: {e}")
            close_quietly(upstream)
            self._send_best_effort(BAD_GATEWAY)
            return
        self._relay(upstream)

    def _open_tunnel(self, target: ProxyTarget) -> socket.socket | None:
        proxy = self.server.proxy
        if not proxy.is_running:
            logger.debug(f"Server stopping, not opening tunnel to {target}")
            return None
        try:
            upstream = proxy.upstream.connect(target.host, target.port)
        except UpstreamAuthError as e:
            proxy.stats.tunnel_failed()
            logger.error(f"Upstream rejected credentials for {target}: {e}")
            return None
        except (ProxyError, OSError, ValueError) as e:
            proxy.stats.tunnel_failed()
            logger.warning(f"Cannot open tunnel to {target}: {e}")
            return None
        proxy.stats.tunnel_opened()
        logger.debug(f"Tunnel to {target} opened")
        return upstream

    def _relay(self, upstream: socket.socket) -> None:
        RelayPair(self.connection, self.rfile, upstream, self.server.proxy.stats).run()

    def _send_best_effort(self, response: bytes) -> None:
        try:
            self.wfile.write(response)
        except OSError as e:
            logger.debug(f"Could not send response to client: {e}")


class LocalProxyServer:
    """Loopback HTTP proxy forwarding every request through one upstream client.

    Attributes:
        upstream: Client used to open one tunnel per accepted connection
        host: Listen address, loopback by default
        port: Listen port; 0 picks a free port
        stats: Statistics for this server instance
    """

    def __init__(
        self,
        upstream: UpstreamProxyClient,
        host: str = DEFAULT_LISTEN_HOST,
        port: int = DEFAULT_LOCAL_PORT,
    ) -> None:
        self.upstream = upstream
        self.host = host
        self.port = port
        self.stats = ProxyStats()
        self._state_lock = threading.Lock()
        self._running = False
        self._server: ProxyTCPServer | None = None
        self._accept_thread: threading.Thread | None = None

    def __enter__(self) -> "LocalProxyServer":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()

    @property
    def is_running(self) -> bool:
        """Whether the server is currently listening."""
        return self._running

    @property
    def address(self) -> tuple[str, int]:
        """The bound address while listening, otherwise the configured one."""
        server = self._server
        if server is not None:
            host, port = server.server_address[:2]
            return str(host), int(port)
        return self.host, self.port

    def start(self) -> None:
        """Bind the listener and start accepting. No-op while already listening.

        Raises:
            ListenerBindError: The address cannot be bound
        """
        with self._state_lock:
            if self._running:
                return
            try:
                server = ProxyTCPServer((self.host, self.port), self)
            except OSError as e:
                raise ListenerBindError(f"Cannot listen on {self.host}:{self.port}: {e}") from e
            self._server = server
            self._running = True
            self._accept_thread = threading.Thread(
                target=server.serve_forever,
                kwargs={"poll_interval": ACCEPT_POLL_INTERVAL},
                name="local-proxy-accept",
                daemon=True,
            )
            self._accept_thread.start()
        host, port = self.address
        logger.info(f"Local proxy listening on {host}:{port} via {self.upstream!r}")

    def stop(self) -> None:
        """Close the listener. No-op when not listening.

        Connections already relaying keep running until a peer closes.
        """
        with self._state_lock:
            if not self._running:
                return
            self._running = False
            server, self._server = self._server, None
            accept_thread, self._accept_thread = self._accept_thread, None
            if server is not None:
                server.shutdown()
                server.server_close()
            if accept_thread is not None and accept_thread is not threading.current_thread():
                accept_thread.join(timeout=ACCEPT_JOIN_TIMEOUT)
        logger.info("Local proxy stopped")


def create_proxy_server(
    config: UpstreamConfig,
    host: str = DEFAULT_LISTEN_HOST,
    port: int = DEFAULT_LOCAL_PORT,
) -> LocalProxyServer:
    """Build a local proxy server for ``config``; it is not started.

    Args:
        config: Upstream proxy settings
        host: Host address to bind to
        port: Port number to listen on
    """
    return LocalProxyServer(create_upstream_client(config), host, port)
