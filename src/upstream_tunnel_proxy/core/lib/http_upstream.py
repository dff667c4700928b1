"""HTTP CONNECT upstream client.

Opens tunnels through an HTTP proxy with the CONNECT method:

    CONNECT example.com:443 HTTP/1.1
    Host: example.com:443
    Proxy-Authorization: Basic dXNlcjpwYXNz     (only with credentials)
    Connection: keep-alive

Any status outside 2xx fails the attempt; 407 is reported as an
authentication failure. After a 2xx status the remaining response headers
are drained and the socket is handed back as a raw byte stream.
"""

import base64
import socket
from typing import Final

from loguru import logger

from upstream_tunnel_proxy.core.exceptions import UpstreamAuthError, UpstreamProtocolError

from .http_request import ProxyTarget
from .upstream import CONNECT_TIMEOUT, check_target, close_quietly, dial_upstream, recv_line, send_all

STATUS_PROXY_AUTH_REQUIRED: Final = 407
MAX_RESPONSE_HEADERS: Final = 100


def parse_status_code(status_line: str) -> int:
    """Return the numeric code between the first and second space, 0 if unparsable."""
    first_space = status_line.find(" ")
    if first_space < 0:
        return 0
    second_space = status_line.find(" ", first_space + 1)
    if second_space < 0:
        second_space = len(status_line)
    try:
        return int(status_line[first_space + 1 : second_space].strip())
    except ValueError:
        return 0


class HttpUpstreamClient:
    """Upstream client speaking HTTP CONNECT with optional Basic auth."""

    def __init__(
        self,
        proxy_host: str,
        proxy_port: int,
        username: str = "",
        password: str = "",
        connect_timeout: float = CONNECT_TIMEOUT,
    ) -> None:
        self.proxy_host = proxy_host
        self.proxy_port = proxy_port
        self.username = username or ""
        self.password = password or ""
        self.connect_timeout = connect_timeout

    def __repr__(self) -> str:
        return f"HttpUpstreamClient({self.proxy_host}:{self.proxy_port})"

    def build_request(self, target_host: str, target_port: int) -> bytes:
        """Build the CONNECT request head."""
        authority = str(ProxyTarget(target_host, target_port))
        lines = [f"CONNECT {authority} HTTP/1.1", f"Host: {authority}"]
        if self.username or self.password:
            credentials = f"{self.username}:{self.password}".encode()
            token = base64.b64encode(credentials).decode("ascii")
            lines.append(f"Proxy-Authorization: Basic {token}")
        lines.append("Connection: keep-alive")
        return ("\r\n".join(lines) + "\r\n\r\n").encode()

    def connect(self, target_host: str, target_port: int) -> socket.socket:
        check_target(target_host, target_port)
        sock = dial_upstream(self.proxy_host, self.proxy_port, self.connect_timeout)
        try:
            send_all(sock, self.build_request(target_host, target_port))
            self._read_response(sock)
        except BaseException:
            close_quietly(sock)
            raise
        logger.debug(f"HTTP upstream tunnel to {target_host}:{target_port} established")
        return sock

    def _read_response(self, sock: socket.socket) -> None:
        raw_status = recv_line(sock)
        if raw_status is None:
            raise UpstreamProtocolError("HTTP proxy: no response")
        status_line = raw_status.decode("latin-1")
        code = parse_status_code(status_line)
        if code == STATUS_PROXY_AUTH_REQUIRED:
            raise UpstreamAuthError(f"HTTP proxy CONNECT failed: {status_line}")
        if not 200 <= code < 300:
            raise UpstreamProtocolError(f"HTTP proxy CONNECT failed: {status_line}")

        for _ in range(MAX_RESPONSE_HEADERS):
            line = recv_line(sock)
            if not line:
                # Blank line ends the headers, EOF here leaves an empty tunnel
                return
        raise UpstreamProtocolError(f"HTTP proxy sent more than {MAX_RESPONSE_HEADERS} headers")
