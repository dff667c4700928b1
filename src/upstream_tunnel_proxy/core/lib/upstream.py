"""Upstream proxy client capability and shared socket helpers.

Every upstream client exposes a single operation, ``connect(host, port)``,
which opens one fresh TCP connection to the configured upstream proxy, runs
the upstream's handshake and returns the socket once it carries raw bytes to
and from the target. The caller owns the returned socket.

The helpers in this module give both protocol implementations the same dial
policy (bounded connect timeout, no read timeout afterwards) and the same
exact-length read semantics (a short read is never success).
"""

import socket
from typing import Final, Protocol

from loguru import logger

from upstream_tunnel_proxy.core.exceptions import (
    UpstreamConnectError,
    UpstreamProtocolError,
)

CONNECT_TIMEOUT: Final = 15.0  # Seconds, dial only
MAX_HANDSHAKE_LINE: Final = 8192  # Bytes


class UpstreamProxyClient(Protocol):
    """Capability to open a tunnel to host:port through the upstream proxy."""

    def connect(self, target_host: str, target_port: int) -> socket.socket:
        """Open a tunnel to ``target_host:target_port``.

        Raises:
            UpstreamConnectError: The upstream is unreachable or dropped the connection
            UpstreamProtocolError: The upstream answered with an unexpected response
            UpstreamAuthError: The upstream rejected the credentials
        """
        ...


def check_target(target_host: str, target_port: int) -> None:
    """Validate a tunnel target before anything is dialed."""
    if not target_host:
        raise ValueError("target host must not be empty")
    if not 0 < target_port <= 65535:
        raise ValueError(f"target port out of range: {target_port}")


def dial_upstream(host: str, port: int, timeout: float = CONNECT_TIMEOUT) -> socket.socket:
    """Connect to the upstream proxy with a bounded connect timeout.

    The returned socket is in blocking mode with no read timeout so tunnels
    can stay open indefinitely.
    """
    try:
        sock = socket.create_connection((host, port), timeout=timeout)
    except OSError as e:
        raise UpstreamConnectError(f"Cannot connect to upstream proxy {host}:{port}: {e}") from e
    sock.settimeout(None)
    logger.debug(f"Connected to upstream proxy {host}:{port}")
    return sock


def send_all(sock: socket.socket, data: bytes) -> None:
    """Send handshake bytes, mapping socket errors to UpstreamConnectError."""
    try:
        sock.sendall(data)
    except OSError as e:
        raise UpstreamConnectError(f"Upstream connection lost while sending: {e}") from e


def recv_exact(sock: socket.socket, size: int) -> bytes:
    """Read exactly ``size`` bytes, looping over partial reads.

    Raises:
        UpstreamProtocolError: The stream ended before ``size`` bytes arrived
        UpstreamConnectError: The socket failed
    """
    buf = bytearray()
    while len(buf) < size:
        try:
            chunk = sock.recv(size - len(buf))
        except OSError as e:
            raise UpstreamConnectError(f"Upstream connection lost while reading: {e}") from e
        if not chunk:
            raise UpstreamProtocolError(
                f"Unexpected EOF from upstream: wanted {size} bytes, got {len(buf)}"
            )
        buf.extend(chunk)
    return bytes(buf)


def recv_line(sock: socket.socket, limit: int = MAX_HANDSHAKE_LINE) -> bytes | None:
    """Read one CRLF or LF terminated line without reading past it.

    Bytes are read one at a time so that nothing belonging to the tunnel is
    consumed along with the handshake.

    Returns:
        bytes | None: The line without its terminator, or None at EOF before any byte
    """
    buf = bytearray()
    while True:
        try:
            byte = sock.recv(1)
        except OSError as e:
            raise UpstreamConnectError(f"Upstream connection lost while reading: {e}") from e
        if not byte:
            if not buf:
                return None
            raise UpstreamProtocolError("Unexpected EOF from upstream in the middle of a line")
        if byte == b"\n":
            break
        buf.extend(byte)
        if len(buf) > limit:
            raise UpstreamProtocolError(f"Upstream response line longer than {limit} bytes")
    if buf.endswith(b"\r"):
        del buf[-1]
    return bytes(buf)


def close_quietly(sock: socket.socket) -> None:
    """Close a socket, ignoring errors from an already broken connection."""
    try:
        sock.close()
    except OSError as e:
        logger.debug(f"Ignoring error on close: {e}")
