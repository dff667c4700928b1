"""SOCKS5 upstream client implementation.

This module implements the client side of the SOCKS5 protocol (RFC 1928) with
username/password authentication (RFC 1929), providing:
- Method negotiation (no-auth or username/password)
- Username/password sub-negotiation
- CONNECT command with the target always sent as a domain name
- Consumption of the bound address for IPv4, IPv6 and domain replies

Host names are never resolved locally; resolution is left to the upstream.

Example:
    client = Socks5UpstreamClient("10.0.0.2", 1080, "user", "secret")
    tunnel = client.connect("example.com", 443)
"""

import socket
import struct
from typing import Final

from loguru import logger

from upstream_tunnel_proxy.core.exceptions import UpstreamAuthError, UpstreamProtocolError

from .upstream import CONNECT_TIMEOUT, check_target, close_quietly, dial_upstream, recv_exact, send_all

# SOCKS protocol constants
SOCKS_VERSION: Final = 0x05
AUTH_VERSION: Final = 0x01
CONNECT_CMD: Final = 0x01
RESERVED: Final = 0x00

# Authentication methods
METHOD_NO_AUTH: Final = 0x00
METHOD_USERNAME_PASSWORD: Final = 0x02
METHOD_NO_ACCEPTABLE: Final = 0xFF

# Address types
ADDR_TYPE_IPV4: Final = 0x01
ADDR_TYPE_DOMAIN: Final = 0x03
ADDR_TYPE_IPV6: Final = 0x04

# Response codes
RESP_SUCCESS: Final = 0x00
AUTH_SUCCESS: Final = 0x00

MAX_FIELD_LENGTH: Final = 255

REPLY_MESSAGES: Final = {
    0x01: "general SOCKS server failure",
    0x02: "connection not allowed by ruleset",
    0x03: "network unreachable",
    0x04: "host unreachable",
    0x05: "connection refused",
    0x06: "TTL expired",
    0x07: "command not supported",
    0x08: "address type not supported",
}


def _length_prefixed(value: bytes, what: str) -> bytes:
    if len(value) > MAX_FIELD_LENGTH:
        raise UpstreamProtocolError(f"SOCKS5: {what} too long ({len(value)} bytes, max {MAX_FIELD_LENGTH})")
    return struct.pack("!B", len(value)) + value


def build_greeting(use_auth: bool) -> bytes:
    """Build the method negotiation request offering exactly one method."""
    method = METHOD_USERNAME_PASSWORD if use_auth else METHOD_NO_AUTH
    return struct.pack("!BBB", SOCKS_VERSION, 1, method)


def build_auth_request(username: str, password: str) -> bytes:
    """Build the RFC 1929 username/password request."""
    user = _length_prefixed(username.encode("utf-8"), "username")
    passwd = _length_prefixed(password.encode("utf-8"), "password")
    return struct.pack("!B", AUTH_VERSION) + user + passwd


def build_connect_request(target_host: str, target_port: int) -> bytes:
    """Build a CONNECT request addressing the target by domain name."""
    host = _length_prefixed(target_host.encode("utf-8"), "host")
    header = struct.pack("!BBBB", SOCKS_VERSION, CONNECT_CMD, RESERVED, ADDR_TYPE_DOMAIN)
    return header + host + struct.pack("!H", target_port)


class Socks5UpstreamClient:
    """Upstream client speaking SOCKS5 with optional username/password auth."""

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
        return f"Socks5UpstreamClient({self.proxy_host}:{self.proxy_port})"

    @property
    def use_auth(self) -> bool:
        return bool(self.username or self.password)

    def connect(self, target_host: str, target_port: int) -> socket.socket:
        check_target(target_host, target_port)
        # Validate lengths before opening a connection
        connect_request = build_connect_request(target_host, target_port)
        auth_request = build_auth_request(self.username, self.password) if self.use_auth else b""

        sock = dial_upstream(self.proxy_host, self.proxy_port, self.connect_timeout)
        try:
            self._negotiate(sock, auth_request)
            send_all(sock, connect_request)
            self._read_connect_reply(sock)
        except BaseException:
            close_quietly(sock)
            raise
        logger.debug(f"SOCKS5 upstream tunnel to {target_host}:{target_port} established")
        return sock

    def _negotiate(self, sock: socket.socket, auth_request: bytes) -> None:
        """Perform method negotiation and, when selected, authentication."""
        send_all(sock, build_greeting(self.use_auth))
        version, method = struct.unpack("!BB", recv_exact(sock, 2))
        if version != SOCKS_VERSION:
            raise UpstreamProtocolError(f"SOCKS5: invalid version {version:#04x} in method response")
        if method == METHOD_NO_ACCEPTABLE:
            raise UpstreamProtocolError("SOCKS5: no acceptable method")
        if method == METHOD_USERNAME_PASSWORD and self.use_auth:
            send_all(sock, auth_request)
            auth_version, status = struct.unpack("!BB", recv_exact(sock, 2))
            if auth_version != AUTH_VERSION or status != AUTH_SUCCESS:
                raise UpstreamAuthError("SOCKS5: authentication failed")

    def _read_connect_reply(self, sock: socket.socket) -> None:
        """Read the CONNECT reply and consume its bound address."""
        version, reply, _, addr_type = struct.unpack("!BBBB", recv_exact(sock, 4))
        if version != SOCKS_VERSION:
            raise UpstreamProtocolError(f"SOCKS5: invalid version {version:#04x} in CONNECT reply")
        if reply != RESP_SUCCESS:
            reason = REPLY_MESSAGES.get(reply, "unknown error")
            raise UpstreamProtocolError(f"SOCKS5: CONNECT failed with reply {reply:#04x} ({reason})")

        if addr_type == ADDR_TYPE_IPV4:
            recv_exact(sock, 4 + 2)
        elif addr_type == ADDR_TYPE_IPV6:
            recv_exact(sock, 16 + 2)
        elif addr_type == ADDR_TYPE_DOMAIN:
            (length,) = struct.unpack("!B", recv_exact(sock, 1))
            recv_exact(sock, length + 2)
        else:
            raise UpstreamProtocolError(f"SOCKS5: unknown address type {addr_type:#04x}")
