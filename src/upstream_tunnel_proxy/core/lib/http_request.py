"""Parsing of the requests local clients send to the proxy.

Only as much of HTTP/1.1 is interpreted as is needed to route a request:
- ``CONNECT host:port`` request lines (default port 443)
- ``Host`` headers (default port 80)
- absolute-form ``http://host[:port]/path`` request targets, which are
  rewritten to origin form before they reach the upstream tunnel

Everything else is forwarded byte for byte.
"""

from dataclasses import dataclass
from typing import BinaryIO, Final
from urllib.parse import urlsplit

from upstream_tunnel_proxy.core.exceptions import ClientParseError

DEFAULT_HTTP_PORT: Final = 80
DEFAULT_CONNECT_PORT: Final = 443
MAX_LINE_BYTES: Final = 64 * 1024
MAX_HEADER_LINES: Final = 200
HTTP_SCHEME_PREFIX: Final = "http://"


@dataclass(frozen=True)
class ProxyTarget:
    """Destination a client connection should be tunnelled to."""

    host: str
    port: int

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class HttpRequestHead:
    """A plain HTTP request head ready to forward upstream."""

    target: ProxyTarget
    request_line: str
    header_lines: list[str]

    def to_bytes(self) -> bytes:
        lines = [self.request_line, *self.header_lines, "", ""]
        return "\r\n".join(lines).encode("latin-1")


def read_line(reader: BinaryIO) -> str | None:
    """Read one line, stripping CRLF or LF.

    Returns:
        str | None: The line, or None when the stream ended before any byte
    """
    raw = reader.readline(MAX_LINE_BYTES + 1)
    if not raw:
        return None
    if len(raw) > MAX_LINE_BYTES:
        raise ClientParseError(f"Request line longer than {MAX_LINE_BYTES} bytes")
    return raw.rstrip(b"\r\n").decode("latin-1")


def read_header_lines(reader: BinaryIO) -> list[str]:
    """Read header lines up to the blank line (or EOF)."""
    lines: list[str] = []
    while True:
        line = read_line(reader)
        if not line:
            return lines
        if len(lines) >= MAX_HEADER_LINES:
            raise ClientParseError(f"More than {MAX_HEADER_LINES} header lines")
        lines.append(line)


def is_connect(request_line: str) -> bool:
    return request_line[:8].upper() == "CONNECT "


def _parse_port(raw: str, default_port: int) -> int:
    raw = raw.strip()
    if not raw.isdigit():
        return default_port
    port = int(raw)
    return port if 0 < port <= 65535 else default_port


def parse_authority(authority: str, default_port: int) -> ProxyTarget | None:
    """Split ``host[:port]`` (``[v6]:port`` for IPv6 literals).

    A missing, unparsable or out of range port gives ``default_port``.
    Returns None when no host is present.
    """
    authority = authority.strip()
    if authority.startswith("["):
        close_idx = authority.find("]")
        if close_idx < 0:
            return None
        host = authority[1:close_idx]
        remainder = authority[close_idx + 1 :]
        port = _parse_port(remainder[1:], default_port) if remainder.startswith(":") else default_port
    elif authority.count(":") == 1:
        host, port_raw = authority.split(":", 1)
        port = _parse_port(port_raw, default_port)
    else:
        # Bare host, or an unbracketed IPv6 literal
        host, port = authority, default_port
    host = host.strip()
    if not host:
        return None
    return ProxyTarget(host, port)


def parse_connect_target(request_line: str) -> ProxyTarget:
    """Parse the target of ``CONNECT host:port HTTP/1.1``."""
    parts = request_line.split()
    if len(parts) < 2:
        raise ClientParseError(f"Malformed CONNECT request: {request_line!r}")
    target = parse_authority(parts[1], DEFAULT_CONNECT_PORT)
    if target is None:
        raise ClientParseError(f"CONNECT request without host: {request_line!r}")
    return target


def find_host_header(header_lines: list[str]) -> str | None:
    """Return the value of the last ``Host`` header, if any."""
    host = None
    for line in header_lines:
        name, sep, value = line.partition(":")
        if sep and name.strip().lower() == "host":
            host = value.strip() or None
    return host


def _split_request_line(request_line: str) -> tuple[str, str, str] | None:
    parts = request_line.split()
    if len(parts) != 3:
        return None
    method, target, version = parts
    return method, target, version


def parse_absolute_uri(request_line: str) -> ProxyTarget | None:
    """Extract host and port from an ``http://`` request target."""
    parts = _split_request_line(request_line)
    if parts is None or not parts[1].lower().startswith(HTTP_SCHEME_PREFIX):
        return None
    netloc = urlsplit(parts[1]).netloc
    # Drop userinfo
    authority = netloc.rpartition("@")[2]
    return parse_authority(authority, DEFAULT_HTTP_PORT)


def to_origin_form(request_line: str) -> str:
    """Rewrite ``GET http://host/a?b HTTP/1.1`` to ``GET /a?b HTTP/1.1``.

    Request lines that are not in absolute ``http://`` form are returned unchanged.
    """
    parts = _split_request_line(request_line)
    if parts is None:
        return request_line
    method, target, version = parts
    if not target.lower().startswith(HTTP_SCHEME_PREFIX):
        return request_line
    url = urlsplit(target)
    path = url.path or "/"
    if url.query:
        path = f"{path}?{url.query}"
    return f"{method} {path} {version}"


def parse_http_request(request_line: str, header_lines: list[str]) -> HttpRequestHead:
    """Route a plain HTTP request.

    The ``Host`` header wins; an absolute-form request target is the fallback.
    Requests with neither are rejected.

    Raises:
        ClientParseError: No destination host can be determined
    """
    target = None
    host_header = find_host_header(header_lines)
    if host_header is not None:
        target = parse_authority(host_header, DEFAULT_HTTP_PORT)
    if target is None:
        target = parse_absolute_uri(request_line)
    if target is None:
        raise ClientParseError(f"Cannot determine destination for request: {request_line!r}")
    return HttpRequestHead(
        target=target,
        request_line=to_origin_form(request_line),
        header_lines=header_lines,
    )
