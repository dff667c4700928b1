"""Custom exceptions for the local tunnel proxy.

This module defines the exceptions raised throughout the proxy implementation.
They separate the failure modes a caller needs to tell apart:
- Upstream proxy unreachable, timing out or resetting the connection
- Malformed or unexpected handshake responses from the upstream
- Credentials rejected by the upstream
- Malformed requests from local clients
- Listener bind failures and invalid configuration

Every handshake failure is local to the connection being handled; only a
listener bind failure at start is fatal to the server.

Example:
    try:
        tunnel = client.connect("example.com", 443)
    except UpstreamAuthError as e:
        console.print(f"[red]Upstream rejected credentials: {e}")
    except ProxyError as e:
        console.print(f"[red]Tunnel failed: {e}")
"""


class ProxyError(Exception):
    """Base exception for proxy errors."""


class ProxyConnectError(ProxyError):
    """Raised when a TCP connection cannot be established."""


class UpstreamConnectError(ProxyConnectError):
    """Raised when the upstream proxy is unreachable or the connection drops during the handshake."""


class ListenerBindError(ProxyConnectError):
    """Raised when the local listener cannot bind its address."""


class UpstreamProtocolError(ProxyError):
    """Raised when the upstream proxy answers the handshake with something unexpected."""


class UpstreamAuthError(UpstreamProtocolError):
    """Raised when the upstream proxy rejects the configured credentials."""


class ClientParseError(ProxyError):
    """Raised when a local client sends a request the proxy cannot route."""


class ConfigError(ProxyError):
    """Raised when the proxy configuration is missing fields or cannot be read."""
