"""Core proxy library components."""

from .http_upstream import HttpUpstreamClient
from .proxy_server import LocalProxyServer, create_proxy_server, create_upstream_client
from .proxy_stats import ProxyStats
from .relay import RelayPair
from .socks5_upstream import Socks5UpstreamClient
from .upstream import UpstreamProxyClient

__all__ = [
    "create_proxy_server",
    "create_upstream_client",
    "HttpUpstreamClient",
    "LocalProxyServer",
    "ProxyStats",
    "RelayPair",
    "Socks5UpstreamClient",
    "UpstreamProxyClient",
]
