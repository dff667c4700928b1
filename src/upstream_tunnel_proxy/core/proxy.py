"""Core proxy functionality and main entry point for the local tunnel proxy.

This module serves as the main entry point for the proxy functionality. It
exposes only the components a host application needs:

- Building an upstream client from an ``UpstreamConfig``
- Building, starting and stopping the loopback proxy server
- Querying whether the proxy is running and where it listens

Example:
    from upstream_tunnel_proxy.core.proxy import create_proxy_server

    server = create_proxy_server(config, port=18080)
    server.start()
    host, port = server.address  # hand this to the traffic redirector
    server.stop()

Attributes:
    __all__ (list): List of public components exposed by this module
"""

from .lib import LocalProxyServer, create_proxy_server, create_upstream_client

__all__ = ["create_proxy_server", "create_upstream_client", "LocalProxyServer"]
