"""Core proxy implementation.

This package contains the core components of the local tunnel proxy:
- Upstream protocol clients (HTTP CONNECT and SOCKS5)
- Client request parsing
- The loopback proxy server and byte relay
- Configuration loading
- Statistics tracking and the status display
- Exception handling

The core package provides all the fundamental functionality needed to run
the proxy, while keeping the implementation details separate from the
command-line interface.
"""
