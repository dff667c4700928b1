"""Command line interface modules.

This package provides the command-line tools for:
- Starting the local proxy in front of the configured upstream proxy
- Showing the effective configuration and where it is read from
- Checking that a tunnel can be opened through the upstream
- Displaying live server statistics

The command modules provide user-friendly interfaces to the core
proxy functionality.
"""
