"""Allow ``python -m upstream_tunnel_proxy``."""

from upstream_tunnel_proxy.cmd.cli import main

main()
