"""Local HTTP proxy that tunnels traffic through an upstream HTTP or SOCKS5 proxy."""

import pathlib
import tomllib
from importlib import metadata

DISTRIBUTION_NAME = "upstream-tunnel-proxy"


def get_version() -> str:
    """Return the installed version, or the one in a source checkout's pyproject.toml."""
    try:
        return metadata.version(DISTRIBUTION_NAME)
    except metadata.PackageNotFoundError:
        pass

    # Running from a source tree: src/upstream_tunnel_proxy -> repository root
    for parent in pathlib.Path(__file__).parents:
        pyproject_path = parent / "pyproject.toml"
        if pyproject_path.exists():
            with pyproject_path.open("rb") as f:
                pyproject_data = tomllib.load(f)
            return pyproject_data.get("project", {}).get("version", "0.0.0")

    return "0.0.0"


__version__ = get_version()
