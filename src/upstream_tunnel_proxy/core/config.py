"""Upstream proxy configuration.

The configuration is read from a JSON file named ``httpproxy.json``:

    {
      "proxy": {"type": "http", "host": "10.0.0.2", "port": 1080,
                "username": "", "password": ""},
      "defaultPackages": ["com.android.chrome", "com.tencent.mm"]
    }

Missing keys fall back to defaults. The resulting ``UpstreamConfig`` is frozen:
a configuration change means building a new upstream client and server pair.

Example:
    file_config = load_config()
    if file_config and file_config.proxy and file_config.proxy.is_complete:
        client = create_upstream_client(file_config.proxy)
"""

import json
import os
from dataclasses import dataclass, field, replace
from enum import StrEnum
from pathlib import Path
from typing import Final

from loguru import logger

from upstream_tunnel_proxy.core.exceptions import ConfigError

CONFIG_FILE_NAME: Final = "httpproxy.json"
CONFIG_ENV_VAR: Final = "UPSTREAM_TUNNEL_PROXY_CONFIG"
APP_DIR: Final = Path.home() / ".upstream-tunnel-proxy"

DEFAULT_UPSTREAM_HOST: Final = ""
DEFAULT_UPSTREAM_PORT: Final = 1080

KEY_PROXY: Final = "proxy"
KEY_TYPE: Final = "type"
KEY_HOST: Final = "host"
KEY_PORT: Final = "port"
KEY_USERNAME: Final = "username"
KEY_PASSWORD: Final = "password"
KEY_DEFAULT_PACKAGES: Final = "defaultPackages"


class UpstreamKind(StrEnum):
    """Protocol spoken by the upstream proxy."""

    HTTP = "http"
    SOCKS5 = "socks5"

    @classmethod
    def parse(cls, value: str) -> "UpstreamKind":
        try:
            return cls(value.strip().lower())
        except ValueError as e:
            raise ConfigError(f"Unsupported upstream proxy type: {value!r}") from e


@dataclass(frozen=True)
class UpstreamConfig:
    """Connection settings for the upstream proxy.

    Attributes:
        kind: Upstream protocol
        host: Upstream proxy host name or IP address
        port: Upstream proxy port
        username: Username, empty when no authentication is used
        password: Password, empty when no authentication is used
    """

    kind: UpstreamKind = UpstreamKind.HTTP
    host: str = DEFAULT_UPSTREAM_HOST
    port: int = DEFAULT_UPSTREAM_PORT
    username: str = ""
    password: str = ""

    @property
    def has_credentials(self) -> bool:
        return bool(self.username or self.password)

    @property
    def is_complete(self) -> bool:
        """Whether the config has the minimum needed to start: a host and a valid port."""
        return bool(self.host.strip()) and 0 < self.port <= 65535

    def with_overrides(
        self,
        kind: UpstreamKind | None = None,
        host: str | None = None,
        port: int | None = None,
        username: str | None = None,
        password: str | None = None,
    ) -> "UpstreamConfig":
        """Return a copy with every non-None argument applied."""
        changes = {
            "kind": kind,
            "host": host,
            "port": port,
            "username": username,
            "password": password,
        }
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


@dataclass(frozen=True)
class FileConfig:
    """Everything read from a configuration file."""

    proxy: UpstreamConfig | None
    default_packages: frozenset[str] = field(default_factory=frozenset)
    source: Path | None = None


def config_search_paths(explicit: Path | None = None) -> list[Path]:
    """Return the candidate config file locations in lookup order."""
    paths: list[Path] = []
    if explicit is not None:
        paths.append(explicit)
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        paths.append(Path(env_path).expanduser())
    paths.append(APP_DIR / CONFIG_FILE_NAME)
    paths.append(Path.home() / "Downloads" / CONFIG_FILE_NAME)
    return paths


def find_config_file(explicit: Path | None = None) -> Path | None:
    """Return the first existing config file, or None."""
    if explicit is not None:
        if not explicit.is_file():
            raise ConfigError(f"Config file not found: {explicit}")
        return explicit
    for path in config_search_paths():
        if path.is_file():
            return path
    return None


def _parse_port(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int | str):
        raise ConfigError(f"Invalid upstream port: {value!r}")
    try:
        port = int(value)
    except ValueError as e:
        raise ConfigError(f"Invalid upstream port: {value!r}") from e
    if not 0 < port <= 65535:
        raise ConfigError(f"Upstream port out of range: {port}")
    return port


def _parse_string(section: dict, key: str, default: str) -> str:
    value = section.get(key, default)
    if value is None:
        return default
    if not isinstance(value, str):
        raise ConfigError(f"Config key {key!r} must be a string")
    return value


def parse_upstream_config(section: dict) -> UpstreamConfig:
    """Build an UpstreamConfig from the ``proxy`` object of a config file."""
    if not isinstance(section, dict):
        raise ConfigError(f"Config key {KEY_PROXY!r} must be an object")
    kind = UpstreamKind.parse(_parse_string(section, KEY_TYPE, UpstreamKind.HTTP.value))
    port = _parse_port(section[KEY_PORT]) if KEY_PORT in section else DEFAULT_UPSTREAM_PORT
    return UpstreamConfig(
        kind=kind,
        host=_parse_string(section, KEY_HOST, DEFAULT_UPSTREAM_HOST).strip(),
        port=port,
        username=_parse_string(section, KEY_USERNAME, ""),
        password=_parse_string(section, KEY_PASSWORD, ""),
    )


def parse_config(text: str, source: Path | None = None) -> FileConfig:
    """Parse the JSON text of a config file."""
    try:
        root = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in config file: {e}") from e
    if not isinstance(root, dict):
        raise ConfigError("Config file must contain a JSON object")

    proxy = parse_upstream_config(root[KEY_PROXY]) if KEY_PROXY in root else None

    packages = root.get(KEY_DEFAULT_PACKAGES, [])
    if not isinstance(packages, list):
        raise ConfigError(f"Config key {KEY_DEFAULT_PACKAGES!r} must be a list")
    default_packages = frozenset(
        str(pkg).strip() for pkg in packages if pkg is not None and str(pkg).strip()
    )
    return FileConfig(proxy=proxy, default_packages=default_packages, source=source)


def load_config(path: Path | None = None) -> FileConfig | None:
    """Load the config file from ``path`` or the first default location.

    Returns:
        FileConfig | None: Parsed configuration, or None when no file exists
    """
    config_path = find_config_file(path)
    if config_path is None:
        logger.debug("No config file found")
        return None
    try:
        text = config_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read config file {config_path}: {e}") from e
    logger.debug(f"Loading config from {config_path}")
    return parse_config(text, source=config_path)
