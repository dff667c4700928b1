import socket
import threading
import time
from collections.abc import Callable

import pytest

from upstream_tunnel_proxy.core import config as config_module
from upstream_tunnel_proxy.core.exceptions import UpstreamConnectError


def recv_exactly(conn: socket.socket, size: int) -> bytes:
    data = bytearray()
    while len(data) < size:
        chunk = conn.recv(size - len(data))
        if not chunk:
            break
        data.extend(chunk)
    return bytes(data)


def recv_until(conn: socket.socket, marker: bytes, limit: int = 65536) -> bytes:
    data = bytearray()
    while marker not in data and len(data) < limit:
        chunk = conn.recv(1)
        if not chunk:
            break
        data.extend(chunk)
    return bytes(data)


def recv_all(conn: socket.socket) -> bytes:
    data = bytearray()
    while True:
        chunk = conn.recv(4096)
        if not chunk:
            return bytes(data)
        data.extend(chunk)


def wait_for(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def unused_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as probe:
        probe.bind(("127.0.0.1", 0))
        return probe.getsockname()[1]


class ScriptedServer:
    """Accept one connection on loopback and run ``script(conn)`` on it."""

    def __init__(self, script: Callable[[socket.socket], None]) -> None:
        self.script = script
        self.listener = socket.create_server(("127.0.0.1", 0))
        self.listener.settimeout(5.0)
        self.host, self.port = self.listener.getsockname()[:2]
        self.error: BaseException | None = None
        self.thread = threading.Thread(target=self._serve, daemon=True)
        self.thread.start()

    def _serve(self) -> None:
        try:
            conn, _ = self.listener.accept()
            with conn:
                conn.settimeout(5.0)
                self.script(conn)
        except BaseException as exc:  # surfaced through join()
            self.error = exc

    def join(self, timeout: float = 5.0) -> None:
        self.thread.join(timeout)
        self.listener.close()
        if self.error is not None:
            raise self.error

    def close(self) -> None:
        self.listener.close()


@pytest.fixture
def scripted_server():
    servers: list[ScriptedServer] = []

    def factory(script: Callable[[socket.socket], None]) -> ScriptedServer:
        server = ScriptedServer(script)
        servers.append(server)
        return server

    yield factory
    for server in servers:
        server.close()


class FakeUpstreamClient:
    """Upstream client handing out socketpair ends instead of real tunnels.

    ``remotes`` holds the far end of every tunnel, standing in for the target.
    """

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.targets: list[tuple[str, int]] = []
        self.remotes: list[socket.socket] = []
        self._lock = threading.Lock()

    def connect(self, target_host: str, target_port: int) -> socket.socket:
        with self._lock:
            self.targets.append((target_host, target_port))
            if self.error is not None:
                raise self.error
            local, remote = socket.socketpair()
            remote.settimeout(5.0)
            self.remotes.append(remote)
            return local

    def wait_remote(self, index: int = 0, timeout: float = 5.0) -> socket.socket:
        assert wait_for(lambda: len(self.remotes) > index, timeout)
        return self.remotes[index]

    def close(self) -> None:
        for remote in self.remotes:
            remote.close()


@pytest.fixture
def fake_upstream():
    client = FakeUpstreamClient()
    yield client
    client.close()


@pytest.fixture
def failing_upstream():
    return FakeUpstreamClient(error=UpstreamConnectError("upstream unreachable"))


@pytest.fixture
def isolated_config_paths(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv(config_module.CONFIG_ENV_VAR, raising=False)
    app_dir = tmp_path / ".upstream-tunnel-proxy"
    monkeypatch.setattr(config_module, "APP_DIR", app_dir)
    return tmp_path
