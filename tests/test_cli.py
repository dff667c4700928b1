import json

from typer.testing import CliRunner

from conftest import recv_exactly, recv_until
from upstream_tunnel_proxy.cmd import cli, serve
from upstream_tunnel_proxy.core.config import UpstreamConfig, UpstreamKind
from upstream_tunnel_proxy.core.exceptions import ListenerBindError

runner = CliRunner()


def _config_file(tmp_path, proxy: dict, packages: list[str] | None = None):
    path = tmp_path / "httpproxy.json"
    path.write_text(json.dumps({"proxy": proxy, "defaultPackages": packages or []}), encoding="utf-8")
    return path


def test_show_config_masks_password(isolated_config_paths) -> None:
    path = _config_file(
        isolated_config_paths,
        {"type": "socks5", "host": "proxy.lan", "port": 1080, "username": "alice", "password": "hunter2"},
        ["com.android.chrome"],
    )

    result = runner.invoke(cli.app, ["show-config", "--config", str(path)])

    assert result.exit_code == 0, result.output
    assert "socks5" in result.output
    assert "proxy.lan" in result.output
    assert "alice" in result.output
    assert "hunter2" not in result.output
    assert "com.android.chrome" in result.output


def test_show_config_reports_invalid_file(isolated_config_paths) -> None:
    path = isolated_config_paths / "broken.json"
    path.write_text("{not json", encoding="utf-8")

    result = runner.invoke(cli.app, ["show-config", "--config", str(path)])

    assert result.exit_code == 1
    assert "Invalid configuration" in result.output


def test_resolve_config_applies_overrides(isolated_config_paths) -> None:
    path = _config_file(isolated_config_paths, {"type": "http", "host": "proxy.lan", "port": 3128})

    config, file_config = cli.resolve_config(path, kind="socks5", port=1080, username="bob")

    assert config == UpstreamConfig(UpstreamKind.SOCKS5, "proxy.lan", 1080, "bob", "")
    assert file_config is not None
    assert file_config.proxy == UpstreamConfig(UpstreamKind.HTTP, "proxy.lan", 3128)


def test_run_rejects_incomplete_config(isolated_config_paths) -> None:
    result = runner.invoke(cli.app, ["run", "--no-ui"])

    assert result.exit_code == 1
    assert "not configured" in result.output


def test_run_starts_local_proxy(isolated_config_paths, monkeypatch) -> None:
    calls = []

    def fake_run(config, host, port, *, show_ui, copy_to_clipboard):
        calls.append((config, host, port, show_ui, copy_to_clipboard))

    monkeypatch.setattr(serve, "run_local_proxy", fake_run)
    path = _config_file(isolated_config_paths, {"type": "http", "host": "proxy.lan", "port": 3128})

    result = runner.invoke(cli.app, ["run", "--config", str(path), "--port", "18181", "--no-ui", "--copy"])

    assert result.exit_code == 0, result.output
    assert calls == [(UpstreamConfig(UpstreamKind.HTTP, "proxy.lan", 3128), "127.0.0.1", 18181, False, True)]


def test_run_reports_bind_failure(isolated_config_paths, monkeypatch) -> None:
    def fake_run(*_args, **_kwargs):
        raise ListenerBindError("Cannot listen on 127.0.0.1:18080: address in use")

    monkeypatch.setattr(serve, "run_local_proxy", fake_run)

    result = runner.invoke(cli.app, ["run", "--upstream-host", "proxy.lan", "--upstream-port", "3128", "--no-ui"])

    assert result.exit_code == 1
    assert "address in use" in result.output


def test_check_reports_success(isolated_config_paths, scripted_server) -> None:
    def script(conn) -> None:
        recv_until(conn, b"\r\n\r\n")
        conn.sendall(b"HTTP/1.1 200 Connection established\r\n\r\n")
        recv_exactly(conn, 1)

    server = scripted_server(script)
    result = runner.invoke(
        cli.app,
        ["check", "example.com", "--type", "http", "--upstream-host", server.host, "--upstream-port", str(server.port)],
    )
    server.join()

    assert result.exit_code == 0, result.output
    assert "OK" in result.output


def test_check_reports_auth_failure(isolated_config_paths, scripted_server) -> None:
    def script(conn) -> None:
        recv_exactly(conn, 3)
        conn.sendall(b"\x05\x02")
        recv_exactly(conn, 1 + 1 + 1 + 1 + 1)
        conn.sendall(b"\x01\x01")

    server = scripted_server(script)
    result = runner.invoke(
        cli.app,
        [
            "check",
            "example.com:443",
            "--type",
            "socks5",
            "--upstream-host",
            server.host,
            "--upstream-port",
            str(server.port),
            "--username",
            "u",
            "--password",
            "p",
        ],
    )
    server.join()

    assert result.exit_code == 1
    assert "Authentication failed" in result.output


def test_check_rejects_unknown_type(isolated_config_paths) -> None:
    result = runner.invoke(cli.app, ["check", "example.com", "--type", "ftp", "--upstream-host", "h"])

    assert result.exit_code == 1
    assert "Unsupported upstream proxy type" in result.output


def test_describe_upstream() -> None:
    config = UpstreamConfig(UpstreamKind.SOCKS5, "10.0.0.2", 1080, "user", "pw")
    assert serve.describe_upstream(config) == "socks5://user@10.0.0.2:1080"
    assert serve.describe_upstream(UpstreamConfig(UpstreamKind.HTTP, "p", 3128)) == "http://p:3128"
