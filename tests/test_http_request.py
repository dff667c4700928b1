import io

import pytest

from upstream_tunnel_proxy.core.exceptions import ClientParseError
from upstream_tunnel_proxy.core.lib.http_request import (
    MAX_HEADER_LINES,
    ProxyTarget,
    find_host_header,
    is_connect,
    parse_absolute_uri,
    parse_authority,
    parse_connect_target,
    parse_http_request,
    read_header_lines,
    read_line,
    to_origin_form,
)


def test_read_line_strips_crlf_and_lf() -> None:
    reader = io.BytesIO(b"GET / HTTP/1.1\r\nHost: a\n\r\n")
    assert read_line(reader) == "GET / HTTP/1.1"
    assert read_line(reader) == "Host: a"
    assert read_line(reader) == ""
    assert read_line(reader) is None


def test_read_header_lines_stops_at_blank_line_and_leaves_body() -> None:
    reader = io.BytesIO(b"Host: a\r\nAccept: */*\r\n\r\nbody")
    assert read_header_lines(reader) == ["Host: a", "Accept: */*"]
    assert reader.read() == b"body"


def test_read_header_lines_limits_header_count() -> None:
    reader = io.BytesIO(b"X: y\r\n" * (MAX_HEADER_LINES + 1) + b"\r\n")
    with pytest.raises(ClientParseError):
        read_header_lines(reader)


def test_is_connect_is_case_insensitive() -> None:
    assert is_connect("CONNECT example.com:443 HTTP/1.1")
    assert is_connect("connect example.com:443 HTTP/1.1")
    assert not is_connect("GET http://example.com/ HTTP/1.1")
    assert not is_connect("CONNECTX a HTTP/1.1")


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        ("CONNECT example.com:8443 HTTP/1.1", ProxyTarget("example.com", 8443)),
        ("CONNECT example.com HTTP/1.1", ProxyTarget("example.com", 443)),
        ("CONNECT example.com: HTTP/1.1", ProxyTarget("example.com", 443)),
        ("CONNECT example.com:https HTTP/1.1", ProxyTarget("example.com", 443)),
        ("CONNECT example.com:70000 HTTP/1.1", ProxyTarget("example.com", 443)),
        ("CONNECT [2001:db8::1]:8443 HTTP/1.1", ProxyTarget("2001:db8::1", 8443)),
        ("connect   10.0.0.1:22   HTTP/1.1", ProxyTarget("10.0.0.1", 22)),
    ],
)
def test_parse_connect_target(line: str, expected: ProxyTarget) -> None:
    assert parse_connect_target(line) == expected


@pytest.mark.parametrize("line", ["CONNECT", "CONNECT :443 HTTP/1.1"])
def test_parse_connect_target_rejects_missing_host(line: str) -> None:
    with pytest.raises(ClientParseError):
        parse_connect_target(line)


def test_parse_authority_without_host_is_none() -> None:
    assert parse_authority("", 80) is None
    assert parse_authority("[::1", 80) is None


def test_to_origin_form_rewrites_absolute_uri() -> None:
    assert to_origin_form("GET http://example.com/a HTTP/1.1") == "GET /a HTTP/1.1"
    assert to_origin_form("GET http://example.com:8080/a/b?x=1&y=2 HTTP/1.1") == "GET /a/b?x=1&y=2 HTTP/1.1"
    assert to_origin_form("HEAD http://example.com HTTP/1.0") == "HEAD / HTTP/1.0"
    assert to_origin_form("GET HTTP://Example.com/A HTTP/1.1") == "GET /A HTTP/1.1"


def test_to_origin_form_leaves_other_forms_alone() -> None:
    assert to_origin_form("GET /a HTTP/1.1") == "GET /a HTTP/1.1"
    assert to_origin_form("OPTIONS * HTTP/1.1") == "OPTIONS * HTTP/1.1"
    assert to_origin_form("GET https://example.com/a HTTP/1.1") == "GET https://example.com/a HTTP/1.1"


def test_parse_absolute_uri() -> None:
    assert parse_absolute_uri("GET http://example.com/a HTTP/1.1") == ProxyTarget("example.com", 80)
    assert parse_absolute_uri("GET http://user:pw@example.com:8080/ HTTP/1.1") == ProxyTarget("example.com", 8080)
    assert parse_absolute_uri("GET /a HTTP/1.1") is None


def test_parse_http_request_prefers_host_header() -> None:
    head = parse_http_request(
        "GET http://example.com/a HTTP/1.1",
        ["Host: example.com", "Accept: */*"],
    )
    assert head.target == ProxyTarget("example.com", 80)
    assert head.request_line == "GET /a HTTP/1.1"
    assert head.to_bytes() == b"GET /a HTTP/1.1\r\nHost: example.com\r\nAccept: */*\r\n\r\n"


def test_find_host_header_uses_last_occurrence() -> None:
    assert find_host_header(["Host: first.example", "Accept: */*", "HOST: second.example:81"]) == "second.example:81"
    assert find_host_header(["Accept: */*"]) is None


def test_parse_http_request_routes_to_last_host_header() -> None:
    head = parse_http_request("GET / HTTP/1.1", ["Host: first.example", "Host: second.example:8081"])
    assert head.target == ProxyTarget("second.example", 8081)


def test_parse_http_request_host_header_with_port() -> None:
    head = parse_http_request("GET /status HTTP/1.1", ["host:  api.local:8080 "])
    assert head.target == ProxyTarget("api.local", 8080)
    assert head.request_line == "GET /status HTTP/1.1"


def test_parse_http_request_falls_back_to_absolute_uri() -> None:
    head = parse_http_request("GET http://example.com:8000/x HTTP/1.0", ["Accept: */*"])
    assert head.target == ProxyTarget("example.com", 8000)
    assert head.request_line == "GET /x HTTP/1.0"


def test_parse_http_request_without_destination_is_rejected() -> None:
    with pytest.raises(ClientParseError):
        parse_http_request("GET /a HTTP/1.0", ["Accept: */*"])
