from __future__ import annotations

import asyncio
import json
import socket
from pathlib import Path

import httpx
import pytest

from uptimewatch.schemas.check import EndpointSnapshot
from uptimewatch.services.checker import CheckerService, parse_kv_command


def _json_handler(status: int, body: object, seen: list[httpx.Request] | None = None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        content = body if isinstance(body, (str, bytes)) else json.dumps(body)
        return httpx.Response(status, content=content, headers={"Content-Type": "application/json"})
    return handler


def _checker(handler) -> CheckerService:
    return CheckerService(timeout_ms=2000, transport=httpx.MockTransport(handler))


def _closed_port() -> int:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


@pytest.mark.asyncio
async def test_http_status_match_without_json_path(snapshot_factory) -> None:
    checker = _checker(_json_handler(200, {"ok": True}))
    result = await checker.probe(snapshot_factory("http", expected_status=200))
    assert result.passed is True
    assert result.response_code == 200
    assert result.matched_value is None
    assert result.error is None


@pytest.mark.asyncio
async def test_http_json_path_match(snapshot_factory) -> None:
    checker = _checker(_json_handler(200, {"data": {"status": "ok"}}))
    endpoint = snapshot_factory(
        "http",
        expected_json_path="data.status",
        expected_json_value='"ok"',
    )
    result = await checker.probe(endpoint)
    assert result.passed is True
    assert result.matched_value == "ok"


@pytest.mark.asyncio
async def test_http_json_path_mismatch_names_path(snapshot_factory) -> None:
    checker = _checker(_json_handler(200, {"data": {"status": "degraded"}}))
    endpoint = snapshot_factory(
        "http",
        expected_json_path="data.status",
        expected_json_value='"ok"',
    )
    result = await checker.probe(endpoint)
    assert result.passed is False
    assert result.response_code == 200
    assert result.matched_value == "degraded"
    assert result.error == 'JSON path mismatch at "data.status"'


@pytest.mark.asyncio
async def test_http_missing_json_path_records_no_value(snapshot_factory) -> None:
    checker = _checker(_json_handler(200, {"data": {}}))
    endpoint = snapshot_factory("http", expected_json_path="data.status", expected_json_value="ok")
    result = await checker.probe(endpoint)
    assert result.passed is False
    assert result.matched_value is None


@pytest.mark.asyncio
async def test_http_non_json_body_when_json_expected(snapshot_factory) -> None:
    checker = _checker(_json_handler(200, "<html>ok</html>"))
    endpoint = snapshot_factory("http", expected_json_path="status", expected_json_value='"ok"')
    result = await checker.probe(endpoint)
    assert result.passed is False
    assert result.error == "Expected JSON response but payload was not valid JSON"


@pytest.mark.asyncio
async def test_http_unexpected_status(snapshot_factory) -> None:
    checker = _checker(_json_handler(503, {"ok": False}))
    result = await checker.probe(snapshot_factory("http", expected_status=200))
    assert result.passed is False
    assert result.response_code == 503
    assert result.error == "Expected HTTP 200, got 503"


@pytest.mark.asyncio
async def test_http_body_only_sent_for_non_get(snapshot_factory) -> None:
    seen: list[httpx.Request] = []
    checker = _checker(_json_handler(200, {}, seen))

    await checker.probe(snapshot_factory("http", method="GET", body_text="ignored"))
    await checker.probe(snapshot_factory(
        "http", method="POST", body_text='{"q": 1}', headers_json='{"X-Probe": "yes"}',
    ))

    assert seen[0].method == "GET"
    assert seen[0].content == b""
    assert seen[1].method == "POST"
    assert seen[1].content == b'{"q": 1}'
    assert seen[1].headers["X-Probe"] == "yes"


@pytest.mark.asyncio
async def test_http_transport_error_is_captured(snapshot_factory) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    result = await _checker(handler).probe(snapshot_factory("http"))
    assert result.passed is False
    assert result.response_code is None
    assert "connection refused" in result.error


@pytest.mark.asyncio
async def test_http_timeout_is_labeled(snapshot_factory) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("read timed out", request=request)

    result = await _checker(handler).probe(snapshot_factory("http"))
    assert result.passed is False
    assert result.error == "HTTP request timed out after 2000ms"


@pytest.mark.asyncio
async def test_configuration_error_skips_network() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    endpoint = EndpointSnapshot(
        id=1, group_id=1, name="bad", monitor_type="tcp", interval_seconds=30,
        config_error="Invalid TCP port in connection config",
    )
    result = await _checker(handler).probe(endpoint)
    assert result.passed is False
    assert result.response_code == 500
    assert result.error == "Invalid TCP port in connection config"


@pytest.mark.asyncio
async def test_tcp_open_port(snapshot_factory) -> None:
    async def on_connect(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        writer.close()

    server = await asyncio.start_server(on_connect, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        endpoint = snapshot_factory("tcp", connection_json=json.dumps({"host": "127.0.0.1", "port": port}))
        result = await CheckerService(timeout_ms=2000).probe(endpoint)
    finally:
        server.close()
        await server.wait_closed()

    assert result.passed is True
    assert result.response_code == 200
    assert result.matched_value == "open"


@pytest.mark.asyncio
async def test_tcp_closed_port(snapshot_factory) -> None:
    port = _closed_port()
    endpoint = snapshot_factory("tcp", connection_json=json.dumps({"host": "127.0.0.1", "port": port}))
    result = await CheckerService(timeout_ms=2000).probe(endpoint)
    assert result.passed is False
    assert result.response_code == 500
    assert result.error.startswith("TCP connection failed")


@pytest.mark.asyncio
async def test_sql_default_probe(tmp_path: Path, snapshot_factory) -> None:
    url = f"sqlite+aiosqlite:///{tmp_path / 'probe.db'}"
    endpoint = snapshot_factory("sql", connection_json=json.dumps({"url": url}))
    result = await CheckerService(timeout_ms=5000).probe(endpoint)
    assert result.passed is True
    assert result.response_code == 200
    assert result.matched_value == "1"


@pytest.mark.asyncio
async def test_sql_expected_value_mismatch(tmp_path: Path, snapshot_factory) -> None:
    url = f"sqlite+aiosqlite:///{tmp_path / 'probe.db'}"
    endpoint = snapshot_factory(
        "sql",
        connection_json=json.dumps({"url": url}),
        probe_command="SELECT 'replica' AS role",
        expected_probe_value='"primary"',
    )
    result = await CheckerService(timeout_ms=5000).probe(endpoint)
    assert result.passed is False
    assert result.response_code == 500
    assert result.matched_value == "replica"
    assert result.error == "Probe value mismatch"


@pytest.mark.asyncio
async def test_sql_bad_statement_is_captured(tmp_path: Path, snapshot_factory) -> None:
    url = f"sqlite+aiosqlite:///{tmp_path / 'probe.db'}"
    endpoint = snapshot_factory(
        "sql", connection_json=json.dumps({"url": url}), probe_command="SELECT FROM nowhere",
    )
    result = await CheckerService(timeout_ms=5000).probe(endpoint)
    assert result.passed is False
    assert result.response_code == 500
    assert result.error


@pytest.mark.asyncio
async def test_kv_unreachable(snapshot_factory) -> None:
    endpoint = snapshot_factory("kv", connection_json=json.dumps({"host": "127.0.0.1", "port": _closed_port()}))
    result = await CheckerService(timeout_ms=2000).probe(endpoint)
    assert result.passed is False
    assert result.response_code == 500
    assert result.error


@pytest.mark.asyncio
async def test_messaging_stream_info_requires_name(snapshot_factory) -> None:
    endpoint = snapshot_factory(
        "messaging",
        connection_json=json.dumps({"servers": ["nats://127.0.0.1:1"]}),
        probe_command="stream.info:  ",
    )
    result = await CheckerService(timeout_ms=2000).probe(endpoint)
    assert result.passed is False
    assert result.response_code == 500
    assert result.error == "stream.info command requires stream name"


@pytest.mark.asyncio
async def test_messaging_unreachable(snapshot_factory) -> None:
    endpoint = snapshot_factory(
        "messaging", connection_json=json.dumps({"servers": [f"nats://127.0.0.1:{_closed_port()}"]}),
    )
    result = await CheckerService(timeout_ms=2000).probe(endpoint)
    assert result.passed is False
    assert result.response_code == 500
    assert result.error


def test_parse_kv_command() -> None:
    assert parse_kv_command(None) == ["PING"]
    assert parse_kv_command("   ") == ["PING"]
    assert parse_kv_command('["GET", "my key"]') == ["GET", "my key"]
    assert parse_kv_command("  INFO   server ") == ["INFO", "server"]
    assert parse_kv_command("[]") == ["[]"]


@pytest.mark.asyncio
async def test_http_blank_json_expectation_is_still_validated(snapshot_factory) -> None:
    endpoint = snapshot_factory("http", expected_json_path="status", expected_json_value="")

    mismatch = await _checker(_json_handler(200, {"status": "ok"})).probe(endpoint)
    assert mismatch.passed is False
    assert mismatch.matched_value == "ok"
    assert mismatch.error == 'JSON path mismatch at "status"'

    match = await _checker(_json_handler(200, {"status": ""})).probe(endpoint)
    assert match.passed is True
    assert match.matched_value == ""


async def _start_kv_server(values: dict[str, str]) -> asyncio.AbstractServer:
    """Minimal RESP server: PING, GET, and +OK for connection setup commands."""
    async def on_connect(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        while True:
            header = await reader.readline()
            if not header:
                break
            if not header.startswith(b"*"):
                continue
            args = []
            for _ in range(int(header[1:])):
                length = int((await reader.readline())[1:])
                args.append((await reader.readexactly(length + 2))[:-2].decode())

            name = args[0].upper()
            if name == "PING":
                writer.write(b"+PONG\r\n")
            elif name == "GET":
                value = values.get(args[1])
                if value is None:
                    writer.write(b"$-1\r\n")
                else:
                    writer.write(f"${len(value.encode())}\r\n{value}\r\n".encode())
            else:
                writer.write(b"+OK\r\n")
            await writer.drain()
        writer.close()

    return await asyncio.start_server(on_connect, "127.0.0.1", 0)


@pytest.mark.asyncio
async def test_kv_ping_matches_raw_reply_by_default(snapshot_factory) -> None:
    server = await _start_kv_server({})
    port = server.sockets[0].getsockname()[1]
    try:
        endpoint = snapshot_factory("kv", connection_json=json.dumps({"host": "127.0.0.1", "port": port}))
        result = await CheckerService(timeout_ms=2000).probe(endpoint)
    finally:
        server.close()
        await server.wait_closed()

    assert result.passed is True
    assert result.response_code == 200
    assert result.matched_value == "PONG"
    assert result.error is None


@pytest.mark.asyncio
async def test_kv_get_with_expected_value(snapshot_factory) -> None:
    server = await _start_kv_server({"deploy:color": "blue"})
    port = server.sockets[0].getsockname()[1]
    connection = json.dumps({"host": "127.0.0.1", "port": port})
    try:
        checker = CheckerService(timeout_ms=2000)
        match = await checker.probe(snapshot_factory(
            "kv", connection_json=connection, probe_command="GET deploy:color", expected_probe_value='"blue"',
        ))
        mismatch = await checker.probe(snapshot_factory(
            "kv", connection_json=connection, probe_command='["GET", "deploy:color"]', expected_probe_value="green",
        ))
    finally:
        server.close()
        await server.wait_closed()

    assert match.passed is True
    assert match.matched_value == "blue"
    assert mismatch.passed is False
    assert mismatch.response_code == 500
    assert mismatch.matched_value == "blue"
    assert mismatch.error == "Probe value mismatch"


@pytest.mark.asyncio
async def test_messaging_connect_timeout_releases_socket(snapshot_factory) -> None:
    accepted = asyncio.Event()
    released = asyncio.Event()

    async def on_connect(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        # Never sends INFO, so the client handshake hangs
        accepted.set()
        await reader.read()
        released.set()
        writer.close()

    server = await asyncio.start_server(on_connect, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        endpoint = snapshot_factory(
            "messaging", connection_json=json.dumps({"servers": [f"nats://127.0.0.1:{port}"]}),
        )
        result = await CheckerService(timeout_ms=300).probe(endpoint)

        assert accepted.is_set()
        assert result.passed is False
        assert result.response_code == 500
        assert result.error == "Messaging connect timed out after 300ms"

        await asyncio.wait_for(released.wait(), timeout=2)
    finally:
        server.close()
        await server.wait_closed()
