"""Checker service - probes HTTP, SQL, key-value, messaging and TCP targets.

Every probe opens its own short-lived connection, bounds each network step
with a labeled timeout, and releases the connection before returning. Probes
never raise: any failure becomes a ``ProbeResult`` with ``passed=False``.
"""
import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Union

import httpx
from nats.aio.client import Client as NATS
import redis.asyncio as aioredis
from redis.asyncio.retry import Retry
from redis.backoff import NoBackoff
from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from ..config import settings, to_async_url
from ..schemas.check import (
    EndpointSnapshot,
    HttpCheck,
    KvCheck,
    MessagingCheck,
    SqlCheck,
    TcpCheck,
)
from ..utils.timeouts import ProbeTimeoutError, with_timeout
from .comparator import (
    UNDEFINED,
    compare,
    deep_equal,
    normalize_comparable,
    parse_expected_value,
    resolve_json_path,
)

logger = logging.getLogger(__name__)

DEFAULT_SQL_PROBE = "SELECT 1 AS health"
DEFAULT_KV_COMMAND = ["PING"]
DEFAULT_MESSAGING_COMMAND = "jetstream.info"
STREAM_INFO_PREFIX = "stream.info:"

# Protocol defaults used when no expected value is configured
KV_PING_REPLY = '"PONG"'
MESSAGING_OK = '"ok"'
TCP_OPEN = '"open"'

INVALID_JSON_ERROR = "Expected JSON response but payload was not valid JSON"


@dataclass
class ProbeResult:
    """Verdict of one probe."""
    passed: bool
    response_code: Optional[int] = None
    matched_value: Optional[str] = None
    error: Optional[str] = None


def describe_error(exc: BaseException) -> str:
    """Readable message for an exception, falling back to its type name."""
    message = str(exc).strip()
    return message or exc.__class__.__name__


def parse_kv_command(probe_command: Optional[str]) -> List[str]:
    """Split a key-value probe command.

    Accepts a JSON array (``["GET", "my key"]``) or whitespace-separated text.
    """
    if not probe_command or not probe_command.strip():
        return list(DEFAULT_KV_COMMAND)

    try:
        parsed = json.loads(probe_command)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, list) and parsed:
        return [str(part) for part in parsed]

    return probe_command.split()


def _verdict(result) -> ProbeResult:
    return ProbeResult(
        passed=result.ok,
        response_code=200 if result.ok else 500,
        matched_value=result.matched_value,
        error=result.error,
    )


class CheckerService:
    """Service for running protocol probes against endpoints."""

    def __init__(
        self,
        timeout_ms: Optional[int] = None,
        verify_tls: Optional[bool] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout_ms = timeout_ms if timeout_ms is not None else settings.request_timeout_ms
        self.verify_tls = settings.verify_tls if verify_tls is None else verify_tls
        # Injected transport is used by tests to stub HTTP responses
        self._transport = transport

    async def probe(self, endpoint: EndpointSnapshot) -> ProbeResult:
        """Run the probe matching the endpoint's monitor type."""
        failure_code = None if endpoint.monitor_type == "http" else 500

        if endpoint.config_error or endpoint.check is None:
            return ProbeResult(
                passed=False,
                response_code=failure_code,
                error=endpoint.config_error or "Missing check configuration",
            )

        check = endpoint.check
        try:
            if isinstance(check, HttpCheck):
                return await self._check_http(check)
            if isinstance(check, SqlCheck):
                return await self._check_sql(check)
            if isinstance(check, KvCheck):
                return await self._check_kv(check)
            if isinstance(check, MessagingCheck):
                return await self._check_messaging(check)
            if isinstance(check, TcpCheck):
                return await self._check_tcp(check)
            return ProbeResult(passed=False, response_code=failure_code,
                               error=f"Unsupported monitor type: {endpoint.monitor_type}")
        except Exception as e:
            logger.error(f"Unexpected probe error for endpoint {endpoint.id}: {e}")
            return ProbeResult(passed=False, response_code=failure_code, error=describe_error(e))

    async def _check_http(self, check: HttpCheck) -> ProbeResult:
        """Perform an HTTP check.

        Passes when the status code equals ``expected_status`` and, if a JSON
        path/value pair is configured, the value at the path matches.
        """
        send_body = check.method not in ("GET", "HEAD") and check.body

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_ms / 1000,
                follow_redirects=True,
                verify=self.verify_tls,
                transport=self._transport,
            ) as client:
                response = await with_timeout(
                    client.request(
                        check.method,
                        check.url,
                        headers=check.headers,
                        content=check.body if send_body else None,
                    ),
                    self.timeout_ms,
                    "HTTP request",
                )
        except (httpx.TimeoutException, ProbeTimeoutError):
            return ProbeResult(passed=False, error=f"HTTP request timed out after {self.timeout_ms}ms")
        except httpx.ConnectError as e:
            return ProbeResult(passed=False, error=f"Connection error: {describe_error(e)}")
        except Exception as e:
            return ProbeResult(passed=False, error=describe_error(e))

        error = None
        matched_value = None
        json_ok = True

        if check.expected_json_path and check.expected_json_value is not None:
            try:
                payload = json.loads(response.text)
            except ValueError:
                payload = None

            if payload is None:
                json_ok = False
                error = INVALID_JSON_ERROR
            else:
                actual = resolve_json_path(payload, check.expected_json_path)
                # A configured value is always validated, even when blank
                json_ok = deep_equal(actual, parse_expected_value(check.expected_json_value))
                if not json_ok:
                    error = f'JSON path mismatch at "{check.expected_json_path}"'
                matched_value = None if actual is UNDEFINED else normalize_comparable(actual)

        passed = response.status_code == check.expected_status and json_ok
        if not passed and not error:
            error = f"Expected HTTP {check.expected_status}, got {response.status_code}"

        return ProbeResult(
            passed=passed,
            response_code=response.status_code,
            matched_value=matched_value,
            error=error,
        )

    def _sql_url(self, check: SqlCheck) -> Union[str, URL]:
        if check.url and check.url.strip():
            return to_async_url(check.url.strip())
        return URL.create(
            "mysql+aiomysql",
            username=check.user,
            password=check.password,
            host=check.host,
            port=check.port,
            database=check.database,
        )

    def _sql_connect_args(self, url: Union[str, URL]) -> dict:
        seconds = self.timeout_ms / 1000
        driver = make_url(url).get_driver_name()
        if driver == "aiomysql":
            return {"connect_timeout": seconds}
        if driver in ("asyncpg", "aiosqlite"):
            return {"timeout": seconds}
        return {}

    async def _run_sql(self, engine: AsyncEngine, query: str) -> Any:
        async with engine.connect() as conn:
            result = await conn.exec_driver_sql(query)
            if not result.returns_rows:
                return None
            row = result.first()
        if row is None or len(row) == 0:
            return None
        return row[0]

    async def _check_sql(self, check: SqlCheck) -> ProbeResult:
        """Run the probe statement on a fresh connection and compare column one of row one."""
        engine = None
        try:
            url = self._sql_url(check)
            engine = create_async_engine(
                url,
                poolclass=NullPool,
                connect_args=self._sql_connect_args(url),
            )
            query = (check.probe_command or "").strip() or DEFAULT_SQL_PROBE
            actual = await with_timeout(self._run_sql(engine, query), self.timeout_ms, "SQL probe")
            return _verdict(compare(actual, check.expected_value))
        except Exception as e:
            return ProbeResult(passed=False, response_code=500, error=describe_error(e))
        finally:
            if engine is not None:
                await engine.dispose()

    def _kv_client(self, check: KvCheck) -> aioredis.Redis:
        seconds = self.timeout_ms / 1000
        options = {
            "socket_connect_timeout": seconds,
            "socket_timeout": seconds,
            "decode_responses": True,
            "single_connection_client": True,
            "retry": Retry(NoBackoff(), 0),
        }
        if check.url and check.url.strip():
            return aioredis.from_url(check.url.strip(), **options)
        return aioredis.Redis(
            host=check.host,
            port=check.port,
            username=check.username,
            password=check.password,
            db=check.database or 0,
            **options,
        )

    async def _check_kv(self, check: KvCheck) -> ProbeResult:
        """Send one command to a key-value store and compare the raw reply."""
        client = None
        try:
            client = self._kv_client(check)
            # Compare raw replies, not redis-py's converted values (PING -> True)
            client.response_callbacks.clear()

            await with_timeout(client.initialize(), self.timeout_ms, "Key-value connect")

            command = parse_kv_command(check.probe_command)
            raw_result = await with_timeout(
                client.execute_command(*command),
                self.timeout_ms,
                "Key-value command",
            )

            expected = check.expected_value
            if expected is None and command[0].upper() == "PING":
                expected = KV_PING_REPLY
            return _verdict(compare(raw_result, expected))
        except Exception as e:
            return ProbeResult(passed=False, response_code=500, error=describe_error(e))
        finally:
            if client is not None:
                try:
                    await client.aclose()
                except Exception as e:
                    logger.debug(f"Error closing key-value client: {e}")

    async def _nats_error(self, e: Exception):
        logger.debug(f"Messaging client error: {e}")

    async def _check_messaging(self, check: MessagingCheck) -> ProbeResult:
        """Connect to the messaging servers and run an inspection command.

        Commands:
        - ``jetstream.info`` (default): account info must be readable
        - ``stream.info:<name>``: the named stream must exist
        - anything else: a successful connection is enough
        """
        command = (check.probe_command or "").strip() or DEFAULT_MESSAGING_COMMAND
        stream_name = None
        if command.startswith(STREAM_INFO_PREFIX):
            stream_name = command[len(STREAM_INFO_PREFIX):].strip()
            if not stream_name:
                return ProbeResult(
                    passed=False,
                    response_code=500,
                    error="stream.info command requires stream name",
                )

        # Client's own connect timer must not outlive the outer one
        connect_timeout_ms = min(check.timeout_ms or self.timeout_ms, self.timeout_ms)
        # Created before connecting so a cancelled connect still has a socket to close
        nc = NATS()
        try:
            try:
                await with_timeout(
                    nc.connect(
                        servers=check.servers,
                        user=check.user,
                        password=check.password,
                        token=check.token,
                        connect_timeout=connect_timeout_ms / 1000,
                        allow_reconnect=False,
                        max_reconnect_attempts=0,
                        error_cb=self._nats_error,
                    ),
                    self.timeout_ms,
                    "Messaging connect",
                )
            except ProbeTimeoutError:
                raise
            except asyncio.TimeoutError:
                raise ProbeTimeoutError("Messaging connect", connect_timeout_ms) from None

            actual = "ok"
            expected = check.expected_value
            if command == DEFAULT_MESSAGING_COMMAND:
                info = await with_timeout(nc.jsm().account_info(), self.timeout_ms, "JetStream info")
                actual = "ok" if info is not None else None
            elif stream_name:
                info = await with_timeout(
                    nc.jsm().stream_info(stream_name),
                    self.timeout_ms,
                    "JetStream stream info",
                )
                actual = info.config.name if info is not None and info.config is not None else None
                if expected is None:
                    expected = json.dumps(stream_name)

            if expected is None:
                expected = MESSAGING_OK
            return _verdict(compare(actual, expected))
        except Exception as e:
            return ProbeResult(passed=False, response_code=500, error=describe_error(e))
        finally:
            try:
                await nc.close()
            except Exception as e:
                logger.debug(f"Error closing messaging connection: {e}")

    async def _check_tcp(self, check: TcpCheck) -> ProbeResult:
        """Open a TCP connection; a completed connect means the port is open."""
        timeout_ms = check.timeout_ms or self.timeout_ms
        try:
            _, writer = await with_timeout(
                asyncio.open_connection(check.host, check.port),
                timeout_ms,
                "TCP connect",
            )
        except ProbeTimeoutError as e:
            return ProbeResult(passed=False, response_code=500, error=str(e))
        except OSError as e:
            return ProbeResult(passed=False, response_code=500,
                               error=f"TCP connection failed: {describe_error(e)}")

        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            # Peer may reset an idle connection while closing
            pass

        expected = check.expected_value if check.expected_value is not None else TCP_OPEN
        return _verdict(compare("open", expected))


# Global instance
checker_service = CheckerService()
