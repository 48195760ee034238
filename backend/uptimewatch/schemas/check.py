"""Typed check configuration and endpoint snapshots.

Endpoint rows store their protocol settings as loosely-typed JSON columns.
They are parsed once, when a row is loaded, into one variant of ``CheckConfig``
keyed by ``kind``. A row that cannot be parsed still produces a snapshot; it
carries ``config_error`` instead of ``check`` and the probe reports it as a
failed check without touching the network.
"""
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

ALLOWED_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS")

MONITOR_KINDS = ("http", "sql", "kv", "messaging", "tcp")

KIND_ALIASES = {
    "mysql": "sql",
    "redis": "kv",
    "nats": "messaging",
}


class ConfigurationError(ValueError):
    """An endpoint's stored configuration cannot be turned into a check."""


class _ProbeConfig(BaseModel):
    class Config:
        extra = "ignore"
        populate_by_name = True


class HttpCheck(_ProbeConfig):
    kind: Literal["http"] = "http"
    url: str
    method: str = "GET"
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[str] = None
    expected_status: int = 200
    expected_json_path: Optional[str] = None
    expected_json_value: Optional[str] = None

    @field_validator("method")
    @classmethod
    def _check_method(cls, value: str) -> str:
        method = (value or "GET").strip().upper()
        if method not in ALLOWED_METHODS:
            raise ValueError(f"Unsupported HTTP method: {value}")
        return method

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("HTTP monitor requires a URL")
        return value.strip()


class SqlCheck(_ProbeConfig):
    kind: Literal["sql"] = "sql"
    url: Optional[str] = None
    host: str = "127.0.0.1"
    port: int = 3306
    user: Optional[str] = None
    password: Optional[str] = None
    database: Optional[str] = None
    probe_command: Optional[str] = None
    expected_value: Optional[str] = None


class KvCheck(_ProbeConfig):
    kind: Literal["kv"] = "kv"
    url: Optional[str] = None
    host: str = "127.0.0.1"
    port: int = 6379
    username: Optional[str] = None
    password: Optional[str] = None
    database: Optional[int] = None
    probe_command: Optional[str] = None
    expected_value: Optional[str] = None


class MessagingCheck(_ProbeConfig):
    kind: Literal["messaging"] = "messaging"
    servers: List[str] = Field(default_factory=lambda: ["nats://127.0.0.1:4222"])
    user: Optional[str] = None
    password: Optional[str] = None
    token: Optional[str] = None
    timeout_ms: Optional[int] = Field(default=None, alias="timeoutMs")
    probe_command: Optional[str] = None
    expected_value: Optional[str] = None


class TcpCheck(_ProbeConfig):
    kind: Literal["tcp"] = "tcp"
    host: str = "127.0.0.1"
    port: int = 80
    timeout_ms: Optional[int] = Field(default=None, alias="timeoutMs")
    expected_value: Optional[str] = None

    @field_validator("port")
    @classmethod
    def _check_port(cls, value: int) -> int:
        if value < 1 or value > 65535:
            raise ValueError("Invalid TCP port in connection config")
        return value


CheckConfig = Annotated[
    Union[HttpCheck, SqlCheck, KvCheck, MessagingCheck, TcpCheck],
    Field(discriminator="kind"),
]

_check_adapter = TypeAdapter(CheckConfig)


@dataclass
class EndpointSnapshot:
    """Point-in-time view of a monitor endpoint, as seen by one check."""
    id: int
    group_id: int
    name: str
    monitor_type: str
    interval_seconds: int
    down_retries: int = 3
    up_retries: int = 1
    status: str = "pending"
    consecutive_failures: int = 0
    consecutive_successes: int = 0
    is_paused: bool = False
    group_name: Optional[str] = None
    url: Optional[str] = None
    next_check_at: Optional[datetime] = None
    check: Optional[CheckConfig] = None
    config_error: Optional[str] = None


def normalize_kind(monitor_type: Optional[str]) -> str:
    kind = (monitor_type or "http").strip().lower()
    return KIND_ALIASES.get(kind, kind)


def _parse_json_object(value: Any, label: str) -> Dict[str, Any]:
    """Parse a JSON column that must hold an object (empty when absent)."""
    if value is None or value == "":
        return {}
    if isinstance(value, dict):
        return value
    try:
        parsed = json.loads(value)
    except (TypeError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Malformed {label}: {e}")
    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise ConfigurationError(f"Malformed {label}: expected a JSON object")
    return parsed


def _first_error(exc: ValidationError) -> str:
    error = exc.errors()[0]
    message = error.get("msg", str(exc))
    # pydantic prefixes messages raised from validators
    return message.removeprefix("Value error, ")


def build_check_config(
    monitor_type: Optional[str],
    *,
    url: Optional[str] = None,
    method: Optional[str] = None,
    headers_json: Any = None,
    body_text: Optional[str] = None,
    expected_status: Optional[int] = None,
    expected_json_path: Optional[str] = None,
    expected_json_value: Optional[str] = None,
    connection_json: Any = None,
    probe_command: Optional[str] = None,
    expected_probe_value: Optional[str] = None,
) -> CheckConfig:
    """Build the typed check configuration for one endpoint.

    Raises:
        ConfigurationError: if the stored values are malformed
    """
    kind = normalize_kind(monitor_type)
    if kind not in MONITOR_KINDS:
        raise ConfigurationError(f"Unsupported monitor type: {monitor_type}")

    if kind == "http":
        data: Dict[str, Any] = {
            "kind": "http",
            "url": url or "",
            "method": method or "GET",
            "headers": {
                str(k): str(v)
                for k, v in _parse_json_object(headers_json, "headers_json").items()
            },
            "body": body_text or None,
            "expected_json_path": expected_json_path or None,
            "expected_json_value": expected_json_value,
        }
        if expected_status is not None:
            data["expected_status"] = expected_status
    else:
        connection = _parse_json_object(connection_json, "connection_json")
        data = dict(connection)
        data["kind"] = kind
        if kind == "messaging":
            servers = connection.get("servers") or connection.get("server") or connection.get("url")
            if servers:
                data["servers"] = [str(s) for s in servers] if isinstance(servers, list) else [str(servers)]
        if kind != "tcp":
            data["probe_command"] = probe_command
        data["expected_value"] = expected_probe_value

    try:
        return _check_adapter.validate_python(data)
    except ValidationError as e:
        raise ConfigurationError(_first_error(e))


def snapshot_from_row(row) -> EndpointSnapshot:
    """Create a snapshot from a ``MonitorEndpoint`` row (group eagerly loaded)."""
    check = None
    config_error = None
    try:
        check = build_check_config(
            row.monitor_type,
            url=row.url,
            method=row.method,
            headers_json=row.headers_json,
            body_text=row.body_text,
            expected_status=row.expected_status,
            expected_json_path=row.expected_json_path,
            expected_json_value=row.expected_json_value,
            connection_json=row.connection_json,
            probe_command=row.probe_command,
            expected_probe_value=row.expected_probe_value,
        )
    except ConfigurationError as e:
        config_error = str(e)

    group = getattr(row, "group", None)
    return EndpointSnapshot(
        id=row.id,
        group_id=row.group_id,
        group_name=group.name if group is not None else None,
        name=row.name,
        monitor_type=normalize_kind(row.monitor_type),
        url=row.url,
        interval_seconds=row.interval_seconds,
        down_retries=row.down_retries,
        up_retries=row.up_retries,
        status=row.status or "pending",
        consecutive_failures=row.consecutive_failures or 0,
        consecutive_successes=row.consecutive_successes or 0,
        is_paused=bool(row.is_paused),
        next_check_at=row.next_check_at,
        check=check,
        config_error=config_error,
    )
