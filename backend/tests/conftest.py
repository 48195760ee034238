from __future__ import annotations

from typing import Any

import pytest

from uptimewatch.schemas.check import EndpointSnapshot, build_check_config


def make_snapshot(monitor_type: str = "http", endpoint_id: int = 1, **fields: Any) -> EndpointSnapshot:
    """Build a snapshot with a valid check config for ``monitor_type``."""
    config_fields = {
        key: fields.pop(key)
        for key in list(fields)
        if key in (
            "url", "method", "headers_json", "body_text", "expected_status",
            "expected_json_path", "expected_json_value", "connection_json",
            "probe_command", "expected_probe_value",
        )
    }
    if monitor_type == "http":
        config_fields.setdefault("url", "http://service.test/health")
    check = build_check_config(monitor_type, **config_fields)
    defaults: dict[str, Any] = {
        "id": endpoint_id,
        "group_id": 10,
        "group_name": "Payments",
        "name": f"endpoint-{endpoint_id}",
        "monitor_type": monitor_type,
        "url": config_fields.get("url"),
        "interval_seconds": 60,
        "down_retries": 3,
        "up_retries": 1,
    }
    defaults.update(fields)
    return EndpointSnapshot(check=check, **defaults)


@pytest.fixture
def snapshot_factory():
    return make_snapshot
