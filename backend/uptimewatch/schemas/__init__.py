"""Pydantic schemas and typed check configuration."""
from .check import (
    ConfigurationError,
    EndpointSnapshot,
    HttpCheck,
    SqlCheck,
    KvCheck,
    MessagingCheck,
    TcpCheck,
    build_check_config,
    snapshot_from_row,
)
from .check_run import CheckRunResponse, CheckRunList, DeletedCount, PauseState
from .events import CheckEvent
from .notification import NotificationTarget, StatusTransition

__all__ = [
    "ConfigurationError",
    "EndpointSnapshot",
    "HttpCheck",
    "SqlCheck",
    "KvCheck",
    "MessagingCheck",
    "TcpCheck",
    "build_check_config",
    "snapshot_from_row",
    "CheckRunResponse",
    "CheckRunList",
    "DeletedCount",
    "PauseState",
    "CheckEvent",
    "NotificationTarget",
    "StatusTransition",
]
