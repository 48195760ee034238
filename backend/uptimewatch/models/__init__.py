"""Database models."""
from .group import MonitorGroup
from .endpoint import MonitorEndpoint
from .check_run import CheckRun

__all__ = ["MonitorGroup", "MonitorEndpoint", "CheckRun"]
