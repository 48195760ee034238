"""Services for probing, scheduling, persistence and notification."""
from .checker import CheckerService, ProbeResult
from .events import EventBus
from .notifier import NotifierService
from .scheduler import SchedulerService
from .store import EndpointStore

__all__ = ["CheckerService", "ProbeResult", "EventBus", "NotifierService", "SchedulerService", "EndpointStore"]
