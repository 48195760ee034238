"""Scheduler service - runs due endpoint checks on a fixed tick.

Design:
- One APScheduler interval job drives ``tick()`` every MONITOR_POLL_SECONDS
- A tick never overlaps a previous one: a tick that finds the previous one
  still running is skipped, not queued
- Each tick selects at most CHECK_BATCH_SIZE due endpoints (oldest
  ``next_check_at`` first) and checks them concurrently
- A failing endpoint is logged and never stops the rest of the batch
"""
import asyncio
import logging
import time
from datetime import datetime
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config import settings
from ..schemas.check import EndpointSnapshot
from ..schemas.events import CheckEvent
from ..schemas.notification import NOTIFY_EVENTS, StatusTransition
from ..utils.db_utils import utcnow
from .checker import CheckerService, checker_service
from .events import EventBus, event_bus
from .notifier import NotifierService, notifier_service
from .state_machine import compute_status
from .store import EndpointStore, endpoint_store

logger = logging.getLogger(__name__)


class EndpointNotFoundError(LookupError):
    """No endpoint with the requested id."""


class EndpointPausedError(RuntimeError):
    """Manual checks are refused for paused endpoints."""


def _iso(value: datetime) -> str:
    return value.isoformat() + "Z"


class SchedulerService:
    """Service for scheduling and running endpoint checks."""

    def __init__(
        self,
        store: Optional[EndpointStore] = None,
        checker: Optional[CheckerService] = None,
        notifier: Optional[NotifierService] = None,
        events: Optional[EventBus] = None,
        poll_seconds: Optional[float] = None,
        batch_size: Optional[int] = None,
    ):
        self.store = store or endpoint_store
        self.checker = checker or checker_service
        self.notifier = notifier or notifier_service
        self.events = events or event_bus
        self.poll_seconds = poll_seconds or settings.monitor_poll_seconds
        self.batch_size = batch_size or settings.check_batch_size
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._running = False
        self._tick_lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        """Start the tick job; the first tick runs immediately."""
        if self._running:
            return

        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self.tick,
            trigger=IntervalTrigger(seconds=self.poll_seconds),
            id="run_checks",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(),
        )
        self.scheduler.start()
        self._running = True
        logger.info(f"Scheduler started (tick={self.poll_seconds}s, batch={self.batch_size})")

    def stop(self):
        """Stop the scheduler. Checks already running finish on their own."""
        if self.scheduler and self._running:
            self.scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    async def tick(self) -> int:
        """Check every due endpoint once. Returns the number of endpoints checked."""
        if self._tick_lock.locked():
            logger.debug("Previous tick still running, skipping")
            return 0

        async with self._tick_lock:
            try:
                endpoints = await self.store.fetch_due(utcnow(), self.batch_size)
            except Exception as e:
                logger.error(f"Error selecting due endpoints: {e}")
                return 0

            if not endpoints:
                return 0

            logger.debug(f"Checking {len(endpoints)} due endpoints")
            await asyncio.gather(*[self._run_check_safely(e) for e in endpoints])
            return len(endpoints)

    async def _run_check_safely(self, endpoint: EndpointSnapshot):
        try:
            await self.run_check(endpoint)
        except Exception as e:
            logger.error(f"Error checking endpoint {endpoint.id}: {e}")

    async def run_check(self, endpoint: EndpointSnapshot) -> Optional[CheckEvent]:
        """Probe one endpoint, persist the outcome and emit events.

        Returns the published check event, or None if the endpoint is paused.
        """
        if endpoint.is_paused:
            return None

        previous_status = endpoint.status or "pending"
        started = time.monotonic()

        result = await self.checker.probe(endpoint)
        computation = compute_status(
            previous_status,
            endpoint.consecutive_failures,
            endpoint.consecutive_successes,
            endpoint.down_retries,
            endpoint.up_retries,
            result.passed,
        )
        response_time_ms = int((time.monotonic() - started) * 1000)
        checked_at = utcnow()

        await self.store.record_check(
            endpoint.id,
            computation,
            result,
            checked_at,
            endpoint.interval_seconds,
            response_time_ms,
        )

        event = CheckEvent(
            endpoint_id=endpoint.id,
            group_id=endpoint.group_id,
            monitor_type=endpoint.monitor_type,
            status=computation.status,
            previous_status=previous_status,
            response_code=result.response_code,
            last_checked_at=_iso(checked_at),
            last_error=result.error,
            last_match_value=result.matched_value,
            consecutive_failures=computation.failures,
            consecutive_successes=computation.successes,
            response_time_ms=response_time_ms,
        )
        self.events.publish(event)
        logger.debug(f"Endpoint {endpoint.name}: {computation.status}")

        if computation.status != previous_status and computation.status in NOTIFY_EVENTS:
            try:
                await self.notifier.notify(StatusTransition(
                    endpoint_id=endpoint.id,
                    endpoint_name=endpoint.name,
                    group_id=endpoint.group_id,
                    group_name=endpoint.group_name,
                    monitor_type=endpoint.monitor_type,
                    url=endpoint.url,
                    previous_status=previous_status,
                    current_status=computation.status,
                    response_code=result.response_code,
                    response_time_ms=response_time_ms,
                    checked_at=event.last_checked_at,
                    error_message=result.error,
                    matched_value=result.matched_value,
                ))
            except Exception as e:
                logger.error(f"Error notifying for endpoint {endpoint.id}: {e}")

        return event

    async def trigger_check_now(self, endpoint_id: int) -> CheckEvent:
        """Check one endpoint immediately, outside the tick cadence.

        Raises:
            EndpointNotFoundError: if the endpoint does not exist
            EndpointPausedError: if the endpoint is paused
        """
        endpoint = await self.store.get(endpoint_id)
        if endpoint is None:
            raise EndpointNotFoundError(f"Endpoint {endpoint_id} not found")
        if endpoint.is_paused:
            raise EndpointPausedError("Endpoint is paused. Resume it before checking.")
        return await self.run_check(endpoint)


# Global instance
scheduler_service = SchedulerService()
