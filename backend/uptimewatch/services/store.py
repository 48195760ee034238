"""Endpoint store - persistence for endpoint state and check history."""
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from ..database import async_session
from ..models import CheckRun, MonitorEndpoint
from ..schemas.check import EndpointSnapshot, snapshot_from_row
from ..utils.db_utils import retry_on_lock
from .checker import ProbeResult
from .state_machine import StatusComputation

logger = logging.getLogger(__name__)


class EndpointStore:
    """Reads due endpoints and records check outcomes.

    Every operation uses its own session, so concurrent checks in one tick
    never share a transaction.
    """

    def __init__(self, session_factory: async_sessionmaker = async_session):
        self._session_factory = session_factory

    async def fetch_due(self, now: datetime, limit: int) -> List[EndpointSnapshot]:
        """Unpaused endpoints whose next check time has passed, oldest first."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(MonitorEndpoint)
                .options(selectinload(MonitorEndpoint.group))
                .where(
                    MonitorEndpoint.is_paused.is_(False),
                    MonitorEndpoint.next_check_at <= now,
                )
                .order_by(MonitorEndpoint.next_check_at.asc(), MonitorEndpoint.id.asc())
                .limit(limit)
            )
            return [snapshot_from_row(row) for row in result.scalars().all()]

    async def get(self, endpoint_id: int) -> Optional[EndpointSnapshot]:
        async with self._session_factory() as session:
            row = await self._load(session, endpoint_id)
            return snapshot_from_row(row) if row is not None else None

    async def _load(self, session: AsyncSession, endpoint_id: int) -> Optional[MonitorEndpoint]:
        result = await session.execute(
            select(MonitorEndpoint)
            .options(selectinload(MonitorEndpoint.group))
            .where(MonitorEndpoint.id == endpoint_id)
        )
        return result.scalar_one_or_none()

    async def record_check(
        self,
        endpoint_id: int,
        computation: StatusComputation,
        result: ProbeResult,
        checked_at: datetime,
        interval_seconds: int,
        response_time_ms: int,
    ):
        """Persist the new endpoint state and append a check run.

        Only state columns are written, so configuration edits made while the
        check was running are kept.
        """
        async def _write():
            async with self._session_factory() as session:
                await session.execute(
                    update(MonitorEndpoint)
                    .where(MonitorEndpoint.id == endpoint_id)
                    .values(
                        status=computation.status,
                        consecutive_failures=computation.failures,
                        consecutive_successes=computation.successes,
                        last_checked_at=checked_at,
                        last_response_code=result.response_code,
                        last_error=result.error,
                        last_match_value=result.matched_value,
                        next_check_at=checked_at + timedelta(seconds=interval_seconds),
                    )
                    .execution_options(synchronize_session=False)
                )
                session.add(CheckRun(
                    endpoint_id=endpoint_id,
                    status=computation.status,
                    response_code=result.response_code,
                    matched_value=result.matched_value,
                    error_message=result.error,
                    response_time_ms=response_time_ms,
                    checked_at=checked_at,
                ))
                await session.commit()

        await retry_on_lock(_write)

    async def pause(self, endpoint_id: int, now: datetime) -> bool:
        """Pause an endpoint; its next check moves one interval ahead."""
        async def _write():
            async with self._session_factory() as session:
                row = await session.get(MonitorEndpoint, endpoint_id)
                if row is None:
                    return False
                row.is_paused = True
                row.next_check_at = now + timedelta(seconds=row.interval_seconds)
                await session.commit()
                return True

        return await retry_on_lock(_write)

    async def resume(self, endpoint_id: int, now: datetime) -> bool:
        """Resume an endpoint; it becomes due immediately."""
        async def _write():
            async with self._session_factory() as session:
                row = await session.get(MonitorEndpoint, endpoint_id)
                if row is None:
                    return False
                row.is_paused = False
                row.next_check_at = now
                await session.commit()
                return True

        return await retry_on_lock(_write)

    async def list_check_runs(self, endpoint_id: int, limit: int = 100) -> List[CheckRun]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(CheckRun)
                .where(CheckRun.endpoint_id == endpoint_id)
                .order_by(CheckRun.checked_at.desc(), CheckRun.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def delete_check_runs(self, endpoint_id: int) -> int:
        async def _write():
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(CheckRun).where(CheckRun.endpoint_id == endpoint_id)
                )
                await session.commit()
                return result.rowcount or 0

        deleted = await retry_on_lock(_write)
        logger.info(f"Deleted {deleted} check runs for endpoint {endpoint_id}")
        return deleted


# Global instance
endpoint_store = EndpointStore()
