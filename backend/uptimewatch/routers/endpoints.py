"""Endpoint control API - manual checks, pause/resume and check history."""
from fastapi import APIRouter, HTTPException, Query

from ..schemas.check_run import CheckRunList, CheckRunResponse, DeletedCount, PauseState
from ..schemas.events import CheckEvent
from ..services.scheduler import EndpointNotFoundError, EndpointPausedError, scheduler_service
from ..services.store import endpoint_store
from ..utils.db_utils import utcnow

router = APIRouter(prefix="/api/endpoints", tags=["endpoints"])


@router.post("/{endpoint_id}/check", response_model=CheckEvent)
async def check_now(endpoint_id: int):
    """Run a check immediately, outside the scheduler cadence."""
    try:
        return await scheduler_service.trigger_check_now(endpoint_id)
    except EndpointNotFoundError:
        raise HTTPException(status_code=404, detail="Endpoint not found")
    except EndpointPausedError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.post("/{endpoint_id}/pause", response_model=PauseState)
async def pause_endpoint(endpoint_id: int):
    if not await endpoint_store.pause(endpoint_id, utcnow()):
        raise HTTPException(status_code=404, detail="Endpoint not found")
    return PauseState(endpoint_id=endpoint_id, action="paused")


@router.post("/{endpoint_id}/resume", response_model=PauseState)
async def resume_endpoint(endpoint_id: int):
    if not await endpoint_store.resume(endpoint_id, utcnow()):
        raise HTTPException(status_code=404, detail="Endpoint not found")
    return PauseState(endpoint_id=endpoint_id, action="resumed")


@router.get("/{endpoint_id}/check-runs", response_model=CheckRunList)
async def list_check_runs(endpoint_id: int, limit: int = Query(100, ge=1, le=1000)):
    runs = await endpoint_store.list_check_runs(endpoint_id, limit)
    return CheckRunList(
        endpoint_id=endpoint_id,
        items=[CheckRunResponse.model_validate(run) for run in runs],
    )


@router.delete("/{endpoint_id}/check-runs", response_model=DeletedCount)
async def delete_check_runs(endpoint_id: int):
    deleted = await endpoint_store.delete_check_runs(endpoint_id)
    return DeletedCount(deleted=deleted)
