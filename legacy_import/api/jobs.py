"""
/api/v1/jobs endpoints.
Template-extraction queue and job status.
"""

import asyncio

from fastapi import APIRouter, Depends, HTTPException
from redis import Redis

from legacy_import.config import settings
from legacy_import.dependencies import verify_api_key
from legacy_import.schemas.jobs import JobStatus, QueueStats
from legacy_import.worker.jobs import celery_app

router = APIRouter(prefix="/api/v1/jobs", tags=["jobs"], dependencies=[Depends(verify_api_key)])


def _get_redis() -> Redis:
    return Redis.from_url(settings.REDIS_URL)


def _collect_queue_stats() -> QueueStats:
    # The Redis broker keeps each queue as a list named after it
    queued = _get_redis().llen(settings.QUEUE_NAME)
    inspect = celery_app.control.inspect(timeout=1.0)
    workers = inspect.ping() or {}
    active = inspect.active() or {}
    reserved = inspect.reserved() or {}

    return QueueStats(
        queue_name=settings.QUEUE_NAME,
        queued=queued,
        active=sum(len(tasks) for tasks in active.values()),
        reserved=sum(len(tasks) for tasks in reserved.values()),
        workers=len(workers),
    )


@router.get("/queue/stats", response_model=QueueStats)
async def queue_stats():
    """Current template-extraction queue statistics."""
    try:
        return await asyncio.to_thread(_collect_queue_stats)
    except Exception as e:
        raise HTTPException(status_code=503, detail=f"Queue unavailable: {str(e)}")


def _fetch_job(job_id: str) -> JobStatus:
    result = celery_app.AsyncResult(job_id)
    state = result.state
    args = result.args or []

    return JobStatus(
        job_id=job_id,
        session_id=str(args[0]) if args else "",
        status=state.lower(),
        ended_at=result.date_done,
        error_message=str(result.result) if state == "FAILURE" else None,
        result=result.result if state == "SUCCESS" else None,
    )


@router.get("/{job_id}", response_model=JobStatus)
async def get_job_status(job_id: str):
    """
    Status of one template-extraction job.
    Celery reports unknown ids as pending, so no 404 is possible here.
    """
    try:
        return await asyncio.to_thread(_fetch_job, job_id)
    except Exception as e:
        raise HTTPException(status_code=503, detail=f"Queue unavailable: {str(e)}")
