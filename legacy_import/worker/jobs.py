"""
Celery app and job functions for template extraction.
These are the entry points that the worker calls.
"""

import structlog
from celery import Celery

from legacy_import.config import settings

logger = structlog.get_logger(__name__)

celery_app = Celery("legacy-import", broker=settings.REDIS_URL, backend=settings.REDIS_URL)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=settings.JOB_TIMEOUT_SECONDS,
    task_default_queue=settings.QUEUE_NAME,
    result_expires=86400,
    # Keep task args on the result so job status can report the session id
    result_extended=True,
    worker_hijack_root_logger=False,
)


@celery_app.task(name="legacy_import.template_extraction")
def template_extraction_job(session_id: str) -> dict:
    """
    Worker entry point. Failures are written to the session by
    extract_templates itself, so the job only fails on infrastructure errors.
    """
    import asyncio
    import uuid

    from legacy_import.observability.logging import bind_context, clear_context

    bind_context(session_id=session_id)
    logger.info("job_started")
    try:
        result = asyncio.run(_extract_async(uuid.UUID(session_id)))
        logger.info("job_completed", status=result.get("status"))
        return result
    except Exception as e:
        logger.error("job_failed", error=str(e))
        raise
    finally:
        clear_context()


def enqueue_template_extraction(session_id: str) -> str:
    """
    Publish template extraction for an import session.
    Returns the job ID.
    """
    result = template_extraction_job.apply_async(args=[session_id], queue=settings.QUEUE_NAME)
    logger.info("job_enqueued", session_id=session_id, job_id=result.id)
    return result.id


async def _extract_async(session_id) -> dict:
    from legacy_import.clustering.templates import extract_templates
    from legacy_import.models.database import close_db

    try:
        return await extract_templates(session_id)
    finally:
        # The engine is bound to this job's event loop
        await close_db()
