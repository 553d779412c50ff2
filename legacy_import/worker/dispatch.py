"""
Submission of the template-extraction job.
The API never awaits the job; it hands the session id to a dispatcher
and returns.
"""

import asyncio
import uuid
from abc import ABC, abstractmethod
from typing import Callable, Optional

import structlog

from legacy_import.config import settings

logger = structlog.get_logger(__name__)


class ExtractionDispatcher(ABC):
    """
    Abstract base class for template-extraction job submission.

    Every dispatcher must:
    1. Accept a session id and return a job id without waiting for the job
    2. Report its backend name
    3. Raise on submission failure (the caller records it on the session)
    """

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """'celery' or 'inline'"""
        ...

    @abstractmethod
    async def submit(self, session_id: uuid.UUID) -> str:
        """Submit extraction for one session. Returns the job id."""
        ...


class CeleryDispatcher(ExtractionDispatcher):
    """Publish to the Celery queue consumed by `python -m legacy_import.worker.runner`."""

    @property
    def backend_name(self) -> str:
        return "celery"

    async def submit(self, session_id: uuid.UUID) -> str:
        from legacy_import.worker import jobs

        # Publishing blocks on the broker connection
        return await asyncio.to_thread(jobs.enqueue_template_extraction, str(session_id))


class InlineDispatcher(ExtractionDispatcher):
    """
    Run the job as an asyncio task inside the API process.
    Tasks are tracked until they finish so they are not garbage collected.
    """

    def __init__(self, session_factory: Optional[Callable] = None):
        self._session_factory = session_factory
        self._tasks: set[asyncio.Task] = set()

    @property
    def backend_name(self) -> str:
        return "inline"

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def submit(self, session_id: uuid.UUID) -> str:
        from legacy_import.clustering.templates import extract_templates

        job_id = f"inline-{uuid.uuid4()}"
        task = asyncio.create_task(
            extract_templates(session_id, self._session_factory),
            name=job_id,
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info("job_started_inline", session_id=str(session_id), job_id=job_id)
        return job_id

    async def drain(self) -> None:
        """Wait for every submitted task. Used on shutdown."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)


_dispatcher: Optional[ExtractionDispatcher] = None


def get_dispatcher() -> ExtractionDispatcher:
    """Get or create the dispatcher for the configured EXTRACTION_BACKEND."""
    global _dispatcher
    if _dispatcher is None:
        backend = settings.EXTRACTION_BACKEND.lower()
        if backend == "inline":
            _dispatcher = InlineDispatcher()
        elif backend == "celery":
            _dispatcher = CeleryDispatcher()
        else:
            raise ValueError(f"Unknown EXTRACTION_BACKEND: {settings.EXTRACTION_BACKEND}")
    return _dispatcher
