"""
Template extraction job.
Builds one document template per approved cluster large enough to be
meaningful. Runs detached from any request and never raises: failures are
recorded on the import session.
"""

import time
import traceback
import uuid
from typing import Callable, Optional

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from legacy_import.batches import store
from legacy_import.clustering import clusterer
from legacy_import.config import settings
from legacy_import.models.enums import ClusterStatus, PipelineStatus, ValidationStatus
from legacy_import.models.tables import DocumentCluster, DocumentTemplate, ExtractedDocument
from legacy_import.observability import metrics
from legacy_import.utc import utc_now

logger = structlog.get_logger(__name__)

_IN_REVIEW = [ValidationStatus.PENDING.value, ValidationStatus.ACCEPTED.value]


async def _extractable_clusters(db: AsyncSession, session_id: uuid.UUID) -> list[DocumentCluster]:
    result = await db.execute(
        select(DocumentCluster)
        .where(
            DocumentCluster.session_id == session_id,
            DocumentCluster.status == ClusterStatus.APPROVED.value,
            DocumentCluster.is_deleted.is_(False),
            DocumentCluster.document_count >= settings.TEMPLATE_MIN_CLUSTER_SIZE,
        )
        .order_by(DocumentCluster.document_count.desc())
    )
    return list(result.scalars().all())


async def _build_for_cluster(db: AsyncSession, cluster: DocumentCluster) -> Optional[DocumentTemplate]:
    result = await db.execute(
        select(ExtractedDocument)
        .where(
            ExtractedDocument.cluster_id == cluster.id,
            ExtractedDocument.validation_status.in_(_IN_REVIEW),
        )
        .order_by(ExtractedDocument.file_name)
    )
    documents = list(result.scalars().all())
    body = clusterer.build_template(
        [d.extracted_text or "" for d in documents],
        min_support=settings.TEMPLATE_LINE_SUPPORT,
    )
    if not body:
        logger.info("template_empty", cluster_id=str(cluster.id), documents=len(documents))
        return None

    await db.execute(delete(DocumentTemplate).where(DocumentTemplate.cluster_id == cluster.id))
    template = DocumentTemplate(
        session_id=cluster.session_id,
        cluster_id=cluster.id,
        name=cluster.approved_name or cluster.suggested_name,
        name_en=cluster.suggested_name_en,
        body=body,
        source_document_count=len(documents),
        sample_document_ids=list(cluster.sample_document_ids or []),
    )
    db.add(template)
    return template


async def extract_templates(
    session_id: uuid.UUID,
    session_factory: Optional[Callable] = None,
) -> dict:
    """
    Build templates for a session with its own database session.
    On success the pipeline is Completed; on any error it is Failed with
    the error message. Returns a summary either way.
    """
    if session_factory is None:
        from legacy_import.models.database import async_session_factory
        session_factory = async_session_factory

    started_at = time.time()
    metrics.worker_jobs_active.inc()
    logger.info("template_extraction_started", session_id=str(session_id))

    try:
        async with session_factory() as db:
            try:
                import_session = await store.get_import_session(db, session_id)
                created = 0
                for cluster in await _extractable_clusters(db, session_id):
                    if await _build_for_cluster(db, cluster) is not None:
                        created += 1

                import_session.pipeline_status = PipelineStatus.COMPLETED.value
                import_session.pipeline_error = None
                import_session.pipeline_completed_at = utc_now()
                await db.commit()
            except Exception as e:
                error_msg = f"{type(e).__name__}: {e}"
                logger.error(
                    "template_extraction_failed",
                    session_id=str(session_id),
                    error=error_msg,
                    traceback=traceback.format_exc(),
                )
                await store.mark_pipeline_failed(db, session_id, error_msg)
                metrics.template_extractions_total.labels(status="failed").inc()
                return {"session_id": str(session_id), "status": PipelineStatus.FAILED.value, "error": error_msg}
    finally:
        metrics.worker_jobs_active.dec()

    duration = time.time() - started_at
    metrics.template_extraction_duration_seconds.observe(duration)
    metrics.template_extractions_total.labels(status="completed").inc()
    logger.info(
        "template_extraction_completed",
        session_id=str(session_id),
        templates=created,
        duration_ms=int(duration * 1000),
    )
    return {"session_id": str(session_id), "status": PipelineStatus.COMPLETED.value, "templates": created}
