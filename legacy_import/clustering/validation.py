"""
Cluster validation state machine.

Clusters move Pending -> Approved | Rejected, and any cluster can be
soft-deleted, which marks every member document Deleted. Documents move
Pending -> Accepted | Deleted | Reclassified. Once no cluster of a session
is pending, template extraction is triggered as a background job.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from legacy_import.batches import store
from legacy_import.config import settings
from legacy_import.errors import BadRequestError, NotFoundError, ValidationError
from legacy_import.models.enums import (
    AuditAction,
    ClusterAction,
    ClusterStatus,
    DocumentAction,
    PipelineStatus,
    ValidationStatus,
)
from legacy_import.models.tables import DocumentCluster, ExtractedDocument, ImportSession
from legacy_import.observability import metrics
from legacy_import.utc import utc_now
from legacy_import.worker.dispatch import ExtractionDispatcher

logger = structlog.get_logger(__name__)

MAX_SAMPLE_DOCUMENTS = 5

_DOCUMENT_STATUS = {
    DocumentAction.ACCEPT: ValidationStatus.ACCEPTED,
    DocumentAction.DELETE: ValidationStatus.DELETED,
    DocumentAction.RECLASSIFY: ValidationStatus.RECLASSIFIED,
}


@dataclass
class ClusterActionResult:
    success: bool
    cluster_id: uuid.UUID
    status: Optional[str]
    all_validated: bool
    extraction_triggered: bool


@dataclass
class MergeResult:
    success: bool
    merged_cluster_id: uuid.UUID
    document_count: int
    merged_count: int


def _parse_cluster_action(action: str) -> ClusterAction:
    try:
        return ClusterAction(action)
    except ValueError:
        raise BadRequestError(f"Invalid cluster action: {action}", "ERR_INVALID_ACTION")


def _parse_document_action(action: str, note: Optional[str]) -> DocumentAction:
    try:
        parsed = DocumentAction(action)
    except ValueError:
        raise BadRequestError(f"Invalid document action: {action}", "ERR_INVALID_ACTION")
    if parsed == DocumentAction.RECLASSIFY and not (note or "").strip():
        raise ValidationError("A reclassification note is required", "ERR_NOTE_REQUIRED")
    return parsed


async def get_cluster(db: AsyncSession, cluster_id: uuid.UUID) -> DocumentCluster:
    cluster = await db.get(DocumentCluster, cluster_id)
    if cluster is None:
        raise NotFoundError(f"Cluster {cluster_id} not found", "ERR_CLUSTER_NOT_FOUND")
    return cluster


async def list_clusters(
    db: AsyncSession, session_id: uuid.UUID, include_deleted: bool = False
) -> list[DocumentCluster]:
    """Clusters of a session, largest first. Deleted clusters only on request."""
    await store.get_import_session(db, session_id)
    query = select(DocumentCluster).where(DocumentCluster.session_id == session_id)
    if not include_deleted:
        query = query.where(DocumentCluster.is_deleted.is_(False))
    result = await db.execute(
        query.order_by(DocumentCluster.document_count.desc(), DocumentCluster.suggested_name)
    )
    return list(result.scalars().all())


async def count_pending_clusters(db: AsyncSession, session_id: uuid.UUID) -> int:
    return await db.scalar(
        select(func.count(DocumentCluster.id)).where(
            DocumentCluster.session_id == session_id,
            DocumentCluster.status == ClusterStatus.PENDING.value,
            DocumentCluster.is_deleted.is_(False),
        )
    ) or 0


async def count_extractable_clusters(db: AsyncSession, session_id: uuid.UUID) -> int:
    return await db.scalar(
        select(func.count(DocumentCluster.id)).where(
            DocumentCluster.session_id == session_id,
            DocumentCluster.status == ClusterStatus.APPROVED.value,
            DocumentCluster.is_deleted.is_(False),
            DocumentCluster.document_count >= settings.TEMPLATE_MIN_CLUSTER_SIZE,
        )
    ) or 0


async def check_and_trigger_extraction(
    db: AsyncSession,
    session_id: uuid.UUID,
    dispatcher: ExtractionDispatcher,
) -> tuple[bool, bool]:
    """
    Fire template extraction once the session has no pending cluster.

    The Extracting flip is a single conditional update, so at most one
    caller wins it. The flip is committed before the job is submitted.
    Returns (all_validated, extraction_triggered).
    """
    if await count_pending_clusters(db, session_id) > 0:
        return False, False

    if await count_extractable_clusters(db, session_id) == 0:
        logger.info("extraction_skipped_no_qualifying_clusters", session_id=str(session_id))
        return True, False

    flipped = await db.execute(
        update(ImportSession)
        .where(
            ImportSession.id == session_id,
            ImportSession.pipeline_status.not_in(
                [PipelineStatus.EXTRACTING.value, PipelineStatus.COMPLETED.value]
            ),
        )
        .values(pipeline_status=PipelineStatus.EXTRACTING.value, pipeline_error=None)
        .execution_options(synchronize_session=False)
    )
    if flipped.rowcount != 1:
        return True, False
    await db.commit()

    try:
        job_id = await dispatcher.submit(session_id)
    except Exception as e:
        logger.error("extraction_submit_failed", session_id=str(session_id), error=str(e))
        metrics.template_extractions_total.labels(status="submit_failed").inc()
        await store.set_pipeline_status(
            db, session_id, PipelineStatus.FAILED.value, f"Could not submit extraction job: {e}"
        )
        await db.commit()
        return True, False

    await db.execute(
        update(ImportSession)
        .where(ImportSession.id == session_id)
        .values(extraction_job_id=job_id)
    )
    metrics.template_extractions_total.labels(status="submitted").inc()
    logger.info(
        "extraction_triggered",
        session_id=str(session_id),
        job_id=job_id,
        backend=dispatcher.backend_name,
    )
    return True, True


async def delete_cluster(db: AsyncSession, cluster_id: uuid.UUID, user_id: str) -> DocumentCluster:
    """Soft-delete a cluster and mark every member document Deleted."""
    cluster = await get_cluster(db, cluster_id)
    if cluster.is_deleted:
        raise BadRequestError("Cluster is already deleted", "ERR_CLUSTER_DELETED")

    now = utc_now()
    cluster.is_deleted = True
    cluster.deleted_by = user_id
    cluster.deleted_at = now

    cascaded = await db.execute(
        update(ExtractedDocument)
        .where(ExtractedDocument.cluster_id == cluster_id)
        .values(
            validation_status=ValidationStatus.DELETED.value,
            validated_by=user_id,
            validated_at=now,
        )
    )
    await store.record_audit(
        db,
        cluster.session_id,
        AuditAction.CLUSTER_DELETED.value,
        user_id=user_id,
        details={"cluster_id": str(cluster_id), "documents": cascaded.rowcount},
    )
    await db.flush()

    logger.info(
        "cluster_deleted",
        session_id=str(cluster.session_id),
        cluster_id=str(cluster_id),
        documents=cascaded.rowcount,
    )
    return cluster


async def cluster_action(
    db: AsyncSession,
    cluster_id: uuid.UUID,
    action: str,
    user_id: str,
    dispatcher: ExtractionDispatcher,
    approved_name: Optional[str] = None,
) -> ClusterActionResult:
    """Approve, reject or delete a cluster, then re-check the session's pending clusters."""
    parsed = _parse_cluster_action(action)
    cluster = await get_cluster(db, cluster_id)

    if parsed == ClusterAction.DELETE:
        await delete_cluster(db, cluster_id, user_id)
        status = None
    else:
        if cluster.is_deleted:
            raise BadRequestError("Cluster has been deleted", "ERR_CLUSTER_DELETED")
        if parsed == ClusterAction.APPROVE:
            cluster.status = ClusterStatus.APPROVED.value
            cluster.approved_name = (approved_name or "").strip() or cluster.suggested_name
        else:
            cluster.status = ClusterStatus.REJECTED.value
        cluster.validated_by = user_id
        cluster.validated_at = utc_now()
        await db.flush()
        status = cluster.status

    metrics.cluster_actions_total.labels(action=parsed.value).inc()
    logger.info(
        "cluster_action",
        session_id=str(cluster.session_id),
        cluster_id=str(cluster_id),
        action=parsed.value,
        user_id=user_id,
    )

    all_validated, triggered = await check_and_trigger_extraction(db, cluster.session_id, dispatcher)
    return ClusterActionResult(
        success=True,
        cluster_id=cluster_id,
        status=status,
        all_validated=all_validated,
        extraction_triggered=triggered,
    )


async def merge_clusters(
    db: AsyncSession,
    cluster_ids: list[uuid.UUID],
    new_name: str,
    user_id: str,
    new_name_en: Optional[str] = None,
    description: Optional[str] = None,
) -> MergeResult:
    """
    Merge clusters into the first one of `cluster_ids`.
    The merged cluster goes back to Pending; the other rows are removed.
    """
    ids = list(dict.fromkeys(cluster_ids))
    if len(ids) < 2:
        raise BadRequestError("At least two distinct clusters are required to merge", "ERR_MERGE_TOO_FEW")
    name = (new_name or "").strip()
    if not name:
        raise BadRequestError("A name for the merged cluster is required", "ERR_MERGE_NAME_REQUIRED")

    result = await db.execute(select(DocumentCluster).where(DocumentCluster.id.in_(ids)))
    found = {c.id: c for c in result.scalars().all()}
    missing = [str(i) for i in ids if i not in found]
    if missing:
        raise BadRequestError(f"Clusters not found: {', '.join(missing)}", "ERR_CLUSTER_NOT_FOUND")

    clusters = [found[i] for i in ids]
    if any(c.is_deleted for c in clusters):
        raise BadRequestError("Deleted clusters cannot be merged", "ERR_CLUSTER_DELETED")
    if len({c.session_id for c in clusters}) > 1:
        raise BadRequestError("Clusters belong to different sessions", "ERR_CROSS_SESSION_MERGE")

    target, sources = clusters[0], clusters[1:]
    source_ids = [c.id for c in sources]

    await db.execute(
        update(ExtractedDocument)
        .where(ExtractedDocument.cluster_id.in_(source_ids))
        .values(cluster_id=target.id)
    )

    samples: list[str] = []
    for cluster in clusters:
        samples.extend(cluster.sample_document_ids or [])
    target.sample_document_ids = list(dict.fromkeys(samples))[:MAX_SAMPLE_DOCUMENTS]
    target.document_count = sum(c.document_count for c in clusters)
    target.suggested_name = name
    if new_name_en is not None:
        target.suggested_name_en = new_name_en.strip() or None
    if description is not None:
        target.description = description
    target.approved_name = None
    target.status = ClusterStatus.PENDING.value
    target.validated_by = None
    target.validated_at = None

    for cluster in sources:
        await db.delete(cluster)

    await store.record_audit(
        db,
        target.session_id,
        AuditAction.CLUSTERS_MERGED.value,
        user_id=user_id,
        details={
            "target_id": str(target.id),
            "source_ids": [str(s) for s in source_ids],
            "new_name": name,
        },
    )
    await db.flush()

    metrics.cluster_actions_total.labels(action="merge").inc()
    logger.info(
        "clusters_merged",
        session_id=str(target.session_id),
        target_id=str(target.id),
        merged_count=len(sources),
        document_count=target.document_count,
    )
    return MergeResult(
        success=True,
        merged_cluster_id=target.id,
        document_count=target.document_count,
        merged_count=len(sources),
    )


async def list_cluster_documents(
    db: AsyncSession,
    cluster_id: uuid.UUID,
    validation_status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[ExtractedDocument], int]:
    """One page of a cluster's documents and the total matching count."""
    await get_cluster(db, cluster_id)
    query = select(ExtractedDocument).where(ExtractedDocument.cluster_id == cluster_id)
    if validation_status:
        try:
            ValidationStatus(validation_status)
        except ValueError:
            raise BadRequestError(f"Invalid validation status: {validation_status}", "ERR_INVALID_STATUS")
        query = query.where(ExtractedDocument.validation_status == validation_status)

    total = await db.scalar(select(func.count()).select_from(query.subquery())) or 0
    result = await db.execute(
        query.order_by(ExtractedDocument.file_name, ExtractedDocument.id).offset(offset).limit(limit)
    )
    return list(result.scalars().all()), total


def _apply_document_action(
    document: ExtractedDocument, action: DocumentAction, user_id: str, note: Optional[str]
) -> None:
    document.validation_status = _DOCUMENT_STATUS[action].value
    document.validated_by = user_id
    document.validated_at = utc_now()
    if action == DocumentAction.RECLASSIFY:
        document.reclassification_note = note.strip()


async def document_action(
    db: AsyncSession,
    cluster_id: uuid.UUID,
    document_id: uuid.UUID,
    action: str,
    user_id: str,
    note: Optional[str] = None,
) -> ExtractedDocument:
    """Accept, delete or reclassify one document of a cluster."""
    parsed = _parse_document_action(action, note)
    cluster = await get_cluster(db, cluster_id)
    if cluster.is_deleted:
        raise BadRequestError("Cluster has been deleted", "ERR_CLUSTER_DELETED")

    document = await db.get(ExtractedDocument, document_id)
    if document is None:
        raise NotFoundError(f"Document {document_id} not found", "ERR_DOCUMENT_NOT_FOUND")
    if document.cluster_id != cluster_id:
        raise BadRequestError("Document does not belong to this cluster", "ERR_DOCUMENT_NOT_IN_CLUSTER")

    _apply_document_action(document, parsed, user_id, note)
    await db.flush()

    metrics.document_validation_actions_total.labels(action=parsed.value).inc()
    logger.info(
        "document_validated",
        cluster_id=str(cluster_id),
        document_id=str(document_id),
        action=parsed.value,
    )
    return document


async def bulk_document_action(
    db: AsyncSession,
    cluster_id: uuid.UUID,
    document_ids: list[uuid.UUID],
    action: str,
    user_id: str,
    note: Optional[str] = None,
) -> int:
    """
    Apply one action to many documents of a cluster.
    Every id must belong to the cluster, otherwise nothing is written.
    """
    parsed = _parse_document_action(action, note)
    ids = list(dict.fromkeys(document_ids))
    if not ids:
        raise BadRequestError("No document ids supplied", "ERR_NO_DOCUMENTS")
    cluster = await get_cluster(db, cluster_id)
    if cluster.is_deleted:
        raise BadRequestError("Cluster has been deleted", "ERR_CLUSTER_DELETED")

    result = await db.execute(
        select(ExtractedDocument).where(
            ExtractedDocument.id.in_(ids),
            ExtractedDocument.cluster_id == cluster_id,
        )
    )
    documents = list(result.scalars().all())
    if len(documents) != len(ids):
        found = {d.id for d in documents}
        outside = [str(i) for i in ids if i not in found]
        raise BadRequestError(
            f"Documents not in this cluster: {', '.join(outside)}",
            "ERR_DOCUMENT_NOT_IN_CLUSTER",
        )

    for document in documents:
        _apply_document_action(document, parsed, user_id, note)
    await db.flush()

    metrics.document_validation_actions_total.labels(action=parsed.value).inc(len(documents))
    logger.info(
        "documents_validated",
        cluster_id=str(cluster_id),
        action=parsed.value,
        count=len(documents),
    )
    return len(documents)
