"""
Re-clustering of reclassified documents.

A reviewer's reclassification note is matched against the names of the
session's live clusters. Matches rejoin that cluster for another review
round; the rest are grouped into new clusters.
"""

import uuid
from dataclasses import dataclass

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from legacy_import.batches import store
from legacy_import.clustering import clusterer
from legacy_import.config import settings
from legacy_import.models.enums import ClusterStatus, PipelineStatus, ValidationStatus
from legacy_import.models.tables import DocumentCluster, ExtractedDocument
from legacy_import.observability import metrics

logger = structlog.get_logger(__name__)

# At or below this many unmatched documents, one needs-review cluster is created
SINGLE_CLUSTER_LIMIT = 3
NOTE_MIN_SAMPLES = 2


@dataclass
class ReclusterStats:
    total_reclassified: int = 0
    matched_to_existing: int = 0
    new_clusters_created: int = 0
    unmatched_docs: int = 0


def _return_to_review(document: ExtractedDocument, cluster_id: uuid.UUID) -> None:
    document.cluster_id = cluster_id
    document.validation_status = ValidationStatus.PENDING.value
    document.validated_by = None
    document.validated_at = None
    document.reclassification_round += 1


async def _new_cluster(
    db: AsyncSession,
    session_id: uuid.UUID,
    members: list[ExtractedDocument],
    name: str,
    name_en: str,
    description: str,
) -> DocumentCluster:
    cluster = DocumentCluster(
        session_id=session_id,
        suggested_name=name,
        suggested_name_en=name_en,
        description=description,
        document_count=len(members),
        sample_document_ids=[str(d.id) for d in members[: settings.CLUSTER_SAMPLE_SIZE]],
        status=ClusterStatus.PENDING.value,
    )
    db.add(cluster)
    await db.flush()
    for document in members:
        _return_to_review(document, cluster.id)
    return cluster


async def _cluster_unmatched(
    db: AsyncSession, session_id: uuid.UUID, documents: list[ExtractedDocument]
) -> int:
    if len(documents) <= SINGLE_CLUSTER_LIMIT:
        await _new_cluster(
            db, session_id, documents,
            clusterer.NEEDS_REVIEW_NAME, clusterer.NEEDS_REVIEW_NAME_EN,
            "Reclassified documents that need manual review",
        )
        return 1

    notes = [d.reclassification_note or "" for d in documents]
    vectors = clusterer.vectorize(notes)
    labels = clusterer.cluster_labels(vectors, eps=settings.CLUSTER_EPS, min_samples=NOTE_MIN_SAMPLES)
    if vectors is None:
        labels = [clusterer.NOISE] * len(documents)

    created = 0
    for label, rows in clusterer.group_by_label(labels).items():
        members = [documents[i] for i in rows]
        if label == clusterer.NOISE:
            name, name_en = clusterer.NEEDS_REVIEW_NAME, clusterer.NEEDS_REVIEW_NAME_EN
        else:
            name = name_en = clusterer.suggest_cluster_name(vectors, rows)
        await _new_cluster(db, session_id, members, name, name_en, f"Reclassified documents: {name}")
        created += 1
    return created


async def _recount(db: AsyncSession, cluster_ids: set[uuid.UUID]) -> None:
    for cluster_id in cluster_ids:
        cluster = await db.get(DocumentCluster, cluster_id)
        if cluster is None:
            continue
        cluster.document_count = await db.scalar(
            select(func.count(ExtractedDocument.id)).where(ExtractedDocument.cluster_id == cluster_id)
        ) or 0


async def recluster_session(db: AsyncSession, session_id: uuid.UUID) -> ReclusterStats:
    """Send reclassified documents back into review in a fitting cluster."""
    import_session = await store.get_import_session(db, session_id)
    import_session.pipeline_status = PipelineStatus.RECLUSTERING.value
    import_session.pipeline_error = None
    await db.flush()

    stats = ReclusterStats()
    try:
        result = await db.execute(
            select(ExtractedDocument)
            .where(
                ExtractedDocument.session_id == session_id,
                ExtractedDocument.validation_status == ValidationStatus.RECLASSIFIED.value,
            )
            .order_by(ExtractedDocument.file_name, ExtractedDocument.id)
        )
        documents = list(result.scalars().all())
        stats.total_reclassified = len(documents)

        if documents:
            clusters_result = await db.execute(
                select(DocumentCluster).where(
                    DocumentCluster.session_id == session_id,
                    DocumentCluster.is_deleted.is_(False),
                )
            )
            clusters = list(clusters_result.scalars().all())
            touched = {d.cluster_id for d in documents if d.cluster_id is not None}

            matches = clusterer.match_to_names(
                [d.reclassification_note or "" for d in documents],
                [c.approved_name or c.suggested_name for c in clusters],
                threshold=settings.RECLUSTER_MATCH_THRESHOLD,
            )
            unmatched = []
            for document, match in zip(documents, matches):
                if match is None:
                    unmatched.append(document)
                    continue
                _return_to_review(document, clusters[match].id)
                touched.add(clusters[match].id)
                stats.matched_to_existing += 1

            if unmatched:
                stats.unmatched_docs = len(unmatched)
                stats.new_clusters_created = await _cluster_unmatched(db, session_id, unmatched)
                metrics.clusters_created_total.labels(source="recluster").inc(stats.new_clusters_created)

            await db.flush()
            await _recount(db, touched)

        import_session.pipeline_status = PipelineStatus.READY_FOR_VALIDATION.value
        await db.flush()
    except Exception as e:
        logger.error("recluster_failed", session_id=str(session_id), error=str(e))
        await store.mark_pipeline_failed(db, session_id, f"{type(e).__name__}: {e}")
        raise

    logger.info(
        "recluster_completed",
        session_id=str(session_id),
        total=stats.total_reclassified,
        matched=stats.matched_to_existing,
        new_clusters=stats.new_clusters_created,
    )
    return stats
