"""
Session clustering run.
Groups a session's uncategorized documents into clusters for human validation.
"""

import uuid
from dataclasses import dataclass

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from legacy_import.batches import store
from legacy_import.clustering import clusterer
from legacy_import.config import settings
from legacy_import.errors import BadRequestError
from legacy_import.models.enums import CategorizationStatus, ClusterStatus, PipelineStatus, ValidationStatus
from legacy_import.models.tables import DocumentCluster, ExtractedDocument
from legacy_import.observability import metrics

logger = structlog.get_logger(__name__)


@dataclass
class ClusteringResult:
    session_id: uuid.UUID
    cluster_count: int
    clustered_documents: int
    needs_review_documents: int


def document_text(document: ExtractedDocument) -> str:
    parts = [document.email_subject or "", (document.extracted_text or "")[: settings.CLUSTER_TEXT_CHARS]]
    return "\n".join(p for p in parts if p)


def _new_cluster(
    session_id: uuid.UUID,
    members: list[ExtractedDocument],
    name: str,
    name_en: str,
    description: str,
    samples: list[ExtractedDocument],
) -> DocumentCluster:
    return DocumentCluster(
        session_id=session_id,
        suggested_name=name,
        suggested_name_en=name_en,
        description=description,
        document_count=len(members),
        sample_document_ids=[str(d.id) for d in samples[: settings.CLUSTER_SAMPLE_SIZE]],
        status=ClusterStatus.PENDING.value,
    )


async def _attach(db: AsyncSession, cluster: DocumentCluster, members: list[ExtractedDocument]) -> None:
    db.add(cluster)
    await db.flush()
    for document in members:
        document.cluster_id = cluster.id
        document.validation_status = ValidationStatus.PENDING.value


async def run_clustering(db: AsyncSession, session_id: uuid.UUID) -> ClusteringResult:
    """
    Cluster the session's uncategorized, unclustered documents.
    Runs once per session; documents DBSCAN leaves as noise land in a
    single needs-review cluster.
    """
    import_session = await store.get_import_session(db, session_id)

    live = await db.scalar(
        select(func.count(DocumentCluster.id)).where(
            DocumentCluster.session_id == session_id,
            DocumentCluster.is_deleted.is_(False),
        )
    )
    if live:
        raise BadRequestError("Session has already been clustered", "ERR_ALREADY_CLUSTERED")

    import_session.pipeline_status = PipelineStatus.CLUSTERING.value
    import_session.pipeline_error = None
    await db.flush()

    result = await db.execute(
        select(ExtractedDocument)
        .where(
            ExtractedDocument.session_id == session_id,
            ExtractedDocument.status == CategorizationStatus.UNCATEGORIZED.value,
            ExtractedDocument.cluster_id.is_(None),
        )
        .order_by(ExtractedDocument.created_at, ExtractedDocument.file_name)
    )
    documents = [d for d in result.scalars().all() if document_text(d).strip()]

    logger.info("clustering_started", session_id=str(session_id), documents=len(documents))

    try:
        with metrics.clustering_duration_seconds.time():
            vectors = clusterer.vectorize(
                [document_text(d) for d in documents], max_features=settings.CLUSTER_MAX_FEATURES
            )
            labels = clusterer.cluster_labels(
                vectors, eps=settings.CLUSTER_EPS, min_samples=settings.CLUSTER_MIN_SAMPLES
            )
            if vectors is None:
                labels = [clusterer.NOISE] * len(documents)

            cluster_count = 0
            noise: list[ExtractedDocument] = []
            for label, rows in clusterer.group_by_label(labels).items():
                members = [documents[i] for i in rows]
                if label == clusterer.NOISE:
                    noise = members
                    continue
                name = clusterer.suggest_cluster_name(vectors, rows)
                samples = [documents[i] for i in clusterer.nearest_to_centroid(
                    vectors, rows, k=settings.CLUSTER_SAMPLE_SIZE
                )]
                cluster = _new_cluster(
                    session_id, members, name, name,
                    f"{len(members)} documents grouped by content similarity", samples,
                )
                await _attach(db, cluster, members)
                cluster_count += 1

            if noise:
                cluster = _new_cluster(
                    session_id, noise,
                    clusterer.NEEDS_REVIEW_NAME, clusterer.NEEDS_REVIEW_NAME_EN,
                    "Documents that did not fit any cluster", noise,
                )
                await _attach(db, cluster, noise)
                metrics.clusters_created_total.labels(source="needs_review").inc()

            import_session.pipeline_status = PipelineStatus.READY_FOR_VALIDATION.value
            await db.flush()
    except Exception as e:
        logger.error("clustering_failed", session_id=str(session_id), error=str(e))
        await store.mark_pipeline_failed(db, session_id, f"{type(e).__name__}: {e}")
        raise

    if cluster_count:
        metrics.clusters_created_total.labels(source="clustering").inc(cluster_count)
    logger.info(
        "clustering_completed",
        session_id=str(session_id),
        clusters=cluster_count,
        needs_review=len(noise),
    )
    return ClusteringResult(
        session_id=session_id,
        cluster_count=cluster_count + (1 if noise else 0),
        clustered_documents=len(documents) - len(noise),
        needs_review_documents=len(noise),
    )
