"""
Batch creation, completion tracking and progress reporting.
"""

import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from legacy_import.allocation.completion import is_batch_complete, processed_count
from legacy_import.batches import store
from legacy_import.models.enums import CategorizationStatus, SessionStatus
from legacy_import.models.tables import DocumentBatch, ExtractedDocument
from legacy_import.observability import metrics
from legacy_import.utc import utc_now

logger = structlog.get_logger(__name__)

UNDATED_BATCH = "undated"


@dataclass
class SessionProgress:
    session_id: uuid.UUID
    total_documents: int
    categorized_count: int
    skipped_count: int
    remaining_count: int
    progress: float
    batch_count: int
    assigned_batch_count: int
    completed_batch_count: int


@dataclass
class UserSummary:
    user_id: str
    batch_count: int
    total_docs: int
    completed: int


@dataclass
class BatchesStatus:
    batches: list[DocumentBatch] = field(default_factory=list)
    user_summary: list[UserSummary] = field(default_factory=list)


def month_year_label(document: ExtractedDocument) -> str:
    if document.email_date is None:
        return UNDATED_BATCH
    return document.email_date.strftime("%Y-%m")


async def create_batches_for_session(db: AsyncSession, session_id: uuid.UUID) -> list[DocumentBatch]:
    """
    Partition a session's unbatched documents by month-year.
    Documents join an existing batch for their month when there is one.
    Returns every batch of the session.
    """
    import_session = await store.get_import_session(db, session_id)

    result = await db.execute(
        select(ExtractedDocument).where(
            ExtractedDocument.session_id == session_id,
            ExtractedDocument.batch_id.is_(None),
        )
    )
    documents = list(result.scalars().all())

    by_month: dict[str, list[ExtractedDocument]] = defaultdict(list)
    for document in documents:
        by_month[month_year_label(document)].append(document)

    existing = {b.month_year: b for b in await store.list_batches(db, session_id)}
    created = 0
    for month_year in sorted(by_month):
        batch = existing.get(month_year)
        if batch is None:
            batch = DocumentBatch(session_id=session_id, month_year=month_year, document_count=0)
            db.add(batch)
            await db.flush()
            existing[month_year] = batch
            created += 1
        members = by_month[month_year]
        for document in members:
            document.batch_id = batch.id
        batch.document_count += len(members)
        batch.categorized_count += sum(
            1 for d in members if d.status == CategorizationStatus.CATEGORIZED.value
        )
        batch.skipped_count += sum(
            1 for d in members if d.status == CategorizationStatus.SKIPPED.value
        )

    total = await db.scalar(
        select(func.count(ExtractedDocument.id)).where(ExtractedDocument.session_id == session_id)
    )
    import_session.total_documents = total or 0
    if import_session.status == SessionStatus.EXTRACTING.value:
        import_session.status = SessionStatus.IN_PROGRESS.value
    await db.flush()

    logger.info(
        "batches_created",
        session_id=str(session_id),
        documents=len(documents),
        created=created,
        total_batches=len(existing),
    )
    return await store.list_batches(db, session_id)


async def check_and_mark_batch_complete(db: AsyncSession, batch_id: uuid.UUID) -> bool:
    """
    Stamp completed_at the first time a batch becomes complete.
    Returns whether the batch is complete; False for an unknown batch.
    """
    batch = await db.get(DocumentBatch, batch_id)
    if batch is None:
        return False
    if not is_batch_complete(batch):
        return False
    if batch.completed_at is None:
        batch.completed_at = utc_now()
        await db.flush()
        metrics.batches_completed_total.inc()
        logger.info("batch_completed", batch_id=str(batch_id), month_year=batch.month_year)
    return True


async def _status_counts(db: AsyncSession, *criteria) -> dict[str, int]:
    result = await db.execute(
        select(ExtractedDocument.status, func.count(ExtractedDocument.id))
        .where(*criteria)
        .group_by(ExtractedDocument.status)
    )
    return {row[0]: row[1] for row in result.all()}


async def update_batch_stats(db: AsyncSession, batch_id: uuid.UUID) -> DocumentBatch:
    """Recompute a batch's counters from its documents."""
    batch = await store.get_batch(db, batch_id)
    counts = await _status_counts(db, ExtractedDocument.batch_id == batch_id)
    batch.categorized_count = counts.get(CategorizationStatus.CATEGORIZED.value, 0)
    batch.skipped_count = counts.get(CategorizationStatus.SKIPPED.value, 0)
    await db.flush()
    await check_and_mark_batch_complete(db, batch_id)
    return batch


async def update_session_stats(db: AsyncSession, session_id: uuid.UUID) -> None:
    """Recompute a session's aggregate counters from its documents."""
    import_session = await store.get_import_session(db, session_id)
    counts = await _status_counts(db, ExtractedDocument.session_id == session_id)
    import_session.categorized_count = counts.get(CategorizationStatus.CATEGORIZED.value, 0)
    import_session.skipped_count = counts.get(CategorizationStatus.SKIPPED.value, 0)
    await db.flush()


async def get_session_progress(db: AsyncSession, session_id: uuid.UUID) -> SessionProgress:
    import_session = await store.get_import_session(db, session_id)
    batches = await store.list_batches(db, session_id)

    total = import_session.total_documents
    done = import_session.categorized_count + import_session.skipped_count
    progress = round(done / total * 100, 2) if total > 0 else 0

    return SessionProgress(
        session_id=session_id,
        total_documents=total,
        categorized_count=import_session.categorized_count,
        skipped_count=import_session.skipped_count,
        remaining_count=max(total - done, 0),
        progress=progress,
        batch_count=len(batches),
        assigned_batch_count=sum(1 for b in batches if b.assigned_to is not None),
        completed_batch_count=sum(1 for b in batches if is_batch_complete(b)),
    )


async def get_all_batches_status(
    db: AsyncSession,
    session_id: uuid.UUID,
    user_id: Optional[str] = None,
) -> BatchesStatus:
    """Every batch of the session plus per-user totals."""
    batches = await store.list_batches(db, session_id)
    if user_id is not None:
        batches = [b for b in batches if b.assigned_to == user_id]

    summary: dict[str, UserSummary] = {}
    for batch in batches:
        if batch.assigned_to is None:
            continue
        entry = summary.setdefault(
            batch.assigned_to,
            UserSummary(user_id=batch.assigned_to, batch_count=0, total_docs=0, completed=0),
        )
        entry.batch_count += 1
        entry.total_docs += batch.document_count
        entry.completed += processed_count(batch)

    return BatchesStatus(batches=batches, user_summary=list(summary.values()))
