"""
Batch entity store: session, batch and audit-log persistence helpers.
All functions take the caller's AsyncSession; the caller owns the transaction.
"""

import uuid
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from legacy_import.allocation.completion import is_batch_complete
from legacy_import.errors import ConflictError, NotFoundError
from legacy_import.models.enums import PipelineStatus
from legacy_import.models.tables import DocumentBatch, ImportAuditLog, ImportSession

logger = structlog.get_logger(__name__)


async def get_import_session(db: AsyncSession, session_id: uuid.UUID) -> ImportSession:
    """Load an import session or raise NotFoundError."""
    import_session = await db.get(ImportSession, session_id)
    if import_session is None:
        raise NotFoundError(f"Session {session_id} not found", "ERR_SESSION_NOT_FOUND")
    return import_session


async def list_batches(db: AsyncSession, session_id: uuid.UUID) -> list[DocumentBatch]:
    """All batches of a session, oldest month first."""
    result = await db.execute(
        select(DocumentBatch)
        .where(DocumentBatch.session_id == session_id)
        .order_by(DocumentBatch.month_year)
    )
    return list(result.scalars().all())


async def list_user_batches(
    db: AsyncSession, session_id: uuid.UUID, user_id: str
) -> list[DocumentBatch]:
    result = await db.execute(
        select(DocumentBatch)
        .where(DocumentBatch.session_id == session_id, DocumentBatch.assigned_to == user_id)
        .order_by(DocumentBatch.month_year)
    )
    return list(result.scalars().all())


async def get_batch(db: AsyncSession, batch_id: uuid.UUID) -> DocumentBatch:
    batch = await db.get(DocumentBatch, batch_id)
    if batch is None:
        raise NotFoundError(f"Batch {batch_id} not found", "ERR_BATCH_NOT_FOUND")
    return batch


async def claim_batch(
    db: AsyncSession,
    batch: DocumentBatch,
    to_user_id: str,
    now: datetime,
    require_incomplete: bool = False,
) -> bool:
    """
    Move a batch to `to_user_id` if it still matches the snapshot it was
    selected from (same version, and still incomplete when asked).

    Returns True when the write landed, False when the batch finished in the
    meantime. Raises ConflictError when another writer changed it.
    """
    snapshot_version = batch.version
    stmt = (
        update(DocumentBatch)
        .where(DocumentBatch.id == batch.id, DocumentBatch.version == snapshot_version)
        .values(
            assigned_to=to_user_id,
            assigned_at=now,
            version=DocumentBatch.version + 1,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if require_incomplete:
        stmt = stmt.where(
            DocumentBatch.categorized_count + DocumentBatch.skipped_count
            < DocumentBatch.document_count
        )

    result = await db.execute(stmt)
    await db.refresh(batch)

    if result.rowcount == 1:
        return True

    if require_incomplete and is_batch_complete(batch):
        logger.info(
            "batch_completed_before_reassignment",
            batch_id=str(batch.id),
            month_year=batch.month_year,
        )
        return False

    raise ConflictError(
        f"Batch {batch.month_year} was modified concurrently "
        f"(expected version {snapshot_version}, found {batch.version})",
        "ERR_BATCH_VERSION_CONFLICT",
    )


async def record_audit(
    db: AsyncSession,
    session_id: uuid.UUID,
    action: str,
    user_id: Optional[str] = None,
    details: Optional[dict] = None,
) -> ImportAuditLog:
    entry = ImportAuditLog(
        session_id=session_id,
        user_id=user_id,
        action=action,
        details=details,
    )
    db.add(entry)
    return entry


def batch_stats(batches: list[DocumentBatch]) -> dict:
    return {
        "total_batches": len(batches),
        "unassigned_count": sum(1 for b in batches if b.assigned_to is None),
        "completed_count": sum(1 for b in batches if is_batch_complete(b)),
    }


async def set_pipeline_status(
    db: AsyncSession,
    session_id: uuid.UUID,
    pipeline_status: str,
    error: Optional[str] = None,
) -> None:
    await db.execute(
        update(ImportSession)
        .where(ImportSession.id == session_id)
        .values(pipeline_status=pipeline_status, pipeline_error=error)
    )


async def mark_pipeline_failed(db: AsyncSession, session_id: uuid.UUID, error_message: str) -> None:
    """
    Discard the failed unit of work and persist pipeline_status = Failed.
    Commits on its own so the status survives the caller's rollback.
    """
    try:
        await db.rollback()
        await set_pipeline_status(db, session_id, PipelineStatus.FAILED.value, error_message[:2000])
        await db.commit()
    except Exception:
        logger.error("failed_to_mark_failure", session_id=str(session_id))
