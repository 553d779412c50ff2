"""
Document categorization and per-session category management.
Counters on the batch, the session and the categories are adjusted in the
same unit of work as the document itself.
"""

import uuid
from collections import defaultdict
from typing import Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from legacy_import.batches import store
from legacy_import.batches.progress import check_and_mark_batch_complete
from legacy_import.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from legacy_import.models.enums import AuditAction, CategorizationStatus
from legacy_import.models.tables import ExtractedDocument, ImportCategory
from legacy_import.observability import metrics
from legacy_import.utc import utc_now

logger = structlog.get_logger(__name__)

CATEGORIZED = CategorizationStatus.CATEGORIZED.value
SKIPPED = CategorizationStatus.SKIPPED.value
UNCATEGORIZED = CategorizationStatus.UNCATEGORIZED.value


def normalize_category_name(name: Optional[str]) -> str:
    """Trim surrounding whitespace. Case and diacritics are kept."""
    return (name or "").strip()


def find_similar_categories(categories: list[ImportCategory]) -> list[list[ImportCategory]]:
    """Groups of categories whose names differ only by case or spacing."""
    groups: dict[str, list[ImportCategory]] = defaultdict(list)
    for category in categories:
        key = " ".join(category.name.split()).casefold()
        groups[key].append(category)
    return [group for group in groups.values() if len(group) > 1]


async def create_category(
    db: AsyncSession, session_id: uuid.UUID, name: str, user_id: str
) -> ImportCategory:
    """
    Create a category for the session.
    An existing category with the same name is returned instead of a duplicate.
    """
    clean = normalize_category_name(name)
    if not clean:
        raise BadRequestError("Category name must not be empty", "ERR_EMPTY_CATEGORY_NAME")

    await store.get_import_session(db, session_id)

    result = await db.execute(
        select(ImportCategory).where(
            ImportCategory.session_id == session_id,
            ImportCategory.name == clean,
        )
    )
    existing = result.scalar_one_or_none()
    if existing is not None:
        return existing

    category = ImportCategory(session_id=session_id, name=clean, created_by=user_id, document_count=0)
    db.add(category)
    await db.flush()

    logger.info("category_created", session_id=str(session_id), category_id=str(category.id), name=clean)
    return category


async def list_categories(db: AsyncSession, session_id: uuid.UUID) -> list[ImportCategory]:
    """Active categories, most used first, then by name."""
    await store.get_import_session(db, session_id)
    result = await db.execute(
        select(ImportCategory)
        .where(ImportCategory.session_id == session_id, ImportCategory.merged_into.is_(None))
        .order_by(ImportCategory.document_count.desc(), ImportCategory.name)
    )
    return list(result.scalars().all())


async def _active_category(
    db: AsyncSession, session_id: uuid.UUID, category_id: uuid.UUID
) -> ImportCategory:
    category = await db.get(ImportCategory, category_id)
    if category is None or category.session_id != session_id:
        raise NotFoundError(f"Category {category_id} not found", "ERR_CATEGORY_NOT_FOUND")
    if category.merged_into is not None:
        raise BadRequestError(
            f"Category {category.name} was merged and cannot be used",
            "ERR_CATEGORY_MERGED",
        )
    return category


def _adjust(counts: dict[str, int], status: str, delta: int) -> None:
    if status in counts:
        counts[status] += delta


async def categorize_document(
    db: AsyncSession,
    document_id: uuid.UUID,
    user_id: str,
    category_id: Optional[uuid.UUID] = None,
    skip: bool = False,
) -> ExtractedDocument:
    """
    Categorize or skip one document on behalf of the owner of its batch.

    Re-categorizing moves one count from the old category to the new one.
    Refuses any write that would leave categorized + skipped above the
    batch's document count.
    """
    document = await db.get(ExtractedDocument, document_id)
    if document is None:
        raise NotFoundError(f"Document {document_id} not found", "ERR_DOCUMENT_NOT_FOUND")
    if document.batch_id is None:
        raise BadRequestError("Document has not been assigned to a batch yet", "ERR_DOCUMENT_NOT_BATCHED")

    batch = await store.get_batch(db, document.batch_id)
    if batch.assigned_to != user_id:
        raise ForbiddenError("Only the paralegal owning this batch can categorize it", "ERR_NOT_BATCH_OWNER")

    if skip:
        new_status, new_category = SKIPPED, None
    else:
        if category_id is None:
            raise BadRequestError("category_id is required unless skipping", "ERR_CATEGORY_REQUIRED")
        new_status = CATEGORIZED
        new_category = await _active_category(db, document.session_id, category_id)

    old_status = document.status
    old_category_id = document.category_id
    new_category_id = new_category.id if new_category else None

    if old_status == UNCATEGORIZED and batch.categorized_count + batch.skipped_count >= batch.document_count:
        raise ConflictError(
            f"Batch {batch.month_year} already has every document processed",
            "ERR_BATCH_COUNT_OVERFLOW",
        )

    import_session = await store.get_import_session(db, document.session_id)
    batch_counts = {CATEGORIZED: batch.categorized_count, SKIPPED: batch.skipped_count}
    session_counts = {CATEGORIZED: import_session.categorized_count, SKIPPED: import_session.skipped_count}
    for counts in (batch_counts, session_counts):
        _adjust(counts, old_status, -1)
        _adjust(counts, new_status, +1)

    batch.categorized_count = max(batch_counts[CATEGORIZED], 0)
    batch.skipped_count = max(batch_counts[SKIPPED], 0)
    import_session.categorized_count = max(session_counts[CATEGORIZED], 0)
    import_session.skipped_count = max(session_counts[SKIPPED], 0)

    if old_category_id != new_category_id:
        if old_category_id is not None:
            old_category = await db.get(ImportCategory, old_category_id)
            if old_category is not None:
                old_category.document_count = max(old_category.document_count - 1, 0)
        if new_category is not None:
            new_category.document_count += 1

    document.status = new_status
    document.category_id = new_category_id
    document.categorized_by = user_id
    document.categorized_at = utc_now()
    await db.flush()

    metrics.documents_categorized_total.labels(status=new_status).inc()
    logger.info(
        "document_categorized",
        document_id=str(document_id),
        batch_id=str(batch.id),
        status=new_status,
        previous_status=old_status,
        category_id=str(new_category_id) if new_category_id else None,
    )

    await check_and_mark_batch_complete(db, batch.id)
    return document


async def merge_categories(
    db: AsyncSession,
    session_id: uuid.UUID,
    target_id: uuid.UUID,
    source_ids: list[uuid.UUID],
    user_id: str,
) -> ImportCategory:
    """Fold source categories into the target; their documents move with them."""
    sources = [sid for sid in dict.fromkeys(source_ids) if sid != target_id]
    if not sources:
        raise BadRequestError("At least one source category distinct from the target is required")

    await store.get_import_session(db, session_id)

    target = await db.get(ImportCategory, target_id)
    if target is None or target.session_id != session_id:
        raise BadRequestError("Target category not found", "ERR_CATEGORY_NOT_FOUND")
    if target.merged_into is not None:
        raise BadRequestError("Target category has already been merged", "ERR_CATEGORY_MERGED")

    result = await db.execute(
        select(ImportCategory).where(
            ImportCategory.id.in_(sources),
            ImportCategory.session_id == session_id,
            ImportCategory.merged_into.is_(None),
        )
    )
    source_categories = list(result.scalars().all())
    if len(source_categories) != len(sources):
        raise BadRequestError(
            "Some source categories were not found or are already merged",
            "ERR_CATEGORY_NOT_FOUND",
        )

    moved = await db.execute(
        update(ExtractedDocument)
        .where(ExtractedDocument.category_id.in_(sources))
        .values(category_id=target_id)
    )
    moved_count = sum(c.document_count for c in source_categories)
    target.document_count += moved_count
    for category in source_categories:
        category.merged_into = target_id
        category.document_count = 0

    await store.record_audit(
        db,
        session_id,
        AuditAction.CATEGORIES_MERGED.value,
        user_id=user_id,
        details={
            "target_id": str(target_id),
            "source_ids": [str(s) for s in sources],
            "documents_moved": moved.rowcount,
        },
    )
    await db.flush()

    logger.info(
        "categories_merged",
        session_id=str(session_id),
        target_id=str(target_id),
        source_count=len(sources),
        documents_moved=moved.rowcount,
    )
    return target
