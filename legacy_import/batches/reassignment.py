"""
Reassignment orchestrator.

Combines the stall detector, completion evaluator and allocation policy to
move batches between paralegals, either to one requested user or by
rebalancing stalled and unassigned work across users who have finished.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from legacy_import.allocation.policy import (
    PlannedMove,
    fair_share,
    plan_auto_rebalance,
    select_for_target,
    stalled_batches,
    unassigned_batches,
)
from legacy_import.allocation.completion import remaining_count
from legacy_import.allocation.stall_detector import ReassignmentReport, build_reassignment_report
from legacy_import.batches import store
from legacy_import.config import settings
from legacy_import.errors import BadRequestError, ConflictError
from legacy_import.models.enums import AuditAction
from legacy_import.models.tables import DocumentBatch
from legacy_import.observability import metrics
from legacy_import.utc import utc_now

logger = structlog.get_logger(__name__)


@dataclass
class ReassignedBatch:
    batch_id: uuid.UUID
    month_year: str
    from_user_id: Optional[str]
    to_user_id: str


@dataclass
class ReassignmentResult:
    reassigned_count: int
    reassigned_batches: list[ReassignedBatch] = field(default_factory=list)
    stats: dict = field(default_factory=dict)


@dataclass
class UserAllocation:
    user_id: str
    batches: list[DocumentBatch]
    total_documents: int
    categorized_count: int
    skipped_count: int
    remaining_count: int
    newly_assigned: int = 0


def _check_stalled_hours(stalled_hours: float) -> None:
    if stalled_hours <= 0:
        raise BadRequestError("stalled_hours must be positive", "ERR_INVALID_STALLED_HOURS")


async def get_reassignment_info(
    db: AsyncSession,
    session_id: uuid.UUID,
    stalled_hours: float = settings.STALLED_HOURS_DEFAULT,
    now: Optional[datetime] = None,
) -> ReassignmentReport:
    """Read-only view of stalled batches, finished users and unassigned work."""
    _check_stalled_hours(stalled_hours)
    await store.get_import_session(db, session_id)
    batches = await store.list_batches(db, session_id)

    report = build_reassignment_report(batches, now or utc_now(), stalled_hours)
    metrics.stalled_batches.set(len(report.stalled_batches))
    return report


async def _apply_moves(
    db: AsyncSession,
    session_id: uuid.UUID,
    moves: list[PlannedMove],
    now: datetime,
    actor_id: Optional[str],
    mode: str,
) -> list[ReassignedBatch]:
    applied: list[ReassignedBatch] = []
    for move in moves:
        batch = move.batch
        try:
            claimed = await store.claim_batch(
                db,
                batch,
                move.to_user_id,
                now,
                require_incomplete=True,
            )
        except ConflictError:
            metrics.batch_reassignment_conflicts_total.inc()
            logger.warning(
                "batch_reassignment_conflict",
                session_id=str(session_id),
                batch_id=str(batch.id),
                to_user_id=move.to_user_id,
            )
            raise
        if not claimed:
            continue

        await store.record_audit(
            db,
            session_id,
            AuditAction.BATCH_REASSIGNED.value,
            user_id=actor_id,
            details={
                "batch_id": str(batch.id),
                "month_year": batch.month_year,
                "from": move.from_user_id,
                "to": move.to_user_id,
                "mode": mode,
            },
        )
        applied.append(
            ReassignedBatch(
                batch_id=batch.id,
                month_year=batch.month_year,
                from_user_id=move.from_user_id,
                to_user_id=move.to_user_id,
            )
        )
        logger.info(
            "batch_reassigned",
            session_id=str(session_id),
            batch_id=str(batch.id),
            month_year=batch.month_year,
            from_user_id=move.from_user_id,
            to_user_id=move.to_user_id,
            mode=mode,
        )

    if applied:
        metrics.batches_reassigned_total.labels(mode=mode).inc(len(applied))
    return applied


async def reassign_batches(
    db: AsyncSession,
    session_id: uuid.UUID,
    target_user_id: Optional[str] = None,
    stalled_hours: float = settings.STALLED_HOURS_DEFAULT,
    actor_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ReassignmentResult:
    """
    Reassign unassigned or stalled batches.

    With a target user, at most REASSIGN_BATCH_CAP batches move to that user.
    Without one, stalled and unassigned batches are spread over finished users.
    Works on a snapshot taken at call time; each write is conditional on that
    snapshot, and a concurrent change aborts the call with ConflictError.
    """
    _check_stalled_hours(stalled_hours)
    await store.get_import_session(db, session_id)
    now = now or utc_now()
    cap = settings.REASSIGN_BATCH_CAP

    batches = await store.list_batches(db, session_id)

    if target_user_id:
        mode = "targeted"
        moves = select_for_target(batches, target_user_id, now, stalled_hours, cap=cap)
    else:
        mode = "auto"
        moves = plan_auto_rebalance(batches, now, stalled_hours, cap=cap)

    applied = await _apply_moves(db, session_id, moves, now, actor_id, mode)
    await db.flush()

    stats = store.batch_stats(await store.list_batches(db, session_id))
    logger.info(
        "reassignment_completed",
        session_id=str(session_id),
        mode=mode,
        target_user_id=target_user_id,
        reassigned_count=len(applied),
        **stats,
    )
    return ReassignmentResult(
        reassigned_count=len(applied),
        reassigned_batches=applied,
        stats=stats,
    )


async def auto_reassign_batches(db: AsyncSession, session_id: uuid.UUID) -> int:
    """Rebalance without a target user. Returns the number of batches moved."""
    result = await reassign_batches(db, session_id)
    return result.reassigned_count


def _summarise(user_id: str, batches: list[DocumentBatch], newly_assigned: int) -> UserAllocation:
    return UserAllocation(
        user_id=user_id,
        batches=batches,
        total_documents=sum(b.document_count for b in batches),
        categorized_count=sum(b.categorized_count for b in batches),
        skipped_count=sum(b.skipped_count for b in batches),
        remaining_count=sum(remaining_count(b) for b in batches),
        newly_assigned=newly_assigned,
    )


async def allocate_batches_to_user(
    db: AsyncSession,
    session_id: uuid.UUID,
    user_id: str,
    stalled_hours: float = settings.STALLED_HOURS_DEFAULT,
    now: Optional[datetime] = None,
) -> UserAllocation:
    """
    Give a paralegal their working set.
    Returning users get their existing batches back. New users take the
    oldest fair share of unassigned batches, or stalled batches when nothing
    is unassigned.
    """
    await store.get_import_session(db, session_id)
    now = now or utc_now()

    existing = await store.list_user_batches(db, session_id, user_id)
    if existing:
        return _summarise(user_id, existing, 0)

    batches = await store.list_batches(db, session_id)
    active_users = {b.assigned_to for b in batches if b.assigned_to is not None}
    share = fair_share(len(batches), len(active_users))

    unassigned = unassigned_batches(batches)
    if unassigned:
        moves = [
            PlannedMove(batch=b, from_user_id=None, to_user_id=user_id)
            for b in unassigned[:share]
        ]
    else:
        moves = [
            PlannedMove(batch=b, from_user_id=b.assigned_to, to_user_id=user_id)
            for b in stalled_batches(batches, now, stalled_hours, exclude_user=user_id)
        ][: settings.REASSIGN_BATCH_CAP]

    applied = await _apply_moves(db, session_id, moves, now, user_id, "allocation")
    await db.flush()

    if applied:
        await store.record_audit(
            db,
            session_id,
            AuditAction.BATCHES_ALLOCATED.value,
            user_id=user_id,
            details={"batch_ids": [str(a.batch_id) for a in applied], "fair_share": share},
        )

    owned = await store.list_user_batches(db, session_id, user_id)
    logger.info(
        "batches_allocated",
        session_id=str(session_id),
        user_id=user_id,
        allocated=len(applied),
        fair_share=share,
        documents=sum(b.document_count for b in owned),
    )
    return _summarise(user_id, owned, len(applied))
