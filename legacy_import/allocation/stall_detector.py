"""
Stall detection over a session's batches.

A batch is stalled when it has an owner, is not complete, and has not been
touched within the staleness window. Finished users (every batch they own
is complete) are the preferred targets for moving that work. Everything here
is read-only: callers preview the report before asking for a reassignment.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable

from legacy_import.allocation.completion import is_batch_complete
from legacy_import.utc import to_utc


@dataclass
class StalledBatch:
    batch_id: uuid.UUID
    month_year: str
    assigned_to: str
    document_count: int
    categorized_count: int
    skipped_count: int
    updated_at: datetime
    stalled_days: int


@dataclass
class ReassignmentReport:
    stalled_batches: list[StalledBatch] = field(default_factory=list)
    finished_users: list[str] = field(default_factory=list)
    unassigned_count: int = 0
    total_batches: int = 0


def stall_cutoff(now: datetime, stalled_hours: float) -> datetime:
    return to_utc(now) - timedelta(hours=stalled_hours)


def is_batch_stalled(batch, now: datetime, stalled_hours: float) -> bool:
    if batch.assigned_to is None or is_batch_complete(batch):
        return False
    return to_utc(batch.updated_at) < stall_cutoff(now, stalled_hours)


def detect_stalled_batches(
    batches: Iterable,
    now: datetime,
    stalled_hours: float = 24,
) -> list[StalledBatch]:
    """Return the stalled batches, oldest month first."""
    now = to_utc(now)
    stalled = []
    for batch in batches:
        if not is_batch_stalled(batch, now, stalled_hours):
            continue
        idle = now - to_utc(batch.updated_at)
        stalled.append(
            StalledBatch(
                batch_id=batch.id,
                month_year=batch.month_year,
                assigned_to=batch.assigned_to,
                document_count=batch.document_count,
                categorized_count=batch.categorized_count,
                skipped_count=batch.skipped_count,
                updated_at=to_utc(batch.updated_at),
                stalled_days=idle // timedelta(days=1),
            )
        )
    stalled.sort(key=lambda s: s.month_year)
    return stalled


def find_finished_users(batches: Iterable) -> list[str]:
    """Users whose every assigned batch is complete, sorted by id."""
    by_user: dict[str, list] = {}
    for batch in batches:
        if batch.assigned_to is not None:
            by_user.setdefault(batch.assigned_to, []).append(batch)

    return sorted(
        user_id
        for user_id, owned in by_user.items()
        if all(is_batch_complete(b) for b in owned)
    )


def count_unassigned(batches: Iterable) -> int:
    return sum(1 for b in batches if b.assigned_to is None)


def build_reassignment_report(
    batches: list,
    now: datetime,
    stalled_hours: float = 24,
) -> ReassignmentReport:
    return ReassignmentReport(
        stalled_batches=detect_stalled_batches(batches, now, stalled_hours),
        finished_users=find_finished_users(batches),
        unassigned_count=count_unassigned(batches),
        total_batches=len(batches),
    )


