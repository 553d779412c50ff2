"""
Allocation policy: which batches move to whom.

Oldest month-year first, and at most REASSIGN_BATCH_CAP batches handed to
any one user per pass. The policy only plans moves; the orchestrator
re-validates each batch against the database when it writes.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from legacy_import.allocation.completion import is_batch_complete
from legacy_import.allocation.stall_detector import find_finished_users, is_batch_stalled


@dataclass
class PlannedMove:
    batch: object
    from_user_id: Optional[str]
    to_user_id: str


def _by_month(batches: list) -> list:
    return sorted(batches, key=lambda b: b.month_year)


def unassigned_batches(batches: list) -> list:
    return _by_month([b for b in batches if b.assigned_to is None and not is_batch_complete(b)])


def stalled_batches(
    batches: list,
    now: datetime,
    stalled_hours: float,
    exclude_user: Optional[str] = None,
) -> list:
    return _by_month([
        b for b in batches
        if b.assigned_to != exclude_user and is_batch_stalled(b, now, stalled_hours)
    ])


def select_for_target(
    batches: list,
    target_user_id: str,
    now: datetime,
    stalled_hours: float,
    cap: int = 3,
) -> list[PlannedMove]:
    """
    Pick up to `cap` batches for one user.
    Unassigned batches come first; leftover capacity is filled with stalled
    batches owned by someone else.
    """
    moves = [
        PlannedMove(batch=b, from_user_id=None, to_user_id=target_user_id)
        for b in unassigned_batches(batches)[:cap]
    ]

    for batch in stalled_batches(batches, now, stalled_hours, exclude_user=target_user_id):
        if len(moves) >= cap:
            break
        # Re-check at selection time, the batch may have just finished
        if is_batch_complete(batch):
            continue
        moves.append(
            PlannedMove(batch=batch, from_user_id=batch.assigned_to, to_user_id=target_user_id)
        )

    return moves


def plan_auto_rebalance(
    batches: list,
    now: datetime,
    stalled_hours: float,
    cap: int = 3,
) -> list[PlannedMove]:
    """
    Deal unassigned then stalled batches round-robin to finished users.
    No finished user receives more than `cap` batches in one pass, and
    complete batches are never moved.
    """
    finished = find_finished_users(batches)
    if not finished:
        return []

    candidates = unassigned_batches(batches) + stalled_batches(batches, now, stalled_hours)
    load = {user_id: 0 for user_id in finished}
    moves: list[PlannedMove] = []

    for batch in candidates:
        if batch.assigned_to is not None and is_batch_complete(batch):
            continue
        eligible = [u for u in finished if load[u] < cap and u != batch.assigned_to]
        if not eligible:
            break
        target = min(eligible, key=lambda u: (load[u], finished.index(u)))
        load[target] += 1
        moves.append(PlannedMove(batch=batch, from_user_id=batch.assigned_to, to_user_id=target))

    return moves


def fair_share(total_batches: int, existing_users: int) -> int:
    """Batches a newly joining user should take: ceil(total / (existing + 1)), at least 1."""
    if total_batches <= 0:
        return 0
    return max(1, math.ceil(total_batches / (existing_users + 1)))
