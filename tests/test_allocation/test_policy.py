"""
Tests for the allocation policy.
"""

import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from legacy_import.allocation.policy import (
    fair_share,
    plan_auto_rebalance,
    select_for_target,
    unassigned_batches,
)

NOW = datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc)


def _batch(month_year, assigned_to=None, document_count=10, categorized=0, idle_hours=0):
    return SimpleNamespace(
        id=uuid.uuid4(),
        month_year=month_year,
        assigned_to=assigned_to,
        document_count=document_count,
        categorized_count=categorized,
        skipped_count=0,
        updated_at=NOW - timedelta(hours=idle_hours),
    )


def _moves(moves):
    return [(m.batch.month_year, m.from_user_id, m.to_user_id) for m in moves]


class TestSelectForTarget:

    def test_unassigned_first_then_stalled(self):
        batches = [
            _batch("2024-01", "A", document_count=4, categorized=4),
            _batch("2024-02", "A", idle_hours=30),
            _batch("2024-03"),
        ]
        moves = select_for_target(batches, "B", NOW, 24, cap=3)
        assert _moves(moves) == [("2024-03", None, "B"), ("2024-02", "A", "B")]

    def test_cap_limits_unassigned(self):
        batches = [_batch(f"2024-{m:02d}") for m in range(1, 7)]
        moves = select_for_target(batches, "B", NOW, 24, cap=3)
        assert [m.batch.month_year for m in moves] == ["2024-01", "2024-02", "2024-03"]

    def test_cap_shared_with_stalled(self):
        batches = [
            _batch("2024-04"),
            _batch("2024-01", "A", idle_hours=100),
            _batch("2024-02", "C", idle_hours=100),
            _batch("2024-03", "D", idle_hours=100),
        ]
        moves = select_for_target(batches, "B", NOW, 24, cap=3)
        assert _moves(moves) == [
            ("2024-04", None, "B"),
            ("2024-01", "A", "B"),
            ("2024-02", "C", "B"),
        ]

    def test_complete_unassigned_batches_do_not_use_the_cap(self):
        batches = [
            _batch("2024-01", document_count=4, categorized=4),
            _batch("2024-02"),
        ]
        moves = select_for_target(batches, "B", NOW, 24, cap=3)
        assert _moves(moves) == [("2024-02", None, "B")]

    def test_target_own_stalled_batches_are_skipped(self):
        batches = [_batch("2024-01", "B", idle_hours=100)]
        assert select_for_target(batches, "B", NOW, 24) == []

    def test_nothing_to_move(self):
        batches = [_batch("2024-01", "A", idle_hours=1)]
        assert select_for_target(batches, "B", NOW, 24) == []


class TestPlanAutoRebalance:

    def test_no_finished_users_means_no_moves(self):
        batches = [_batch("2024-01", "A", idle_hours=50), _batch("2024-02")]
        assert plan_auto_rebalance(batches, NOW, 24) == []

    def test_round_robin_over_finished_users(self):
        batches = [
            _batch("2024-01", "X", document_count=1, categorized=1),
            _batch("2024-02", "Y", document_count=1, categorized=1),
            _batch("2024-03"),
            _batch("2024-04"),
            _batch("2024-05", "Z", idle_hours=48),
        ]
        moves = plan_auto_rebalance(batches, NOW, 24)
        assert _moves(moves) == [
            ("2024-03", None, "X"),
            ("2024-04", None, "Y"),
            ("2024-05", "Z", "X"),
        ]

    def test_per_user_cap(self):
        batches = [_batch("2024-01", "X", document_count=0)] + [
            _batch(f"2024-{m:02d}") for m in range(2, 8)
        ]
        moves = plan_auto_rebalance(batches, NOW, 24, cap=3)
        assert len(moves) == 3
        assert {m.to_user_id for m in moves} == {"X"}

    def test_never_moves_complete_batches(self):
        batches = [
            _batch("2024-01", "X", document_count=1, categorized=1),
            _batch("2024-02", "Y", document_count=2, categorized=2, idle_hours=500),
        ]
        assert plan_auto_rebalance(batches, NOW, 24) == []

    def test_complete_unassigned_batch_is_not_handed_out(self):
        batches = [
            _batch("2024-01", "X", document_count=1, categorized=1),
            _batch("2024-02", document_count=3, categorized=3),
        ]
        assert plan_auto_rebalance(batches, NOW, 24) == []


class TestFairShare:

    @pytest.mark.parametrize("total,existing,expected", [
        (10, 0, 10),
        (10, 1, 5),
        (10, 2, 4),
        (3, 5, 1),
        (0, 2, 0),
    ])
    def test_fair_share(self, total, existing, expected):
        assert fair_share(total, existing) == expected


def test_unassigned_batches_sorted_by_month():
    batches = [_batch("2024-03"), _batch("2024-01", "A"), _batch("2024-02")]
    assert [b.month_year for b in unassigned_batches(batches)] == ["2024-02", "2024-03"]


def test_unassigned_batches_skip_complete_ones():
    batches = [_batch("2024-01", document_count=2, categorized=2), _batch("2024-02")]
    assert [b.month_year for b in unassigned_batches(batches)] == ["2024-02"]
