"""
Completion predicates for document batches.
Pure functions over anything carrying the batch counter attributes.
"""

from typing import Iterable


def processed_count(batch) -> int:
    """Documents in the batch that have been categorized or skipped."""
    return (batch.categorized_count or 0) + (batch.skipped_count or 0)


def remaining_count(batch) -> int:
    return max((batch.document_count or 0) - processed_count(batch), 0)


def is_batch_complete(batch) -> bool:
    """A batch is complete once categorized + skipped covers every document.
    An empty batch is trivially complete."""
    return processed_count(batch) >= (batch.document_count or 0)


def is_session_fully_assigned(batches: Iterable) -> bool:
    return all(b.assigned_to is not None for b in batches)


def are_batches_done(batches: Iterable) -> bool:
    return all(is_batch_complete(b) for b in batches)
