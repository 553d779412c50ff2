"""
Pydantic request/response schemas for batch allocation and progress endpoints.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from legacy_import.config import settings


# ── Request Schemas ──────────────────────────────────────────

class ReassignRequest(BaseModel):
    """Body of POST /sessions/{id}/reassign."""
    target_user_id: Optional[str] = Field(default=None, min_length=1)
    stalled_hours: float = Field(default=settings.STALLED_HOURS_DEFAULT, gt=0)


# ── Response Schemas ─────────────────────────────────────────

class BatchResponse(BaseModel):
    id: UUID
    session_id: UUID
    month_year: str
    assigned_to: Optional[str] = None
    document_count: int
    categorized_count: int
    skipped_count: int
    assigned_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: datetime

    model_config = {"from_attributes": True}


class StalledBatchResponse(BaseModel):
    batch_id: UUID
    month_year: str
    assigned_to: str
    document_count: int
    categorized_count: int
    skipped_count: int
    updated_at: datetime
    stalled_days: int

    model_config = {"from_attributes": True}


class ReassignmentInfoResponse(BaseModel):
    stalled_batches: list[StalledBatchResponse]
    finished_users: list[str]
    unassigned_count: int
    total_batches: int

    model_config = {"from_attributes": True}


class ReassignedBatchResponse(BaseModel):
    batch_id: UUID
    month_year: str
    from_user_id: Optional[str] = None
    to_user_id: str

    model_config = {"from_attributes": True}


class ReassignmentStats(BaseModel):
    total_batches: int
    unassigned_count: int
    completed_count: int


class ReassignResponse(BaseModel):
    reassigned_count: int
    reassigned_batches: list[ReassignedBatchResponse]
    stats: ReassignmentStats

    model_config = {"from_attributes": True}


class UserAllocationResponse(BaseModel):
    """The caller's working set of batches."""
    user_id: str
    batches: list[BatchResponse]
    total_documents: int
    categorized_count: int
    skipped_count: int
    remaining_count: int
    newly_assigned: int

    model_config = {"from_attributes": True}


class SessionProgressResponse(BaseModel):
    session_id: UUID
    total_documents: int
    categorized_count: int
    skipped_count: int
    remaining_count: int
    progress: float
    batch_count: int
    assigned_batch_count: int
    completed_batch_count: int

    model_config = {"from_attributes": True}


class UserSummaryResponse(BaseModel):
    user_id: str
    batch_count: int
    total_docs: int
    completed: int

    model_config = {"from_attributes": True}


class BatchesStatusResponse(BaseModel):
    batches: list[BatchResponse]
    user_summary: list[UserSummaryResponse]

    model_config = {"from_attributes": True}
