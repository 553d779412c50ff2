"""
Pydantic request/response schemas for clustering and cluster validation.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from legacy_import.models.enums import ClusterAction, DocumentAction


# ── Request Schemas ──────────────────────────────────────────

class ClusterActionRequest(BaseModel):
    action: ClusterAction
    approved_name: Optional[str] = None


class ClusterMergeRequest(BaseModel):
    cluster_ids: list[UUID] = Field(..., min_length=2)
    new_name: str = Field(..., min_length=1)
    new_name_en: Optional[str] = None
    description: Optional[str] = None


class DocumentActionRequest(BaseModel):
    action: DocumentAction
    reclassification_note: Optional[str] = None


class BulkDocumentActionRequest(BaseModel):
    document_ids: list[UUID] = Field(..., min_length=1)
    action: DocumentAction
    reclassification_note: Optional[str] = None


# ── Response Schemas ─────────────────────────────────────────

class ClusterResponse(BaseModel):
    id: UUID
    session_id: UUID
    suggested_name: str
    suggested_name_en: Optional[str] = None
    description: Optional[str] = None
    document_count: int
    sample_document_ids: list[str]
    status: str
    approved_name: Optional[str] = None
    validated_by: Optional[str] = None
    validated_at: Optional[datetime] = None
    is_deleted: bool

    model_config = {"from_attributes": True}


class ClusterListResponse(BaseModel):
    clusters: list[ClusterResponse]
    pipeline_status: str


class ClusterActionResponse(BaseModel):
    success: bool
    cluster_id: UUID
    status: Optional[str] = None
    all_validated: bool
    extraction_triggered: bool

    model_config = {"from_attributes": True}


class ClusterMergeResponse(BaseModel):
    success: bool
    merged_cluster_id: UUID
    document_count: int
    merged_count: int

    model_config = {"from_attributes": True}


class ClusterDocumentResponse(BaseModel):
    id: UUID
    file_name: str
    email_subject: Optional[str] = None
    email_sender: Optional[str] = None
    email_date: Optional[datetime] = None
    validation_status: str
    validated_by: Optional[str] = None
    reclassification_note: Optional[str] = None
    reclassification_round: int

    model_config = {"from_attributes": True}


class ClusterDocumentListResponse(BaseModel):
    documents: list[ClusterDocumentResponse]
    total: int
    limit: int
    offset: int


class BulkDocumentActionResponse(BaseModel):
    success: bool
    updated: int


class ClusteringRunResponse(BaseModel):
    session_id: UUID
    cluster_count: int
    clustered_documents: int
    needs_review_documents: int

    model_config = {"from_attributes": True}


class ReclusterResponse(BaseModel):
    total_reclassified: int
    matched_to_existing: int
    new_clusters_created: int
    unmatched_docs: int

    model_config = {"from_attributes": True}
