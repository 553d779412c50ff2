"""
Pydantic schemas for import session lifecycle endpoints.
"""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel

from legacy_import.models.enums import SessionStatus


class SessionStatusUpdate(BaseModel):
    status: SessionStatus


class ExtractionErrorReport(BaseModel):
    """An upstream extraction failure to attach to the session."""
    file_name: Optional[str] = None
    message: str
    details: Optional[dict[str, Any]] = None


class SessionResponse(BaseModel):
    id: UUID
    firm_id: str
    uploaded_by: str
    file_name: Optional[str] = None
    status: str
    total_documents: int
    categorized_count: int
    skipped_count: int
    pipeline_status: str
    pipeline_error: Optional[str] = None
    extraction_job_id: Optional[str] = None
    extraction_errors: Optional[list[dict[str, Any]]] = None
    created_at: datetime
    updated_at: datetime
    pipeline_completed_at: Optional[datetime] = None
    exported_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
