"""
Pydantic schemas for categories and document categorization.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class CategoryCreateRequest(BaseModel):
    name: str = Field(..., max_length=200)


class CategoryMergeRequest(BaseModel):
    target_id: UUID
    source_ids: list[UUID] = Field(..., min_length=1)


class CategorizeRequest(BaseModel):
    category_id: Optional[UUID] = None
    skip: bool = False

    @model_validator(mode="after")
    def _category_or_skip(self):
        if not self.skip and self.category_id is None:
            raise ValueError("category_id is required unless skip is true")
        return self


class CategoryResponse(BaseModel):
    id: UUID
    session_id: UUID
    name: str
    created_by: str
    document_count: int
    merged_into: Optional[UUID] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class CategorizedDocumentResponse(BaseModel):
    id: UUID
    batch_id: Optional[UUID] = None
    category_id: Optional[UUID] = None
    status: str
    categorized_by: Optional[str] = None
    categorized_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
