"""
Category endpoints: per-session categories and document categorization.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from legacy_import.batches import categorization
from legacy_import.dependencies import CurrentUser, get_current_user, get_db, require_partner, verify_api_key
from legacy_import.observability.logging import bind_context
from legacy_import.schemas.categories import (
    CategorizedDocumentResponse,
    CategorizeRequest,
    CategoryCreateRequest,
    CategoryMergeRequest,
    CategoryResponse,
)

router = APIRouter(prefix="/api/v1", tags=["categories"], dependencies=[Depends(verify_api_key)])


@router.get("/sessions/{session_id}/categories", response_model=list[CategoryResponse])
async def list_categories(
    session_id: UUID,
    session: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    categories = await categorization.list_categories(session, session_id)
    return [CategoryResponse.model_validate(c) for c in categories]


@router.post(
    "/sessions/{session_id}/categories",
    response_model=CategoryResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_category(
    session_id: UUID,
    body: CategoryCreateRequest,
    session: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """Create a category, or return the existing one with the same name."""
    category = await categorization.create_category(session, session_id, body.name, user.user_id)
    return CategoryResponse.model_validate(category)


@router.post("/sessions/{session_id}/categories/merge", response_model=CategoryResponse)
async def merge_categories(
    session_id: UUID,
    body: CategoryMergeRequest,
    session: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_partner),
):
    target = await categorization.merge_categories(
        session, session_id, body.target_id, body.source_ids, user.user_id
    )
    return CategoryResponse.model_validate(target)


@router.post("/documents/{document_id}/categorize", response_model=CategorizedDocumentResponse)
async def categorize_document(
    document_id: UUID,
    body: CategorizeRequest,
    session: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    bind_context(document_id=document_id)
    document = await categorization.categorize_document(
        session, document_id, user.user_id, category_id=body.category_id, skip=body.skip
    )
    return CategorizedDocumentResponse.model_validate(document)
