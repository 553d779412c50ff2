"""
/api/v1/sessions/{session_id} batch endpoints.
Batch creation, per-user allocation and progress.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from legacy_import.batches import progress, reassignment, store
from legacy_import.dependencies import CurrentUser, get_current_user, get_db, require_partner, verify_api_key
from legacy_import.schemas.batches import (
    BatchesStatusResponse,
    BatchResponse,
    SessionProgressResponse,
    UserAllocationResponse,
)

router = APIRouter(prefix="/api/v1/sessions", tags=["batches"], dependencies=[Depends(verify_api_key)])


@router.get("/{session_id}/progress", response_model=SessionProgressResponse)
async def session_progress(
    session_id: UUID,
    session: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    result = await progress.get_session_progress(session, session_id)
    return SessionProgressResponse.model_validate(result)


@router.get("/{session_id}/batches", response_model=BatchesStatusResponse)
async def batches_status(
    session_id: UUID,
    user_id: Optional[str] = Query(None, description="Only batches owned by this user"),
    session: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """Every batch of the session with a per-user summary."""
    await store.get_import_session(session, session_id)
    result = await progress.get_all_batches_status(session, session_id, user_id)
    return BatchesStatusResponse.model_validate(result)


@router.post("/{session_id}/batches/build", response_model=list[BatchResponse])
async def build_batches(
    session_id: UUID,
    session: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_partner),
):
    """Partition newly extracted documents into month-year batches."""
    batches = await progress.create_batches_for_session(session, session_id)
    return [BatchResponse.model_validate(b) for b in batches]


@router.post("/{session_id}/my-batches", response_model=UserAllocationResponse)
async def my_batches(
    session_id: UUID,
    session: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    """The caller's batches, allocating a fair share on first visit."""
    allocation = await reassignment.allocate_batches_to_user(session, session_id, user.user_id)
    return UserAllocationResponse.model_validate(allocation)
