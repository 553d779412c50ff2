"""
/api/v1/sessions/{session_id} reassignment endpoints.
Partner-only: preview stalled work and move batches between paralegals.
"""

from typing import Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from legacy_import.batches import reassignment
from legacy_import.config import settings
from legacy_import.dependencies import CurrentUser, get_db, require_partner, verify_api_key
from legacy_import.observability.logging import bind_context
from legacy_import.schemas.batches import (
    ReassignmentInfoResponse,
    ReassignRequest,
    ReassignResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/api/v1/sessions", tags=["reassignment"], dependencies=[Depends(verify_api_key)]
)


@router.get("/{session_id}/reassignment-info", response_model=ReassignmentInfoResponse)
async def reassignment_info(
    session_id: UUID,
    stalled_hours: float = Query(settings.STALLED_HOURS_DEFAULT, gt=0),
    session: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_partner),
):
    """Stalled batches, finished users and unassigned work. Read-only."""
    bind_context(session_id=session_id)
    report = await reassignment.get_reassignment_info(session, session_id, stalled_hours)
    return ReassignmentInfoResponse.model_validate(report)


@router.post("/{session_id}/reassign", response_model=ReassignResponse)
async def reassign(
    session_id: UUID,
    body: Optional[ReassignRequest] = None,
    session: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_partner),
):
    """Move unassigned or stalled batches to a user, or rebalance to finished users."""
    body = body or ReassignRequest()
    bind_context(session_id=session_id)
    result = await reassignment.reassign_batches(
        session,
        session_id,
        target_user_id=body.target_user_id,
        stalled_hours=body.stalled_hours,
        actor_id=user.user_id,
    )
    return ReassignResponse.model_validate(result)
