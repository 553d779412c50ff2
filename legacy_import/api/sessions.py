"""
/api/v1/sessions/{session_id} lifecycle endpoints.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from legacy_import.batches import sessions, store
from legacy_import.dependencies import CurrentUser, get_current_user, get_db, require_partner, verify_api_key
from legacy_import.schemas.sessions import ExtractionErrorReport, SessionResponse, SessionStatusUpdate

router = APIRouter(prefix="/api/v1/sessions", tags=["sessions"], dependencies=[Depends(verify_api_key)])


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session_detail(
    session_id: UUID,
    session: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    import_session = await store.get_import_session(session, session_id)
    return SessionResponse.model_validate(import_session)


@router.patch("/{session_id}/status", response_model=SessionResponse)
async def update_session_status(
    session_id: UUID,
    body: SessionStatusUpdate,
    session: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_partner),
):
    """Advance the session lifecycle. Moving backwards is rejected."""
    import_session = await sessions.advance_session_status(session, session_id, body.status.value)
    return SessionResponse.model_validate(import_session)


@router.post(
    "/{session_id}/extraction-errors",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def report_extraction_error(
    session_id: UUID,
    body: ExtractionErrorReport,
    session: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_partner),
):
    import_session = await sessions.record_extraction_error(
        session, session_id, body.model_dump(exclude_none=True)
    )
    return SessionResponse.model_validate(import_session)
