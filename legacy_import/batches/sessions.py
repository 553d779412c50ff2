"""
Import session lifecycle.
"""

import uuid
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from legacy_import.batches import store
from legacy_import.errors import BadRequestError
from legacy_import.models.enums import SESSION_STATUS_ORDER, SessionStatus
from legacy_import.models.tables import ImportSession
from legacy_import.utc import utc_now

logger = structlog.get_logger(__name__)


def _rank(status: str) -> int:
    try:
        return SESSION_STATUS_ORDER.index(SessionStatus(status))
    except ValueError:
        raise BadRequestError(f"Unknown session status: {status}", "ERR_INVALID_STATUS")


async def advance_session_status(
    db: AsyncSession, session_id: uuid.UUID, new_status: str
) -> ImportSession:
    """
    Move a session forward in its lifecycle.
    Skipping ahead is allowed; moving back is rejected. Setting the current
    status again is a no-op.
    """
    import_session = await store.get_import_session(db, session_id)
    current, target = _rank(import_session.status), _rank(new_status)

    if target < current:
        raise BadRequestError(
            f"Cannot move session from {import_session.status} back to {new_status}",
            "ERR_STATUS_BACKWARDS",
        )
    if target == current:
        return import_session

    previous = import_session.status
    import_session.status = SessionStatus(new_status).value
    if import_session.status == SessionStatus.EXPORTED.value:
        import_session.exported_at = utc_now()
    await db.flush()

    logger.info(
        "session_status_changed",
        session_id=str(session_id),
        from_status=previous,
        to_status=import_session.status,
    )
    return import_session


async def record_extraction_error(
    db: AsyncSession, session_id: uuid.UUID, payload: dict[str, Any]
) -> ImportSession:
    """Append an upstream extraction error to the session's error list."""
    import_session = await store.get_import_session(db, session_id)
    entry = {**payload, "recorded_at": utc_now().isoformat()}
    # Reassign so the JSON column is flagged dirty
    import_session.extraction_errors = [*(import_session.extraction_errors or []), entry]
    await db.flush()

    logger.warning(
        "extraction_error_recorded",
        session_id=str(session_id),
        error_count=len(import_session.extraction_errors),
    )
    return import_session
