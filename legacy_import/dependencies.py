"""
FastAPI dependency injection.
Provides DB sessions, caller identity, role checks, API key validation and
the extraction dispatcher.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from legacy_import.config import settings
from legacy_import.errors import ForbiddenError
from legacy_import.models.database import get_session
from legacy_import.observability.logging import bind_context
from legacy_import.worker.dispatch import ExtractionDispatcher, get_dispatcher


@dataclass
class CurrentUser:
    user_id: str
    role: Optional[str] = None

    @property
    def is_partner(self) -> bool:
        return self.role in settings.partner_roles


async def get_db() -> AsyncSession:
    """Yield an async DB session; committed when the request succeeds."""
    async for session in get_session():
        yield session


async def verify_api_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
) -> Optional[str]:
    """
    Verify API key if configured.
    If API_KEY is not set, all requests are allowed (dev mode).
    """
    if settings.API_KEY is None:
        return None

    if x_api_key is None or x_api_key != settings.API_KEY:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
        )
    return x_api_key


async def get_current_user(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_user_role: Optional[str] = Header(None, alias="X-User-Role"),
) -> CurrentUser:
    """Identity forwarded by the gateway."""
    if not x_user_id or not x_user_id.strip():
        raise ForbiddenError("Missing caller identity", "ERR_UNAUTHENTICATED")
    user = CurrentUser(user_id=x_user_id.strip(), role=(x_user_role or "").strip() or None)
    bind_context(user_id=user.user_id)
    return user


async def require_partner(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_partner:
        raise ForbiddenError("Partner role required", "ERR_PARTNER_REQUIRED")
    return user


def get_extraction_dispatcher() -> ExtractionDispatcher:
    return get_dispatcher()
