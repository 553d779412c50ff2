"""
Health check endpoints.
/health always answers 200 and reports database reachability;
/health/ready answers 503 until the database is reachable.
"""

from typing import Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from legacy_import.config import settings
from legacy_import.models import database

router = APIRouter(tags=["health"])


async def _database_ok() -> tuple[bool, Optional[str]]:
    try:
        async with database.async_session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            return result.scalar() == 1, None
    except Exception as e:
        return False, str(e)[:200]


@router.get("/health")
async def health_check():
    db_ok, db_error = await _database_ok()
    response = {
        "status": "healthy" if db_ok else "degraded",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "database": "connected" if db_ok else "unreachable",
        "extraction_backend": settings.EXTRACTION_BACKEND,
    }
    if db_error and not settings.is_production:
        response["database_error"] = db_error
    return response


@router.get("/health/ready")
async def readiness_check():
    db_ok, _ = await _database_ok()
    if not db_ok:
        return JSONResponse(status_code=503, content={"ready": False})
    return {"ready": True}
