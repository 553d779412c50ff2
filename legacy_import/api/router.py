"""
Top-level API router.
Combines all sub-routers into a single router.
"""

from fastapi import APIRouter

from legacy_import.api.health import router as health_router
from legacy_import.api.reassignment import router as reassignment_router
from legacy_import.api.batches import router as batches_router
from legacy_import.api.sessions import router as sessions_router
from legacy_import.api.categories import router as categories_router
from legacy_import.api.clusters import router as clusters_router
from legacy_import.api.jobs import router as jobs_router

api_router = APIRouter()

api_router.include_router(health_router)
api_router.include_router(reassignment_router)
api_router.include_router(batches_router)
api_router.include_router(sessions_router)
api_router.include_router(categories_router)
api_router.include_router(clusters_router)
api_router.include_router(jobs_router)
