"""
Clustering and cluster validation endpoints.
Partner-only.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from legacy_import.batches import store
from legacy_import.clustering import pipeline, recluster, validation
from legacy_import.dependencies import (
    CurrentUser,
    get_db,
    get_extraction_dispatcher,
    require_partner,
    verify_api_key,
)
from legacy_import.observability.logging import bind_context
from legacy_import.schemas.clusters import (
    BulkDocumentActionRequest,
    BulkDocumentActionResponse,
    ClusterActionRequest,
    ClusterActionResponse,
    ClusterDocumentListResponse,
    ClusterDocumentResponse,
    ClusteringRunResponse,
    ClusterListResponse,
    ClusterMergeRequest,
    ClusterMergeResponse,
    ClusterResponse,
    DocumentActionRequest,
    ReclusterResponse,
)
from legacy_import.worker.dispatch import ExtractionDispatcher

router = APIRouter(prefix="/api/v1", tags=["clusters"], dependencies=[Depends(verify_api_key)])


@router.get("/sessions/{session_id}/clusters", response_model=ClusterListResponse)
async def list_clusters(
    session_id: UUID,
    include_deleted: bool = Query(False),
    session: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_partner),
):
    clusters = await validation.list_clusters(session, session_id, include_deleted=include_deleted)
    import_session = await store.get_import_session(session, session_id)
    return ClusterListResponse(
        clusters=[ClusterResponse.model_validate(c) for c in clusters],
        pipeline_status=import_session.pipeline_status,
    )


@router.post("/sessions/{session_id}/clusters/run", response_model=ClusteringRunResponse)
async def run_clustering(
    session_id: UUID,
    session: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_partner),
):
    """Cluster the session's uncategorized documents. Once per session."""
    bind_context(session_id=session_id)
    result = await pipeline.run_clustering(session, session_id)
    return ClusteringRunResponse.model_validate(result)


@router.post("/sessions/{session_id}/recluster", response_model=ReclusterResponse)
async def recluster_session(
    session_id: UUID,
    session: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_partner),
):
    bind_context(session_id=session_id)
    stats = await recluster.recluster_session(session, session_id)
    return ReclusterResponse.model_validate(stats)


@router.post("/clusters/merge", response_model=ClusterMergeResponse)
async def merge_clusters(
    body: ClusterMergeRequest,
    session: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_partner),
):
    """Merge clusters into the first id; the result needs validating again."""
    result = await validation.merge_clusters(
        session,
        body.cluster_ids,
        body.new_name,
        user.user_id,
        new_name_en=body.new_name_en,
        description=body.description,
    )
    return ClusterMergeResponse.model_validate(result)


@router.post("/clusters/{cluster_id}/action", response_model=ClusterActionResponse)
async def cluster_action(
    cluster_id: UUID,
    body: ClusterActionRequest,
    session: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_partner),
    dispatcher: ExtractionDispatcher = Depends(get_extraction_dispatcher),
):
    """Approve, reject or delete a cluster."""
    result = await validation.cluster_action(
        session,
        cluster_id,
        body.action.value,
        user.user_id,
        dispatcher,
        approved_name=body.approved_name,
    )
    return ClusterActionResponse.model_validate(result)


@router.get("/clusters/{cluster_id}/documents", response_model=ClusterDocumentListResponse)
async def list_cluster_documents(
    cluster_id: UUID,
    validation_status: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_partner),
):
    documents, total = await validation.list_cluster_documents(
        session, cluster_id, validation_status=validation_status, limit=limit, offset=offset
    )
    return ClusterDocumentListResponse(
        documents=[ClusterDocumentResponse.model_validate(d) for d in documents],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("/clusters/{cluster_id}/documents", response_model=BulkDocumentActionResponse)
async def bulk_document_action(
    cluster_id: UUID,
    body: BulkDocumentActionRequest,
    session: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_partner),
):
    """Apply one action to several documents of the cluster; all or nothing."""
    updated = await validation.bulk_document_action(
        session,
        cluster_id,
        body.document_ids,
        body.action.value,
        user.user_id,
        note=body.reclassification_note,
    )
    return BulkDocumentActionResponse(success=True, updated=updated)


@router.put("/clusters/{cluster_id}/documents/{document_id}", response_model=ClusterDocumentResponse)
async def document_action(
    cluster_id: UUID,
    document_id: UUID,
    body: DocumentActionRequest,
    session: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_partner),
):
    document = await validation.document_action(
        session,
        cluster_id,
        document_id,
        body.action.value,
        user.user_id,
        note=body.reclassification_note,
    )
    return ClusterDocumentResponse.model_validate(document)
