from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query

from axon.application.api.dependencies import get_services
from axon.application.api.schema import (
    ContextListResponse,
    ContextResponse,
    CountResponse,
    DeleteResponse,
    RestoreRequest,
    VersionListResponse,
)
from axon.application.container import ServiceContainer
from axon.domain.errors import NotFoundError
from axon.domain.models import ContextCreate, ContextTier, ContextType, ContextUpdate

router = APIRouter(prefix="/api/v1/contexts", tags=["contexts"])

Services = Annotated[ServiceContainer, Depends(get_services)]


@router.post("", response_model=ContextResponse, status_code=201)
async def create_context(data: ContextCreate, services: Services):
    context = await services.pipeline.store_context(data)
    return ContextResponse(context=context)


@router.get("/workspace/{workspace_id}", response_model=ContextListResponse)
async def list_contexts(
    workspace_id: str,
    services: Services,
    tier: Optional[ContextTier] = None,
    type: Optional[ContextType] = None,
    limit: int = Query(50, gt=0, le=500),
    skip: int = Query(0, ge=0)
):
    contexts = await services.storage.list_by_workspace(workspace_id, tier, type, limit=limit, skip=skip)
    total = await services.storage.count_by_workspace(workspace_id, tier, type)
    return ContextListResponse(contexts=contexts, total=total)


@router.get("/workspace/{workspace_id}/count", response_model=CountResponse)
async def count_contexts(
    workspace_id: str,
    services: Services,
    tier: Optional[ContextTier] = None,
    type: Optional[ContextType] = None
):
    return CountResponse(count=await services.storage.count_by_workspace(workspace_id, tier, type))


@router.get("/{context_id}", response_model=ContextResponse)
async def get_context(context_id: str, services: Services):
    context = await services.storage.get(context_id)
    if context is None:
        raise NotFoundError("context", context_id)
    return ContextResponse(context=context)


@router.patch("/{context_id}", response_model=ContextResponse)
async def update_context(context_id: str, changes: ContextUpdate, services: Services):
    context = await services.pipeline.update_context(context_id, changes)
    if context is None:
        raise NotFoundError("context", context_id)
    return ContextResponse(context=context)


@router.delete("/{context_id}", response_model=DeleteResponse)
async def delete_context(context_id: str, services: Services):
    if not await services.pipeline.delete_context(context_id):
        raise NotFoundError("context", context_id)
    return DeleteResponse(deleted=True)


@router.get("/{context_id}/versions", response_model=VersionListResponse)
async def list_versions(
    context_id: str,
    services: Services,
    limit: int = Query(10, gt=0, le=100)
):
    return VersionListResponse(versions=await services.storage.get_versions(context_id, limit=limit))


@router.post("/{context_id}/restore", response_model=ContextResponse)
async def restore_version(context_id: str, body: RestoreRequest, services: Services):
    context = await services.storage.restore_version(context_id, body.version, updated_by=body.updated_by)
    if context is None:
        raise NotFoundError("context version", f"{context_id}@{body.version}")
    return ContextResponse(context=context)
