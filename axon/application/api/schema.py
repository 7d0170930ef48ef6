from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from axon.domain.models import Context, ContextVersion


class ContextResponse(BaseModel):
    success: bool = True
    context: Context


class ContextListResponse(BaseModel):
    success: bool = True
    contexts: List[Context] = Field(default_factory=list)
    total: int = 0


class CountResponse(BaseModel):
    success: bool = True
    count: int


class DeleteResponse(BaseModel):
    success: bool = True
    deleted: bool


class VersionListResponse(BaseModel):
    success: bool = True
    versions: List[ContextVersion] = Field(default_factory=list)


class RestoreRequest(BaseModel):
    version: int = Field(ge=1)
    updated_by: Optional[str] = None


class EvolutionSweepRequest(BaseModel):
    workspace_id: str


class HealthResponse(BaseModel):
    status: str
    components: Dict[str, bool] = Field(default_factory=dict)
    metrics: Dict[str, Any] = Field(default_factory=dict)
