from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field

from .context import ContextTier, Entity, ScoredContext
from .task import TaskCategory


class VectorSearchFilter(BaseModel):
    """Metadata filter applied by the vector index"""
    workspace_id: Optional[str] = None
    tier: Optional[ContextTier] = None
    task_type: Optional[TaskCategory] = None
    source: Optional[str] = None
    min_confidence: Optional[float] = None
    tags: Optional[List[str]] = None


class VectorPoint(BaseModel):
    """Vector index entry keyed by context id"""
    id: str
    vector: List[float]
    payload: Dict[str, Any] = Field(default_factory=dict)


class VectorHit(BaseModel):
    """Single vector index search result"""
    context_id: str
    similarity: float
    payload: Dict[str, Any] = Field(default_factory=dict)


class RetrievalRequest(BaseModel):
    query: str = Field(description="Search query or prompt")
    workspace_id: str
    task_type: TaskCategory = TaskCategory.GENERAL_QUERY
    entities: Optional[List[Entity]] = None
    tier: Optional[ContextTier] = Field(None, description="Pin the search to a single tier")
    limit: Optional[int] = None
    min_similarity: Optional[float] = None


class RetrievalResult(BaseModel):
    contexts: List[ScoredContext] = Field(default_factory=list)
    query: str
    total_found: int = 0
    latency_ms: float = 0.0
    tiers_searched: List[ContextTier] = Field(default_factory=list)
