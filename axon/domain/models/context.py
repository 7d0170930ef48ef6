from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field, field_validator
from datetime import datetime, timezone
from enum import Enum
import uuid


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_context_id() -> str:
    return str(uuid.uuid4())


def _as_utc(value: datetime) -> datetime:
    # Naive timestamps are taken to be UTC
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ContextTier(str, Enum):
    """Retrieval priority bucket, highest priority first"""
    WORKSPACE = "workspace"
    HYBRID = "hybrid"
    GLOBAL = "global"


# Hierarchical search order
TIER_ORDER = [ContextTier.WORKSPACE, ContextTier.HYBRID, ContextTier.GLOBAL]


class ContextType(str, Enum):
    """Kind of knowledge a context carries"""
    FILE = "file"
    DIRECTORY = "directory"
    SYMBOL = "symbol"
    DOCUMENTATION = "documentation"
    DEPENDENCY = "dependency"
    CONVERSATION = "conversation"
    ERROR = "error"
    TEST = "test"
    ARCHITECTURE = "architecture"


class Context(BaseModel):
    """The atomic unit of stored knowledge"""
    id: str = Field(default_factory=new_context_id, description="Immutable context identifier")
    workspace_id: str = Field(description="Owning workspace")
    tier: ContextTier = Field(description="Retrieval tier, immutable after creation")
    type: ContextType = Field(description="Context type, immutable after creation")
    content: str = Field(description="Context text")
    metadata: Dict[str, Any] = Field(default_factory=dict)
    embedding: Optional[List[float]] = Field(None, description="Derived embedding vector")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("created_at", "updated_at")
    @classmethod
    def normalize_timestamps(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @property
    def confidence(self) -> float:
        value = self.metadata.get("confidence")
        return float(value) if value is not None else 1.0

    @property
    def usage_count(self) -> int:
        return int(self.metadata.get("usage_count") or 0)

    @property
    def source(self) -> str:
        return str(self.metadata.get("source") or "")


class ContextCreate(BaseModel):
    """Fields supplied by the caller when storing a new context"""
    workspace_id: str
    tier: ContextTier
    type: ContextType
    content: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ContextUpdate(BaseModel):
    """Partial update of a stored context.

    ``tier`` and ``type`` are accepted only so a mismatch can be rejected;
    changing either requires deleting and recreating the context.
    """
    content: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    tier: Optional[ContextTier] = None
    type: Optional[ContextType] = None


class ContextVersion(BaseModel):
    """Append-only content history row"""
    context_id: str
    version: int = Field(ge=1)
    content: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    updated_at: datetime = Field(default_factory=utc_now)
    updated_by: Optional[str] = None

    @field_validator("updated_at")
    @classmethod
    def normalize_timestamps(cls, value: datetime) -> datetime:
        return _as_utc(value)


class ScoreBreakdown(BaseModel):
    semantic_similarity: float = 0.0
    freshness: float = 0.0
    usage_boost: float = 0.0
    confidence_boost: float = 0.0


class Entity(BaseModel):
    """Entity extracted from a prompt, used for query expansion"""
    type: str = Field(description="file, function, class, variable, concept or technology")
    value: str
    confidence: float = Field(ge=0.0, le=1.0)


class ScoredContext(Context):
    """Retrieval-time view of a context, never persisted"""
    score: float = 0.0
    score_breakdown: ScoreBreakdown = Field(default_factory=ScoreBreakdown)


class ContextFeedback(BaseModel):
    """Feedback event driving confidence updates"""
    context_id: str
    workspace_id: str
    helpful: Optional[bool] = Field(None, description="Explicit helpful / unhelpful verdict")
    used: bool = False
    rating: Optional[float] = Field(None, ge=0.0, le=5.0)
    timestamp: datetime = Field(default_factory=utc_now)
    interaction_id: Optional[str] = None

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamps(cls, value: datetime) -> datetime:
        return _as_utc(value)
