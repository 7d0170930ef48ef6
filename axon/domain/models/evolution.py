from pydantic import BaseModel, Field


class ExtensionPointResult(BaseModel):
    """Outcome of an evolution step that is declared but not implemented yet.

    ``implemented`` stays False until a real consolidation or conflict
    resolution strategy lands, so callers can tell "nothing to do" apart
    from "not built".
    """
    name: str
    processed: int = 0
    implemented: bool = False
    reason: str = ""


class EvolutionResult(BaseModel):
    contexts_updated: int = 0
    contexts_deleted: int = 0
    contexts_consolidated: int = 0
    conflicts_resolved: int = 0
    latency_ms: float = 0.0
    summary: str = ""


class EvolutionStats(BaseModel):
    total_contexts: int = 0
    average_confidence: float = 0.0
    low_confidence_contexts: int = 0
    recent_feedback_count: int = Field(0, description="Feedback events in the last 7 days")
