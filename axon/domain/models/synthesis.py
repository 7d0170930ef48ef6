from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field, model_validator

from .context import ContextTier, Entity
from .task import TaskCategory, InjectionStrategy, SectionType


DEFAULT_ALLOCATION: Dict[SectionType, int] = {
    SectionType.FILE: 2048,
    SectionType.SYMBOL: 1536,
    SectionType.DOCUMENTATION: 1024,
    SectionType.CONVERSATION: 768,
    SectionType.ERROR: 512,
    SectionType.ARCHITECTURE: 256,
}


class TokenBudget(BaseModel):
    """Token budget for one synthesis call"""
    total: int = Field(8192, gt=0)
    response_reserve: int = Field(2048, ge=0)
    context_budget: int = Field(6144, ge=0)
    allocation: Dict[SectionType, int] = Field(default_factory=lambda: dict(DEFAULT_ALLOCATION))

    @model_validator(mode="after")
    def _check_budget(self) -> "TokenBudget":
        if self.context_budget != self.total - self.response_reserve:
            raise ValueError(
                f"context_budget must equal total - response_reserve "
                f"({self.total} - {self.response_reserve}), got {self.context_budget}"
            )
        allocated = sum(self.allocation.values())
        if allocated > self.context_budget:
            raise ValueError(f"allocation sums to {allocated}, above context_budget {self.context_budget}")
        return self

    @classmethod
    def for_total(cls, total: int, response_reserve: int) -> "TokenBudget":
        """Scale the default allocation to a different window size"""
        context_budget = total - response_reserve
        default_sum = sum(DEFAULT_ALLOCATION.values())
        allocation = {
            section: (tokens * context_budget) // default_sum
            for section, tokens in DEFAULT_ALLOCATION.items()
        }
        return cls(
            total=total,
            response_reserve=response_reserve,
            context_budget=context_budget,
            allocation=allocation,
        )


class ContextSection(BaseModel):
    type: SectionType
    title: str
    content: str
    tokens: int
    relevance: float
    context_id: str


class ContextSource(BaseModel):
    context_id: str
    source: str
    score: float


class SynthesizedContext(BaseModel):
    sections: List[ContextSection] = Field(default_factory=list)
    total_tokens: int = 0
    budget_remaining: int = 0
    sources: List[ContextSource] = Field(default_factory=list)


class ConstructedPrompt(BaseModel):
    system_prompt: str
    user_prompt: str
    total_tokens: int
    context_sections: List[ContextSection] = Field(default_factory=list)
    strategy: Optional[InjectionStrategy] = None


class PromptRequest(BaseModel):
    """Pipeline entry point request"""
    prompt: str
    workspace_id: str
    task_type: Optional[TaskCategory] = Field(None, description="Classified from the prompt when omitted")
    entities: Optional[List[Entity]] = None
    tier: Optional[ContextTier] = None
    limit: Optional[int] = None
    min_similarity: Optional[float] = None
    strategy: Optional[InjectionStrategy] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class PreparedPrompt(BaseModel):
    """Injected prompt ready for the completion model"""
    request_id: str
    task_type: TaskCategory
    strategy: Optional[InjectionStrategy] = None
    system_prompt: str
    user_prompt: str
    total_tokens: int
    context_sections: List[ContextSection] = Field(default_factory=list)
    sources: List[ContextSource] = Field(default_factory=list)
    latency_breakdown: Dict[str, float] = Field(default_factory=dict)


class CompletionResult(BaseModel):
    prepared: PreparedPrompt
    content: str
    usage: Dict[str, Any] = Field(default_factory=dict)
