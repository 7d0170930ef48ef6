from .task import TaskCategory, InjectionStrategy, SectionType, exhaustive
from .context import (
    Context,
    ContextCreate,
    ContextUpdate,
    ContextVersion,
    ContextFeedback,
    ContextTier,
    ContextType,
    Entity,
    ScoreBreakdown,
    ScoredContext,
    TIER_ORDER,
    utc_now,
)
from .retrieval import (
    RetrievalRequest,
    RetrievalResult,
    VectorHit,
    VectorPoint,
    VectorSearchFilter,
)
from .evolution import EvolutionResult, EvolutionStats, ExtensionPointResult
from .synthesis import (
    CompletionResult,
    ConstructedPrompt,
    ContextSection,
    ContextSource,
    DEFAULT_ALLOCATION,
    PreparedPrompt,
    PromptRequest,
    SynthesizedContext,
    TokenBudget,
)
