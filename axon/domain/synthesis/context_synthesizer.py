from typing import Dict, List, Optional
import math

import structlog

from axon.domain.models import (
    ContextSection,
    ContextSource,
    ContextType,
    ScoredContext,
    SectionType,
    SynthesizedContext,
    TaskCategory,
    TokenBudget,
    exhaustive,
)
from axon.infrastructure.config.settings import SynthesisSettings
from axon.infrastructure.observability.logging import pipeline_logger
from .token_limits import estimate_tokens

logger = structlog.get_logger(__name__)

COMPRESSION_KEEP_CHARS = 500
ELISION_MARKER = "\n\n... [Content truncated for brevity] ...\n\n"

# Sections are emitted in this order
SECTION_ORDER = [
    SectionType.FILE,
    SectionType.SYMBOL,
    SectionType.DOCUMENTATION,
    SectionType.CONVERSATION,
    SectionType.ERROR,
    SectionType.ARCHITECTURE,
]

SECTION_TYPE_BY_CONTEXT_TYPE: Dict[ContextType, SectionType] = exhaustive({
    ContextType.FILE: SectionType.FILE,
    ContextType.DIRECTORY: SectionType.FILE,
    ContextType.SYMBOL: SectionType.SYMBOL,
    ContextType.DOCUMENTATION: SectionType.DOCUMENTATION,
    ContextType.DEPENDENCY: SectionType.FILE,
    ContextType.CONVERSATION: SectionType.CONVERSATION,
    ContextType.ERROR: SectionType.ERROR,
    ContextType.TEST: SectionType.FILE,
    ContextType.ARCHITECTURE: SectionType.ARCHITECTURE,
}, ContextType, "SECTION_TYPE_BY_CONTEXT_TYPE")

# Per-task multipliers on the base allocation; unlisted section types keep the base
TASK_ALLOCATION_MULTIPLIERS: Dict[TaskCategory, Dict[SectionType, float]] = exhaustive({
    TaskCategory.GENERAL_QUERY: {},
    TaskCategory.BUG_FIX: {
        SectionType.ERROR: 1.5,
        SectionType.FILE: 1.2,
        SectionType.DOCUMENTATION: 0.7,
    },
    TaskCategory.FEATURE_ADD: {
        SectionType.ARCHITECTURE: 1.4,
        SectionType.SYMBOL: 1.3,
        SectionType.CONVERSATION: 0.8,
    },
    TaskCategory.FEATURE_REMOVE: {
        SectionType.ARCHITECTURE: 1.3,
        SectionType.FILE: 1.2,
    },
    TaskCategory.DOCUMENTATION: {
        SectionType.DOCUMENTATION: 1.5,
        SectionType.FILE: 1.2,
        SectionType.SYMBOL: 0.8,
    },
    TaskCategory.REFACTOR: {
        SectionType.ARCHITECTURE: 1.3,
        SectionType.SYMBOL: 1.3,
        SectionType.CONVERSATION: 0.8,
    },
    TaskCategory.CODE_REVIEW: {
        SectionType.FILE: 1.4,
        SectionType.SYMBOL: 1.2,
        SectionType.ARCHITECTURE: 1.1,
    },
    TaskCategory.TESTING: {
        SectionType.SYMBOL: 1.3,
        SectionType.FILE: 1.2,
        SectionType.DOCUMENTATION: 1.1,
    },
    TaskCategory.DEPLOYMENT: {
        SectionType.ARCHITECTURE: 1.4,
        SectionType.DOCUMENTATION: 1.3,
        SectionType.FILE: 0.8,
    },
    TaskCategory.OPTIMIZATION: {
        SectionType.FILE: 1.3,
        SectionType.SYMBOL: 1.3,
        SectionType.ARCHITECTURE: 1.1,
    },
    TaskCategory.SECURITY: {
        SectionType.FILE: 1.3,
        SectionType.ARCHITECTURE: 1.2,
        SectionType.DOCUMENTATION: 1.1,
    },
    TaskCategory.ROADMAP: {
        SectionType.ARCHITECTURE: 1.5,
        SectionType.DOCUMENTATION: 1.3,
        SectionType.CONVERSATION: 1.2,
    },
    TaskCategory.NOTE_OPERATIONS: {
        SectionType.DOCUMENTATION: 1.4,
        SectionType.CONVERSATION: 1.2,
    },
    TaskCategory.REFERENCE_MANAGEMENT: {
        SectionType.DOCUMENTATION: 1.5,
        SectionType.ARCHITECTURE: 1.1,
    },
    TaskCategory.PROJECT_MANAGEMENT: {
        SectionType.ARCHITECTURE: 1.4,
        SectionType.DOCUMENTATION: 1.2,
        SectionType.CONVERSATION: 1.2,
    },
    TaskCategory.TEMPLATING: {
        SectionType.DOCUMENTATION: 1.3,
        SectionType.FILE: 1.2,
    },
}, TaskCategory, "TASK_ALLOCATION_MULTIPLIERS")


def section_type_for(context_type: ContextType) -> SectionType:
    return SECTION_TYPE_BY_CONTEXT_TYPE[context_type]


def section_title(context: ScoredContext) -> str:
    metadata = context.metadata
    symbol_name = metadata.get("symbol_name")
    file_path = metadata.get("file_path")

    if symbol_name:
        return f"{symbol_name} ({file_path or 'Unknown file'})"
    if file_path:
        return str(file_path)
    return f"{context.type.value} Context"


def compress(content: str, keep_chars: int = COMPRESSION_KEEP_CHARS) -> str:
    """Keep the head and tail of long content around an elision marker"""

    if len(content) <= keep_chars * 2:
        return content
    return f"{content[:keep_chars]}{ELISION_MARKER}{content[-keep_chars:]}"


class ContextSynthesizer:
    """Turns ranked contexts into token-budgeted, formatted sections"""

    def __init__(self, config: Optional[SynthesisSettings] = None):
        self.config = config or SynthesisSettings()

    def default_budget(self) -> TokenBudget:
        return TokenBudget.for_total(self.config.total_tokens, self.config.response_reserve)

    def allocate(self, budget: TokenBudget, task_type: TaskCategory) -> Dict[SectionType, int]:
        """Apply the task multipliers to the base allocation.

        Adjusted values are floored and not re-normalized, so the result may
        exceed the context budget.
        """

        allocation = {section: budget.allocation.get(section, 0) for section in SectionType}
        for section, factor in TASK_ALLOCATION_MULTIPLIERS[task_type].items():
            allocation[section] = math.floor(allocation[section] * factor)
        return allocation

    def select(
        self,
        contexts: List[ScoredContext],
        allocation: Dict[SectionType, int]
    ) -> List[ScoredContext]:
        """Greedy per-type selection by score; a context that does not fit is skipped"""

        groups: Dict[SectionType, List[ScoredContext]] = {section: [] for section in SECTION_ORDER}
        for context in contexts:
            groups[section_type_for(context.type)].append(context)

        selected = []
        for section in SECTION_ORDER:
            limit = allocation.get(section, 0)
            used = 0
            for context in sorted(groups[section], key=lambda c: c.score, reverse=True):
                tokens = estimate_tokens(context.content)
                if used + tokens <= limit:
                    selected.append(context)
                    used += tokens

        return selected

    def format_context(self, context: ScoredContext, budget: TokenBudget) -> str:
        metadata = context.metadata
        content = context.content

        if self.config.enable_compression and estimate_tokens(content) > self.config.compression_threshold * budget.total:
            content = compress(content)

        markdown = ""
        if metadata.get("file_path"):
            markdown += f"**File:** `{metadata['file_path']}`\n\n"
        if metadata.get("language"):
            markdown += f"**Language:** {metadata['language']}\n\n"

        if context.type in (ContextType.FILE, ContextType.SYMBOL):
            language = metadata.get("language") or ""
            markdown += f"```{language}\n{content}\n```\n"
        else:
            markdown += f"{content}\n"

        return markdown

    def synthesize(
        self,
        contexts: List[ScoredContext],
        task_type: TaskCategory,
        budget: Optional[TokenBudget] = None
    ) -> SynthesizedContext:
        """Select, format and attribute contexts within the token budget"""

        budget = budget or self.default_budget()
        allocation = self.allocate(budget, task_type)
        selected = self.select(contexts, allocation)

        sections = []
        for context in selected:
            content = self.format_context(context, budget)
            sections.append(ContextSection(
                type=section_type_for(context.type),
                title=section_title(context),
                content=content,
                tokens=estimate_tokens(content),
                relevance=context.score,
                context_id=context.id
            ))

        sources = [
            ContextSource(
                context_id=context.id,
                source=str(context.metadata.get("file_path") or context.type.value),
                score=context.score
            )
            for context in selected
        ]

        total_tokens = sum(section.tokens for section in sections)
        result = SynthesizedContext(
            sections=sections,
            total_tokens=total_tokens,
            budget_remaining=budget.context_budget - total_tokens,
            sources=sources
        )

        pipeline_logger.log_synthesis(
            task_type=task_type.value,
            candidates=len(contexts),
            sections=len(sections),
            total_tokens=total_tokens,
            budget_remaining=result.budget_remaining
        )
        return result
