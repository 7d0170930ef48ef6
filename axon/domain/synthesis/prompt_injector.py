from typing import Dict, List, Optional

import structlog

from axon.domain.errors import TokenLimitError
from axon.domain.models import (
    ConstructedPrompt,
    ContextSection,
    InjectionStrategy,
    SynthesizedContext,
    TaskCategory,
    exhaustive,
)
from axon.infrastructure.config.settings import InjectionSettings
from axon.infrastructure.observability.logging import pipeline_logger
from .token_limits import estimate_tokens, model_context_limit

logger = structlog.get_logger(__name__)

HYBRID_USER_SECTIONS = 2

STRATEGY_BY_TASK: Dict[TaskCategory, InjectionStrategy] = exhaustive({
    TaskCategory.GENERAL_QUERY: InjectionStrategy.PREFIX,
    TaskCategory.BUG_FIX: InjectionStrategy.HYBRID,
    TaskCategory.FEATURE_ADD: InjectionStrategy.HYBRID,
    TaskCategory.FEATURE_REMOVE: InjectionStrategy.HYBRID,
    TaskCategory.DOCUMENTATION: InjectionStrategy.PREFIX,
    TaskCategory.REFACTOR: InjectionStrategy.HYBRID,
    TaskCategory.CODE_REVIEW: InjectionStrategy.INLINE,
    TaskCategory.TESTING: InjectionStrategy.HYBRID,
    TaskCategory.DEPLOYMENT: InjectionStrategy.PREFIX,
    TaskCategory.OPTIMIZATION: InjectionStrategy.HYBRID,
    TaskCategory.SECURITY: InjectionStrategy.HYBRID,
    TaskCategory.ROADMAP: InjectionStrategy.PREFIX,
    TaskCategory.NOTE_OPERATIONS: InjectionStrategy.PREFIX,
    TaskCategory.REFERENCE_MANAGEMENT: InjectionStrategy.PREFIX,
    TaskCategory.PROJECT_MANAGEMENT: InjectionStrategy.PREFIX,
    TaskCategory.TEMPLATING: InjectionStrategy.INLINE,
}, TaskCategory, "STRATEGY_BY_TASK")

BASE_SYSTEM_PROMPTS: Dict[TaskCategory, str] = exhaustive({
    TaskCategory.GENERAL_QUERY: "You are an expert AI programming assistant. Answer the user's question accurately and concisely.",
    TaskCategory.BUG_FIX: "You are an expert debugging assistant. Analyze the error, identify root causes, and provide clear fixes.",
    TaskCategory.FEATURE_ADD: "You are an expert software engineer. Design and implement features following best practices and project conventions.",
    TaskCategory.FEATURE_REMOVE: "You are an expert software engineer. Safely remove features while maintaining code integrity and dependencies.",
    TaskCategory.DOCUMENTATION: "You are a technical documentation expert. Create clear, comprehensive documentation following industry standards.",
    TaskCategory.REFACTOR: "You are a code quality expert. Refactor code to improve readability, maintainability, and performance.",
    TaskCategory.CODE_REVIEW: "You are a senior code reviewer. Provide constructive feedback on code quality, bugs, and improvements.",
    TaskCategory.TESTING: "You are a testing expert. Write comprehensive tests with good coverage and edge case handling.",
    TaskCategory.DEPLOYMENT: "You are a DevOps expert. Guide deployment processes, CI/CD, and infrastructure setup.",
    TaskCategory.OPTIMIZATION: "You are a performance optimization expert. Identify bottlenecks and implement efficient solutions.",
    TaskCategory.SECURITY: "You are a security expert. Identify vulnerabilities and implement secure coding practices.",
    TaskCategory.ROADMAP: "You are a technical architect. Plan features, milestones, and technical decisions strategically.",
    TaskCategory.NOTE_OPERATIONS: "You are a personal knowledge management assistant. Help organize, link, and maintain notes effectively.",
    TaskCategory.REFERENCE_MANAGEMENT: "You are a research assistant. Manage references, citations, and source materials efficiently.",
    TaskCategory.PROJECT_MANAGEMENT: "You are a project management assistant. Track tasks, milestones, and project progress.",
    TaskCategory.TEMPLATING: "You are a template design expert. Create reusable, flexible templates for various use cases.",
}, TaskCategory, "BASE_SYSTEM_PROMPTS")

# Only some task categories carry an instruction block
TASK_INSTRUCTIONS: Dict[TaskCategory, str] = {
    TaskCategory.BUG_FIX: (
        "**Instructions:**\n"
        "1. Analyze the error carefully\n"
        "2. Identify root cause\n"
        "3. Provide a clear fix\n"
        "4. Explain why this solves the issue"
    ),
    TaskCategory.FEATURE_ADD: (
        "**Instructions:**\n"
        "1. Follow project conventions and architecture\n"
        "2. Write clean, tested code\n"
        "3. Update documentation\n"
        "4. Consider edge cases"
    ),
    TaskCategory.CODE_REVIEW: (
        "**Instructions:**\n"
        "1. Check for bugs and logic errors\n"
        "2. Evaluate code quality and style\n"
        "3. Suggest improvements\n"
        "4. Be constructive and specific"
    ),
    TaskCategory.TESTING: (
        "**Instructions:**\n"
        "1. Write comprehensive test cases\n"
        "2. Cover edge cases and error paths\n"
        "3. Follow testing best practices\n"
        "4. Aim for high coverage"
    ),
}


def format_sections(sections: List[ContextSection], with_sources: bool = False) -> str:
    if not sections:
        return ""

    formatted = "## Relevant Context\n\n"
    for section in sections:
        formatted += f"### {section.title}\n\n{section.content}\n\n"

    if with_sources:
        formatted += "**Sources:**\n"
        for section in sections:
            formatted += f"- {section.title} (relevance: {section.relevance * 100:.1f}%)\n"

    return formatted.strip()


def _join(*parts: str) -> str:
    return "\n\n".join(part for part in parts if part)


class PromptInjector:
    """Places synthesized context and the user prompt into a system/user pair"""

    def __init__(self, config: Optional[InjectionSettings] = None, model: str = "gpt-4"):
        self.config = config or InjectionSettings()
        self.max_tokens = self.config.max_tokens or model_context_limit(model)

    def select_strategy(self, task_type: TaskCategory) -> InjectionStrategy:
        return STRATEGY_BY_TASK.get(task_type, self.config.default_strategy)

    def inject(
        self,
        prompt: str,
        synthesized: SynthesizedContext,
        task_type: TaskCategory,
        strategy: Optional[InjectionStrategy] = None
    ) -> ConstructedPrompt:
        """Build the final prompt pair; raises TokenLimitError above the ceiling"""

        strategy = strategy or self.select_strategy(task_type)
        sections = synthesized.sections

        system_prompt = self.build_system_prompt(task_type, sections, strategy)
        user_prompt = self.build_user_prompt(prompt, sections, strategy)

        total_tokens = estimate_tokens(system_prompt) + estimate_tokens(user_prompt)
        if total_tokens > self.max_tokens:
            pipeline_logger.log_injection(
                task_type=task_type.value,
                strategy=strategy.value,
                total_tokens=total_tokens,
                max_tokens=self.max_tokens,
                success=False
            )
            raise TokenLimitError(total_tokens, self.max_tokens)

        pipeline_logger.log_injection(
            task_type=task_type.value,
            strategy=strategy.value,
            total_tokens=total_tokens,
            max_tokens=self.max_tokens
        )

        return ConstructedPrompt(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            total_tokens=total_tokens,
            context_sections=sections,
            strategy=strategy
        )

    def build_system_prompt(
        self,
        task_type: TaskCategory,
        sections: List[ContextSection],
        strategy: InjectionStrategy
    ) -> str:
        context = ""
        if strategy in (InjectionStrategy.PREFIX, InjectionStrategy.HYBRID):
            context = format_sections(sections)

        return _join(BASE_SYSTEM_PROMPTS[task_type], context, TASK_INSTRUCTIONS.get(task_type, ""))

    def build_user_prompt(
        self,
        prompt: str,
        sections: List[ContextSection],
        strategy: InjectionStrategy
    ) -> str:
        if strategy == InjectionStrategy.INLINE:
            return _join(format_sections(sections), f"**User Request:**\n{prompt}")
        if strategy == InjectionStrategy.SUFFIX:
            return _join(prompt, format_sections(sections, with_sources=True))
        if strategy == InjectionStrategy.HYBRID:
            return _join(
                format_sections(sections[:HYBRID_USER_SECTIONS]),
                f"**User Request:**\n{prompt}"
            )
        return prompt
