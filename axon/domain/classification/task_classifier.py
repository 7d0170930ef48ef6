from typing import Dict, List, Optional, Tuple
from pydantic import BaseModel, Field
import structlog

from axon.domain.models import TaskCategory, exhaustive

logger = structlog.get_logger(__name__)


class KeywordPattern(BaseModel):
    keywords: List[str]
    weight: float = Field(gt=0.0, le=1.0)


class TaskPrediction(BaseModel):
    category: TaskCategory
    confidence: float


class TaskClassification(BaseModel):
    """Result of keyword based task classification"""
    primary: TaskPrediction
    secondary: List[TaskPrediction] = Field(default_factory=list)
    is_multi_task: bool = False
    indicators: List[str] = Field(default_factory=list, description="Keywords matched for the primary task")


def _patterns(*groups: Tuple[List[str], float]) -> List[KeywordPattern]:
    return [KeywordPattern(keywords=keywords, weight=weight) for keywords, weight in groups]


TASK_PATTERNS: Dict[TaskCategory, List[KeywordPattern]] = exhaustive({
    TaskCategory.GENERAL_QUERY: _patterns(
        (["how", "what", "why", "when", "where", "explain", "understand"], 0.7),
        (["help", "guide", "tutorial", "example", "show me", "demonstrate"], 0.6),
        (["difference", "compare", "vs", "versus", "better"], 0.5),
    ),
    TaskCategory.BUG_FIX: _patterns(
        (["bug", "error", "issue", "problem", "broken", "not working", "failing"], 0.9),
        (["fix", "resolve", "solve", "debug", "troubleshoot"], 0.8),
        (["crash", "exception", "stack trace", "traceback", "throws"], 0.85),
        (["unexpected", "incorrect", "wrong", "invalid", "fails"], 0.7),
    ),
    TaskCategory.FEATURE_ADD: _patterns(
        (["add", "create", "implement", "build", "develop", "feature"], 0.9),
        (["new", "functionality", "capability", "enhancement"], 0.7),
        (["integrate", "support", "enable", "allow"], 0.6),
    ),
    TaskCategory.FEATURE_REMOVE: _patterns(
        (["remove", "delete", "deprecate", "disable", "drop"], 0.9),
        (["unused", "legacy", "obsolete", "old", "outdated"], 0.7),
        (["cleanup", "clean up", "prune"], 0.6),
    ),
    TaskCategory.REFACTOR: _patterns(
        (["refactor", "restructure", "reorganize", "redesign", "improve"], 0.9),
        (["clean", "simplify", "modularize", "rewrite"], 0.8),
        (["extract", "split", "merge", "consolidate"], 0.7),
        (["architecture", "pattern", "design", "structure"], 0.6),
    ),
    TaskCategory.CODE_REVIEW: _patterns(
        (["review", "check", "verify", "validate", "inspect"], 0.8),
        (["best practice", "convention", "standard", "guideline"], 0.7),
        (["code quality", "maintainability", "readability"], 0.6),
    ),
    TaskCategory.DOCUMENTATION: _patterns(
        (["document", "documentation", "readme", "comment", "doc"], 0.9),
        (["jsdoc", "tsdoc", "docstring", "api docs"], 0.8),
        (["explain code", "describe", "annotate"], 0.6),
    ),
    TaskCategory.TESTING: _patterns(
        (["test", "testing", "unit test", "integration test", "e2e"], 0.9),
        (["pytest", "unittest", "jest", "vitest", "mocha", "playwright", "cypress"], 0.8),
        (["mock", "stub", "spy", "coverage"], 0.7),
        (["assert", "expect", "should", "describe"], 0.6),
    ),
    TaskCategory.DEPLOYMENT: _patterns(
        (["deploy", "deployment", "release", "publish", "ship"], 0.9),
        (["docker", "kubernetes", "k8s", "container", "ci/cd"], 0.8),
        (["production", "staging", "environment"], 0.6),
    ),
    TaskCategory.OPTIMIZATION: _patterns(
        (["optimize", "optimization", "performance", "faster", "speed"], 0.9),
        (["slow", "lag", "bottleneck", "inefficient"], 0.8),
        (["cache", "memory", "cpu", "latency", "throughput"], 0.7),
        (["improve performance", "reduce", "minimize"], 0.6),
    ),
    TaskCategory.SECURITY: _patterns(
        (["security", "vulnerability", "exploit", "attack", "threat"], 0.9),
        (["authentication", "authorization", "auth", "permission"], 0.8),
        (["encrypt", "decrypt", "hash", "sanitize", "validate"], 0.7),
        (["xss", "csrf", "injection", "sql injection"], 0.85),
    ),
    TaskCategory.ROADMAP: _patterns(
        (["roadmap", "plan", "milestone", "timeline", "strategy"], 0.9),
        (["future", "upcoming", "next", "vision", "goal"], 0.7),
        (["priority", "prioritize", "backlog"], 0.6),
    ),
    TaskCategory.NOTE_OPERATIONS: _patterns(
        (["note", "notes", "backlink", "zettel", "daily note"], 0.9),
        (["tag", "link notes", "organize notes"], 0.6),
    ),
    TaskCategory.REFERENCE_MANAGEMENT: _patterns(
        (["reference", "citation", "cite", "bibliography", "zotero"], 0.9),
        (["paper", "source material", "literature"], 0.6),
    ),
    TaskCategory.PROJECT_MANAGEMENT: _patterns(
        (["task list", "todo", "kanban", "sprint", "deadline"], 0.9),
        (["progress", "status update", "assign"], 0.6),
    ),
    TaskCategory.TEMPLATING: _patterns(
        (["template", "templating", "boilerplate", "scaffold"], 0.9),
        (["placeholder", "snippet"], 0.6),
    ),
}, TaskCategory, "TASK_PATTERNS")

FALLBACK_CONFIDENCE = 0.5


class TaskTypeClassifier:
    """Classifies prompts into task categories by weighted keyword matches"""

    def __init__(self, confidence_threshold: float = 0.3, max_task_types: int = 3):
        self.confidence_threshold = confidence_threshold
        self.max_task_types = max_task_types
        self.patterns: Dict[TaskCategory, List[KeywordPattern]] = {
            category: list(patterns) for category, patterns in TASK_PATTERNS.items()
        }

    def add_patterns(self, category: TaskCategory, patterns: List[KeywordPattern]) -> None:
        self.patterns[category].extend(patterns)
        logger.debug("Added custom patterns for task type", task_type=category.value, count=len(patterns))

    def classify(self, prompt: str) -> TaskClassification:
        text = prompt.lower()

        scores: Dict[TaskCategory, float] = {}
        indicators: Dict[TaskCategory, List[str]] = {}
        for category, patterns in self.patterns.items():
            score, matches = self._score(text, patterns)
            if score > 0:
                scores[category] = score
                indicators[category] = matches

        max_score = max(list(scores.values()) + [1.0])
        ranked = sorted(
            ((category, score / max_score) for category, score in scores.items()),
            key=lambda item: item[1],
            reverse=True
        )
        valid = [item for item in ranked if item[1] >= self.confidence_threshold][:self.max_task_types]

        if not valid:
            return TaskClassification(
                primary=TaskPrediction(category=TaskCategory.GENERAL_QUERY, confidence=FALLBACK_CONFIDENCE)
            )

        primary, confidence = valid[0]
        secondary = [TaskPrediction(category=c, confidence=conf) for c, conf in valid[1:]]

        return TaskClassification(
            primary=TaskPrediction(category=primary, confidence=confidence),
            secondary=secondary,
            is_multi_task=len(valid) > 1,
            indicators=indicators.get(primary, [])
        )

    @staticmethod
    def _score(text: str, patterns: List[KeywordPattern]) -> Tuple[float, List[str]]:
        score = 0.0
        matches = []
        for pattern in patterns:
            for keyword in pattern.keywords:
                if keyword.lower() in text:
                    score += pattern.weight
                    matches.append(keyword)
        return score, matches

    def primary_category(self, prompt: Optional[str]) -> TaskCategory:
        if not prompt:
            return TaskCategory.GENERAL_QUERY
        return self.classify(prompt).primary.category
