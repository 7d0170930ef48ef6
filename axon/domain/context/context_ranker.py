from typing import List, Optional
from datetime import datetime
import math

from axon.domain.models import ScoreBreakdown, ScoredContext, utc_now
from axon.infrastructure.config.settings import RetrievalSettings

DEFAULT_MAX_AGE_DAYS = 365
SECONDS_PER_DAY = 86400.0

# Diversity selection mixes relevance and coverage 70 / 30
DIVERSITY_SCORE_WEIGHT = 0.7
DIVERSITY_WEIGHT = 0.3


def age_in_days(updated_at: datetime, now: datetime) -> float:
    return max(0.0, (now - updated_at).total_seconds() / SECONDS_PER_DAY)


def freshness(age_days: float, max_context_age_days: int = 0) -> float:
    """exp(-age / max_age); a max age of 0 means "no limit" and uses 365 days"""

    max_age = max_context_age_days or DEFAULT_MAX_AGE_DAYS
    return math.exp(-age_days / max_age)


def pairwise_diversity(a: ScoredContext, b: ScoredContext) -> float:
    if a.source != b.source:
        return 0.8
    if a.type == b.type:
        return 0.3
    return 0.5


class ContextRanker:
    """Ranks retrieved contexts by a weighted multi-factor score"""

    def __init__(self, config: Optional[RetrievalSettings] = None):
        self.config = config or RetrievalSettings()

    def rerank(self, candidates: List[ScoredContext], now: Optional[datetime] = None) -> List[ScoredContext]:
        """Score candidates and sort them by composite score, highest first.

        Usage is normalized within the candidate set. The confidence factor is
        held at 1.0; stored confidence only gates the index search.
        """

        if not candidates:
            return []

        now = now or utc_now()
        config = self.config
        max_usage = max(max(c.usage_count for c in candidates), 1)

        ranked = []
        for candidate in candidates:
            semantic = candidate.score_breakdown.semantic_similarity
            fresh = freshness(age_in_days(candidate.updated_at, now), config.max_context_age_days)
            usage = candidate.usage_count / max_usage
            confidence = 1.0

            score = (
                semantic * config.semantic_weight
                + fresh * config.freshness_weight
                + usage * config.usage_weight
                + confidence * config.confidence_weight
            )

            ranked.append(candidate.model_copy(update={
                "score": score,
                "score_breakdown": ScoreBreakdown(
                    semantic_similarity=semantic,
                    freshness=fresh,
                    usage_boost=usage,
                    confidence_boost=confidence
                )
            }))

        # sorted() is stable, so ties keep their input order
        return sorted(ranked, key=lambda c: c.score, reverse=True)

    def diversity_select(self, ranked: List[ScoredContext], limit: int) -> List[ScoredContext]:
        """Greedy selection trading some relevance for source and type coverage"""

        if len(ranked) <= limit:
            return list(ranked)

        remaining = list(ranked)
        selected = [remaining.pop(0)]

        while len(selected) < limit and remaining:
            best_index = 0
            best_value = -1.0

            for index, candidate in enumerate(remaining):
                min_diversity = min(pairwise_diversity(candidate, chosen) for chosen in selected)
                value = candidate.score * DIVERSITY_SCORE_WEIGHT + min_diversity * DIVERSITY_WEIGHT
                if value > best_value:
                    best_value = value
                    best_index = index

            selected.append(remaining.pop(best_index))

        return selected

    def select(self, ranked: List[ScoredContext], limit: int) -> List[ScoredContext]:
        """Pick the final contexts, diversity-aware when enabled"""
        if self.config.enable_diversity and len(ranked) > limit:
            return self.diversity_select(ranked, limit)
        return ranked[:limit]
