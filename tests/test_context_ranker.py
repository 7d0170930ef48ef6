from datetime import timedelta

import pytest

from axon.domain.context.context_ranker import ContextRanker, freshness, pairwise_diversity
from axon.domain.models import ContextTier, ContextType, ScoreBreakdown, ScoredContext, utc_now
from axon.infrastructure.config import RetrievalSettings

NOW = utc_now()


def scored(
    similarity: float,
    source: str = "a",
    type: ContextType = ContextType.FILE,
    age_days: float = 0.0,
    usage_count: int = 0
) -> ScoredContext:
    return ScoredContext(
        workspace_id="ws-1",
        tier=ContextTier.WORKSPACE,
        type=type,
        content="content",
        metadata={"source": source, "usage_count": usage_count},
        updated_at=NOW - timedelta(days=age_days),
        score=similarity,
        score_breakdown=ScoreBreakdown(semantic_similarity=similarity)
    )


def test_freshness_decays_over_a_year():
    assert freshness(0) == pytest.approx(1.0)
    assert freshness(400) == pytest.approx(0.334, abs=1e-3)
    assert freshness(30, max_context_age_days=30) == pytest.approx(0.3679, abs=1e-4)


def test_composite_score_is_weighted_sum():
    ranker = ContextRanker(RetrievalSettings())

    [ranked] = ranker.rerank([scored(0.8)], now=NOW)

    assert ranked.score == pytest.approx(0.6 * 0.8 + 0.2 * 1.0 + 0.1 * 0.0 + 0.1 * 1.0)
    assert ranked.score_breakdown.confidence_boost == 1.0


def test_usage_is_normalized_within_candidates():
    ranker = ContextRanker(RetrievalSettings())

    ranked = ranker.rerank([scored(0.5, usage_count=10), scored(0.5, usage_count=5)], now=NOW)

    assert [c.score_breakdown.usage_boost for c in ranked] == [1.0, 0.5]


def test_older_context_ranks_lower_at_equal_similarity():
    ranker = ContextRanker(RetrievalSettings())
    old = scored(0.9, age_days=400)
    new = scored(0.9)

    ranked = ranker.rerank([old, new], now=NOW)

    assert [c.id for c in ranked] == [new.id, old.id]


def test_ties_keep_input_order():
    ranker = ContextRanker(RetrievalSettings())
    first, second = scored(0.7), scored(0.7)

    ranked = ranker.rerank([first, second], now=NOW)

    assert [c.id for c in ranked] == [first.id, second.id]


def test_rerank_empty():
    assert ContextRanker().rerank([]) == []


def test_pairwise_diversity():
    assert pairwise_diversity(scored(1, source="a"), scored(1, source="b")) == 0.8
    assert pairwise_diversity(scored(1), scored(1)) == 0.3
    assert pairwise_diversity(scored(1), scored(1, type=ContextType.ERROR)) == 0.5


def test_diversity_select_prefers_new_sources():
    ranker = ContextRanker(RetrievalSettings())
    top = scored(0.9, source="a")
    same_source = scored(0.85, source="a")
    other_source = scored(0.7, source="b")

    selected = ranker.diversity_select([top, same_source, other_source], limit=2)

    assert [c.id for c in selected] == [top.id, other_source.id]


def test_select_without_diversity_truncates():
    ranker = ContextRanker(RetrievalSettings(enable_diversity=False))
    candidates = [scored(0.9), scored(0.8), scored(0.7, source="b")]

    assert ranker.select(candidates, 2) == candidates[:2]


def test_weights_must_sum_to_one():
    with pytest.raises(ValueError):
        RetrievalSettings(semantic_weight=0.9)


@pytest.mark.parametrize("limit", [1, 2, 3, 5])
def test_diversity_select_keeps_top_candidate_and_size(limit):
    ranker = ContextRanker(RetrievalSettings())
    candidates = ranker.rerank([
        scored(0.9, source="a"),
        scored(0.8, source="a"),
        scored(0.6, source="b", type=ContextType.DOCUMENTATION),
        scored(0.4, source="c", age_days=50),
    ], now=NOW)

    selected = ranker.select(candidates, limit)

    assert selected[0].id == candidates[0].id
    assert len(selected) == min(limit, len(candidates))


def test_composite_score_stays_in_unit_interval():
    ranker = ContextRanker(RetrievalSettings(
        semantic_weight=0.25, freshness_weight=0.25, usage_weight=0.25, confidence_weight=0.25
    ))

    ranked = ranker.rerank([scored(1.0, usage_count=3), scored(0.0, age_days=1000)], now=NOW)

    assert all(0.0 <= c.score <= 1.0 for c in ranked)
    assert ranked[0].score == pytest.approx(1.0)
