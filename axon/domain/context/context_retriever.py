from typing import List, Optional
import asyncio
import time

import structlog

from axon.domain.errors import ValidationError
from axon.domain.models import (
    ContextTier,
    RetrievalRequest,
    RetrievalResult,
    ScoreBreakdown,
    ScoredContext,
    TIER_ORDER,
    VectorHit,
    VectorSearchFilter,
    utc_now,
)
from axon.infrastructure.config.settings import RetrievalSettings
from axon.infrastructure.embeddings.embedding_gateway import EmbeddingGateway
from axon.infrastructure.observability.logging import pipeline_logger
from .context_ranker import ContextRanker
from .context_storage import ContextStorage

logger = structlog.get_logger(__name__)

# Entities above this confidence are appended to the query before embedding
ENTITY_EXPANSION_CONFIDENCE = 0.7


class ContextRetriever:
    """Retrieves contexts tier by tier and ranks them for a query"""

    def __init__(
        self,
        storage: ContextStorage,
        embeddings: EmbeddingGateway,
        config: Optional[RetrievalSettings] = None,
        ranker: Optional[ContextRanker] = None
    ):
        self.storage = storage
        self.index = storage.index
        self.embeddings = embeddings
        self.config = config or RetrievalSettings()
        self.ranker = ranker or ContextRanker(self.config)

    async def retrieve(self, request: RetrievalRequest) -> RetrievalResult:
        """Retrieve and rank contexts for the request"""

        self._validate(request)
        start = time.perf_counter()

        limit = request.limit or self.config.default_limit
        min_similarity = (
            request.min_similarity
            if request.min_similarity is not None
            else self.config.default_min_similarity
        )

        logger.info(
            "Starting context retrieval",
            workspace_id=request.workspace_id,
            task_type=request.task_type.value
        )

        query_vector = await self.embeddings.embed(self.expand_query(request))

        hits, tiers_searched = await self._hierarchical_search(request, query_vector, limit, min_similarity)
        candidates = await self._hydrate(hits)

        ranked = self.ranker.rerank(candidates, now=utc_now())
        contexts = self.ranker.select(ranked, limit)

        latency_ms = (time.perf_counter() - start) * 1000
        pipeline_logger.log_retrieval(
            workspace_id=request.workspace_id,
            query=request.query,
            total_found=len(hits),
            returned=len(contexts),
            tiers_searched=[t.value for t in tiers_searched],
            latency_ms=latency_ms
        )

        return RetrievalResult(
            contexts=contexts,
            query=request.query,
            total_found=len(hits),
            latency_ms=latency_ms,
            tiers_searched=tiers_searched
        )

    def expand_query(self, request: RetrievalRequest) -> str:
        if not self.config.enable_query_expansion or not request.entities:
            return request.query

        extra = [e.value for e in request.entities if e.confidence > ENTITY_EXPANSION_CONFIDENCE]
        if not extra:
            return request.query
        return f"{request.query} {' '.join(extra)}"

    async def update_usage_stats(self, context_ids: List[str]) -> None:
        """Increment usage counters; failures are logged and never raised"""

        if not context_ids:
            return
        try:
            await self.storage.contexts.update_many(
                {"id": {"$in": list(context_ids)}},
                {
                    "$inc": {"metadata.usage_count": 1},
                    "$set": {"metadata.last_accessed": utc_now()}
                }
            )
            logger.debug("Updated usage stats", count=len(context_ids))
        except Exception as e:
            logger.error("Failed to update usage stats", count=len(context_ids), error=str(e))

    async def _hierarchical_search(
        self,
        request: RetrievalRequest,
        vector: List[float],
        limit: int,
        min_similarity: float
    ):
        if request.tier is not None:
            hits = await self._search_tier(request, request.tier, vector, limit, min_similarity)
            return hits, [request.tier]

        workspace_tier, *fallback_tiers = TIER_ORDER
        hits = await self._search_tier(request, workspace_tier, vector, limit, min_similarity)
        if len(hits) >= limit:
            logger.debug("Sufficient results in workspace tier, skipping other tiers")
            return hits, [workspace_tier]

        # Workspace tier is confirmed short, the remaining tiers are independent reads
        fallback_hits = await asyncio.gather(*(
            self._search_tier(request, tier, vector, limit, min_similarity)
            for tier in fallback_tiers
        ))
        for tier_hits in fallback_hits:
            hits.extend(tier_hits)

        return hits, [workspace_tier, *fallback_tiers]

    async def _search_tier(
        self,
        request: RetrievalRequest,
        tier: ContextTier,
        vector: List[float],
        limit: int,
        min_similarity: float
    ) -> List[VectorHit]:
        logger.debug("Searching tier", tier=tier.value)

        return await self.index.search(
            vector,
            VectorSearchFilter(
                workspace_id=request.workspace_id,
                tier=tier,
                task_type=request.task_type,
                min_confidence=self.config.min_confidence
            ),
            limit,
            min_similarity=min_similarity
        )

    async def _hydrate(self, hits: List[VectorHit]) -> List[ScoredContext]:
        if not hits:
            return []

        contexts = await self.storage.get_batch([hit.context_id for hit in hits], touch=False)
        by_id = {context.id: context for context in contexts}

        hydrated = []
        for hit in hits:
            context = by_id.get(hit.context_id)
            if context is None:
                continue
            hydrated.append(ScoredContext(
                **context.model_dump(exclude={"embedding"}),
                score=hit.similarity,
                score_breakdown=ScoreBreakdown(semantic_similarity=hit.similarity)
            ))

        stale = len(hits) - len(hydrated)
        if stale:
            logger.warning("Dropped stale index entries", count=stale)

        return hydrated

    @staticmethod
    def _validate(request: RetrievalRequest) -> None:
        if not request.query or not request.query.strip():
            raise ValidationError("query must not be empty")
        if not request.workspace_id or not request.workspace_id.strip():
            raise ValidationError("workspace_id must not be empty")
        if request.limit is not None and request.limit <= 0:
            raise ValidationError("limit must be positive", {"limit": request.limit})
        if request.min_similarity is not None and not 0.0 <= request.min_similarity <= 1.0:
            raise ValidationError(
                "min_similarity must be within [0, 1]",
                {"min_similarity": request.min_similarity}
            )
