from typing import Optional
from datetime import timedelta
import time

import structlog

from axon.domain.context.context_ranker import age_in_days
from axon.domain.context.context_storage import ContextStorage
from axon.domain.models import (
    Context,
    ContextFeedback,
    EvolutionResult,
    EvolutionStats,
    ExtensionPointResult,
    utc_now,
)
from axon.infrastructure.config.settings import EvolutionSettings
from axon.infrastructure.observability.logging import pipeline_logger

logger = structlog.get_logger(__name__)

FEEDBACK = "context_feedback"

MAX_FEEDBACK_WEIGHT = 0.3
FEEDBACK_WEIGHT_PER_USE = 0.01
NEUTRAL_FEEDBACK_SCORE = 0.5
RECENT_FEEDBACK_WINDOW = timedelta(days=7)


def feedback_score(feedback: ContextFeedback) -> float:
    """An explicit helpful verdict wins over a rating"""

    if feedback.helpful is True:
        return 1.0
    if feedback.helpful is False:
        return 0.0
    if feedback.rating is not None:
        return feedback.rating / 5.0
    return NEUTRAL_FEEDBACK_SCORE


class ContextEvolutionEngine:
    """Adjusts context confidence from feedback and age"""

    def __init__(self, storage: ContextStorage, config: Optional[EvolutionSettings] = None):
        self.storage = storage
        self.config = config or EvolutionSettings()

    @property
    def feedback_log(self):
        return self.storage.documents.collection(FEEDBACK)

    def calculate_confidence(self, context: Context, feedback: ContextFeedback) -> float:
        weight = min(MAX_FEEDBACK_WEIGHT, context.usage_count * FEEDBACK_WEIGHT_PER_USE)
        blended = context.confidence * (1 - weight) + feedback_score(feedback) * weight
        return max(self.config.min_confidence_threshold, min(1.0, blended))

    async def process_feedback(self, feedback: ContextFeedback) -> Optional[Context]:
        """Record feedback and fold it into the context's confidence.

        The feedback event is logged even when the context no longer exists.
        """

        logger.info(
            "Processing context feedback",
            context_id=feedback.context_id,
            helpful=feedback.helpful
        )

        await self._store_feedback(feedback)

        context = await self.storage.get(feedback.context_id)
        if context is None:
            logger.warning("Context not found for feedback", context_id=feedback.context_id)
            return None

        new_confidence = self.calculate_confidence(context, feedback)
        updated = await self.storage.patch_metadata(
            context.id,
            set_fields={"confidence": new_confidence},
            inc_fields={"usage_count": 1} if feedback.used else None,
            touch_updated=True
        )

        pipeline_logger.log_evolution(
            feedback.workspace_id,
            "feedback",
            {
                "context_id": context.id,
                "previous_confidence": context.confidence,
                "new_confidence": new_confidence
            }
        )
        return updated

    async def apply_temporal_decay(self, workspace_id: str) -> EvolutionResult:
        """Decay every context in the workspace by age, deleting exhausted ones"""

        start = time.perf_counter()
        logger.info("Applying temporal decay", workspace_id=workspace_id)

        threshold = self.config.min_confidence_threshold
        contexts = await self.storage.list_by_workspace(workspace_id)
        now = utc_now()

        updated = 0
        deleted = 0
        failed = 0

        for context in contexts:
            try:
                decay = self.config.temporal_decay_rate * age_in_days(context.updated_at, now)
                current = context.confidence
                new_confidence = max(threshold, current - decay)

                if new_confidence <= threshold:
                    if await self.storage.delete(context.id):
                        deleted += 1
                        logger.info(
                            "Context removed due to low confidence",
                            context_id=context.id,
                            confidence=new_confidence
                        )
                    continue

                if abs(new_confidence - current) > self.config.change_noise_floor:
                    await self.storage.patch_metadata(
                        context.id,
                        set_fields={"confidence": new_confidence},
                        touch_updated=True
                    )
                    updated += 1
            except Exception as e:
                failed += 1
                logger.error("Failed to decay context", context_id=context.id, error=str(e))

        latency_ms = (time.perf_counter() - start) * 1000
        summary = (
            f"Applied temporal decay to {len(contexts)} contexts, "
            f"updated {updated}, deleted {deleted}"
        )
        if failed:
            summary += f", failed {failed}"

        pipeline_logger.log_evolution(
            workspace_id,
            "temporal_decay",
            {"processed": len(contexts), "updated": updated, "deleted": deleted, "failed": failed}
        )

        return EvolutionResult(
            contexts_updated=updated,
            contexts_deleted=deleted,
            latency_ms=latency_ms,
            summary=summary
        )

    async def consolidate_similar_contexts(self, workspace_id: str) -> ExtensionPointResult:
        """Merge near-duplicate contexts.

        Not implemented. A real strategy would find pairs above
        ``consolidation_threshold`` similarity, merge their content and
        metadata, keep the higher-confidence record and delete the rest.
        """

        logger.info("Context consolidation is not implemented", workspace_id=workspace_id)
        return ExtensionPointResult(
            name="consolidate_similar_contexts",
            reason=f"no consolidation strategy configured (threshold {self.config.consolidation_threshold})"
        )

    async def resolve_conflicts(self, workspace_id: str) -> ExtensionPointResult:
        """Resolve contradictory contexts.

        Not implemented. A real strategy would detect contradictions and keep
        the most reliable record by recency, confidence and usage.
        """

        logger.info("Conflict resolution is not implemented", workspace_id=workspace_id)
        return ExtensionPointResult(
            name="resolve_conflicts",
            reason="no conflict resolution strategy configured"
        )

    async def evolve(self, workspace_id: str) -> EvolutionResult:
        """Run a full evolution cycle: decay, consolidation, conflict resolution"""

        start = time.perf_counter()
        logger.info("Running evolution cycle", workspace_id=workspace_id)

        decay = await self.apply_temporal_decay(workspace_id)
        consolidation = await self.consolidate_similar_contexts(workspace_id)
        conflicts = await self.resolve_conflicts(workspace_id)

        result = EvolutionResult(
            contexts_updated=decay.contexts_updated,
            contexts_deleted=decay.contexts_deleted,
            contexts_consolidated=consolidation.processed,
            conflicts_resolved=conflicts.processed,
            latency_ms=(time.perf_counter() - start) * 1000,
            summary=(
                f"Evolution cycle complete: {decay.contexts_updated} updated, "
                f"{decay.contexts_deleted} deleted, {consolidation.processed} consolidated, "
                f"{conflicts.processed} conflicts resolved"
            )
        )

        logger.info("Evolution cycle completed", workspace_id=workspace_id, latency_ms=result.latency_ms)
        return result

    async def get_evolution_stats(self, workspace_id: str) -> EvolutionStats:
        contexts = await self.storage.list_by_workspace(workspace_id)

        total = len(contexts)
        average = sum(c.confidence for c in contexts) / total if total else 0.0
        low = sum(1 for c in contexts if c.confidence < self.config.min_confidence_threshold)

        recent = await self.feedback_log.count({
            "workspace_id": workspace_id,
            "timestamp": {"$gte": utc_now() - RECENT_FEEDBACK_WINDOW}
        })

        return EvolutionStats(
            total_contexts=total,
            average_confidence=average,
            low_confidence_contexts=low,
            recent_feedback_count=recent
        )

    async def _store_feedback(self, feedback: ContextFeedback) -> None:
        try:
            await self.feedback_log.insert_one(feedback.model_dump())
        except Exception as e:
            logger.error("Failed to store feedback", context_id=feedback.context_id, error=str(e))
