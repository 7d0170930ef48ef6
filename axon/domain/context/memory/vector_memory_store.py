from typing import Dict, List, Any, Optional
import asyncio

import numpy as np

from axon.domain.context.ports import VectorIndex
from axon.domain.models import VectorHit, VectorPoint, VectorSearchFilter


def payload_matches(payload: Dict[str, Any], filter: Optional[VectorSearchFilter]) -> bool:
    """Check an index payload against a search filter"""

    if filter is None:
        return True
    if filter.workspace_id is not None and payload.get("workspace_id") != filter.workspace_id:
        return False
    if filter.tier is not None and payload.get("tier") != filter.tier.value:
        return False
    if filter.source is not None and payload.get("source") != filter.source:
        return False
    if filter.min_confidence is not None and float(payload.get("confidence", 1.0)) < filter.min_confidence:
        return False

    # Points without task_types are relevant to every task type
    if filter.task_type is not None:
        task_types = payload.get("task_types")
        if task_types and filter.task_type.value not in task_types:
            return False

    if filter.tags:
        if not set(filter.tags).intersection(payload.get("tags") or []):
            return False

    return True


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    denom = np.linalg.norm(a) * np.linalg.norm(b)
    if denom == 0:
        return 0.0
    return float(np.dot(a, b) / denom)


class VectorMemoryStore(VectorIndex):
    """In-memory vector index using brute force cosine similarity"""

    def __init__(self):
        self.points: Dict[str, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def search(
        self,
        vector: List[float],
        filter: VectorSearchFilter,
        limit: int,
        min_similarity: float = 0.0
    ) -> List[VectorHit]:
        """Search for the closest points matching the filter"""

        query = np.asarray(vector, dtype=float)

        async with self._lock:
            hits = []
            for point_id, point in self.points.items():
                if not payload_matches(point["payload"], filter):
                    continue

                # Clamp to [0, 1] so similarity can be used as a score factor
                similarity = max(0.0, min(1.0, cosine_similarity(query, point["vector"])))
                if similarity < min_similarity:
                    continue

                hits.append(VectorHit(
                    context_id=point_id,
                    similarity=similarity,
                    payload=dict(point["payload"])
                ))

        hits.sort(key=lambda hit: hit.similarity, reverse=True)
        return hits[:limit]

    async def upsert(self, point: VectorPoint) -> None:
        async with self._lock:
            self._store(point)

    async def upsert_batch(self, points: List[VectorPoint]) -> None:
        async with self._lock:
            for point in points:
                self._store(point)

    async def delete(self, context_id: str) -> None:
        async with self._lock:
            self.points.pop(context_id, None)

    async def delete_batch(self, context_ids: List[str]) -> None:
        async with self._lock:
            for context_id in context_ids:
                self.points.pop(context_id, None)

    async def delete_by_filter(self, filter: VectorSearchFilter) -> int:
        async with self._lock:
            doomed = [
                point_id for point_id, point in self.points.items()
                if payload_matches(point["payload"], filter)
            ]
            for point_id in doomed:
                del self.points[point_id]
            return len(doomed)

    async def count(self, filter: Optional[VectorSearchFilter] = None) -> int:
        async with self._lock:
            return sum(1 for point in self.points.values() if payload_matches(point["payload"], filter))

    async def health_check(self) -> bool:
        return True

    def _store(self, point: VectorPoint) -> None:
        self.points[point.id] = {
            "vector": np.asarray(point.vector, dtype=float),
            "payload": dict(point.payload)
        }
