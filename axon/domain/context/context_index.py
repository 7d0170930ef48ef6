from typing import Dict, List, Any

from axon.domain.models import Context, VectorPoint


def build_payload(context: Context) -> Dict[str, Any]:
    """Index payload mirrored from the document record"""

    metadata = context.metadata
    payload = {
        "workspace_id": context.workspace_id,
        "tier": context.tier.value,
        "type": context.type.value,
        "source": context.source,
        "confidence": context.confidence,
        "usage_count": context.usage_count,
        "tags": list(metadata.get("tags") or []),
        "created_at": context.created_at.isoformat(),
        "updated_at": context.updated_at.isoformat(),
    }

    # Omitted task_types means "relevant to every task type"
    task_types = metadata.get("task_types")
    if task_types:
        payload["task_types"] = [str(getattr(t, "value", t)) for t in task_types]

    return payload


def build_point(context: Context, embedding: List[float]) -> VectorPoint:
    return VectorPoint(id=context.id, vector=embedding, payload=build_payload(context))
