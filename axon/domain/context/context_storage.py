from typing import Dict, List, Any, Optional
import asyncio
import math
import time

import structlog

from axon.domain.errors import ValidationError
from axon.domain.models import (
    Context,
    ContextCreate,
    ContextTier,
    ContextType,
    ContextUpdate,
    ContextVersion,
    utc_now,
)
from axon.infrastructure.embeddings.embedding_gateway import EmbeddingGateway
from axon.infrastructure.observability.logging import pipeline_logger
from .context_index import build_point
from .ports import DocumentStore, VectorIndex

logger = structlog.get_logger(__name__)

CONTEXTS = "contexts"
VERSIONS = "context_versions"
DEFAULT_MIN_CONFIDENCE = 0.3


class ContextStorage:
    """Dual store: authoritative documents plus a derived vector index.

    Every content-affecting write runs embed -> document -> index -> version.
    Only the first two steps can fail the call; index and version writes are
    best-effort and never roll back the document.

    A caller-supplied ``metadata.confidence`` must lie in
    [min_confidence_threshold, 1.0].
    """

    def __init__(
        self,
        documents: DocumentStore,
        index: VectorIndex,
        embeddings: EmbeddingGateway,
        enable_versioning: bool = True,
        min_confidence_threshold: float = DEFAULT_MIN_CONFIDENCE
    ):
        self.documents = documents
        self.index = index
        self.embeddings = embeddings
        self.enable_versioning = enable_versioning
        self.min_confidence_threshold = min_confidence_threshold

    @property
    def contexts(self):
        return self.documents.collection(CONTEXTS)

    @property
    def versions(self):
        return self.documents.collection(VERSIONS)

    async def create(
        self,
        data: ContextCreate,
        generate_embeddings: bool = True,
        index_in_vector_db: bool = True,
        updated_by: Optional[str] = None
    ) -> Context:
        """Create a new context"""

        _validate_new(data, self.min_confidence_threshold)
        start = time.perf_counter()

        context = Context(**data.model_dump())
        logger.info("Creating context", context_id=context.id, type=context.type.value)

        if generate_embeddings:
            context.embedding = await self.embeddings.embed(context.content)

        await self.contexts.insert_one(_to_document(context))

        if index_in_vector_db and context.embedding is not None:
            await self._index([context])

        if self.enable_versioning:
            await self._append_version(context, updated_by)

        pipeline_logger.log_storage_event(
            "create",
            context_id=context.id,
            details={"latency_ms": (time.perf_counter() - start) * 1000}
        )
        return context

    async def create_batch(
        self,
        items: List[ContextCreate],
        generate_embeddings: bool = True,
        index_in_vector_db: bool = True,
        updated_by: Optional[str] = None
    ) -> List[Context]:
        """Create contexts with one embedding call and one index call"""

        if not items:
            return []

        for item in items:
            _validate_new(item, self.min_confidence_threshold)

        start = time.perf_counter()
        now = utc_now()
        contexts = [
            Context(**item.model_dump(), created_at=now, updated_at=now)
            for item in items
        ]
        logger.info("Creating contexts in batch", count=len(contexts))

        if generate_embeddings:
            vectors = await self.embeddings.embed_batch([c.content for c in contexts])
            for context, vector in zip(contexts, vectors):
                context.embedding = vector

        await self.contexts.insert_many([_to_document(c) for c in contexts])

        if index_in_vector_db:
            await self._index([c for c in contexts if c.embedding is not None])

        if self.enable_versioning:
            await asyncio.gather(*(self._append_version(c, updated_by) for c in contexts))

        pipeline_logger.log_storage_event(
            "create_batch",
            details={"count": len(contexts), "latency_ms": (time.perf_counter() - start) * 1000}
        )
        return contexts

    async def get(self, context_id: str) -> Optional[Context]:
        """Fetch a context by id and stamp its last access time"""

        document = await self.contexts.find_one({"id": context_id})
        if document is None:
            return None

        await self._touch([context_id])
        return _from_document(document)

    async def get_batch(self, context_ids: List[str], touch: bool = True) -> List[Context]:
        """Fetch contexts in the order of ``context_ids``, skipping missing ones"""

        if not context_ids:
            return []

        documents = await self.contexts.find({"id": {"$in": list(context_ids)}})
        by_id = {doc["id"]: doc for doc in documents}

        if touch:
            await self._touch(list(by_id))
        return [_from_document(by_id[cid]) for cid in context_ids if cid in by_id]

    async def update(
        self,
        context_id: str,
        changes: ContextUpdate,
        regenerate_embeddings: bool = True,
        updated_by: Optional[str] = None,
        replace_metadata: bool = False,
        force_reembed: bool = False
    ) -> Optional[Context]:
        """Update content and/or metadata; returns None when the context does not exist.

        Metadata is merged key by key unless ``replace_metadata`` is set.
        """

        if changes.content is not None and not changes.content.strip():
            raise ValidationError("content must not be empty", {"context_id": context_id})
        if changes.metadata is not None:
            _check_confidence(changes.metadata, self.min_confidence_threshold, {"context_id": context_id})

        current_doc = await self.contexts.find_one({"id": context_id})
        if current_doc is None:
            logger.warning("Context not found for update", context_id=context_id)
            return None
        current = _from_document(current_doc)

        if changes.tier is not None and changes.tier != current.tier:
            raise ValidationError(
                "tier is immutable; delete and recreate the context instead",
                {"context_id": context_id, "tier": current.tier.value}
            )
        if changes.type is not None and changes.type != current.type:
            raise ValidationError(
                "type is immutable; delete and recreate the context instead",
                {"context_id": context_id, "type": current.type.value}
            )

        start = time.perf_counter()
        content_changed = changes.content is not None and changes.content != current.content
        new_content = changes.content if changes.content is not None else current.content

        updates: Dict[str, Any] = {"updated_at": utc_now()}
        if content_changed:
            updates["content"] = new_content
        if changes.metadata is not None:
            merged = dict(changes.metadata) if replace_metadata else {**current.metadata, **changes.metadata}
            updates["metadata"] = merged

        new_embedding = None
        if regenerate_embeddings and (content_changed or force_reembed):
            new_embedding = await self.embeddings.embed(new_content)
            updates["embedding"] = new_embedding

        updated_doc = await self.contexts.update_one({"id": context_id}, {"$set": updates})
        if updated_doc is None:
            return None
        updated = _from_document(updated_doc)

        if new_embedding is not None:
            await self._reindex(updated)
        elif changes.metadata is not None and updated.embedding is not None:
            await self._index([updated])

        if self.enable_versioning and content_changed:
            await self._append_version(updated, updated_by)

        pipeline_logger.log_storage_event(
            "update",
            context_id=context_id,
            details={
                "content_changed": content_changed,
                "reembedded": new_embedding is not None,
                "latency_ms": (time.perf_counter() - start) * 1000
            }
        )
        return updated

    async def patch_metadata(
        self,
        context_id: str,
        set_fields: Optional[Dict[str, Any]] = None,
        inc_fields: Optional[Dict[str, Any]] = None,
        touch_updated: bool = False,
        refresh_index: bool = True
    ) -> Optional[Context]:
        """Set or increment individual metadata keys without re-embedding"""

        update: Dict[str, Dict[str, Any]] = {}
        if set_fields:
            update["$set"] = {f"metadata.{key}": value for key, value in set_fields.items()}
        if touch_updated:
            update.setdefault("$set", {})["updated_at"] = utc_now()
        if inc_fields:
            update["$inc"] = {f"metadata.{key}": value for key, value in inc_fields.items()}
        if not update:
            return await self.get(context_id)

        document = await self.contexts.update_one({"id": context_id}, update)
        if document is None:
            return None

        context = _from_document(document)
        if refresh_index and context.embedding is not None:
            await self._index([context])
        return context

    async def delete(self, context_id: str) -> bool:
        """Delete a context with its index entry and version history"""

        logger.info("Deleting context", context_id=context_id)

        deleted = await self.contexts.delete_one({"id": context_id})
        if deleted == 0:
            logger.warning("Context not found for deletion", context_id=context_id)
            return False

        try:
            await self.index.delete(context_id)
        except Exception as e:
            logger.error("Failed to delete index entry", context_id=context_id, error=str(e))

        try:
            await self.versions.delete_many({"context_id": context_id})
        except Exception as e:
            logger.error("Failed to delete versions", context_id=context_id, error=str(e))

        pipeline_logger.log_storage_event("delete", context_id=context_id)
        return True

    async def delete_batch(self, context_ids: List[str]) -> int:
        """Delete several contexts; returns how many documents were removed"""

        if not context_ids:
            return 0

        logger.info("Deleting contexts in batch", count=len(context_ids))
        deleted = await self.contexts.delete_many({"id": {"$in": list(context_ids)}})

        try:
            await self.index.delete_batch(list(context_ids))
        except Exception as e:
            logger.error("Failed to delete index entries", count=len(context_ids), error=str(e))

        try:
            await self.versions.delete_many({"context_id": {"$in": list(context_ids)}})
        except Exception as e:
            logger.error("Failed to delete versions", count=len(context_ids), error=str(e))

        pipeline_logger.log_storage_event("delete_batch", details={"deleted": deleted})
        return deleted

    async def list_by_workspace(
        self,
        workspace_id: str,
        tier: Optional[ContextTier] = None,
        type: Optional[ContextType] = None,
        limit: Optional[int] = None,
        skip: int = 0
    ) -> List[Context]:
        """List a workspace's contexts, optionally narrowed by tier and type"""

        documents = await self.contexts.find(
            _workspace_filter(workspace_id, tier, type),
            skip=skip,
            limit=limit
        )
        return [_from_document(doc) for doc in documents]

    async def count_by_workspace(
        self,
        workspace_id: str,
        tier: Optional[ContextTier] = None,
        type: Optional[ContextType] = None
    ) -> int:
        """Count a workspace's contexts, optionally narrowed by tier and type"""

        return await self.contexts.count(_workspace_filter(workspace_id, tier, type))

    async def get_versions(self, context_id: str, limit: int = 10) -> List[ContextVersion]:
        """Version history, newest first"""

        if not self.enable_versioning:
            return []

        documents = await self.versions.find(
            {"context_id": context_id},
            sort=[("version", -1)],
            limit=limit
        )
        return [ContextVersion.model_validate(doc) for doc in documents]

    async def restore_version(
        self,
        context_id: str,
        version: int,
        updated_by: Optional[str] = None
    ) -> Optional[Context]:
        """Re-apply a stored version through the normal update path"""

        if not self.enable_versioning:
            raise ValidationError("versioning is not enabled", {"context_id": context_id})
        if version < 1:
            raise ValidationError("version must be >= 1", {"version": version})

        logger.info("Restoring context version", context_id=context_id, version=version)

        document = await self.versions.find_one({"context_id": context_id, "version": version})
        if document is None:
            logger.warning("Version not found", context_id=context_id, version=version)
            return None

        stored = ContextVersion.model_validate(document)
        return await self.update(
            context_id,
            ContextUpdate(content=stored.content, metadata=stored.metadata),
            regenerate_embeddings=True,
            updated_by=updated_by,
            replace_metadata=True,
            force_reembed=True
        )

    async def health_check(self) -> Dict[str, bool]:
        """Report reachability of the document store, index and embeddings"""

        try:
            documents_ok = await self.documents.ping()
        except Exception as e:
            logger.error("Document store health check failed", error=str(e))
            documents_ok = False

        try:
            index_ok = await self.index.health_check()
        except Exception as e:
            logger.error("Vector index health check failed", error=str(e))
            index_ok = False

        return {
            "document_store": documents_ok,
            "vector_index": index_ok,
            "embeddings": await self.embeddings.health_check()
        }

    async def _index(self, contexts: List[Context]) -> None:
        if not contexts:
            return
        try:
            points = [build_point(c, c.embedding) for c in contexts]
            if len(points) == 1:
                await self.index.upsert(points[0])
            else:
                await self.index.upsert_batch(points)
        except Exception as e:
            logger.error(
                "Failed to index contexts",
                context_ids=[c.id for c in contexts],
                error=str(e)
            )

    async def _reindex(self, context: Context) -> None:
        # Drop the old entry first so the id never has two live vectors
        try:
            await self.index.delete(context.id)
            await self.index.upsert(build_point(context, context.embedding))
        except Exception as e:
            logger.error("Failed to re-index context", context_id=context.id, error=str(e))

    async def _append_version(self, context: Context, updated_by: Optional[str]) -> None:
        try:
            latest = await self.versions.find_one(
                {"context_id": context.id},
                sort=[("version", -1)]
            )
            number = latest["version"] + 1 if latest else 1

            version = ContextVersion(
                context_id=context.id,
                version=number,
                content=context.content,
                metadata=context.metadata,
                updated_by=updated_by
            )
            await self.versions.insert_one(version.model_dump())
        except Exception as e:
            logger.error("Failed to create version", context_id=context.id, error=str(e))

    async def _touch(self, context_ids: List[str]) -> None:
        if not context_ids:
            return
        try:
            await self.contexts.update_many(
                {"id": {"$in": context_ids}},
                {"$set": {"metadata.last_accessed": utc_now()}}
            )
        except Exception as e:
            logger.debug("Failed to update last accessed time", count=len(context_ids), error=str(e))


def _validate_new(data: ContextCreate, min_confidence: float) -> None:
    if not data.workspace_id.strip():
        raise ValidationError("workspace_id must not be empty")
    if not data.content.strip():
        raise ValidationError("content must not be empty", {"workspace_id": data.workspace_id})
    _check_confidence(data.metadata, min_confidence, {"workspace_id": data.workspace_id})


def _check_confidence(metadata: Dict[str, Any], min_confidence: float, details: Dict[str, Any]) -> None:
    if "confidence" not in metadata:
        return

    value = metadata["confidence"]
    is_number = isinstance(value, (int, float)) and not isinstance(value, bool)
    if not is_number or not math.isfinite(value) or not min_confidence <= value <= 1.0:
        raise ValidationError(
            f"confidence must be a number within [{min_confidence}, 1.0]",
            {**details, "confidence": str(value)}
        )


def _workspace_filter(
    workspace_id: str,
    tier: Optional[ContextTier],
    type: Optional[ContextType]
) -> Dict[str, Any]:
    filter: Dict[str, Any] = {"workspace_id": workspace_id}
    if tier is not None:
        filter["tier"] = tier.value
    if type is not None:
        filter["type"] = type.value
    return filter


def _to_document(context: Context) -> Dict[str, Any]:
    document = context.model_dump()
    document["tier"] = context.tier.value
    document["type"] = context.type.value
    return document


def _from_document(document: Dict[str, Any]) -> Context:
    return Context.model_validate(document)
