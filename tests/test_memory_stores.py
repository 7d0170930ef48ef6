import asyncio

import pytest

from axon.domain.context.memory.cache_memory_store import CacheMemoryStore
from axon.domain.context.memory.document_memory_store import DocumentMemoryStore
from axon.domain.context.memory.vector_memory_store import VectorMemoryStore, payload_matches
from axon.domain.models import ContextTier, TaskCategory, VectorPoint, VectorSearchFilter


@pytest.fixture
def collection():
    return DocumentMemoryStore().collection("items")


async def test_find_with_operators_and_sort(collection):
    await collection.insert_many([
        {"id": "a", "rank": 3, "meta": {"tag": "x"}},
        {"id": "b", "rank": 1, "meta": {"tag": "y"}},
        {"id": "c", "rank": 2, "meta": {"tag": "x"}},
    ])

    found = await collection.find({"meta.tag": "x"}, sort=[("rank", 1)])
    assert [doc["id"] for doc in found] == ["c", "a"]

    found = await collection.find({"rank": {"$gte": 2}}, sort=[("rank", -1)], limit=1)
    assert [doc["id"] for doc in found] == ["a"]

    assert await collection.count({"id": {"$in": ["a", "b", "z"]}}) == 2


async def test_update_operators(collection):
    await collection.insert_one({"id": "a", "metadata": {}})

    updated = await collection.update_one(
        {"id": "a"},
        {"$set": {"metadata.tag": "x"}, "$inc": {"metadata.count": 2}}
    )

    assert updated["metadata"] == {"tag": "x", "count": 2}


async def test_returned_documents_are_copies(collection):
    await collection.insert_one({"id": "a", "tags": ["x"]})

    found = await collection.find_one({"id": "a"})
    found["tags"].append("y")

    assert (await collection.find_one({"id": "a"}))["tags"] == ["x"]


async def test_unsupported_operator_raises(collection):
    await collection.insert_one({"id": "a"})

    with pytest.raises(ValueError):
        await collection.find({"id": {"$regex": "a"}})


async def test_delete_many(collection):
    await collection.insert_many([{"id": "a", "w": 1}, {"id": "b", "w": 1}, {"id": "c", "w": 2}])

    assert await collection.delete_many({"w": 1}) == 2
    assert await collection.count({}) == 1


def test_payload_filter():
    payload = {"workspace_id": "ws-1", "tier": "workspace", "confidence": 0.5, "tags": ["auth"]}

    assert payload_matches(payload, VectorSearchFilter(workspace_id="ws-1", tier=ContextTier.WORKSPACE))
    assert not payload_matches(payload, VectorSearchFilter(min_confidence=0.6))
    assert payload_matches(payload, VectorSearchFilter(task_type=TaskCategory.TESTING))
    assert not payload_matches({**payload, "task_types": ["bug_fix"]}, VectorSearchFilter(task_type=TaskCategory.TESTING))
    assert payload_matches(payload, VectorSearchFilter(tags=["auth", "db"]))
    assert not payload_matches(payload, VectorSearchFilter(tags=["db"]))


async def test_vector_search_orders_and_thresholds():
    index = VectorMemoryStore()
    await index.upsert_batch([
        VectorPoint(id="same", vector=[1.0, 0.0], payload={"workspace_id": "ws-1"}),
        VectorPoint(id="close", vector=[1.0, 1.0], payload={"workspace_id": "ws-1"}),
        VectorPoint(id="opposite", vector=[-1.0, 0.0], payload={"workspace_id": "ws-1"}),
    ])

    hits = await index.search([1.0, 0.0], VectorSearchFilter(workspace_id="ws-1"), limit=10)
    assert [hit.context_id for hit in hits] == ["same", "close", "opposite"]
    assert hits[-1].similarity == 0.0

    hits = await index.search([1.0, 0.0], VectorSearchFilter(), limit=10, min_similarity=0.5)
    assert [hit.context_id for hit in hits] == ["same", "close"]


async def test_vector_delete_by_filter():
    index = VectorMemoryStore()
    await index.upsert(VectorPoint(id="a", vector=[1.0], payload={"workspace_id": "ws-1"}))
    await index.upsert(VectorPoint(id="b", vector=[1.0], payload={"workspace_id": "ws-2"}))

    assert await index.delete_by_filter(VectorSearchFilter(workspace_id="ws-1")) == 1
    assert await index.count() == 1


async def test_cache_ttl_and_stats():
    cache = CacheMemoryStore(default_ttl=60)
    await cache.set("short", 1, ttl=0)
    await cache.set("long", 2)
    await asyncio.sleep(0.01)

    assert await cache.get("short") is None
    assert await cache.get("long") == 2
    assert await cache.get_many(["long", "missing"]) == {"long": 2}

    stats = await cache.get_stats()
    assert stats["hits"] == 2
    assert stats["misses"] == 2


async def test_cache_clear_expired():
    cache = CacheMemoryStore()
    await cache.set_many({"a": 1, "b": 2}, ttl=0)
    await asyncio.sleep(0.01)

    assert await cache.clear_expired() == 2
