from axon.infrastructure.embeddings.embedding_gateway import EmbeddingGateway, cache_key

from conftest import KeywordEmbeddings


class BrokenEmbeddings(KeywordEmbeddings):

    def embed_query(self, text):
        raise RuntimeError("model unavailable")


def test_cache_key_is_content_addressed():
    assert cache_key("auth") == cache_key("auth")
    assert cache_key("auth") != cache_key("cache")
    assert cache_key("auth", prefix="doc").startswith("doc:")


async def test_embed_is_cached(gateway, embeddings):
    first = await gateway.embed("auth login")
    second = await gateway.embed("auth login")

    assert first == second
    assert embeddings.query_calls == ["auth login"]


async def test_embed_batch_only_sends_misses(gateway, embeddings):
    await gateway.embed_batch(["auth"])

    vectors = await gateway.embed_batch(["auth", "cache", "render"])

    assert len(vectors) == 3
    assert embeddings.document_calls == [["auth"], ["cache", "render"]]
    assert vectors[1] == embeddings.embed_query("cache")


async def test_embed_batch_respects_batch_size(embeddings):
    gateway = EmbeddingGateway(embeddings, max_batch_size=2)

    await gateway.embed_batch(["auth", "cache", "render", "deploy", "test"])

    assert [len(call) for call in embeddings.document_calls] == [2, 2, 1]


async def test_embed_batch_empty(gateway, embeddings):
    assert await gateway.embed_batch([]) == []
    assert embeddings.document_calls == []


async def test_clear_cache_forces_regeneration(gateway, embeddings):
    await gateway.embed("auth")
    await gateway.clear_cache()
    await gateway.embed("auth")

    assert embeddings.query_calls == ["auth", "auth"]


async def test_health_check(gateway):
    assert await gateway.health_check() is True
    assert await EmbeddingGateway(BrokenEmbeddings()).health_check() is False
