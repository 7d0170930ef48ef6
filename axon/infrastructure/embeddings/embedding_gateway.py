from typing import List, Optional, Sequence
import hashlib
import time

import structlog
from langchain_core.embeddings import Embeddings

from axon.domain.context.memory.cache_memory_store import CacheMemoryStore

logger = structlog.get_logger(__name__)

EMBEDDING_CACHE_TTL = 86400
MAX_EMBEDDING_BATCH_SIZE = 32


def cache_key(text: str, prefix: str = "embed") -> str:
    digest = hashlib.md5(text.encode("utf-8")).hexdigest()
    return f"{prefix}:{digest}"


class EmbeddingGateway:
    """Content-addressed caching wrapper around a LangChain embedding model"""

    def __init__(
        self,
        embeddings: Embeddings,
        cache: Optional[CacheMemoryStore] = None,
        cache_ttl: int = EMBEDDING_CACHE_TTL,
        max_batch_size: int = MAX_EMBEDDING_BATCH_SIZE
    ):
        self.embeddings = embeddings
        self.cache = cache or CacheMemoryStore(default_ttl=cache_ttl)
        self.cache_ttl = cache_ttl
        self.max_batch_size = max_batch_size

    async def embed(self, text: str, key: Optional[str] = None) -> List[float]:
        """Embed a single text, served from cache when possible"""

        key = key or cache_key(text)

        cached = await self.cache.get(key)
        if cached is not None:
            logger.debug("Embedding cache hit", key=key)
            return cached

        start = time.perf_counter()
        vector = _as_floats(await self.embeddings.aembed_query(text))
        logger.debug("Generated embedding", latency_ms=(time.perf_counter() - start) * 1000)

        await self.cache.set(key, vector, ttl=self.cache_ttl)
        return vector

    async def embed_batch(self, texts: Sequence[str], prefix: str = "embed") -> List[List[float]]:
        """Embed texts in order, sending only cache misses to the model"""

        if not texts:
            return []

        keys = [cache_key(text, prefix) for text in texts]
        cached = await self.cache.get_many(keys)

        results: List[Optional[List[float]]] = [cached.get(key) for key in keys]
        missing = [i for i, vector in enumerate(results) if vector is None]

        logger.debug(
            "Embedding batch",
            cache_hits=len(texts) - len(missing),
            to_generate=len(missing)
        )

        for offset in range(0, len(missing), self.max_batch_size):
            chunk = missing[offset:offset + self.max_batch_size]
            vectors = await self.embeddings.aembed_documents([texts[i] for i in chunk])

            fresh = {}
            for index, vector in zip(chunk, vectors):
                results[index] = _as_floats(vector)
                fresh[keys[index]] = results[index]
            await self.cache.set_many(fresh, ttl=self.cache_ttl)

        return results

    async def clear_cache(self) -> None:
        await self.cache.clear()

    async def health_check(self) -> bool:
        try:
            await self.embeddings.aembed_query("health check")
            return True
        except Exception as e:
            logger.error("Embedding gateway health check failed", error=str(e))
            return False


def _as_floats(vector: Sequence[float]) -> List[float]:
    return [float(x) for x in vector]
