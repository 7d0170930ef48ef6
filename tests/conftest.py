"""
Shared fixtures: in-memory stores, keyword embeddings and helpers for aging
stored contexts.
"""

from datetime import timedelta
from typing import List

import pytest
from langchain_core.embeddings import Embeddings

from axon.domain.context.context_retriever import ContextRetriever
from axon.domain.context.context_storage import ContextStorage
from axon.domain.context.memory.document_memory_store import DocumentMemoryStore
from axon.domain.context.memory.vector_memory_store import VectorMemoryStore
from axon.domain.evolution.context_evolution import ContextEvolutionEngine
from axon.domain.models import ContextCreate, ContextTier, ContextType, utc_now
from axon.infrastructure.config import EvolutionSettings, RetrievalSettings
from axon.infrastructure.embeddings.embedding_gateway import EmbeddingGateway

VOCABULARY = [
    "auth", "login", "token", "session",
    "database", "query", "cache", "render",
    "deploy", "test",
]


class KeywordEmbeddings(Embeddings):
    """Bag-of-keywords vectors, so cosine similarity follows shared terms"""

    def __init__(self, vocabulary: List[str] = VOCABULARY):
        self.vocabulary = list(vocabulary)
        self.query_calls: List[str] = []
        self.document_calls: List[List[str]] = []

    def _vector(self, text: str) -> List[float]:
        lowered = text.lower()
        return [float(lowered.count(term)) for term in self.vocabulary]

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        self.document_calls.append(list(texts))
        return [self._vector(text) for text in texts]

    def embed_query(self, text: str) -> List[float]:
        self.query_calls.append(text)
        return self._vector(text)


def make_context(
    content: str,
    workspace_id: str = "ws-1",
    tier: ContextTier = ContextTier.WORKSPACE,
    type: ContextType = ContextType.FILE,
    **metadata
) -> ContextCreate:
    return ContextCreate(
        workspace_id=workspace_id,
        tier=tier,
        type=type,
        content=content,
        metadata=metadata
    )


async def age_context(storage: ContextStorage, context_id: str, days: float) -> None:
    """Move a stored context's updated_at into the past"""
    await storage.contexts.update_one(
        {"id": context_id},
        {"$set": {"updated_at": utc_now() - timedelta(days=days)}}
    )


@pytest.fixture
def embeddings():
    return KeywordEmbeddings()


@pytest.fixture
def gateway(embeddings):
    return EmbeddingGateway(embeddings)


@pytest.fixture
def documents():
    return DocumentMemoryStore()


@pytest.fixture
def index():
    return VectorMemoryStore()


@pytest.fixture
def storage(documents, index, gateway):
    return ContextStorage(documents, index, gateway)


@pytest.fixture
def retrieval_settings():
    return RetrievalSettings(default_min_similarity=0.5)


@pytest.fixture
def retriever(storage, gateway, retrieval_settings):
    return ContextRetriever(storage, gateway, retrieval_settings)


@pytest.fixture
def evolution(storage):
    return ContextEvolutionEngine(storage, EvolutionSettings())
