from dataclasses import dataclass
from typing import Optional

import structlog
from langchain_core.embeddings import DeterministicFakeEmbedding, Embeddings
from langchain_core.language_models.chat_models import BaseChatModel

from axon.domain.classification.task_classifier import TaskTypeClassifier
from axon.domain.context.context_retriever import ContextRetriever
from axon.domain.context.context_storage import ContextStorage
from axon.domain.context.memory.cache_memory_store import CacheMemoryStore
from axon.domain.context.memory.document_memory_store import DocumentMemoryStore
from axon.domain.context.memory.vector_memory_store import VectorMemoryStore
from axon.domain.context.ports import DocumentStore, VectorIndex
from axon.domain.evolution.context_evolution import ContextEvolutionEngine
from axon.domain.orchestration.pipeline import ContextPipeline
from axon.domain.synthesis.context_synthesizer import ContextSynthesizer
from axon.domain.synthesis.prompt_injector import PromptInjector
from axon.infrastructure.config import Settings, get_settings
from axon.infrastructure.embeddings.embedding_gateway import EmbeddingGateway
from axon.infrastructure.observability.logging import MetricsCollector

logger = structlog.get_logger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    storage: ContextStorage
    retriever: ContextRetriever
    evolution: ContextEvolutionEngine
    pipeline: ContextPipeline
    embeddings: EmbeddingGateway
    metrics: MetricsCollector


def build_services(
    settings: Optional[Settings] = None,
    embeddings: Optional[Embeddings] = None,
    chat_model: Optional[BaseChatModel] = None,
    documents: Optional[DocumentStore] = None,
    index: Optional[VectorIndex] = None
) -> ServiceContainer:
    """Wire stores, engines and the pipeline from settings"""

    settings = settings or get_settings()

    if embeddings is None:
        logger.warning(
            "No embedding model configured, using deterministic fake embeddings",
            dimension=settings.embeddings.dimension
        )
        embeddings = DeterministicFakeEmbedding(size=settings.embeddings.dimension)

    gateway = EmbeddingGateway(
        embeddings,
        cache=CacheMemoryStore(default_ttl=settings.embeddings.cache_ttl_seconds),
        cache_ttl=settings.embeddings.cache_ttl_seconds,
        max_batch_size=settings.embeddings.max_batch_size
    )

    storage = ContextStorage(
        documents or DocumentMemoryStore(),
        index or VectorMemoryStore(),
        gateway,
        enable_versioning=settings.enable_versioning,
        min_confidence_threshold=settings.evolution.min_confidence_threshold
    )
    retriever = ContextRetriever(storage, gateway, settings.retrieval)
    evolution = ContextEvolutionEngine(storage, settings.evolution)
    metrics = MetricsCollector()

    pipeline = ContextPipeline(
        storage=storage,
        retriever=retriever,
        synthesizer=ContextSynthesizer(settings.synthesis),
        injector=PromptInjector(settings.injection, model=settings.model),
        evolution=evolution,
        classifier=TaskTypeClassifier(),
        chat_model=chat_model,
        metrics=metrics
    )

    logger.info(
        "Services initialized",
        model=settings.model,
        versioning=settings.enable_versioning,
        chat_model=chat_model is not None
    )

    return ServiceContainer(
        settings=settings,
        storage=storage,
        retriever=retriever,
        evolution=evolution,
        pipeline=pipeline,
        embeddings=gateway,
        metrics=metrics
    )
