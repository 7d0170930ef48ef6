from typing import TypedDict, Annotated, List, Dict, Any, Optional, Set
import asyncio
import time
import uuid

from langgraph.graph import StateGraph, END
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
import structlog

from axon.domain.classification.entity_extractor import EntityExtractor
from axon.domain.classification.task_classifier import TaskTypeClassifier
from axon.domain.context.context_retriever import ContextRetriever
from axon.domain.context.context_storage import ContextStorage
from axon.domain.errors import ValidationError
from axon.domain.evolution.context_evolution import ContextEvolutionEngine
from axon.domain.models import (
    CompletionResult,
    ConstructedPrompt,
    Context,
    ContextCreate,
    ContextFeedback,
    ContextUpdate,
    EvolutionResult,
    PreparedPrompt,
    PromptRequest,
    RetrievalRequest,
    RetrievalResult,
    SynthesizedContext,
    TaskCategory,
)
from axon.domain.synthesis.context_synthesizer import ContextSynthesizer
from axon.domain.synthesis.prompt_injector import PromptInjector
from axon.infrastructure.observability.logging import MetricsCollector

logger = structlog.get_logger(__name__)

MAX_PROMPT_LENGTH = 10000


def merge_latency(left: Dict[str, float], right: Dict[str, float]) -> Dict[str, float]:
    return {**(left or {}), **(right or {})}


class PipelineState(TypedDict, total=False):
    """State for the context pipeline graph"""
    request: PromptRequest
    request_id: str
    complete_requested: bool
    task_type: TaskCategory
    retrieval: RetrievalResult
    synthesized: SynthesizedContext
    constructed: ConstructedPrompt
    completion: Dict[str, Any]
    latency: Annotated[Dict[str, float], merge_latency]


class ContextPipeline:
    """Context pipeline using LangGraph: validate, classify, retrieve, synthesize, inject"""

    def __init__(
        self,
        storage: ContextStorage,
        retriever: ContextRetriever,
        synthesizer: ContextSynthesizer,
        injector: PromptInjector,
        evolution: ContextEvolutionEngine,
        classifier: Optional[TaskTypeClassifier] = None,
        chat_model: Optional[BaseChatModel] = None,
        metrics: Optional[MetricsCollector] = None,
        entity_extractor: Optional[EntityExtractor] = None
    ):
        self.storage = storage
        self.retriever = retriever
        self.synthesizer = synthesizer
        self.injector = injector
        self.evolution = evolution
        self.classifier = classifier or TaskTypeClassifier()
        self.entity_extractor = entity_extractor or EntityExtractor()
        self.chat_model = chat_model
        self.metrics = metrics or MetricsCollector()
        self._background: Set[asyncio.Task] = set()
        self.workflow = self._create_workflow()

    def _create_workflow(self):
        workflow = StateGraph(PipelineState)

        workflow.add_node("validate", self.validate_node)
        workflow.add_node("classify", self.classify_node)
        workflow.add_node("retrieve", self.retrieve_node)
        workflow.add_node("synthesize", self.synthesize_node)
        workflow.add_node("inject", self.inject_node)
        workflow.add_node("complete", self.complete_node)

        workflow.set_entry_point("validate")
        workflow.add_edge("validate", "classify")
        workflow.add_edge("classify", "retrieve")
        workflow.add_edge("retrieve", "synthesize")
        workflow.add_edge("synthesize", "inject")

        workflow.add_conditional_edges(
            "inject",
            self.route_after_injection,
            {
                "complete": "complete",
                "done": END
            }
        )
        workflow.add_edge("complete", END)

        return workflow.compile()

    async def prepare(self, request: PromptRequest) -> PreparedPrompt:
        """Run the pipeline up to the injected prompt"""

        state = await self._run(request, complete=False)
        return self._prepared(state)

    async def complete(self, request: PromptRequest) -> CompletionResult:
        """Run the pipeline and hand the injected prompt to the chat model"""

        if self.chat_model is None:
            raise ValidationError("no chat model is configured")

        state = await self._run(request, complete=True)
        completion = state.get("completion") or {}
        return CompletionResult(
            prepared=self._prepared(state),
            content=completion.get("content", ""),
            usage=completion.get("usage", {})
        )

    async def _run(self, request: PromptRequest, complete: bool) -> PipelineState:
        request_id = str(uuid.uuid4())
        start = time.perf_counter()

        with structlog.contextvars.bound_contextvars(
            request_id=request_id,
            workspace_id=request.workspace_id
        ):
            logger.info("Starting context pipeline", complete=complete)
            try:
                state = await self.workflow.ainvoke({
                    "request": request,
                    "request_id": request_id,
                    "complete_requested": complete,
                    "latency": {}
                })
            except Exception as e:
                self.metrics.increment_counter("pipeline.errors", tags={"error": type(e).__name__})
                logger.error("Context pipeline failed", error=str(e), error_type=type(e).__name__)
                raise

            total_ms = (time.perf_counter() - start) * 1000
            self.metrics.record_latency("pipeline.total", total_ms)
            self.metrics.increment_counter("pipeline.requests")
            logger.info("Context pipeline completed", latency_ms=total_ms)

        return state

    async def validate_node(self, state: PipelineState) -> Dict[str, Any]:
        """Reject malformed requests before any I/O"""

        request = state["request"]
        if not request.prompt or not request.prompt.strip():
            raise ValidationError("prompt must not be empty")
        if len(request.prompt) > MAX_PROMPT_LENGTH:
            raise ValidationError(
                f"prompt exceeds {MAX_PROMPT_LENGTH} characters",
                {"length": len(request.prompt)}
            )
        if not request.workspace_id or not request.workspace_id.strip():
            raise ValidationError("workspace_id must not be empty")
        if request.limit is not None and request.limit <= 0:
            raise ValidationError("limit must be positive", {"limit": request.limit})
        if request.min_similarity is not None and not 0.0 <= request.min_similarity <= 1.0:
            raise ValidationError(
                "min_similarity must be within [0, 1]",
                {"min_similarity": request.min_similarity}
            )
        return {"latency": {}}

    async def classify_node(self, state: PipelineState) -> Dict[str, Any]:
        start = time.perf_counter()
        request = state["request"]

        if request.task_type is not None:
            task_type = request.task_type
        else:
            classification = self.classifier.classify(request.prompt)
            task_type = classification.primary.category
            logger.info(
                "Classified prompt",
                task_type=task_type.value,
                confidence=classification.primary.confidence,
                indicators=classification.indicators
            )

        return {"task_type": task_type, "latency": self._stage("classification", start)}

    async def retrieve_node(self, state: PipelineState) -> Dict[str, Any]:
        start = time.perf_counter()
        request = state["request"]

        entities = request.entities
        if entities is None:
            entities = self.entity_extractor.extract(request.prompt)

        retrieval = await self.retriever.retrieve(RetrievalRequest(
            query=request.prompt,
            workspace_id=request.workspace_id,
            task_type=state["task_type"],
            entities=entities,
            tier=request.tier,
            limit=request.limit,
            min_similarity=request.min_similarity
        ))

        return {"retrieval": retrieval, "latency": self._stage("retrieval", start)}

    async def synthesize_node(self, state: PipelineState) -> Dict[str, Any]:
        start = time.perf_counter()

        synthesized = self.synthesizer.synthesize(state["retrieval"].contexts, state["task_type"])
        self._schedule_usage_update([section.context_id for section in synthesized.sections])

        return {"synthesized": synthesized, "latency": self._stage("synthesis", start)}

    async def inject_node(self, state: PipelineState) -> Dict[str, Any]:
        start = time.perf_counter()
        request = state["request"]

        constructed = self.injector.inject(
            request.prompt,
            state["synthesized"],
            state["task_type"],
            strategy=request.strategy
        )

        return {"constructed": constructed, "latency": self._stage("injection", start)}

    async def complete_node(self, state: PipelineState) -> Dict[str, Any]:
        start = time.perf_counter()
        constructed = state["constructed"]

        response = await self.chat_model.ainvoke([
            SystemMessage(content=constructed.system_prompt),
            HumanMessage(content=constructed.user_prompt)
        ])

        completion = {
            "content": response.content if isinstance(response.content, str) else str(response.content),
            "usage": dict(getattr(response, "usage_metadata", None) or {})
        }
        return {"completion": completion, "latency": self._stage("llm", start)}

    def route_after_injection(self, state: PipelineState) -> str:
        if state.get("complete_requested") and self.chat_model is not None:
            return "complete"
        return "done"

    async def store_context(self, data: ContextCreate) -> Context:
        return await self.storage.create(data)

    async def update_context(self, context_id: str, changes: ContextUpdate) -> Optional[Context]:
        return await self.storage.update(context_id, changes)

    async def delete_context(self, context_id: str) -> bool:
        return await self.storage.delete(context_id)

    async def submit_feedback(self, feedback: ContextFeedback) -> Optional[Context]:
        self.metrics.increment_counter("feedback.submitted")
        return await self.evolution.process_feedback(feedback)

    async def run_evolution_sweep(self, workspace_id: str) -> EvolutionResult:
        result = await self.evolution.evolve(workspace_id)
        self.metrics.set_gauge("evolution.last_deleted", result.contexts_deleted)
        return result

    async def drain(self) -> None:
        """Wait for scheduled usage-stat updates to finish"""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def _schedule_usage_update(self, context_ids: List[str]) -> None:
        if not context_ids:
            return
        task = asyncio.create_task(self.retriever.update_usage_stats(context_ids))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _stage(self, name: str, start: float) -> Dict[str, float]:
        elapsed = (time.perf_counter() - start) * 1000
        self.metrics.record_latency(f"pipeline.{name}", elapsed)
        return {name: elapsed}

    @staticmethod
    def _prepared(state: PipelineState) -> PreparedPrompt:
        constructed = state["constructed"]
        return PreparedPrompt(
            request_id=state["request_id"],
            task_type=state["task_type"],
            strategy=constructed.strategy,
            system_prompt=constructed.system_prompt,
            user_prompt=constructed.user_prompt,
            total_tokens=constructed.total_tokens,
            context_sections=constructed.context_sections,
            sources=state["synthesized"].sources,
            latency_breakdown=state.get("latency", {})
        )
