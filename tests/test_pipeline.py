import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel

from axon.application.container import build_services
from axon.domain.errors import ValidationError
from axon.domain.models import (
    ContextFeedback,
    ContextUpdate,
    InjectionStrategy,
    PromptRequest,
    TaskCategory,
)
from axon.domain.orchestration.pipeline import MAX_PROMPT_LENGTH
from axon.infrastructure.config import RetrievalSettings, Settings

from conftest import KeywordEmbeddings, age_context, make_context


@pytest.fixture
def settings():
    return Settings(retrieval=RetrievalSettings(default_min_similarity=0.5))


@pytest.fixture
def services(settings, embeddings):
    return build_services(settings, embeddings=embeddings)


@pytest.fixture
async def seeded(services):
    return await services.pipeline.store_context(
        make_context("auth login handler", file_path="src/auth.py", language="python")
    )


async def test_prepare_runs_every_stage(services, seeded):
    prepared = await services.pipeline.prepare(PromptRequest(prompt="Fix the auth login bug", workspace_id="ws-1"))

    assert prepared.task_type == TaskCategory.BUG_FIX
    assert prepared.strategy == InjectionStrategy.HYBRID
    assert [s.source for s in prepared.sources] == ["src/auth.py"]
    assert "```python\nauth login handler\n```" in prepared.system_prompt
    assert prepared.user_prompt.endswith("**User Request:**\nFix the auth login bug")
    assert set(prepared.latency_breakdown) == {"classification", "retrieval", "synthesis", "injection"}


async def test_prepare_records_usage_in_background(services, seeded):
    await services.pipeline.prepare(PromptRequest(prompt="auth login", workspace_id="ws-1"))
    await services.pipeline.drain()

    document = await services.storage.contexts.find_one({"id": seeded.id})
    assert document["metadata"]["usage_count"] == 1


async def test_explicit_task_type_skips_classification(services, seeded):
    prepared = await services.pipeline.prepare(PromptRequest(
        prompt="Fix the auth login bug",
        workspace_id="ws-1",
        task_type=TaskCategory.GENERAL_QUERY
    ))

    assert prepared.strategy == InjectionStrategy.PREFIX
    assert prepared.user_prompt == "Fix the auth login bug"


async def test_prepare_without_matches(services):
    prepared = await services.pipeline.prepare(PromptRequest(prompt="deploy it", workspace_id="ws-1"))

    assert prepared.context_sections == []
    assert prepared.sources == []


@pytest.mark.parametrize("fields", [
    {"prompt": "   ", "workspace_id": "ws-1"},
    {"prompt": "x" * (MAX_PROMPT_LENGTH + 1), "workspace_id": "ws-1"},
    {"prompt": "auth", "workspace_id": ""},
    {"prompt": "auth", "workspace_id": "ws-1", "limit": -1},
])
async def test_invalid_requests_are_rejected_before_io(services, embeddings, fields):
    with pytest.raises(ValidationError):
        await services.pipeline.prepare(PromptRequest(**fields))

    assert embeddings.query_calls == []
    assert services.metrics.metrics["pipeline.errors"] == 1


async def test_complete_calls_chat_model(settings):
    services = build_services(
        settings,
        embeddings=KeywordEmbeddings(),
        chat_model=FakeListChatModel(responses=["Check the token expiry."])
    )
    await services.pipeline.store_context(make_context("auth login handler"))

    result = await services.pipeline.complete(PromptRequest(prompt="Fix the auth login bug", workspace_id="ws-1"))

    assert result.content == "Check the token expiry."
    assert "llm" in result.prepared.latency_breakdown
    assert len(result.prepared.context_sections) == 1


async def test_complete_requires_chat_model(services):
    with pytest.raises(ValidationError):
        await services.pipeline.complete(PromptRequest(prompt="auth", workspace_id="ws-1"))


async def test_context_lifecycle_through_pipeline(services, seeded):
    pipeline = services.pipeline

    updated = await pipeline.update_context(seeded.id, ContextUpdate(metadata={"tags": ["auth"]}))
    assert updated.metadata["tags"] == ["auth"]

    feedback = await pipeline.submit_feedback(ContextFeedback(context_id=seeded.id, workspace_id="ws-1", used=True))
    assert feedback.usage_count == 1

    assert await pipeline.delete_context(seeded.id) is True
    assert await services.storage.get(seeded.id) is None


async def test_evolution_sweep_through_pipeline(services, seeded):
    await age_context(services.storage, seeded.id, 100)

    result = await services.pipeline.run_evolution_sweep("ws-1")

    assert result.contexts_deleted == 1
    assert services.metrics.metrics["evolution.last_deleted"] == 1


async def test_pipeline_metrics(services, seeded):
    await services.pipeline.prepare(PromptRequest(prompt="auth login", workspace_id="ws-1"))

    summary = services.metrics.get_metrics_summary()
    assert summary["pipeline.requests"] == 1
    assert summary["latency.pipeline.retrieval"]["count"] == 1


async def test_prompt_entities_are_extracted_when_not_supplied(services, monkeypatch):
    seen = []
    original = services.retriever.retrieve

    async def recording_retrieve(request):
        seen.append(request)
        return await original(request)

    monkeypatch.setattr(services.retriever, "retrieve", recording_retrieve)

    await services.pipeline.prepare(PromptRequest(prompt="Why does src/auth.py fail?", workspace_id="ws-1"))
    await services.pipeline.prepare(PromptRequest(prompt="Why does src/auth.py fail?", workspace_id="ws-1", entities=[]))

    extracted = seen[0].entities
    assert ("file", "src/auth.py") in [(e.type, e.value) for e in extracted]
    assert services.retriever.expand_query(seen[0]).startswith("Why does src/auth.py fail? src/auth.py")
    assert seen[1].entities == []
