import pytest
from fastapi.testclient import TestClient

from axon.application.api.api_server import create_app
from axon.application.container import build_services
from axon.infrastructure.config import RetrievalSettings, Settings

from conftest import KeywordEmbeddings


@pytest.fixture
def client():
    services = build_services(
        Settings(retrieval=RetrievalSettings(default_min_similarity=0.5)),
        embeddings=KeywordEmbeddings()
    )
    with TestClient(create_app(services)) as client:
        yield client


def create(client, content="auth login handler", **fields):
    body = {
        "workspace_id": "ws-1",
        "tier": "workspace",
        "type": "file",
        "content": content,
        "metadata": {"file_path": "src/auth.py"},
    }
    body.update(fields)
    response = client.post("/api/v1/contexts", json=body)
    assert response.status_code == 201
    return response.json()["context"]


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["components"]["vector_index"] is True


def test_context_crud(client):
    context = create(client)

    response = client.get(f"/api/v1/contexts/{context['id']}")
    assert response.status_code == 200
    assert response.json()["context"]["content"] == "auth login handler"

    response = client.patch(f"/api/v1/contexts/{context['id']}", json={"content": "auth token cache"})
    assert response.json()["context"]["content"] == "auth token cache"

    response = client.delete(f"/api/v1/contexts/{context['id']}")
    assert response.json() == {"success": True, "deleted": True}

    response = client.get(f"/api/v1/contexts/{context['id']}")
    assert response.status_code == 404
    assert response.json()["success"] is False
    assert response.json()["error"]["code"] == "NOT_FOUND"


def test_create_rejects_empty_content(client):
    response = client.post("/api/v1/contexts", json={
        "workspace_id": "ws-1",
        "tier": "workspace",
        "type": "file",
        "content": " ",
    })

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_tier_change_is_rejected(client):
    context = create(client)

    response = client.patch(f"/api/v1/contexts/{context['id']}", json={"tier": "global"})

    assert response.status_code == 400


def test_create_rejects_out_of_range_confidence(client):
    response = client.post("/api/v1/contexts", json={
        "workspace_id": "ws-1",
        "tier": "workspace",
        "type": "file",
        "content": "auth login handler",
        "metadata": {"confidence": 5.0},
    })

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"
    assert response.json()["error"]["details"]["confidence"] == "5.0"
    assert client.get("/api/v1/contexts/workspace/ws-1/count").json()["count"] == 0


def test_update_rejects_non_numeric_confidence(client):
    context = create(client)

    response = client.patch(f"/api/v1/contexts/{context['id']}", json={"metadata": {"confidence": "high"}})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"
    stored = client.get(f"/api/v1/contexts/{context['id']}").json()["context"]
    assert "confidence" not in stored["metadata"]


def test_list_and_count(client):
    create(client)
    create(client, content="cache docs", type="documentation")

    response = client.get("/api/v1/contexts/workspace/ws-1", params={"type": "documentation"})
    assert response.json()["total"] == 1
    assert response.json()["contexts"][0]["content"] == "cache docs"

    response = client.get("/api/v1/contexts/workspace/ws-1/count")
    assert response.json()["count"] == 2


def test_versions_and_restore(client):
    context = create(client)
    client.patch(f"/api/v1/contexts/{context['id']}", json={"content": "database query"})

    versions = client.get(f"/api/v1/contexts/{context['id']}/versions").json()["versions"]
    assert [v["version"] for v in versions] == [2, 1]

    response = client.post(f"/api/v1/contexts/{context['id']}/restore", json={"version": 1})
    assert response.json()["context"]["content"] == "auth login handler"

    response = client.post(f"/api/v1/contexts/{context['id']}/restore", json={"version": 9})
    assert response.status_code == 404


def test_prepare_prompt(client):
    create(client)

    response = client.post("/api/v1/prompts/prepare", json={
        "prompt": "Fix the auth login bug",
        "workspace_id": "ws-1",
    })

    assert response.status_code == 200
    body = response.json()
    assert body["task_type"] == "bug_fix"
    assert body["strategy"] == "hybrid"
    assert body["sources"][0]["source"] == "src/auth.py"


def test_prepare_rejects_empty_prompt(client):
    response = client.post("/api/v1/prompts/prepare", json={"prompt": "", "workspace_id": "ws-1"})

    assert response.status_code == 400
    assert response.json()["error"]["message"] == "prompt must not be empty"


def test_complete_without_model(client):
    response = client.post("/api/v1/prompts/complete", json={"prompt": "auth", "workspace_id": "ws-1"})

    assert response.status_code == 400


def test_feedback_sweep_and_stats(client):
    context = create(client)

    response = client.post("/api/v1/evolution/feedback", json={
        "context_id": context["id"],
        "workspace_id": "ws-1",
        "helpful": True,
        "used": True,
    })
    assert response.status_code == 200
    assert response.json()["context"]["metadata"]["usage_count"] == 1

    response = client.post("/api/v1/evolution/feedback", json={
        "context_id": "missing",
        "workspace_id": "ws-1",
        "helpful": True,
    })
    assert response.status_code == 404

    response = client.post("/api/v1/evolution/sweep", json={"workspace_id": "ws-1"})
    assert response.status_code == 200
    assert response.json()["contexts_deleted"] == 0

    stats = client.get("/api/v1/evolution/stats/ws-1").json()
    assert stats["total_contexts"] == 1
    assert stats["recent_feedback_count"] == 2
