import structlog

from axon.infrastructure.observability.logging import MetricsCollector, add_service_context, setup_logging


def test_service_context_reads_bound_request():
    structlog.contextvars.clear_contextvars()
    with structlog.contextvars.bound_contextvars(request_id="req-1", workspace_id="ws-1"):
        event = add_service_context(None, "info", {"event": "x"})

    assert event["request_id"] == "req-1"
    assert event["workspace_id"] == "ws-1"
    assert "timestamp" in event


def test_explicit_workspace_is_not_overwritten():
    with structlog.contextvars.bound_contextvars(workspace_id="ws-1"):
        event = add_service_context(None, "info", {"event": "x", "workspace_id": "ws-2"})

    assert event["workspace_id"] == "ws-2"


def test_setup_logging_binds_service():
    setup_logging("DEBUG", "console", "axon-test")

    assert structlog.contextvars.get_contextvars()["service"] == "axon-test"
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()


def test_metrics_summary():
    metrics = MetricsCollector()
    metrics.record_latency("retrieval", 10.0)
    metrics.record_latency("retrieval", 30.0)
    metrics.increment_counter("requests")
    metrics.set_gauge("contexts", 4)

    summary = metrics.get_metrics_summary()

    assert summary["latency.retrieval"] == {"count": 2, "avg": 20.0, "min": 10.0, "max": 30.0}
    assert summary["requests"] == 1
    assert summary["contexts"] == 4
