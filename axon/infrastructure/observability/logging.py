import structlog
import logging
import sys
from typing import Dict, Any, List, Optional
from datetime import datetime, timezone
import os


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    service_name: str = "axon-context-engine"
) -> None:
    """Setup structured logging configuration"""

    # Configure Python logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO)
    )

    # Processors for structlog
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        add_service_context,
    ]

    # Add appropriate renderer based on format
    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    # Configure structlog
    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Set service name in context
    structlog.contextvars.bind_contextvars(
        service=service_name,
        environment=os.getenv("ENVIRONMENT", "development"),
        version=os.getenv("SERVICE_VERSION", "unknown")
    )


def add_service_context(logger: logging.Logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add request scoped context to all log entries"""

    if "timestamp" not in event_dict:
        event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()

    bound = structlog.contextvars.get_contextvars()

    request_id = bound.get("request_id")
    if request_id:
        event_dict["request_id"] = request_id

    workspace_id = bound.get("workspace_id")
    if workspace_id and "workspace_id" not in event_dict:
        event_dict["workspace_id"] = workspace_id

    return event_dict


class PipelineLogger:
    """Specialized logger for context pipeline events"""

    def __init__(self, name: str):
        self.logger = structlog.get_logger(name)

    def log_retrieval(
        self,
        workspace_id: str,
        query: str,
        total_found: int,
        returned: int,
        tiers_searched: List[str],
        latency_ms: float
    ):
        self.logger.info(
            "context_retrieval",
            workspace_id=workspace_id,
            query=query[:100],
            total_found=total_found,
            returned=returned,
            tiers_searched=tiers_searched,
            latency_ms=latency_ms
        )

    def log_synthesis(
        self,
        task_type: str,
        candidates: int,
        sections: int,
        total_tokens: int,
        budget_remaining: int
    ):
        self.logger.info(
            "context_synthesis",
            task_type=task_type,
            candidates=candidates,
            sections=sections,
            total_tokens=total_tokens,
            budget_remaining=budget_remaining
        )

    def log_injection(
        self,
        task_type: str,
        strategy: str,
        total_tokens: int,
        max_tokens: int,
        success: bool = True
    ):
        """Log prompt injection outcome"""

        self.logger.info(
            "prompt_injection",
            task_type=task_type,
            strategy=strategy,
            total_tokens=total_tokens,
            max_tokens=max_tokens,
            success=success
        )

    def log_evolution(
        self,
        workspace_id: str,
        action: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.logger.info(
            "context_evolution",
            workspace_id=workspace_id,
            action=action,
            details=details or {}
        )

    def log_storage_event(
        self,
        action: str,
        context_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        """Log dual store writes"""

        self.logger.info(
            "context_storage",
            action=action,
            context_id=context_id,
            details=details or {}
        )


pipeline_logger = PipelineLogger("axon")


class MetricsCollector:
    """Collect and export metrics"""

    def __init__(self):
        self.metrics: Dict[str, Any] = {}
        self.logger = structlog.get_logger("axon.metrics")

    def record_latency(self, operation: str, duration_ms: float, tags: Optional[Dict[str, str]] = None):
        """Record operation latency"""

        key = f"latency.{operation}"
        if key not in self.metrics:
            self.metrics[key] = {
                "count": 0,
                "sum": 0.0,
                "min": float('inf'),
                "max": 0.0
            }

        entry = self.metrics[key]
        entry["count"] += 1
        entry["sum"] += duration_ms
        entry["min"] = min(entry["min"], duration_ms)
        entry["max"] = max(entry["max"], duration_ms)

        self.logger.debug(
            "metric",
            metric_type="latency",
            operation=operation,
            duration_ms=duration_ms,
            tags=tags or {}
        )

    def increment_counter(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None):
        """Increment a counter metric"""

        self.metrics[name] = self.metrics.get(name, 0) + value

        self.logger.debug(
            "metric",
            metric_type="counter",
            name=name,
            value=value,
            tags=tags or {}
        )

    def set_gauge(self, name: str, value: float, tags: Optional[Dict[str, str]] = None):
        """Set a gauge metric"""

        self.metrics[name] = value

        self.logger.debug(
            "metric",
            metric_type="gauge",
            name=name,
            value=value,
            tags=tags or {}
        )

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Get summary of all metrics"""

        summary = {}
        for key, value in self.metrics.items():
            if isinstance(value, dict) and "count" in value:
                # Latency metric
                summary[key] = {
                    "count": value["count"],
                    "avg": value["sum"] / value["count"] if value["count"] > 0 else 0,
                    "min": value["min"] if value["min"] != float('inf') else 0,
                    "max": value["max"]
                }
            else:
                # Counter or gauge
                summary[key] = value

        return summary
