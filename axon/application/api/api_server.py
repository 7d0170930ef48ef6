from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from axon.application.api.route import contexts, evolution, prompts
from axon.application.api.schema import HealthResponse
from axon.application.container import ServiceContainer, build_services
from axon.domain.errors import AxonError
from axon.infrastructure.config import get_settings
from axon.infrastructure.observability.logging import setup_logging

logger = structlog.get_logger(__name__)


def create_app(services: Optional[ServiceContainer] = None) -> FastAPI:
    """Build the HTTP app around a service container"""

    if services is None:
        settings = get_settings()
        setup_logging(settings.log_level, settings.log_format, settings.service_name)
        services = build_services(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Context engine API started", service=services.settings.service_name)
        yield
        # Let scheduled usage-stat writes land before shutdown
        await services.pipeline.drain()
        logger.info("Context engine API stopped")

    app = FastAPI(title="Axon Context Engine", lifespan=lifespan)
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AxonError)
    async def axon_error_handler(request: Request, exc: AxonError):
        logger.warning(
            "Request failed",
            path=request.url.path,
            code=exc.code,
            error=exc.message
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.to_dict()}
        )

    @app.get("/health", response_model=HealthResponse)
    async def health():
        components = await services.storage.health_check()
        return HealthResponse(
            status="healthy" if all(components.values()) else "degraded",
            components=components,
            metrics=services.metrics.get_metrics_summary()
        )

    app.include_router(contexts.router)
    app.include_router(prompts.router)
    app.include_router(evolution.router)

    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
