from typing import Annotated

from fastapi import APIRouter, Depends

from axon.application.api.dependencies import get_services
from axon.application.api.schema import ContextResponse, EvolutionSweepRequest
from axon.application.container import ServiceContainer
from axon.domain.errors import NotFoundError
from axon.domain.models import ContextFeedback, EvolutionResult, EvolutionStats

router = APIRouter(prefix="/api/v1/evolution", tags=["evolution"])

Services = Annotated[ServiceContainer, Depends(get_services)]


@router.post("/feedback", response_model=ContextResponse)
async def submit_feedback(feedback: ContextFeedback, services: Services):
    context = await services.pipeline.submit_feedback(feedback)
    if context is None:
        raise NotFoundError("context", feedback.context_id)
    return ContextResponse(context=context)


@router.post("/sweep", response_model=EvolutionResult)
async def run_sweep(body: EvolutionSweepRequest, services: Services):
    return await services.pipeline.run_evolution_sweep(body.workspace_id)


@router.get("/stats/{workspace_id}", response_model=EvolutionStats)
async def evolution_stats(workspace_id: str, services: Services):
    return await services.evolution.get_evolution_stats(workspace_id)
