from typing import Annotated

from fastapi import APIRouter, Depends

from axon.application.api.dependencies import get_services
from axon.application.container import ServiceContainer
from axon.domain.models import CompletionResult, PreparedPrompt, PromptRequest

router = APIRouter(prefix="/api/v1/prompts", tags=["prompts"])

Services = Annotated[ServiceContainer, Depends(get_services)]


@router.post("/prepare", response_model=PreparedPrompt)
async def prepare_prompt(request: PromptRequest, services: Services):
    """Retrieve, synthesize and inject context without calling the model"""
    return await services.pipeline.prepare(request)


@router.post("/complete", response_model=CompletionResult)
async def complete_prompt(request: PromptRequest, services: Services):
    return await services.pipeline.complete(request)
