"""Generation API endpoints.

This module implements REST endpoints for the generation lifecycle:
- POST /api/generate - Create a generation and dispatch it for processing
- POST /api/generate/process - Process one generation (called by the dispatcher)
- GET /api/generations/{generation_id} - Generation with its outputs
- POST /api/generations/{generation_id}/retry - Re-run a terminal generation
- DELETE /api/generations/{generation_id} - Dismiss a failed generation
"""

from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from sigil.api.dependencies import (
    get_base_url,
    get_current_user_id,
    get_dispatcher,
    get_lifecycle,
    validate_dispatch_secret,
)
from sigil.models import FileType, Generation, GenerationStatus, InvalidStateTransition, Output
from sigil.services.exceptions import GenerationNotFoundError, UnknownModelError

logger = structlog.get_logger()
router = APIRouter(prefix="/api", tags=["generations"])


# Request/Response Models


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys (the client's wire format)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GenerateRequest(CamelModel):
    """Request model for creating a generation."""

    session_id: UUID = Field(..., description="Session the generation belongs to")
    model_id: str = Field(..., min_length=1, max_length=128, description="Requested model id")
    prompt: str = Field(..., min_length=1, max_length=10000)
    negative_prompt: str | None = Field(default=None, max_length=10000)
    parameters: dict[str, Any] = Field(
        default_factory=dict,
        description="Opaque parameter bag (aspectRatio, numOutputs, referenceImageUrl, ...)",
    )


class ProcessRequest(CamelModel):
    generation_id: UUID


class OutputDTO(CamelModel):
    id: UUID
    file_url: str
    file_type: FileType
    width: int
    height: int
    duration: float | None = None
    is_approved: bool
    created_at: datetime


class GenerationDTO(CamelModel):
    """Data Transfer Object for generations in API responses."""

    id: UUID
    user_id: UUID
    session_id: UUID
    model_id: str
    prompt: str
    negative_prompt: str | None = None
    parameters: dict[str, Any] = Field(default_factory=dict)
    status: GenerationStatus
    cost: float | None = None
    error_message: str | None = None
    error_category: str | None = None
    error_retryable: bool | None = None
    last_heartbeat_at: datetime | None = None
    created_at: datetime
    outputs: list[OutputDTO] = Field(default_factory=list)

    @classmethod
    def from_entity(
        cls, generation: Generation, outputs: list[Output] | None = None
    ) -> "GenerationDTO":
        return cls.model_validate(
            {
                **generation.model_dump(),
                "outputs": [output.model_dump() for output in outputs or []],
            }
        )


class GenerateResponse(CamelModel):
    generation: GenerationDTO


class RetryResponse(CamelModel):
    id: UUID
    status: GenerationStatus
    retried: bool


# API Endpoints


@router.post(
    "/generate", response_model=GenerateResponse, status_code=status.HTTP_202_ACCEPTED
)
async def create_generation(
    request: GenerateRequest,
    user_id: UUID = Depends(get_current_user_id),
    lifecycle=Depends(get_lifecycle),
    dispatcher=Depends(get_dispatcher),
    base_url: str = Depends(get_base_url),
) -> GenerateResponse:
    """Create a generation in ``processing`` and hand it to the dispatcher.

    Raises:
        HTTPException 400: Unknown model id
    """
    try:
        generation = await lifecycle.create_generation(
            user_id=user_id,
            session_id=request.session_id,
            model_id=request.model_id,
            prompt=request.prompt,
            negative_prompt=request.negative_prompt,
            parameters=request.parameters,
        )
    except UnknownModelError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Model not found")

    dispatcher.schedule(generation.id, base_url)
    return GenerateResponse(generation=GenerationDTO.from_entity(generation))


@router.post(
    "/generate/process",
    dependencies=[Depends(validate_dispatch_secret)],
    status_code=status.HTTP_200_OK,
)
async def process_generation(
    request: ProcessRequest,
    lifecycle=Depends(get_lifecycle),
) -> dict[str, Any]:
    """Run one generation to a terminal state.

    Provider failures are reported in the body with status ``failed``; only
    database faults surface as 5xx.

    Raises:
        HTTPException 404: Generation does not exist
    """
    try:
        result = await lifecycle.process_generation(request.generation_id)
    except GenerationNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Generation not found")
    return result.to_dict()


@router.get("/generations/{generation_id}", response_model=GenerationDTO)
async def get_generation(
    generation_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    lifecycle=Depends(get_lifecycle),
) -> GenerationDTO:
    try:
        generation, outputs = await lifecycle.get_generation(generation_id, user_id=user_id)
    except GenerationNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Generation not found")
    return GenerationDTO.from_entity(generation, outputs)


@router.post("/generations/{generation_id}/retry", response_model=RetryResponse)
async def retry_generation(
    generation_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    lifecycle=Depends(get_lifecycle),
    dispatcher=Depends(get_dispatcher),
    base_url: str = Depends(get_base_url),
) -> RetryResponse:
    """Purge outputs, reset to ``processing`` and dispatch again.

    Raises:
        HTTPException 404: Generation not found or owned by another user
        HTTPException 409: Generation is still being processed
    """
    try:
        generation = await lifecycle.retry_generation(generation_id, user_id=user_id)
    except GenerationNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Generation not found or access denied",
        )
    except InvalidStateTransition as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    dispatcher.schedule(generation.id, base_url)
    return RetryResponse(id=generation.id, status=generation.status, retried=True)


@router.delete("/generations/{generation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_generation(
    generation_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    lifecycle=Depends(get_lifecycle),
) -> Response:
    """Permanently remove a failed generation and its outputs.

    Raises:
        HTTPException 404: Generation not found or owned by another user
        HTTPException 400: Generation is not failed
    """
    try:
        await lifecycle.delete_generation(generation_id, user_id=user_id)
    except GenerationNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Generation not found or access denied",
        )
    except InvalidStateTransition:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only failed generations can be dismissed",
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
