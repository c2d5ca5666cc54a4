"""Admin endpoints for operating the generation pipeline.

- POST /api/admin/cleanup-stuck-generations - Fail generations abandoned mid-processing
- GET /api/admin/failed-generations - Latest failed generations
- POST /api/admin/failed-generations/{generation_id}/retry - Retry any failed generation

All endpoints require a valid X-Admin-Token header.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from sigil.api.dependencies import (
    get_base_url,
    get_dispatcher,
    get_lifecycle,
    get_settings,
    require_admin,
)
from sigil.api.routes.generations import CamelModel
from sigil.core.dependencies import get_uow
from sigil.models import InvalidStateTransition
from sigil.services.exceptions import GenerationNotFoundError
from sigil.services.generation.recovery import sweep_stuck_generations
from sigil.uow import UnitOfWork

logger = structlog.get_logger()
router = APIRouter(
    prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)]
)

FAILED_GENERATIONS_LIMIT = 100


class SweepResponse(CamelModel):
    cleaned: int
    ids: list[UUID]


class FailedGenerationDTO(CamelModel):
    id: UUID
    user_id: UUID
    session_id: UUID
    model_id: str
    prompt: str
    error_message: str | None = None
    error_category: str | None = None
    error_retryable: bool | None = None
    created_at: datetime


class FailedGenerationsResponse(CamelModel):
    generations: list[FailedGenerationDTO]


@router.post("/cleanup-stuck-generations", response_model=SweepResponse)
async def cleanup_stuck_generations(
    uow: UnitOfWork = Depends(get_uow),
    settings=Depends(get_settings),
) -> SweepResponse:
    """Fail every generation stuck in processing (see recovery sweep)."""
    result = await sweep_stuck_generations(
        uow,
        min_age_minutes=settings.stuck_min_age_minutes,
        heartbeat_stale_minutes=settings.stuck_heartbeat_stale_minutes,
    )
    logger.info("admin.sweep", cleaned=result.cleaned)
    return SweepResponse(cleaned=result.cleaned, ids=result.ids)


@router.get("/failed-generations", response_model=FailedGenerationsResponse)
async def list_failed_generations(
    uow: UnitOfWork = Depends(get_uow),
) -> FailedGenerationsResponse:
    generations = await uow.generations.get_failed(limit=FAILED_GENERATIONS_LIMIT)
    return FailedGenerationsResponse(
        generations=[
            FailedGenerationDTO.model_validate(generation.model_dump())
            for generation in generations
        ]
    )


@router.post(
    "/failed-generations/{generation_id}/retry", status_code=status.HTTP_202_ACCEPTED
)
async def retry_failed_generation(
    generation_id: UUID,
    lifecycle=Depends(get_lifecycle),
    dispatcher=Depends(get_dispatcher),
    base_url: str = Depends(get_base_url),
) -> dict[str, Any]:
    """Retry a generation regardless of owner.

    Raises:
        HTTPException 404: Generation not found
        HTTPException 409: Generation is still being processed
    """
    try:
        generation = await lifecycle.retry_generation(generation_id)
    except GenerationNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Generation not found")
    except InvalidStateTransition as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    dispatcher.schedule(generation.id, base_url)
    logger.info("admin.retry", generation_id=str(generation_id))
    return {"retried": True, "id": str(generation.id)}
