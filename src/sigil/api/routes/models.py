"""Model catalog endpoint."""

from typing import Any, Literal

from fastapi import APIRouter, Depends, Query

from sigil.api.dependencies import get_registry

router = APIRouter(prefix="/api/models", tags=["models"])


@router.get("")
async def list_models(
    model_type: Literal["image", "video"] | None = Query(default=None, alias="type"),
    registry=Depends(get_registry),
) -> dict[str, Any]:
    """List registered models, optionally filtered by type."""
    configs = registry.get_models_by_type(model_type) if model_type else registry.get_all_models()
    return {"models": [config.to_dict() for config in configs]}
